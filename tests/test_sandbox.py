"""Tests for workspace confinement and allow-list resolution.

Tests cover:
- Relative paths inside and outside the workspace
- Absolute paths with and without allow-list entries
- Directory vs. file allow-list entries
- Symlink escapes
"""
import os
import tempfile
from pathlib import Path
from typing import Generator

import pytest

from workspace_patch.sandbox import AllowlistEntry, PathSandbox, canonicalize, resolve_path


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------
@pytest.fixture
def temp_workspace() -> Generator[Path, None, None]:
    """Create a temporary workspace directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        root = canonicalize(Path(tmpdir)) / "ws"
        root.mkdir()
        yield root


@pytest.fixture
def outside_dir(temp_workspace: Path) -> Path:
    """A sibling directory outside the workspace."""
    path = temp_workspace.parent / "shared"
    path.mkdir()
    return path


# ---------------------------------------------------------------------------
# Workspace confinement
# ---------------------------------------------------------------------------
class TestConfinement:
    def test_relative_path_resolves_into_workspace(self, temp_workspace: Path) -> None:
        decision = resolve_path("src/app.py", temp_workspace)
        assert decision.allowed
        assert decision.path == temp_workspace / "src" / "app.py"

    def test_parent_traversal_denied(self, temp_workspace: Path) -> None:
        decision = resolve_path("../outside.txt", temp_workspace)
        assert not decision.allowed
        assert decision.reason == 'Path traversal denied: "../outside.txt"'

    def test_traversal_that_comes_back_is_allowed(self, temp_workspace: Path) -> None:
        decision = resolve_path("src/../README.md", temp_workspace)
        assert decision.path == temp_workspace / "README.md"

    def test_workspace_root_itself_is_confined(self, temp_workspace: Path) -> None:
        assert resolve_path(".", temp_workspace).path == temp_workspace

    def test_sibling_with_common_prefix_denied(self, temp_workspace: Path) -> None:
        sibling = temp_workspace.parent / "ws-other" / "x.txt"
        decision = resolve_path(str(sibling), temp_workspace)
        assert not decision.allowed

    def test_absolute_inside_workspace_allowed(self, temp_workspace: Path) -> None:
        target = temp_workspace / "notes.md"
        assert resolve_path(str(target), temp_workspace).path == target

    def test_absolute_outside_denied(self, temp_workspace: Path) -> None:
        decision = resolve_path("/etc/passwd", temp_workspace)
        assert not decision.allowed
        assert "outside workspace" in decision.reason

    def test_empty_and_nul_paths_denied(self, temp_workspace: Path) -> None:
        assert not resolve_path("", temp_workspace).allowed
        assert not resolve_path("a\x00b", temp_workspace).allowed

    def test_symlink_escape_denied(self, temp_workspace: Path, outside_dir: Path) -> None:
        (outside_dir / "secret.txt").write_text("secret")
        os.symlink(outside_dir, temp_workspace / "link")
        decision = resolve_path("link/secret.txt", temp_workspace)
        assert not decision.allowed
        assert "traversal" in decision.reason


# ---------------------------------------------------------------------------
# Allow-list
# ---------------------------------------------------------------------------
class TestAllowlist:
    def test_external_directory_grants_subtree(self, temp_workspace: Path, outside_dir: Path) -> None:
        entry = AllowlistEntry.from_path(outside_dir)
        target = outside_dir / "deep" / "notes.txt"
        assert resolve_path(str(target), temp_workspace, [entry]).path == target

    def test_file_entry_grants_only_itself(self, temp_workspace: Path, outside_dir: Path) -> None:
        allowed = outside_dir / "one.txt"
        allowed.write_text("x")
        entry = AllowlistEntry.from_path(allowed)
        assert not entry.is_dir

        assert resolve_path(str(allowed), temp_workspace, [entry]).allowed
        assert not resolve_path(str(outside_dir / "two.txt"), temp_workspace, [entry]).allowed

    def test_nonempty_allowlist_restricts_workspace(self, temp_workspace: Path) -> None:
        (temp_workspace / "src").mkdir()
        entry = AllowlistEntry.from_path(temp_workspace / "src")

        assert resolve_path("src/app.py", temp_workspace, [entry]).allowed
        decision = resolve_path("docs/readme.md", temp_workspace, [entry])
        assert not decision.allowed
        assert decision.reason == "Access denied by allowedPaths policy: docs/readme.md"

    def test_allowlist_does_not_permit_relative_escape(self, temp_workspace: Path, outside_dir: Path) -> None:
        entry = AllowlistEntry.from_path(outside_dir)
        decision = resolve_path("../shared/notes.txt", temp_workspace, [entry])
        assert not decision.allowed

    def test_entry_covers(self, outside_dir: Path) -> None:
        entry = AllowlistEntry(path=outside_dir, is_dir=True)
        assert entry.covers(outside_dir)
        assert entry.covers(outside_dir / "a" / "b")
        assert not entry.covers(outside_dir.parent / "shared-other")


# ---------------------------------------------------------------------------
# PathSandbox wrapper
# ---------------------------------------------------------------------------
class TestPathSandbox:
    def test_resolve_matches_function(self, temp_workspace: Path) -> None:
        sandbox = PathSandbox(temp_workspace)
        assert sandbox.resolve("a.txt").path == temp_workspace / "a.txt"
        assert not sandbox.resolve("../a.txt").allowed

    def test_relative_display(self, temp_workspace: Path) -> None:
        sandbox = PathSandbox(temp_workspace)
        assert sandbox.relative(temp_workspace / "src" / "a.py") == "src/a.py"
        assert sandbox.relative(Path("/etc/hosts")) == "/etc/hosts"
