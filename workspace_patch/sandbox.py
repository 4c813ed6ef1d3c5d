"""Workspace confinement and allow-list checks for patch targets.

Every path named by a patch goes through :meth:`PathSandbox.resolve` before
any file is read or written. Resolution is a pure function of the workspace
root, the allow-list and the requested path; it only queries the filesystem
to follow symlinks and never raises.

Rules:
  - Relative paths are joined onto the workspace root and must stay inside it.
  - Absolute paths are canonicalized; outside the workspace they need an
    allow-list entry.
  - With a non-empty allow-list, every target must also be covered by an
    entry: directories grant their whole subtree, files grant only themselves.
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional, Sequence, Union

from .logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class AllowlistEntry:
    """An absolute, symlink-resolved path granted by configuration."""

    path: Path
    is_dir: bool

    @classmethod
    def from_path(cls, path: Union[str, Path]) -> "AllowlistEntry":
        resolved = canonicalize(Path(path))
        return cls(path=resolved, is_dir=resolved.is_dir())

    def covers(self, target: Path) -> bool:
        if self.is_dir:
            return is_within(target, self.path)
        return target == self.path


@dataclass(frozen=True)
class PathDecision:
    """Outcome of resolving one requested path."""

    requested: str
    path: Optional[Path] = None
    reason: Optional[str] = None

    @property
    def allowed(self) -> bool:
        return self.path is not None


def canonicalize(path: Path) -> Path:
    """Absolute, normalized form of ``path`` with existing symlinks followed."""
    return Path(os.path.abspath(path)).resolve(strict=False)


def is_within(child: Path, parent: Path) -> bool:
    """True when ``child`` equals ``parent`` or lies beneath it."""
    return child == parent or child.is_relative_to(parent)


def resolve_path(
    requested: str,
    workspace_root: Union[str, Path],
    allowlist: Sequence[AllowlistEntry] = (),
) -> PathDecision:
    """Resolve ``requested`` against ``workspace_root`` and ``allowlist``."""

    if not requested or not requested.strip():
        return PathDecision(requested, reason="Empty path")
    if "\x00" in requested:
        return PathDecision(requested, reason=f"NUL bytes are not allowed in paths: {requested!r}")

    root = canonicalize(Path(workspace_root))
    candidate = Path(requested)

    try:
        if candidate.is_absolute():
            resolved = canonicalize(candidate)
            confined = is_within(resolved, root)
            if not confined and not any(entry.covers(resolved) for entry in allowlist):
                return PathDecision(requested, reason=f'Path outside workspace denied: "{requested}"')
        else:
            resolved = canonicalize(root / candidate)
            if not is_within(resolved, root):
                return PathDecision(requested, reason=f'Path traversal denied: "{requested}"')
    except (OSError, RuntimeError) as e:
        return PathDecision(requested, reason=f"Failed to resolve path {requested!r}: {e}")

    if allowlist and not any(entry.covers(resolved) for entry in allowlist):
        return PathDecision(requested, reason=f"Access denied by allowedPaths policy: {requested}")

    return PathDecision(requested, path=resolved)


class PathSandbox:
    """Resolves patch target paths for one workspace.

    Example:
        >>> sandbox = PathSandbox("/ws")
        >>> sandbox.resolve("../outside.txt").reason
        'Path traversal denied: "../outside.txt"'
    """

    def __init__(self, workspace_root: Union[str, Path], allowlist: Iterable[AllowlistEntry] = ()):
        self.workspace_root = canonicalize(Path(workspace_root))
        self.allowlist: tuple[AllowlistEntry, ...] = tuple(allowlist)

    def resolve(self, requested: str) -> PathDecision:
        decision = resolve_path(requested, self.workspace_root, self.allowlist)
        if not decision.allowed:
            logger.warning("path_denied", requested=requested, reason=decision.reason)
        return decision

    def relative(self, path: Path) -> str:
        """POSIX path relative to the workspace, or the absolute path outside it."""
        if is_within(path, self.workspace_root):
            return path.relative_to(self.workspace_root).as_posix() or "."
        return path.as_posix()
