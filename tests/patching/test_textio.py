"""Tests for text file helpers.

Tests cover:
- Line splitting and line ending detection
- BOM handling and UTF-8/binary rejection
- Atomic writes, permission preservation and concurrent write detection
"""
import os
import stat
import tempfile
from pathlib import Path
from typing import Generator

import pytest

from workspace_patch.exceptions import ApplyError
from workspace_patch.patching.textio import (
    UTF8_BOM,
    count_lines,
    create_text_file,
    delete_text_file,
    read_text_file,
    split_lines,
    write_text_file,
)


@pytest.fixture
def temp_workspace() -> Generator[Path, None, None]:
    """Create a temporary workspace directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


class TestSplitLines:
    def test_lf(self) -> None:
        assert split_lines("a\nb\n") == (["a", "b", ""], "\n")

    def test_crlf(self) -> None:
        assert split_lines("a\r\nb") == (["a", "b"], "\r\n")

    def test_cr(self) -> None:
        assert split_lines("a\rb") == (["a", "b"], "\r")

    def test_mixed_endings_use_dominant(self) -> None:
        # CRLF wins whenever present, so the bare LF line is rejoined with CRLF.
        lines, ending = split_lines("a\r\nb\nc")
        assert lines == ["a", "b", "c"]
        assert ending == "\r\n"

    def test_count_lines(self) -> None:
        assert count_lines("") == 0
        assert count_lines("a") == 1
        assert count_lines("a\nb\n") == 2


class TestReadTextFile:
    def test_bom_stripped_and_remembered(self, temp_workspace: Path) -> None:
        path = temp_workspace / "bom.txt"
        path.write_bytes(UTF8_BOM + "héllo".encode("utf-8"))
        snapshot = read_text_file(path, "bom.txt", max_bytes=1024)
        assert snapshot.content == "héllo"
        assert snapshot.bom == UTF8_BOM

    def test_invalid_utf8_rejected(self, temp_workspace: Path) -> None:
        path = temp_workspace / "latin1.txt"
        path.write_bytes("café".encode("latin-1"))
        with pytest.raises(ApplyError) as exc_info:
            read_text_file(path, "latin1.txt", max_bytes=1024)
        assert "UTF-8" in exc_info.value.message

    def test_oversized_rejected(self, temp_workspace: Path) -> None:
        path = temp_workspace / "big.txt"
        path.write_text("x" * 100)
        with pytest.raises(ApplyError) as exc_info:
            read_text_file(path, "big.txt", max_bytes=10)
        assert "maximum size" in exc_info.value.message

    def test_directory_rejected(self, temp_workspace: Path) -> None:
        with pytest.raises(ApplyError):
            read_text_file(temp_workspace, ".", max_bytes=10)


class TestWriteTextFile:
    def test_mode_preserved(self, temp_workspace: Path) -> None:
        path = temp_workspace / "run.sh"
        path.write_text("echo hi\n")
        os.chmod(path, 0o755)
        snapshot = read_text_file(path, "run.sh", max_bytes=1024)

        write_text_file(snapshot, "echo bye\n", "run.sh", max_bytes=1024)

        assert path.read_text() == "echo bye\n"
        assert stat.S_IMODE(path.stat().st_mode) == 0o755
        assert [p.name for p in temp_workspace.iterdir()] == ["run.sh"]

    def test_concurrent_modification_detected(self, temp_workspace: Path) -> None:
        path = temp_workspace / "a.txt"
        path.write_text("one\n")
        snapshot = read_text_file(path, "a.txt", max_bytes=1024)
        os.utime(path, ns=(snapshot.mtime_ns + 5_000_000_000, snapshot.mtime_ns + 5_000_000_000))

        with pytest.raises(ApplyError) as exc_info:
            write_text_file(snapshot, "two\n", "a.txt", max_bytes=1024)
        assert "another writer" in exc_info.value.message
        assert path.read_text() == "one\n"

    def test_detection_can_be_disabled(self, temp_workspace: Path) -> None:
        path = temp_workspace / "a.txt"
        path.write_text("one\n")
        snapshot = read_text_file(path, "a.txt", max_bytes=1024)
        os.utime(path, ns=(snapshot.mtime_ns + 5_000_000_000, snapshot.mtime_ns + 5_000_000_000))

        write_text_file(snapshot, "two\n", "a.txt", max_bytes=1024, detect_concurrent_writes=False)
        assert path.read_text() == "two\n"

    def test_result_size_limit(self, temp_workspace: Path) -> None:
        path = temp_workspace / "a.txt"
        path.write_text("one")
        snapshot = read_text_file(path, "a.txt", max_bytes=5)
        with pytest.raises(ApplyError):
            write_text_file(snapshot, "much longer", "a.txt", max_bytes=5)


class TestCreateAndDelete:
    def test_create_makes_parents(self, temp_workspace: Path) -> None:
        path = temp_workspace / "a" / "b" / "c.txt"
        create_text_file(path, "hi", "a/b/c.txt", max_bytes=1024)
        assert path.read_text() == "hi"

    def test_create_never_overwrites(self, temp_workspace: Path) -> None:
        path = temp_workspace / "exists.txt"
        path.write_text("keep")
        with pytest.raises(ApplyError) as exc_info:
            create_text_file(path, "new", "exists.txt", max_bytes=1024)
        assert "already exists" in exc_info.value.message
        assert path.read_text() == "keep"

    def test_delete_missing_file(self, temp_workspace: Path) -> None:
        with pytest.raises(ApplyError):
            delete_text_file(temp_workspace / "nope.txt", "nope.txt")
