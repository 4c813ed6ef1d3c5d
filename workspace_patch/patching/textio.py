"""Text file helpers shared by the diff and structured patch paths.

- Only UTF-8 text is supported; a UTF-8 BOM is carried through unchanged.
- Files containing NUL bytes are treated as binary and rejected.
- A file keeps its line ending style. The style is CRLF if any CRLF is
  present, else CR if any bare CR is present, else LF. Files with mixed
  endings are therefore rewritten with that single ending throughout,
  including lines no hunk touched.
- Writes go to a temporary sibling and are moved into place with ``os.replace``.
"""
from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

from ..exceptions import ApplyError

UTF8_BOM: bytes = b"\xef\xbb\xbf"


@dataclass
class TextFile:
    """Decoded snapshot of a file taken right before it is patched."""

    path: Path
    content: str
    bom: bytes = b""
    mode: Optional[int] = None
    mtime_ns: Optional[int] = None

    def encode(self, content: str) -> bytes:
        return self.bom + content.encode("utf-8")


def split_lines(text: str) -> Tuple[List[str], str]:
    """Split text into lines while remembering its line ending style.

    ``line_ending.join(lines)`` reproduces single-style text exactly and
    normalizes mixed endings to the returned one. A trailing
    newline shows up as a final empty element.
    """

    if "\r\n" in text:
        return text.replace("\r\n", "\n").split("\n"), "\r\n"
    if "\r" in text:
        return text.replace("\r", "\n").split("\n"), "\r"
    return text.split("\n"), "\n"


def count_lines(text: str) -> int:
    if not text:
        return 0
    lines, _ = split_lines(text)
    if lines[-1] == "":
        lines.pop()
    return len(lines)


def decode_utf8(data: bytes) -> Tuple[str, bytes]:
    """Decode UTF-8 and return ``(text, bom)``; raises UnicodeDecodeError."""

    if data.startswith(UTF8_BOM):
        return data[len(UTF8_BOM):].decode("utf-8"), UTF8_BOM
    return data.decode("utf-8"), b""


def read_text_file(path: Path, display_path: str, *, max_bytes: int) -> TextFile:
    """Read and decode ``path`` for patching."""

    if not path.is_file():
        raise ApplyError("Target is not a regular file", path=display_path)
    try:
        stat = path.stat()
        if stat.st_size > max_bytes:
            raise ApplyError(
                f"File exceeds maximum size ({max_bytes} bytes)",
                path=display_path,
            )
        raw = path.read_bytes()
    except OSError as e:
        raise ApplyError(f"Cannot read file: {e}", path=display_path) from e

    if b"\x00" in raw:
        raise ApplyError(
            "Cannot read file: appears to be binary (contains NUL bytes)",
            path=display_path,
            hint="Only UTF-8 text files can be patched",
        )
    try:
        content, bom = decode_utf8(raw)
    except UnicodeDecodeError as e:
        raise ApplyError(
            "Cannot read file: not valid UTF-8 text",
            path=display_path,
            hint="Only UTF-8 text files can be patched",
        ) from e

    return TextFile(
        path=path,
        content=content,
        bom=bom,
        mode=stat.st_mode & 0o777,
        mtime_ns=stat.st_mtime_ns,
    )


def atomic_write_bytes(path: Path, data: bytes, *, mode: Optional[int] = None) -> None:
    """Atomically replace ``path`` with ``data``.

    Parent directories are created when missing.
    """

    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.patch.", dir=str(path.parent))
    tmp_path = Path(tmp_name)

    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())

        if mode is not None:
            os.chmod(tmp_path, mode)

        os.replace(tmp_path, path)
    finally:
        if tmp_path.exists():
            tmp_path.unlink()


def write_text_file(
    snapshot: TextFile,
    content: str,
    display_path: str,
    *,
    max_bytes: int,
    detect_concurrent_writes: bool = True,
) -> None:
    """Write ``content`` back to the file ``snapshot`` was read from.

    When ``detect_concurrent_writes`` is set, the write is refused if the
    file's modification time moved since the snapshot was taken.
    """

    data = snapshot.encode(content)
    if len(data) > max_bytes:
        raise ApplyError(f"Result exceeds maximum file size ({max_bytes} bytes)", path=display_path)

    try:
        if detect_concurrent_writes and snapshot.mtime_ns is not None:
            current = snapshot.path.stat().st_mtime_ns
            if current != snapshot.mtime_ns:
                raise ApplyError(
                    "File was modified by another writer while the patch was applied",
                    path=display_path,
                    hint="Re-read the file and regenerate the patch",
                )
        atomic_write_bytes(snapshot.path, data, mode=snapshot.mode)
    except OSError as e:
        raise ApplyError(f"Failed to write file: {e}", path=display_path) from e


def create_text_file(path: Path, content: str, display_path: str, *, max_bytes: int) -> None:
    """Create ``path`` with ``content``; never overwrites an existing file."""

    data = content.encode("utf-8")
    if len(data) > max_bytes:
        raise ApplyError(f"Content exceeds maximum file size ({max_bytes} bytes)", path=display_path)

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        flags = os.O_WRONLY | os.O_CREAT | os.O_EXCL
        fd = os.open(path, flags, 0o644)
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
    except FileExistsError as e:
        raise ApplyError(
            "Cannot create file: already exists",
            path=display_path,
            hint="Another writer created the file after the patch was validated",
        ) from e
    except OSError as e:
        raise ApplyError(f"Failed to create file: {e}", path=display_path) from e


def delete_text_file(path: Path, display_path: str) -> None:
    try:
        path.unlink()
    except OSError as e:
        raise ApplyError(f"Failed to delete file: {e}", path=display_path) from e
