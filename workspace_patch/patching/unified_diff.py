"""Unified diff tokenizer.

Turns a (possibly multi-file) unified diff into an ordered list of
:class:`FilePatch` objects, each holding its :class:`Hunk` objects in header
order.

- File headers: ``--- <old>`` followed by ``+++ <new>``. ``a/`` and ``b/``
  prefixes and tab-separated timestamps are dropped; ``/dev/null`` means the
  file does not exist on that side.
- Hunk headers: ``@@ -<oldStart>[,<oldCount>] +<newStart>[,<newCount>] @@``.
  Omitted counts default to 1.
- Body lines start with ``+``, ``-`` or a single space. A blank raw line is an
  empty context line while the hunk still expects lines. Any other line ends
  the hunk (git extended headers such as ``diff --git`` or ``index`` are
  skipped this way).
- Inside an open hunk, a ``---``/``+++`` pair followed by ``@@`` starts the
  next file even when the hunk body is shorter than its header declared.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from ..exceptions import ParseError

DEV_NULL = "/dev/null"

RE_HUNK_HEADER = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@")
RE_PATH_PREFIX = re.compile(r"^[ab]/")


class LineKind(str, Enum):
    CONTEXT = " "
    ADDITION = "+"
    DELETION = "-"


@dataclass(frozen=True)
class DiffLine:
    """One body line of a hunk, without its prefix character."""

    kind: LineKind
    text: str

    @classmethod
    def from_raw(cls, raw: str) -> "DiffLine":
        if raw == "":
            return cls(LineKind.CONTEXT, "")
        return cls(LineKind(raw[0]), raw[1:])


@dataclass
class Hunk:
    """A contiguous region of change anchored at 1-based line numbers."""

    old_start: int
    old_count: int = 1
    new_start: int = 1
    new_count: int = 1
    lines: List[DiffLine] = field(default_factory=list)

    @property
    def additions(self) -> List[str]:
        return [line.text for line in self.lines if line.kind is LineKind.ADDITION]

    @property
    def deletions(self) -> List[str]:
        return [line.text for line in self.lines if line.kind is LineKind.DELETION]

    @property
    def lines_added(self) -> int:
        return len(self.additions)

    @property
    def lines_removed(self) -> int:
        return len(self.deletions)

    def is_complete(self) -> bool:
        """True once the body covers the counts declared in the header."""
        old_seen = sum(1 for line in self.lines if line.kind is not LineKind.ADDITION)
        new_seen = sum(1 for line in self.lines if line.kind is not LineKind.DELETION)
        return old_seen >= self.old_count and new_seen >= self.new_count


@dataclass
class FilePatch:
    """All changes to one file within a diff."""

    source_path: Optional[str]
    target_path: Optional[str]
    hunks: List[Hunk] = field(default_factory=list)

    @property
    def path(self) -> str:
        """The effective target: the new path when present, else the old one."""
        return self.target_path or self.source_path or ""

    @property
    def is_creation(self) -> bool:
        return self.source_path is None

    @property
    def is_deletion(self) -> bool:
        return self.target_path is None

    @property
    def lines_added(self) -> int:
        return sum(h.lines_added for h in self.hunks)

    @property
    def lines_removed(self) -> int:
        return sum(h.lines_removed for h in self.hunks)


def _header_path(raw: str) -> Optional[str]:
    """Extract the path from the remainder of a ``---``/``+++`` line."""

    value = raw.split("\t", 1)[0].strip()
    if not value or value == DEV_NULL:
        return None
    return RE_PATH_PREFIX.sub("", value, count=1)


def _is_body_line(line: str) -> bool:
    return line == "" or line[0] in "+- "


def _is_file_header(lines: List[str], index: int, hunk: Optional[Hunk]) -> bool:
    """True when ``lines[index]`` opens a ``---``/``+++`` file header pair.

    Inside an open hunk the pair could also be a deleted ``-- ...`` line and
    an added ``++ ...`` line. It is read as a header when the hunk's counts
    are satisfied or when an ``@@`` line follows the ``+++`` line, even if the
    hunk header declared more lines than its body holds.
    """
    if not lines[index].startswith("--- "):
        return False
    if index + 1 >= len(lines) or not lines[index + 1].startswith("+++ "):
        return False
    if hunk is None or hunk.is_complete():
        return True
    return index + 2 < len(lines) and lines[index + 2].startswith("@@")


def parse_unified_diff(diff_text: str) -> List[FilePatch]:
    """Parse ``diff_text`` into file patches.

    Raises:
        ParseError: when no file patch is found or a hunk header is malformed.
    """

    text = diff_text.replace("\r\n", "\n")
    if text.endswith("\n"):
        text = text[:-1]
    lines = text.split("\n")

    patches: List[FilePatch] = []
    current: Optional[FilePatch] = None
    pending_source: Optional[str] = None
    seen_old_header = False
    hunk: Optional[Hunk] = None

    for index, line in enumerate(lines):
        if _is_file_header(lines, index, hunk):
            pending_source = _header_path(line[4:])
            seen_old_header = True
            current = None
            hunk = None
            continue

        if line.startswith("+++ ") and seen_old_header and hunk is None:
            target = _header_path(line[4:])
            if pending_source is None and target is None:
                raise ParseError(f"File header on line {index + 1} names no path")
            current = FilePatch(source_path=pending_source, target_path=target)
            patches.append(current)
            pending_source = None
            seen_old_header = False
            hunk = None
            continue

        if line.startswith("@@") and current is not None:
            match = RE_HUNK_HEADER.match(line)
            if not match:
                raise ParseError(
                    f"Malformed hunk header on line {index + 1}: {line[:80]!r}",
                    path=current.path,
                    hint="Expected '@@ -<start>[,<count>] +<start>[,<count>] @@'",
                )
            old_count, new_count = match.group(2), match.group(4)
            hunk = Hunk(
                old_start=int(match.group(1)),
                old_count=int(old_count) if old_count is not None else 1,
                new_start=int(match.group(3)),
                new_count=int(new_count) if new_count is not None else 1,
            )
            current.hunks.append(hunk)
            continue

        if hunk is None:
            continue

        if line.startswith("\\"):
            # "\ No newline at end of file"
            continue
        if line == "" and hunk.is_complete():
            continue
        if _is_body_line(line):
            hunk.lines.append(DiffLine.from_raw(line))
        else:
            hunk = None

    if not patches:
        raise ParseError("No patches found in the provided diff", hint="Expected '--- <old>' / '+++ <new>' file headers")
    return patches
