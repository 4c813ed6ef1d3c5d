"""Apply the hunks of one :class:`FilePatch` to a file's content.

Hunks are applied strictly in header order against the partially patched
line array. A running ``offset`` (insertions minus removals of the hunks
already applied) shifts each hunk's ``oldStart`` into the current array.

Inside a hunk the cursor starts at ``oldStart - 1 + offset``; context lines
advance it, deletions remove the line under it and additions are inserted at
it. With ``verify_context`` the context and deleted lines must match the
current content.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List

from ..exceptions import ApplyError
from ..logging import get_logger
from .textio import split_lines
from .unified_diff import FilePatch, Hunk, LineKind

logger = get_logger(__name__)


@dataclass
class HunkReport:
    """Where a hunk landed in the line array it was applied to."""

    index: int
    start: int
    lines_added: int
    lines_removed: int


@dataclass
class HunkApplyResult:
    content: str
    lines_added: int = 0
    lines_removed: int = 0
    hunks: List[HunkReport] = field(default_factory=list)


def _mismatch(path: str, hunk_idx: int, position: int, expected: str, actual: str) -> ApplyError:
    return ApplyError(
        f"Hunk {hunk_idx + 1} does not match line {position + 1}",
        path=path,
        hint=f"Expected: {expected[:200]!r}\nFound:    {actual[:200]!r}\nRe-read the file to get current content.",
    )


class HunkApplier:
    """Apply unified diff hunks with offset tracking.

    Args:
        lenient: Clamp out-of-range positions instead of failing.
        verify_context: Check context and deleted lines against the file.
    """

    def __init__(self, *, lenient: bool = False, verify_context: bool = True):
        self.lenient = lenient
        self.verify_context = verify_context

    def synthesize(self, patch: FilePatch) -> HunkApplyResult:
        """Build the content of a file that does not exist yet.

        Every addition line across all hunks is concatenated; positions and
        context are ignored. Deletion lines have nothing to remove but are
        still counted so the totals match a preview of the same diff.
        """
        additions = [text for hunk in patch.hunks for text in hunk.additions]
        return HunkApplyResult(
            content="\n".join(additions),
            lines_added=len(additions),
            lines_removed=patch.lines_removed,
        )

    def apply(self, original: str, patch: FilePatch) -> HunkApplyResult:
        """Apply ``patch`` to ``original`` and return the new content."""

        lines, line_ending = split_lines(original)
        result = HunkApplyResult(content=original)
        offset = 0

        for hunk_idx, hunk in enumerate(patch.hunks):
            start = self._start_index(hunk, offset, len(lines), patch.path, hunk_idx)
            lines, added, removed = self._apply_hunk(lines, hunk, start, patch.path, hunk_idx)

            logger.debug(
                "hunk_applied",
                file=patch.path,
                hunk=hunk_idx + 1,
                old_start=hunk.old_start,
                start=start,
                offset=offset,
            )
            result.hunks.append(HunkReport(index=hunk_idx, start=start, lines_added=added, lines_removed=removed))
            result.lines_added += added
            result.lines_removed += removed
            offset += added - removed

        result.content = line_ending.join(lines)
        return result

    def _start_index(self, hunk: Hunk, offset: int, length: int, path: str, hunk_idx: int) -> int:
        start = max(hunk.old_start - 1, 0) + offset
        if 0 <= start <= length:
            return start
        if self.lenient:
            return min(max(start, 0), length)
        raise ApplyError(
            f"Hunk {hunk_idx + 1} starts at line {start + 1}, outside the file ({length} lines)",
            path=path,
            hint="Line numbers in the hunk header do not match the current file",
        )

    def _apply_hunk(
        self,
        lines: List[str],
        hunk: Hunk,
        start: int,
        path: str,
        hunk_idx: int,
    ) -> tuple[List[str], int, int]:
        if not self.verify_context:
            # Positional splice: context lines are only counted, never compared.
            return self._splice(lines, hunk, start, path, hunk_idx)

        head = lines[:start]
        tail = lines[start:]
        out: List[str] = []
        cursor = 0
        added = removed = 0

        for line in hunk.lines:
            if line.kind is LineKind.ADDITION:
                out.append(line.text)
                added += 1
                continue

            if cursor >= len(tail):
                if self.lenient:
                    if line.kind is LineKind.DELETION:
                        removed += 1
                    continue
                raise ApplyError(
                    f"Hunk {hunk_idx + 1} runs past the end of the file",
                    path=path,
                    hint="The file is shorter than the hunk expects",
                )

            actual = tail[cursor]
            if actual != line.text:
                raise _mismatch(path, hunk_idx, start + cursor, line.text, actual)

            if line.kind is LineKind.CONTEXT:
                out.append(actual)
            else:
                removed += 1
            cursor += 1

        return head + out + tail[cursor:], added, removed

    def _splice(
        self,
        lines: List[str],
        hunk: Hunk,
        start: int,
        path: str,
        hunk_idx: int,
    ) -> tuple[List[str], int, int]:
        result = list(lines)
        cursor = start
        added = removed = 0

        for line in hunk.lines:
            if line.kind is LineKind.ADDITION:
                result.insert(cursor, line.text)
                cursor += 1
                added += 1
            elif cursor < len(result):
                if line.kind is LineKind.DELETION:
                    del result[cursor]
                    removed += 1
                else:
                    cursor += 1
            elif self.lenient:
                if line.kind is LineKind.DELETION:
                    removed += 1
            else:
                raise ApplyError(
                    f"Hunk {hunk_idx + 1} runs past the end of the file",
                    path=path,
                    hint="The file is shorter than the hunk expects",
                )

        return result, added, removed
