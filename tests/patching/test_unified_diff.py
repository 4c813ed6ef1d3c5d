"""Tests for the unified diff tokenizer.

Tests cover:
- File headers, prefixes, timestamps and /dev/null
- Hunk headers with and without counts
- Body line collection and hunk termination
- Error handling for empty and malformed diffs
"""
import pytest

from workspace_patch.exceptions import ParseError
from workspace_patch.patching.unified_diff import (
    DiffLine,
    LineKind,
    parse_unified_diff,
)


SINGLE_FILE_DIFF = """\
--- a/src/app.py
+++ b/src/app.py
@@ -1,3 +1,3 @@
 import os
-print("old")
+print("new")
 exit()
"""

MULTI_FILE_DIFF = """\
diff --git a/one.txt b/one.txt
index 3b18e51..a9c8d4f 100644
--- a/one.txt
+++ b/one.txt
@@ -1 +1 @@
-alpha
+ALPHA
diff --git a/two.txt b/two.txt
--- a/two.txt
+++ b/two.txt
@@ -2,2 +2,3 @@
 beta
+gamma
 delta
"""


# ---------------------------------------------------------------------------
# File headers
# ---------------------------------------------------------------------------
class TestFileHeaders:
    def test_prefixes_are_stripped(self) -> None:
        patches = parse_unified_diff(SINGLE_FILE_DIFF)
        assert len(patches) == 1
        assert patches[0].source_path == "src/app.py"
        assert patches[0].target_path == "src/app.py"
        assert patches[0].path == "src/app.py"

    def test_multi_file_diff_keeps_order(self) -> None:
        patches = parse_unified_diff(MULTI_FILE_DIFF)
        assert [p.path for p in patches] == ["one.txt", "two.txt"]
        assert patches[1].lines_added == 1
        assert patches[1].lines_removed == 0

    def test_timestamps_are_dropped(self) -> None:
        diff = (
            "--- notes.txt\t2024-01-01 10:00:00.000000000 +0000\n"
            "+++ notes.txt\t2024-01-02 10:00:00.000000000 +0000\n"
            "@@ -1 +1 @@\n"
            "-a\n"
            "+b\n"
        )
        patch = parse_unified_diff(diff)[0]
        assert patch.source_path == "notes.txt"
        assert patch.target_path == "notes.txt"

    def test_dev_null_source_is_creation(self) -> None:
        diff = "--- /dev/null\n+++ b/new.txt\n@@ -0,0 +1,2 @@\n+a\n+b\n"
        patch = parse_unified_diff(diff)[0]
        assert patch.source_path is None
        assert patch.is_creation
        assert patch.path == "new.txt"
        assert patch.hunks[0].additions == ["a", "b"]

    def test_dev_null_target_is_deletion(self) -> None:
        diff = "--- a/old.txt\n+++ /dev/null\n@@ -1,2 +0,0 @@\n-a\n-b\n"
        patch = parse_unified_diff(diff)[0]
        assert patch.is_deletion
        assert patch.path == "old.txt"
        assert patch.lines_removed == 2

    def test_header_pair_without_hunks_is_valid(self) -> None:
        patches = parse_unified_diff("--- a/x.txt\n+++ b/x.txt\n")
        assert len(patches) == 1
        assert patches[0].hunks == []

    def test_both_sides_dev_null_rejected(self) -> None:
        with pytest.raises(ParseError):
            parse_unified_diff("--- /dev/null\n+++ /dev/null\n")


# ---------------------------------------------------------------------------
# Hunk headers
# ---------------------------------------------------------------------------
class TestHunkHeaders:
    def test_counts_parsed(self) -> None:
        hunk = parse_unified_diff(SINGLE_FILE_DIFF)[0].hunks[0]
        assert (hunk.old_start, hunk.old_count, hunk.new_start, hunk.new_count) == (1, 3, 1, 3)

    def test_omitted_counts_default_to_one(self) -> None:
        diff = "--- a/f\n+++ b/f\n@@ -5 +5 @@\n-x\n+y\n"
        hunk = parse_unified_diff(diff)[0].hunks[0]
        assert hunk.old_start == 5
        assert hunk.old_count == 1
        assert hunk.new_count == 1

    def test_section_heading_after_header_ignored(self) -> None:
        diff = "--- a/f.py\n+++ b/f.py\n@@ -3,1 +3,1 @@ def main():\n-a\n+b\n"
        hunk = parse_unified_diff(diff)[0].hunks[0]
        assert hunk.old_start == 3
        assert hunk.additions == ["b"]

    def test_malformed_header_raises(self) -> None:
        diff = "--- a/f\n+++ b/f\n@@ -x,1 +1 @@\n-a\n"
        with pytest.raises(ParseError) as exc_info:
            parse_unified_diff(diff)
        assert "Malformed hunk header" in exc_info.value.message
        assert exc_info.value.path == "f"

    def test_multiple_hunks_in_order(self) -> None:
        diff = (
            "--- a/f\n+++ b/f\n"
            "@@ -1,1 +1,1 @@\n-a\n+A\n"
            "@@ -10,1 +10,1 @@\n-j\n+J\n"
        )
        hunks = parse_unified_diff(diff)[0].hunks
        assert [h.old_start for h in hunks] == [1, 10]


# ---------------------------------------------------------------------------
# Body lines
# ---------------------------------------------------------------------------
class TestBodyLines:
    def test_line_kinds(self) -> None:
        hunk = parse_unified_diff(SINGLE_FILE_DIFF)[0].hunks[0]
        assert hunk.lines == [
            DiffLine(LineKind.CONTEXT, "import os"),
            DiffLine(LineKind.DELETION, 'print("old")'),
            DiffLine(LineKind.ADDITION, 'print("new")'),
            DiffLine(LineKind.CONTEXT, "exit()"),
        ]

    def test_blank_line_inside_hunk_is_empty_context(self) -> None:
        diff = "--- a/f\n+++ b/f\n@@ -1,3 +1,3 @@\n a\n\n-c\n+C\n"
        hunk = parse_unified_diff(diff)[0].hunks[0]
        assert hunk.lines[1] == DiffLine(LineKind.CONTEXT, "")
        assert hunk.deletions == ["c"]

    def test_trailing_blank_lines_not_collected(self) -> None:
        diff = "--- a/f\n+++ b/f\n@@ -1 +1 @@\n-a\n+b\n\n\n"
        hunk = parse_unified_diff(diff)[0].hunks[0]
        assert len(hunk.lines) == 2

    def test_no_newline_marker_skipped(self) -> None:
        diff = "--- a/f\n+++ b/f\n@@ -1 +1 @@\n-a\n\\ No newline at end of file\n+b\n\\ No newline at end of file\n"
        hunk = parse_unified_diff(diff)[0].hunks[0]
        assert hunk.deletions == ["a"]
        assert hunk.additions == ["b"]

    def test_deleted_line_that_looks_like_header(self) -> None:
        # Removing "-- x" and adding "++ y" inside an open hunk.
        diff = "--- a/f\n+++ b/f\n@@ -1,2 +1,2 @@\n keep\n--- x\n+++ y\n"
        patches = parse_unified_diff(diff)
        assert len(patches) == 1
        hunk = patches[0].hunks[0]
        assert hunk.deletions == ["-- x"]
        assert hunk.additions == ["++ y"]

    def test_overstated_counts_do_not_swallow_next_file(self) -> None:
        diff = (
            "--- a/one.txt\n+++ b/one.txt\n@@ -1,3 +1,3 @@\n-x\n+y\n"
            "--- a/two.txt\n+++ b/two.txt\n@@ -1 +1 @@\n-p\n+q\n"
        )
        patches = parse_unified_diff(diff)

        assert [p.path for p in patches] == ["one.txt", "two.txt"]
        assert len(patches[0].hunks) == 1
        assert patches[0].hunks[0].deletions == ["x"]
        assert patches[0].hunks[0].additions == ["y"]
        assert patches[1].hunks[0].deletions == ["p"]
        assert patches[1].hunks[0].additions == ["q"]

    def test_other_line_ends_hunk(self) -> None:
        diff = "--- a/f\n+++ b/f\n@@ -1 +1 @@\n-a\n+b\nsome trailer\n+not part of hunk\n"
        hunk = parse_unified_diff(diff)[0].hunks[0]
        assert hunk.additions == ["b"]

    def test_crlf_diff_text(self) -> None:
        diff = "--- a/f\r\n+++ b/f\r\n@@ -1 +1 @@\r\n-a\r\n+b\r\n"
        hunk = parse_unified_diff(diff)[0].hunks[0]
        assert hunk.deletions == ["a"]
        assert hunk.additions == ["b"]


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------
class TestParseErrors:
    def test_empty_diff(self) -> None:
        with pytest.raises(ParseError) as exc_info:
            parse_unified_diff("")
        assert "No patches found" in exc_info.value.message

    def test_hunk_without_file_header(self) -> None:
        with pytest.raises(ParseError):
            parse_unified_diff("@@ -1 +1 @@\n-a\n+b\n")

    def test_stage_is_parse(self) -> None:
        with pytest.raises(ParseError) as exc_info:
            parse_unified_diff("just some text")
        assert exc_info.value.describe().startswith("parse failed:")
