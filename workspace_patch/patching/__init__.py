"""Patch formats: unified diff parsing, hunk application and structured documents."""
from .hunks import HunkApplier, HunkApplyResult, HunkReport
from .structured import DocumentFormat, OpKind, StructuredOp, StructuredPatchEngine, parse_operations
from .unified_diff import DiffLine, FilePatch, Hunk, LineKind, parse_unified_diff

__all__ = [
    "DiffLine",
    "DocumentFormat",
    "FilePatch",
    "Hunk",
    "HunkApplier",
    "HunkApplyResult",
    "HunkReport",
    "LineKind",
    "OpKind",
    "StructuredOp",
    "StructuredPatchEngine",
    "parse_operations",
    "parse_unified_diff",
]
