"""Exceptions raised by the patch engine.

Every error carries the pipeline stage it belongs to so the orchestrator can
report *where* a request failed (parse, path-resolution, validation, apply)
without inspecting messages.
"""
from __future__ import annotations

from typing import Optional


class PatchEngineError(Exception):
    """Base exception for all patch engine errors."""

    stage: str = "apply"

    def __init__(self, message: str, *, path: Optional[str] = None, hint: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.path = path
        self.hint = hint

    def describe(self) -> str:
        """Return the user-facing message, prefixed by the failing stage."""
        text = f"{self.stage} failed: {self.message}"
        if self.path is not None and self.path not in self.message:
            text += f" ({self.path})"
        return text


class InputError(PatchEngineError):
    """Missing or malformed request fields or structured operations."""

    stage = "validation"


class ParseError(PatchEngineError):
    """Diff or document text could not be tokenized or decoded."""

    stage = "parse"


class AccessDenied(PatchEngineError):
    """A target path failed the workspace or allow-list check."""

    stage = "path-resolution"


class ApplyError(PatchEngineError):
    """Reading, patching or writing an already-validated path failed."""

    stage = "apply"
