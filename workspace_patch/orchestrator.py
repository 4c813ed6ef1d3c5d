"""Top-level entry point: validate, resolve, preview or commit, summarize.

Request lifecycle::

    RECEIVED -> PATHS_RESOLVED -> PREVIEW_COMPUTED | APPLIED -> RESPONDED

Every path a unified diff mentions is resolved before any file is touched; a
single denial aborts the request. Writes are not transactional across files:
if a later file fails in commit mode, earlier files stay written and the
error lists them.
"""
from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from .audit import AuditRecord, AuditSink, LoggingAuditSink
from .config import PatchEngineConfig
from .exceptions import AccessDenied, ApplyError, InputError, PatchEngineError
from .logging import get_logger, request_context
from .patching.hunks import HunkApplier, HunkReport
from .patching.structured import DocumentFormat, StructuredPatchEngine, parse_operations
from .patching.textio import (
    create_text_file,
    delete_text_file,
    read_text_file,
    write_text_file,
)
from .patching.unified_diff import FilePatch, parse_unified_diff
from .sandbox import PathSandbox
from .schema import StructuredPatchRequest, UnifiedDiffRequest, parse_request

logger = get_logger(__name__)

PatchRequest = Union[UnifiedDiffRequest, StructuredPatchRequest]


class RequestState(str, Enum):
    RECEIVED = "received"
    PATHS_RESOLVED = "paths_resolved"
    PREVIEW_COMPUTED = "preview_computed"
    APPLIED = "applied"
    RESPONDED = "responded"


_TRANSITIONS: Dict[RequestState, set[RequestState]] = {
    RequestState.RECEIVED: {RequestState.PATHS_RESOLVED, RequestState.RESPONDED},
    RequestState.PATHS_RESOLVED: {RequestState.PREVIEW_COMPUTED, RequestState.APPLIED, RequestState.RESPONDED},
    RequestState.PREVIEW_COMPUTED: {RequestState.RESPONDED},
    RequestState.APPLIED: {RequestState.RESPONDED},
    RequestState.RESPONDED: set(),
}


class ApplyStatus(str, Enum):
    CREATED = "created"
    MODIFIED = "modified"
    DELETED = "deleted"
    DRY_RUN = "dry-run"


@dataclass
class ApplyResult:
    """Per-file outcome of a unified diff."""

    file_path: str
    status: ApplyStatus
    lines_added: int = 0
    lines_removed: int = 0
    hunks: List[HunkReport] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "file": self.file_path,
            "status": self.status.value,
            "linesAdded": self.lines_added,
            "linesRemoved": self.lines_removed,
        }


@dataclass
class DiffSummary:
    files_changed: List[str] = field(default_factory=list)
    total_hunks: int = 0
    total_lines_added: int = 0
    total_lines_removed: int = 0

    def add(self, patch: FilePatch, result: ApplyResult) -> None:
        self.files_changed.append(patch.path)
        self.total_hunks += len(patch.hunks)
        self.total_lines_added += result.lines_added
        self.total_lines_removed += result.lines_removed

    def to_dict(self) -> dict[str, Any]:
        return {
            "filesChanged": list(self.files_changed),
            "totalHunks": self.total_hunks,
            "totalLinesAdded": self.total_lines_added,
            "totalLinesRemoved": self.total_lines_removed,
        }


@dataclass
class UnifiedDiffOutcome:
    applied: bool
    summary: DiffSummary
    files: List[ApplyResult]

    def to_dict(self) -> dict[str, Any]:
        return {
            "applied": self.applied,
            "summary": self.summary.to_dict(),
            "files": [result.to_dict() for result in self.files],
        }


@dataclass
class StructuredOutcome:
    applied: bool
    target_file: str
    operation_count: int
    preview: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "applied": self.applied,
            "targetFile": self.target_file,
            "operationCount": self.operation_count,
        }
        if self.preview is not None:
            data["preview"] = self.preview
        return data


Outcome = Union[UnifiedDiffOutcome, StructuredOutcome]


@dataclass
class _Run:
    """Lifecycle tracker for a single request."""

    request_format: str
    state: RequestState = RequestState.RECEIVED

    def advance(self, state: RequestState) -> None:
        if state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal request transition {self.state.value} -> {state.value}")
        logger.debug("request_state", previous=self.state.value, state=state.value, format=self.request_format)
        self.state = state


def _check_patch_text(text: str, max_bytes: int) -> None:
    if "\x00" in text:
        raise InputError(
            "Patch contains null bytes (binary content not allowed)",
            hint="Ensure patch contains only text content",
        )
    if len(text.encode("utf-8")) > max_bytes:
        raise InputError(f"Patch exceeds maximum size ({max_bytes} bytes)", hint="Split into smaller patches")


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


def success_response(
    outcome: Outcome,
    *,
    duration_ms: int,
    request_format: str,
    dry_run: bool,
) -> dict[str, Any]:
    return {
        "success": True,
        "output": outcome.to_dict(),
        "error": None,
        "metadata": {"durationMs": duration_ms, "format": request_format, "dryRun": dry_run},
    }


def error_response(
    error: PatchEngineError,
    *,
    duration_ms: int = 0,
    request_format: Optional[str] = None,
) -> dict[str, Any]:
    """Failure envelope; ``metadata.stage`` names the pipeline stage that failed."""

    metadata: dict[str, Any] = {"stage": error.stage, "durationMs": duration_ms}
    if request_format:
        metadata["format"] = request_format
    if error.path is not None:
        metadata["path"] = error.path
    if error.hint is not None:
        metadata["hint"] = error.hint
    return {"success": False, "output": None, "error": error.describe(), "metadata": metadata}


class PatchOrchestrator:
    """Apply patch requests inside one workspace.

    Example:
        >>> config = PatchEngineConfig(workspace_root=Path("/ws"))
        >>> orchestrator = PatchOrchestrator(config)
        >>> response = orchestrator.handle({"patch": diff_text, "commit": False})
        >>> response["output"]["summary"]["totalLinesAdded"]
        3
    """

    def __init__(
        self,
        config: PatchEngineConfig,
        *,
        audit: Optional[AuditSink] = None,
        agent_id: Optional[str] = None,
    ):
        self.config = config
        self.audit: AuditSink = audit if audit is not None else LoggingAuditSink()
        self.agent_id = agent_id
        self.sandbox: PathSandbox = config.sandbox()
        self.hunks = HunkApplier(lenient=config.lenient, verify_context=config.verify_context)
        self.structured = StructuredPatchEngine(lenient=config.lenient)
        self._request_id: Optional[str] = None

    # ------------------------------------------------------------------
    # Envelope boundary
    # ------------------------------------------------------------------
    def handle(self, params: Mapping[str, Any], *, request_id: Optional[str] = None) -> dict[str, Any]:
        """Run one request and build the response envelope; never raises PatchEngineError."""

        started = time.monotonic()
        self._request_id = request_id or uuid.uuid4().hex[:12]
        raw_format = params.get("format") if isinstance(params, Mapping) else None

        with request_context(request_id=self._request_id, agent_id=self.agent_id):
            try:
                request = parse_request(params)
                outcome = self.apply(request)
            except PatchEngineError as e:
                logger.warning("patch_failed", stage=e.stage, error=e.message, path=e.path)
                return error_response(e, duration_ms=_elapsed_ms(started), request_format=raw_format)

        return success_response(
            outcome,
            duration_ms=_elapsed_ms(started),
            request_format=request.format,
            dry_run=not request.commit,
        )

    def apply(self, request: PatchRequest) -> Outcome:
        """Dispatch a validated request by format; raises PatchEngineError."""

        run = _Run(request.format)
        with request_context(format=request.format):
            try:
                if isinstance(request, StructuredPatchRequest):
                    return self._apply_structured(request, run)
                return self._apply_unified_diff(request, run)
            finally:
                run.advance(RequestState.RESPONDED)

    # ------------------------------------------------------------------
    # Unified diff
    # ------------------------------------------------------------------
    def _resolve(self, requested: str) -> Path:
        decision = self.sandbox.resolve(requested)
        if not decision.allowed:
            raise AccessDenied(decision.reason or "Access denied", path=requested)
        return decision.path

    def _apply_unified_diff(self, request: UnifiedDiffRequest, run: _Run) -> UnifiedDiffOutcome:
        _check_patch_text(request.patch, self.config.max_patch_bytes)
        patches = parse_unified_diff(request.patch)

        targets: List[Path] = []
        for patch in patches:
            for referenced in dict.fromkeys(p for p in (patch.source_path, patch.target_path) if p):
                resolved = self._resolve(referenced)
                if referenced == patch.path:
                    targets.append(resolved)
        run.advance(RequestState.PATHS_RESOLVED)

        summary = DiffSummary()
        results: List[ApplyResult] = []

        if not request.commit:
            for patch in patches:
                result = ApplyResult(
                    file_path=patch.path,
                    status=ApplyStatus.DRY_RUN,
                    lines_added=patch.lines_added,
                    lines_removed=patch.lines_removed,
                )
                summary.add(patch, result)
                results.append(result)
            run.advance(RequestState.PREVIEW_COMPUTED)
            logger.info("diff_previewed", files=len(patches), lines_added=summary.total_lines_added)
            return UnifiedDiffOutcome(applied=False, summary=summary, files=results)

        for patch, target in zip(patches, targets):
            try:
                result = self._commit_file_patch(patch, target)
            except ApplyError as e:
                if results:
                    written = ", ".join(r.file_path for r in results)
                    e.hint = f"{e.hint + ' ' if e.hint else ''}Already written: {written}"
                raise
            summary.add(patch, result)
            results.append(result)
            self._audit("unified-diff", result)
        run.advance(RequestState.APPLIED)

        return UnifiedDiffOutcome(applied=True, summary=summary, files=results)

    def _commit_file_patch(self, patch: FilePatch, target: Path) -> ApplyResult:
        display = patch.path
        max_bytes = self.config.max_file_bytes

        if not target.exists():
            if patch.is_deletion:
                raise ApplyError("Cannot delete file: does not exist", path=display)
            if self.config.verify_context and patch.lines_removed:
                raise ApplyError(
                    f"File does not exist but the diff removes {patch.lines_removed} line(s) from it",
                    path=display,
                    hint="Use '--- /dev/null' with only '+' lines to create a file",
                )
            created = self.hunks.synthesize(patch)
            create_text_file(target, created.content, display, max_bytes=max_bytes)
            logger.info("file_created", file=display, lines_added=created.lines_added)
            return ApplyResult(
                display,
                ApplyStatus.CREATED,
                lines_added=created.lines_added,
                lines_removed=created.lines_removed,
            )

        snapshot = read_text_file(target, display, max_bytes=max_bytes)
        applied = self.hunks.apply(snapshot.content, patch)

        if patch.is_deletion:
            if self.config.verify_context and applied.content.strip():
                raise ApplyError(
                    "Cannot delete file: the diff does not remove all of its content",
                    path=display,
                )
            delete_text_file(target, display)
            status = ApplyStatus.DELETED
        else:
            write_text_file(
                snapshot,
                applied.content,
                display,
                max_bytes=max_bytes,
                detect_concurrent_writes=self.config.detect_concurrent_writes,
            )
            status = ApplyStatus.MODIFIED

        logger.info(
            "file_patched",
            file=display,
            status=status.value,
            lines_added=applied.lines_added,
            lines_removed=applied.lines_removed,
        )
        return ApplyResult(
            display,
            status,
            lines_added=applied.lines_added,
            lines_removed=applied.lines_removed,
            hunks=applied.hunks,
        )

    # ------------------------------------------------------------------
    # Structured patch
    # ------------------------------------------------------------------
    def _apply_structured(self, request: StructuredPatchRequest, run: _Run) -> StructuredOutcome:
        target_file = request.target_file
        target = self._resolve(target_file)
        run.advance(RequestState.PATHS_RESOLVED)

        if isinstance(request.patch, str):
            _check_patch_text(request.patch, self.config.max_patch_bytes)
        operations = parse_operations(request.patch)

        if not target.exists():
            raise ApplyError(f"Target file not found: {target_file}", path=target_file)

        snapshot = read_text_file(target, target_file, max_bytes=self.config.max_file_bytes)
        fmt = DocumentFormat.for_path(target_file)
        new_content = self.structured.apply(snapshot.content, operations, fmt)

        if not request.commit:
            run.advance(RequestState.PREVIEW_COMPUTED)
            return StructuredOutcome(
                applied=False,
                target_file=target_file,
                operation_count=len(operations),
                preview=new_content[: self.config.preview_chars],
            )

        write_text_file(
            snapshot,
            new_content,
            target_file,
            max_bytes=self.config.max_file_bytes,
            detect_concurrent_writes=self.config.detect_concurrent_writes,
        )
        run.advance(RequestState.APPLIED)
        logger.info("structured_patch_applied", file=target_file, operations=len(operations))
        self._audit(
            "structured",
            ApplyResult(target_file, ApplyStatus.MODIFIED),
            operation_count=len(operations),
        )
        return StructuredOutcome(applied=True, target_file=target_file, operation_count=len(operations))

    # ------------------------------------------------------------------
    def _audit(self, fmt: str, result: ApplyResult, *, operation_count: Optional[int] = None) -> None:
        entry = AuditRecord(
            format=fmt,
            file=result.file_path,
            status=result.status.value,
            lines_added=result.lines_added,
            lines_removed=result.lines_removed,
            agent_id=self.agent_id,
            request_id=self._request_id,
            operation_count=operation_count,
        )
        try:
            self.audit.record(entry)
        except OSError as e:
            logger.error("audit_record_failed", file=result.file_path, error=str(e))
