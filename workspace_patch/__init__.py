"""
Workspace Patch Engine

Applies agent-produced edits to files inside a sandboxed workspace, either
as multi-file unified diffs or as add/remove/replace operations on JSON and
YAML documents. Every request is previewed unless it explicitly commits.

Main exports:
    - PatchOrchestrator: Validates, resolves, previews or commits a request
    - PatchEngineConfig: Workspace root, allow-list and limits
    - PathSandbox: Workspace confinement and allow-list checks
    - parse_request: Validates a raw request payload

Example:
    >>> from workspace_patch import PatchEngineConfig, PatchOrchestrator
    >>> config = PatchEngineConfig.from_files("/ws", agent_config="/ws/.agent/editor.yaml")
    >>> response = PatchOrchestrator(config).handle({"patch": diff_text, "commit": True})
    >>> response["output"]["summary"]["filesChanged"]
    ['src/app.py']
"""

from .audit import AuditRecord, AuditSink, JsonlAuditSink, LoggingAuditSink
from .config import PatchEngineConfig, load_allowlist
from .exceptions import AccessDenied, ApplyError, InputError, ParseError, PatchEngineError
from .orchestrator import (
    ApplyResult,
    ApplyStatus,
    DiffSummary,
    PatchOrchestrator,
    StructuredOutcome,
    UnifiedDiffOutcome,
)
from .sandbox import AllowlistEntry, PathDecision, PathSandbox, resolve_path
from .schema import StructuredPatchRequest, UnifiedDiffRequest, parse_request

__version__ = "0.1.0"

__all__ = [
    # Orchestration
    "PatchOrchestrator",
    "ApplyResult",
    "ApplyStatus",
    "DiffSummary",
    "UnifiedDiffOutcome",
    "StructuredOutcome",
    # Configuration
    "PatchEngineConfig",
    "load_allowlist",
    # Sandbox
    "AllowlistEntry",
    "PathDecision",
    "PathSandbox",
    "resolve_path",
    # Requests
    "UnifiedDiffRequest",
    "StructuredPatchRequest",
    "parse_request",
    # Audit
    "AuditRecord",
    "AuditSink",
    "JsonlAuditSink",
    "LoggingAuditSink",
    # Errors
    "PatchEngineError",
    "InputError",
    "ParseError",
    "AccessDenied",
    "ApplyError",
]
