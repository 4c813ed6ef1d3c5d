"""Audit trail for committed patches.

The orchestrator emits one :class:`AuditRecord` per file it creates,
modifies or deletes in commit mode. Where the records end up is decided by
the host through an :class:`AuditSink`.
"""
from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, Protocol

from .logging import get_logger

AUDIT_LOGGER_NAME = "workspace_patch.audit"


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class AuditRecord:
    """One committed mutation."""

    format: str
    file: str
    status: str
    lines_added: int = 0
    lines_removed: int = 0
    agent_id: Optional[str] = None
    request_id: Optional[str] = None
    operation_count: Optional[int] = None
    timestamp: str = field(default_factory=_utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {key: value for key, value in asdict(self).items() if value is not None}


class AuditSink(Protocol):
    """Receives audit records for committed patches."""

    def record(self, entry: AuditRecord) -> None:
        ...


class LoggingAuditSink:
    """Emit audit records through the structured logger."""

    def __init__(self, logger_name: str = AUDIT_LOGGER_NAME):
        self._logger = get_logger(logger_name)

    def record(self, entry: AuditRecord) -> None:
        self._logger.info("patch_committed", **entry.to_dict())


class JsonlAuditSink:
    """Append audit records as JSON lines to a file.

    Example:
        >>> sink = JsonlAuditSink(Path("~/.workspace-patch/audit.jsonl").expanduser())
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    def record(self, entry: AuditRecord) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        line = json.dumps(entry.to_dict(), separators=(",", ":"), ensure_ascii=True)
        with self.path.open("a", encoding="utf-8") as handle:
            handle.write(line + "\n")
