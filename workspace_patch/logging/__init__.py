"""Structured logging for workspace_patch.

Quick Start:
    >>> from workspace_patch.logging import configure_logging, LogConfig, LogLevel
    >>> configure_logging(LogConfig(level=LogLevel.DEBUG))

Per-request tracing:
    >>> from workspace_patch.logging import request_context
    >>> with request_context(request_id="req-123", agent_id="agent-7"):
    ...     ...  # every log line carries request_id and agent_id
"""
import structlog

from .config import (
    LogConfig,
    LogFormat,
    LogLevel,
    configure_logging,
    ensure_configured,
    is_configured,
)
from .context import bind_context, clear_context, get_context, request_context, unbind_context


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance.

    Logging is configured with defaults on first use if the host has not
    called :func:`configure_logging`.

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.info("patch_applied", file="src/app.py", lines_added=3)
    """
    ensure_configured()
    return structlog.get_logger(name)


__all__ = [
    # Configuration
    "LogConfig",
    "LogFormat",
    "LogLevel",
    "configure_logging",
    "is_configured",
    # Logger
    "get_logger",
    # Context management
    "bind_context",
    "unbind_context",
    "clear_context",
    "get_context",
    "request_context",
]
