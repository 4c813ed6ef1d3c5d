"""Request-scoped logging context.

Each patch request binds its identifiers (request id, agent id, format) once;
every log line emitted while the request is processed carries them.
"""
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Iterator

_log_context: ContextVar[dict[str, Any]] = ContextVar("workspace_patch_log_context", default={})


def bind_context(**kwargs: Any) -> None:
    """Bind key-value pairs to the current logging context.

    Example:
        >>> bind_context(request_id="req-123", agent_id="agent-7")
    """
    current = _log_context.get().copy()
    current.update(kwargs)
    _log_context.set(current)


def unbind_context(*keys: str) -> None:
    """Remove specific keys from the current logging context."""
    current = _log_context.get().copy()
    for key in keys:
        current.pop(key, None)
    _log_context.set(current)


def clear_context() -> None:
    """Clear all bound context values."""
    _log_context.set({})


def get_context() -> dict[str, Any]:
    """Return a copy of the current logging context."""
    return _log_context.get().copy()


@contextmanager
def request_context(**kwargs: Any) -> Iterator[None]:
    """Bind ``kwargs`` for the duration of a ``with`` block.

    The previous context is restored on exit, even when the block raises.

    Example:
        >>> with request_context(request_id="req-1"):
        ...     orchestrator.apply(request)
    """
    token = _log_context.set({**_log_context.get(), **kwargs})
    try:
        yield
    finally:
        _log_context.reset(token)
