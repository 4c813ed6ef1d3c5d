"""structlog processors used by workspace_patch.

Processors receive the event dictionary of every log call and may add,
remove or rewrite fields before it is rendered.
"""
from typing import Any

from .context import get_context

MAX_VALUE_CHARS = 500


def inject_context(
    logger: Any,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Add values bound via ``bind_context`` without overriding explicit ones."""
    for key, value in get_context().items():
        event_dict.setdefault(key, value)
    return event_dict


def add_logger_name(
    logger: Any,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Add a ``logger`` field naming the module that produced the event."""
    record = event_dict.get("_record")
    if record is not None:
        event_dict["logger"] = record.name
    elif hasattr(logger, "name"):
        event_dict["logger"] = logger.name
    return event_dict


def truncate_long_values(max_chars: int = MAX_VALUE_CHARS) -> Any:
    """Create a processor that shortens oversized string fields.

    Patch bodies and document previews can be megabytes long; log lines keep
    only their head plus a note of how much was dropped.
    """

    def processor(
        logger: Any,
        method_name: str,
        event_dict: dict[str, Any],
    ) -> dict[str, Any]:
        for key, value in event_dict.items():
            if key == "event" or not isinstance(value, str):
                continue
            if len(value) > max_chars:
                dropped = len(value) - max_chars
                event_dict[key] = f"{value[:max_chars]}... [{dropped} more chars]"
        return event_dict

    return processor
