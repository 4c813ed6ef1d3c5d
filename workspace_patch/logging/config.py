"""Logging configuration for workspace_patch.

Logs are written to stderr: stdout carries the response envelope when the
engine runs as a subprocess.
"""
import logging
import logging.handlers
import os
import sys
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Mapping, Optional

import structlog

from .processors import add_logger_name, inject_context, truncate_long_values


class LogLevel(str, Enum):
    """Log level enumeration."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"

    def to_int(self) -> int:
        """Convert to logging module integer level."""
        return getattr(logging, self.value)


class LogFormat(str, Enum):
    """Output format for logs."""
    PLAIN = "plain"  # Human-readable for development
    JSON = "json"    # Structured for log shippers


@dataclass
class LogConfig:
    """Configuration for the logging framework.

    Attributes:
        level: Default log level for all loggers.
        format: Output format (PLAIN for console, JSON for machines).
        log_file: Optional path to additionally write logs to.
        max_bytes: Maximum size of log file before rotation (default 10MB).
        backup_count: Number of rotated files to keep (default 5).
        max_value_chars: String fields longer than this are truncated.
        module_levels: Per-module log level overrides.
        filters: Functions applied to each event; returning None drops it.
    """
    level: LogLevel = LogLevel.WARNING
    format: LogFormat = LogFormat.PLAIN
    log_file: Optional[Path] = None
    max_bytes: int = 10 * 1024 * 1024
    backup_count: int = 5
    max_value_chars: int = 500
    module_levels: dict[str, LogLevel] = field(default_factory=dict)
    filters: list[Callable[[dict], Optional[dict]]] = field(default_factory=list)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "LogConfig":
        """Build a config from ``WORKSPACE_PATCH_LOG_*`` environment variables.

        Unknown level or format values fall back to the defaults.
        """
        env = os.environ if environ is None else environ
        config = cls()

        level = env.get("WORKSPACE_PATCH_LOG_LEVEL", "").strip().upper()
        if level in LogLevel.__members__:
            config.level = LogLevel(level)

        fmt = env.get("WORKSPACE_PATCH_LOG_FORMAT", "").strip().lower()
        if fmt in {member.value for member in LogFormat}:
            config.format = LogFormat(fmt)

        log_file = env.get("WORKSPACE_PATCH_LOG_FILE", "").strip()
        if log_file:
            config.log_file = Path(log_file).expanduser()

        return config


_configured: bool = False


def _get_processors(config: LogConfig) -> list:
    """Build the processor chain based on config."""
    processors: list = [
        structlog.contextvars.merge_contextvars,
        inject_context,
        add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        truncate_long_values(config.max_value_chars),
    ]

    for filter_func in config.filters:
        def make_filter(f: Callable):
            def processor(logger, method_name, event_dict):
                result = f(event_dict)
                if result is None:
                    raise structlog.DropEvent
                return result
            return processor
        processors.append(make_filter(filter_func))

    return processors


def _get_renderer(config: LogConfig):
    """Get the appropriate renderer based on format."""
    if config.format == LogFormat.JSON:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(
        colors=sys.stderr.isatty(),
        exception_formatter=structlog.dev.plain_traceback,
    )


def _setup_stdlib_logging(config: LogConfig) -> None:
    """Route stdlib logging to stderr and the optional rotating file."""
    root_logger = logging.getLogger()
    root_logger.setLevel(config.level.to_int())

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(config.level.to_int())
    root_logger.addHandler(console_handler)

    if config.log_file:
        config.log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            config.log_file,
            maxBytes=config.max_bytes,
            backupCount=config.backup_count,
        )
        file_handler.setLevel(config.level.to_int())
        root_logger.addHandler(file_handler)

    for module_name, level in config.module_levels.items():
        logging.getLogger(module_name).setLevel(level.to_int())


def configure_logging(config: Optional[LogConfig] = None) -> None:
    """Configure structlog with a stdlib logging bridge.

    Example:
        >>> from workspace_patch.logging import configure_logging, LogConfig, LogLevel
        >>> configure_logging(LogConfig(level=LogLevel.DEBUG, format=LogFormat.JSON))
    """
    global _configured

    if config is None:
        config = LogConfig()

    _setup_stdlib_logging(config)
    processors = _get_processors(config)

    structlog.configure(
        processors=processors + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            _get_renderer(config),
        ],
    )

    for handler in logging.getLogger().handlers:
        handler.setFormatter(formatter)

    _configured = True


def is_configured() -> bool:
    """Check if logging has been configured."""
    return _configured


def ensure_configured() -> None:
    """Configure logging with defaults if nothing configured it yet."""
    if not _configured:
        configure_logging()
