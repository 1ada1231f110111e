"""Structured logging for Relay.

Thin wrapper over structlog. Every component gets a ``RelayLogger``
bound to its component name; events are snake_case with a dotted
component prefix (``dispatcher.launch_failed``) and extra fields are
passed as keyword arguments.

Example usage:
    from relay.core.logging import configure_logging, get_logger

    configure_logging(level="DEBUG", format="console")
    logger = get_logger("dispatcher")
    logger.info("dispatcher.job_launched", job_id="bc_123", category="feature")

    task_logger = logger.bind(loop="feature-cycle")
    task_logger.debug("loop.tick")
"""

from __future__ import annotations

import logging
import sys
from datetime import UTC, datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Literal

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

# Keys whose values must never reach a log sink (the backend credential
# travels in an Authorization header).
SENSITIVE_PATTERNS = frozenset({
    "api_key",
    "apikey",
    "token",
    "secret",
    "password",
    "credential",
    "authorization",
})


def _sanitize_value(key: str, value: Any) -> Any:
    """Return ``"[REDACTED]"`` for sensitive keys, otherwise the value."""
    key_lower = key.lower()
    for pattern in SENSITIVE_PATTERNS:
        if pattern in key_lower:
            return "[REDACTED]"
    return value


def _sanitize_event_dict(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Structlog processor that redacts sensitive fields, one level deep."""
    sanitized: EventDict = {}
    for key, value in event_dict.items():
        if isinstance(value, dict):
            sanitized[key] = {k: _sanitize_value(k, v) for k, v in value.items()}
        else:
            sanitized[key] = _sanitize_value(key, value)
    return sanitized


def _add_timestamp(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Structlog processor that adds an ISO8601 UTC timestamp."""
    event_dict["timestamp"] = datetime.now(UTC).isoformat()
    return event_dict


class RelayLogger:
    """Component-bound logger around structlog.

    The underlying structlog logger is fetched on every call so loggers
    created at import time still honour a later ``configure_logging()``.
    """

    def __init__(self, component: str, **initial_context: Any) -> None:
        self._component = component
        self._context: dict[str, Any] = {"component": component, **initial_context}

    def _get_logger(self) -> structlog.stdlib.BoundLogger:
        logger: structlog.stdlib.BoundLogger = structlog.get_logger().bind(**self._context)
        return logger

    def bind(self, **context: Any) -> RelayLogger:
        """Return a new logger with additional bound context."""
        return RelayLogger(self._component, **{
            k: v for k, v in {**self._context, **context}.items() if k != "component"
        })

    @property
    def context(self) -> dict[str, Any]:
        """Bound context, including the component name."""
        return dict(self._context)

    def debug(self, event: str, **kw: Any) -> None:
        self._get_logger().debug(event, **kw)

    def info(self, event: str, **kw: Any) -> None:
        self._get_logger().info(event, **kw)

    def warning(self, event: str, **kw: Any) -> None:
        self._get_logger().warning(event, **kw)

    def error(self, event: str, **kw: Any) -> None:
        self._get_logger().error(event, **kw)

    def exception(self, event: str, **kw: Any) -> None:
        """Log at error level with the active exception's traceback."""
        self._get_logger().exception(event, **kw)


def _build_processors(
    format: Literal["json", "console"],  # noqa: A002
    include_timestamps: bool,
) -> list[Processor]:
    processors: list[Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        _sanitize_event_dict,
    ]
    if include_timestamps:
        processors.append(_add_timestamp)
    processors.extend([
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ])
    if format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))
    return processors


def configure_logging(
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO",
    format: Literal["json", "console"] = "console",  # noqa: A002
    file_path: Path | None = None,
    max_file_size_mb: int = 20,
    backup_count: int = 3,
    include_timestamps: bool = True,
) -> None:
    """Configure structlog and the stdlib root logger.

    Call once at startup. Console output goes to stderr; when ``file_path``
    is given, the same rendered lines are also written to a rotating file.

    Args:
        level: Minimum log level.
        format: ``"console"`` for human-readable lines, ``"json"`` for one
            JSON object per line.
        file_path: Optional log file (parent directories are created).
        max_file_size_mb: Rotation threshold for the log file.
        backup_count: Rotated files to keep.
        include_timestamps: Add an ISO8601 ``timestamp`` field.
    """
    log_level = getattr(logging, level)

    handlers: list[logging.Handler] = []
    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setLevel(log_level)
    handlers.append(stream_handler)

    if file_path is not None:
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            file_path,
            maxBytes=max_file_size_mb * 1024 * 1024,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(log_level)
        handlers.append(file_handler)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    for handler in handlers:
        root_logger.addHandler(handler)

    # cache_logger_on_first_use=False keeps module-level loggers in step
    # with reconfiguration (tests reconfigure repeatedly).
    structlog.configure(
        processors=_build_processors(format, include_timestamps),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )


def get_logger(component: str, **initial_context: Any) -> RelayLogger:
    """Get a logger bound to ``component``."""
    return RelayLogger(component, **initial_context)


__all__ = [
    "RelayLogger",
    "SENSITIVE_PATTERNS",
    "configure_logging",
    "get_logger",
]
