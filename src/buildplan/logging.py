"""Structured logging for Buildplan.

structlog builds the event dictionaries and renders them; the stdlib root
logger only owns the output handler, either a stream or a size-rotated file.
Every entry carries the request's correlation id and tenant ids when they
are bound, which ties recalculation warnings back to the request that
triggered them.

Example usage:
    >>> from buildplan.config import LoggingConfig
    >>> from buildplan.logging import setup_logging, get_logger, bind_request_context
    >>>
    >>> setup_logging(LoggingConfig(level="INFO", format="json"))
    >>> bind_request_context(organization_id="org_123", user_id="user_456")
    >>> get_logger(__name__).info("phase_recalculated", duration_days=12)
"""

from __future__ import annotations

import contextvars
import logging
import logging.handlers
import sys
from typing import Any, TextIO

import structlog

from buildplan.config import LoggingConfig

ERROR_SINK = "buildplan.errors"

_current_correlation: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "buildplan_correlation_id", default=None
)


def add_correlation_id(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """structlog processor that stamps the active correlation id, if any."""
    active = _current_correlation.get()
    if active is not None:
        event_dict["correlation_id"] = active
    return event_dict


def set_correlation_id(correlation_id: str | None) -> None:
    _current_correlation.set(correlation_id)


def get_correlation_id() -> str | None:
    return _current_correlation.get()


def bind_request_context(
    organization_id: str | None = None,
    user_id: str | None = None,
) -> None:
    """Attach tenant ids to every log emitted in the current context.

    Missing ids are left out rather than bound as null.
    """
    bound = {"organization_id": organization_id, "user_id": user_id}
    present = {key: value for key, value in bound.items() if value is not None}
    if present:
        structlog.contextvars.bind_contextvars(**present)


def log_error(context: str, error: BaseException, **fields: Any) -> None:
    """Send a caught error to the error sink; never raises.

    Best-effort work such as the recalculation that follows a task write
    reports through here so the failure is recorded while the caller's own
    write still succeeds.

    Args:
        context: Event name for the entry, e.g. ``phase_recalculation_failed``
        error: The caught exception
        **fields: Identifiers that locate the failure (phase id, trigger)
    """
    try:
        sink = structlog.get_logger(ERROR_SINK)
        sink.error(
            context,
            error=str(error),
            error_type=type(error).__name__,
            exc_info=error,
            **fields,
        )
    except Exception:  # noqa: BLE001 - a broken sink must not fail the write
        pass


def _output_handler(config: LoggingConfig, stream: TextIO | None) -> logging.Handler:
    if config.file is None:
        return logging.StreamHandler(stream or sys.stdout)

    config.file.parent.mkdir(parents=True, exist_ok=True)
    return logging.handlers.RotatingFileHandler(
        filename=config.file,
        maxBytes=config.rotation_size_mb * 1024 * 1024,
        backupCount=config.retention_count,
        encoding="utf-8",
    )


def _renderer(log_format: str) -> Any:
    if log_format == "console":
        return structlog.dev.ConsoleRenderer()
    return structlog.processors.JSONRenderer()


def setup_logging(config: LoggingConfig, stream: TextIO | None = None) -> None:
    """Install the Buildplan logging pipeline.

    Replaces any handlers already on the root logger, so calling it twice
    (web startup after a CLI import, or between tests) leaves one handler.

    Args:
        config: Level, format and optional rotating file target
        stream: Console target when no file is configured (default stdout)
    """
    level = logging.getLevelName(config.level)

    handler = _output_handler(config, stream)
    handler.setLevel(level)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            add_correlation_id,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", key="timestamp"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            _renderer(config.format),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger named after the calling module."""
    return structlog.get_logger(name)
