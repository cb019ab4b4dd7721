"""Unit tests for logging configuration."""

from __future__ import annotations

import json
import logging
import logging.handlers
from io import StringIO
from pathlib import Path
from typing import Any

import pytest
import structlog

from buildplan.config import LoggingConfig
from buildplan.errors import RecalculationFailure
from buildplan.logging import (
    add_correlation_id,
    bind_request_context,
    get_correlation_id,
    get_logger,
    log_error,
    set_correlation_id,
    setup_logging,
)


@pytest.fixture(autouse=True)
def reset_logging() -> None:
    """Reset logging configuration before each test."""
    logging.getLogger().handlers.clear()
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()
    set_correlation_id(None)


@pytest.fixture
def stream() -> StringIO:
    return StringIO()


@pytest.fixture
def json_logging(stream: StringIO) -> StringIO:
    setup_logging(LoggingConfig(level="INFO", format="json"), stream=stream)
    return stream


def last_entry(stream: StringIO) -> dict[str, Any]:
    return json.loads(stream.getvalue().strip().splitlines()[-1])


def test_json_output_format(json_logging: StringIO) -> None:
    get_logger("buildplan.scheduling").info("phase_recalculated", duration_days=7)

    entry = last_entry(json_logging)
    assert entry["event"] == "phase_recalculated"
    assert entry["duration_days"] == 7
    assert entry["level"] == "info"
    assert entry["logger"] == "buildplan.scheduling"
    assert "timestamp" in entry


def test_console_output_format(stream: StringIO) -> None:
    setup_logging(LoggingConfig(level="DEBUG", format="console"), stream=stream)

    get_logger("test.module").debug("task_created", name="Pour footings")

    output = stream.getvalue()
    assert "task_created" in output
    assert "Pour footings" in output
    with pytest.raises(json.JSONDecodeError):
        json.loads(output.strip())


def test_log_level_filtering(json_logging: StringIO) -> None:
    logger = get_logger("test.module")

    logger.debug("debug_message")
    assert json_logging.getvalue() == ""

    logger.warning("warning_message")
    assert "warning_message" in json_logging.getvalue()


def test_correlation_id(json_logging: StringIO) -> None:
    logger = get_logger("test.module")

    set_correlation_id("corr-12345")
    assert get_correlation_id() == "corr-12345"
    logger.info("with_correlation")
    assert last_entry(json_logging)["correlation_id"] == "corr-12345"

    set_correlation_id(None)
    logger.info("without_correlation")
    assert "correlation_id" not in last_entry(json_logging)


def test_correlation_id_processor() -> None:
    assert "correlation_id" not in add_correlation_id(None, "", {"event": "x"})

    set_correlation_id("test-id")
    assert add_correlation_id(None, "", {"event": "x"})["correlation_id"] == "test-id"


def test_request_context_binding(json_logging: StringIO) -> None:
    bind_request_context(organization_id="org_123", user_id="user_456")

    get_logger("module1").info("event1")
    first = last_entry(json_logging)
    get_logger("module2").info("event2")
    second = last_entry(json_logging)

    for entry in (first, second):
        assert entry["organization_id"] == "org_123"
        assert entry["user_id"] == "user_456"


def test_request_context_skips_missing_values(json_logging: StringIO) -> None:
    bind_request_context(organization_id="org_123")

    get_logger("test.module").info("event")

    entry = last_entry(json_logging)
    assert entry["organization_id"] == "org_123"
    assert "user_id" not in entry


def test_log_error_reports_exception(json_logging: StringIO) -> None:
    failure = RecalculationFailure("phase-1", ValueError("boom"))

    log_error("phase_recalculation_failed", failure, phase_id="phase-1")

    entry = last_entry(json_logging)
    assert entry["event"] == "phase_recalculation_failed"
    assert entry["level"] == "error"
    assert entry["logger"] == "buildplan.errors"
    assert entry["error_type"] == "RecalculationFailure"
    assert "boom" in entry["error"]
    assert entry["phase_id"] == "phase-1"
    assert "exception" in entry


def test_log_error_never_raises(monkeypatch: pytest.MonkeyPatch) -> None:
    def broken_logger(*args: Any, **kwargs: Any) -> Any:
        raise RuntimeError("sink unavailable")

    monkeypatch.setattr(structlog, "get_logger", broken_logger)

    log_error("anything", ValueError("boom"))


def test_file_rotation_handler_configuration(tmp_path: Path) -> None:
    log_file = tmp_path / "logs" / "buildplan.log"
    setup_logging(
        LoggingConfig(
            level="INFO",
            format="json",
            file=log_file,
            rotation_size_mb=10,
            retention_count=3,
        )
    )

    root = logging.getLogger()
    assert len(root.handlers) == 1
    handler = root.handlers[0]
    assert isinstance(handler, logging.handlers.RotatingFileHandler)
    assert handler.maxBytes == 10 * 1024 * 1024
    assert handler.backupCount == 3

    get_logger("test.module").info("file_write", data="test")
    handler.flush()

    entry = json.loads(log_file.read_text().strip())
    assert entry["event"] == "file_write"


def test_exception_formatting(json_logging: StringIO) -> None:
    try:
        raise ValueError("Test exception")
    except ValueError:
        get_logger("test.module").exception("error_occurred")

    entry = last_entry(json_logging)
    assert entry["level"] == "error"
    assert "ValueError: Test exception" in entry["exception"]
