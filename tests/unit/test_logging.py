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

from docforge.config import LoggingConfig
from docforge.logging import (
    add_correlation_id,
    bind_run_context,
    clear_run_context,
    get_correlation_id,
    get_logger,
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
def capture_stream() -> StringIO:
    return StringIO()


def emitted(stream: StringIO) -> list[dict[str, Any]]:
    """Parse every JSON log line written to the stream."""
    return [json.loads(line) for line in stream.getvalue().splitlines() if line.strip()]


def test_json_output_format(capture_stream: StringIO) -> None:
    """Test that JSON format produces one parseable object per event."""
    setup_logging(LoggingConfig(level="INFO", format="json"), stream=capture_stream)

    get_logger("test.module").info("stage_started", stage="dev_plan", attempt=1)

    (entry,) = emitted(capture_stream)
    assert entry["event"] == "stage_started"
    assert entry["stage"] == "dev_plan"
    assert entry["attempt"] == 1
    assert entry["level"] == "info"
    assert entry["logger"] == "test.module"
    assert "timestamp" in entry


def test_console_output_format(capture_stream: StringIO) -> None:
    """Test that console format renders human-readable output."""
    setup_logging(LoggingConfig(level="DEBUG", format="console"), stream=capture_stream)

    get_logger("test.console").debug("debug_event", key="value")

    output = capture_stream.getvalue()
    assert "debug_event" in output
    assert "key" in output
    with pytest.raises(json.JSONDecodeError):
        json.loads(output.strip())


def test_level_filtering(capture_stream: StringIO) -> None:
    """Test that events below the configured level are dropped."""
    setup_logging(LoggingConfig(level="WARNING", format="json"), stream=capture_stream)
    logger = get_logger("test.filter")

    logger.info("ignored")
    logger.warning("kept")

    assert [e["event"] for e in emitted(capture_stream)] == ["kept"]


def test_default_stream_is_stdout() -> None:
    setup_logging(LoggingConfig())

    (handler,) = logging.getLogger().handlers
    assert isinstance(handler, logging.StreamHandler)
    assert handler.stream is not None


def test_setup_replaces_existing_handlers(capture_stream: StringIO) -> None:
    """Test that repeated setup does not duplicate output."""
    setup_logging(LoggingConfig(), stream=capture_stream)
    setup_logging(LoggingConfig(), stream=capture_stream)

    assert len(logging.getLogger().handlers) == 1


def test_file_handler_rotation_settings(tmp_path: Path) -> None:
    """Test that a log file gets a size-rotating handler."""
    log_file = tmp_path / "logs" / "docforge.log"
    setup_logging(
        LoggingConfig(file=log_file, rotation_size_mb=2, retention_count=3)
    )

    (handler,) = logging.getLogger().handlers
    assert isinstance(handler, logging.handlers.RotatingFileHandler)
    assert handler.maxBytes == 2 * 1024 * 1024
    assert handler.backupCount == 3

    get_logger("test.file").info("written_to_file")
    handler.flush()
    assert "written_to_file" in log_file.read_text()


class TestCorrelationId:
    """Correlation ID context handling."""

    def test_set_and_get(self) -> None:
        set_correlation_id("req-1")
        assert get_correlation_id() == "req-1"

    def test_processor_adds_id_when_set(self) -> None:
        set_correlation_id("req-2")
        event = add_correlation_id(None, "info", {"event": "x"})
        assert event["correlation_id"] == "req-2"

    def test_processor_leaves_event_without_id(self) -> None:
        event = add_correlation_id(None, "info", {"event": "x"})
        assert "correlation_id" not in event

    def test_correlation_id_in_output(self, capture_stream: StringIO) -> None:
        setup_logging(LoggingConfig(), stream=capture_stream)
        set_correlation_id("req-3")

        get_logger("test.correlation").info("handled")

        assert emitted(capture_stream)[0]["correlation_id"] == "req-3"


class TestRunContext:
    """Run and project binding for pipeline workers."""

    def test_bound_ids_in_output(self, capture_stream: StringIO) -> None:
        setup_logging(LoggingConfig(), stream=capture_stream)
        bind_run_context(run_id="R-1", project_id="P-1")

        get_logger("test.run").info("stage_completed")

        (entry,) = emitted(capture_stream)
        assert entry["run_id"] == "R-1"
        assert entry["project_id"] == "P-1"

    def test_clear_removes_ids(self, capture_stream: StringIO) -> None:
        setup_logging(LoggingConfig(), stream=capture_stream)
        bind_run_context(run_id="R-1", project_id="P-1")
        clear_run_context()

        get_logger("test.run").info("after_clear")

        (entry,) = emitted(capture_stream)
        assert "run_id" not in entry
        assert "project_id" not in entry
