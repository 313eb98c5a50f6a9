"""Logging for Docforge.

Events are emitted through structlog and written by a single stdlib
handler on the root logger: a size-rotating file when ``LoggingConfig.file``
is set, a stream otherwise. Two kinds of context are attached to events:

- the request correlation ID, set by the HTTP middleware
- the run and project IDs, bound by each pipeline worker for its task

    >>> setup_logging(LoggingConfig(format="console"))
    >>> bind_run_context(run_id="R-1", project_id="P-1")
    >>> get_logger(__name__).info("stage_started", stage="dev_plan")
"""

from __future__ import annotations

import contextvars
import logging
import logging.handlers
import sys
from typing import Any, TextIO

import structlog

from docforge.config import LoggingConfig

_MEGABYTE = 1024 * 1024

_correlation_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "docforge_correlation_id", default=None
)


def set_correlation_id(correlation_id: str | None) -> None:
    _correlation_id.set(correlation_id)


def get_correlation_id() -> str | None:
    return _correlation_id.get()


def add_correlation_id(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Processor copying the current correlation ID into the event."""
    correlation_id = get_correlation_id()
    if correlation_id is not None:
        event_dict["correlation_id"] = correlation_id
    return event_dict


def bind_run_context(run_id: str, project_id: str) -> None:
    """Tag every event from the current task with a run and its project.

    Workers run in separate asyncio tasks, each with a copy of the
    context, so one worker's binding never shows up in another's logs.
    """
    structlog.contextvars.bind_contextvars(run_id=run_id, project_id=project_id)


def clear_run_context() -> None:
    structlog.contextvars.unbind_contextvars("run_id", "project_id")


def _build_handler(config: LoggingConfig, stream: TextIO | None) -> logging.Handler:
    if config.file is None:
        return logging.StreamHandler(stream or sys.stdout)

    config.file.parent.mkdir(parents=True, exist_ok=True)
    return logging.handlers.RotatingFileHandler(
        filename=config.file,
        maxBytes=config.rotation_size_mb * _MEGABYTE,
        backupCount=config.retention_count,
        encoding="utf-8",
    )


def _processors(config: LoggingConfig) -> list[Any]:
    renderer: Any
    if config.format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    return [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.contextvars.merge_contextvars,
        add_correlation_id,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        renderer,
    ]


def setup_logging(config: LoggingConfig, stream: TextIO | None = None) -> None:
    """Install the root handler and configure structlog.

    Calling this again replaces the previous handler, so the CLI and the
    server can each reconfigure without duplicating output.

    Args:
        config: Level, format and file settings
        stream: Where console output goes when no file is configured;
            stdout unless given (the CLI passes stderr)
    """
    level = getattr(logging, config.level)

    handler = _build_handler(config, stream)
    handler.setLevel(level)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    structlog.configure(
        processors=_processors(config),
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
