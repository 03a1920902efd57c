"""
Stepline Logging - Structured logging for queue execution.

Every queue emits dotted, structured events (``serial_queue.dispatch``,
``serial_queue.step_failed``, ...) bound with the queue's name and
``queue_id``. This module configures structlog once for the whole process.

Architecture:
    ::

        configure_logging(level="INFO", json_format=True, service="ingest")
            ↓
        structlog processor chain:
          1. TimeStamper (iso)
          2. merge_contextvars
          3. add_log_level / add_logger_name
          4. service metadata
          5. ECS-compatible field names (JSON only)
          6. JSONRenderer (or ConsoleRenderer on a tty)

        logger = get_logger(__name__)
        logger.debug("serial_queue.dispatch", queue_id="...", step="fetch")

Examples:
    >>> from stepline.core.logging import configure_logging, get_logger
    >>> configure_logging(level="DEBUG", json_format=False, service="ingest")
    >>> logger = get_logger(__name__)
    >>> logger.info("pipeline.started", items=3)

Tags:
    logging, structlog, observability, stepline

Doc-Types:
    - API Reference
    - Observability Guide
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from stepline.core.settings import SteplineBaseSettings, get_settings

# Store service name for metadata
_SERVICE_NAME = "stepline"


def _add_service_metadata(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Add service-level metadata to all logs."""
    event_dict.setdefault("service.name", _SERVICE_NAME)
    return event_dict


def _elasticsearch_compatible(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Make field names Elasticsearch/ECS compatible."""
    if "timestamp" in event_dict:
        event_dict["@timestamp"] = event_dict.pop("timestamp")

    if "level" in event_dict:
        event_dict["log.level"] = event_dict.pop("level")

    return event_dict


def configure_logging(
    level: str | None = None,
    json_format: bool | None = None,
    service: str = "stepline",
    add_timestamp: bool = True,
    settings: SteplineBaseSettings | None = None,
) -> None:
    """Configure structured logging for the application.

    Unset arguments fall back to ``settings`` (default: :func:`get_settings`),
    so ``STEPLINE_LOG_LEVEL``, ``STEPLINE_JSON_LOGS`` and ``STEPLINE_DEBUG``
    apply without code changes.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR); ``settings.debug`` forces DEBUG
        json_format: True for JSON, False for console, None for auto (JSON if not tty)
        service: Service name to include in logs
        add_timestamp: Include ISO timestamp in logs
        settings: Settings supplying the defaults above
    """
    global _SERVICE_NAME
    _SERVICE_NAME = service

    settings = settings or get_settings()
    if level is None:
        level = "DEBUG" if settings.debug else settings.log_level
    if json_format is None:
        json_format = settings.json_logs
    if json_format is None:
        json_format = not sys.stdout.isatty()

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        _add_service_metadata,
    ]

    if add_timestamp:
        shared_processors.insert(0, structlog.processors.TimeStamper(fmt="iso"))

    if json_format:
        shared_processors.append(_elasticsearch_compatible)
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=shared_processors + [renderer],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper())
        ),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper()),
    )


def get_logger(name: str | None = None) -> Any:
    """Get a structlog logger (usually ``get_logger(__name__)``)."""
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Bind context to include in all subsequent logs.

    Example:
        bind_context(pipeline="ingest", run_id="abc123")
        logger.info("step_started")  # Includes pipeline and run_id
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    """Remove specific keys from logging context."""
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    """Clear all bound context."""
    structlog.contextvars.clear_contextvars()


def get_context() -> dict[str, Any]:
    """Values currently bound to the logging context."""
    return structlog.contextvars.get_contextvars()


class LogContext:
    """Context manager for scoped logging context.

    Example:
        async with LogContext(pipeline="ingest"):
            queue.enqueue_step("rows", fetch_rows)
            await queue.join()
    """

    def __init__(self, **kwargs: Any):
        self._context = kwargs

    def __enter__(self) -> LogContext:
        bind_context(**self._context)
        return self

    def __exit__(self, *args) -> None:
        unbind_context(*self._context.keys())

    async def __aenter__(self) -> LogContext:
        bind_context(**self._context)
        return self

    async def __aexit__(self, *args) -> None:
        unbind_context(*self._context.keys())


__all__ = [
    "configure_logging",
    "get_logger",
    "bind_context",
    "unbind_context",
    "clear_context",
    "get_context",
    "LogContext",
]
