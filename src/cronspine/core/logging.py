"""
Structured logging for cronspine.

Manifesto:
    A runner that executes other people's work unattended needs logs that
    can be filtered by job and correlated across runner processes. This
    module configures structlog once and hands out bound loggers.

Architecture:
    ::

        configure_logging(level="INFO", json_format=True, service="cronspine")
            ↓
        structlog processor chain:
          1. filter_by_level
          2. TimeStamper(iso, utc)
          3. merge_contextvars        runner_slot, job_id, uuid from LogContext
          4. add_log_level / add_logger_name
          5. _add_process             service + pid (several runners share a store)
          6. JSONRenderer (or ConsoleRenderer on a terminal)
            ↓
        stdlib root handler → stderr

        logger = get_logger(__name__)
        with LogContext(job_id=12, uuid="nightly-report"):
            logger.info("job_finished", status="OK")

Examples:
    >>> from cronspine.core.logging import configure_logging, get_logger
    >>> configure_logging(level="INFO", json_format=True)
    >>> get_logger(__name__).info("runner_locked", max_concurrent_jobs=3)

Tags:
    logging, structlog, observability, cronspine
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

_SERVICE_NAME = "cronspine"


def _add_process(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    event_dict.setdefault("service", _SERVICE_NAME)
    event_dict.setdefault("pid", os.getpid())
    return event_dict


def configure_logging(
    level: str = "INFO",
    json_format: bool | None = None,
    service: str = "cronspine",
) -> None:
    """Configure structlog and the stdlib root handler.

    Args:
        level: DEBUG, INFO, WARNING, ERROR or CRITICAL.
        json_format: JSON lines when True, console rendering when False,
            JSON unless stderr is a terminal when None.
        service: Value of the ``service`` field on every entry.
    """
    global _SERVICE_NAME
    _SERVICE_NAME = service

    if json_format is None:
        json_format = not sys.stderr.isatty()

    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"unknown log level {level!r}")

    processors: list[Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        _add_process,
    ]

    if json_format:
        processors.append(structlog.processors.format_exc_info)
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(
            colors=sys.stderr.isatty(),
            exception_formatter=structlog.dev.plain_traceback,
        )

    structlog.configure(
        processors=[*processors, renderer],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=numeric_level)
    logging.getLogger().setLevel(numeric_level)


def get_logger(name: str | None = None) -> Any:
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Attach fields to every later entry in this thread or task."""
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()


class LogContext:
    """Scoped context fields; nested scopes restore the outer values on exit.

    Example:
        with LogContext(runner_slot=0):
            with LogContext(job_id=12, uuid="nightly-report"):
                logger.info("job_started")
            logger.info("due_jobs_done")    # runner_slot only
    """

    def __init__(self, **kwargs: Any):
        self._context = kwargs
        self._tokens: dict[str, Any] = {}

    def __enter__(self) -> LogContext:
        self._tokens = structlog.contextvars.bind_contextvars(**self._context)
        return self

    def __exit__(self, *args) -> None:
        structlog.contextvars.reset_contextvars(**self._tokens)


__all__ = [
    "configure_logging",
    "get_logger",
    "bind_context",
    "unbind_context",
    "clear_context",
    "LogContext",
]
