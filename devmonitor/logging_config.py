"""structlog setup for the monitor and its CLI."""

from __future__ import annotations

import logging
import sys
from typing import Optional, TextIO

import structlog

from devmonitor.config import get_settings


def _log_stream(name: str) -> TextIO:
    return sys.stdout if name == "stdout" else sys.stderr


def setup_logging(level: Optional[str] = None) -> None:
    """Configure structlog and the stdlib root logger.

    ``level`` overrides ``DEVMONITOR_LOG_LEVEL``; the CLI passes ``DEBUG`` for
    ``--verbose``. Output goes to ``DEVMONITOR_LOG_STREAM``.
    """
    settings = get_settings()
    log_level = getattr(logging, (level or settings.devmonitor_log_level).upper(), logging.INFO)
    stream = _log_stream(settings.devmonitor_log_stream)

    if settings.devmonitor_env == "production":
        renderer: structlog.typing.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=stream.isatty())

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=stream),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=stream, level=log_level)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a named structured logger."""
    return structlog.get_logger(name)
