"""structlog configuration.

Set WORKREPLICA_DEBUG=1 to get debug level output. Console rendering is
used when stderr is a terminal, JSON lines otherwise.
"""

from __future__ import annotations

import logging
import os
import sys

import structlog

ENV_DEBUG = "WORKREPLICA_DEBUG"

_configured = False


def is_debug_enabled() -> bool:
    return os.environ.get(ENV_DEBUG, "").lower() in ("1", "true", "yes", "on")


def configure_logging(force: bool = False) -> None:
    """Configure structlog once per process."""
    global _configured
    if _configured and not force:
        return

    level = logging.DEBUG if is_debug_enabled() else logging.INFO

    if sys.stderr.isatty():
        renderer: structlog.typing.Processor = structlog.dev.ConsoleRenderer()
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )
    _configured = True


def get_logger(name: str) -> structlog.typing.FilteringBoundLogger:
    return structlog.get_logger(name)
