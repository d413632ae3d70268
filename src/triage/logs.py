"""Structured logging setup and correlation-id helpers.

Every module obtains its logger with ``structlog.get_logger(__name__)`` and
logs events with keyword context. configure_logging() wires structlog onto
the standard library logging module once at startup; the correlation id of
the current triage attempt is carried in structlog contextvars so that all
log lines emitted while handling one event can be joined together.
"""

import logging
import random
import string
import sys
import time
from contextlib import contextmanager
from typing import Iterator, Optional

import structlog

SERVICE_NAME = "github-triage-agent"

# LOG_LEVEL values use the short "warn" spelling
_LEVELS = {
    "error": logging.ERROR,
    "warn": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
}

_BASE36 = string.digits + string.ascii_lowercase


def configure_logging(level: str = "info", environment: str = "development") -> None:
    """Configure structlog and the root stdlib logger.

    Production renders one JSON object per line; other environments use
    the human-readable console renderer.

    Args:
        level: One of error, warn, info, debug.
        environment: development, production or test.
    """
    log_level = _LEVELS.get(level, logging.INFO)

    logging.basicConfig(
        level=log_level,
        format="%(message)s",
        stream=sys.stdout,
        force=True,
    )

    renderer = (
        structlog.processors.JSONRenderer()
        if environment == "production"
        else structlog.dev.ConsoleRenderer(colors=False)
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.bind_contextvars(
        service=SERVICE_NAME,
        environment=environment,
    )


def new_correlation_id() -> str:
    """Generate a correlation id of the form ``<epoch-ms>-<9 base36 chars>``."""
    suffix = "".join(random.choice(_BASE36) for _ in range(9))
    return f"{int(time.time() * 1000)}-{suffix}"


@contextmanager
def bind_correlation_id(correlation_id: str) -> Iterator[str]:
    """Bind a correlation id to all log lines emitted inside the block.

    Args:
        correlation_id: The id of the current unit of work.

    Yields:
        The bound correlation id.
    """
    with structlog.contextvars.bound_contextvars(correlation_id=correlation_id):
        yield correlation_id


def current_correlation_id() -> Optional[str]:
    """Return the correlation id bound in the current context, if any."""
    return structlog.contextvars.get_contextvars().get("correlation_id")
