"""Structured logging configuration using structlog.

Provides correlation IDs for tracing requests across concurrent
connections and configurable output formats (JSON for production,
colored console for dev).
"""

import logging
import sys
from typing import cast

import structlog
from structlog.types import Processor

from omero_client.config import settings


def set_correlation_context(
    host: str | None = None,
    image_id: int | None = None,
) -> None:
    """Bind correlation IDs to the log events of the current async context.

    Args:
        host: Normalized server URI of the active connection
        image_id: OMERO image being read
    """
    correlation = {"host": host, "image_id": image_id}
    structlog.contextvars.bind_contextvars(
        **{key: value for key, value in correlation.items() if value is not None}
    )


def clear_correlation_context() -> None:
    structlog.contextvars.clear_contextvars()


def configure_logging(
    level: str | None = None,
    log_format: str | None = None,
) -> None:
    """Configure structlog with the specified settings.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
               Defaults to settings.LOG_LEVEL.
        log_format: Output format ("console" or "json").
                    Defaults to settings.LOG_FORMAT.
    """
    level = level or settings.LOG_LEVEL
    log_format = log_format or settings.LOG_FORMAT

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    if log_format == "json":
        processors: list[Processor] = [
            *shared_processors,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = [
            *shared_processors,
            structlog.dev.ConsoleRenderer(colors=True),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Library modules log through stdlib; route them to the same stream
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper()),
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structlog logger instance.

    Args:
        name: Logger name. If None, uses the calling module's name.

    Returns:
        A bound structlog logger instance.
    """
    return cast(structlog.stdlib.BoundLogger, structlog.get_logger(name))
