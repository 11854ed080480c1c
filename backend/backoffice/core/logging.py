"""structlog configuration."""

import logging
import sys

import structlog

from backoffice.core.config import settings


def configure_logging() -> None:
    """Configure structlog and route stdlib logging through the same output.

    JSON lines in production, a readable console renderer when DEBUG is on.
    """
    level = logging.DEBUG if settings.DEBUG else logging.INFO

    renderer: structlog.types.Processor
    if settings.DEBUG or not settings.LOG_JSON:
        renderer = structlog.dev.ConsoleRenderer()
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
