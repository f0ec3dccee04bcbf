"""
Structured logging via structlog.

Call ``setup_logging()`` once per process (API lifespan, Celery worker
start, CLI entry point).  Modules grab a logger with ``get_logger`` and
log with key/value context::

    logger = get_logger(__name__)
    logger.info("File downloaded", case_id=case_id, file_name=name)
"""

from __future__ import annotations

import logging
import sys

import structlog

from casesync.core.config import settings


def setup_logging(level: str | None = None) -> None:
    """Configure structlog + stdlib logging for the whole process."""
    level_name = (level or settings.LOG_LEVEL).upper()
    log_level = getattr(logging, level_name, logging.INFO)

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=log_level,
        force=True,
    )

    if settings.APP_ENV == "development":
        renderer = structlog.dev.ConsoleRenderer()
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger bound to ``name``."""
    return structlog.get_logger(name)
