"""
Structured logging setup.

All modules log through structlog so events carry key/value context:

    logger = get_logger(__name__)
    logger.info("Extraction batch finished", processed=12, errors=0)
"""

import logging
import sys
from typing import Optional

import structlog

from config.settings import settings


def configure_logging(log_level: Optional[str] = None, json_logs: Optional[bool] = None) -> None:
    """
    Configure stdlib logging and structlog processors.

    Args:
        log_level: Level name, defaults to settings.LOG_LEVEL
        json_logs: Render JSON lines instead of console output (defaults to production only)
    """
    level_name = (log_level or settings.LOG_LEVEL).upper()
    level = getattr(logging, level_name, logging.INFO)
    if json_logs is None:
        json_logs = settings.is_production

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=level,
    )

    renderer = (
        structlog.processors.JSONRenderer()
        if json_logs
        else structlog.dev.ConsoleRenderer(colors=False)
    )

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
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: Optional[str] = None) -> structlog.stdlib.BoundLogger:
    """Return a structured logger bound to ``name``."""
    if name:
        return structlog.get_logger(name)
    return structlog.get_logger()
