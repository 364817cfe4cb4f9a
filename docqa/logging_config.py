"""Structured logging setup."""
import logging
import sys

import structlog

from docqa import config


def configure_logging(level: str = None, json_output: bool = True) -> None:
    """Configure structlog on top of the stdlib logging module.

    Args:
        level: Log level name (default from config.LOG_LEVEL)
        json_output: Render JSON lines; otherwise use the console renderer
    """
    level = (level or config.LOG_LEVEL).upper()

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level, logging.INFO),
    )

    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
