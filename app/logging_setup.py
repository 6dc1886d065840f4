"""Structured logging configuration."""
import logging

import structlog

from app import config

_configured = False


def configure_logging(level: str = None) -> None:
    """Configure structlog once for the process.

    Args:
        level: Log level name (defaults to config.LOG_LEVEL)
    """
    global _configured
    if _configured:
        return

    log_level = getattr(logging, (level or config.LOG_LEVEL).upper(), logging.INFO)
    logging.basicConfig(format="%(message)s", level=log_level)

    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
    )
    _configured = True
