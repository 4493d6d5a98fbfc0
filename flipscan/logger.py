"""Logging utilities for the flipbook scanner."""

import logging
import sys
from typing import Any, Optional

import structlog
from structlog.stdlib import LoggerFactory


def setup_logging(service_name: str = "flipscan", log_level: str = "INFO") -> None:
    """Set up structured logging for the scanner."""
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO),
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer()
        ],
        context_class=dict,
        logger_factory=LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    structlog.get_logger(service_name).debug("logging configured", level=log_level)


def get_logger(name: str, **context: Any) -> structlog.stdlib.BoundLogger:
    """Get a structured logger, optionally bound to context values."""
    logger = structlog.get_logger(name)
    if context:
        logger = logger.bind(**context)
    return logger


def log_error(logger: structlog.stdlib.BoundLogger, message: str,
              error: Optional[Exception] = None, **kwargs: Any) -> None:
    """Log an error together with the exception type and text."""
    context = dict(kwargs)
    if error:
        context.update({
            "error_type": type(error).__name__,
            "error_message": str(error),
        })
    logger.error(message, **context)
