"""
Structured logging setup.

structlog is configured once at startup; every module then uses
``structlog.get_logger(__name__)``. Request-scoped values (request_id,
method, path) are merged in from contextvars by RequestContextMiddleware.
"""

import logging
import sys

import structlog

from riskintel.config import settings


def configure_logging(level: str | None = None, fmt: str | None = None) -> None:
    """Configure stdlib logging + structlog processors."""
    level_name = (level or settings.log_level).upper()
    fmt = fmt or settings.log_format

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level_name, logging.INFO),
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
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer() if fmt == "json"
            else structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
