"""
Structlog configuration for WaterMe.

Called once at startup, before the first log line; modules only ever do
``structlog.get_logger(__name__)``.
"""

import logging
import sys

import structlog

from waterme.infrastructure.logging.sanitization import LogSanitizationConfig, StructlogSanitizer


def configure_logging(level: str = "INFO", log_format: str = "json", environment: str = "production") -> None:
    """
    Configure structlog and the stdlib root logger.

    Args:
        level: Log level name (DEBUG, INFO, ...)
        log_format: ``json`` for machine-readable output, ``console`` for humans
        environment: Selects how aggressive sanitization is
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=log_level,
        force=True
    )

    # Telegram's HTTP client logs every request URL, which embeds the bot token
    logging.getLogger("httpx").setLevel(logging.WARNING)

    renderer = (
        structlog.dev.ConsoleRenderer()
        if log_format == "console"
        else structlog.processors.JSONRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            StructlogSanitizer(LogSanitizationConfig(environment).get_sanitizer()),
            renderer
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
