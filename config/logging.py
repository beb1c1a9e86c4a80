"""
Structured logging setup.

Call configure_logging() once at process start.
"""

import logging

import structlog

from config.settings import get_settings


def configure_logging() -> None:
    """Configure structlog with JSON output in production, console otherwise."""
    settings = get_settings()

    logging.basicConfig(format="%(message)s", level=settings.log_level)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer() if settings.is_production
                else structlog.dev.ConsoleRenderer()
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    structlog.get_logger(__name__).info(
        "logging_configured",
        environment=settings.environment,
        level=settings.log_level
    )
