"""Structured logging configuration."""
import logging
import sys

import structlog

_configured = False

def configure_logging(env: str = "development", level: str = "INFO"):
    """
    Configure structlog and the stdlib root logger.
    Console rendering in development, JSON lines everywhere else.
    """
    global _configured

    log_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level)

    if env.lower() == "development":
        renderer = structlog.dev.ConsoleRenderer()
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )
    _configured = True

def get_logger(name: str):
    """Get a structured logger bound to a module name."""
    if not _configured:
        configure_logging()
    return structlog.get_logger(name)
