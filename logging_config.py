"""Logging for the shop API: stdlib handlers with structlog on top."""

import logging
import sys
from typing import Any

import structlog

from config import Settings

QUIET_LOGGERS = ("pymongo", "multipart")


def _level_for(settings: Settings) -> str:
    if settings.log_level:
        return settings.log_level.upper()
    env = settings.environment.lower()
    if env == "test":
        return "WARNING"
    return "DEBUG" if settings.is_development else "INFO"


def _renderer(settings: Settings):
    if settings.environment.lower() in ("production", "staging"):
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=False)


def configure_logging(settings: Settings) -> None:
    level = _level_for(settings)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            _renderer(settings),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def add_context(**kwargs: Any) -> None:
    """Bind request-scoped values onto every later log line."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()
