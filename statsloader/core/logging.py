"""Structured logging configuration using structlog.

Every event carries the service name and version so that API and worker
output can be told apart once shipped. Execution and correlation ids are
merged in from contextvars (see ``statsloader.observability.tracing``).
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from statsloader.core.config import Settings, get_settings


class AppContextProcessor:
    """Stamp events with the service name and version."""

    def __init__(self, app_name: str, app_version: str):
        self.app_name = app_name
        self.app_version = app_version

    def __call__(self, logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
        event_dict.setdefault("app", self.app_name)
        event_dict.setdefault("version", self.app_version)
        return event_dict


def build_processors(settings: Settings) -> list[Processor]:
    """Processor chain for the configured mode (console when debugging, JSON otherwise)."""
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        AppContextProcessor(settings.app_name, settings.app_version),
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]
    if settings.debug:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))
    else:
        processors.extend([structlog.processors.format_exc_info, structlog.processors.JSONRenderer()])
    return processors


def setup_logging(settings: Settings | None = None) -> None:
    """Configure structlog and route stdlib loggers (uvicorn, redis) to stdout."""
    settings = settings or get_settings()
    level = getattr(logging, settings.log_level)

    structlog.configure(
        processors=build_processors(settings),
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)


def get_logger(name: str | None = None, **initial_values: Any) -> structlog.stdlib.BoundLogger:
    """Get a logger, optionally bound to initial context values.

    Args:
        name: Logger name (optional)
        **initial_values: Initial context values to bind

    Returns:
        Bound logger instance
    """
    logger = structlog.get_logger(name)
    if initial_values:
        logger = logger.bind(**initial_values)
    return logger
