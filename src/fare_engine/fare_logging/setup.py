"""Logging setup for the fare engine process."""

import logging
import sys
from typing import TextIO

from ..settings import EngineSettings
from .context import ContextFilter
from .filters import DefaultCorrelationFilter
from .formatters import DevFormatter, JSONFormatter

# Libraries that log every request or statement at INFO/DEBUG
QUIET_LOGGERS = ("httpx", "httpcore", "sqlalchemy.engine", "opentelemetry")


def setup_logging(
    level: str = "INFO",
    json_output: bool = False,
    environment: str = "development",
    stream: TextIO | None = None,
) -> logging.Handler:
    """Install one handler on the root logger and return it.

    The context filter must run before DefaultCorrelationFilter so a
    correlation id set through log_context wins over the placeholder.
    """
    root_logger = logging.getLogger()
    root_logger.handlers.clear()

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(JSONFormatter(environment) if json_output else DevFormatter())
    handler.addFilter(ContextFilter())
    handler.addFilter(DefaultCorrelationFilter())

    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, level.upper()))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    return handler


def setup_logging_from_settings(
    settings: EngineSettings, stream: TextIO | None = None
) -> logging.Handler:
    return setup_logging(
        level=settings.log_level,
        json_output=settings.log_format == "json",
        environment=settings.environment,
        stream=stream,
    )
