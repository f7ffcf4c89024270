"""Logging setup and configuration."""

import logging
import sys
from typing import TextIO

from core.exceptions import ConfigurationError

from .context import ContextFilter
from .filters import DefaultCorrelationFilter, PIIFilter
from .formatters import DevFormatter, JSONFormatter

HANDLER_NAME = "proximity"

# Client libraries that log every request at INFO
QUIET_LOGGERS = ("httpx", "httpcore", "urllib3", "redis")


def build_handler(
    json_output: bool = False,
    environment: str = "development",
    stream: TextIO | None = None,
) -> logging.Handler:
    """Stream handler carrying the PII, context and correlation filters.

    Masking runs before context injection, and the correlation placeholder
    is only filled in once the context had its chance to set one.
    """
    handler = logging.StreamHandler(stream or sys.stdout)
    handler.set_name(HANDLER_NAME)
    handler.setFormatter(JSONFormatter(environment) if json_output else DevFormatter())
    for log_filter in (PIIFilter(), ContextFilter(), DefaultCorrelationFilter()):
        handler.addFilter(log_filter)
    return handler


def setup_logging(
    level: str = "INFO",
    json_output: bool = False,
    environment: str = "development",
    stream: TextIO | None = None,
) -> logging.Handler:
    """Install the proximity handler on the root logger.

    Calling it again swaps the previously installed handler; handlers added
    by the host application are left alone.

    Raises:
        ConfigurationError: If ``level`` is not a logging level name.
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise ConfigurationError(f"Unknown log level: {level}", details={"level": level})

    root_logger = logging.getLogger()
    for existing in list(root_logger.handlers):
        if existing.get_name() == HANDLER_NAME:
            root_logger.removeHandler(existing)

    handler = build_handler(json_output, environment, stream)
    root_logger.addHandler(handler)
    root_logger.setLevel(numeric_level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    return handler
