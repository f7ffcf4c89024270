"""Structured logging for the proximity engine."""

from .context import ContextFilter, LogContext, log_context, log_landmark_context
from .setup import setup_logging

__all__ = [
    "ContextFilter",
    "LogContext",
    "log_context",
    "log_landmark_context",
    "setup_logging",
]
