"""Thread-local logging context for adding fields to log records."""

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any


class LogContext:
    """Thread-local storage for log context fields."""

    _local = threading.local()

    @classmethod
    def set(cls, **kwargs: Any) -> None:
        if not hasattr(cls._local, "context"):
            cls._local.context = {}
        cls._local.context.update(kwargs)

    @classmethod
    def get(cls) -> dict[str, Any]:
        if not hasattr(cls._local, "context"):
            cls._local.context = {}
        ctx: dict[str, Any] = cls._local.context
        return ctx

    @classmethod
    def remove(cls, *keys: str) -> None:
        ctx = cls.get()
        for key in keys:
            ctx.pop(key, None)

    @classmethod
    def clear(cls) -> None:
        cls._local.context = {}


class ContextFilter(logging.Filter):
    """Injects LogContext fields into log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in LogContext.get().items():
            if not hasattr(record, key):
                setattr(record, key, value)
        return True


@contextmanager
def log_context(**kwargs: Any) -> Iterator[None]:
    """Context manager that sets logging context fields.

    Fields are injected into log records via ContextFilter, which must
    be attached to the handler (see setup_logging). Only the fields set by
    this block are removed on exit, so blocks can nest.
    """
    previous = {key: LogContext.get()[key] for key in kwargs if key in LogContext.get()}
    LogContext.set(**kwargs)
    try:
        yield
    finally:
        LogContext.remove(*kwargs)
        LogContext.set(**previous)


@contextmanager
def log_landmark_context(landmark_id: str, **kwargs: Any) -> Iterator[None]:
    """Convenience context manager for per-landmark operations."""
    correlation_id = kwargs.pop("correlation_id", landmark_id)
    with log_context(landmark_id=landmark_id, correlation_id=correlation_id, **kwargs):
        yield
