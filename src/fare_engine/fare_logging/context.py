"""Context-local logging fields for adding vehicle and consumer ids to log records."""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any

_context: ContextVar[dict[str, Any] | None] = ContextVar("fare_log_context", default=None)


class LogContext:
    """Per-task storage for log context fields.

    Backed by a ContextVar so that interleaved coroutines on one event loop
    each see only the fields they set.
    """

    @classmethod
    def set(cls, **kwargs: Any) -> None:
        _context.set({**cls.get(), **kwargs})

    @classmethod
    def get(cls) -> dict[str, Any]:
        return _context.get() or {}

    @classmethod
    def clear(cls) -> None:
        _context.set(None)


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
    be attached to the handler (see setup_logging). Fields set by an
    enclosing block are restored on exit.
    """
    token = _context.set({**LogContext.get(), **kwargs})
    try:
        yield
    finally:
        _context.reset(token)


@contextmanager
def log_fare_context(trip_kind: str, vehicle_id: str, **kwargs: Any) -> Iterator[None]:
    """Convenience context manager for work on one (trip kind, vehicle) key."""
    correlation_id = kwargs.pop("correlation_id", f"{trip_kind}:{vehicle_id}")
    with log_context(
        trip_kind=trip_kind, vehicle_id=vehicle_id, correlation_id=correlation_id, **kwargs
    ):
        yield
