"""Standardized exception hierarchy for the fare engine."""

from typing import Any


class FareEngineError(Exception):
    """Base exception for all fare engine errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class TransientError(FareEngineError):
    """Errors that may succeed on retry."""

    pass


class NetworkFailure(TransientError):
    """Fare endpoint unreachable, timed out, or answered with a non-2xx status."""

    pass


class FareTimeout(NetworkFailure):
    """A request or its whole retry sequence ran past its time limit. Not retried."""

    pass


class PermanentError(FareEngineError):
    """Errors that will not succeed on retry."""

    pass


class MalformedResponse(PermanentError):
    """Response body is not JSON or lacks the expected fares shape."""

    pass


class NoScheduleFound(PermanentError):
    """Well-formed response with no schedule for the requested vehicle."""

    pass


class InvalidTransitionError(PermanentError):
    """Illegal reconciliation phase change."""

    pass


class ConfigurationError(PermanentError):
    """Missing or invalid configuration."""

    pass


# Errors a fare lookup resolves through the fallback ladder instead of raising.
FareFetchError = (NetworkFailure, MalformedResponse, NoScheduleFound)
