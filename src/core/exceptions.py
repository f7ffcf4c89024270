"""Exception hierarchy for the proximity engine."""

from typing import Any


class ProximityEngineError(Exception):
    """Base exception for all proximity engine errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class TransientError(ProximityEngineError):
    """Errors that may succeed at the next natural trigger."""

    pass


class TransientFetchError(TransientError):
    """Fetching photos, details or panoramas failed for a recoverable reason."""

    pass


class NetworkError(TransientFetchError):
    """Network-related transient errors (timeout, connection refused)."""

    pass


class ServiceUnavailableError(TransientFetchError):
    """External service temporarily unavailable (5xx responses)."""

    pass


class RateLimitedError(TransientFetchError):
    """External service rejected the request because of its quota."""

    pass


class LocationTimeoutError(TransientError):
    """The location source did not produce a fix within the timeout."""

    pass


class PositionUnavailableError(TransientError):
    """The location source has no fix right now."""

    pass


class PermanentError(ProximityEngineError):
    """Errors that will not succeed on retry."""

    pass


class DataValidationError(PermanentError):
    """Malformed landmark record or coordinates."""

    pass


class NotFoundError(PermanentError):
    """Requested place or panorama does not exist."""

    pass


class LocationPermissionError(PermanentError):
    """Location permission denied or location services unavailable."""

    pass


class ConfigurationError(PermanentError):
    """Missing or invalid configuration."""

    pass


class CacheError(ProximityEngineError):
    """Offline store unavailable or holding corrupt data. Always handled as a miss."""

    pass
