"""Error types shared by the client and the ingestion server."""

from __future__ import annotations


class TimecodeError(Exception):
    """Base class for all timecode failures."""


class ValidationError(TimecodeError, ValueError):
    """Malformed payload, field, or date range. Rejected without side effects."""


class StorageError(TimecodeError):
    """The server failed to persist an event."""


class TransientDeliveryError(TimecodeError):
    """A batch could not be delivered (network error, timeout, non-2xx)."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ConfigurationError(TimecodeError):
    """The endpoint is missing or cannot be addressed."""
