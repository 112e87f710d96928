"""Exceptions raised by the Smart Reminder Service core.

REST handlers map them to HTTP status codes:
- InvalidInput -> 400
- GeocodeError -> 502 (only on the explicit place search endpoints)
- StorageUnavailable -> 503
"""

from typing import List, Optional


class ReminderServiceError(Exception):
    """Base class for all service errors."""


class InvalidInput(ReminderServiceError):
    """Client supplied missing or malformed input."""


class GeocodeError(ReminderServiceError):
    """The geocoding provider failed (network, quota, configuration)."""


class StorageUnavailable(ReminderServiceError):
    """The conditional trigger write-back could not reach storage.

    ``triggered`` holds the candidates that were triggered before (or after)
    the failing write, so callers can still report partial success.
    """

    def __init__(self, message: str, triggered: Optional[List] = None):
        super().__init__(message)
        self.triggered = triggered or []
