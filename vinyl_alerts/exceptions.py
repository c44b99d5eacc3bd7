"""
Exception classes for Vinyl Alerts.

Adapters (Discogs, Supabase, Telegram) catch their library's exceptions and
re-raise one of these, so the pipeline only ever handles domain errors.
"""

from typing import Any


class VinylAlertsError(Exception):
    """Base exception for the application."""

    def __init__(self, message: str, detail: Any = None):
        self.message = message
        self.detail = detail
        super().__init__(message)


class ConfigurationError(VinylAlertsError):
    """Configuration is missing or invalid."""
    pass


class FetchError(VinylAlertsError):
    """A marketplace search failed."""
    pass


class TemporaryFetchError(FetchError):
    """Search failed for a reason that may go away (rate limit, 5xx, timeout)."""
    pass


class PermanentFetchError(FetchError):
    """Search failed for a reason retrying will not fix (auth, bad request)."""
    pass


class StoreError(VinylAlertsError):
    """A listing store operation failed."""
    pass


class NotificationError(VinylAlertsError):
    """A notification could not be delivered."""
    pass


class PassAlreadyRunningError(VinylAlertsError):
    """A reconciliation pass is already running (one at a time)."""
    pass
