"""
Interfaces used by the reconciliation engine and pass.

The engine only needs something that stores listings and something that
delivers notifications. Supabase and Telegram are one choice of each; tests
use in-memory fakes.
"""

from datetime import datetime
from typing import Iterable, Optional, Protocol

from .models import Listing, PreferenceTerm, PriceObservation


class ListingStore(Protocol):
    """Storage operations required by the reconciliation engine."""

    def get_listing(self, identity_key: str) -> Optional[Listing]:
        ...

    def upsert_listing(self, listing: Listing) -> None:
        ...

    def mark_last_seen(self, identity_key: str, timestamp: datetime) -> None:
        ...

    def update_price(self, identity_key: str, price, currency: str) -> None:
        ...

    def mark_inactive_except(self, active_keys: set[str]) -> int:
        ...

    def append_price_observation(self, observation: PriceObservation) -> None:
        ...

    def list_preferences(self) -> list[PreferenceTerm]:
        ...

    def add_preference(self, term: PreferenceTerm) -> None:
        ...


class Notifier(Protocol):
    """Notification operations required by the reconciliation pass."""

    def notify_new(self, listings: Iterable[Listing]) -> None:
        ...

    def notify_error(self, message: str, source_tag: str) -> None:
        ...
