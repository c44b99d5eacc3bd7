"""
Reconciliation module for Vinyl Alerts.

Decides, for each candidate listing, whether it is relevant to the user's
preferences and whether it is new, seen again, or seen again at a new price.
Each decision maps to exactly one set of store mutations on one listing.
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Callable, Iterable

from .models import (
    Listing,
    PreferenceTerm,
    PreferenceType,
    PriceObservation,
    ReconcileOutcome,
    utcnow,
)
from .exceptions import StoreError
from .normalization import normalize_text
from .ports import ListingStore

logger = logging.getLogger(__name__)


@dataclass
class ReconcileResult:
    """Outcome of reconciling one candidate, with the listing as stored."""
    outcome: ReconcileOutcome
    listing: Listing
    errors: list[str] = field(default_factory=list)  # Store failures after the listing row was written

    @property
    def is_tracked(self) -> bool:
        """True if the listing is relevant and was written to the store."""
        return self.outcome != ReconcileOutcome.SKIPPED


def _terms_of_type(preferences: Iterable[PreferenceTerm], term_type: PreferenceType) -> list[str]:
    values = (normalize_text(p.value) for p in preferences if p.type == term_type)
    return [v for v in values if v]


def is_relevant(listing: Listing, preferences: Iterable[PreferenceTerm]) -> bool:
    """
    Check a listing against preference terms.

    Relevant iff the normalized artist contains any artist term, or the
    normalized title contains any album term. Genre terms are not consulted.
    """
    preferences = list(preferences)
    artist = normalize_text(listing.artist)
    title = normalize_text(listing.title)

    if any(term in artist for term in _terms_of_type(preferences, PreferenceType.ARTIST)):
        return True
    return any(term in title for term in _terms_of_type(preferences, PreferenceType.ALBUM))


class ReconciliationEngine:
    """
    Reconciles candidate listings against the listing store.

    Usage:
        engine = ReconciliationEngine(store)
        result = engine.reconcile(listing, preferences)
    """

    def __init__(self, store: ListingStore, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.clock = clock

    def reconcile(self, candidate: Listing, preferences: Iterable[PreferenceTerm]) -> ReconcileResult:
        """
        Reconcile one normalized candidate.

        Store writes are ordered so that a failure never hides a listing or
        loses a price:
        - NEW: the listing row first. If only the first price observation
          fails, the result is still NEW (so it is alerted) and the failure
          is reported in result.errors.
        - PRICE_CHANGED: the observation before the new price. If the price
          update fails, the stored price is still the old one and the next
          pass sees the change again.

        Args:
            candidate: Normalized, keyed listing from a marketplace search
            preferences: The user's preference terms

        Returns:
            ReconcileResult with the outcome and the listing as now stored

        Raises:
            StoreError: if a store call fails before the outcome is recorded
        """
        if not is_relevant(candidate, preferences):
            return ReconcileResult(ReconcileOutcome.SKIPPED, candidate)

        now = self.clock()
        existing = self.store.get_listing(candidate.identity_key)

        if existing is None:
            listing = replace(candidate, first_seen=now, last_seen=now, is_active=True)
            self.store.upsert_listing(listing)
            result = ReconcileResult(ReconcileOutcome.NEW, listing)
            logger.info(f"New listing: {listing.artist_display} - {listing.title_display} ({listing.price} {listing.currency})")
            try:
                self._record_price(listing.identity_key, listing.price, listing.currency, now)
            except StoreError as e:
                logger.error(f"Failed to record first price for {listing.identity_key}: {e}")
                result.errors.append(
                    f"First price not recorded for {listing.artist_display} - {listing.title_display}: {e}"
                )
            return result

        self.store.mark_last_seen(existing.identity_key, now)

        if existing.price == candidate.price:
            listing = replace(existing, last_seen=now, is_active=True)
            return ReconcileResult(ReconcileOutcome.SEEN_AGAIN, listing)

        self._record_price(existing.identity_key, candidate.price, candidate.currency, now)
        self.store.update_price(existing.identity_key, candidate.price, candidate.currency)
        logger.info(
            f"Price changed for {existing.artist_display} - {existing.title_display}: "
            f"{existing.price} -> {candidate.price} {candidate.currency}"
        )
        listing = replace(
            existing,
            price=candidate.price,
            currency=candidate.currency,
            last_seen=now,
            is_active=True,
        )
        return ReconcileResult(ReconcileOutcome.PRICE_CHANGED, listing)

    def _record_price(self, identity_key: str, price, currency: str, recorded_at: datetime) -> None:
        self.store.append_price_observation(
            PriceObservation(
                identity_key=identity_key,
                price=price,
                currency=currency,
                recorded_at=recorded_at,
            )
        )
