"""
Main Pipeline module for Vinyl Alerts.

Orchestrates one reconciliation pass:
1. Load → Read preference terms from the store
2. Search → Fetch candidates per artist/album term, one at a time
3. Normalize → Map candidates to keyed listings
4. Reconcile → New / seen again / price changed / skipped
5. Alert → Send all new listings to Telegram in one batch
6. Sweep → Mark listings missing from a complete pass inactive

Only one pass runs at a time per ReconciliationPass instance.
"""

import sys
import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Callable, Optional

from .alerts import TelegramNotifier
from .config import (
    get_discogs_config,
    get_preferences_config,
    get_scraping_config,
    get_telegram_config,
    PreferencesConfig,
    ScrapingConfig,
    DiscogsConfig,
)
from .db import get_db
from .exceptions import (
    FetchError,
    NotificationError,
    PassAlreadyRunningError,
    StoreError,
    TemporaryFetchError,
    VinylAlertsError,
)
from .models import (
    Listing,
    PreferenceTerm,
    PreferenceType,
    ReconcileOutcome,
    utcnow,
)
from .normalization import ListingNormalizer, normalize_text
from .ports import ListingStore, Notifier
from .reconciliation import ReconciliationEngine, ReconcileResult
from .sources import DiscogsClient, MarketplaceClient, SyntheticMarketplaceClient

logger = logging.getLogger(__name__)

SEARCHABLE_TYPES = (PreferenceType.ARTIST, PreferenceType.ALBUM)


# =============================================================================
# PASS SUMMARY
# =============================================================================

@dataclass
class PassSummary:
    """Counts and errors from one reconciliation pass."""
    started_at: datetime = field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    skipped: bool = False  # Another pass was already running

    terms_searched: int = 0
    candidates: int = 0
    new: int = 0
    seen_again: int = 0
    price_changed: int = 0
    irrelevant: int = 0
    deactivated: int = 0
    duplicates: int = 0  # Same key seen again at another price in this pass
    store_failures: int = 0

    failed_terms: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    new_listings: list[Listing] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.skipped and not self.errors

    @property
    def duration_seconds(self) -> float:
        if self.completed_at is None:
            return 0.0
        return (self.completed_at - self.started_at).total_seconds()

    def count(self, outcome: ReconcileOutcome) -> None:
        """Increment the counter for one reconciliation outcome."""
        if outcome == ReconcileOutcome.NEW:
            self.new += 1
        elif outcome == ReconcileOutcome.SEEN_AGAIN:
            self.seen_again += 1
        elif outcome == ReconcileOutcome.PRICE_CHANGED:
            self.price_changed += 1
        else:
            self.irrelevant += 1

    def to_dict(self) -> dict:
        return {
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": round(self.duration_seconds, 1),
            "skipped": self.skipped,
            "terms_searched": self.terms_searched,
            "candidates": self.candidates,
            "new": self.new,
            "seen_again": self.seen_again,
            "price_changed": self.price_changed,
            "irrelevant": self.irrelevant,
            "deactivated": self.deactivated,
            "duplicates": self.duplicates,
            "store_failures": self.store_failures,
            "failed_terms": self.failed_terms,
            "errors": self.errors,
            "success": self.success,
        }


# =============================================================================
# RECONCILIATION PASS
# =============================================================================

class ReconciliationPass:
    """
    Runs reconciliation passes over all searchable preference terms.

    Holds the pass lock: a run() while another run() is in progress is
    skipped (or raises PassAlreadyRunningError when asked to).

    Usage:
        reconciliation_pass = ReconciliationPass(store, client, notifier)
        summary = reconciliation_pass.run()
    """

    def __init__(
        self,
        store: ListingStore,
        client: MarketplaceClient,
        notifier: Notifier,
        delay_seconds: float = 1.0,
        max_retries: int = 3,
        deactivate_missing: bool = True,
        include_price_in_key: bool = False,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.client = client
        self.notifier = notifier
        self.delay_seconds = delay_seconds
        self.max_retries = max(1, max_retries)
        self.deactivate_missing = deactivate_missing
        self.normalizer = ListingNormalizer(include_price_in_key=include_price_in_key)
        self.engine = ReconciliationEngine(store, clock=clock)
        self._sleep = sleep
        self._clock = clock
        self._lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    def run(self, raise_if_running: bool = False) -> PassSummary:
        """
        Run one pass unless another is in progress.

        Returns:
            PassSummary; summary.skipped is True if a pass was already running
        """
        if not self._lock.acquire(blocking=False):
            if raise_if_running:
                raise PassAlreadyRunningError("A reconciliation pass is already running")
            logger.warning("Previous pass still running, skipping this one")
            return PassSummary(started_at=self._clock(), completed_at=self._clock(), skipped=True)

        try:
            return self._run_pass()
        finally:
            self._lock.release()

    def _run_pass(self) -> PassSummary:
        summary = PassSummary(started_at=self._clock())
        logger.info(f"Starting reconciliation pass at {summary.started_at.isoformat()}")

        try:
            preferences = self.store.list_preferences()
            if not preferences:
                logger.warning("No preference terms configured - pass complete")
            else:
                self._process_terms(preferences, summary)
        except Exception as e:
            logger.exception(f"Error during reconciliation pass: {e}")
            summary.errors.append(f"Pass error: {e}")
            self.notifier.notify_error("General scraping error occurred", "system")

        summary.completed_at = self._clock()
        logger.info(f"Pass complete in {summary.duration_seconds:.1f}s: {summary.to_dict()}")
        return summary

    def _process_terms(self, preferences: list[PreferenceTerm], summary: PassSummary) -> None:
        """Search, reconcile, notify and sweep for one pass."""
        search_terms = [p for p in preferences if p.type in SEARCHABLE_TYPES and normalize_text(p.value)]
        active_keys: set[str] = set()
        new_keys: set[str] = set()
        reconciled_prices: dict[str, Decimal] = {}

        for index, term in enumerate(search_terms):
            if index > 0:
                self._sleep(self.delay_seconds)

            try:
                candidates = self._search_with_retries(term.value)
            except FetchError as e:
                logger.error(f"Error searching for {term.type.value} '{term.value}': {e}")
                summary.failed_terms.append(term.value)
                summary.errors.append(f"Fetch failed for '{term.value}': {e}")
                self.notifier.notify_error(
                    f"Failed to scrape {term.type.value}: {term.value}", self.client.source
                )
                continue

            summary.terms_searched += 1
            summary.candidates += len(candidates)

            for listing in self.normalizer.normalize_batch(candidates):
                key = listing.identity_key
                if key in reconciled_prices and reconciled_prices[key] != listing.price:
                    # Same seller and title at another price in this pass
                    logger.debug(f"Ignoring {key} at {listing.price}, already reconciled at {reconciled_prices[key]}")
                    summary.duplicates += 1
                    continue

                result = self._reconcile_one(listing, preferences, summary)
                if result is None or not result.is_tracked:
                    continue
                reconciled_prices[key] = result.listing.price
                active_keys.add(key)
                if result.outcome == ReconcileOutcome.NEW and key not in new_keys:
                    new_keys.add(key)
                    summary.new_listings.append(result.listing)

        if summary.store_failures:
            self.notifier.notify_error(f"Failed to save {summary.store_failures} listing(s)", "database")

        try:
            self.notifier.notify_new(summary.new_listings)
        except NotificationError as e:
            logger.error(f"Failed to send new listing notifications: {e}")
            summary.errors.append(f"Notification failed: {e}")

        if not search_terms:
            logger.info("Skipping deactivation sweep: no artist or album terms to search")
        elif summary.failed_terms:
            logger.info("Skipping deactivation sweep: not every term was searched")
        elif self.deactivate_missing:
            try:
                summary.deactivated = self.store.mark_inactive_except(active_keys)
            except StoreError as e:
                logger.error(f"Deactivation sweep failed: {e}")
                summary.errors.append(f"Deactivation sweep failed: {e}")

        logger.info(f"Found {len(summary.new_listings)} new listings")

    def _search_with_retries(self, term: str) -> list[dict]:
        """Search one term, retrying temporary failures up to max_retries times."""
        for attempt in range(1, self.max_retries + 1):
            try:
                return self.client.search(term)
            except TemporaryFetchError as e:
                if attempt == self.max_retries:
                    raise
                logger.warning(f"Temporary failure for '{term}' (attempt {attempt}/{self.max_retries}): {e}")
                self._sleep(self.delay_seconds)
        return []

    def _reconcile_one(
        self,
        listing: Listing,
        preferences: list[PreferenceTerm],
        summary: PassSummary,
    ) -> Optional[ReconcileResult]:
        """Reconcile one listing; a store failure only affects this listing."""
        try:
            result = self.engine.reconcile(listing, preferences)
        except StoreError as e:
            logger.error(f"Store failure for {listing.identity_key}: {e}")
            summary.errors.append(f"Store failure for {listing.artist_display} - {listing.title_display}: {e}")
            summary.store_failures += 1
            return None

        if result.errors:
            summary.errors.extend(result.errors)
            summary.store_failures += 1
        summary.count(result.outcome)
        return result


# =============================================================================
# BUILDERS
# =============================================================================

def build_marketplace_client(
    scraping_config: Optional[ScrapingConfig] = None,
    discogs_config: Optional[DiscogsConfig] = None,
) -> MarketplaceClient:
    """Create the marketplace client selected by scraping.source."""
    scraping_config = scraping_config or get_scraping_config()
    if scraping_config.source == "synthetic":
        logger.warning("Using synthetic marketplace data - listings are not real")
        return SyntheticMarketplaceClient()
    return DiscogsClient(discogs_config or get_discogs_config(), scraping_config)


def build_reconciliation_pass(
    store: Optional[ListingStore] = None,
    client: Optional[MarketplaceClient] = None,
    notifier: Optional[Notifier] = None,
    scraping_config: Optional[ScrapingConfig] = None,
) -> ReconciliationPass:
    """Wire a ReconciliationPass from configuration, filling in defaults."""
    scraping_config = scraping_config or get_scraping_config()
    return ReconciliationPass(
        store=store or get_db(),
        client=client or build_marketplace_client(scraping_config),
        notifier=notifier or TelegramNotifier(get_telegram_config()),
        delay_seconds=scraping_config.delay_seconds,
        max_retries=scraping_config.max_retries,
        deactivate_missing=scraping_config.deactivate_missing,
        include_price_in_key=scraping_config.identity_includes_price,
    )


# =============================================================================
# PREFERENCE FUNCTIONS
# =============================================================================

def seed_preferences(store: ListingStore, preferences: Optional[PreferencesConfig] = None) -> int:
    """
    Seed preference terms from configuration if the store has none.

    Returns:
        Number of terms added (0 if the store already had terms)
    """
    if store.list_preferences():
        return 0

    preferences = preferences or get_preferences_config()
    terms = preferences.to_terms()
    for term in terms:
        store.add_preference(term)

    logger.info(f"Seeded {len(terms)} preference terms")
    return len(terms)


def add_preference(store: ListingStore, term_type: str, value: str) -> bool:
    """
    Add one preference term unless an equal one exists.

    Returns:
        True if the term was added
    """
    term = PreferenceTerm(type=PreferenceType(term_type), value=normalize_text(value))
    if not term.value:
        raise ValueError("Preference value must not be empty")

    existing = {(p.type, normalize_text(p.value)) for p in store.list_preferences()}
    if (term.type, term.value) in existing:
        logger.info(f"Preference already exists: {term.type.value} '{term.value}'")
        return False

    store.add_preference(term)
    return True


# =============================================================================
# CLI ENTRY POINT
# =============================================================================

def main(argv: Optional[list[str]] = None) -> int:
    """CLI entry point for running passes and managing preferences."""
    import argparse

    from .logging_config import configure_logging

    parser = argparse.ArgumentParser(description="Vinyl Alerts Pipeline")
    parser.add_argument(
        "--run",
        action="store_true",
        help="Run one reconciliation pass"
    )
    parser.add_argument(
        "--seed",
        action="store_true",
        help="Seed preference terms from the config file if none are stored"
    )
    parser.add_argument(
        "--add-preference",
        nargs=2,
        metavar=("TYPE", "VALUE"),
        help="Add a preference term (TYPE is artist, genre or album)"
    )
    parser.add_argument(
        "--list-preferences",
        action="store_true",
        help="List stored preference terms"
    )
    parser.add_argument(
        "--history",
        metavar="IDENTITY_KEY",
        help="Show the price history of a listing"
    )
    parser.add_argument(
        "--setup",
        action="store_true",
        help="Interactively write the preferences config file"
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Logging level"
    )

    args = parser.parse_args(argv)
    configure_logging(args.log_level)

    try:
        if args.setup:
            from .setup_wizard import run_setup
            return 0 if run_setup() else 1

        if args.add_preference:
            term_type, value = args.add_preference
            if term_type not in {t.value for t in PreferenceType}:
                parser.error(f"TYPE must be one of: artist, genre, album (got {term_type})")
            added = add_preference(get_db(), term_type, value)
            print("Added." if added else "Already present.")
            return 0

        if args.list_preferences:
            for term in get_db().list_preferences():
                print(f"{term.type.value:<7} {term.value}")
            return 0

        if args.history:
            for observation in get_db().get_price_history(args.history):
                print(f"{observation.recorded_at.isoformat()}  {observation.price} {observation.currency}")
            return 0

        if args.seed:
            added = seed_preferences(get_db())
            print(f"Seeded {added} preference terms")
            return 0

        if args.run:
            seed_preferences(get_db())
            summary = build_reconciliation_pass().run()
            print(f"Pass complete: {summary.to_dict()}")
            return 0 if summary.success else 1

    except VinylAlertsError as e:
        logger.error(f"{type(e).__name__}: {e.message}")
        return 1

    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
