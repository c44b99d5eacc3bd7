"""
Vinyl Alerts - Marketplace Listing Reconciliation

A system that watches a vinyl marketplace for records matching the user's
artists and albums, remembers every listing it has seen, tracks price
changes, and alerts only on listings it has never seen before.

Modules:
- config: Configuration file and environment variables
- exceptions: Error hierarchy
- models: Canonical data models (dataclasses)
- normalization: Text normalization and listing identity keys
- reconciliation: Relevance test and new/seen/price-changed decisions
- ports: Store and notifier interfaces
- db: Supabase integration for storage
- sources: Marketplace clients (Discogs, synthetic)
- alerts: Send Telegram alerts
- pipeline: Reconciliation pass orchestration
- scheduler: APScheduler setup for periodic passes
- setup_wizard: Interactive config file setup
"""

__version__ = "0.1.0"

# Convenient imports
from .exceptions import (
    VinylAlertsError,
    ConfigurationError,
    FetchError,
    TemporaryFetchError,
    PermanentFetchError,
    StoreError,
    NotificationError,
    PassAlreadyRunningError,
)
from .models import (
    Listing,
    PriceObservation,
    PreferenceTerm,
    PreferenceType,
    ReconcileOutcome,
)
from .normalization import normalize_text, identity_key, normalize_listings, ListingNormalizer
from .reconciliation import is_relevant, ReconciliationEngine, ReconcileResult
from .alerts import TelegramNotifier
from .pipeline import ReconciliationPass, PassSummary, build_reconciliation_pass, seed_preferences

__all__ = [
    # Errors
    "VinylAlertsError",
    "ConfigurationError",
    "FetchError",
    "TemporaryFetchError",
    "PermanentFetchError",
    "StoreError",
    "NotificationError",
    "PassAlreadyRunningError",
    # Models
    "Listing",
    "PriceObservation",
    "PreferenceTerm",
    "PreferenceType",
    "ReconcileOutcome",
    # Normalization
    "normalize_text",
    "identity_key",
    "normalize_listings",
    "ListingNormalizer",
    # Reconciliation
    "is_relevant",
    "ReconciliationEngine",
    "ReconcileResult",
    # Alerts
    "TelegramNotifier",
    # Pipeline
    "ReconciliationPass",
    "PassSummary",
    "build_reconciliation_pass",
    "seed_preferences",
]
