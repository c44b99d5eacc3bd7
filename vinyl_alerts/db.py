"""
Supabase database integration module.

Implements the ListingStore interface on top of three tables
(see schema.sql):
- vinyl_listings: one row per identity key, soft-deleted via is_active
- price_history: append-only price observations
- user_preferences: artist/genre/album interest terms

Every method is a single Supabase request, so each is atomic on its own.
Any client failure is re-raised as StoreError.
"""

import logging
from datetime import datetime
from typing import Optional
from supabase import create_client, Client

from .config import get_supabase_config
from .exceptions import ConfigurationError, StoreError
from .models import Listing, PreferenceTerm, PriceObservation
from .normalization import normalize_text

logger = logging.getLogger(__name__)


LISTINGS_TABLE = "vinyl_listings"
PRICE_HISTORY_TABLE = "price_history"
PREFERENCES_TABLE = "user_preferences"

KEY_PAGE_SIZE = 1000
SWEEP_CHUNK_SIZE = 100


class Database:
    """
    Supabase database client wrapper.

    Provides the listing store operations needed by the reconciliation engine,
    plus a few read helpers for the CLI.
    """

    def __init__(self, client: Optional[Client] = None):
        """Initialize Supabase client (or use the one given)."""
        if client is None:
            config = get_supabase_config()
            if not config.url or not config.key:
                raise ConfigurationError("Supabase URL and key must be set in environment variables")
            client = create_client(config.url, config.key)
        self._client: Client = client

    @property
    def client(self) -> Client:
        """Get the Supabase client."""
        return self._client

    def _execute(self, query, action: str):
        """Run a query builder, wrapping client failures in StoreError."""
        try:
            return query.execute()
        except Exception as e:
            raise StoreError(f"Failed to {action}: {e}") from e

    # =========================================================================
    # LISTING OPERATIONS
    # =========================================================================

    def get_listing(self, identity_key: str) -> Optional[Listing]:
        """Get a listing by identity key, or None if it was never stored."""
        result = self._execute(
            self._client.table(LISTINGS_TABLE).select("*").eq("identity_key", identity_key).limit(1),
            f"get listing {identity_key}",
        )
        if not result.data:
            return None
        return Listing.from_dict(result.data[0])

    def upsert_listing(self, listing: Listing) -> None:
        """Insert a listing, or overwrite the row with the same identity key."""
        self._execute(
            self._client.table(LISTINGS_TABLE).upsert(listing.to_dict(), on_conflict="identity_key"),
            f"upsert listing {listing.identity_key}",
        )
        logger.debug(f"Upserted listing: {listing.identity_key}")

    def mark_last_seen(self, identity_key: str, timestamp: datetime) -> None:
        """Record a sighting: bump last_seen and mark the listing active."""
        self._execute(
            self._client.table(LISTINGS_TABLE)
            .update({"last_seen": timestamp.isoformat(), "is_active": True})
            .eq("identity_key", identity_key),
            f"mark listing {identity_key} seen",
        )

    def update_price(self, identity_key: str, price, currency: str) -> None:
        """Set the current price of a stored listing."""
        self._execute(
            self._client.table(LISTINGS_TABLE)
            .update({"price": str(price), "currency": currency})
            .eq("identity_key", identity_key),
            f"update price of listing {identity_key}",
        )

    def mark_inactive_except(self, active_keys: set[str]) -> int:
        """
        Soft-delete every active listing whose key is not in active_keys.

        Active keys are read page by page and the stale ones are updated in
        chunks, so no request carries the whole key set.

        Returns:
            Number of listings marked inactive
        """
        stale = sorted(set(self._active_keys()) - set(active_keys))

        count = 0
        for start in range(0, len(stale), SWEEP_CHUNK_SIZE):
            chunk = stale[start:start + SWEEP_CHUNK_SIZE]
            result = self._execute(
                self._client.table(LISTINGS_TABLE)
                .update({"is_active": False})
                .eq("is_active", True)
                .in_("identity_key", chunk),
                "mark missing listings inactive",
            )
            count += len(result.data or [])

        logger.info(f"Marked {count} listings inactive")
        return count

    def _active_keys(self) -> list[str]:
        """Identity keys of all active listings, fetched in pages."""
        keys: list[str] = []
        start = 0
        while True:
            result = self._execute(
                self._client.table(LISTINGS_TABLE)
                .select("identity_key")
                .eq("is_active", True)
                .order("identity_key")
                .range(start, start + KEY_PAGE_SIZE - 1),
                "list active listing keys",
            )
            rows = result.data or []
            keys.extend(row["identity_key"] for row in rows)
            if len(rows) < KEY_PAGE_SIZE:
                return keys
            start += KEY_PAGE_SIZE

    def list_active_listings(self) -> list[Listing]:
        """Get all active listings, most recently seen first."""
        result = self._execute(
            self._client.table(LISTINGS_TABLE).select("*").eq("is_active", True).order("last_seen", desc=True),
            "list active listings",
        )
        return [Listing.from_dict(row) for row in result.data]

    # =========================================================================
    # PRICE HISTORY OPERATIONS
    # =========================================================================

    def append_price_observation(self, observation: PriceObservation) -> None:
        """Append one price observation."""
        self._execute(
            self._client.table(PRICE_HISTORY_TABLE).insert(observation.to_dict()),
            f"record price for {observation.identity_key}",
        )

    def get_price_history(self, identity_key: str) -> list[PriceObservation]:
        """Get all price observations for a listing, oldest first."""
        result = self._execute(
            self._client.table(PRICE_HISTORY_TABLE)
            .select("*")
            .eq("identity_key", identity_key)
            .order("recorded_at"),
            f"get price history for {identity_key}",
        )
        return [PriceObservation.from_dict(row) for row in result.data]

    # =========================================================================
    # PREFERENCE OPERATIONS
    # =========================================================================

    def list_preferences(self) -> list[PreferenceTerm]:
        """Get all preference terms in insertion order."""
        result = self._execute(
            self._client.table(PREFERENCES_TABLE).select("*").order("id"),
            "list preferences",
        )
        return [PreferenceTerm.from_dict(row) for row in result.data]

    def add_preference(self, term: PreferenceTerm) -> None:
        """Store a preference term with its value normalized."""
        data = term.to_dict()
        data.pop("id", None)
        data["value"] = normalize_text(term.value)
        self._execute(
            self._client.table(PREFERENCES_TABLE).insert(data),
            f"add {term.type.value} preference '{term.value}'",
        )
        logger.info(f"Added {term.type.value} preference: {data['value']}")


# Global database instance (lazy loaded)
_db: Optional[Database] = None


def get_db() -> Database:
    """Get database instance (singleton)."""
    global _db
    if _db is None:
        _db = Database()
    return _db
