from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional

import pytest

from vinyl_alerts.config import reset_config_cache
from vinyl_alerts.exceptions import NotificationError, StoreError
from vinyl_alerts.models import Listing, PreferenceTerm, PreferenceType, PriceObservation
from vinyl_alerts.sources.base import MarketplaceClient


class FakeStore:
    def __init__(self) -> None:
        self.listings: dict[str, Listing] = {}
        self.history: list[PriceObservation] = []
        self.preferences: list[PreferenceTerm] = []
        self.calls: list[str] = []
        self.fail_on: set[str] = set()
        self.fail_keys: set[str] = set()

    def _record(self, name: str, identity_key: Optional[str] = None) -> None:
        self.calls.append(name)
        if name in self.fail_on and (not self.fail_keys or identity_key in self.fail_keys):
            raise StoreError(f"{name} failed")

    @property
    def mutations(self) -> list[str]:
        return [c for c in self.calls if c not in ("get_listing", "list_preferences")]

    def get_listing(self, identity_key: str) -> Optional[Listing]:
        self._record("get_listing", identity_key)
        return self.listings.get(identity_key)

    def upsert_listing(self, listing: Listing) -> None:
        self._record("upsert_listing", listing.identity_key)
        self.listings[listing.identity_key] = listing

    def mark_last_seen(self, identity_key: str, timestamp: datetime) -> None:
        self._record("mark_last_seen", identity_key)
        listing = self.listings[identity_key]
        self.listings[identity_key] = replace(listing, last_seen=timestamp, is_active=True)

    def update_price(self, identity_key: str, price, currency: str) -> None:
        self._record("update_price", identity_key)
        listing = self.listings[identity_key]
        self.listings[identity_key] = replace(listing, price=price, currency=currency)

    def mark_inactive_except(self, active_keys: set[str]) -> int:
        self._record("mark_inactive_except")
        count = 0
        for key, listing in list(self.listings.items()):
            if listing.is_active and key not in active_keys:
                self.listings[key] = replace(listing, is_active=False)
                count += 1
        return count

    def append_price_observation(self, observation: PriceObservation) -> None:
        self._record("append_price_observation", observation.identity_key)
        self.history.append(observation)

    def list_preferences(self) -> list[PreferenceTerm]:
        self._record("list_preferences")
        return list(self.preferences)

    def add_preference(self, term: PreferenceTerm) -> None:
        self._record("add_preference")
        self.preferences.append(term)


class FakeNotifier:
    def __init__(self, fail: bool = False) -> None:
        self.batches: list[list[Listing]] = []
        self.errors: list[tuple[str, str]] = []
        self.fail = fail

    def notify_new(self, listings) -> None:
        self.batches.append(list(listings))
        if self.fail:
            raise NotificationError("telegram down")

    def notify_error(self, message: str, source_tag: str) -> None:
        self.errors.append((message, source_tag))


class FakeClient(MarketplaceClient):
    """Returns canned candidates per term; queued failures for a term are raised first."""

    source = "fake"

    def __init__(self, results: Optional[dict] = None, failures: Optional[dict] = None) -> None:
        super().__init__(sleep=lambda seconds: None)
        self.results: dict[str, list[dict]] = results or {}
        self.failures: dict[str, list[Exception]] = failures or {}
        self.searched: list[str] = []

    def fetch_listings(self, term: str) -> list[dict]:
        self.searched.append(term)
        queued = self.failures.get(term)
        if queued:
            raise queued.pop(0)
        return [dict(raw) for raw in self.results.get(term, [])]


class StepClock:
    """Clock that advances one minute per call."""

    def __init__(self, start: Optional[datetime] = None) -> None:
        self.now = start or datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        current = self.now
        self.now = self.now + timedelta(minutes=1)
        return current


def candidate(
    title: str = "The Dark Side of the Moon",
    artist: str = "Pink Floyd",
    seller: str = "alice",
    price="25.00",
    **extra,
) -> dict:
    raw = {
        "title": title,
        "artist": artist,
        "seller": seller,
        "price": price,
        "currency": "USD",
        "condition": "Near Mint (NM or M-)",
        "url": "https://www.discogs.com/sell/item/1",
        "source": "discogs",
    }
    raw.update(extra)
    return raw


def artist_term(value: str) -> PreferenceTerm:
    return PreferenceTerm(type=PreferenceType.ARTIST, value=value)


def album_term(value: str) -> PreferenceTerm:
    return PreferenceTerm(type=PreferenceType.ALBUM, value=value)


def genre_term(value: str) -> PreferenceTerm:
    return PreferenceTerm(type=PreferenceType.GENRE, value=value)


def make_listing(key: str = "k1", price: str = "25", **extra) -> Listing:
    fields = dict(
        identity_key=key,
        title="the dark side of the moon",
        artist="pink floyd",
        seller="alice",
        title_display="The Dark Side of the Moon",
        artist_display="Pink Floyd",
        seller_display="alice",
        price=Decimal(price),
    )
    fields.update(extra)
    return Listing(**fields)


@pytest.fixture(autouse=True)
def _isolated_config(monkeypatch, tmp_path):
    for name in (
        "TELEGRAM_BOT_TOKEN",
        "TELEGRAM_CHAT_ID",
        "DISCOGS_TOKEN",
        "DISCOGS_USER_AGENT",
        "MARKETPLACE_SOURCE",
        "LOG_FILE",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("PREFERENCES_PATH", str(tmp_path / "preferences.json"))
    reset_config_cache()
    yield
    reset_config_cache()


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()
