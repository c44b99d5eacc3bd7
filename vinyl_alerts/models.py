"""
Data models for Vinyl Alerts.

Defines the canonical dataclasses that marketplace candidates normalize into,
plus the records the listing store persists (listings, price observations,
preference terms).
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional
import uuid


def utcnow() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def _parse_datetime(value) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


def _parse_decimal(value) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


class PreferenceType(str, Enum):
    """Kinds of user interest terms."""
    ARTIST = "artist"
    GENRE = "genre"
    ALBUM = "album"


class ReconcileOutcome(str, Enum):
    """What reconciliation decided for one candidate listing."""
    NEW = "new"                       # First sighting, inserted
    SEEN_AGAIN = "seen_again"         # Known listing, same price
    PRICE_CHANGED = "price_changed"   # Known listing, new price observed
    SKIPPED = "skipped"               # Not relevant to any preference


# Discogs media condition grades, best to worst
CONDITION_GRADES = [
    "Mint (M)",
    "Near Mint (NM or M-)",
    "Very Good Plus (VG+)",
    "Very Good (VG)",
    "Good Plus (G+)",
    "Good (G)",
    "Fair (F)",
    "Poor (P)",
]


@dataclass
class Listing:
    """
    Canonical representation of one marketplace sale offer.

    The *_display fields keep the text as the marketplace returned it; the
    plain fields hold the normalized form used for matching and the key.
    """
    identity_key: str

    # Normalized text
    title: str
    artist: str
    seller: str

    # Display text
    title_display: str
    artist_display: str
    seller_display: str

    # Pricing
    price: Decimal
    currency: str = "USD"
    shipping_fee: Optional[Decimal] = None

    condition: str = ""
    sleeve_condition: Optional[str] = None

    url: str = ""
    source: str = "discogs"
    ships_to_destination: bool = True

    # Tracking
    listing_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    first_seen: datetime = field(default_factory=utcnow)
    last_seen: datetime = field(default_factory=utcnow)
    is_active: bool = True

    def to_dict(self) -> dict:
        """Convert to dictionary for storage."""
        return {
            "listing_id": self.listing_id,
            "identity_key": self.identity_key,
            "title": self.title,
            "title_display": self.title_display,
            "artist": self.artist,
            "artist_display": self.artist_display,
            "seller": self.seller,
            "seller_display": self.seller_display,
            "price": str(self.price),
            "currency": self.currency,
            "shipping_fee": str(self.shipping_fee) if self.shipping_fee is not None else None,
            "condition": self.condition,
            "sleeve_condition": self.sleeve_condition,
            "url": self.url,
            "source": self.source,
            "ships_to_destination": self.ships_to_destination,
            "first_seen": self.first_seen.isoformat(),
            "last_seen": self.last_seen.isoformat(),
            "is_active": self.is_active,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Listing":
        """Create from dictionary (e.g., from database)."""
        return cls(
            listing_id=data["listing_id"],
            identity_key=data["identity_key"],
            title=data["title"],
            title_display=data.get("title_display", data["title"]),
            artist=data["artist"],
            artist_display=data.get("artist_display", data["artist"]),
            seller=data["seller"],
            seller_display=data.get("seller_display", data["seller"]),
            price=_parse_decimal(data["price"]),
            currency=data.get("currency", "USD"),
            shipping_fee=_parse_decimal(data.get("shipping_fee")),
            condition=data.get("condition", ""),
            sleeve_condition=data.get("sleeve_condition"),
            url=data.get("url", ""),
            source=data.get("source", "discogs"),
            ships_to_destination=data.get("ships_to_destination", True),
            first_seen=_parse_datetime(data.get("first_seen")) or utcnow(),
            last_seen=_parse_datetime(data.get("last_seen")) or utcnow(),
            is_active=data.get("is_active", True),
        )


@dataclass(frozen=True)
class PriceObservation:
    """One timestamped price sample for a listing. Append-only."""
    identity_key: str
    price: Decimal
    currency: str = "USD"
    recorded_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        return {
            "identity_key": self.identity_key,
            "price": str(self.price),
            "currency": self.currency,
            "recorded_at": self.recorded_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PriceObservation":
        return cls(
            identity_key=data["identity_key"],
            price=_parse_decimal(data["price"]),
            currency=data.get("currency", "USD"),
            recorded_at=_parse_datetime(data.get("recorded_at")) or utcnow(),
        )


@dataclass
class PreferenceTerm:
    """A user interest: an artist, genre or album name."""
    type: PreferenceType
    value: str
    created_at: datetime = field(default_factory=utcnow)
    id: Optional[int] = None

    def to_dict(self) -> dict:
        data = {
            "type": self.type.value,
            "value": self.value,
            "created_at": self.created_at.isoformat(),
        }
        if self.id is not None:
            data["id"] = self.id
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "PreferenceTerm":
        return cls(
            type=PreferenceType(data["type"]),
            value=data["value"],
            created_at=_parse_datetime(data.get("created_at")) or utcnow(),
            id=data.get("id"),
        )
