"""
Normalization module for Vinyl Alerts.

Canonicalizes free text, derives the identity key that deduplicates listings,
and maps raw marketplace candidates into the canonical Listing schema.
"""

import re
import base64
import logging
from decimal import Decimal, InvalidOperation
from typing import Optional

from .models import Listing, utcnow

logger = logging.getLogger(__name__)


_WHITESPACE_RE = re.compile(r"\s+")


# =============================================================================
# TEXT AND KEY HELPERS
# =============================================================================

def normalize_text(text: Optional[str]) -> str:
    """
    Trim, lowercase and collapse whitespace runs to a single space.

    Idempotent: normalize_text(normalize_text(x)) == normalize_text(x).
    """
    if not text:
        return ""
    return _WHITESPACE_RE.sub(" ", text.strip().lower())


def format_price(price) -> str:
    """
    Render a price as canonical decimal text.

    50, 50.0 and "50.00" all render "50"; 49.90 renders "49.9".
    """
    value = price if isinstance(price, Decimal) else Decimal(str(price))
    text = format(value.normalize(), "f")
    return "0" if text in ("-0", "") else text


def identity_key(seller: str, price, title: str, include_price: bool = False) -> str:
    """
    Build the identity key for an offer.

    The intermediate string is "<seller>-<price>-<title>" (or "<seller>-<title>"
    when price is excluded), with seller and title normalized. It is then
    URL-safe base64 encoded, which is reversible and therefore collision-free.

    Args:
        seller: Seller name as listed
        price: Offer price (only used when include_price is True)
        title: Release title as listed
        include_price: Make the price part of the identity

    Returns:
        Opaque key string
    """
    if include_price:
        raw = f"{normalize_text(seller)}-{format_price(price)}-{normalize_text(title)}"
    else:
        raw = f"{normalize_text(seller)}-{normalize_text(title)}"
    return base64.urlsafe_b64encode(raw.encode("utf-8")).decode("ascii")


def decode_identity_key(key: str) -> str:
    """Return the intermediate "<seller>-...-<title>" string behind a key."""
    return base64.urlsafe_b64decode(key.encode("ascii")).decode("utf-8")


# =============================================================================
# NORMALIZER CLASS
# =============================================================================

class ListingNormalizer:
    """
    Normalizes raw marketplace candidates into canonical Listing objects.

    Usage:
        normalizer = ListingNormalizer()
        listings = normalizer.normalize_batch(raw_candidates)
    """

    def __init__(self, include_price_in_key: bool = False):
        self.include_price_in_key = include_price_in_key

    def normalize_batch(self, raw_items: list[dict]) -> list[Listing]:
        """
        Normalize a batch of raw candidates, dropping invalid ones.

        Args:
            raw_items: List of raw candidate dictionaries from a marketplace client

        Returns:
            List of normalized Listing objects
        """
        normalized = []

        for raw in raw_items:
            listing = self.normalize(raw)
            if listing:
                normalized.append(listing)

        logger.debug(f"Normalized {len(normalized)}/{len(raw_items)} candidates")
        return normalized

    def normalize(self, raw: dict) -> Optional[Listing]:
        """
        Normalize a single raw candidate into a Listing.

        Args:
            raw: Raw candidate dictionary

        Returns:
            Listing, or None when seller, title or a positive price is missing
        """
        title_display = self._clean_text(raw.get("title"))
        artist_display = self._clean_text(raw.get("artist"))
        seller_display = self._clean_text(raw.get("seller"))
        price = self._parse_price(raw.get("price"))

        if not title_display or not seller_display or price is None:
            logger.warning(
                f"Dropping candidate with missing title/seller/price: "
                f"{raw.get('url') or raw.get('title') or 'unknown'}"
            )
            return None

        now = utcnow()
        return Listing(
            identity_key=identity_key(
                seller_display, price, title_display, include_price=self.include_price_in_key
            ),
            title=normalize_text(title_display),
            artist=normalize_text(artist_display),
            seller=normalize_text(seller_display),
            title_display=title_display,
            artist_display=artist_display or "Unknown Artist",
            seller_display=seller_display,
            price=price,
            currency=(raw.get("currency") or "USD").upper(),
            shipping_fee=self._parse_price(raw.get("shipping_fee")),
            condition=self._clean_text(raw.get("condition")),
            sleeve_condition=self._clean_text(raw.get("sleeve_condition")) or None,
            url=raw.get("url", ""),
            source=raw.get("source", "discogs"),
            ships_to_destination=raw.get("ships_to_destination", True),
            first_seen=now,
            last_seen=now,
            is_active=True,
        )

    def _clean_text(self, text) -> str:
        """Collapse whitespace but keep case, for display."""
        if not text:
            return ""
        return _WHITESPACE_RE.sub(" ", str(text)).strip()

    def _parse_price(self, value) -> Optional[Decimal]:
        """Parse price from number or "$1,234.50"-style text."""
        if value is None or isinstance(value, bool):
            return None

        if isinstance(value, str):
            value = re.sub(r"[,$€£\s]", "", value)

        try:
            price = Decimal(str(value))
        except InvalidOperation:
            return None

        if not price.is_finite() or price <= 0:
            return None
        return price


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================

def normalize_listings(raw_items: list[dict], include_price_in_key: bool = False) -> list[Listing]:
    """
    Convenience function to normalize candidates.

    Args:
        raw_items: List of raw candidate dictionaries
        include_price_in_key: Make the price part of each identity key

    Returns:
        List of normalized Listing objects
    """
    normalizer = ListingNormalizer(include_price_in_key=include_price_in_key)
    return normalizer.normalize_batch(raw_items)
