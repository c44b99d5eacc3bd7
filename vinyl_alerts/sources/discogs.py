"""
Discogs marketplace client.

Searches the Discogs database for vinyl releases matching a term, then pulls
the marketplace listings for the first few releases.

Note: Discogs rate limits at 60 requests/minute with a token and 25 without,
so requests are spaced 1.1s (token) or 2s (anonymous) apart.
"""

import logging
from typing import Optional

from .base import MarketplaceClient
from ..config import DiscogsConfig, ScrapingConfig
from ..exceptions import FetchError, PermanentFetchError

logger = logging.getLogger(__name__)


# Seller ships_to entries that cover any destination
WORLDWIDE_MARKERS = [
    "worldwide",
    "world wide",
    "international",
    "everywhere",
    "global",
    "all countries",
]

METHOD_NOT_ALLOWED = 405


class DiscogsClient(MarketplaceClient):
    """
    Client for the Discogs API.

    Candidates come from /marketplace/listings for each release found by
    /database/search. Listings without price, seller or condition, or whose
    seller does not ship to the configured destination, are dropped.
    """

    source = "discogs"

    BASE_URL = "https://api.discogs.com"
    SITE_URL = "https://www.discogs.com"

    def __init__(
        self,
        discogs_config: DiscogsConfig,
        scraping_config: Optional[ScrapingConfig] = None,
        **kwargs,
    ):
        scraping_config = scraping_config or ScrapingConfig()
        kwargs.setdefault("request_timeout", scraping_config.request_timeout)
        kwargs.setdefault("max_attempts", scraping_config.max_retries)
        kwargs.setdefault("request_delay", 1.1 if discogs_config.token else 2.0)
        super().__init__(**kwargs)

        self.releases_per_search = scraping_config.releases_per_search
        self.ship_to = scraping_config.ship_to

        self.session.headers.update({
            "User-Agent": discogs_config.user_agent,
            "Accept": "application/json",
        })
        if discogs_config.token:
            self.session.headers["Authorization"] = f"Discogs token={discogs_config.token}"

    def search_releases(self, term: str) -> list[dict]:
        """Search the Discogs database for vinyl releases."""
        data = self._get_json(
            f"{self.BASE_URL}/database/search",
            params={"q": term, "type": "release", "format": "vinyl"},
        )
        return data.get("results") or []

    def get_marketplace_listings(self, release_id: int) -> list[dict]:
        """
        Get raw candidates for sale for one release.

        A 405 means the marketplace endpoint is not available for this
        release; that is treated as "no listings".
        """
        try:
            data = self._get_json(
                f"{self.BASE_URL}/marketplace/listings",
                params={"release_id": release_id, "format": "vinyl", "status": "For Sale"},
            )
        except PermanentFetchError as e:
            if e.detail == METHOD_NOT_ALLOWED:
                logger.info(f"Marketplace API not available for release {release_id}")
                return []
            raise

        listings = data.get("listings") or []
        return [self._convert_listing(listing) for listing in listings if self._is_valid_listing(listing)]

    def fetch_listings(self, term: str) -> list[dict]:
        """
        Fetch candidates for the first releases matching a term.

        Failures on individual releases are logged and skipped. If every
        release failed, the last error is raised.
        """
        releases = self.search_releases(term)[: self.releases_per_search]
        logger.info(f"Found {len(releases)} releases for '{term}'")

        all_items: list[dict] = []
        last_error: Optional[FetchError] = None
        failures = 0

        for release in releases:
            release_id = release.get("id")
            if release_id is None:
                continue
            try:
                all_items.extend(self.get_marketplace_listings(release_id))
            except FetchError as e:
                logger.error(f"Error getting listings for release {release_id}: {e}")
                last_error = e
                failures += 1

        if releases and failures == len(releases) and last_error is not None:
            raise last_error

        return all_items

    def _is_valid_listing(self, listing: dict) -> bool:
        """Check required fields and the seller's shipping policy."""
        if not listing.get("price") or not listing.get("seller") or not listing.get("condition"):
            return False
        return self._ships_to_destination(listing)

    def _ships_to_destination(self, listing: dict) -> bool:
        """
        Check whether the seller ships to the configured destination.

        Sellers without a shipping policy are assumed to ship (many never
        fill it in).
        """
        policy = listing.get("seller", {}).get("shipping_policy") or {}
        ships_to = policy.get("ships_to") or []
        if not ships_to:
            return True

        for country in ships_to:
            country_lower = str(country).lower()
            if self.ship_to and self.ship_to in country_lower:
                return True
            if any(marker in country_lower for marker in WORLDWIDE_MARKERS):
                return True
        return False

    def _convert_listing(self, listing: dict) -> dict:
        """Map a Discogs marketplace listing to a raw candidate dict."""
        info = listing.get("release", {}).get("basic_information", {})
        artists = ", ".join(a.get("name", "") for a in info.get("artists", []) if a.get("name"))
        shipping = listing.get("shipping_price") or {}
        uri = listing.get("uri", "")
        url = uri if uri.startswith("http") else f"{self.SITE_URL}{uri}"

        return {
            "title": info.get("title", ""),
            "artist": artists,
            "seller": listing["seller"].get("username", ""),
            "price": listing["price"].get("value"),
            "currency": listing["price"].get("currency", "USD"),
            "condition": listing.get("condition", ""),
            "sleeve_condition": listing.get("sleeve_condition"),
            "shipping_fee": shipping.get("value"),
            "url": url,
            "source": self.source,
            "ships_to_destination": True,
        }
