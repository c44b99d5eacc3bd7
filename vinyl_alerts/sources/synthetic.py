"""
Synthetic marketplace client for demos and dry runs.

Generates plausible listings for a search term without any network access.
Output is deterministic for a given (seed, term), so repeated passes see the
same offers again, the way a quiet real marketplace would.
"""

import random
from datetime import datetime
from typing import Optional

from .base import MarketplaceClient
from ..models import CONDITION_GRADES

SYNTHETIC_ALBUM_TITLES = [
    "Greatest Hits",
    "Live At The BBC",
    "Anthology",
    "The Early Sessions",
    "Rarities",
    "Unplugged",
]

# Only the better grades show up in synthetic data
SYNTHETIC_CONDITIONS = CONDITION_GRADES[:5]


class SyntheticMarketplaceClient(MarketplaceClient):
    """
    Marketplace client that invents listings.

    Prices follow the same rough model as collectors' pricing: older
    releases cost more, and better media grades carry a premium.
    """

    source = "synthetic"

    def __init__(self, listings_per_term: int = 3, seed: Optional[str] = "vinyl-alerts", **kwargs):
        super().__init__(**kwargs)
        self.listings_per_term = listings_per_term
        self.seed = seed

    def fetch_listings(self, term: str) -> list[dict]:
        """Create listings_per_term candidates for a term."""
        rng = random.Random(f"{self.seed}:{term.lower()}") if self.seed is not None else random.Random()
        artist = term.strip().title() or "Unknown Artist"
        return [self._create_listing(rng, artist) for _ in range(self.listings_per_term)]

    def _create_listing(self, rng: random.Random, artist: str) -> dict:
        """Create one candidate with a price based on age and condition."""
        title = rng.choice(SYNTHETIC_ALBUM_TITLES)
        release_year = rng.randint(1965, 2015)
        age = datetime.now().year - release_year

        base_price = max(15.0, min(150.0, 25 + age * 0.5 + rng.random() * 30))
        condition = rng.choice(SYNTHETIC_CONDITIONS)
        if condition.startswith("Mint"):
            multiplier = 1.4
        elif condition.startswith("Near Mint"):
            multiplier = 1.2
        elif "VG+" in condition:
            multiplier = 1.0
        else:
            multiplier = 0.8

        release_id = rng.randint(100000, 9999999)
        return {
            "title": title,
            "artist": artist,
            "seller": f"VinylCollector{rng.randint(0, 9999)}",
            "price": int(base_price * multiplier),
            "currency": "USD",
            "condition": condition,
            "sleeve_condition": None,
            "shipping_fee": rng.randint(8, 19),
            "url": f"https://www.discogs.com/release/{release_id}",
            "source": self.source,
            "ships_to_destination": True,
        }
