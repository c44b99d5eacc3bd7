"""
Sources package - Marketplace clients for record listings.

Each client:
1. Searches its marketplace for a preference term
2. Maps results to raw candidate dicts
3. Raises TemporaryFetchError / PermanentFetchError on failure
"""

from .base import MarketplaceClient
from .discogs import DiscogsClient
from .synthetic import SyntheticMarketplaceClient

__all__ = [
    "MarketplaceClient",
    "DiscogsClient",
    "SyntheticMarketplaceClient",
]
