"""
Base marketplace client for record listing sources.

All clients inherit from MarketplaceClient and implement:
- fetch_listings(term): get raw candidate dicts for a search term

A raw candidate is a dict with the keys:
    title, artist, seller, price, currency, condition, sleeve_condition,
    shipping_fee, url, source, ships_to_destination
It is not normalized or keyed yet; the pipeline does that on ingestion.
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import Callable, Optional
import requests

from ..exceptions import PermanentFetchError, TemporaryFetchError

logger = logging.getLogger(__name__)


class MarketplaceClient(ABC):
    """
    Abstract base class for marketplace clients.

    Provides common functionality:
    - HTTP requests with rate limiting
    - Bounded retries with backoff
    - Mapping of HTTP failures to temporary/permanent fetch errors

    Subclasses must implement:
    - source: Identifier stored on every listing (e.g. "discogs")
    - fetch_listings(): Get raw candidates for a term
    """

    source: str  # Subclass must set this

    def __init__(
        self,
        request_timeout: int = 30,
        request_delay: float = 0.0,
        max_attempts: int = 3,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize the client."""
        self.request_timeout = request_timeout
        self.request_delay = request_delay
        self.max_attempts = max_attempts
        self.session = session or requests.Session()
        self._sleep = sleep
        self._last_request_time: float = 0

    def _rate_limit(self) -> None:
        """Enforce a minimum interval between requests."""
        elapsed = time.time() - self._last_request_time
        if elapsed < self.request_delay:
            self._sleep(self.request_delay - elapsed)
        self._last_request_time = time.time()

    def _get_json(self, url: str, params: Optional[dict] = None) -> dict:
        """
        GET a JSON document with rate limiting and retries.

        429 responses back off exponentially (2, 4, 8... seconds); 5xx
        responses and connection errors back off linearly (1, 2, 3... seconds).

        Args:
            url: The URL to fetch
            params: Query parameters

        Returns:
            Decoded JSON body

        Raises:
            TemporaryFetchError: rate limit, server or network errors after all attempts
            PermanentFetchError: other 4xx responses or a non-JSON body
        """
        for attempt in range(1, self.max_attempts + 1):
            self._rate_limit()
            last_attempt = attempt == self.max_attempts

            try:
                response = self.session.get(url, params=params, timeout=self.request_timeout)
            except requests.RequestException as e:
                if last_attempt:
                    raise TemporaryFetchError(f"Request failed for {url}: {e}") from e
                logger.warning(f"Request failed for {url}, retrying in {attempt}s: {e}")
                self._sleep(attempt)
                continue

            status = response.status_code

            if status == 429:
                if last_attempt:
                    raise TemporaryFetchError(f"Rate limited by {url}", detail=status)
                wait = 2 ** attempt
                logger.warning(f"Rate limited, waiting {wait}s before retry {attempt}/{self.max_attempts}")
                self._sleep(wait)
                continue

            if status >= 500:
                if last_attempt:
                    raise TemporaryFetchError(f"Server error {status} from {url}", detail=status)
                logger.warning(f"Server error {status} from {url}, retrying in {attempt}s")
                self._sleep(attempt)
                continue

            if status >= 400:
                raise PermanentFetchError(f"HTTP {status} from {url}", detail=status)

            try:
                return response.json()
            except ValueError as e:
                raise PermanentFetchError(f"Invalid JSON from {url}") from e

        # Only reachable with max_attempts < 1
        raise TemporaryFetchError(f"No request attempted for {url}")

    @abstractmethod
    def fetch_listings(self, term: str) -> list[dict]:
        """
        Fetch raw candidates for a search term.

        Returns:
            List of raw candidate dictionaries (not yet normalized)
        """
        pass

    def search(self, term: str) -> list[dict]:
        """
        Main entry point: fetch candidates for one preference term.

        Fetch errors are raised to the caller so it can tell a temporary
        failure from a permanent one.
        """
        logger.info(f"Searching {self.source} for '{term}'")
        items = self.fetch_listings(term)
        logger.info(f"Found {len(items)} candidates on {self.source} for '{term}'")
        return items
