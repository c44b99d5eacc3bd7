"""
Alert Sending module for Vinyl Alerts.

Sends Telegram messages (Bot API, HTML parse mode) when new listings are
found, and short error reports when a pass hits a problem.
"""

import html
import logging
from typing import Iterable, Optional
import requests

from .config import TelegramConfig
from .exceptions import ConfigurationError, NotificationError
from .models import Listing

logger = logging.getLogger(__name__)


# =============================================================================
# MESSAGE TEMPLATES
# =============================================================================

TELEGRAM_API_URL = "https://api.telegram.org/bot{token}/{method}"

# Telegram rejects messages over 4096 characters
MAX_MESSAGE_LENGTH = 4000
MAX_BATCH_LISTINGS = 10

LISTING_SEPARATOR = "\n━━━━━━━━━━━━━━━━━━━━━\n\n"

BATCH_HEADER = "🎵 <b>{count} New Vinyl Listings Found!</b>\n\n"

LISTING_FULL = (
    "🎵 <b>New Vinyl Found!</b>\n\n"
    "🎤 <b>Artist:</b> {artist}\n"
    "💿 <b>Album:</b> {title}\n"
    "💰 <b>Price:</b> {price}\n"
    "📦 <b>Shipping:</b> {shipping}\n"
    "📀 <b>Condition:</b> {condition}\n"
    "🏪 <b>Seller:</b> {seller}\n"
    "🌐 <b>Source:</b> {source}\n\n"
    "🔗 <a href=\"{url}\">View Listing</a>"
)

LISTING_COMPACT = (
    "🎵 <b>{artist}</b> - {title}\n"
    "💰 {price} | 📦 +{shipping}\n"
    "📀 {condition} | 🏪 {seller}\n"
    "🔗 <a href=\"{url}\">View Listing</a>"
)

ERROR_MESSAGE = (
    "❌ <b>Scraping Error</b>\n\n"
    "🔗 <b>Source:</b> {source}\n"
    "⚠️ <b>Error:</b> {error}\n\n"
    "⏰ Will retry in next scraping session."
)


def _template_vars(listing: Listing) -> dict:
    """Escaped display values for the listing templates."""
    shipping = (
        f"{listing.shipping_fee} {listing.currency}" if listing.shipping_fee is not None else "Unknown"
    )
    return {
        "artist": html.escape(listing.artist_display),
        "title": html.escape(listing.title_display),
        "price": html.escape(f"{listing.price} {listing.currency}"),
        "shipping": html.escape(shipping),
        "condition": html.escape(listing.condition or "Not graded"),
        "seller": html.escape(listing.seller_display),
        "source": html.escape(listing.source.capitalize()),
        "url": html.escape(listing.url, quote=True),
    }


def format_listing(listing: Listing, compact: bool = False) -> str:
    """Render one listing as a Telegram HTML message body."""
    template = LISTING_COMPACT if compact else LISTING_FULL
    return template.format(**_template_vars(listing))


def format_batch(listings: list[Listing]) -> list[str]:
    """
    Render a batch of listings as one or more messages.

    Up to MAX_BATCH_LISTINGS listings are shown as compact cards, split so
    no message exceeds MAX_MESSAGE_LENGTH. Any remainder is summarized as
    "... and N more listings".
    """
    if not listings:
        return []
    if len(listings) == 1:
        return [format_listing(listings[0])]

    header = BATCH_HEADER.format(count=len(listings))
    messages = []
    message = header

    for listing in listings[:MAX_BATCH_LISTINGS]:
        chunk = format_listing(listing, compact=True) + LISTING_SEPARATOR
        if len(message) + len(chunk) > MAX_MESSAGE_LENGTH and message != header:
            messages.append(message.rstrip())
            message = header
        message += chunk

    if len(listings) > MAX_BATCH_LISTINGS:
        message += f"... and {len(listings) - MAX_BATCH_LISTINGS} more listings"

    messages.append(message.rstrip())
    return messages


# =============================================================================
# TELEGRAM NOTIFIER CLASS
# =============================================================================

class TelegramNotifier:
    """
    Sends listing alerts and error reports to a Telegram chat.

    Usage:
        notifier = TelegramNotifier(get_telegram_config())
        notifier.notify_new(listings)
    """

    def __init__(self, config: TelegramConfig, session: Optional[requests.Session] = None):
        """Initialize the notifier."""
        if not config.bot_token or not config.chat_id:
            raise ConfigurationError("Telegram bot token and chat ID must be configured")
        self.config = config
        self.session = session or requests.Session()

    def _call(self, method: str, payload: Optional[dict] = None) -> dict:
        """Call a Bot API method and return its "result"."""
        url = TELEGRAM_API_URL.format(token=self.config.bot_token, method=method)
        try:
            response = self.session.post(url, json=payload or {}, timeout=self.config.request_timeout)
            body = response.json()
        except (requests.RequestException, ValueError) as e:
            raise NotificationError(f"Telegram {method} failed: {e}") from e

        if response.status_code != 200 or not body.get("ok"):
            raise NotificationError(
                f"Telegram {method} error {response.status_code}: {body.get('description', 'unknown error')}",
                detail=body,
            )
        return body.get("result", {})

    def send_message(self, text: str) -> None:
        """Send one HTML message to the configured chat."""
        self._call("sendMessage", {
            "chat_id": self.config.chat_id,
            "text": text,
            "parse_mode": "HTML",
            "disable_web_page_preview": True,
        })

    def notify_new(self, listings: Iterable[Listing]) -> None:
        """
        Send alerts for newly found listings.

        Sends nothing for an empty batch.

        Raises:
            NotificationError: if Telegram rejects or cannot be reached
        """
        listings = list(listings)
        messages = format_batch(listings)
        for message in messages:
            self.send_message(message)
        if listings:
            logger.info(f"Sent notifications for {len(listings)} new listings in {len(messages)} message(s)")

    def notify_error(self, message: str, source_tag: str) -> None:
        """Report a scraping problem. Delivery failures are logged, not raised."""
        text = ERROR_MESSAGE.format(source=html.escape(source_tag), error=html.escape(message))
        try:
            self.send_message(text)
        except NotificationError as e:
            logger.error(f"Failed to send error notification: {e}")

    def test_connection(self) -> bool:
        """Check the bot token with getMe."""
        try:
            me = self._call("getMe")
        except NotificationError as e:
            logger.error(f"Failed to connect to Telegram: {e}")
            return False
        logger.info(f"Connected to Telegram bot: {me.get('username')}")
        return True
