"""
Interactive setup for Vinyl Alerts.

Asks for Telegram and Discogs credentials, music preferences and the scan
interval, then writes the preferences config file.
"""

import os
import json
import logging
from typing import Callable, Optional

from .config import DEFAULT_USER_AGENT, get_preferences_path

logger = logging.getLogger(__name__)

DEFAULT_ARTISTS = ["Pink Floyd", "The Beatles"]
DEFAULT_GENRES = ["Rock", "Jazz"]
DEFAULT_ALBUMS = ["The Dark Side of the Moon"]
DEFAULT_INTERVAL_HOURS = 12


def _split_list(answer: str, default: list[str]) -> list[str]:
    if not answer:
        return list(default)
    return [part.strip() for part in answer.split(",") if part.strip()]


def build_config(
    bot_token: str,
    chat_id: str,
    discogs_token: str,
    artists: list[str],
    genres: list[str],
    albums: list[str],
    interval_hours: int,
) -> dict:
    """Build the config file contents."""
    return {
        "discogs": {
            "userAgent": DEFAULT_USER_AGENT,
            "token": discogs_token,
        },
        "telegram": {
            "botToken": bot_token,
            "chatId": chat_id,
        },
        "preferences": {
            "artists": artists,
            "genres": genres,
            "albums": albums,
        },
        "scraping": {
            "intervalHours": interval_hours,
            "maxRetries": 3,
            "delayBetweenRequests": 1000,
        },
    }


def run_setup(
    path: Optional[str] = None,
    ask: Callable[[str], str] = input,
    say: Callable[[str], None] = print,
) -> bool:
    """
    Run the interactive setup and write the config file.

    Args:
        path: Where to write the file (defaults to PREFERENCES_PATH)
        ask: Prompt function returning the user's answer
        say: Output function

    Returns:
        True if a config file was written
    """
    path = path or get_preferences_path()
    say("🎵 Welcome to Vinyl Alerts setup!\n")

    if os.path.exists(path):
        overwrite = ask("⚠️  Configuration file already exists. Overwrite? (y/N): ").strip().lower()
        if overwrite not in ("y", "yes"):
            say("Setup cancelled.")
            return False

    say("📱 TELEGRAM CONFIGURATION")
    say("Create a bot by messaging @BotFather, then get your chat ID from @userinfobot\n")
    bot_token = ask("Enter your Telegram bot token: ").strip()
    chat_id = ask("Enter your Telegram chat ID: ").strip()

    say("\n🎵 DISCOGS CONFIGURATION")
    say("Create a token at: https://www.discogs.com/settings/developers\n")
    discogs_token = ask("Enter your Discogs API token (optional, press Enter to skip): ").strip()

    say("\n🎤 MUSIC PREFERENCES (comma-separated)")
    artists = _split_list(ask("Artists (e.g., Pink Floyd, The Beatles): ").strip(), DEFAULT_ARTISTS)
    genres = _split_list(ask("Genres (e.g., Rock, Jazz, Blues): ").strip(), DEFAULT_GENRES)
    albums = _split_list(ask("Albums (e.g., The Dark Side of the Moon, Abbey Road): ").strip(), DEFAULT_ALBUMS)

    say("\n⏰ SCANNING FREQUENCY")
    hours = ask(f"How often should it check for new vinyl? (hours, default {DEFAULT_INTERVAL_HOURS}): ").strip()
    try:
        interval_hours = int(hours) if hours else DEFAULT_INTERVAL_HOURS
    except ValueError:
        say(f"Not a number, using {DEFAULT_INTERVAL_HOURS} hours")
        interval_hours = DEFAULT_INTERVAL_HOURS
    if interval_hours <= 0:
        interval_hours = DEFAULT_INTERVAL_HOURS

    config = build_config(bot_token, chat_id, discogs_token, artists, genres, albums, interval_hours)

    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    try:
        with open(path, "w", encoding="utf-8") as handle:
            json.dump(config, handle, indent=2)
    except OSError as e:
        logger.error(f"Failed to save configuration: {e}")
        say(f"\n❌ Failed to save configuration: {e}")
        return False

    say(f"\n✅ Configuration saved to {path}")
    say("\nNext steps:")
    say("1. vinyl-alerts --run  (to test one pass)")
    say("2. vinyl-alerts-scheduler  (to start monitoring)")
    return True
