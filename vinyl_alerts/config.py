"""
Configuration module for Vinyl Alerts.

Secrets come from environment variables (.env file, never commit it).
Preferences and scraping options come from a JSON file (preferences.json by
default, see PREFERENCES_PATH) laid out as:

    {
      "discogs": {"userAgent": "...", "token": "..."},
      "telegram": {"botToken": "...", "chatId": "..."},
      "preferences": {"artists": [...], "genres": [...], "albums": [...]},
      "scraping": {"intervalHours": 12, "delayBetweenRequests": 1000, ...}
    }

Environment values win over file values for the discogs/telegram secrets.
"""

import os
import json
import logging
from dataclasses import dataclass, field
from typing import Optional
from dotenv import load_dotenv

from .exceptions import ConfigurationError
from .models import PreferenceTerm, PreferenceType

# Load environment variables from .env file
load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_PREFERENCES_PATH = "preferences.json"
DEFAULT_USER_AGENT = "VinylAlerts/1.0 +https://github.com/vinyl-alerts/vinyl-alerts"
MARKETPLACE_SOURCES = ("discogs", "synthetic")


def get_preferences_path() -> str:
    """Path of the JSON preferences file."""
    return os.getenv("PREFERENCES_PATH", DEFAULT_PREFERENCES_PATH)


def load_config_file(path: Optional[str] = None) -> dict:
    """
    Load the JSON preferences file.

    Returns an empty dict if the file does not exist, so a deployment can be
    configured from the environment alone.

    Raises:
        ConfigurationError: if the file exists but is not a JSON object
    """
    path = path or get_preferences_path()
    if not os.path.exists(path):
        logger.warning(f"Config file not found: {path}, using environment only")
        return {}

    try:
        with open(path, "r", encoding="utf-8") as handle:
            data = json.load(handle)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Failed to read config file {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a JSON object")
    return data


def _section(data: dict, name: str) -> dict:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigurationError(f"Config section '{name}' must be an object")
    return section


def _as_bool(value, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def _as_int(value, name: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Config value '{name}' must be an integer, got {value!r}") from e


@dataclass
class SupabaseConfig:
    """Supabase connection configuration."""
    url: str
    key: str  # Service role key for server-side operations

    @classmethod
    def from_env(cls) -> "SupabaseConfig":
        return cls(
            url=os.getenv("SUPABASE_URL", ""),
            key=os.getenv("SUPABASE_KEY", ""),
        )


@dataclass
class TelegramConfig:
    """Telegram Bot API configuration."""
    bot_token: str
    chat_id: str
    request_timeout: int = 10

    @classmethod
    def from_dict(cls, data: dict) -> "TelegramConfig":
        section = _section(data, "telegram")
        return cls(
            bot_token=os.getenv("TELEGRAM_BOT_TOKEN") or section.get("botToken", ""),
            chat_id=str(os.getenv("TELEGRAM_CHAT_ID") or section.get("chatId", "")),
        )


@dataclass
class DiscogsConfig:
    """Discogs API configuration. The token is optional but raises rate limits."""
    user_agent: str = DEFAULT_USER_AGENT
    token: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "DiscogsConfig":
        section = _section(data, "discogs")
        return cls(
            user_agent=os.getenv("DISCOGS_USER_AGENT") or section.get("userAgent") or DEFAULT_USER_AGENT,
            token=os.getenv("DISCOGS_TOKEN") or section.get("token", ""),
        )


@dataclass
class ScrapingConfig:
    """Scheduling, pacing and matching options for reconciliation passes."""
    interval_hours: int = 12
    delay_between_requests_ms: int = 1000
    max_retries: int = 3
    request_timeout: int = 30  # Seconds per HTTP request
    releases_per_search: int = 5
    deactivate_missing: bool = True
    identity_includes_price: bool = False
    ship_to: str = "israel"
    source: str = "discogs"

    @property
    def delay_seconds(self) -> float:
        return self.delay_between_requests_ms / 1000.0

    @classmethod
    def from_dict(cls, data: dict) -> "ScrapingConfig":
        section = _section(data, "scraping")
        config = cls(
            interval_hours=_as_int(section.get("intervalHours", 12), "scraping.intervalHours"),
            delay_between_requests_ms=_as_int(
                section.get("delayBetweenRequests", 1000), "scraping.delayBetweenRequests"
            ),
            max_retries=_as_int(section.get("maxRetries", 3), "scraping.maxRetries"),
            request_timeout=_as_int(section.get("requestTimeout", 30), "scraping.requestTimeout"),
            releases_per_search=_as_int(section.get("releasesPerSearch", 5), "scraping.releasesPerSearch"),
            deactivate_missing=_as_bool(section.get("deactivateMissing"), True),
            identity_includes_price=_as_bool(section.get("identityIncludesPrice"), False),
            ship_to=str(section.get("shipTo", "israel")).strip().lower(),
            source=os.getenv("MARKETPLACE_SOURCE") or section.get("source", "discogs"),
        )
        config.validate()
        return config

    def validate(self) -> None:
        """Raise ConfigurationError for values the pass cannot run with."""
        if self.interval_hours <= 0:
            raise ConfigurationError("scraping.intervalHours must be positive")
        if self.delay_between_requests_ms < 0:
            raise ConfigurationError("scraping.delayBetweenRequests must not be negative")
        if self.max_retries < 1:
            raise ConfigurationError("scraping.maxRetries must be at least 1")
        if self.releases_per_search < 1:
            raise ConfigurationError("scraping.releasesPerSearch must be at least 1")
        if self.source not in MARKETPLACE_SOURCES:
            raise ConfigurationError(
                f"Unknown marketplace source '{self.source}', expected one of {MARKETPLACE_SOURCES}"
            )


@dataclass
class PreferencesConfig:
    """Initial preference terms, seeded into the store on first run."""
    artists: list[str] = field(default_factory=list)
    genres: list[str] = field(default_factory=list)
    albums: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> "PreferencesConfig":
        section = _section(data, "preferences")
        values = {}
        for name in ("artists", "genres", "albums"):
            raw = section.get(name, [])
            if not isinstance(raw, list) or not all(isinstance(v, str) for v in raw):
                raise ConfigurationError(f"preferences.{name} must be a list of strings")
            values[name] = [v.strip() for v in raw if v.strip()]
        return cls(**values)

    def to_terms(self) -> list[PreferenceTerm]:
        """Artist terms first, then genres, then albums."""
        terms = [PreferenceTerm(type=PreferenceType.ARTIST, value=v) for v in self.artists]
        terms += [PreferenceTerm(type=PreferenceType.GENRE, value=v) for v in self.genres]
        terms += [PreferenceTerm(type=PreferenceType.ALBUM, value=v) for v in self.albums]
        return terms


# Global configuration instances (lazy loaded)
_config_file: Optional[dict] = None
_supabase_config: Optional[SupabaseConfig] = None
_telegram_config: Optional[TelegramConfig] = None
_discogs_config: Optional[DiscogsConfig] = None
_scraping_config: Optional[ScrapingConfig] = None
_preferences_config: Optional[PreferencesConfig] = None


def _get_config_file() -> dict:
    global _config_file
    if _config_file is None:
        _config_file = load_config_file()
    return _config_file


def get_supabase_config() -> SupabaseConfig:
    """Get Supabase configuration (cached)."""
    global _supabase_config
    if _supabase_config is None:
        _supabase_config = SupabaseConfig.from_env()
    return _supabase_config


def get_telegram_config() -> TelegramConfig:
    """Get Telegram configuration (cached)."""
    global _telegram_config
    if _telegram_config is None:
        _telegram_config = TelegramConfig.from_dict(_get_config_file())
    return _telegram_config


def get_discogs_config() -> DiscogsConfig:
    """Get Discogs configuration (cached)."""
    global _discogs_config
    if _discogs_config is None:
        _discogs_config = DiscogsConfig.from_dict(_get_config_file())
    return _discogs_config


def get_scraping_config() -> ScrapingConfig:
    """Get scraping configuration (cached)."""
    global _scraping_config
    if _scraping_config is None:
        _scraping_config = ScrapingConfig.from_dict(_get_config_file())
    return _scraping_config


def get_preferences_config() -> PreferencesConfig:
    """Get seed preferences (cached)."""
    global _preferences_config
    if _preferences_config is None:
        _preferences_config = PreferencesConfig.from_dict(_get_config_file())
    return _preferences_config


def reset_config_cache() -> None:
    """Forget cached configuration so the next getter re-reads it."""
    global _config_file, _supabase_config, _telegram_config
    global _discogs_config, _scraping_config, _preferences_config
    _config_file = None
    _supabase_config = None
    _telegram_config = None
    _discogs_config = None
    _scraping_config = None
    _preferences_config = None
