"""Runtime configuration backed by the system_settings table.

Values are read through a per-key TTL cache. Writes go through
:func:`set_setting`, which invalidates the cached key so the next read sees
the new value immediately; values changed behind the cache's back (another
process, a manual SQL update) become visible once the TTL expires.
"""
import logging
import os
import time

from sqlalchemy.orm import Session

from tripcurator.models import SystemSetting

logger = logging.getLogger(__name__)

CACHE_TTL_SECONDS = 60.0

DEFAULT_SETTINGS = [
    ("groq_api_key", "", "Groq API key for the LLM and transcription features"),
    ("llm_model", "llama-3.3-70b-versatile", "Model used for geocoding, tagging and travel writing"),
    ("transcription_model", "whisper-large-v3-turbo", "Model used for voice-note transcription"),
    ("google_places_api_key", "", "Google Places API key for place enrichment"),
    ("google_maps_api_key", "", "Google Maps JavaScript API key for the map views"),
    ("mapbox_api_key", "", "Mapbox access token for the map views"),
    ("max_audio_duration_seconds", "0", "Maximum audio recording duration in seconds (0 = unlimited)"),
    ("audio_recording_enabled", "true", "Enable/disable audio recording feature"),
    ("cost_alert_threshold_usd", "100", "Alert when monthly costs exceed this amount"),
]


class SettingsCache:
    """Key -> value cache with a bounded time-to-live per entry."""

    def __init__(self, ttl_seconds: float = CACHE_TTL_SECONDS, clock=time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, tuple[str, float]] = {}

    def get(self, key: str) -> str | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, stored_at = entry
        if self._clock() - stored_at >= self.ttl_seconds:
            self._entries.pop(key, None)
            return None
        return value

    def set(self, key: str, value: str) -> None:
        self._entries[key] = (value, self._clock())

    def invalidate(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()


settings_cache = SettingsCache()


def get_settings_cache() -> SettingsCache:
    """FastAPI dependency returning the process-wide cache (overridable in tests)."""
    return settings_cache


def get_setting(db: Session, key: str, cache: SettingsCache | None = None) -> str | None:
    """Read a setting: cache, then database row, then the upper-cased environment variable.

    Empty database values count as unset so a blank admin field falls back to the env.
    """
    cache = cache or settings_cache
    cached = cache.get(key)
    if cached is not None:
        return cached

    setting = db.get(SystemSetting, key)
    value = setting.value if setting and setting.value else None
    if value is None:
        value = os.getenv(key.upper()) or None

    if value is not None:
        cache.set(key, value)
    return value


def get_bool_setting(db: Session, key: str, default: bool = True, cache: SettingsCache | None = None) -> bool:
    value = get_setting(db, key, cache)
    if value is None:
        return default
    return value.strip().lower() != "false"


def get_int_setting(db: Session, key: str, default: int = 0, cache: SettingsCache | None = None) -> int:
    value = get_setting(db, key, cache)
    try:
        return int(value) if value is not None else default
    except ValueError:
        logger.warning(f"Setting '{key}' is not an integer: {value!r}")
        return default


def set_setting(db: Session, key: str, value: str | None, cache: SettingsCache | None = None) -> SystemSetting:
    """Upsert a setting and invalidate its cached value."""
    cache = cache or settings_cache
    setting = db.get(SystemSetting, key)
    if setting is None:
        setting = SystemSetting(key=key, value=value or "")
        db.add(setting)
    else:
        setting.value = value or ""
    db.commit()
    db.refresh(setting)
    cache.invalidate(key)
    logger.info(f"Setting '{key}' updated")
    return setting


def mask_value(key: str, value: str) -> str:
    """Mask API keys for display, keeping the first 8 and last 4 characters."""
    if "api_key" in key and value:
        return value[:8] + "..." + value[-4:]
    return value


def seed_default_settings(db: Session) -> None:
    for key, value, description in DEFAULT_SETTINGS:
        if db.get(SystemSetting, key) is None:
            db.add(SystemSetting(key=key, value=value, description=description))
    db.commit()
