"""
Configuration management using database storage.

Provides access to configuration values with defaults and type conversion.
The CONFIG_SCHEMA provides rich metadata for building user-friendly configuration UIs.
"""

import logging
from typing import Any, Dict, List, Optional

from .database import ConfigRepository, Database

# Configuration groups define the logical sections in the config UI
CONFIG_GROUPS = {
    "playback": {"label": "Playback", "order": 1},
    "history": {"label": "History & Recommendations", "order": 2},
    "audio": {"label": "Audio Output", "order": 3},
    "catalog": {"label": "Catalog", "order": 4},
}

# Schema defining metadata for each editable configuration key
CONFIG_SCHEMA = {
    # Playback
    "default_volume": {
        "group": "playback",
        "label": "Default Volume",
        "description": "Starting volume when euphony launches.",
        "control": "slider",
        "min": 0,
        "max": 1,
        "step": 0.05,
        "display_format": "percent",
    },
    "fallback_duration_seconds": {
        "group": "playback",
        "label": "Fallback Track Length",
        "description": "Length assumed for songs that do not state a duration.",
        "control": "slider",
        "min": 30,
        "max": 600,
        "step": 10,
        "display_format": "seconds",
    },
    "restart_threshold_seconds": {
        "group": "playback",
        "label": "Previous Restarts After",
        "description": "Past this point, 'previous' restarts the current song instead.",
        "control": "slider",
        "min": 0,
        "max": 10,
        "step": 1,
        "display_format": "seconds",
    },
    "watchdog_grace_seconds": {
        "group": "playback",
        "label": "End-of-Track Grace",
        "description": "Extra time allowed past a song's length before it is forced to end.",
        "control": "slider",
        "min": 0,
        "max": 10,
        "step": 1,
        "display_format": "seconds",
    },
    # History & Recommendations
    "shuffle_exclusion_count": {
        "group": "history",
        "label": "Shuffle Avoids Last",
        "description": "How many recently played songs shuffle skips over.",
        "control": "slider",
        "min": 0,
        "max": 20,
        "step": 1,
    },
    "recommendation_limit": {
        "group": "history",
        "label": "Recommendations",
        "description": "Number of songs in the 'made for you' list.",
        "control": "slider",
        "min": 5,
        "max": 50,
        "step": 5,
    },
    # Audio Output
    "audio_backend": {
        "group": "audio",
        "label": "Audio Backend",
        "description": "Where euphony sends audio. 'Silent' only simulates playback.",
        "control": "select",
        "options": [
            {"value": "null", "label": "Silent"},
            {"value": "gstreamer", "label": "GStreamer"},
        ],
    },
    "audio_sink": {
        "group": "audio",
        "label": "GStreamer Sink",
        "description": "GStreamer audio sink element used by the GStreamer backend.",
        "control": "text",
        "placeholder": "autoaudiosink",
    },
    "sample_audio_urls": {
        "group": "audio",
        "label": "Sample Audio Pool",
        "description": "Comma-separated audio URLs that songs are mapped onto.",
        "control": "text",
    },
    # Catalog
    "catalog_csv_path": {
        "group": "catalog",
        "label": "Catalog CSV",
        "description": "CSV file merged into the built-in catalog at startup. Leave empty to skip.",
        "control": "text",
        "placeholder": "~/music/songs.csv",
    },
}

DEFAULT_SAMPLE_AUDIO_URLS = ",".join(
    f"https://www.soundhelix.com/examples/mp3/SoundHelix-Song-{n}.mp3" for n in range(1, 10)
)


class ConfigManager:
    """Manages configuration stored in database."""

    # Default configuration values
    DEFAULTS = {
        "default_volume": "0.7",
        "fallback_duration_seconds": "180",
        "watchdog_grace_seconds": "2",
        "restart_threshold_seconds": "3",
        "recently_played_limit": "20",
        "listening_history_limit": "50",
        "shuffle_exclusion_count": "10",
        "recommendation_limit": "20",
        "catalog_csv_path": None,
        "audio_backend": "null",
        "audio_sink": "autoaudiosink",
        "sample_audio_urls": DEFAULT_SAMPLE_AUDIO_URLS,
    }

    # Keys not in CONFIG_SCHEMA are internal (not shown in UI)

    def __init__(self, database: Database):
        """
        Initialize ConfigManager.

        Args:
            database: Database instance
        """
        self.database = database
        self.repository = ConfigRepository(database)
        self.logger = logging.getLogger(__name__)
        self.repository.initialize_defaults(self.DEFAULTS)

    def get(self, key: str, default: Any = None) -> Optional[str]:
        """
        Get a configuration value.

        Args:
            key: Configuration key
            default: Default value if not found (uses DEFAULTS if None)

        Returns:
            Configuration value as string, or None if not found
        """
        if default is None:
            default = self.DEFAULTS.get(key)

        entry = self.repository.get(key)
        if entry:
            return entry.value if entry.value else default
        return default

    def get_int(self, key: str, default: Optional[int] = None) -> Optional[int]:
        """Get configuration value as integer."""
        value = self.get(key)
        if value is None or value == "":
            return default
        try:
            return int(value)
        except ValueError:
            self.logger.warning("Invalid integer value for %s: %s", key, value)
            return default

    def get_float(self, key: str, default: Optional[float] = None) -> Optional[float]:
        """Get configuration value as float."""
        value = self.get(key)
        if value is None or value == "":
            return default
        try:
            return float(value)
        except ValueError:
            self.logger.warning("Invalid float value for %s: %s", key, value)
            return default

    def get_bool(self, key: str, default: Optional[bool] = None) -> Optional[bool]:
        """Get configuration value as boolean."""
        value = self.get(key)
        if value is None or value == "":
            return default
        return value.lower() in ("true", "1", "yes", "on")

    def get_list(self, key: str) -> List[str]:
        """Get a comma-separated configuration value as a list of stripped items."""
        value = self.get(key)
        if not value:
            return []
        return [item.strip() for item in value.split(",") if item.strip()]

    def set(self, key: str, value: Any) -> bool:
        """
        Set a configuration value.

        Args:
            key: Configuration key
            value: Value to set (will be converted to string)

        Returns:
            True if successful
        """
        return self.repository.set(key, str(value))

    def get_all(self) -> dict:
        """
        Get all configuration values.

        Returns:
            Dictionary of all configuration key-value pairs
        """
        entries = self.repository.get_all()
        config = {entry.key: entry.value for entry in entries}

        # Merge with defaults to ensure all keys are present
        result = self.DEFAULTS.copy()
        result.update(config)
        return result

    def get_config_schema(self) -> Dict[str, dict]:
        """Get a copy of the configuration schema."""
        return {key: dict(key_def) for key, key_def in CONFIG_SCHEMA.items()}

    def get_config_groups(self) -> Dict[str, dict]:
        """Get the configuration group definitions."""
        return CONFIG_GROUPS.copy()

    def get_full_config(self) -> dict:
        """
        Get complete configuration data for the UI.

        Returns:
            Dictionary with 'values', 'schema', and 'groups' keys.
        """
        return {
            "values": self.get_all(),
            "schema": self.get_config_schema(),
            "groups": self.get_config_groups(),
        }
