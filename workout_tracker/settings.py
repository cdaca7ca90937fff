from __future__ import annotations

"""Engine settings stored as JSON.

The settings are stored as a list of dictionaries to preserve order.
Each dictionary contains ``key``, ``value`` and ``type`` entries.
"""

from pathlib import Path
import json
import logging
from typing import Any, List, Dict

from . import DATA_DIR, DEFAULT_REST_TIME, ESTIMATED_SET_SECONDS

# Path to the JSON file where settings are persisted.
SETTINGS_PATH = DATA_DIR / "settings.json"

# Default settings to initialize the file on first run.
DEFAULT_SETTINGS: List[Dict[str, Any]] = [
    {"key": "default_rest_time", "value": DEFAULT_REST_TIME, "type": "int"},
    {"key": "body_weight", "value": 75.0, "type": "float"},
    {"key": "weekly_volume_target", "value": 5000, "type": "int"},
    {"key": "stale_session_hours", "value": 24, "type": "int"},
    {"key": "estimated_set_seconds", "value": ESTIMATED_SET_SECONDS, "type": "int"},
    {"key": "recovery_debounce", "value": 0.5, "type": "float"},
    {"key": "mutation_debounce", "value": 1.0, "type": "float"},
]

# Internal cache so settings are only read from disk once.
_settings_cache: List[Dict[str, Any]] | None = None


def _defaults() -> List[Dict[str, Any]]:
    return [dict(item) for item in DEFAULT_SETTINGS]


def load_settings(path: Path | None = None) -> List[Dict[str, Any]]:
    """Load settings from :data:`SETTINGS_PATH` or create defaults."""
    path = path or SETTINGS_PATH
    if path.exists():
        try:
            with path.open("r", encoding="utf-8") as fh:
                data = json.load(fh)
                if isinstance(data, list):
                    return data
        except (OSError, ValueError):
            logging.warning("Could not read settings from %s, using defaults", path)
    settings = _defaults()
    save_settings(settings, path)
    return settings


def save_settings(settings: List[Dict[str, Any]], path: Path | None = None) -> None:
    """Persist ``settings`` to :data:`SETTINGS_PATH`."""
    path = path or SETTINGS_PATH
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as fh:
        json.dump(settings, fh, indent=2)


def get_settings() -> List[Dict[str, Any]]:
    """Return the cached settings list, loading from disk if needed."""
    global _settings_cache
    if _settings_cache is None:
        _settings_cache = load_settings()
    return _settings_cache


def reset_cache() -> None:
    """Forget the cached settings so the next access reads the file."""
    global _settings_cache
    _settings_cache = None


def get_value(key: str, default: Any = None) -> Any:
    """Fetch the value associated with ``key``.

    Keys missing from an older settings file fall back to the built-in
    default.
    """
    for item in get_settings():
        if item.get("key") == key:
            return item.get("value")
    for item in DEFAULT_SETTINGS:
        if item["key"] == key:
            return item["value"]
    return default


def set_value(key: str, value: Any) -> None:
    """Update ``key`` with ``value`` and persist the change."""
    settings = get_settings()
    for item in settings:
        if item.get("key") == key:
            item["value"] = value
            break
    else:
        settings.append({"key": key, "value": value, "type": type(value).__name__})
    save_settings(settings)
