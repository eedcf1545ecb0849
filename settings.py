#!/usr/bin/env python3
"""
Settings management for the Code Library Organizer.

Handles persistent user preferences stored in a JSON file in the user's
config directory:
- macOS: ~/Library/Application Support/CodeLibraryOrganizer/settings.json
- Linux: ~/.config/CodeLibraryOrganizer/settings.json
- Windows: %APPDATA%/CodeLibraryOrganizer/settings.json

Engine tuning (thresholds, logging) lives in config.yaml instead; see
code_organizer.load_config().
"""

import os
import sys
import json
from pathlib import Path
from typing import Optional

# Load environment variables from .env file
try:
    from dotenv import load_dotenv
    load_dotenv()
except (PermissionError, OSError):
    pass  # .env not accessible

APP_DIR_NAME = "CodeLibraryOrganizer"

VALID_STRATEGIES = ("aggressive", "conservative", "balanced")


def get_config_dir() -> Path:
    """Get the platform-appropriate config directory."""
    if sys.platform == "darwin":
        config_dir = Path.home() / "Library" / "Application Support" / APP_DIR_NAME
    elif sys.platform == "win32":
        appdata = os.environ.get("APPDATA", str(Path.home() / "AppData" / "Roaming"))
        config_dir = Path(appdata) / APP_DIR_NAME
    else:
        # Linux and others - follow XDG spec
        xdg_config = os.environ.get("XDG_CONFIG_HOME", str(Path.home() / ".config"))
        config_dir = Path(xdg_config) / APP_DIR_NAME

    config_dir.mkdir(parents=True, exist_ok=True)
    return config_dir


def get_settings_path() -> Path:
    """Get path to the settings file."""
    return get_config_dir() / "settings.json"


# Default settings
DEFAULT_SETTINGS = {
    # Where the library database lives
    "library_dir": str(Path.home() / "Documents" / "code_library"),

    # Whose items we organize
    "owner_id": "local",

    # Organization preferences
    "default_strategy": "balanced",  # aggressive, conservative, balanced

    # Text extraction
    "extractor": "tesseract",  # tesseract, text
    "ocr_language": "eng",

    # First run flag
    "setup_complete": False,
}


class Settings:
    """Manage user preferences with persistence."""

    def __init__(self):
        self._settings = DEFAULT_SETTINGS.copy()
        self._load()

    def _load(self):
        """Load settings from disk."""
        settings_path = get_settings_path()
        if settings_path.exists():
            try:
                with open(settings_path, 'r') as f:
                    saved = json.load(f)
                    # Merge with defaults (in case new settings were added)
                    self._settings.update(saved)
            except (json.JSONDecodeError, IOError) as e:
                print(f"Warning: Could not load settings: {e}")

    def save(self):
        """Save settings to disk."""
        settings_path = get_settings_path()
        try:
            with open(settings_path, 'w') as f:
                json.dump(self._settings, f, indent=2)
        except IOError as e:
            print(f"Warning: Could not save settings: {e}")

    def get(self, key: str, default=None):
        return self._settings.get(key, default)

    def set(self, key: str, value):
        self._settings[key] = value
        self.save()

    def update(self, updates: dict):
        """Update multiple settings at once and save."""
        self._settings.update(updates)
        self.save()

    def reset(self):
        """Reset all settings to defaults."""
        self._settings = DEFAULT_SETTINGS.copy()
        self.save()

    @property
    def library_dir(self) -> str:
        """Get the library directory.

        Priority: Saved setting > Environment variable > Default
        """
        saved = self._settings.get("library_dir")
        if saved and saved != DEFAULT_SETTINGS["library_dir"]:
            return saved
        env_dir = os.environ.get("CODE_LIBRARY_PATH")
        if env_dir:
            return env_dir
        return saved or DEFAULT_SETTINGS["library_dir"]

    @property
    def owner_id(self) -> str:
        return self._settings.get("owner_id", "local")

    @property
    def default_strategy(self) -> str:
        strategy = self._settings.get("default_strategy", "balanced")
        return strategy if strategy in VALID_STRATEGIES else "balanced"

    @property
    def extractor(self) -> str:
        return self._settings.get("extractor", "tesseract")

    @property
    def setup_complete(self) -> bool:
        return self._settings.get("setup_complete", False)

    def validate(self) -> tuple[bool, list[str]]:
        """Validate settings values.

        Returns (is_valid, list_of_errors)
        """
        errors = []

        if self._settings.get("default_strategy") not in VALID_STRATEGIES:
            errors.append(
                f"Unknown strategy '{self._settings.get('default_strategy')}'. "
                f"Available: {', '.join(VALID_STRATEGIES)}"
            )

        library_path = Path(self.library_dir)
        if library_path.exists() and not library_path.is_dir():
            errors.append(f"Library path exists but is not a directory: {library_path}")
        elif library_path.exists() and not os.access(library_path, os.W_OK):
            errors.append(f"Library directory is not writable: {library_path}")

        return len(errors) == 0, errors

    def to_dict(self) -> dict:
        """Export settings as a dictionary."""
        return self._settings.copy()


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings():
    """Force reload settings from disk."""
    global _settings
    _settings = Settings()
    return _settings
