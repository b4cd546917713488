"""
Settings Manager
Game speed, autosave and difficulty configuration.
Settings persist to a JSON file in the user's home directory.
"""

import os
import json
from enum import Enum

from core.logger import get_logger

logger = get_logger(__name__)

# Settings file location
SETTINGS_FILE = os.environ.get(
    "STATECRAFT_SETTINGS_FILE",
    os.path.expanduser("~/.statecraft_settings.json"),
)

MIN_GAME_SPEED_MS = 100
MAX_GAME_SPEED_MS = 5000

# Default settings
DEFAULT_SETTINGS = {
    "game_speed_ms": 1000,     # wall-clock delay between turns in continuous play
    "auto_save": True,
    "auto_save_interval": 4,   # weeks between auto-saves
    "save_dir": "data/saves",
    "difficulty": "Normal",
}


class Difficulty(Enum):
    """Difficulty only shapes the initial state of a new session."""
    EASY = "Easy"
    NORMAL = "Normal"
    HARD = "Hard"


class DifficultySettings:
    """Initial-state parameters for each difficulty level."""

    SETTINGS = {
        Difficulty.EASY: {
            "approval": 58.0,
            "political_capital": 130.0,
            "debt_ratio": 50.0,
            "confidence": 80.0,
            "crisis_chance_multiplier": 0.7,
            "description": "A popular mandate and a forgiving press"
        },
        Difficulty.NORMAL: {
            "approval": 50.0,
            "political_capital": 100.0,
            "debt_ratio": 60.0,
            "confidence": 75.0,
            "crisis_chance_multiplier": 1.0,
            "description": "A narrow mandate, as intended"
        },
        Difficulty.HARD: {
            "approval": 44.0,
            "political_capital": 80.0,
            "debt_ratio": 85.0,
            "confidence": 62.0,
            "crisis_chance_multiplier": 1.4,
            "description": "Inherited debt and a restless electorate"
        }
    }

    @classmethod
    def get(cls, difficulty, key, default=None):
        return cls.SETTINGS.get(difficulty, cls.SETTINGS[Difficulty.NORMAL]).get(key, default)

    @classmethod
    def get_all(cls, difficulty):
        return dict(cls.SETTINGS.get(difficulty, cls.SETTINGS[Difficulty.NORMAL]))


def parse_difficulty(value) -> Difficulty:
    if isinstance(value, Difficulty):
        return value
    text = str(value or "").strip().lower()
    for level in Difficulty:
        if level.value.lower() == text or level.name.lower() == text:
            return level
    return Difficulty.NORMAL


def clamp_game_speed(ms) -> int:
    try:
        ms = int(ms)
    except (TypeError, ValueError, OverflowError):
        return DEFAULT_SETTINGS["game_speed_ms"]
    return max(MIN_GAME_SPEED_MS, min(MAX_GAME_SPEED_MS, ms))


class SettingsManager:
    """Manages simulation settings with persistence."""

    def __init__(self, path=None, autoload=True):
        self.path = path or SETTINGS_FILE
        self.settings = DEFAULT_SETTINGS.copy()
        if autoload:
            self.load()

    def load(self):
        """Load settings from file."""
        try:
            if os.path.exists(self.path):
                with open(self.path, 'r') as f:
                    saved = json.load(f)
                    # Merge with defaults (in case new settings were added)
                    self.settings.update(saved)
        except (IOError, json.JSONDecodeError) as e:
            logger.warning("Could not read settings from %s: %s", self.path, e)
        self.settings["game_speed_ms"] = clamp_game_speed(self.settings.get("game_speed_ms"))

    def save(self):
        """Save settings to file. Returns False when the file cannot be written."""
        try:
            with open(self.path, 'w') as f:
                json.dump(self.settings, f, indent=2)
            return True
        except IOError as e:
            logger.warning("Could not write settings to %s: %s", self.path, e)
            return False

    def get(self, key, default=None):
        """Get a setting value."""
        return self.settings.get(key, default)

    def set(self, key, value, persist=True):
        """Set a setting value and save."""
        if key == "game_speed_ms":
            value = clamp_game_speed(value)
        self.settings[key] = value
        if persist:
            self.save()

    @property
    def game_speed_ms(self):
        return clamp_game_speed(self.settings.get("game_speed_ms"))

    @property
    def difficulty(self):
        return parse_difficulty(self.settings.get("difficulty"))
