"""
bonjour-sniffer configuration loader.
Reads a JSON config file and provides defaults for every setting.
Invalid values are logged and replaced by their defaults at load time.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

DEFAULT_CONFIG = {
    "interface": None,
    "bpf_filter": "udp port 5353",
    "max_pending": 1024,
    "poll_interval_s": 0.25,
    "replay_speed": 1.0,
    "replay_loop": False,
    "log_level": "INFO",
}


class SnifferConfig:
    """Sniffer configuration with validation."""

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = Path(config_path) if config_path else None
        self.data: Dict[str, Any] = dict(DEFAULT_CONFIG)

    def load(self, path: Optional[str] = None) -> "SnifferConfig":
        """Load config from JSON file, merge with defaults, validate."""
        if path:
            self.config_path = Path(path)

        if self.config_path and self.config_path.exists():
            try:
                with open(self.config_path, "r", encoding="utf-8") as f:
                    loaded = json.load(f)
                if not isinstance(loaded, dict):
                    raise ValueError("top-level JSON value must be an object")
                unknown = sorted(set(loaded) - set(DEFAULT_CONFIG))
                if unknown:
                    logger.warning("Ignoring unknown config keys: %s", unknown)
                for key in DEFAULT_CONFIG:
                    if key in loaded:
                        self.data[key] = loaded[key]
                logger.info("Config loaded from %s", self.config_path)
            except (OSError, ValueError) as e:
                logger.error("Failed to load config: %s, using defaults", e)
        elif self.config_path:
            logger.info("No config file at %s, using defaults", self.config_path)

        self._validate()
        return self

    def update(self, overrides: Dict[str, Any]) -> "SnifferConfig":
        """Apply overrides (e.g. command line flags); None values are skipped."""
        for key, value in overrides.items():
            if value is None:
                continue
            if key not in DEFAULT_CONFIG:
                raise KeyError(f"unknown config key: {key}")
            self.data[key] = value
        self._validate()
        return self

    def _validate(self):
        """Validate config values, warn on issues."""
        for key in ("max_pending",):
            val = self.data.get(key)
            if not isinstance(val, int) or isinstance(val, bool) or val <= 0:
                logger.warning("Invalid %s=%r, using %s", key, val, DEFAULT_CONFIG[key])
                self.data[key] = DEFAULT_CONFIG[key]

        # Intervals and rates (must be positive numbers)
        for key in ("poll_interval_s", "replay_speed"):
            val = self.data.get(key)
            if not isinstance(val, (int, float)) or isinstance(val, bool) or val <= 0:
                logger.warning("Invalid %s=%r, using %s", key, val, DEFAULT_CONFIG[key])
                self.data[key] = DEFAULT_CONFIG[key]

        level = self.data.get("log_level")
        if not isinstance(level, str) or level.upper() not in LOG_LEVELS:
            logger.warning("Invalid log_level=%r, using INFO", level)
            self.data["log_level"] = "INFO"
        else:
            self.data["log_level"] = level.upper()

        if not isinstance(self.data.get("replay_loop"), bool):
            self.data["replay_loop"] = bool(self.data.get("replay_loop"))

    def __getattr__(self, name):
        if name in ("data", "config_path") or name.startswith("_"):
            return super().__getattribute__(name)
        return self.data.get(name)

    def get(self, key, default=None):
        return self.data.get(key, default)
