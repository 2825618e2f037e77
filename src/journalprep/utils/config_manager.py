"""
JournalPrep - Configuration Manager

This module provides JSON-based persistence of user settings and builds
the frozen pipeline configuration objects from them.
"""

import copy
import json
import os
from typing import Any, Final

from journalprep.config import CONFIG_FILE_PATH, DEFAULT_OUTPUT_SUFFIX
from journalprep.services.preprocessing_config import (
    DEFAULT_PRESET,
    BandTrimConfig,
    DetectionConfig,
    EnhancementParameters,
)
from journalprep.utils.exceptions import ConfigurationError
from journalprep.utils.logger import logger

# Default configuration values
DEFAULT_CONFIG: Final[dict[str, Any]] = {
    "version": 1,
    "enhancement": {
        "preset": DEFAULT_PRESET,
    },
    "detection": {
        "mode": "strict",
        "enable_edge_fallback": False,
    },
    "band_trim": {},
    "output": {
        "suffix": DEFAULT_OUTPUT_SUFFIX,
        "workers": 4,
    },
}


class ConfigManager:
    """Manages application configuration in JSON format.

    Settings are read once on construction. Unknown keys are preserved so
    files written by newer versions survive a round trip.
    """

    def __init__(self, config_path: str | None = None) -> None:
        """Initialize the configuration manager.

        Args:
            config_path: Optional path to the configuration file.
                        Defaults to CONFIG_FILE_PATH.
        """
        self.config_path = config_path or CONFIG_FILE_PATH
        self._config: dict[str, Any] = {}
        self._load_config()

    def _load_config(self) -> None:
        """Load configuration from file or fall back to defaults."""
        if not os.path.exists(self.config_path):
            self._config = self._get_default_config()
            return

        try:
            with open(self.config_path, encoding="utf-8") as f:
                loaded = json.load(f)
            if not isinstance(loaded, dict):
                raise ValueError("top-level JSON value is not an object")
            self._config = loaded
            logger.info(f"Configuration loaded from {self.config_path}")
            self._upgrade_config()
        except (OSError, ValueError) as e:
            logger.error(f"Error loading config: {e}")
            self._config = self._get_default_config()

    def _get_default_config(self) -> dict[str, Any]:
        """Get a deep copy of the default configuration."""
        return copy.deepcopy(DEFAULT_CONFIG)

    def _upgrade_config(self) -> None:
        """Upgrade configuration to latest version if needed."""
        current_version = self._config.get("version", 0)

        if current_version < DEFAULT_CONFIG["version"]:
            # Add any missing keys from default config
            self._merge_defaults(self._config, DEFAULT_CONFIG)
            self._config["version"] = DEFAULT_CONFIG["version"]
            logger.info(f"Configuration upgraded to version {DEFAULT_CONFIG['version']}")

    def _merge_defaults(self, config: dict, defaults: dict) -> None:
        """Merge default values into config for missing keys."""
        for key, value in defaults.items():
            if key not in config:
                config[key] = copy.deepcopy(value)
            elif isinstance(value, dict) and isinstance(config.get(key), dict):
                self._merge_defaults(config[key], value)

    def save(self) -> bool:
        """Save configuration to file.

        Returns:
            True if save was successful, False otherwise.
        """
        try:
            directory = os.path.dirname(self.config_path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            with open(self.config_path, "w", encoding="utf-8") as f:
                json.dump(self._config, f, indent=2, ensure_ascii=False)
            logger.debug(f"Configuration saved to {self.config_path}")
            return True
        except OSError as e:
            logger.error(f"Error saving config: {e}")
            return False

    def get(self, key_path: str, default: Any = None) -> Any:
        """Get a configuration value by dot-separated path.

        Args:
            key_path: Dot-separated path to the config value (e.g., "detection.mode")
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        value = self._config
        for key in key_path.split("."):
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default
        return value

    def set(self, key_path: str, value: Any, save_immediately: bool = False) -> None:
        """Set a configuration value by dot-separated path.

        Args:
            key_path: Dot-separated path to the config value
            value: Value to set
            save_immediately: Whether to save to file immediately
        """
        keys = key_path.split(".")
        config = self._config

        # Navigate to parent key
        for key in keys[:-1]:
            if not isinstance(config.get(key), dict):
                config[key] = {}
            config = config[key]

        config[keys[-1]] = value

        if save_immediately:
            self.save()

    # ------------------------------------------------------------------
    # Pipeline configuration
    # ------------------------------------------------------------------

    def _section(self, name: str) -> dict[str, Any]:
        section = self.get(name, {})
        if not isinstance(section, dict):
            raise ConfigurationError(name, "expected a JSON object")
        return dict(section)

    def enhancement_parameters(self) -> EnhancementParameters:
        """Enhancement parameters from the 'enhancement' section.

        Raises:
            ConfigurationError: On unknown keys or out-of-range values
        """
        try:
            return EnhancementParameters.from_dict(self._section("enhancement"))
        except TypeError as e:
            raise ConfigurationError("enhancement", str(e)) from e

    def detection_config(self, mode: str | None = None) -> DetectionConfig:
        """Detection thresholds: the named mode plus explicit overrides.

        Args:
            mode: Overrides the mode stored in settings; the section's other
                keys still apply on top of it.

        Raises:
            ConfigurationError: On an unknown mode or invalid values
        """
        section = self._section("detection")
        stored_mode = section.pop("mode", "strict")
        mode = mode or stored_mode
        try:
            return DetectionConfig.for_mode(mode, **section)
        except TypeError as e:
            raise ConfigurationError("detection", str(e)) from e

    def band_trim_config(self) -> BandTrimConfig:
        """Band trimming thresholds from the 'band_trim' section."""
        try:
            return BandTrimConfig(**self._section("band_trim"))
        except TypeError as e:
            raise ConfigurationError("band_trim", str(e)) from e
