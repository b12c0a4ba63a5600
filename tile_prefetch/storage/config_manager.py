"""
Manages loading, validation, and migration of the INI configuration file.
"""

import configparser
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from tile_prefetch.exceptions import ConfigurationError
from tile_prefetch.models.config import BoundingBox, PrefetchConfig
from tile_prefetch.models.layers import LayerId

log = logging.getLogger(__name__)

# General settings live in their own section: values in DEFAULT would leak
# into the layer sections, which also have a max_zoom.
GENERAL_SECTION = "prefetch"

DEFAULT_SETTINGS = {
    "min_zoom": 12,
    "max_zoom": 17,
    "cache_max_age_days": 30,
    "user_agent": "tile-prefetch",
    "max_connections": 4,
    "request_timeout": 30.0,
}

DEFAULT_LAYERS = {
    LayerId.AERIAL.value: {
        "url_template": (
            "https://server.arcgisonline.com/ArcGIS/rest/services/"
            "World_Imagery/MapServer/tile/{z}/{y}/{x}"
        ),
        "max_zoom": 19,
        "extension": "jpg",
    },
    LayerId.MAPNIK.value: {
        "url_template": "https://tile.openstreetmap.org/{z}/{x}/{y}.png",
        "max_zoom": 19,
        "extension": "png",
    },
}


class ConfigManager:
    """Handles all operations related to the application's INI config file."""

    def __init__(self, config_file_path: Path):
        self.config_file_path = config_file_path
        self._parser = configparser.ConfigParser(interpolation=None)

    def load_config(self, cli_options: dict[str, Any] | None = None) -> PrefetchConfig:
        """
        Loads configuration from the INI file, applies CLI overrides, and validates it.

        Args:
            cli_options: A dictionary of options provided via the command line.

        Returns:
            A validated PrefetchConfig object.

        Raises:
            ConfigurationError: If the config file is missing, invalid, or validation
            fails.
        """
        if not self.config_file_path.is_file():
            raise ConfigurationError(
                f"Configuration file not found at '{self.config_file_path}'. "
                "Please run 'tile-prefetch init' first."
            )

        try:
            self._parser.read(self.config_file_path, encoding="utf-8")
        except configparser.Error as e:
            raise ConfigurationError(f"Error parsing configuration file: {e}") from e

        if self._migrate_if_needed():
            log.info(
                "[yellow]Configuration file was updated with new default values."
                "[/yellow]"
            )

        config_from_file = self._get_config_as_dict()

        # Override with CLI options
        if cli_options:
            config_from_file.update(cli_options)

        try:
            if isinstance(config_from_file.get("bbox"), str):
                config_from_file["bbox"] = BoundingBox.parse(config_from_file["bbox"])
            config_dir = self.config_file_path.parent
            return PrefetchConfig(**config_from_file, config_path=str(config_dir))
        except (ValidationError, ValueError) as e:
            raise ConfigurationError(f"Configuration validation failed:\n{e}") from e

    def save_new_config(self, settings: dict[str, Any]) -> None:
        """
        Creates and saves a new configuration file.

        Args:
            settings: General settings to save; missing keys get defaults.
                `bbox` and `cache_dir` have no defaults and must be given.
        """
        config = configparser.ConfigParser(interpolation=None)
        config[GENERAL_SECTION] = {}

        for key in sorted(PrefetchConfig.get_ini_keys()):
            value = settings.get(key, DEFAULT_SETTINGS.get(key))
            if isinstance(value, BoundingBox):
                value = value.to_string()
            if value is not None:
                config[GENERAL_SECTION][key] = str(value)

        for layer_name, layer_defaults in DEFAULT_LAYERS.items():
            config[layer_name] = {k: str(v) for k, v in layer_defaults.items()}

        try:
            self.config_file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_file_path, "w", encoding="utf-8") as configfile:
                config.write(configfile)
        except OSError as e:
            raise ConfigurationError(f"Failed to save configuration file: {e}") from e

    def _get_config_as_dict(self) -> dict[str, Any]:
        """Reads the general and per-layer sections of the INI file into a dictionary."""
        if not self._parser.has_section(GENERAL_SECTION):
            raise ConfigurationError(
                f"Configuration file is missing the [{GENERAL_SECTION}] section."
            )
        section = self._parser[GENERAL_SECTION]
        try:
            data: dict[str, Any] = {
                "bbox": section.get("bbox", ""),
                "min_zoom": section.getint("min_zoom", DEFAULT_SETTINGS["min_zoom"]),
                "max_zoom": section.getint("max_zoom", DEFAULT_SETTINGS["max_zoom"]),
                "cache_dir": section.get("cache_dir", ""),
                "cache_max_age_days": section.getint(
                    "cache_max_age_days", DEFAULT_SETTINGS["cache_max_age_days"]
                ),
                "user_agent": section.get("user_agent", DEFAULT_SETTINGS["user_agent"]),
                "max_connections": section.getint(
                    "max_connections", DEFAULT_SETTINGS["max_connections"]
                ),
                "request_timeout": section.getfloat(
                    "request_timeout", DEFAULT_SETTINGS["request_timeout"]
                ),
            }
            for layer_name in DEFAULT_LAYERS:
                layer_section = self._parser[layer_name]
                data[layer_name] = {
                    "url_template": layer_section.get("url_template", ""),
                    "max_zoom": layer_section.getint("max_zoom", 19),
                    "extension": layer_section.get("extension", "png"),
                }
        except ValueError as e:
            raise ConfigurationError(f"Invalid value in configuration file: {e}") from e
        return data

    def _migrate_if_needed(self) -> bool:
        """Adds missing sections and default values to an existing config file."""
        needs_saving = False

        if not self._parser.has_section(GENERAL_SECTION):
            self._parser.add_section(GENERAL_SECTION)
            needs_saving = True
        general = self._parser[GENERAL_SECTION]
        for key, default_value in DEFAULT_SETTINGS.items():
            if key not in general:
                general[key] = str(default_value)
                needs_saving = True
                log.debug(
                    f"Migrating config: added missing key '{key}' with "
                    f"value '{general[key]}'."
                )

        for layer_name, layer_defaults in DEFAULT_LAYERS.items():
            if not self._parser.has_section(layer_name):
                self._parser.add_section(layer_name)
                needs_saving = True
            layer_section = self._parser[layer_name]
            for key, default_value in layer_defaults.items():
                if key not in layer_section:
                    layer_section[key] = str(default_value)
                    needs_saving = True
                    log.debug(
                        f"Migrating config: added missing key '{layer_name}.{key}'."
                    )

        if needs_saving:
            try:
                with open(self.config_file_path, "w", encoding="utf-8") as f:
                    self._parser.write(f)
            except OSError as e:
                log.error(f"Could not save migrated configuration file: {e}")
                return False

        return needs_saving

    def get_config_as_dict(self) -> dict[str, Any]:
        """Reads the file without validating it, for display."""
        if not self.config_file_path.is_file():
            raise ConfigurationError(
                f"Configuration file not found at '{self.config_file_path}'."
            )
        try:
            self._parser.read(self.config_file_path, encoding="utf-8")
        except configparser.Error as e:
            raise ConfigurationError(f"Error parsing configuration file: {e}") from e
        self._migrate_if_needed()
        return self._get_config_as_dict()
