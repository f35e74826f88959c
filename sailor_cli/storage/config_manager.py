"""
Manages loading, validation, and migration of the INI configuration file.
"""

import configparser
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from sailor_cli.exceptions import ConfigurationError
from sailor_cli.models.config import SailorConfig

log = logging.getLogger(__name__)

LIST_KEYS = {"downloader_command", "trackers"}


class ConfigManager:
    """Handles all operations related to the application's INI config file."""

    def __init__(self, config_file_path: Path):
        self.config_file_path = config_file_path
        self._parser = configparser.ConfigParser(interpolation=None)

    def load_config(self, cli_options: dict[str, Any] | None = None) -> SailorConfig:
        """
        Loads configuration from the INI file, applies CLI overrides, and validates it.
        A missing file is not an error; the defaults are used instead.

        Args:
            cli_options: A dictionary of options provided via the command line.

        Returns:
            A validated SailorConfig object.

        Raises:
            ConfigurationError: If the config file is invalid or validation fails.
        """
        config_from_file: dict[str, Any] = {}
        if self.config_file_path.is_file():
            try:
                self._parser.read(self.config_file_path, encoding="utf-8")
            except configparser.Error as e:
                raise ConfigurationError(
                    f"Error parsing configuration file: {e}"
                ) from e

            if self._migrate_if_needed():
                log.info(
                    "[yellow]Configuration file was updated with new default values."
                    "[/yellow]"
                )
            config_from_file = self._get_config_as_dict()
        else:
            log.debug(f"No config file at '{self.config_file_path}', using defaults.")

        if cli_options:
            config_from_file.update(cli_options)

        try:
            return SailorConfig(
                **config_from_file, config_path=str(self.config_file_path.parent)
            )
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed:\n{e}") from e

    def save_new_config(self, settings: dict[str, Any] | None = None) -> None:
        """
        Creates and saves a new configuration file filled with defaults.

        Args:
            settings: Values that take precedence over the defaults.
        """
        settings = settings or {}
        defaults = SailorConfig()
        config = configparser.ConfigParser(interpolation=None)
        config["DEFAULT"] = {}

        for key in sorted(SailorConfig.get_ini_keys()):
            value = settings.get(key, getattr(defaults, key, None))
            if key == "state_file" and key not in settings:
                # Follows download_dir unless set explicitly.
                continue
            rendered = self._render_value(key, value)
            if rendered is not None:
                config["DEFAULT"][key] = rendered

        try:
            self.config_file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_file_path, "w", encoding="utf-8") as configfile:
                config.write(configfile)
        except OSError as e:
            raise ConfigurationError(f"Failed to save configuration file: {e}") from e

    @staticmethod
    def _render_value(key: str, value: Any) -> str | None:
        if value is None:
            return None
        if key in LIST_KEYS:
            return ",".join(map(str, value))
        return str(value)

    def _get_config_as_dict(self) -> dict[str, Any]:
        """Reads the 'DEFAULT' section of the INI file into a dictionary."""
        section = self._parser["DEFAULT"]
        values: dict[str, Any] = {}
        for key in SailorConfig.get_ini_keys():
            if key not in section:
                continue
            raw = section.get(key, "")
            if key in LIST_KEYS:
                values[key] = [s.strip() for s in raw.split(",") if s.strip()]
            elif raw.strip():
                values[key] = raw.strip()
        return values

    def _migrate_if_needed(self) -> bool:
        """Adds missing default values to an existing config file."""
        defaults = SailorConfig()
        config_section = self._parser["DEFAULT"]
        needs_saving = False

        for key in SailorConfig.get_ini_keys():
            if key in config_section or key == "state_file":
                continue
            rendered = self._render_value(key, getattr(defaults, key))
            if rendered is None:
                continue
            config_section[key] = rendered
            needs_saving = True
            log.debug(
                f"Migrating config: added missing key '{key}' with value '{rendered}'."
            )

        if needs_saving:
            try:
                with open(self.config_file_path, "w", encoding="utf-8") as f:
                    self._parser.write(f)
            except OSError as e:
                log.error(f"Could not save migrated configuration file: {e}")
                return False

        return needs_saving
