"""Configuration management for secure updates.

This module provides YAML-based configuration loading and saving,
following the XDG Base Directory Specification.

A configuration file declares shared ``defaults`` and one entry per update
unit::

    defaults:
      server_url: https://updates.example.com
      options:
        rate_limiting:
          requests_per_window: 30
          window_seconds: 60
    units:
      my-plugin:
        current_version: 1.2.3
        install_dir: /srv/app/plugins/my-plugin
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import structlog
import yaml
from pydantic import ValidationError

from .errors import ConfigError
from .models import ClientConfig

logger = structlog.get_logger(__name__)

APP_DIR_NAME = "secure-updates"
API_KEY_ENV_PREFIX = "SECURE_UPDATES_API_KEY_"


def get_config_dir() -> Path:
    """Get the configuration directory following XDG spec.

    Returns:
        Path to the configuration directory.
    """
    xdg_config_home = os.environ.get("XDG_CONFIG_HOME")
    base = Path(xdg_config_home) if xdg_config_home else Path.home() / ".config"

    config_dir = base / APP_DIR_NAME
    config_dir.mkdir(parents=True, exist_ok=True)
    return config_dir


def get_default_config_path() -> Path:
    """Get the default configuration file path."""
    return get_config_dir() / "config.yaml"


def get_data_dir() -> Path:
    """Get the data directory following XDG spec."""
    xdg_data_home = os.environ.get("XDG_DATA_HOME")
    base = Path(xdg_data_home) if xdg_data_home else Path.home() / ".local" / "share"
    return base / APP_DIR_NAME


def get_default_backup_dir() -> Path:
    """Get the default directory for backup archives."""
    return get_data_dir() / "backups"


def api_key_env_var(unit: str) -> str:
    """Return the environment variable that may hold the API key for ``unit``."""
    return API_KEY_ENV_PREFIX + unit.upper().replace("-", "_")


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class YamlConfigLoader:
    """YAML-based configuration loader.

    Loads and saves configuration from/to YAML files.
    """

    def load(self, path: str) -> dict[str, Any]:
        """Load configuration from a YAML file.

        Args:
            path: Path to the configuration file.

        Returns:
            Configuration dictionary.

        Raises:
            FileNotFoundError: If the file doesn't exist.
            ConfigError: If the file is not valid YAML or not a mapping.
        """
        config_path = Path(path)

        if not config_path.exists():
            logger.debug("config_file_not_found", path=path)
            raise FileNotFoundError(f"Configuration file not found: {path}")

        try:
            data = yaml.safe_load(config_path.read_text())
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigError(f"Configuration in {path} must be a mapping")

        return data

    def save(self, config: dict[str, Any], path: str) -> None:
        """Save configuration to a YAML file.

        Args:
            config: Configuration dictionary.
            path: Path to save the configuration.
        """
        config_path = Path(path)
        config_path.parent.mkdir(parents=True, exist_ok=True)

        content = yaml.safe_dump(config, default_flow_style=False, sort_keys=False)
        config_path.write_text(content)

        logger.info("config_saved", path=path)


class ConfigManager:
    """Loads the per-unit client configurations of a host.

    Each unit's settings are layered: ``defaults`` from the file, then the
    unit's own entry, then the API key from the environment when the file
    does not set one.
    """

    def __init__(self, config_path: Path | None = None) -> None:
        """Initialize the configuration manager.

        Args:
            config_path: Optional path to configuration file.
                        Uses default path if not provided.
        """
        self.config_path = config_path or get_default_config_path()
        self._loader = YamlConfigLoader()
        self._units: dict[str, ClientConfig] | None = None

    def load(self) -> dict[str, ClientConfig]:
        """Load configuration from file.

        Returns:
            Mapping of unit slug to ClientConfig; empty if the file doesn't exist.

        Raises:
            ConfigError: If the file or any unit entry is invalid.
        """
        try:
            data = self._loader.load(str(self.config_path))
        except FileNotFoundError:
            logger.info("no_config_file", path=str(self.config_path))
            data = {}

        self._units = self._parse_config(data)
        return self._units

    def get_units(self) -> dict[str, ClientConfig]:
        """Get all configured units, loading from file if needed."""
        if self._units is None:
            self.load()
        return self._units or {}

    def get_unit(self, unit: str) -> ClientConfig:
        """Get the configuration of one unit.

        Raises:
            ConfigError: If the unit is not configured.
        """
        units = self.get_units()
        if unit not in units:
            raise ConfigError(f"Unit '{unit}' is not configured in {self.config_path}")
        return units[unit]

    def save(self, units: dict[str, ClientConfig]) -> None:
        """Save unit configurations to file. API keys are never written."""
        self._units = dict(units)
        self._loader.save(self._serialize_config(self._units), str(self.config_path))

    def _parse_config(self, data: dict[str, Any]) -> dict[str, ClientConfig]:
        """Parse configuration dictionary into ClientConfig objects.

        Args:
            data: Raw configuration dictionary.

        Returns:
            Parsed configurations keyed by unit slug.
        """
        defaults = data.get("defaults") or {}
        units_data = data.get("units") or {}
        if not isinstance(defaults, dict) or not isinstance(units_data, dict):
            raise ConfigError("'defaults' and 'units' must be mappings")

        units: dict[str, ClientConfig] = {}
        for name, unit_data in units_data.items():
            if unit_data is None:
                unit_data = {}
            elif not isinstance(unit_data, dict):
                raise ConfigError(f"Unit '{name}' must be a mapping")

            merged = _deep_merge(defaults, unit_data)
            merged["unit"] = name
            if not merged.get("api_key"):
                env_key = os.environ.get(api_key_env_var(name))
                if env_key:
                    merged["api_key"] = env_key

            try:
                units[name] = ClientConfig(**merged)
            except ValidationError as e:
                raise ConfigError(f"Invalid configuration for unit '{name}': {e}") from e

        return units

    def _serialize_config(self, units: dict[str, ClientConfig]) -> dict[str, Any]:
        """Serialize unit configurations to a dictionary."""
        return {
            "units": {
                name: config.model_dump(
                    mode="json",
                    exclude={"unit", "api_key"},
                    exclude_defaults=True,
                )
                for name, config in units.items()
            },
        }
