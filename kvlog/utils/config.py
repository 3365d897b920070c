"""
Configuration management for kvlog.

Values are layered, later layers winning:
- Built-in defaults
- An optional YAML configuration file
- Environment variables
- Explicit ``set`` calls (the CLI applies its flags this way)
"""

import copy
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

DEFAULTS: Dict[str, Any] = {
    "store": {
        "path": "./kvlog.db",
        "fsync_on_flush": False,
    },
    "logging": {
        "level": "INFO",
        "format": "json",
        "output": "stderr",
    },
}


class ConfigError(Exception):
    """Raised when a configuration file cannot be used."""
    pass


class Config:
    """Layered configuration with dot-notation access."""

    def __init__(self, config_file: Optional[Union[str, Path]] = None):
        """
        Initialize configuration.

        Args:
            config_file: Optional path to a YAML configuration file

        Raises:
            ConfigError: If the file is not valid YAML or not a mapping
            OSError: If the file cannot be read
        """
        self._config: Dict[str, Any] = copy.deepcopy(DEFAULTS)

        if config_file:
            self._load_config_file(Path(config_file))

        self._apply_env_overrides()

    def _load_config_file(self, config_file: Path) -> None:
        with open(config_file, "r", encoding="utf-8") as f:
            try:
                file_config = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid YAML in {config_file}: {e}") from e

        if file_config is None:
            return
        if not isinstance(file_config, dict):
            raise ConfigError(
                f"Configuration file {config_file} must contain a mapping, "
                f"got {type(file_config).__name__}"
            )
        self._config = self._deep_merge(self._config, file_config)

    def _deep_merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """
        Deep merge two dictionaries.

        Args:
            base: Base dictionary
            override: Override dictionary

        Returns:
            Merged dictionary
        """
        result = base.copy()
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value
        return result

    def _apply_env_overrides(self) -> None:
        if data_file := os.getenv("KVLOG_DATA_FILE"):
            self.set("store.path", data_file)

        if fsync := os.getenv("KVLOG_FSYNC"):
            self.set("store.fsync_on_flush", fsync.lower() in ("1", "true", "yes"))

        if log_level := os.getenv("KVLOG_LOG_LEVEL"):
            self.set("logging.level", log_level)

        if log_format := os.getenv("KVLOG_LOG_FORMAT"):
            self.set("logging.format", log_format)

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a configuration value using dot notation.

        Args:
            key: Key in dot notation (e.g., "store.path")
            default: Value returned when the key is missing

        Returns:
            Configuration value
        """
        value = self._config
        for k in key.split("."):
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default
        return value

    def set(self, key: str, value: Any) -> None:
        """
        Set a configuration value using dot notation.

        Args:
            key: Key in dot notation
            value: Value to set
        """
        keys = key.split(".")
        config = self._config
        for k in keys[:-1]:
            config = config.setdefault(k, {})
        config[keys[-1]] = value

    def to_dict(self) -> Dict[str, Any]:
        """Return a deep copy of the configuration."""
        return copy.deepcopy(self._config)

