"""Configuration management for peerscout.

Provides centralized configuration with TOML support, validation and
hierarchical loading from defaults → config file → environment.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import toml

from peerscout.models import Config, ObservabilityConfig, TrackerConfig
from peerscout.utils.exceptions import ConfigurationError
from peerscout.utils.logging_config import setup_logging

CONFIG_FILE_NAME = "peerscout.toml"

# Mapping of environment variables to config paths
ENV_MAPPINGS: dict[str, str] = {
    "PEERSCOUT_TRACKER_TIMEOUT": "tracker.base_timeout",
    "PEERSCOUT_TRACKER_MAX_RETRIES": "tracker.max_retries",
    "PEERSCOUT_CONNECTION_ID_TTL": "tracker.connection_id_ttl",
    "PEERSCOUT_LISTEN_PORT": "tracker.listen_port",
    "PEERSCOUT_BIND_HOST": "tracker.bind_host",
    "PEERSCOUT_BIND_PORT": "tracker.bind_port",
    "PEERSCOUT_LOG_LEVEL": "observability.log_level",
    "PEERSCOUT_LOG_FILE": "observability.log_file",
    "PEERSCOUT_STRUCTURED_LOGGING": "observability.structured_logging",
}

# Paths whose values must stay strings even when they look numeric
_STRING_PATHS = {
    "tracker.bind_host",
    "observability.log_level",
    "observability.log_file",
}

# Global configuration instance
_config_manager: ConfigManager | None = None


class ConfigManager:
    """Manages configuration loading and validation."""

    def __init__(
        self,
        config_file: str | Path | None = None,
        configure_logging: bool = True,
    ):
        """Initialize configuration manager.

        Args:
            config_file: Path to TOML config file. If None, searches for peerscout.toml
            configure_logging: Apply the observability section to the logging system

        """
        self.config_file = self._find_config_file(config_file)
        self.config = self._load_config()
        if configure_logging:
            self._setup_logging()

    def _find_config_file(
        self,
        config_file: str | Path | None,
    ) -> Path | None:
        """Find configuration file in standard locations."""
        if config_file:
            return Path(config_file)

        search_paths = [
            Path.cwd() / CONFIG_FILE_NAME,
            Path.home() / ".config" / "peerscout" / CONFIG_FILE_NAME,
            Path.home() / f".{CONFIG_FILE_NAME}",
        ]

        for path in search_paths:
            if path.exists():
                return path

        return None

    def _load_config(self) -> Config:
        """Load configuration from file and environment."""
        config_data: dict[str, Any] = {}

        if self.config_file and self.config_file.exists():
            try:
                with open(self.config_file, encoding="utf-8") as f:
                    config_data.update(toml.load(f))
            except (OSError, toml.TomlDecodeError) as e:
                msg = f"Failed to load config file {self.config_file}: {e}"
                raise ConfigurationError(msg) from e

        env_config = self._get_env_config()
        config_data = self._merge_config(config_data, env_config)

        try:
            return Config(**config_data)
        except Exception as e:
            msg = f"Invalid configuration: {e}"
            raise ConfigurationError(msg) from e

    def _get_env_config(self) -> dict[str, Any]:
        """Get configuration from environment variables."""
        env_config: dict[str, Any] = {}

        def _parse_env_value(raw: str, path: str) -> bool | int | float | str:
            if path in _STRING_PATHS:
                return raw
            low = raw.lower()
            if low in {"true", "yes", "on"}:
                return True
            if low in {"false", "no", "off"}:
                return False
            try:
                if "." in raw:
                    return float(raw)
                return int(raw)
            except ValueError:
                return raw

        def _set_nested(d: dict[str, Any], path: str, value: Any) -> None:
            parts = path.split(".")
            cur = d
            for p in parts[:-1]:
                cur = cur.setdefault(p, {})
            cur[parts[-1]] = value

        for env_name, cfg_path in ENV_MAPPINGS.items():
            raw = os.getenv(env_name)
            if raw is None:
                continue
            _set_nested(env_config, cfg_path, _parse_env_value(raw, cfg_path))

        return env_config

    def _merge_config(
        self,
        base: dict[str, Any],
        override: dict[str, Any],
    ) -> dict[str, Any]:
        """Merge configuration dictionaries recursively."""
        result = base.copy()

        for key, value in override.items():
            if (
                key in result
                and isinstance(result[key], dict)
                and isinstance(value, dict)
            ):
                result[key] = self._merge_config(result[key], value)
            else:
                result[key] = value

        return result

    def export(self) -> str:
        """Export the effective configuration as TOML."""
        return toml.dumps(self.config.model_dump(mode="json", exclude_none=True))

    def _setup_logging(self) -> None:
        """Set up logging based on configuration."""
        setup_logging(self.config.observability)
        logging.getLogger(__name__).debug(
            "Configuration loaded from %s",
            self.config_file or "defaults",
        )


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager(configure_logging=False)
    return _config_manager.config


def init_config(config_file: str | Path | None = None) -> ConfigManager:
    """Initialize the global configuration manager."""
    global _config_manager
    _config_manager = ConfigManager(config_file)
    return _config_manager


def reset_config() -> None:
    """Drop the global configuration so the next access reloads it."""
    global _config_manager
    _config_manager = None


def get_tracker_config() -> TrackerConfig:
    """Get tracker configuration."""
    return get_config().tracker


def get_observability_config() -> ObservabilityConfig:
    """Get observability configuration."""
    return get_config().observability
