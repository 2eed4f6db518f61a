"""Configuration package for peerscout."""

from __future__ import annotations

from peerscout.config.config import (
    ConfigManager,
    get_config,
    get_observability_config,
    get_tracker_config,
    init_config,
    reset_config,
)

__all__ = [
    "ConfigManager",
    "get_config",
    "get_observability_config",
    "get_tracker_config",
    "init_config",
    "reset_config",
]
