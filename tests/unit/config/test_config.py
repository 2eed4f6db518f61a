"""Tests for configuration loading."""

from __future__ import annotations

import pytest
import toml

from peerscout.config import (
    ConfigManager,
    get_config,
    get_observability_config,
    get_tracker_config,
    init_config,
)
from peerscout.models import LogLevel
from peerscout.utils.exceptions import ConfigurationError

pytestmark = [pytest.mark.unit, pytest.mark.config]


class TestDefaults:
    """Values used when nothing is configured."""

    def test_tracker_defaults(self):
        tracker = ConfigManager(configure_logging=False).config.tracker

        assert tracker.base_timeout == 15.0
        assert tracker.max_retries == 8
        assert tracker.connection_id_ttl == 60.0
        assert tracker.listen_port == 6881
        assert tracker.bind_port == 0

    def test_no_config_file_found(self):
        manager = ConfigManager(configure_logging=False)
        assert manager.config_file is None

    def test_global_accessors(self):
        assert get_tracker_config() is get_config().tracker
        assert get_observability_config().log_level is LogLevel.INFO


class TestConfigFile:
    """TOML file loading."""

    def test_explicit_file(self, tmp_path):
        path = tmp_path / "custom.toml"
        path.write_text(
            "[tracker]\nbase_timeout = 5.0\nmax_retries = 3\n"
            "[observability]\nlog_level = \"DEBUG\"\n",
            encoding="utf-8",
        )

        config = ConfigManager(path, configure_logging=False).config

        assert config.tracker.base_timeout == 5.0
        assert config.tracker.max_retries == 3
        assert config.observability.log_level is LogLevel.DEBUG

    def test_found_in_working_directory(self, tmp_path):
        (tmp_path / "peerscout.toml").write_text("[tracker]\nlisten_port = 7000\n", encoding="utf-8")

        manager = ConfigManager(configure_logging=False)

        assert manager.config_file == tmp_path / "peerscout.toml"
        assert manager.config.tracker.listen_port == 7000

    def test_found_in_home_config_dir(self, tmp_path):
        config_dir = tmp_path / ".config" / "peerscout"
        config_dir.mkdir(parents=True)
        (config_dir / "peerscout.toml").write_text("[tracker]\nmax_retries = 1\n", encoding="utf-8")
        work = tmp_path / "work"
        work.mkdir()

        with pytest.MonkeyPatch.context() as mp:
            mp.chdir(work)
            manager = ConfigManager(configure_logging=False)

        assert manager.config.tracker.max_retries == 1

    def test_invalid_toml(self, tmp_path):
        path = tmp_path / "broken.toml"
        path.write_text("[tracker\nbase_timeout = ", encoding="utf-8")

        with pytest.raises(ConfigurationError, match="Failed to load config file"):
            ConfigManager(path, configure_logging=False)

    def test_invalid_value(self, tmp_path):
        path = tmp_path / "bad.toml"
        path.write_text("[tracker]\nbase_timeout = -1\n", encoding="utf-8")

        with pytest.raises(ConfigurationError, match="Invalid configuration"):
            ConfigManager(path, configure_logging=False)


class TestEnvironment:
    """PEERSCOUT_* overrides."""

    def test_env_overrides_file(self, tmp_path, monkeypatch):
        path = tmp_path / "peerscout.toml"
        path.write_text("[tracker]\nbase_timeout = 5.0\nmax_retries = 3\n", encoding="utf-8")
        monkeypatch.setenv("PEERSCOUT_TRACKER_TIMEOUT", "2.5")
        monkeypatch.setenv("PEERSCOUT_LISTEN_PORT", "51413")

        tracker = ConfigManager(path, configure_logging=False).config.tracker

        assert tracker.base_timeout == 2.5
        assert tracker.listen_port == 51413
        assert tracker.max_retries == 3

    def test_string_and_bool_values(self, monkeypatch):
        monkeypatch.setenv("PEERSCOUT_BIND_HOST", "127.0.0.1")
        monkeypatch.setenv("PEERSCOUT_LOG_LEVEL", "WARNING")
        monkeypatch.setenv("PEERSCOUT_STRUCTURED_LOGGING", "off")

        config = ConfigManager(configure_logging=False).config

        assert config.tracker.bind_host == "127.0.0.1"
        assert config.observability.log_level is LogLevel.WARNING
        assert config.observability.structured_logging is False

    def test_invalid_env_value(self, monkeypatch):
        monkeypatch.setenv("PEERSCOUT_TRACKER_MAX_RETRIES", "lots")

        with pytest.raises(ConfigurationError):
            ConfigManager(configure_logging=False)


class TestGlobalConfig:
    """Module-level configuration instance."""

    def test_init_config_replaces_global(self, tmp_path):
        path = tmp_path / "global.toml"
        path.write_text("[tracker]\nconnection_id_ttl = 30.0\n", encoding="utf-8")

        manager = init_config(path)

        assert get_config() is manager.config
        assert get_tracker_config().connection_id_ttl == 30.0

    def test_get_config_is_cached(self):
        assert get_config() is get_config()


def test_export_round_trips(tmp_path):
    path = tmp_path / "peerscout.toml"
    path.write_text("[tracker]\nmax_retries = 4\n", encoding="utf-8")

    exported = toml.loads(ConfigManager(path, configure_logging=False).export())

    assert exported["tracker"]["max_retries"] == 4
    assert exported["observability"]["log_level"] == "INFO"
    assert "log_file" not in exported["observability"]
