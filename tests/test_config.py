"""Tests for configuration models and loading."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from secure_updates.config import (
    ConfigManager,
    YamlConfigLoader,
    api_key_env_var,
    get_config_dir,
    get_default_backup_dir,
)
from secure_updates.errors import ConfigError
from secure_updates.models import ClientConfig

CONFIG_YAML = """
defaults:
  server_url: https://updates.example.com/
  host_name: MyHost
  host_version: "6.4"
  options:
    rate_limiting:
      requests_per_window: 10
units:
  my-plugin:
    current_version: 1.2.3
    api_key: file-key
    options:
      verify_packages: false
  other-plugin:
    current_version: 2.0.0
    server_url: https://other.example.com
    options:
      rate_limiting:
        window_seconds: 120
"""


class TestClientConfig:
    """Tests for ClientConfig validation."""

    def test_minimal(self) -> None:
        config = ClientConfig(
            server_url="https://updates.example.com/", unit="my-plugin", current_version="1.0"
        )

        assert config.server_url == "https://updates.example.com"
        assert config.api_key is None
        assert config.bearer_token is None
        assert config.options.verify_packages is True
        assert config.options.rate_limiting.requests_per_window == 30
        assert config.options.rate_limiting.window_seconds == 60
        assert config.options.timeout_seconds == 15

    def test_http_requires_test_mode(self) -> None:
        with pytest.raises(ValidationError, match="https"):
            ClientConfig(server_url="http://localhost:8080", unit="u", current_version="1.0")

        config = ClientConfig(
            server_url="http://localhost:8080", unit="u", current_version="1.0", test_mode=True
        )
        assert config.server_url == "http://localhost:8080"

    @pytest.mark.parametrize("url", ["updates.example.com", "ftp://x.org", "https://"])
    def test_invalid_server_url(self, url: str) -> None:
        with pytest.raises(ValidationError):
            ClientConfig(server_url=url, unit="u", current_version="1.0")

    def test_invalid_version(self) -> None:
        with pytest.raises(ValidationError, match="not a valid version"):
            ClientConfig(server_url="https://x.org", unit="u", current_version="latest")

    def test_invalid_unit(self) -> None:
        with pytest.raises(ValidationError):
            ClientConfig(server_url="https://x.org", unit="My Plugin", current_version="1.0")

    def test_api_key_is_secret(self) -> None:
        config = ClientConfig(
            server_url="https://x.org", unit="u", current_version="1.0", api_key="s3cret"
        )

        assert config.bearer_token == "s3cret"
        assert "s3cret" not in repr(config)

    def test_blank_api_key_is_none(self) -> None:
        config = ClientConfig(
            server_url="https://x.org", unit="u", current_version="1.0", api_key="  "
        )
        assert config.api_key is None

    def test_frozen(self) -> None:
        config = ClientConfig(server_url="https://x.org", unit="u", current_version="1.0")
        with pytest.raises(ValidationError):
            config.current_version = "2.0"  # type: ignore[misc]


class TestPaths:
    """Tests for XDG path helpers."""

    def test_config_dir_follows_xdg(self, tmp_path: Path) -> None:
        assert get_config_dir() == tmp_path / "xdg_config" / "secure-updates"
        assert get_config_dir().is_dir()

    def test_backup_dir_follows_xdg(self, tmp_path: Path) -> None:
        assert get_default_backup_dir() == tmp_path / "xdg_data" / "secure-updates" / "backups"

    def test_api_key_env_var(self) -> None:
        assert api_key_env_var("my-plugin") == "SECURE_UPDATES_API_KEY_MY_PLUGIN"


class TestYamlConfigLoader:
    """Tests for YamlConfigLoader."""

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            YamlConfigLoader().load(str(tmp_path / "missing.yaml"))

    def test_empty_file(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text("")
        assert YamlConfigLoader().load(str(path)) == {}

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text("units: [unclosed")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            YamlConfigLoader().load(str(path))

    def test_not_a_mapping(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigError, match="must be a mapping"):
            YamlConfigLoader().load(str(path))


class TestConfigManager:
    """Tests for ConfigManager."""

    @pytest.fixture
    def config_path(self, tmp_path: Path) -> Path:
        path = tmp_path / "config.yaml"
        path.write_text(CONFIG_YAML)
        return path

    def test_missing_file_has_no_units(self, tmp_path: Path) -> None:
        manager = ConfigManager(tmp_path / "missing.yaml")
        assert manager.load() == {}

    def test_default_path(self, tmp_path: Path) -> None:
        manager = ConfigManager()
        assert manager.config_path == tmp_path / "xdg_config" / "secure-updates" / "config.yaml"

    def test_defaults_are_merged(self, config_path: Path) -> None:
        units = ConfigManager(config_path).load()

        assert set(units) == {"my-plugin", "other-plugin"}

        mine = units["my-plugin"]
        assert mine.unit == "my-plugin"
        assert mine.server_url == "https://updates.example.com"
        assert mine.host_name == "MyHost"
        assert mine.options.verify_packages is False
        assert mine.options.rate_limiting.requests_per_window == 10

        other = units["other-plugin"]
        assert other.server_url == "https://other.example.com"
        assert other.options.rate_limiting.requests_per_window == 10
        assert other.options.rate_limiting.window_seconds == 120

    def test_api_key_from_file(self, config_path: Path) -> None:
        assert ConfigManager(config_path).get_unit("my-plugin").bearer_token == "file-key"

    def test_api_key_from_environment(
        self, config_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("SECURE_UPDATES_API_KEY_OTHER_PLUGIN", "env-key")
        monkeypatch.setenv("SECURE_UPDATES_API_KEY_MY_PLUGIN", "ignored")

        manager = ConfigManager(config_path)

        assert manager.get_unit("other-plugin").bearer_token == "env-key"
        assert manager.get_unit("my-plugin").bearer_token == "file-key"

    def test_unknown_unit(self, config_path: Path) -> None:
        with pytest.raises(ConfigError, match="not configured"):
            ConfigManager(config_path).get_unit("missing")

    def test_invalid_unit_entry(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text("units:\n  broken:\n    server_url: https://x.org\n")

        with pytest.raises(ConfigError, match="Invalid configuration for unit 'broken'"):
            ConfigManager(path).load()

    def test_save_omits_api_key(self, config_path: Path, tmp_path: Path) -> None:
        units = ConfigManager(config_path).load()
        out = tmp_path / "saved.yaml"

        ConfigManager(out).save(units)

        data = yaml.safe_load(out.read_text())
        assert "api_key" not in data["units"]["my-plugin"]
        assert data["units"]["my-plugin"]["current_version"] == "1.2.3"
        reloaded = ConfigManager(out).load()
        assert reloaded["other-plugin"].options.rate_limiting.window_seconds == 120
