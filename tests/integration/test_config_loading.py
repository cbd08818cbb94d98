"""Integration tests for configuration loading with layered precedence.

Tests the real load_config() function with actual YAML files, environment
variables, and CLI overrides to verify precedence: defaults < YAML < ENV < CLI.
"""

from __future__ import annotations

import os
from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from referer_proxy.infrastructure.config.load import load_config

pytestmark = pytest.mark.integration


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep REFERER_PROXY_* variables from the host out of these tests."""
    for key in list(os.environ):
        if key.upper().startswith("REFERER_PROXY_"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture()
def yaml_config(tmp_path: Path) -> Path:
    """Write a minimal YAML config and return its path."""
    config = {
        "app_name": "referer-proxy-test",
        "environment": "test",
        "proxy": {
            "referer": "http://yaml.example.com",
            "advertise_host": "10.0.0.5",
        },
        "http": {"timeout_seconds": 7.5},
        "logging": {"level": "DEBUG", "format": "console"},
    }
    path = tmp_path / "config.yaml"
    path.write_text(yaml.dump(config), encoding="utf-8")
    return path


class TestDefaultsOnly:
    """Load with no YAML, no ENV, no CLI — pure defaults."""

    def test_defaults_produce_valid_config(self) -> None:
        config = load_config()
        assert config.app_name == "referer-proxy"
        assert config.environment == "dev"
        assert config.referer == "http://play.yoitv.com"
        assert config.bind_host == "0.0.0.0"
        assert config.advertise_host is None
        assert config.http_timeout_seconds == 15.0
        assert config.http_max_request_bytes == 65536
        assert config.log_level == "INFO"
        assert config.log_format == "console"

    def test_prod_derives_json_logs(self) -> None:
        config = load_config(cli_overrides={"environment": "prod"})
        assert config.log_format == "json"

    def test_to_proxy_config(self) -> None:
        proxy_config = load_config().to_proxy_config()
        assert proxy_config.referer == "http://play.yoitv.com"
        assert proxy_config.upstream_timeout_seconds == 15.0
        assert proxy_config.request_read_timeout_seconds == 10.0


class TestYamlOverrides:
    def test_yaml_overrides_defaults(self, yaml_config: Path) -> None:
        config = load_config(config_path=yaml_config)
        assert config.app_name == "referer-proxy-test"
        assert config.referer == "http://yaml.example.com"
        assert config.advertise_host == "10.0.0.5"
        assert config.http_timeout_seconds == 7.5
        assert config.log_level == "DEBUG"

    def test_yaml_partial_override_preserves_defaults(self, tmp_path: Path) -> None:
        path = tmp_path / "partial.yaml"
        path.write_text(yaml.dump({"http": {"read_timeout_seconds": 3.0}}), encoding="utf-8")

        config = load_config(config_path=path)

        assert config.http_read_timeout_seconds == 3.0
        assert config.http_timeout_seconds == 15.0
        assert config.referer == "http://play.yoitv.com"

    def test_yaml_file_not_found_raises(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_config(config_path=tmp_path / "nonexistent.yaml")

    def test_non_mapping_yaml_raises(self, tmp_path: Path) -> None:
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ValueError, match="mapping"):
            load_config(config_path=path)

    def test_empty_yaml_uses_defaults(self, tmp_path: Path) -> None:
        path = tmp_path / "empty.yaml"
        path.write_text("", encoding="utf-8")
        assert load_config(config_path=path).referer == "http://play.yoitv.com"

    def test_interface_names_from_comma_string(self, tmp_path: Path) -> None:
        path = tmp_path / "ifaces.yaml"
        path.write_text(
            yaml.dump({"proxy": {"preferred_interfaces": "eth1, wlan1"}}),
            encoding="utf-8",
        )
        assert load_config(config_path=path).preferred_interfaces == ["eth1", "wlan1"]


class TestEnvOverrides:
    def test_env_overrides_yaml(
        self, yaml_config: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("REFERER_PROXY_REFERER", "http://env.example.com")
        monkeypatch.setenv("REFERER_PROXY_HTTP_TIMEOUT_SECONDS", "3")

        config = load_config(config_path=yaml_config)

        assert config.referer == "http://env.example.com"
        assert config.http_timeout_seconds == 3.0
        assert config.advertise_host == "10.0.0.5"

    def test_dotenv_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        dotenv = tmp_path / ".env"
        dotenv.write_text("REFERER_PROXY_ADVERTISE_HOST=10.9.9.9\n", encoding="utf-8")
        # Record the variable as absent so monkeypatch removes what load_dotenv sets
        monkeypatch.setenv("REFERER_PROXY_ADVERTISE_HOST", "")
        monkeypatch.delenv("REFERER_PROXY_ADVERTISE_HOST")

        config = load_config(dotenv_path=dotenv)

        assert config.advertise_host == "10.9.9.9"

    def test_missing_dotenv_raises(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_config(dotenv_path=tmp_path / "missing.env")


class TestCliOverrides:
    def test_cli_overrides_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("REFERER_PROXY_REFERER", "http://env.example.com")

        config = load_config(cli_overrides={"referer": "http://cli.example.com"})

        assert config.referer == "http://cli.example.com"


class TestValidation:
    @pytest.mark.parametrize(
        "overrides",
        [
            {"referer": "   "},
            {"http_timeout_seconds": 0},
            {"http_read_timeout_seconds": -1},
            {"http_max_request_bytes": 100},
            {"log_level": "TRACE"},
        ],
    )
    def test_invalid_values_rejected(self, overrides: dict) -> None:
        with pytest.raises(ValidationError):
            load_config(cli_overrides=overrides)

    def test_sectioned_dump_round_trips(self) -> None:
        config = load_config(cli_overrides={"advertise_host": "10.1.1.1"})
        dumped = config.to_sectioned_dict()
        assert dumped["proxy"]["advertise_host"] == "10.1.1.1"
        assert dumped["http"]["timeout_seconds"] == 15.0
        assert dumped["logging"]["format"] == "console"
