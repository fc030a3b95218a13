"""Tests for vigil.config_loader — file, environment, and override layering."""

from __future__ import annotations

from pathlib import Path

import pytest

from vigil._errors import ConfigError
from vigil.config_loader import load_config


class TestConfigFiles:
    def test_no_file_gives_defaults(self, tmp_path: Path) -> None:
        config = load_config(tmp_path, env={})
        assert config.root == tmp_path
        assert config.port == 8000

    def test_yaml_top_level_keys(self, tmp_path: Path) -> None:
        (tmp_path / "vigil.yaml").write_text("port: 9100\npg_host: db.internal\n")
        config = load_config(tmp_path, env={})
        assert config.port == 9100
        assert config.pg_host == "db.internal"

    def test_yaml_vigil_section(self, tmp_path: Path) -> None:
        (tmp_path / "vigil.yml").write_text("vigil:\n  reconnect_delay: 2.5\n")
        assert load_config(tmp_path, env={}).reconnect_delay == 2.5

    def test_toml_vigil_section(self, tmp_path: Path) -> None:
        (tmp_path / "vigil.toml").write_text('[vigil]\nchannel_logs = "nginx_log_changes"\n')
        assert load_config(tmp_path, env={}).channel_logs == "nginx_log_changes"

    def test_yaml_preferred_over_toml(self, tmp_path: Path) -> None:
        (tmp_path / "vigil.yaml").write_text("port: 9100\n")
        (tmp_path / "vigil.toml").write_text("port = 9200\n")
        assert load_config(tmp_path, env={}).port == 9100

    def test_unknown_keys_ignored(self, tmp_path: Path) -> None:
        (tmp_path / "vigil.yaml").write_text("theme: dark\nport: 9100\n")
        assert load_config(tmp_path, env={}).port == 9100

    def test_malformed_yaml(self, tmp_path: Path) -> None:
        (tmp_path / "vigil.yaml").write_text("port: [9100\n")
        with pytest.raises(ConfigError, match="Malformed"):
            load_config(tmp_path, env={})

    def test_malformed_toml(self, tmp_path: Path) -> None:
        (tmp_path / "vigil.toml").write_text("port = \n")
        with pytest.raises(ConfigError, match="Malformed"):
            load_config(tmp_path, env={})

    def test_yaml_must_be_mapping(self, tmp_path: Path) -> None:
        (tmp_path / "vigil.yaml").write_text("- port\n- 9100\n")
        with pytest.raises(ConfigError, match="mapping"):
            load_config(tmp_path, env={})

    def test_wrong_value_type(self, tmp_path: Path) -> None:
        (tmp_path / "vigil.yaml").write_text("port: not-a-port\n")
        with pytest.raises(ConfigError):
            load_config(tmp_path, env={})


class TestEnvironment:
    def test_pg_variables(self, tmp_path: Path) -> None:
        env = {
            "PG_HOST": "db.internal",
            "PG_PORT": "6432",
            "PG_USER": "vigil",
            "PG_PASSWORD": "s3cret",
            "PG_DATABASE": "monitoring",
            "PG_SSL_CA_PATH": "certs/ca.pem",
            "PG_CHANNEL_LOGS": "nginx_log_changes",
            "PG_CHANNEL_ALERTS": "alert_changes",
        }
        config = load_config(tmp_path, env=env)
        assert config.pg_port == 6432
        assert config.missing_connection_settings() == ()
        assert config.ssl_ca_file == tmp_path / "certs" / "ca.pem"

    def test_env_beats_file(self, tmp_path: Path) -> None:
        (tmp_path / "vigil.yaml").write_text("pg_host: from-file\n")
        config = load_config(tmp_path, env={"PG_HOST": "from-env"})
        assert config.pg_host == "from-env"

    def test_empty_env_value_ignored(self, tmp_path: Path) -> None:
        (tmp_path / "vigil.yaml").write_text("pg_host: from-file\n")
        assert load_config(tmp_path, env={"PG_HOST": ""}).pg_host == "from-file"

    def test_bad_integer(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="PG_PORT"):
            load_config(tmp_path, env={"PG_PORT": "five"})

    @pytest.mark.parametrize(("raw", "expected"), [("1", True), ("true", True), ("no", False)])
    def test_debug_flag(self, tmp_path: Path, raw: str, expected: bool) -> None:
        assert load_config(tmp_path, env={"VIGIL_DEBUG": raw}).debug is expected


class TestOverrides:
    def test_override_beats_env(self, tmp_path: Path) -> None:
        config = load_config(tmp_path, env={"VIGIL_PORT": "9100"}, port=9300)
        assert config.port == 9300

    def test_none_override_ignored(self, tmp_path: Path) -> None:
        config = load_config(tmp_path, env={"VIGIL_PORT": "9100"}, port=None, host=None)
        assert config.port == 9100
        assert config.host == "127.0.0.1"

    def test_unknown_override(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError):
            load_config(tmp_path, env={}, colour="blue")
