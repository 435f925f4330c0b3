"""Tests for YAML config loading and env var overrides."""

import os

import pytest
import yaml

from src.config import AppConfig, load_config, resolve_env_vars


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    """Run each test from an empty directory with no config env vars."""
    for key in list(os.environ):
        if key.startswith("DATAPORTRAIT_"):
            monkeypatch.delenv(key)
    for key in (
        "GETGATHER_URL", "APP_HOST", "SENTRY_DSN", "ALLOW_FACE_UPLOAD",
        "MAXMIND_ACCOUNT_ID", "MAXMIND_LICENSE_KEY",
    ):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))


def _write(tmp_path, data: dict) -> str:
    path = tmp_path / "custom.yaml"
    path.write_text(yaml.safe_dump(data))
    return str(path)


class TestDefaults:

    def test_no_file_gives_defaults(self):
        cfg = load_config()

        assert cfg == AppConfig()
        assert cfg.signin.poll_interval_seconds == 1.0
        assert cfg.signin.poll_backoff == 1.5
        assert cfg.signin.poll_max_wait_seconds == 600.0
        assert cfg.connector.max_retries == 3
        assert cfg.connector.hidden_brands == ["officedepot"]
        assert cfg.aggregation.dedup_excluded_brands == ["Garmin"]

    def test_missing_explicit_path_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="Config file not found"):
            load_config(str(tmp_path / "missing.yaml"))

    def test_cwd_file_is_found(self, tmp_path):
        (tmp_path / "dataportrait.yaml").write_text("server:\n  port: 9100\n")

        assert load_config().server.port == 9100


class TestYamlLoading:

    def test_sections_load(self, tmp_path):
        path = _write(tmp_path, {
            "connector": {"getgather_url": "https://gg.example/", "app_host": "https://app/"},
            "signin": {"poll_max_wait_seconds": 30},
            "features": {"allow_face_upload": True},
        })

        cfg = load_config(path)

        assert cfg.connector.getgather_url == "https://gg.example"
        assert cfg.connector.app_host == "https://app"
        assert cfg.signin.poll_max_wait_seconds == 30.0
        assert cfg.features.allow_face_upload is True

    def test_env_var_references_resolve(self, tmp_path, monkeypatch):
        monkeypatch.setenv("MY_DSN", "https://k@sentry.example/2")
        path = _write(tmp_path, {"features": {"sentry_dsn": "${MY_DSN}"}})

        assert load_config(path).features.sentry_dsn == "https://k@sentry.example/2"

    def test_config_path_env(self, tmp_path, monkeypatch):
        monkeypatch.setenv("DATAPORTRAIT_CONFIG_PATH", _write(tmp_path, {"server": {"port": 9200}}))

        assert load_config().server.port == 9200


class TestEnvOverrides:

    def test_section_field_override(self, tmp_path, monkeypatch):
        monkeypatch.setenv("DATAPORTRAIT_SIGNIN_POLL_MAX_WAIT_SECONDS", "45")
        path = _write(tmp_path, {"signin": {"poll_max_wait_seconds": 30}})

        assert load_config(path).signin.poll_max_wait_seconds == 45.0

    def test_list_fields_split_on_commas(self, monkeypatch):
        monkeypatch.setenv("DATAPORTRAIT_AGGREGATION_DEDUP_EXCLUDED_BRANDS", "Garmin, Strava")

        assert load_config().aggregation.dedup_excluded_brands == ["Garmin", "Strava"]

    def test_string_fields_keep_digits(self, monkeypatch):
        monkeypatch.setenv("DATAPORTRAIT_SERVER_HOST", "0")

        assert load_config().server.host == "0"

    def test_unknown_keys_ignored(self, monkeypatch):
        monkeypatch.setenv("DATAPORTRAIT_SERVER_NOPE", "1")
        monkeypatch.setenv("DATAPORTRAIT_BOGUS_KEY", "1")

        assert load_config() == AppConfig()

    def test_deployment_variables(self, monkeypatch):
        monkeypatch.setenv("GETGATHER_URL", "https://gg.example/")
        monkeypatch.setenv("ALLOW_FACE_UPLOAD", "true")

        cfg = load_config()

        assert cfg.connector.getgather_url == "https://gg.example"
        assert cfg.features.allow_face_upload is True

    def test_yaml_wins_over_deployment_variable(self, tmp_path, monkeypatch):
        monkeypatch.setenv("GETGATHER_URL", "https://env.example")
        path = _write(tmp_path, {"connector": {"getgather_url": "https://yaml.example"}})

        assert load_config(path).connector.getgather_url == "https://yaml.example"

    def test_maxmind_credentials(self, monkeypatch):
        monkeypatch.setenv("MAXMIND_ACCOUNT_ID", "123456")
        monkeypatch.setenv("MAXMIND_LICENSE_KEY", "0042")

        cfg = load_config()

        assert cfg.geolocation.maxmind_account_id == 123456
        assert cfg.geolocation.maxmind_license_key == "0042"
        assert cfg.geolocation.enabled is True

    def test_geolocation_disabled_without_key(self, monkeypatch):
        monkeypatch.setenv("MAXMIND_ACCOUNT_ID", "123456")

        assert load_config().geolocation.enabled is False


def test_resolve_env_vars_missing_is_empty(monkeypatch):
    monkeypatch.delenv("NOT_SET_ANYWHERE", raising=False)
    assert resolve_env_vars("a${NOT_SET_ANYWHERE}b") == "ab"
