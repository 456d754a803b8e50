"""
Tests for settings loading and validation
"""
import pytest
from pydantic import ValidationError

from dsmr_exporter.config import Settings, get_settings, load_settings
from dsmr_exporter.exceptions import ConfigurationError


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("DSMR_BASE_URL", "METRICS_PREFIX", "LOG_LEVEL", "UPSTREAM_TIMEOUT_SECONDS", "SERVE_STALE_ON_ERROR"):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_defaults():
    settings = Settings(_env_file=None, dsmr_base_url="http://dsmr-logger.local")

    assert settings.metrics_prefix == "dsmr_logger"
    assert settings.api_port == 8080
    assert settings.upstream_timeout_seconds == 5.0
    assert settings.serve_stale_on_error is True


def test_reads_environment(monkeypatch):
    monkeypatch.setenv("DSMR_BASE_URL", "http://192.168.1.50:8080")
    monkeypatch.setenv("UPSTREAM_TIMEOUT_SECONDS", "2.5")
    monkeypatch.setenv("SERVE_STALE_ON_ERROR", "false")

    settings = Settings(_env_file=None)

    assert settings.dsmr_base_url.host == "192.168.1.50"
    assert settings.dsmr_base_url.port == 8080
    assert settings.upstream_timeout_seconds == 2.5
    assert settings.serve_stale_on_error is False


def test_missing_base_url_is_rejected():
    with pytest.raises(ValidationError):
        Settings(_env_file=None)


@pytest.mark.parametrize("url", ["not a url", "dsmr-logger.local", "ftp://dsmr-logger.local"])
def test_malformed_base_url_is_rejected(url):
    with pytest.raises(ValidationError):
        Settings(_env_file=None, dsmr_base_url=url)


def test_log_level_is_normalized():
    settings = Settings(_env_file=None, dsmr_base_url="http://dsmr-logger.local", log_level="debug")

    assert settings.log_level == "DEBUG"


def test_invalid_log_level():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, dsmr_base_url="http://dsmr-logger.local", log_level="chatty")


@pytest.mark.parametrize("prefix", ["1dsmr", "dsmr-logger", ""])
def test_invalid_prefix(prefix):
    with pytest.raises(ValidationError):
        Settings(_env_file=None, dsmr_base_url="http://dsmr-logger.local", metrics_prefix=prefix)


def test_timeout_must_be_positive():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, dsmr_base_url="http://dsmr-logger.local", upstream_timeout_seconds=0)


def test_load_settings_raises_configuration_error(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)

    with pytest.raises(ConfigurationError) as exc_info:
        load_settings()

    assert exc_info.value.error_code == "CONFIGURATION_ERROR"
    assert any(e.startswith("dsmr_base_url") for e in exc_info.value.details["errors"])


def test_load_settings_from_environment(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("DSMR_BASE_URL", "http://dsmr-logger.local")

    assert str(load_settings().dsmr_base_url).startswith("http://dsmr-logger.local")
