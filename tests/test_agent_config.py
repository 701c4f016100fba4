from __future__ import annotations

import pytest

from cellwatch.config import CellwatchConfig, ConfigError, load_config_from_env

_ENV_NAMES = (
    "CELLWATCH_DEVICE_ID",
    "CELLWATCH_COLLECTOR_URL",
    "CELLWATCH_SAMPLE_INTERVAL_MS",
    "CELLWATCH_BUFFER_CAPACITY",
    "CELLWATCH_PRIMARY_ATTEMPTS",
    "CELLWATCH_PRIMARY_RETRY_DELAY_S",
    "CELLWATCH_HEALTH_CHECK_ATTEMPTS",
    "CELLWATCH_HEALTH_CHECK_INTERVAL_S",
    "CELLWATCH_CONNECT_TIMEOUT_S",
    "CELLWATCH_READ_TIMEOUT_S",
    "CELLWATCH_PROBE_HOST",
    "CELLWATCH_PROBE_PORT",
    "CELLWATCH_PROBE_TIMEOUT_S",
    "CELLWATCH_SOURCE",
    "CELLWATCH_MODEM_ID",
    "CELLWATCH_MMCLI_TIMEOUT_S",
    "LOG_LEVEL",
    "LOG_FORMAT",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _ENV_NAMES:
        monkeypatch.delenv(name, raising=False)


def test_defaults_match_field_deployment_values() -> None:
    cfg = load_config_from_env()

    assert cfg == CellwatchConfig()
    assert cfg.buffer_capacity == 10
    assert cfg.primary_attempts == 5
    assert cfg.primary_retry_delay_s == 2.0
    assert (cfg.connect_timeout_s, cfg.read_timeout_s) == (5.0, 5.0)
    assert cfg.health_url == "http://localhost:8080/api/health"


def test_env_overrides_are_parsed(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CELLWATCH_COLLECTOR_URL", "https://collector.example.com/")
    monkeypatch.setenv("CELLWATCH_BUFFER_CAPACITY", "25")
    monkeypatch.setenv("CELLWATCH_HEALTH_CHECK_INTERVAL_S", "0.5")
    monkeypatch.setenv("CELLWATCH_SOURCE", " MMCLI ")
    monkeypatch.setenv("LOG_FORMAT", "JSON")
    monkeypatch.setenv("LOG_LEVEL", "debug")

    cfg = load_config_from_env()

    assert cfg.buffer_capacity == 25
    assert cfg.health_check_interval_s == 0.5
    assert cfg.source == "mmcli"
    assert cfg.log_format == "json"
    assert cfg.log_level == "DEBUG"
    assert cfg.health_url == "https://collector.example.com/api/health"


def test_zero_delays_are_allowed(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CELLWATCH_PRIMARY_RETRY_DELAY_S", "0")
    monkeypatch.setenv("CELLWATCH_HEALTH_CHECK_INTERVAL_S", "0")

    cfg = load_config_from_env()

    assert cfg.primary_retry_delay_s == 0.0
    assert cfg.health_check_interval_s == 0.0


@pytest.mark.parametrize(
    ("name", "value"),
    [
        ("CELLWATCH_COLLECTOR_URL", "ftp://collector"),
        ("CELLWATCH_COLLECTOR_URL", "collector:8080"),
        ("CELLWATCH_BUFFER_CAPACITY", "0"),
        ("CELLWATCH_BUFFER_CAPACITY", "ten"),
        ("CELLWATCH_PRIMARY_ATTEMPTS", "-1"),
        ("CELLWATCH_PRIMARY_RETRY_DELAY_S", "-0.5"),
        ("CELLWATCH_CONNECT_TIMEOUT_S", "0"),
        ("CELLWATCH_PROBE_HOST", "   "),
        ("LOG_FORMAT", "xml"),
    ],
)
def test_invalid_values_raise_config_error(monkeypatch: pytest.MonkeyPatch, name: str, value: str) -> None:
    monkeypatch.setenv(name, value)
    with pytest.raises(ConfigError):
        load_config_from_env()
