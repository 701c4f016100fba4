from __future__ import annotations

import os
from dataclasses import dataclass
from urllib.parse import urlparse


class ConfigError(ValueError):
    """Raised when cellwatch env configuration is invalid."""


_LOG_FORMATS = {"text", "json"}


@dataclass(frozen=True)
class CellwatchConfig:
    device_id: str = "cellwatch-device"
    collector_url: str = "http://localhost:8080"
    sample_interval_ms: int = 1000
    buffer_capacity: int = 10

    primary_attempts: int = 5
    primary_retry_delay_s: float = 2.0
    health_check_attempts: int = 12
    health_check_interval_s: float = 5.0

    connect_timeout_s: float = 5.0
    read_timeout_s: float = 5.0

    probe_host: str = "8.8.8.8"
    probe_port: int = 53
    probe_timeout_s: float = 2.0

    source: str = "mock"
    modem_id: str = "0"
    mmcli_timeout_s: float = 3.0

    log_level: str = "INFO"
    log_format: str = "text"

    @property
    def health_url(self) -> str:
        return f"{self.collector_url.rstrip('/')}/api/health"


def load_config_from_env() -> CellwatchConfig:
    collector_url = os.getenv("CELLWATCH_COLLECTOR_URL", "http://localhost:8080").strip()
    parsed = urlparse(collector_url)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ConfigError("CELLWATCH_COLLECTOR_URL must be an http(s) URL")

    probe_host = os.getenv("CELLWATCH_PROBE_HOST", "8.8.8.8").strip()
    if not probe_host:
        raise ConfigError("CELLWATCH_PROBE_HOST must be non-empty")

    log_format = os.getenv("LOG_FORMAT", "text").strip().lower()
    if log_format not in _LOG_FORMATS:
        raise ConfigError(f"LOG_FORMAT must be one of: {sorted(_LOG_FORMATS)}")

    return CellwatchConfig(
        device_id=os.getenv("CELLWATCH_DEVICE_ID", "cellwatch-device").strip() or "cellwatch-device",
        collector_url=collector_url,
        sample_interval_ms=_parse_positive_int_env("CELLWATCH_SAMPLE_INTERVAL_MS", default=1000),
        buffer_capacity=_parse_positive_int_env("CELLWATCH_BUFFER_CAPACITY", default=10),
        primary_attempts=_parse_positive_int_env("CELLWATCH_PRIMARY_ATTEMPTS", default=5),
        primary_retry_delay_s=_parse_nonnegative_float_env("CELLWATCH_PRIMARY_RETRY_DELAY_S", default=2.0),
        health_check_attempts=_parse_positive_int_env("CELLWATCH_HEALTH_CHECK_ATTEMPTS", default=12),
        health_check_interval_s=_parse_nonnegative_float_env(
            "CELLWATCH_HEALTH_CHECK_INTERVAL_S", default=5.0
        ),
        connect_timeout_s=_parse_positive_float_env("CELLWATCH_CONNECT_TIMEOUT_S", default=5.0),
        read_timeout_s=_parse_positive_float_env("CELLWATCH_READ_TIMEOUT_S", default=5.0),
        probe_host=probe_host,
        probe_port=_parse_positive_int_env("CELLWATCH_PROBE_PORT", default=53),
        probe_timeout_s=_parse_positive_float_env("CELLWATCH_PROBE_TIMEOUT_S", default=2.0),
        source=os.getenv("CELLWATCH_SOURCE", "mock").strip().lower() or "mock",
        modem_id=os.getenv("CELLWATCH_MODEM_ID", "0").strip() or "0",
        mmcli_timeout_s=_parse_positive_float_env("CELLWATCH_MMCLI_TIMEOUT_S", default=3.0),
        log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO",
        log_format=log_format,
    )


def _parse_positive_int_env(name: str, *, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return int(default)
    try:
        parsed = int(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer") from exc
    if parsed <= 0:
        raise ConfigError(f"{name} must be > 0")
    return parsed


def _parse_positive_float_env(name: str, *, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return float(default)
    try:
        parsed = float(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be a number") from exc
    if parsed <= 0:
        raise ConfigError(f"{name} must be > 0")
    return parsed


def _parse_nonnegative_float_env(name: str, *, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return float(default)
    try:
        parsed = float(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be a number") from exc
    if parsed < 0:
        raise ConfigError(f"{name} must be >= 0")
    return parsed
