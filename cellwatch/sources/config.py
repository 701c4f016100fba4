from __future__ import annotations

from ..config import CellwatchConfig, ConfigError
from .base import SafeSampleSource
from .mock import MockSampleSource
from .modem import ModemManagerSource

SUPPORTED_SOURCES = ("mock", "mmcli")


def build_sample_source(config: CellwatchConfig) -> SafeSampleSource:
    name = (config.source or "").strip().lower()
    if name == "mock":
        return SafeSampleSource(source_name=name, source=MockSampleSource(config.device_id))
    if name == "mmcli":
        return SafeSampleSource(
            source_name=name,
            source=ModemManagerSource(
                modem_id=config.modem_id,
                command_timeout_s=config.mmcli_timeout_s,
            ),
        )
    raise ConfigError(f"CELLWATCH_SOURCE must be one of: {list(SUPPORTED_SOURCES)}")
