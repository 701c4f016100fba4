from .base import PositionCallback, SafeSampleSource, SampleSource
from .config import SUPPORTED_SOURCES, build_sample_source
from .mock import MockSampleSource
from .modem import ModemManagerSource

__all__ = [
    "MockSampleSource",
    "ModemManagerSource",
    "PositionCallback",
    "SUPPORTED_SOURCES",
    "SafeSampleSource",
    "SampleSource",
    "build_sample_source",
]
