from .buffer import SampleBuffer
from .config import CellwatchConfig, ConfigError, load_config_from_env
from .delivery import DeliveryEngine, DeliveryOutcome, DeliveryState, LoggingNotificationSink
from .pipeline import CollectionPipeline
from .sample import CellKind, CellReading, Position, Sample, SampleDecodeError

__version__ = "0.1.0"

__all__ = [
    "CellKind",
    "CellReading",
    "CellwatchConfig",
    "CollectionPipeline",
    "ConfigError",
    "DeliveryEngine",
    "DeliveryOutcome",
    "DeliveryState",
    "LoggingNotificationSink",
    "Position",
    "Sample",
    "SampleBuffer",
    "SampleDecodeError",
    "load_config_from_env",
]
