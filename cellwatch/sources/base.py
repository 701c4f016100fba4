from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Protocol

from ..sample import CellReading

logger = logging.getLogger("cellwatch.sources")

PositionCallback = Callable[[float, float], None]


class SampleSource(Protocol):
    """Host adapter that yields position fixes and radio-cell readings.

    Positions are pushed to subscribers; cell readings are pulled once per
    sampling tick.
    """

    def subscribe_positions(self, callback: PositionCallback) -> None: ...

    def read_cells(self) -> List[CellReading]: ...

    def close(self) -> None: ...


@dataclass
class SafeSampleSource:
    """Wraps a source to guarantee no read exceptions escape the sampling loop."""

    source_name: str
    source: SampleSource
    _last_error: str | None = field(default=None, init=False, repr=False)

    def subscribe_positions(self, callback: PositionCallback) -> None:
        self.source.subscribe_positions(callback)

    def read_cells(self) -> List[CellReading]:
        try:
            readings = list(self.source.read_cells())
        except Exception as exc:
            signature = f"{type(exc).__name__}:{exc}"
            if signature != self._last_error:
                logger.warning(
                    "sample source '%s' read failed: %s: %s",
                    self.source_name,
                    type(exc).__name__,
                    exc,
                )
                self._last_error = signature
            return []
        self._last_error = None
        return readings

    def close(self) -> None:
        try:
            self.source.close()
        except Exception as exc:
            logger.warning("sample source '%s' close failed: %r", self.source_name, exc)
