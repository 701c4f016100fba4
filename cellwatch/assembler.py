from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Iterable

from .buffer import SampleBuffer
from .sample import CellReading, Position, Sample, is_admissible

logger = logging.getLogger("cellwatch.assembler")

ClockMs = Callable[[], int]


def _wall_clock_ms() -> int:
    return int(time.time() * 1000)


class SampleAssembler:
    """Merge the latest position fix with cell readings into Samples."""

    def __init__(self, buffer: SampleBuffer, *, clock_ms: ClockMs | None = None) -> None:
        self.buffer = buffer
        self._clock_ms = clock_ms or _wall_clock_ms
        self._lock = threading.Lock()
        self._position: Position | None = None
        self._last_ts_ms = 0

    def on_position(self, latitude: float, longitude: float) -> None:
        with self._lock:
            self._position = Position(latitude=float(latitude), longitude=float(longitude))

    @property
    def latest_position(self) -> Position | None:
        with self._lock:
            return self._position

    def _stamp(self) -> int:
        # Clamp so timestamps never go backwards if the wall clock steps.
        with self._lock:
            ts = max(self._last_ts_ms, int(self._clock_ms()))
            self._last_ts_ms = ts
            return ts

    def assemble(self, position: Position, reading: CellReading) -> Sample | None:
        """Build a Sample and push it into the buffer; None if the reading is invalid."""

        if not is_admissible(reading.cell_id, reading.operator):
            logger.debug(
                "filtered invalid reading type=%s cell_id=%s operator=%r",
                reading.kind.value,
                reading.cell_id,
                reading.operator,
            )
            return None

        sample = Sample(
            kind=reading.kind,
            cell_id=reading.cell_id,
            area_code=reading.area_code,
            operator=reading.operator,
            latitude=position.latitude,
            longitude=position.longitude,
            timestamp_ms=self._stamp(),
            signal_dbm=reading.signal_dbm,
            rsrp=reading.rsrp if reading.kind.reports_quality else None,
            rsrq=reading.rsrq if reading.kind.reports_quality else None,
        )
        self.buffer.push(sample)
        return sample

    def collect(self, readings: Iterable[CellReading]) -> int:
        """Assemble readings against the latest fix and push admitted samples."""

        position = self.latest_position
        if position is None:
            logger.debug("no position fix yet; skipping tick")
            return 0

        admitted = 0
        for reading in readings:
            if self.assemble(position, reading) is not None:
                admitted += 1
        return admitted
