from __future__ import annotations

import hashlib
import math
import random
import threading
from dataclasses import dataclass
from typing import List

from ..sample import INVALID_CELL_ID, UNKNOWN_OPERATOR, CellKind, CellReading
from .base import PositionCallback

SPRINGFIELD_CO_CENTER_LAT = 37.4083
SPRINGFIELD_CO_CENTER_LON = -102.6144
EARTH_RADIUS_M = 6_371_000.0


@dataclass(frozen=True)
class _Tower:
    kind: CellKind
    cell_id: int
    area_code: int
    operator: str
    base_dbm: int


def _rng_for(device_id: str) -> random.Random:
    seed_bytes = hashlib.sha256(device_id.encode("utf-8")).digest()[:8]
    return random.Random(int.from_bytes(seed_bytes, "big", signed=False))


class MockSampleSource:
    """Deterministic simulated host: a walking device among a few towers.

    A fraction of readings (`invalid_ratio`) carry the unknown-cell sentinel or
    an "Unknown" operator, as real modems do while camping or roaming.
    """

    def __init__(
        self,
        device_id: str,
        *,
        center: tuple[float, float] = (SPRINGFIELD_CO_CENTER_LAT, SPRINGFIELD_CO_CENTER_LON),
        step_m: float = 5.0,
        invalid_ratio: float = 0.05,
    ) -> None:
        self.device_id = device_id
        self.step_m = float(step_m)
        self.invalid_ratio = max(0.0, min(1.0, float(invalid_ratio)))

        self._rng = _rng_for(device_id)
        self._lat, self._lon = center
        self._heading = self._rng.uniform(0.0, 2.0 * math.pi)
        self._callbacks: List[PositionCallback] = []
        self._lock = threading.Lock()
        self._towers = self._make_towers()

    def _make_towers(self) -> List[_Tower]:
        operator = f"310{self._rng.choice(['260', '410', '120'])}"
        towers = [
            _Tower(CellKind.LTE, self._rng.randrange(1, 0x0FFFFFFE), self._rng.randrange(1, 65535), operator, -95),
            _Tower(CellKind.LTE, self._rng.randrange(1, 0x0FFFFFFE), self._rng.randrange(1, 65535), operator, -105),
            _Tower(CellKind.WCDMA, self._rng.randrange(1, 0x0FFFFFF), self._rng.randrange(1, 65535), operator, -90),
            _Tower(CellKind.GSM, self._rng.randrange(1, 65535), self._rng.randrange(1, 65535), operator, -80),
        ]
        return towers

    def subscribe_positions(self, callback: PositionCallback) -> None:
        with self._lock:
            self._callbacks.append(callback)
        # Publish the current fix right away so the first tick has one.
        callback(self._lat, self._lon)

    def _walk(self) -> tuple[float, float]:
        self._heading += self._rng.gauss(0.0, 0.3)
        d = self.step_m / EARTH_RADIUS_M
        self._lat += math.degrees(d * math.cos(self._heading))
        self._lon += math.degrees(d * math.sin(self._heading) / max(1e-6, math.cos(math.radians(self._lat))))
        return round(self._lat, 7), round(self._lon, 7)

    def read_cells(self) -> List[CellReading]:
        with self._lock:
            lat, lon = self._walk()
            callbacks = list(self._callbacks)
            visible = self._rng.sample(self._towers, k=self._rng.randint(1, len(self._towers)))
            readings = [self._reading_for(t) for t in visible]

        for cb in callbacks:
            cb(lat, lon)
        return readings

    def _reading_for(self, tower: _Tower) -> CellReading:
        cell_id = tower.cell_id
        operator = tower.operator
        if self._rng.random() < self.invalid_ratio:
            if self._rng.random() < 0.5:
                cell_id = INVALID_CELL_ID
            else:
                operator = UNKNOWN_OPERATOR

        dbm = tower.base_dbm + int(round(self._rng.gauss(0.0, 3.0)))
        rsrp = rsrq = None
        if tower.kind is CellKind.LTE:
            rsrp = dbm
            rsrq = -int(round(self._rng.uniform(5.0, 15.0)))

        return CellReading(
            kind=tower.kind,
            cell_id=cell_id,
            area_code=tower.area_code,
            operator=operator,
            signal_dbm=dbm,
            rsrp=rsrp,
            rsrq=rsrq,
        )

    def close(self) -> None:
        with self._lock:
            self._callbacks.clear()
