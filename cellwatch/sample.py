from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping

INVALID_CELL_ID = 0x0FFFFFFF
UNKNOWN_OPERATOR = "Unknown"


class SampleDecodeError(ValueError):
    """Raised when a wire object cannot be decoded into a Sample."""


class CellKind(str, Enum):
    GSM = "GSM"
    CDMA = "CDMA"
    WCDMA = "WCDMA"
    TDSCDMA = "TDSCDMA"
    LTE = "LTE"
    NR = "NR"

    @property
    def uses_tracking_area(self) -> bool:
        return self in (CellKind.LTE, CellKind.NR)

    @property
    def reports_quality(self) -> bool:
        return self is CellKind.LTE


@dataclass(frozen=True)
class Position:
    latitude: float
    longitude: float


@dataclass(frozen=True)
class CellReading:
    """Raw radio-cell reading as delivered by a sample source."""

    kind: CellKind
    cell_id: int
    area_code: int
    operator: str
    signal_dbm: int | None = None
    rsrp: int | None = None
    rsrq: int | None = None


def is_admissible(cell_id: int, operator: str) -> bool:
    return cell_id != INVALID_CELL_ID and operator != UNKNOWN_OPERATOR


@dataclass(frozen=True)
class Sample:
    kind: CellKind
    cell_id: int
    area_code: int
    operator: str
    latitude: float
    longitude: float
    timestamp_ms: int
    signal_dbm: int | None = None
    rsrp: int | None = None
    rsrq: int | None = None

    def __post_init__(self) -> None:
        if not self.kind.reports_quality and (self.rsrp is not None or self.rsrq is not None):
            raise ValueError(f"RSRP/RSRQ are only carried by LTE samples, not {self.kind.value}")

    def to_wire(self) -> Dict[str, Any]:
        """Encode to the collector's JSON object shape."""

        area_key = "trackingAreaCode" if self.kind.uses_tracking_area else "locationAreaCode"
        out: Dict[str, Any] = {
            "type": self.kind.value,
            "cellId": self.cell_id,
            "signalStrength": self.signal_dbm,
            area_key: self.area_code,
            "operator": self.operator,
        }
        if self.kind.reports_quality:
            out["RSRP"] = self.rsrp
            out["RSRQ"] = self.rsrq
        out["coordinates"] = f"{self.latitude!r}, {self.longitude!r}"
        out["timestamp"] = self.timestamp_ms
        return out

    @classmethod
    def from_wire(cls, obj: Mapping[str, Any]) -> Sample:
        try:
            kind = CellKind(obj["type"])
        except (KeyError, ValueError) as exc:
            raise SampleDecodeError(f"invalid type: {obj.get('type')!r}") from exc

        area_key = "trackingAreaCode" if kind.uses_tracking_area else "locationAreaCode"
        lat, lon = _parse_coordinates(obj.get("coordinates"))

        return cls(
            kind=kind,
            cell_id=_require_int(obj, "cellId"),
            area_code=_require_int(obj, area_key),
            operator=_require_str(obj, "operator"),
            latitude=lat,
            longitude=lon,
            timestamp_ms=_require_int(obj, "timestamp"),
            signal_dbm=_optional_int(obj, "signalStrength"),
            rsrp=_optional_int(obj, "RSRP") if kind.reports_quality else None,
            rsrq=_optional_int(obj, "RSRQ") if kind.reports_quality else None,
        )


def encode_batch(samples: Iterable[Sample]) -> List[Dict[str, Any]]:
    return [s.to_wire() for s in samples]


def _require_int(obj: Mapping[str, Any], key: str) -> int:
    v = obj.get(key)
    if isinstance(v, bool) or not isinstance(v, int):
        raise SampleDecodeError(f"'{key}' must be an int")
    return v


def _optional_int(obj: Mapping[str, Any], key: str) -> int | None:
    if obj.get(key) is None:
        return None
    return _require_int(obj, key)


def _require_str(obj: Mapping[str, Any], key: str) -> str:
    v = obj.get(key)
    if not isinstance(v, str):
        raise SampleDecodeError(f"'{key}' must be a string")
    return v


def _parse_coordinates(raw: Any) -> tuple[float, float]:
    if not isinstance(raw, str) or "," not in raw:
        raise SampleDecodeError(f"invalid coordinates: {raw!r}")
    lat_s, lon_s = raw.split(",", 1)
    try:
        return float(lat_s.strip()), float(lon_s.strip())
    except ValueError as exc:
        raise SampleDecodeError(f"invalid coordinates: {raw!r}") from exc
