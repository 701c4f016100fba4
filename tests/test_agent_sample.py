from __future__ import annotations

import json

import pytest

from cellwatch.sample import (
    INVALID_CELL_ID,
    CellKind,
    Sample,
    SampleDecodeError,
    encode_batch,
    is_admissible,
)


def _lte(**overrides) -> Sample:
    values = dict(
        kind=CellKind.LTE,
        cell_id=123456,
        area_code=4321,
        operator="310260",
        latitude=37.4083125,
        longitude=-102.6144,
        timestamp_ms=1_760_000_000_123,
        signal_dbm=-97,
        rsrp=-97,
        rsrq=-11,
    )
    values.update(overrides)
    return Sample(**values)


def test_invalid_cell_id_sentinel_value() -> None:
    assert INVALID_CELL_ID == 268435455


@pytest.mark.parametrize(
    ("cell_id", "operator", "expected"),
    [
        (1, "310260", True),
        (INVALID_CELL_ID, "310260", False),
        (1, "Unknown", False),
        (INVALID_CELL_ID, "Unknown", False),
        (1, "unknown", True),
    ],
)
def test_is_admissible(cell_id: int, operator: str, expected: bool) -> None:
    assert is_admissible(cell_id, operator) is expected


def test_lte_wire_shape_uses_tracking_area_and_quality_fields() -> None:
    wire = _lte().to_wire()

    assert wire == {
        "type": "LTE",
        "cellId": 123456,
        "signalStrength": -97,
        "trackingAreaCode": 4321,
        "operator": "310260",
        "RSRP": -97,
        "RSRQ": -11,
        "coordinates": "37.4083125, -102.6144",
        "timestamp": 1_760_000_000_123,
    }


def test_gsm_wire_shape_uses_location_area_and_omits_quality_fields() -> None:
    sample = Sample(
        kind=CellKind.GSM,
        cell_id=4711,
        area_code=12,
        operator="26201",
        latitude=52.5,
        longitude=13.4,
        timestamp_ms=1,
    )
    wire = sample.to_wire()

    assert wire["locationAreaCode"] == 12
    assert "trackingAreaCode" not in wire
    assert "RSRP" not in wire and "RSRQ" not in wire
    assert wire["signalStrength"] is None


def test_wire_round_trip_through_json_is_field_for_field_equal() -> None:
    samples = [
        _lte(),
        _lte(kind=CellKind.NR, rsrp=None, rsrq=None, latitude=-33.86785, longitude=151.20732),
        Sample(
            kind=CellKind.WCDMA,
            cell_id=0x0ABCDEF,
            area_code=65534,
            operator="23415",
            latitude=51.5072,
            longitude=-0.1276,
            timestamp_ms=1_760_000_000_999,
            signal_dbm=None,
        ),
    ]

    decoded = [Sample.from_wire(obj) for obj in json.loads(json.dumps(encode_batch(samples)))]

    assert decoded == samples


@pytest.mark.parametrize(
    "obj",
    [
        {"type": "WIFI", "cellId": 1, "locationAreaCode": 1, "operator": "x", "coordinates": "1, 2", "timestamp": 1},
        {"type": "GSM", "cellId": "1", "locationAreaCode": 1, "operator": "x", "coordinates": "1, 2", "timestamp": 1},
        {"type": "GSM", "cellId": 1, "locationAreaCode": 1, "operator": "x", "coordinates": "nowhere", "timestamp": 1},
        {"type": "LTE", "cellId": 1, "locationAreaCode": 1, "operator": "x", "coordinates": "1, 2", "timestamp": 1},
    ],
)
def test_from_wire_rejects_malformed_objects(obj: dict) -> None:
    with pytest.raises(SampleDecodeError):
        Sample.from_wire(obj)


@pytest.mark.parametrize("kind", [CellKind.GSM, CellKind.WCDMA, CellKind.NR])
def test_quality_fields_are_rejected_outside_lte(kind: CellKind) -> None:
    with pytest.raises(ValueError):
        _lte(kind=kind)
    with pytest.raises(ValueError):
        _lte(kind=kind, rsrp=None)


def test_from_wire_ignores_quality_fields_on_non_lte_objects() -> None:
    obj = _lte(kind=CellKind.GSM, rsrp=None, rsrq=None).to_wire()
    obj.update({"locationAreaCode": 4321, "RSRP": -90, "RSRQ": -9})

    decoded = Sample.from_wire(obj)

    assert (decoded.rsrp, decoded.rsrq) == (None, None)
    assert Sample.from_wire(json.loads(json.dumps(decoded.to_wire()))) == decoded
