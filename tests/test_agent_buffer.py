from __future__ import annotations

import threading

import pytest

from cellwatch.buffer import SampleBuffer
from cellwatch.sample import CellKind, Sample


def _sample(idx: int) -> Sample:
    return Sample(
        kind=CellKind.GSM,
        cell_id=1000 + idx,
        area_code=7,
        operator="310260",
        latitude=37.0,
        longitude=-102.0,
        timestamp_ms=idx,
        signal_dbm=-80,
    )


def test_buffer_rejects_non_positive_capacity() -> None:
    with pytest.raises(ValueError):
        SampleBuffer(0)


def test_push_signals_threshold_and_drain_is_fifo() -> None:
    signals: list[int] = []
    buf = SampleBuffer(3, on_threshold=lambda: signals.append(1))

    assert buf.push(_sample(0)) is False
    assert buf.push(_sample(1)) is False
    assert buf.push(_sample(2)) is True
    assert signals == [1]

    # Pushes past capacity keep signalling and are never dropped.
    assert buf.push(_sample(3)) is True
    assert len(buf) == 4

    first = buf.drain(3)
    assert [s.timestamp_ms for s in first] == [0, 1, 2]
    assert [s.timestamp_ms for s in buf.drain(3)] == [3]
    assert buf.drain(3) == []


def test_metrics_track_depth_and_totals() -> None:
    buf = SampleBuffer(10)
    for idx in range(5):
        buf.push(_sample(idx))
    buf.drain(2)

    assert buf.metrics() == {
        "buffer_queue_depth": 3,
        "buffer_pushed_total": 5,
        "buffer_drained_total": 2,
    }
    assert buf.threshold_reached() is False


def test_concurrent_push_and_drain_lose_and_reorder_nothing() -> None:
    buf = SampleBuffer(10)
    total = 2000
    drained: list[Sample] = []
    producer_done = threading.Event()

    def producer() -> None:
        for idx in range(total):
            buf.push(_sample(idx))
        producer_done.set()

    def consumer() -> None:
        while not producer_done.is_set() or buf.count():
            batch = buf.drain(10)
            assert len(batch) <= 10
            drained.extend(batch)

    threads = [threading.Thread(target=producer), threading.Thread(target=consumer)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=10)

    assert [s.timestamp_ms for s in drained] == list(range(total))
