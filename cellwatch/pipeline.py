from __future__ import annotations

import logging
import threading
from typing import Any, Dict

import requests

from .assembler import ClockMs, SampleAssembler
from .buffer import SampleBuffer
from .config import CellwatchConfig
from .connectivity import ConnectivityProber
from .delivery import DeliveryEngine, NotificationSink
from .sources.base import SampleSource

logger = logging.getLogger("cellwatch.pipeline")


class CollectionPipeline:
    """Sampling thread + delivery worker, started and cancelled as a unit.

    The sampling thread only touches the source and the buffer; all network
    I/O happens on the delivery worker.
    """

    def __init__(
        self,
        config: CellwatchConfig,
        source: SampleSource,
        *,
        sink: NotificationSink | None = None,
        session: requests.Session | None = None,
        prober: ConnectivityProber | None = None,
        clock_ms: ClockMs | None = None,
    ) -> None:
        self.config = config
        self.source = source
        self.buffer = SampleBuffer(config.buffer_capacity)
        self.engine = DeliveryEngine(config, self.buffer, session=session, prober=prober, sink=sink)
        self.buffer.on_threshold = self.engine.request_flush
        self.assembler = SampleAssembler(self.buffer, clock_ms=clock_ms)

        self._stop = threading.Event()
        self._sampler: threading.Thread | None = None
        self._subscribed = False

    def _subscribe(self) -> None:
        if not self._subscribed:
            self.source.subscribe_positions(self.assembler.on_position)
            self._subscribed = True

    def tick(self) -> int:
        """Run one sampling tick; returns the number of samples admitted."""

        self._subscribe()
        return self.assembler.collect(self.source.read_cells())

    def _sample_loop(self) -> None:
        interval_s = self.config.sample_interval_ms / 1000.0
        while not self._stop.is_set():
            try:
                self.tick()
            except Exception:
                logger.exception("sampling tick failed")
            if self._stop.wait(interval_s):
                return

    def start(self) -> None:
        if self._sampler is not None and self._sampler.is_alive():
            return
        self._subscribe()
        self._stop.clear()
        self.engine.start()
        self._sampler = threading.Thread(target=self._sample_loop, name="cellwatch-sampler", daemon=True)
        self._sampler.start()
        logger.info(
            "pipeline started interval_ms=%s capacity=%s collector=%s",
            self.config.sample_interval_ms,
            self.config.buffer_capacity,
            self.config.collector_url,
        )

    def stop(self, *, flush: bool = False, timeout_s: float | None = None) -> None:
        self._stop.set()
        sampler = self._sampler
        if sampler is not None:
            sampler.join(timeout_s)
        self._sampler = None

        self.engine.stop(timeout_s, flush=flush)
        self.source.close()
        # close() drops position callbacks; the next start() must re-register.
        self._subscribed = False
        logger.info("pipeline stopped (queue=%s)", self.buffer.count())

    def metrics(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        out.update(self.buffer.metrics())
        out.update(self.engine.metrics())
        return out
