from __future__ import annotations

import logging
import queue
import threading
import time
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict, List, Protocol, Sequence

import requests

from .buffer import SampleBuffer
from .config import CellwatchConfig
from .connectivity import ConnectivityProber
from .sample import Sample, encode_batch

logger = logging.getLogger("cellwatch.delivery")

TERMINAL_FAILURE_MESSAGE = "Server is unavailable. Please try again later."
NO_INTERNET_MESSAGE = "No internet connection."


class DeliveryState(str, Enum):
    IDLE = "idle"
    SENDING = "sending"
    HEALTH_CHECKING = "health_checking"
    EXHAUSTED = "exhausted"


class DeliveryOutcome(str, Enum):
    DELIVERED = "delivered"
    DISCARDED = "discarded"
    CANCELLED = "cancelled"


class NotificationSink(Protocol):
    def notify_terminal_failure(self, message: str) -> None: ...

    def notify_advisory(self, message: str) -> None: ...


class LoggingNotificationSink:
    """Default sink: surfaces notifications through the log."""

    def __init__(self) -> None:
        self._log = logging.getLogger("cellwatch.notify")

    def notify_terminal_failure(self, message: str) -> None:
        self._log.error(message)

    def notify_advisory(self, message: str) -> None:
        self._log.warning(message)


class _Cancelled(Exception):
    pass


@dataclass
class DeliveryStats:
    batches_delivered: int = 0
    batches_discarded: int = 0
    samples_delivered: int = 0
    samples_discarded: int = 0
    primary_retries: int = 0
    health_checks: int = 0
    connectivity_advisories: int = 0


def post_samples(
    session: requests.Session,
    base_url: str,
    samples: Sequence[Sample],
    *,
    connect_timeout_s: float = 5.0,
    read_timeout_s: float = 5.0,
) -> requests.Response:
    return session.post(
        f"{base_url.rstrip('/')}/api/cellinfo",
        json=encode_batch(samples),
        timeout=(connect_timeout_s, read_timeout_s),
    )


class DeliveryEngine:
    """Drains the buffer and ships batches to the collector, one at a time.

    Flush signals arrive on a queue read by a single worker thread; signals
    that pile up while a batch is in flight are coalesced into one re-check of
    the backlog. `flush_backlog` and `deliver` also take the flight lock, so a
    direct caller can never overlap the worker.

    Per batch:
    - SENDING: up to `primary_attempts` POSTs, `primary_retry_delay_s` apart.
    - HEALTH_CHECKING: up to `health_check_attempts` rounds. Each round probes
      an external host first (a failure there is reported as "no internet"),
      then the collector health endpoint; on a healthy collector the batch is
      re-POSTed once.
    - EXHAUSTED: the batch is discarded and the sink notified once.

    The engine always returns to IDLE. Cancellation (`stop`) is checked at
    every wait, so a long health-check loop exits promptly.
    """

    def __init__(
        self,
        config: CellwatchConfig,
        buffer: SampleBuffer,
        *,
        session: requests.Session | None = None,
        prober: ConnectivityProber | None = None,
        sink: NotificationSink | None = None,
    ) -> None:
        self.config = config
        self.buffer = buffer
        self.session = session or requests.Session()
        self.prober = prober or ConnectivityProber(
            session=self.session,
            probe_host=config.probe_host,
            probe_port=config.probe_port,
            probe_timeout_s=config.probe_timeout_s,
            connect_timeout_s=config.connect_timeout_s,
            read_timeout_s=config.read_timeout_s,
        )
        self.sink: NotificationSink = sink or LoggingNotificationSink()
        self.stats = DeliveryStats()

        self._state = DeliveryState.IDLE
        self._state_lock = threading.Lock()
        self._flight = threading.Lock()
        self._signals: queue.Queue[bool | None] = queue.Queue()
        self._stop = threading.Event()
        self._worker: threading.Thread | None = None

    @property
    def state(self) -> DeliveryState:
        with self._state_lock:
            return self._state

    def _set_state(self, state: DeliveryState) -> None:
        with self._state_lock:
            prev, self._state = self._state, state
        if prev is not state:
            logger.debug("state %s -> %s", prev.value, state.value)

    @property
    def cancelled(self) -> bool:
        return self._stop.is_set()

    # ------------------------------------------------------------------
    # Worker lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        if self._worker is not None and self._worker.is_alive():
            return
        self._stop.clear()
        # Drop sentinels left over from a previous stop().
        self._signals = queue.Queue()
        self._worker = threading.Thread(target=self._run, name="cellwatch-delivery", daemon=True)
        self._worker.start()

    def stop(self, timeout_s: float | None = None, *, flush: bool = False) -> None:
        """Stop the worker.

        With flush=True the worker first ships whatever is buffered (partial
        batch included); if that does not finish within timeout_s the flush is
        cancelled like any other in-flight delivery.
        """

        worker = self._worker
        deadline = None if timeout_s is None else time.monotonic() + max(0.0, float(timeout_s))
        if flush and worker is not None and worker.is_alive():
            self._signals.put(True)
            self._signals.put(None)
            worker.join(timeout_s)

        self._stop.set()
        self._signals.put(None)
        if worker is not None:
            # Both joins share one timeout_s budget.
            worker.join(None if deadline is None else max(0.0, deadline - time.monotonic()))
        self._worker = None

    def request_flush(self, force: bool = False) -> None:
        self._signals.put(bool(force))

    def _run(self) -> None:
        while not self._stop.is_set():
            signal = self._signals.get()
            if signal is None:
                return

            force = signal
            stopping = False
            while True:
                try:
                    nxt = self._signals.get_nowait()
                except queue.Empty:
                    break
                if nxt is None:
                    stopping = True
                    break
                force = force or nxt

            try:
                self.flush_backlog(force=force)
            except Exception:
                logger.exception("delivery worker iteration failed")

            if stopping:
                return

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    def flush_backlog(self, force: bool = False) -> List[DeliveryOutcome]:
        """Deliver batches while the backlog is at threshold.

        force=True keeps going until the buffer is empty, shipping a final
        partial batch.
        """

        outcomes: List[DeliveryOutcome] = []
        capacity = self.buffer.capacity
        with self._flight:
            while not self._stop.is_set():
                pending = self.buffer.count()
                if pending == 0 or (pending < capacity and not force):
                    break
                batch = self.buffer.drain(capacity)
                if not batch:
                    break
                outcome = self._deliver(batch)
                outcomes.append(outcome)
                if outcome is DeliveryOutcome.CANCELLED:
                    break
        return outcomes

    def deliver(self, batch: Sequence[Sample]) -> DeliveryOutcome:
        with self._flight:
            return self._deliver(list(batch))

    def _deliver(self, batch: List[Sample]) -> DeliveryOutcome:
        try:
            self._set_state(DeliveryState.SENDING)
            if self._send_with_retries(batch):
                return self._delivered(batch)

            self._set_state(DeliveryState.HEALTH_CHECKING)
            if self._health_gated_retry(batch):
                return self._delivered(batch)

            self._set_state(DeliveryState.EXHAUSTED)
            self._discard(batch)
            return DeliveryOutcome.DISCARDED
        except _Cancelled:
            logger.info("delivery cancelled; dropping in-flight batch of %s samples", len(batch))
            return DeliveryOutcome.CANCELLED
        finally:
            self._set_state(DeliveryState.IDLE)

    def _wait(self, delay_s: float) -> None:
        if self._stop.wait(max(0.0, float(delay_s))):
            raise _Cancelled()

    def _post(self, batch: List[Sample], *, phase: str, attempt: int, of: int) -> bool:
        try:
            resp = post_samples(
                self.session,
                self.config.collector_url,
                batch,
                connect_timeout_s=self.config.connect_timeout_s,
                read_timeout_s=self.config.read_timeout_s,
            )
        except requests.RequestException as exc:
            logger.warning(
                "post failed (%s attempt %s/%s): %r",
                phase,
                attempt,
                of,
                exc,
                extra={"fields": {"phase": phase, "attempt": attempt, "batch_size": len(batch)}},
            )
            return False

        if resp.status_code == 200:
            return True

        logger.warning(
            "collector returned %s (%s attempt %s/%s)",
            resp.status_code,
            phase,
            attempt,
            of,
            extra={"fields": {"phase": phase, "attempt": attempt, "status_code": resp.status_code}},
        )
        return False

    def _send_with_retries(self, batch: List[Sample]) -> bool:
        attempts = self.config.primary_attempts
        for attempt in range(1, attempts + 1):
            if attempt > 1:
                self.stats.primary_retries += 1
                self._wait(self.config.primary_retry_delay_s)
            if self._post(batch, phase="primary", attempt=attempt, of=attempts):
                return True
        return False

    def _health_gated_retry(self, batch: List[Sample]) -> bool:
        attempts = self.config.health_check_attempts
        advised = False
        for attempt in range(1, attempts + 1):
            if attempt > 1:
                self._wait(self.config.health_check_interval_s)
            self.stats.health_checks += 1

            if not self.prober.probe_external():
                logger.warning("external host unreachable (health round %s/%s)", attempt, attempts)
                if not advised:
                    advised = True
                    self.stats.connectivity_advisories += 1
                    self._notify_advisory(NO_INTERNET_MESSAGE)
                continue

            if not self.prober.probe_collector_health(self.config.health_url):
                logger.warning("collector health check failed (round %s/%s)", attempt, attempts)
                continue

            if self._post(batch, phase="health", attempt=attempt, of=attempts):
                return True
        return False

    def _delivered(self, batch: List[Sample]) -> DeliveryOutcome:
        self.stats.batches_delivered += 1
        self.stats.samples_delivered += len(batch)
        logger.info("delivered batch of %s samples (queue=%s)", len(batch), self.buffer.count())
        return DeliveryOutcome.DELIVERED

    def _discard(self, batch: List[Sample]) -> None:
        self.stats.batches_discarded += 1
        self.stats.samples_discarded += len(batch)
        logger.error(
            "delivery exhausted; discarded batch of %s samples",
            len(batch),
            extra={"fields": {"batch_size": len(batch), "first_ts": batch[0].timestamp_ms if batch else None}},
        )
        try:
            self.sink.notify_terminal_failure(TERMINAL_FAILURE_MESSAGE)
        except Exception:
            logger.exception("notification sink failed")

    def _notify_advisory(self, message: str) -> None:
        try:
            self.sink.notify_advisory(message)
        except Exception:
            logger.exception("notification sink failed")

    def metrics(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"delivery_state": self.state.value}
        out.update({f"delivery_{k}": v for k, v in asdict(self.stats).items()})
        return out
