from __future__ import annotations

import logging
import threading
from collections import deque
from typing import Callable, Deque, Dict, List

from .sample import Sample

logger = logging.getLogger("cellwatch.buffer")


class SampleBuffer:
    """In-memory FIFO of samples awaiting delivery.

    `capacity` is the flush threshold, not a hard limit: pushes never block or
    drop, so the queue can grow past it while a drain is in flight. Every
    mutation happens under one lock; the threshold callback runs outside it.
    """

    def __init__(self, capacity: int, *, on_threshold: Callable[[], None] | None = None) -> None:
        if int(capacity) <= 0:
            raise ValueError("capacity must be > 0")
        self.capacity = int(capacity)
        self.on_threshold = on_threshold

        self._lock = threading.Lock()
        self._queue: Deque[Sample] = deque()
        self._pushed_total = 0
        self._drained_total = 0

    def push(self, sample: Sample) -> bool:
        """Append a sample. Returns True when the flush threshold was reached."""

        with self._lock:
            self._queue.append(sample)
            self._pushed_total += 1
            reached = len(self._queue) >= self.capacity

        if reached and self.on_threshold is not None:
            self.on_threshold()
        return reached

    def drain(self, max_items: int) -> List[Sample]:
        with self._lock:
            n = min(max(0, int(max_items)), len(self._queue))
            batch = [self._queue.popleft() for _ in range(n)]
            self._drained_total += n

        if batch:
            logger.debug("drained %s samples (queue=%s)", len(batch), self.count())
        return batch

    def count(self) -> int:
        with self._lock:
            return len(self._queue)

    def __len__(self) -> int:
        return self.count()

    def threshold_reached(self) -> bool:
        return self.count() >= self.capacity

    def metrics(self) -> Dict[str, int]:
        with self._lock:
            return {
                "buffer_queue_depth": len(self._queue),
                "buffer_pushed_total": self._pushed_total,
                "buffer_drained_total": self._drained_total,
            }
