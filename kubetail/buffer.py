"""HandoffBuffer: unbounded thread-safe queue between pipeline stages."""

import logging
import queue
import threading

from kubetail.models import Chunk

logger = logging.getLogger(__name__)


class HandoffBuffer:
    """Many producers put chunks, one consumer takes them.

    put() never blocks. Consumers either poll with try_take() or wait a bounded
    time with take(timeout) so they can re-check the done-signal between waits.
    Every taken chunk must be acknowledged with task_done() once processed;
    `idle` is True only when nothing is queued and nothing is in flight.
    """

    def __init__(self, name: str = "buffer"):
        self._name = name
        self._queue: queue.SimpleQueue = queue.SimpleQueue()
        self._lock = threading.Lock()
        self._pending = 0
        self._total = 0

    @property
    def name(self) -> str:
        return self._name

    @property
    def total(self) -> int:
        """Number of chunks ever inserted."""
        with self._lock:
            return self._total

    @property
    def idle(self) -> bool:
        with self._lock:
            return self._pending == 0

    def __len__(self) -> int:
        return self._queue.qsize()

    def put(self, chunk: Chunk):
        with self._lock:
            self._pending += 1
            self._total += 1
        self._queue.put(chunk)

    def try_take(self) -> Chunk | None:
        try:
            return self._queue.get_nowait()
        except queue.Empty:
            return None

    def take(self, timeout: float) -> Chunk | None:
        """Wait up to `timeout` seconds for a chunk. Returns None if none arrived."""
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def task_done(self):
        with self._lock:
            if self._pending <= 0:
                raise ValueError(f"task_done() called too many times on {self._name}")
            self._pending -= 1
