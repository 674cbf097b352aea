"""SourceReader: one thread per pod, forwarding raw log bytes as chunks."""

import logging
import threading
from typing import Protocol

from urllib3.exceptions import HTTPError

from kubetail.buffer import HandoffBuffer
from kubetail.models import Chunk, TargetRecord

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 16 * 1024

READ_ERRORS = (OSError, ValueError, HTTPError)


class LogStream(Protocol):
    def read(self, size: int) -> bytes: ...

    def close(self) -> None: ...


class SourceReader(threading.Thread):
    """Reads a pod's log stream until it ends, fails, or the done-signal is set.

    A read error is isolated to this source unless `fail_fast` is set, in which
    case the reader also sets the done-signal to stop the whole run.
    """

    def __init__(self, target: TargetRecord, stream: LogStream, buffer: HandoffBuffer,
                 done: threading.Event, chunk_size: int = DEFAULT_CHUNK_SIZE,
                 fail_fast: bool = False):
        super().__init__(name=f"reader-{target.name}", daemon=True)
        self._target = target
        self._stream = stream
        self._buffer = buffer
        self._done = done
        self._chunk_size = chunk_size
        self._fail_fast = fail_fast
        self._chunks_read = 0
        self._bytes_read = 0
        self.error: Exception | None = None

    @property
    def target(self) -> TargetRecord:
        return self._target

    @property
    def chunks_read(self) -> int:
        return self._chunks_read

    @property
    def bytes_read(self) -> int:
        return self._bytes_read

    @property
    def failed(self) -> bool:
        return self.error is not None

    def run(self):
        name = self._target.name
        logger.info("%s: starting stream", name)
        while not self._done.is_set():
            try:
                data = self._stream.read(self._chunk_size)
            except READ_ERRORS as e:
                if self._done.is_set():
                    logger.debug("%s: stream closed during shutdown (%s)", name, e)
                else:
                    self._fail(e)
                break

            if not data:
                logger.info("%s: stream ended", name)
                break

            self._buffer.put(Chunk(source=name, data=data))
            self._chunks_read += 1
            self._bytes_read += len(data)
        logger.info("%s: stopped (%d bytes in %d chunks)", name, self._bytes_read, self._chunks_read)

    def close(self):
        """Close the underlying stream, unblocking a pending read."""
        try:
            self._stream.close()
        except READ_ERRORS as e:
            logger.debug("%s: error closing stream: %s", self._target.name, e)

    def _fail(self, error: Exception):
        self.error = error
        logger.error("%s: error reading log stream: %s", self._target.name, error)
        if self._fail_fast:
            logger.error("Fail-fast enabled, stopping all streams")
            self._done.set()
