"""Sink: writes chunks to the output stream, optionally under a pod header."""

import logging
import threading
from typing import BinaryIO

from kubetail.buffer import HandoffBuffer
from kubetail.models import Chunk

logger = logging.getLogger(__name__)

YELLOW = "\033[33m"
RESET = "\033[0m"


def format_header(source: str, color: bool = True) -> bytes:
    """Return the `[pod]` header line that precedes a chunk."""
    head = f"[{source}]"
    if color:
        head = f"{YELLOW}{head}{RESET}"
    return (head + "\n").encode("utf-8")


def render_chunk(chunk: Chunk, show_headers: bool = False, color: bool = True) -> bytes:
    if show_headers:
        return format_header(chunk.source, color) + chunk.data
    return chunk.data


class Sink(threading.Thread):
    def __init__(self, buffer: HandoffBuffer, out: BinaryIO, done: threading.Event,
                 show_headers: bool = False, color: bool = True, poll_interval: float = 0.5):
        super().__init__(name="sink", daemon=True)
        self._buffer = buffer
        self._out = out
        self._done = done
        self._show_headers = show_headers
        self._color = color
        self._poll_interval = poll_interval
        self._chunks_written = 0
        self.error: OSError | None = None

    @property
    def chunks_written(self) -> int:
        return self._chunks_written

    @property
    def failed(self) -> bool:
        return self.error is not None

    def run(self):
        while not self._done.is_set():
            chunk = self._buffer.take(self._poll_interval)
            if chunk is None:
                continue
            try:
                self._write(chunk)
            except BrokenPipeError:
                logger.info("Output closed, stopping")
                self._done.set()
            except OSError as e:
                logger.error("Cannot write output: %s", e)
                self.error = e
                self._done.set()
            finally:
                self._buffer.task_done()

    def _write(self, chunk: Chunk):
        self._out.write(render_chunk(chunk, self._show_headers, self._color))
        self._out.flush()
        self._chunks_written += 1
