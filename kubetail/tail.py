"""KubeTail: matches pods by name, wires the pipeline, and drives shutdown."""

import logging
import re
import sys
import threading
from enum import Enum
from typing import BinaryIO, Protocol

from kubetail.buffer import HandoffBuffer
from kubetail.config import Config
from kubetail.filters import FilterChain, FilterStage
from kubetail.models import TargetRecord
from kubetail.reader import LogStream, SourceReader
from kubetail.sink import Sink

logger = logging.getLogger(__name__)

READER_JOIN_TIMEOUT = 5.0


class Inventory(Protocol):
    def list_targets(self, kind: str = "pods") -> list[TargetRecord]: ...

    def open_log_stream(self, target: TargetRecord, tail_lines: int,
                        container: str | None = None) -> LogStream: ...


class TailState(Enum):
    RESOLVING = "resolving"
    STREAMING = "streaming"
    SHUTTING_DOWN = "shutting_down"
    TERMINATED = "terminated"


class TailOutcome(Enum):
    COMPLETED = "completed"
    NO_MATCHES = "no_matches"
    FAILED = "failed"


def match_targets(records: list[TargetRecord], names: list[str]) -> list[TargetRecord]:
    """Select every record whose name contains at least one of `names`."""
    if not names:
        return []
    pattern = re.compile("|".join(re.escape(n) for n in names))
    return [r for r in records if pattern.search(r.name)]


class KubeTail:
    """Tails the logs of every pod whose name matches, until stopped.

    Lifecycle: RESOLVING -> STREAMING -> SHUTTING_DOWN -> TERMINATED. The run
    ends when stop() sets the done-signal, or on its own once every stream has
    ended and everything read has been written out.
    """

    def __init__(self, config: Config, inventory: Inventory, out: BinaryIO | None = None,
                 done: threading.Event | None = None,
                 join_timeout: float = READER_JOIN_TIMEOUT):
        self._config = config
        self._inventory = inventory
        self._out = out if out is not None else sys.stdout.buffer
        self._done = done if done is not None else threading.Event()
        self._join_timeout = join_timeout
        self._state = TailState.RESOLVING
        self._state_lock = threading.Lock()

        self._raw = HandoffBuffer("raw")
        self._filtered: HandoffBuffer | None = None
        self._chain = FilterChain(config.filter_rules)
        self._readers: list[SourceReader] = []
        self._filter_stage: FilterStage | None = None
        self._sink: Sink | None = None

    @property
    def state(self) -> TailState:
        return self._state

    @property
    def done(self) -> threading.Event:
        return self._done

    @property
    def readers(self) -> list[SourceReader]:
        return list(self._readers)

    @property
    def sink(self) -> Sink | None:
        return self._sink

    @property
    def filter_stage(self) -> FilterStage | None:
        return self._filter_stage

    def _threads(self) -> list[threading.Thread]:
        threads: list[threading.Thread] = list(self._readers)
        if self._filter_stage is not None:
            threads.append(self._filter_stage)
        if self._sink is not None:
            threads.append(self._sink)
        return threads

    def _buffers(self) -> list[HandoffBuffer]:
        if self._filtered is not None:
            return [self._raw, self._filtered]
        return [self._raw]

    def resolve(self) -> list[TargetRecord]:
        self._state = TailState.RESOLVING
        records = self._inventory.list_targets("pods")
        targets = match_targets(records, self._config.names)
        for target in targets:
            logger.info("Found: %s (namespace %s)", target.name, target.namespace)
        return targets

    def start(self, targets: list[TargetRecord]):
        """Open a stream per target and start readers, filter stage, and sink.

        Any stream that fails to open aborts the whole batch; streams already
        opened are closed before the error propagates.
        """
        streams: list[LogStream] = []
        try:
            for target in targets:
                streams.append(self._inventory.open_log_stream(
                    target, self._config.tail_lines, self._config.container))
        except Exception:
            for stream in streams:
                stream.close()
            raise

        poll = self._config.poll_interval
        for target, stream in zip(targets, streams):
            self._readers.append(SourceReader(
                target, stream, self._raw, self._done,
                chunk_size=self._config.chunk_size,
                fail_fast=self._config.fail_fast,
            ))

        sink_input = self._raw
        if len(self._chain) > 0:
            self._filtered = HandoffBuffer("filtered")
            self._filter_stage = FilterStage(self._chain, self._raw, self._filtered, self._done, poll)
            sink_input = self._filtered
            logger.info("Filters: %s", ", ".join(
                f"{r.kind.value}({r.expression})" for r in self._chain.rules))

        self._sink = Sink(sink_input, self._out, self._done,
                          show_headers=self._config.show_headers,
                          color=self._config.color, poll_interval=poll)

        self._state = TailState.STREAMING
        for thread in self._threads():
            thread.start()

    def stop(self):
        """Request shutdown. Safe to call repeatedly and from a signal handler."""
        self._done.set()

    def _finished(self) -> bool:
        """True once every reader has exited and every buffer has drained."""
        if any(r.is_alive() for r in self._readers):
            return False
        return all(b.idle for b in self._buffers())

    def wait(self):
        """Block until stopped or all streams are exhausted, then shut down."""
        while not self._done.wait(self._config.poll_interval):
            if self._finished():
                logger.info("All log streams ended")
                break
        self._shutdown()

    def _shutdown(self):
        with self._state_lock:
            if self._state in (TailState.SHUTTING_DOWN, TailState.TERMINATED):
                return
            self._state = TailState.SHUTTING_DOWN
        logger.info("Shutting down %d stream(s)...", len(self._readers))
        self._done.set()
        for reader in self._readers:
            reader.close()
        for reader in self._readers:
            reader.join(timeout=self._join_timeout)
            if reader.is_alive():
                logger.warning("%s: reader still blocked after %.0fs, abandoning it",
                               reader.target.name, self._join_timeout)
        for stage in (self._filter_stage, self._sink):
            if stage is not None:
                stage.join()
        self._state = TailState.TERMINATED
        self._log_summary()

    def _log_summary(self):
        total_bytes = sum(r.bytes_read for r in self._readers)
        failed = [r.target.name for r in self._readers if r.failed]
        written = self._sink.chunks_written if self._sink else 0
        logger.info("kubetail stopped: %d bytes read from %d pod(s), %d chunk(s) written",
                    total_bytes, len(self._readers), written)
        if failed:
            logger.warning("Streams that failed: %s", ", ".join(failed))

    def outcome(self) -> TailOutcome:
        if self._sink is not None and self._sink.failed:
            return TailOutcome.FAILED
        if self._config.fail_fast and any(r.failed for r in self._readers):
            return TailOutcome.FAILED
        return TailOutcome.COMPLETED

    def run(self) -> TailOutcome:
        targets = self.resolve()
        if not targets:
            logger.warning("No pods matched: %s", ", ".join(self._config.names))
            self._state = TailState.TERMINATED
            return TailOutcome.NO_MATCHES
        self.start(targets)
        self.wait()
        return self.outcome()
