"""Ordered include/exclude line filtering and the thread that applies it."""

import logging
import re
import threading
from typing import Iterable

from kubetail.buffer import HandoffBuffer
from kubetail.errors import FilterError
from kubetail.models import Chunk, FilterKind, FilterRule

logger = logging.getLogger(__name__)


def split_patterns(value: str) -> list[str]:
    """Split a comma-separated option value into non-empty patterns."""
    return [p.strip() for p in value.split(",") if p.strip()]


def build_rules(specs: Iterable[tuple[FilterKind, list[str]]]) -> list[FilterRule]:
    """Turn (kind, patterns) pairs, in the order given, into filter rules.

    Consecutive pairs of the same kind merge into one rule, so repeated --grep
    options OR together while a --grep after a --vgrep starts a new stage.
    """
    merged: list[tuple[FilterKind, list[str]]] = []
    for kind, patterns in specs:
        if merged and merged[-1][0] is kind:
            merged[-1][1].extend(patterns)
        else:
            merged.append((kind, list(patterns)))

    rules = []
    for kind, patterns in merged:
        rule = FilterRule.from_patterns(kind, patterns)
        if rule.patterns:
            rules.append(rule)
    return rules


class FilterChain:
    """Applies filter rules, in order, to the lines of a chunk.

    Holds only compiled patterns, so the same input always gives the same output.
    """

    def __init__(self, rules: list[FilterRule]):
        self._rules = list(rules)
        self._stages: list[tuple[FilterKind, re.Pattern]] = []
        for rule in self._rules:
            try:
                self._stages.append((rule.kind, rule.compile()))
            except re.error as e:
                raise FilterError(f"invalid {rule.kind.value} pattern {rule.expression!r}: {e}") from e

    @property
    def rules(self) -> list[FilterRule]:
        return list(self._rules)

    def __len__(self) -> int:
        return len(self._stages)

    def filter_lines(self, data: bytes) -> list[bytes]:
        """Split on line feeds, trim, drop empties, then run every stage."""
        lines = [line.strip() for line in data.split(b"\n")]
        lines = [line for line in lines if line]

        for kind, pattern in self._stages:
            if not lines:
                break
            if kind is FilterKind.EXCLUDE:
                lines = [l for l in lines if not pattern.search(_text(l))]
            else:
                lines = [l for l in lines if pattern.search(_text(l))]
        return lines

    def apply(self, data: bytes) -> bytes:
        return b"".join(line + b"\n" for line in self.filter_lines(data))

    def filter_chunk(self, chunk: Chunk) -> Chunk | None:
        """Return the filtered chunk, or None when no line survived."""
        data = self.apply(chunk.data)
        if not data:
            return None
        return Chunk(source=chunk.source, data=data)


def _text(line: bytes) -> str:
    return line.decode("utf-8", errors="replace")


class FilterStage(threading.Thread):
    """Moves chunks from the raw buffer to the filtered buffer through a FilterChain."""

    def __init__(self, chain: FilterChain, source: HandoffBuffer, sink: HandoffBuffer,
                 done: threading.Event, poll_interval: float = 0.5):
        super().__init__(name="filter-stage", daemon=True)
        self._chain = chain
        self._source = source
        self._sink = sink
        self._done = done
        self._poll_interval = poll_interval
        self._chunks_in = 0
        self._chunks_out = 0

    @property
    def chunks_in(self) -> int:
        return self._chunks_in

    @property
    def chunks_out(self) -> int:
        return self._chunks_out

    def run(self):
        logger.debug("Filter stage running with %d rule(s)", len(self._chain))
        while not self._done.is_set():
            chunk = self._source.take(self._poll_interval)
            if chunk is None:
                continue
            try:
                self._chunks_in += 1
                filtered = self._chain.filter_chunk(chunk)
                if filtered is not None:
                    self._sink.put(filtered)
                    self._chunks_out += 1
            finally:
                self._source.task_done()
        logger.debug("Filter stage stopped: %d chunks in, %d out", self._chunks_in, self._chunks_out)
