"""Shared pytest fixtures and fakes for the kubetail test suite."""

import os
import queue
import threading
import time

import pytest

from kubetail.errors import StreamOpenError
from kubetail.models import TargetRecord


class FakeStream:
    """In-memory log stream.

    Returns queued payloads one per read. With follow=True an empty queue blocks
    (like a live pod log) until more data is fed or the stream is closed.
    Queued Exception instances are raised from read().
    """

    def __init__(self, payloads=(), follow: bool = False):
        self._items: queue.Queue = queue.Queue()
        for payload in payloads:
            self._items.put(payload)
        self._follow = follow
        self._closed = threading.Event()
        self.sizes: list[int] = []

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def feed(self, payload):
        self._items.put(payload)

    def read(self, size: int) -> bytes:
        self.sizes.append(size)
        while True:
            try:
                item = self._items.get(timeout=0.01)
            except queue.Empty:
                if self._closed.is_set():
                    raise ValueError("I/O operation on closed file")
                if not self._follow:
                    return b""
                continue
            if isinstance(item, Exception):
                raise item
            return item

    def close(self):
        self._closed.set()


class FakeInventory:
    def __init__(self, records, streams=None, fail_on=()):
        self._records = list(records)
        self.streams: dict[str, FakeStream] = dict(streams or {})
        self._fail_on = set(fail_on)
        self.opened: list[tuple[str, int, str | None]] = []

    def list_targets(self, kind: str = "pods"):
        return list(self._records)

    def open_log_stream(self, target, tail_lines, container=None):
        if target.name in self._fail_on:
            raise StreamOpenError(target.name, "403 Forbidden")
        self.opened.append((target.name, tail_lines, container))
        return self.streams.setdefault(target.name, FakeStream())


def make_records(*names: str, namespace: str = "default") -> list[TargetRecord]:
    return [
        TargetRecord(name=n, namespace=namespace, url=f"/api/v1/namespaces/{namespace}/pods/{n}")
        for n in names
    ]


def wait_for(predicate, timeout: float = 2.0, interval: float = 0.01) -> bool:
    """Poll until predicate() is truthy or timeout expires."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep KUBETAIL_* variables from the host out of config tests."""
    for key in list(os.environ):
        if key.startswith("KUBETAIL_"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture()
def done() -> threading.Event:
    return threading.Event()


@pytest.fixture()
def apache_inventory() -> FakeInventory:
    return FakeInventory(make_records("apache-1", "apache-2", "nginx-1"))
