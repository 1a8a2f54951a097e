from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterable, Iterator, Tuple

from flowsearch.events import FlowEvent


class IngestInProgress(RuntimeError):
    pass


class EventStore:
    """
    Holds the current event sequence as an immutable tuple.

    Readers take `snapshot()` once and scan it; `replace()` publishes a whole
    new tuple in one assignment, so a reader sees either the old or the new
    sequence. Only one ingestion may hold `ingesting()` at a time.
    """
    def __init__(self, events: Iterable[FlowEvent] = ()):
        self._events: Tuple[FlowEvent, ...] = tuple(events)
        self._swap_lock = threading.Lock()
        self._ingest_lock = threading.Lock()
        self._generation = 0

    def snapshot(self) -> Tuple[FlowEvent, ...]:
        return self._events

    def replace(self, events: Iterable[FlowEvent]) -> int:
        new_events = tuple(events)
        with self._swap_lock:
            self._events = new_events
            self._generation += 1
            return self._generation

    @property
    def generation(self) -> int:
        return self._generation

    def __len__(self) -> int:
        return len(self._events)

    @contextmanager
    def ingesting(self) -> Iterator[None]:
        if not self._ingest_lock.acquire(blocking=False):
            raise IngestInProgress("an ingestion is already running")
        try:
            yield
        finally:
            self._ingest_lock.release()

    def is_ingesting(self) -> bool:
        return self._ingest_lock.locked()

