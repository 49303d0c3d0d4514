"""Shared fixtures for scheduler and pipeline tests."""

from __future__ import annotations

from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, Iterator, List

import pytest

from minime.insights import MemoryRecord, ProcessingQueue, SQLiteRecordStore
from minime.orchestrator import Event, EventBus


class FakeClock:
    """Deterministic ``datetime`` source that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 1, 1, 12, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class RecordingListener:
    def __init__(self) -> None:
        self.events: List[Event] = []

    def __call__(self, event: Event) -> None:
        self.events.append(event)

    def types(self) -> List[str]:
        return [e.type.value for e in self.events]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(tmp_path: Path) -> Iterator[SQLiteRecordStore]:
    record_store = SQLiteRecordStore(tmp_path / "minime.db")
    yield record_store
    record_store.close()


@pytest.fixture
def queue(tmp_path: Path) -> Iterator[ProcessingQueue]:
    processing_queue = ProcessingQueue(tmp_path / "queue.db")
    yield processing_queue
    processing_queue.close()


@pytest.fixture
def events() -> EventBus:
    return EventBus()


@pytest.fixture
def listener(events: EventBus) -> RecordingListener:
    recorder = RecordingListener()
    events.subscribe(recorder)
    return recorder


@pytest.fixture
def make_record() -> Callable[..., MemoryRecord]:
    def _make(
        memory_id: str,
        memory_type: str = "general",
        content: str = "",
        **kwargs,
    ) -> MemoryRecord:
        return MemoryRecord(
            id=memory_id,
            memory_type=memory_type,
            content=content or f"content for {memory_id}",
            **kwargs,
        )

    return _make
