"""Tests for the in-process event bus."""

from __future__ import annotations

import asyncio

import pytest

from minime.orchestrator import Event, EventBus, EventType


def test_emit_reaches_filtered_listeners() -> None:
    bus = EventBus()
    everything, failures = [], []
    bus.subscribe(everything.append)
    bus.subscribe(failures.append, [EventType.JOB_FAILED])

    bus.emit(EventType.JOB_STARTED, job_id="a")
    bus.emit(EventType.JOB_FAILED, job_id="a", error="boom")

    assert [e.type for e in everything] == [EventType.JOB_STARTED, EventType.JOB_FAILED]
    assert [e.payload["error"] for e in failures] == ["boom"]


def test_unsubscribe_stops_delivery() -> None:
    bus = EventBus()
    received = []
    unsubscribe = bus.subscribe(received.append)
    assert len(bus) == 1

    unsubscribe()
    unsubscribe()
    bus.emit(EventType.SCHEDULER_STARTED)

    assert received == []
    assert len(bus) == 0


def test_failing_listener_does_not_affect_emitter() -> None:
    bus = EventBus()
    received = []

    def broken(event: Event) -> None:
        raise RuntimeError("listener bug")

    bus.subscribe(broken)
    bus.subscribe(received.append)

    event = bus.emit(EventType.INSIGHT_GENERATED, insight_id="i1")

    assert event.payload == {"insight_id": "i1"}
    assert received == [event]


@pytest.mark.asyncio()
async def test_async_listener_is_scheduled() -> None:
    bus = EventBus()
    received = []

    async def on_event(event: Event) -> None:
        received.append(event.type)

    async def broken(event: Event) -> None:
        raise RuntimeError("async listener bug")

    bus.subscribe(on_event)
    bus.subscribe(broken)
    bus.emit(EventType.MEMORY_FAILED, memory_id="m1")
    await asyncio.sleep(0.01)

    assert received == [EventType.MEMORY_FAILED]
