"""Tests for the recurring job scheduler."""

from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest

from minime.errors import DuplicateJobError, JobNotFoundError
from minime.orchestrator import EventType, JobScheduler


async def _noop(services) -> None:
    return None


def _gated_handler(calls: list):
    gate = asyncio.Event()

    async def handler(services) -> None:
        calls.append(services)
        await gate.wait()

    return gate, handler


def test_register_rejects_duplicate_id() -> None:
    scheduler = JobScheduler()
    scheduler.register_job("a", "A", "first", 10, _noop)

    with pytest.raises(DuplicateJobError):
        scheduler.register_job("a", "A again", "second", 10, _noop)

    assert scheduler.job_ids() == ["a"]


def test_register_rejects_non_positive_interval() -> None:
    scheduler = JobScheduler()
    with pytest.raises(ValueError):
        scheduler.register_job("a", "A", "zero interval", 0, _noop)
    assert "a" not in scheduler


def test_unknown_job_operations() -> None:
    scheduler = JobScheduler()

    with pytest.raises(JobNotFoundError):
        scheduler.toggle_job("missing", False)
    with pytest.raises(JobNotFoundError):
        scheduler.schedule_job("missing")
    assert scheduler.get_job_status("missing") is None


@pytest.mark.asyncio()
async def test_trigger_unknown_job_raises() -> None:
    scheduler = JobScheduler()
    with pytest.raises(JobNotFoundError):
        await scheduler.trigger_job("missing")
    assert await scheduler.run_job("missing") is False


@pytest.mark.asyncio()
async def test_run_job_updates_stats_and_state(clock) -> None:
    scheduler = JobScheduler(services="svc", clock=clock)
    seen = []

    async def handler(services) -> None:
        seen.append(services)

    scheduler.register_job("a", "A", "records services", 60, handler)

    assert await scheduler.run_job("a") is True

    status = scheduler.get_job_status("a")
    assert seen == ["svc"]
    assert status.stats.runs == 1
    assert status.stats.failures == 0
    assert status.stats.last_duration >= 0
    assert status.last_run == clock.now
    assert status.next_run == clock.now + timedelta(seconds=60)
    assert status.running is False


@pytest.mark.asyncio()
async def test_handler_failure_is_counted_not_raised(events, listener) -> None:
    scheduler = JobScheduler(events=events)

    async def broken(services) -> None:
        raise RuntimeError("boom")

    scheduler.register_job("broken", "Broken", "always fails", 60, broken)

    assert await scheduler.run_job("broken") is False
    assert await scheduler.run_job("broken") is False

    stats = scheduler.get_job_status("broken").stats
    assert stats.runs == 2
    assert stats.failures == 2
    assert scheduler.get_job_status("broken").running is False
    failed = [e for e in listener.events if e.type is EventType.JOB_FAILED]
    assert len(failed) == 2
    assert failed[0].payload["error"] == "boom"


@pytest.mark.asyncio()
async def test_concurrent_runs_of_same_job_execute_once() -> None:
    scheduler = JobScheduler()
    calls: list = []
    gate, handler = _gated_handler(calls)
    scheduler.register_job("slow", "Slow", "blocks until released", 60, handler)

    first = asyncio.create_task(scheduler.run_job("slow"))
    await asyncio.sleep(0)
    assert scheduler.get_job_status("slow").running is True

    assert await scheduler.run_job("slow") is False

    gate.set()
    assert await first is True
    assert len(calls) == 1
    assert scheduler.get_job_status("slow").stats.runs == 1


@pytest.mark.asyncio()
async def test_disable_during_run_lets_run_finish() -> None:
    scheduler = JobScheduler()
    calls: list = []
    gate, handler = _gated_handler(calls)
    scheduler.register_job("slow", "Slow", "blocks until released", 60, handler)

    run = asyncio.create_task(scheduler.run_job("slow"))
    await asyncio.sleep(0)
    scheduler.toggle_job("slow", False)

    gate.set()
    assert await run is True
    assert scheduler.get_job_status("slow").enabled is False
    assert await scheduler.run_job("slow") is False
    assert scheduler.get_job_status("slow").stats.runs == 1


@pytest.mark.asyncio()
async def test_trigger_all_isolates_failures(events, listener) -> None:
    scheduler = JobScheduler(events=events)
    ran = []

    async def ok(services) -> None:
        ran.append("ok")

    async def broken(services) -> None:
        raise ValueError("bad input")

    scheduler.register_job("first", "First", "", 60, broken)
    scheduler.register_job("second", "Second", "", 60, ok)
    scheduler.register_job("third", "Third", "", 60, ok)

    results = await scheduler.trigger_all_jobs(exclude=["third"])

    assert [r.job_id for r in results] == ["first", "second"]
    assert results[0].success is False
    assert results[0].error == "bad input"
    assert results[1].success is True
    assert results[1].error is None
    assert ran == ["ok"]
    assert scheduler.get_job_status("third").stats.runs == 0


@pytest.mark.asyncio()
async def test_trigger_all_reports_disabled_jobs() -> None:
    scheduler = JobScheduler()
    scheduler.register_job("off", "Off", "", 60, _noop, enabled=False)

    results = await scheduler.trigger_all_jobs()

    assert results[0].success is False
    assert results[0].error == "disabled"


@pytest.mark.asyncio()
async def test_start_arms_enabled_jobs_only(events, listener) -> None:
    scheduler = JobScheduler(events=events)
    scheduler.register_job("on", "On", "", 60, _noop)
    scheduler.register_job("off", "Off", "", 60, _noop, enabled=False)

    scheduler.start()
    try:
        assert scheduler.running is True
        assert scheduler.get_job_status("on").next_run is not None
        assert scheduler.get_job_status("off").next_run is None

        scheduler.register_job("late", "Late", "registered after start", 60, _noop)
        assert scheduler.get_job_status("late").next_run is None
        scheduler.schedule_job("late")
        assert scheduler.get_job_status("late").next_run is not None

        scheduler.toggle_job("on", False)
        assert scheduler.get_job_status("on").next_run is None
    finally:
        assert await scheduler.shutdown() is True

    assert scheduler.running is False
    assert listener.types()[0] == EventType.SCHEDULER_STARTED.value
    assert listener.types()[-1] == EventType.SCHEDULER_STOPPED.value


@pytest.mark.asyncio()
async def test_timers_fire_on_interval() -> None:
    scheduler = JobScheduler()
    ran = []

    async def handler(services) -> None:
        ran.append(1)

    scheduler.register_job("tick", "Tick", "fast interval", 0.1, handler)
    scheduler.start()
    await asyncio.sleep(0.45)
    await scheduler.shutdown(grace_period=1.0)

    assert len(ran) >= 2
    assert scheduler.get_job_status("tick").stats.runs == len(ran)


@pytest.mark.asyncio()
async def test_stop_never_interrupts_running_job() -> None:
    scheduler = JobScheduler()
    calls: list = []
    gate, handler = _gated_handler(calls)
    scheduler.register_job("slow", "Slow", "", 60, handler)
    scheduler.start()

    run = asyncio.create_task(scheduler.run_job("slow"))
    await asyncio.sleep(0)
    scheduler.stop()
    assert scheduler.get_job_status("slow").next_run is None

    gate.set()
    assert await run is True


@pytest.mark.asyncio()
async def test_shutdown_grace_period_elapses() -> None:
    scheduler = JobScheduler()
    calls: list = []
    gate, handler = _gated_handler(calls)
    scheduler.register_job("slow", "Slow", "", 60, handler)
    scheduler.start()

    run = asyncio.create_task(scheduler.run_job("slow"))
    await asyncio.sleep(0)

    assert await scheduler.shutdown(grace_period=0.05) is False
    assert not run.done()

    gate.set()
    assert await run is True


@pytest.mark.asyncio()
async def test_shutdown_waits_for_running_job() -> None:
    scheduler = JobScheduler()
    calls: list = []
    gate, handler = _gated_handler(calls)
    scheduler.register_job("slow", "Slow", "", 60, handler)
    scheduler.start()

    run = asyncio.create_task(scheduler.run_job("slow"))
    await asyncio.sleep(0)
    asyncio.get_running_loop().call_later(0.05, gate.set)

    assert await scheduler.shutdown(grace_period=2.0) is True
    assert run.done()
    assert scheduler.get_job_status("slow").stats.runs == 1
