"""Tests for the built-in background jobs."""

from __future__ import annotations

from datetime import datetime, timedelta
from pathlib import Path

import pytest

from minime.configuration import ConfigStore, MinimeConfig
from minime.insights import PersistedInsight
from minime.orchestrator import JobScheduler
from minime.orchestrator.jobs import (
    ANALYTICS_FLAG,
    ANALYTICS_JOB_ID,
    CLEANUP_JOB_ID,
    DEDUP_SWEEP_JOB_ID,
    EMBEDDING_JOB_ID,
    EMBEDDINGS_FLAG,
    INSIGHT_JOB_ID,
    JobServices,
    register_default_jobs,
    run_analytics_collection,
    run_database_cleanup,
    run_embedding_generation,
    run_insight_generation,
)


class CountingEmbedding:
    def __init__(self) -> None:
        self.calls = 0

    async def process_pending_memories(self) -> None:
        self.calls += 1


class CountingAnalytics:
    def __init__(self) -> None:
        self.calls = 0

    async def collect_snapshot(self) -> None:
        self.calls += 1


class BusyPipeline:
    def __init__(self) -> None:
        self.drains = 0

    def is_running(self) -> bool:
        return True

    async def process_unprocessed_memories(self):  # pragma: no cover - must not run
        self.drains += 1


def test_register_default_jobs_order_and_disabled() -> None:
    config = MinimeConfig()
    config.scheduler.disabled_jobs = [EMBEDDING_JOB_ID]
    scheduler = JobScheduler()

    registered = register_default_jobs(scheduler, JobServices(config=config))

    assert registered == [
        ANALYTICS_JOB_ID,
        EMBEDDING_JOB_ID,
        CLEANUP_JOB_ID,
        INSIGHT_JOB_ID,
        DEDUP_SWEEP_JOB_ID,
    ]
    assert scheduler.get_job_status(EMBEDDING_JOB_ID).enabled is False
    assert scheduler.get_job_status(INSIGHT_JOB_ID).interval == 300.0
    assert scheduler.get_job_status(CLEANUP_JOB_ID).interval == 86400.0


@pytest.mark.asyncio()
async def test_feature_flagged_jobs_respect_config_store(tmp_path: Path) -> None:
    config_store = ConfigStore(tmp_path / "config.db")
    embedding = CountingEmbedding()
    analytics = CountingAnalytics()
    services = JobServices(
        config_store=config_store, embedding=embedding, analytics=analytics
    )
    try:
        await run_embedding_generation(services)
        await run_analytics_collection(services)
        assert (embedding.calls, analytics.calls) == (0, 0)

        config_store.set(EMBEDDINGS_FLAG, True)
        config_store.set(ANALYTICS_FLAG, "enabled")
        await run_embedding_generation(services)
        await run_analytics_collection(services)
        assert (embedding.calls, analytics.calls) == (1, 1)
    finally:
        config_store.close()


@pytest.mark.asyncio()
async def test_feature_flags_default_off_without_config_store() -> None:
    embedding = CountingEmbedding()
    services = JobServices(embedding=embedding)

    await run_embedding_generation(services)

    assert services.feature_enabled(EMBEDDINGS_FLAG) is False
    assert embedding.calls == 0


@pytest.mark.asyncio()
async def test_insight_generation_skips_while_pipeline_running() -> None:
    pipeline = BusyPipeline()

    await run_insight_generation(JobServices(pipeline=pipeline))

    assert pipeline.drains == 0


@pytest.mark.asyncio()
async def test_database_cleanup_archives_old_insights(store, clock) -> None:
    config = MinimeConfig()
    config.insights.archive_after_days = 30
    old = PersistedInsight(
        id="old",
        insight_type="pattern",
        category="architectural",
        confidence=0.8,
        signature="s-old",
        created_at=clock.now - timedelta(days=45),
    )
    fresh = PersistedInsight(
        id="fresh",
        insight_type="pattern",
        category="architectural",
        confidence=0.8,
        signature="s-fresh",
        created_at=clock.now - timedelta(days=2),
    )
    await store.insert_insight(old)
    await store.insert_insight(fresh)

    await run_database_cleanup(JobServices(config=config, store=store, clock=clock))

    assert (await store.get_insight("old")).archived is True
    assert (await store.get_insight("fresh")).archived is False
    assert await store.count_insights(include_archived=False) == 1


@pytest.mark.asyncio()
async def test_default_jobs_run_through_scheduler(store) -> None:
    services = JobServices(store=store, clock=datetime.utcnow)
    scheduler = JobScheduler(services)
    register_default_jobs(scheduler, services)

    results = await scheduler.trigger_all_jobs()

    assert all(r.success for r in results), results


@pytest.mark.asyncio()
async def test_flagged_jobs_stay_registered_and_noop_while_off() -> None:
    embedding = CountingEmbedding()
    services = JobServices(embedding=embedding)
    scheduler = JobScheduler(services)
    register_default_jobs(scheduler, services)

    succeeded = await scheduler.run_job(EMBEDDING_JOB_ID)

    status = scheduler.get_job_status(EMBEDDING_JOB_ID)
    assert status.enabled is True
    assert succeeded is True
    assert status.stats.runs == 1
    assert embedding.calls == 0
