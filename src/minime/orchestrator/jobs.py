"""Built-in background jobs and the services they share."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Callable, List, Optional, Protocol

from minime.configuration import ConfigStore, MinimeConfig

if TYPE_CHECKING:
    from minime.insights.pipeline import InsightPipeline
    from minime.insights.store import SQLiteRecordStore

    from .scheduler import JobScheduler

logger = logging.getLogger(__name__)


INSIGHT_JOB_ID = "v2_insight_generation"
DEDUP_SWEEP_JOB_ID = "dedup_window_sweep"
CLEANUP_JOB_ID = "database_cleanup"
EMBEDDING_JOB_ID = "embedding_generation"
ANALYTICS_JOB_ID = "analytics_collection"

EMBEDDINGS_FLAG = "embeddings_enabled"
ANALYTICS_FLAG = "analytics_enabled"


class EmbeddingService(Protocol):
    async def process_pending_memories(self) -> None: ...


class AnalyticsCollector(Protocol):
    async def collect_snapshot(self) -> None: ...


@dataclass
class JobServices:
    """Everything job handlers may use. Optional services may be absent."""

    config: MinimeConfig = field(default_factory=MinimeConfig)
    store: Optional["SQLiteRecordStore"] = None
    pipeline: Optional["InsightPipeline"] = None
    config_store: Optional[ConfigStore] = None
    embedding: Optional[EmbeddingService] = None
    analytics: Optional[AnalyticsCollector] = None
    clock: Callable[[], datetime] = datetime.utcnow

    def feature_enabled(self, flag: str) -> bool:
        if self.config_store is None:
            return False
        return self.config_store.is_feature_enabled(flag)


async def run_insight_generation(services: JobServices) -> None:
    pipeline = services.pipeline
    if pipeline is None:
        logger.warning("Insight pipeline not configured, skipping")
        return
    if pipeline.is_running():
        logger.info("Previous insight drain still running, skipping")
        return

    result = await pipeline.process_unprocessed_memories()
    logger.info("Insight generation finished", extra=result.to_dict())


async def run_dedup_sweep(services: JobServices) -> None:
    if services.pipeline is None:
        return
    evicted = services.pipeline.dedup.sweep()
    logger.debug("Dedup sweep finished", extra={"evicted": evicted})


async def run_database_cleanup(services: JobServices) -> None:
    if services.store is None:
        logger.warning("Record store not configured, skipping cleanup")
        return
    cutoff = services.clock() - timedelta(days=services.config.insights.archive_after_days)
    archived = await services.store.archive_insights(cutoff)
    logger.info(
        "Database cleanup finished",
        extra={"archived": archived, "cutoff": cutoff.isoformat()},
    )


async def run_embedding_generation(services: JobServices) -> None:
    if not services.feature_enabled(EMBEDDINGS_FLAG):
        logger.debug("Embeddings disabled, skipping")
        return
    if services.embedding is None:
        logger.debug("Embedding service not available, skipping")
        return
    await services.embedding.process_pending_memories()


async def run_analytics_collection(services: JobServices) -> None:
    if not services.feature_enabled(ANALYTICS_FLAG):
        logger.debug("Analytics disabled, skipping")
        return
    if services.analytics is None:
        logger.error("Analytics collector not available")
        return
    await services.analytics.collect_snapshot()
    logger.info("Analytics snapshot collected")


def register_default_jobs(scheduler: "JobScheduler", services: JobServices) -> List[str]:
    """Register the built-in jobs, honoring ``scheduler.disabled_jobs``.

    Returns:
        Ids of the registered jobs, in registration order
    """
    settings = services.config.scheduler
    definitions = [
        (
            ANALYTICS_JOB_ID,
            "Analytics Collection",
            "Collect and aggregate analytics data",
            settings.analytics_interval_seconds,
            run_analytics_collection,
        ),
        (
            EMBEDDING_JOB_ID,
            "Embedding Generation",
            "Generate embeddings for new memories",
            settings.embedding_interval_seconds,
            run_embedding_generation,
        ),
        (
            CLEANUP_JOB_ID,
            "Database Cleanup",
            "Archive insights older than the retention window",
            settings.cleanup_interval_seconds,
            run_database_cleanup,
        ),
        (
            INSIGHT_JOB_ID,
            "V2 Insight Generation",
            "Process all unprocessed memories through the insight pipeline",
            settings.insight_interval_seconds,
            run_insight_generation,
        ),
        (
            DEDUP_SWEEP_JOB_ID,
            "Dedup Window Sweep",
            "Evict expired entries from the dedup window",
            settings.dedup_sweep_interval_seconds,
            run_dedup_sweep,
        ),
    ]

    registered = []
    for job_id, name, description, interval, handler in definitions:
        scheduler.register_job(
            job_id,
            name,
            description,
            interval,
            handler,
            enabled=job_id not in settings.disabled_jobs,
        )
        registered.append(job_id)

    enabled = [j for j in registered if j not in settings.disabled_jobs]
    logger.info(
        "Registered default jobs",
        extra={"registered": len(registered), "enabled": enabled},
    )
    return registered
