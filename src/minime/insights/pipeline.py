"""Unified insight pipeline.

One record flows through route -> detect -> quality gate -> deduplicate ->
persist -> enrich -> mark ready, strictly in that order. The batch driver
drains the processing backlog and then every eligible record, a page at a
time, with a bounded number of records in flight.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Tuple

from minime.configuration import InsightSettings
from minime.errors import InferenceError, MinimeError, PermanentFailureError
from minime.orchestrator.events import EventBus, EventType

from .dedup import Deduplicator, content_signature, merge_confidence
from .enrichment import (
    Enricher,
    PatternMatchingEnricher,
    RelationshipEnricher,
    TechnologyExtractionEnricher,
)
from .models import (
    CandidateInsight,
    MemoryRecord,
    MemoryStatus,
    PersistedInsight,
    ProcessingQueueItem,
    TaskType,
)
from .processors.base import BaseProcessor
from .processors.registry import ProcessorRegistry
from .quality import QualityDecision, QualityGate
from .queue import ProcessingQueue
from .store import RecordStore

logger = logging.getLogger(__name__)


@dataclass
class ProcessOptions:
    """Per-call overrides for ``process_memory``.

    Attributes:
        strategy: Processor name to use instead of routing by memory type
        timeout_seconds: Detection timeout, defaults to the configured one
    """

    strategy: Optional[str] = None
    timeout_seconds: Optional[float] = None


@dataclass
class MemoryProcessingResult:
    memory_id: str
    insights: List[PersistedInsight] = field(default_factory=list)
    candidates: int = 0
    accepted: int = 0
    rejected: int = 0
    merged: int = 0

    @property
    def insight(self) -> Optional[PersistedInsight]:
        return self.insights[0] if self.insights else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "memory_id": self.memory_id,
            "candidates": self.candidates,
            "accepted": self.accepted,
            "rejected": self.rejected,
            "merged": self.merged,
            "insight_ids": [i.id for i in self.insights],
        }


@dataclass
class BatchResult:
    """Counts for one drain of the backlog and unprocessed records.

    ``processed`` counts every record attempted, failed ones included.
    """

    processed: int = 0
    accepted: int = 0
    rejected: int = 0
    merged: int = 0
    failed: int = 0
    skipped: bool = False
    reason: Optional[str] = None
    duration_ms: float = 0.0

    def add(self, outcome: MemoryProcessingResult) -> None:
        self.accepted += outcome.accepted
        self.rejected += outcome.rejected
        self.merged += outcome.merged

    def to_dict(self) -> Dict[str, Any]:
        return {
            "processed": self.processed,
            "accepted": self.accepted,
            "rejected": self.rejected,
            "merged": self.merged,
            "failed": self.failed,
            "skipped": self.skipped,
            "reason": self.reason,
            "duration_ms": self.duration_ms,
        }


class InsightPipeline:
    """Turns memory records into deduplicated, related insights.

    Usage:
        pipeline = InsightPipeline(store, build_default_registry(), settings.insights)
        result = await pipeline.process_unprocessed_memories()
    """

    def __init__(
        self,
        store: RecordStore,
        registry: ProcessorRegistry,
        settings: Optional[InsightSettings] = None,
        *,
        queue: Optional[ProcessingQueue] = None,
        events: Optional[EventBus] = None,
        gate: Optional[QualityGate] = None,
        dedup: Optional[Deduplicator] = None,
        enrichers: Optional[Sequence[Enricher]] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.store = store
        self.registry = registry
        self.settings = settings or InsightSettings()
        self.queue = queue
        self.events = events or EventBus()
        self.gate = gate or QualityGate(self.settings)
        self.dedup = dedup or Deduplicator(
            store, self.settings.dedup_window_delta, clock=clock
        )
        self._clock = clock
        if enrichers is None:
            enrichers = self._default_enrichers()
        self.enrichers: List[Enricher] = list(enrichers)

        self._draining = False
        self._in_flight = 0
        self._active: Set[str] = set()

    def _default_enrichers(self) -> List[Enricher]:
        enrichers: List[Enricher] = []
        if self.settings.enable_pattern_matching:
            enrichers.append(PatternMatchingEnricher())
        if self.settings.enable_technology_extraction:
            enrichers.append(TechnologyExtractionEnricher())
        if self.settings.enable_relationship_finding:
            enrichers.append(RelationshipEnricher(self.store, clock=self._clock))
        return enrichers

    def is_running(self) -> bool:
        return self._draining

    def stats(self) -> Dict[str, Any]:
        return {
            "draining": self._draining,
            "in_flight": self._in_flight,
            "dedup_window_entries": len(self.dedup),
            "max_concurrent": self.settings.max_concurrent,
        }

    # ------------------------------------------------------------------
    # Single record
    # ------------------------------------------------------------------

    async def process_memory(
        self,
        record: MemoryRecord,
        options: Optional[ProcessOptions] = None,
    ) -> MemoryProcessingResult:
        """Process one memory record end to end.

        Any error raised after the record was claimed, store errors included,
        counts as a failed attempt and is then re-raised.

        Args:
            record: Record to process
            options: Strategy and timeout overrides

        Returns:
            Counts and the insights created or merged into

        Raises:
            NoProcessorError: No processor handles the record (record marked failed)
            InferenceError: Detection failed or timed out (record marked failed)
            PermanentFailureError: The failure exhausted the record's attempts
        """
        options = options or ProcessOptions()
        self._active.add(record.id)
        try:
            await self.store.update_memory_status(record.id, MemoryStatus.PROCESSING)
            record.status = MemoryStatus.PROCESSING
            try:
                return await self._run_steps(record, options)
            except Exception as exc:
                await self._record_failure(record, exc)
                raise
        finally:
            self._active.discard(record.id)

    async def _run_steps(
        self, record: MemoryRecord, options: ProcessOptions
    ) -> MemoryProcessingResult:
        processor = self.registry.resolve(record.memory_type, options.strategy)
        candidates = await self._detect(processor, record, options)

        result = MemoryProcessingResult(memory_id=record.id, candidates=len(candidates))
        for candidate in candidates:
            decision = self.gate.evaluate(candidate, processor)
            if not decision.accepted:
                result.rejected += 1
                continue

            merged, insight = await self._deduplicate(candidate, decision, record)
            if merged:
                result.merged += 1
                self.events.emit(
                    EventType.INSIGHT_MERGED,
                    insight_id=insight.id,
                    memory_id=record.id,
                    confidence=insight.confidence,
                )
            else:
                result.accepted += 1
                self.events.emit(
                    EventType.INSIGHT_GENERATED,
                    insight_id=insight.id,
                    memory_id=record.id,
                    insight_type=insight.insight_type,
                )
            if insight not in result.insights:
                result.insights.append(insight)

        await self.store.update_memory_status(record.id, MemoryStatus.READY)
        record.status = MemoryStatus.READY
        logger.debug(
            "Memory processed",
            extra={"memory_id": record.id, "processor": processor.name, **result.to_dict()},
        )
        return result

    async def _detect(
        self,
        processor: BaseProcessor,
        record: MemoryRecord,
        options: ProcessOptions,
    ) -> List[CandidateInsight]:
        timeout = options.timeout_seconds or self.settings.timeout_seconds
        try:
            return await asyncio.wait_for(processor.detect(record), timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise InferenceError(
                f"Detection timed out after {timeout}s",
                details={"memory_id": record.id, "processor": processor.name},
            ) from exc

    async def _deduplicate(
        self,
        candidate: CandidateInsight,
        decision: QualityDecision,
        record: MemoryRecord,
    ) -> Tuple[bool, PersistedInsight]:
        signature = content_signature(candidate)
        async with self.dedup.lock_for(signature):
            entry = await self.dedup.lookup(signature)
            if entry is not None:
                existing = await self.store.get_insight(entry.insight_id)
                if existing is not None:
                    self._merge_into(existing, candidate, record)
                    await self.store.apply_merge(existing)
                    self.dedup.record_merge(signature, existing.confidence)
                    return True, existing
                self.dedup.forget(signature)

            insight = self._promote(candidate, signature, decision, record)
            await self.store.insert_insight(insight)
            self.dedup.register(signature, insight.id, insight.confidence, insight.created_at)
            # Merges into this row must not interleave with the enrichment write-back.
            await self._enrich(insight, record)
            return False, insight

    def _merge_into(
        self,
        existing: PersistedInsight,
        candidate: CandidateInsight,
        record: MemoryRecord,
    ) -> None:
        existing.confidence = merge_confidence(existing.confidence, candidate.confidence)
        if record.id not in existing.source_ids:
            existing.source_ids.append(record.id)
        for tech in candidate.technologies:
            if tech not in existing.technologies:
                existing.technologies.append(tech)
        for tag in candidate.tags:
            if tag not in existing.tags:
                existing.tags.append(tag)
        existing.evidence.extend(candidate.evidence)
        for recommendation in candidate.recommendations:
            if recommendation not in existing.recommendations:
                existing.recommendations.append(recommendation)
        existing.updated_at = self._clock()

    def _promote(
        self,
        candidate: CandidateInsight,
        signature: str,
        decision: QualityDecision,
        record: MemoryRecord,
    ) -> PersistedInsight:
        now = self._clock()
        return PersistedInsight(
            id=str(uuid.uuid4()),
            insight_type=candidate.insight_type,
            category=candidate.category,
            confidence=candidate.confidence,
            signature=signature,
            subcategory=candidate.subcategory,
            title=candidate.title,
            summary=candidate.summary,
            relevance=candidate.relevance,
            impact=candidate.impact,
            source_type=candidate.source_type,
            source_ids=[record.id],
            project_id=candidate.project_id or record.project_id,
            entities=list(candidate.entities),
            technologies=list(candidate.technologies),
            tags=list(candidate.tags),
            evidence=list(candidate.evidence),
            recommendations=list(candidate.recommendations),
            validation_status=decision.validation_status,
            detection_method=candidate.detection_method,
            created_at=now,
            updated_at=now,
        )

    async def _enrich(self, insight: PersistedInsight, record: MemoryRecord) -> None:
        if not self.enrichers:
            return
        for enricher in self.enrichers:
            try:
                await enricher.enrich(insight, record)
            except Exception:
                # Enrichment is best-effort; the insight is already persisted.
                logger.warning(
                    "Enrichment failed",
                    exc_info=True,
                    extra={"enricher": enricher.name, "insight_id": insight.id},
                )
        insight.updated_at = self._clock()
        await self.store.save_enrichment(insight)

    async def _record_failure(self, record: MemoryRecord, exc: Exception) -> None:
        """Count a failed attempt; raises ``PermanentFailureError`` at the threshold."""
        current = await self.store.get_memory(record.id)
        attempts = (current.attempts if current else record.attempts) + 1
        threshold = self.settings.permanent_failure_attempts
        error = str(exc) or type(exc).__name__
        record.attempts = attempts
        record.last_error = error

        if attempts >= threshold:
            record.status = MemoryStatus.FAILED_PERMANENT
            await self.store.update_memory_status(
                record.id, MemoryStatus.FAILED_PERMANENT, attempts=attempts, error=error
            )
            self.events.emit(
                EventType.MEMORY_FAILED,
                memory_id=record.id,
                attempts=attempts,
                permanent=True,
                error=error,
            )
            logger.error(
                "Memory failed permanently",
                extra={"memory_id": record.id, "attempts": attempts, "error": error},
            )
            raise PermanentFailureError(
                f"Memory {record.id} failed {attempts} times",
                details={
                    "memory_id": record.id,
                    "attempts": attempts,
                    "cause": getattr(exc, "code", type(exc).__name__),
                },
            ) from exc

        record.status = MemoryStatus.FAILED
        await self.store.update_memory_status(
            record.id, MemoryStatus.FAILED, attempts=attempts, error=error
        )
        self.events.emit(
            EventType.MEMORY_FAILED,
            memory_id=record.id,
            attempts=attempts,
            permanent=False,
            error=error,
        )
        logger.warning(
            "Memory processing failed",
            extra={"memory_id": record.id, "attempts": attempts, "error": error},
        )

    # ------------------------------------------------------------------
    # Batch driver
    # ------------------------------------------------------------------

    async def process_unprocessed_memories(self) -> BatchResult:
        """Drain the backlog and every eligible record.

        Returns immediately with ``skipped=True`` when a drain is already
        active. Per-record failures are counted, never raised.
        """
        if self._draining:
            logger.info("Insight drain already running, skipping")
            return BatchResult(skipped=True, reason="already_running")
        self._draining = True

        started = time.perf_counter()
        result = BatchResult()
        semaphore = asyncio.Semaphore(self.settings.max_concurrent)
        seen_records: Set[str] = set()
        try:
            await self._recover_interrupted()
            if self.queue is not None:
                await self._drain_backlog(result, semaphore, seen_records)

            while True:
                records = await self.store.fetch_unprocessed(
                    self.settings.batch_size,
                    exclude_ids=seen_records,
                    max_attempts=self.settings.permanent_failure_attempts,
                )
                if not records:
                    break
                seen_records.update(r.id for r in records)
                await asyncio.gather(
                    *(self._run_record(r, result, semaphore) for r in records)
                )
        finally:
            self._draining = False
            result.duration_ms = round((time.perf_counter() - started) * 1000, 2)

        logger.info("Insight drain finished", extra=result.to_dict())
        return result

    async def recover_interrupted(self) -> int:
        """Requeue work a crash or an earlier error left half done.

        Records stuck in ``processing`` go back to ``pending`` unless this
        pipeline is processing them right now. Backlog items stuck in
        ``processing`` are moved to ``retry``.

        A drain does this itself when it starts, so the call is skipped
        while one is active.

        Returns:
            Number of memory records reset
        """
        if self._draining:
            return 0
        return await self._recover_interrupted()

    async def _recover_interrupted(self) -> int:
        reset = await self.store.reset_interrupted(exclude_ids=set(self._active))
        if reset:
            logger.info(
                "Reset interrupted memories",
                extra={"count": len(reset), "memory_ids": reset[:20]},
            )
        if self.queue is not None:
            items = await asyncio.to_thread(self.queue.reset_interrupted)
            if items:
                logger.info("Reset interrupted backlog items", extra={"count": items})
        return len(reset)

    async def _drain_backlog(
        self,
        result: BatchResult,
        semaphore: asyncio.Semaphore,
        seen_records: Set[str],
    ) -> None:
        seen_items: Set[str] = set()
        while True:
            items = await self.queue.afetch_pending(
                self.settings.batch_size, exclude_ids=seen_items
            )
            if not items:
                return
            seen_items.update(item.id for item in items)
            runnable = []
            for item in items:
                record = await self._claim(item, seen_records)
                if record is not None:
                    runnable.append((item, record))
            await asyncio.gather(
                *(self._run_record(r, result, semaphore, item) for item, r in runnable)
            )

    async def _claim(
        self, item: ProcessingQueueItem, seen_records: Set[str]
    ) -> Optional[MemoryRecord]:
        record = await self.store.get_memory(item.memory_id)
        if record is None or record.status == MemoryStatus.FAILED_PERMANENT:
            await asyncio.to_thread(self.queue.cancel, item.id)
            return None
        if record.status == MemoryStatus.READY or record.id in seen_records:
            await asyncio.to_thread(self.queue.mark_completed, item.id)
            return None
        seen_records.add(record.id)
        await asyncio.to_thread(self.queue.mark_processing, item.id)
        return record

    async def _run_record(
        self,
        record: MemoryRecord,
        result: BatchResult,
        semaphore: asyncio.Semaphore,
        item: Optional[ProcessingQueueItem] = None,
    ) -> None:
        async with semaphore:
            self._in_flight += 1
            result.processed += 1
            try:
                outcome = await self.process_memory(record)
            except PermanentFailureError as exc:
                result.failed += 1
                if item is not None:
                    await asyncio.to_thread(self.queue.mark_failed, item.id, exc.message)
                return
            except Exception as exc:
                # Isolated per record; status and attempts are already recorded.
                result.failed += 1
                code = exc.code if isinstance(exc, MinimeError) else type(exc).__name__
                logger.info(
                    "Record failed during drain",
                    extra={"memory_id": record.id, "error_code": code},
                )
                if item is not None:
                    await asyncio.to_thread(self.queue.mark_retry, item.id, str(exc))
                return
            finally:
                self._in_flight -= 1

        result.add(outcome)
        if item is not None:
            await asyncio.to_thread(self.queue.mark_completed, item.id)

    # ------------------------------------------------------------------
    # Real-time entry
    # ------------------------------------------------------------------

    async def submit(
        self,
        record: MemoryRecord,
        task_type: TaskType = TaskType.PATTERN_DETECTION,
    ) -> Optional[MemoryProcessingResult]:
        """Process a new record now, or defer it to the batch driver.

        The record is deferred when real-time processing is disabled, a
        drain is active or ``max_concurrent`` records are already in flight.
        Deferred records go to the backlog when one is configured and
        otherwise stay pending for the next drain.

        Returns:
            The processing result, or ``None`` when deferred
        """
        if await self.store.get_memory(record.id) is None:
            await self.store.add_memory(record)

        saturated = self._in_flight >= self.settings.max_concurrent
        if not self.settings.real_time_enabled or self._draining or saturated:
            if self.queue is not None:
                item = await self.queue.aenqueue(record.id, task_type)
                logger.debug(
                    "Memory deferred to backlog",
                    extra={"memory_id": record.id, "queue_item_id": item.id},
                )
            return None

        self._in_flight += 1
        try:
            return await self.process_memory(record)
        finally:
            self._in_flight -= 1
