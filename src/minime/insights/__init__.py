"""Unified insight pipeline: memories in, deduplicated insights out."""

from .dedup import DedupWindowEntry, Deduplicator, content_signature, merge_confidence
from .enrichment import (
    PatternMatchingEnricher,
    RelationshipEnricher,
    TechnologyExtractionEnricher,
)
from .inference import Categorization, OllamaInferenceClient
from .models import (
    CandidateInsight,
    MemoryRecord,
    MemoryStatus,
    PersistedInsight,
    ProcessingQueueItem,
    QueueItemStatus,
    TaskType,
    ValidationStatus,
)
from .pipeline import BatchResult, InsightPipeline, MemoryProcessingResult, ProcessOptions
from .processors import BaseProcessor, ProcessorRegistry, build_default_registry
from .quality import QualityDecision, QualityGate
from .queue import ProcessingQueue
from .store import RecordStore, SQLiteRecordStore

__all__ = [
    "BaseProcessor",
    "BatchResult",
    "CandidateInsight",
    "Categorization",
    "DedupWindowEntry",
    "Deduplicator",
    "InsightPipeline",
    "MemoryProcessingResult",
    "MemoryRecord",
    "MemoryStatus",
    "OllamaInferenceClient",
    "PersistedInsight",
    "ProcessOptions",
    "ProcessingQueue",
    "ProcessingQueueItem",
    "ProcessorRegistry",
    "QualityDecision",
    "QualityGate",
    "QueueItemStatus",
    "RecordStore",
    "PatternMatchingEnricher",
    "RelationshipEnricher",
    "SQLiteRecordStore",
    "TaskType",
    "TechnologyExtractionEnricher",
    "ValidationStatus",
    "build_default_registry",
    "content_signature",
    "merge_confidence",
]
