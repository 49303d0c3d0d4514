"""Domain models for memory records and insights."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class MemoryStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    READY = "ready"
    FAILED = "failed"
    FAILED_PERMANENT = "failed_permanent"


class InsightType(str, Enum):
    PATTERN = "pattern"
    BUG = "bug"
    BUG_PATTERN = "bug_pattern"
    DECISION = "decision"
    DECISION_PATTERN = "decision_pattern"
    LEARNING = "learning"
    TECH_DISCOVERY = "tech_discovery"
    PROGRESS = "progress"
    IMPROVEMENT = "improvement"
    ANTI_PATTERN = "anti_pattern"
    BEST_PRACTICE = "best_practice"
    CODE_QUALITY = "code_quality"
    CODE_SMELL = "code_smell"
    GENERAL = "general"


class SourceType(str, Enum):
    MEMORY = "memory"
    PATTERN = "pattern"
    CLUSTER = "cluster"
    SYNTHESIS = "synthesis"


class ValidationStatus(str, Enum):
    PENDING = "pending"
    VALIDATED = "validated"
    REJECTED = "rejected"
    AUTO_VALIDATED = "auto_validated"


class DetectionMethod(str, Enum):
    LLM_CATEGORY = "llm_category"
    PATTERN_MATCHING = "pattern_matching"
    BUG_ANALYSIS = "bug_analysis"
    DECISION_ANALYSIS = "decision_analysis"
    CODE_ANALYSIS = "code_analysis"
    RULE_BASED = "rule_based"
    MANUAL = "manual"


class TaskType(str, Enum):
    PATTERN_DETECTION = "pattern_detection"
    SYNTHESIS = "synthesis"
    VALIDATION = "validation"
    ENRICHMENT = "enrichment"


class QueueItemStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    RETRY = "retry"


@dataclass
class MemoryRecord:
    """One captured unit of project knowledge awaiting insight extraction."""

    id: str
    memory_type: str
    content: str
    project_id: Optional[str] = None
    status: MemoryStatus = MemoryStatus.PENDING
    attempts: int = 0
    last_error: Optional[str] = None
    importance_score: float = 0.5
    tags: List[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)


@dataclass
class CandidateInsight:
    """Ephemeral processor output for one memory record.

    Only ``entities`` take part in the content signature; ``technologies``
    are descriptive and may be extended by enrichment.
    """

    insight_type: Optional[str]
    category: Optional[str]
    confidence: Optional[float]
    source_memory_id: str
    subcategory: Optional[str] = None
    title: str = ""
    summary: str = ""
    entities: List[str] = field(default_factory=list)
    technologies: List[str] = field(default_factory=list)
    project_id: Optional[str] = None
    detection_method: str = DetectionMethod.MANUAL.value
    source_type: SourceType = SourceType.MEMORY
    relevance: Optional[float] = None
    impact: Optional[float] = None
    tags: List[str] = field(default_factory=list)
    evidence: List[Dict[str, Any]] = field(default_factory=list)
    recommendations: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class PersistedInsight:
    """A stored insight. Field names are stable across reprocessing."""

    id: str
    insight_type: str
    category: str
    confidence: float
    signature: str
    subcategory: Optional[str] = None
    title: str = ""
    summary: str = ""
    relevance: Optional[float] = None
    impact: Optional[float] = None
    source_type: SourceType = SourceType.MEMORY
    source_ids: List[str] = field(default_factory=list)
    project_id: Optional[str] = None
    entities: List[str] = field(default_factory=list)
    technologies: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    evidence: List[Dict[str, Any]] = field(default_factory=list)
    patterns: List[Dict[str, Any]] = field(default_factory=list)
    recommendations: List[Dict[str, Any]] = field(default_factory=list)
    related_ids: List[str] = field(default_factory=list)
    supersedes_ids: List[str] = field(default_factory=list)
    contradicts_ids: List[str] = field(default_factory=list)
    superseded_by: Optional[str] = None
    validation_status: ValidationStatus = ValidationStatus.AUTO_VALIDATED
    detection_method: str = DetectionMethod.MANUAL.value
    archived: bool = False
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "insight_type": self.insight_type,
            "category": self.category,
            "subcategory": self.subcategory,
            "title": self.title,
            "summary": self.summary,
            "confidence": self.confidence,
            "relevance": self.relevance,
            "impact": self.impact,
            "signature": self.signature,
            "source_type": self.source_type.value,
            "source_ids": list(self.source_ids),
            "project_id": self.project_id,
            "entities": list(self.entities),
            "technologies": list(self.technologies),
            "tags": list(self.tags),
            "related_ids": list(self.related_ids),
            "supersedes_ids": list(self.supersedes_ids),
            "contradicts_ids": list(self.contradicts_ids),
            "patterns": list(self.patterns),
            "recommendations": list(self.recommendations),
            "superseded_by": self.superseded_by,
            "validation_status": self.validation_status.value,
            "detection_method": self.detection_method,
            "archived": self.archived,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass
class ProcessingQueueItem:
    """Durable backlog entry for a memory awaiting the batch driver."""

    id: str
    memory_id: str
    task_type: TaskType = TaskType.PATTERN_DETECTION
    status: QueueItemStatus = QueueItemStatus.PENDING
    attempts: int = 0
    last_error: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)
