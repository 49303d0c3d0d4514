"""Processor contract for insight detection."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, List, Optional, Tuple

from ..models import CandidateInsight, DetectionMethod, MemoryRecord

logger = logging.getLogger(__name__)


class BaseProcessor(ABC):
    """Turns one memory record into zero or more candidate insights.

    Subclasses declare the memory types they handle and implement
    ``detect``. They may tighten the quality gate by overriding
    ``validate``; the gate's own checks always run first.

    Attributes:
        name: Registry key, also usable as an explicit strategy
        memory_types: Memory types this processor claims
        detection_method: Tag recorded on every candidate
    """

    name: str = "base"
    memory_types: Tuple[str, ...] = ()
    detection_method: DetectionMethod = DetectionMethod.MANUAL

    @abstractmethod
    async def detect(self, record: MemoryRecord) -> List[CandidateInsight]:
        """Detect candidate insights in a memory record.

        Args:
            record: Memory record to analyze

        Returns:
            Candidates, possibly empty when nothing worth keeping was found

        Raises:
            InferenceError: If a model call fails
        """

    def validate(self, candidate: CandidateInsight) -> bool:
        return True

    def make_candidate(
        self,
        record: MemoryRecord,
        *,
        insight_type: Optional[str],
        category: Optional[str],
        confidence: Optional[float],
        **fields: Any,
    ) -> CandidateInsight:
        if confidence is not None:
            confidence = max(0.0, min(1.0, confidence))
        return CandidateInsight(
            insight_type=insight_type,
            category=category,
            confidence=confidence,
            source_memory_id=record.id,
            project_id=record.project_id,
            detection_method=self.detection_method.value,
            **fields,
        )

    @staticmethod
    def snippet(record: MemoryRecord, max_length: int = 200) -> str:
        content = record.content.strip()
        if len(content) <= max_length:
            return content
        return content[:max_length] + "..."

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"
