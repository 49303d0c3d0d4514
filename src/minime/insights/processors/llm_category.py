"""Model-backed categorization for free-form memories."""

from __future__ import annotations

import logging
from typing import List, Optional

from ..inference import OllamaInferenceClient
from ..models import CandidateInsight, DetectionMethod, InsightType, MemoryRecord
from .base import BaseProcessor

logger = logging.getLogger(__name__)


# Shorter memories rarely carry anything a model can categorize.
MIN_CONTENT_LENGTH = 50


class LLMCategoryProcessor(BaseProcessor):
    """Asks the inference client to categorize a memory.

    Produces at most one candidate per record. The model may answer that the
    memory holds nothing worth keeping, which yields no candidates.
    """

    name = "llm_category"
    memory_types = (
        "general",
        "insight",
        "working-notes",
        "learning",
        "research",
        "discussion",
        "progress",
        "task",
        "rule",
        "lessons_learned",
        "reasoning",
    )
    detection_method = DetectionMethod.LLM_CATEGORY

    def __init__(
        self,
        client: OllamaInferenceClient,
        *,
        min_content_length: int = MIN_CONTENT_LENGTH,
    ):
        self.client = client
        self.min_content_length = min_content_length

    async def detect(self, record: MemoryRecord) -> List[CandidateInsight]:
        if len(record.content.strip()) < self.min_content_length:
            logger.debug(
                "Memory too short for categorization",
                extra={"memory_id": record.id, "length": len(record.content)},
            )
            return []

        result = await self.client.categorize(record.content, record.memory_type)
        if not result.has_insight:
            return []

        candidate = self.make_candidate(
            record,
            insight_type=result.insight_type or InsightType.GENERAL.value,
            category=result.category,
            confidence=result.confidence,
            subcategory=result.subcategory,
            title=result.title or self._default_title(record, result.category),
            summary=result.summary or self.snippet(record),
            entities=result.entities,
            technologies=result.technologies,
            tags=list(record.tags),
        )
        return [candidate]

    @staticmethod
    def _default_title(record: MemoryRecord, category: Optional[str]) -> str:
        label = (category or record.memory_type).replace("_", " ")
        return f"{label.title()} insight"
