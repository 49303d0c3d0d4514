"""Keyword detection of design patterns in code and architecture notes."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Pattern

from ..models import CandidateInsight, DetectionMethod, InsightType, MemoryRecord
from .base import BaseProcessor


@dataclass(frozen=True)
class PatternMatcher:
    name: str
    category: str
    regex: Pattern[str]
    confidence: float


PATTERN_MATCHERS = (
    PatternMatcher(
        "Singleton",
        "creational",
        re.compile(r"getInstance|singleton|private\s+constructor", re.IGNORECASE),
        0.8,
    ),
    PatternMatcher(
        "Factory",
        "creational",
        re.compile(r"factory|create[A-Z]\w+|build[A-Z]\w+"),
        0.7,
    ),
    PatternMatcher(
        "Observer",
        "behavioral",
        re.compile(r"subscribe|unsubscribe|notify|observer|listener", re.IGNORECASE),
        0.7,
    ),
    PatternMatcher(
        "Repository",
        "architectural",
        re.compile(r"repository|findBy|update\s+\w*\s*entity", re.IGNORECASE),
        0.8,
    ),
    PatternMatcher(
        "Decorator",
        "structural",
        re.compile(r"decorator|@\w+\s*\n\s*def\s|wraps\(", re.IGNORECASE),
        0.6,
    ),
)


class PatternDetectorProcessor(BaseProcessor):
    """One candidate per design pattern whose keywords appear in the memory."""

    name = "pattern_detector"
    memory_types = ("code-snippet", "refactor")
    detection_method = DetectionMethod.PATTERN_MATCHING

    async def detect(self, record: MemoryRecord) -> List[CandidateInsight]:
        candidates = []
        for matcher in PATTERN_MATCHERS:
            if not matcher.regex.search(record.content):
                continue
            candidates.append(
                self.make_candidate(
                    record,
                    insight_type=InsightType.PATTERN.value,
                    category="architectural",
                    confidence=matcher.confidence,
                    subcategory=matcher.category,
                    title=f"{matcher.name} Pattern Detected",
                    summary=f"Detected {matcher.name} pattern in {record.memory_type}",
                    entities=[matcher.name.lower()],
                    tags=[f"pattern:{matcher.name.lower()}", f"category:{matcher.category}"],
                    evidence=[
                        {
                            "type": "keyword",
                            "content": f"Detected keywords matching {matcher.name} pattern",
                            "source": "memory",
                        }
                    ],
                )
            )
        return candidates
