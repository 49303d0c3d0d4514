"""Post-persistence enrichment of newly created insights.

Enrichers mutate the new insight in place; the pipeline writes it back once
after all enrichers ran. Only the relationship enricher touches other rows
(marking superseded insights).
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Callable, Dict, List

from .models import MemoryRecord, PersistedInsight
from .processors.pattern_detector import PATTERN_MATCHERS, PatternMatcher
from .store import RecordStore

logger = logging.getLogger(__name__)


CONTRADICTION_EXISTING_MAX = 0.3
CONTRADICTION_NEW_MIN = 0.7
SUPERSEDE_MIN_CONFIDENCE = 0.7
SUPERSEDE_MIN_AGE = timedelta(days=7)


class Enricher(ABC):
    name = "enricher"

    @abstractmethod
    async def enrich(self, insight: PersistedInsight, record: MemoryRecord) -> None:
        """Add derived information to ``insight``."""


class RelationshipEnricher(Enricher):
    """Links a new insight to related, contradicted and superseded insights.

    - related: same project, sharing a category, technology, entity or source
    - contradicts: same type and category where the existing insight is weak
      (confidence < 0.3) and the new one strong (> 0.7)
    - supersedes: the new insight has confidence >= 0.7 and the older one is
      at least 7 days old, less confident and not validated by a person
    """

    name = "relationships"

    def __init__(
        self,
        store: RecordStore,
        *,
        clock: Callable[[], datetime] = datetime.utcnow,
        max_related: int = 20,
    ):
        self.store = store
        self._clock = clock
        self.max_related = max_related

    async def enrich(self, insight: PersistedInsight, record: MemoryRecord) -> None:
        related = await self.store.find_related_insights(insight, limit=self.max_related)
        for other in related:
            if other.id not in insight.related_ids:
                insight.related_ids.append(other.id)
            if self._contradicts(insight, other) and other.id not in insight.contradicts_ids:
                insight.contradicts_ids.append(other.id)

        if related:
            insight.evidence.append(
                {
                    "type": "relationship",
                    "content": f"Related to {len(related)} existing insights",
                    "source": "relationships",
                }
            )

        if insight.confidence < SUPERSEDE_MIN_CONFIDENCE:
            return

        older = await self.store.find_supersedable_insights(
            insight, self._clock() - SUPERSEDE_MIN_AGE
        )
        superseded = []
        for old in older:
            # Rows may be merged concurrently; only superseded_by is written.
            if not await self.store.mark_superseded(old.id, insight.id, self._clock()):
                continue
            superseded.append(old.id)
            if old.id not in insight.supersedes_ids:
                insight.supersedes_ids.append(old.id)

        if superseded:
            logger.info(
                "Insight supersedes older insights",
                extra={"insight_id": insight.id, "superseded": superseded},
            )

    @staticmethod
    def _contradicts(new: PersistedInsight, existing: PersistedInsight) -> bool:
        return (
            new.insight_type == existing.insight_type
            and new.category == existing.category
            and existing.confidence < CONTRADICTION_EXISTING_MAX
            and new.confidence > CONTRADICTION_NEW_MIN
        )


TECHNOLOGY_PATTERNS: Dict[str, re.Pattern] = {
    "languages": re.compile(
        r"\b(javascript|typescript|python|java|golang|rust|c\+\+|ruby|php|swift|kotlin|scala)\b",
        re.IGNORECASE,
    ),
    "frameworks": re.compile(
        r"\b(react|vue|angular|express|django|flask|fastapi|spring|rails|laravel|nextjs|nuxt)\b",
        re.IGNORECASE,
    ),
    "databases": re.compile(
        r"\b(postgresql|postgres|mysql|sqlite|mongodb|redis|elasticsearch|cassandra|dynamodb)\b",
        re.IGNORECASE,
    ),
    "cloud": re.compile(
        r"\b(aws|azure|gcp|google cloud|heroku|vercel|netlify|cloudflare)\b", re.IGNORECASE
    ),
    "tools": re.compile(
        r"\b(docker|kubernetes|jenkins|github|gitlab|terraform|ansible|nginx|apache)\b",
        re.IGNORECASE,
    ),
}


def extract_technologies(text: str) -> List[str]:
    """Technology names mentioned in ``text``, lowercased, in first-seen order."""
    found: List[str] = []
    for pattern in TECHNOLOGY_PATTERNS.values():
        for match in pattern.findall(text):
            name = match.lower()
            if name not in found:
                found.append(name)
    return found


class TechnologyExtractionEnricher(Enricher):
    """Tags an insight with technologies named in it or its source memory."""

    name = "technologies"

    async def enrich(self, insight: PersistedInsight, record: MemoryRecord) -> None:
        text = " ".join([insight.title, insight.summary, record.content])
        known = {t.lower() for t in insight.technologies}
        for tech in extract_technologies(text):
            if tech in known:
                continue
            known.add(tech)
            insight.technologies.append(tech)
            tag = f"tech:{tech}"
            if tag not in insight.tags:
                insight.tags.append(tag)


ANTI_PATTERNS = (
    PatternMatcher(
        "God Object",
        "anti_pattern",
        re.compile(r"god\s*(?:object|class)|does\s+everything|too\s+many\s+responsibilities", re.IGNORECASE),
        0.7,
    ),
    PatternMatcher(
        "Spaghetti Code",
        "anti_pattern",
        re.compile(r"spaghetti|tangled|goto\b", re.IGNORECASE),
        0.6,
    ),
    PatternMatcher(
        "Magic Numbers",
        "anti_pattern",
        re.compile(r"magic\s+(?:number|value|string)s?", re.IGNORECASE),
        0.6,
    ),
    PatternMatcher(
        "Copy-Paste Programming",
        "anti_pattern",
        re.compile(r"copy[\s-]?past(?:e|ed|ing)|duplicated\s+code", re.IGNORECASE),
        0.6,
    ),
    PatternMatcher(
        "Busy Waiting",
        "anti_pattern",
        re.compile(r"busy[\s-]?wait|while\s*\(\s*true\s*\)|while\s+True\s*:\s*(?:pass|continue)"),
        0.6,
    ),
    PatternMatcher(
        "N+1 Queries",
        "anti_pattern",
        re.compile(r"n\s*\+\s*1\s+quer", re.IGNORECASE),
        0.7,
    ),
)

KNOWN_PATTERNS = PATTERN_MATCHERS + ANTI_PATTERNS


class PatternMatchingEnricher(Enricher):
    """Matches a new insight and its memory against known design and anti-patterns.

    Each match is recorded once in ``patterns`` and tagged. When anything
    matched, a review recommendation is added; its priority is high if an
    anti-pattern was among the matches.
    """

    name = "pattern_matching"

    async def enrich(self, insight: PersistedInsight, record: MemoryRecord) -> None:
        if not record.content or not insight.summary:
            return

        text = " ".join([insight.title, insight.summary, record.content])
        known = {p.get("name") for p in insight.patterns}
        matched: List[PatternMatcher] = []
        for matcher in KNOWN_PATTERNS:
            if matcher.name in known or not matcher.regex.search(text):
                continue
            matched.append(matcher)
            insight.patterns.append(
                {
                    "name": matcher.name,
                    "category": matcher.category,
                    "pattern_type": "anti_pattern" if matcher in ANTI_PATTERNS else "design_pattern",
                    "evidence": [
                        {
                            "type": "pattern_match",
                            "content": f"Matched pattern: {matcher.name}",
                            "confidence": matcher.confidence,
                        }
                    ],
                }
            )
            tag = f"pattern:{matcher.name.lower()}"
            if tag not in insight.tags:
                insight.tags.append(tag)

        if not matched:
            return
        insight.recommendations.append(
            {
                "text": f"Consider reviewing {len(matched)} identified patterns for best practices",
                "priority": "high" if any(m in ANTI_PATTERNS for m in matched) else "medium",
                "type": "pattern_review",
            }
        )
