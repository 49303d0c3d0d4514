"""Heuristic analysis of recorded decisions."""

from __future__ import annotations

import re
from typing import List

from ..models import CandidateInsight, DetectionMethod, InsightType, MemoryRecord
from .base import BaseProcessor


ALTERNATIVES = re.compile(r"instead\s+of|\bvs\.?\b|versus|alternative|\boption", re.IGNORECASE)
RATIONALE = re.compile(r"because|since|due\s+to|so\s+that|in\s+order\s+to", re.IGNORECASE)
FACTORS = re.compile(
    r"performance|cost|maintainab|scalab|security|simplicity|latency|reliab", re.IGNORECASE
)
RISKS = re.compile(r"\brisk|downside|trade-?off|drawback", re.IGNORECASE)
STAKEHOLDERS = re.compile(r"\bteam\b|\busers?\b|customer|client|stakeholder", re.IGNORECASE)

DECISION_TYPES = (
    ("architecture", re.compile(r"architecture|design|pattern|structure", re.IGNORECASE)),
    ("technology", re.compile(r"library|framework|database|language|tool", re.IGNORECASE)),
    ("process", re.compile(r"process|workflow|review|deploy|release", re.IGNORECASE)),
)

DECISION_PATTERNS = (
    (
        "technical_debt_tradeoff",
        re.compile(r"technical\s+debt|quick\s+fix|temporary\s+solution|workaround", re.IGNORECASE),
        "Technical debt decision detected",
    ),
    (
        "architecture_choice",
        re.compile(r"architecture|framework|technology\s+stack|platform", re.IGNORECASE),
        "Architectural decision detected",
    ),
    (
        "performance_vs_features",
        re.compile(r"performance|optimization", re.IGNORECASE),
        "Performance vs features tradeoff detected",
    ),
)


class DecisionAnalyzerProcessor(BaseProcessor):
    """Scores decisions by how completely they were written down.

    Confidence starts at 0.5 and grows by 0.08 for each of: alternatives
    considered, stated rationale, decision factors, risks, stakeholders and
    an identifiable topic.
    """

    name = "decision_analyzer"
    memory_types = ("decision", "design_decisions")
    detection_method = DetectionMethod.DECISION_ANALYSIS

    async def detect(self, record: MemoryRecord) -> List[CandidateInsight]:
        content = record.content
        topic = _topic(content)
        completeness = [
            bool(ALTERNATIVES.search(content)),
            bool(RATIONALE.search(content)),
            bool(FACTORS.search(content)),
            bool(RISKS.search(content)),
            bool(STAKEHOLDERS.search(content)),
            bool(topic),
        ]
        decision_type = "general"
        for label, pattern in DECISION_TYPES:
            if pattern.search(content):
                decision_type = label
                break

        candidates = [
            self.make_candidate(
                record,
                insight_type=InsightType.DECISION.value,
                category="decision_making",
                confidence=0.5 + sum(completeness) * 0.08,
                subcategory=decision_type,
                title=f"Decision Analysis: {topic or 'Untitled decision'}",
                summary=self.snippet(record),
                entities=[f.lower() for f in sorted(set(FACTORS.findall(content)))],
                tags=["decision", f"type:{decision_type}"],
            )
        ]

        for pattern_name, pattern, title in DECISION_PATTERNS:
            if pattern.search(content):
                candidates.append(
                    self.make_candidate(
                        record,
                        insight_type=InsightType.DECISION_PATTERN.value,
                        category="decision_making",
                        confidence=0.6,
                        subcategory=pattern_name,
                        title=title,
                        summary=f"Identified {pattern_name} decision pattern",
                        tags=["decision-pattern", pattern_name],
                    )
                )
        return candidates

    def validate(self, candidate: CandidateInsight) -> bool:
        # A decision insight without a topic is just noise.
        return not candidate.title.endswith("Untitled decision")


def _topic(content: str) -> str:
    first = re.split(r"[.\n]", content.strip(), maxsplit=1)[0].strip()
    return first[:80]
