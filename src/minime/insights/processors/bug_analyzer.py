"""Heuristic analysis of bug reports."""

from __future__ import annotations

import re
from typing import List, Tuple

from ..models import CandidateInsight, DetectionMethod, InsightType, MemoryRecord
from .base import BaseProcessor


SEVERITY_RULES: Tuple[Tuple[str, re.Pattern], ...] = (
    ("critical", re.compile(r"critical|severe|blocking", re.IGNORECASE)),
    ("high", re.compile(r"\bhigh\b|\bmajor\b", re.IGNORECASE)),
    ("low", re.compile(r"\blow\b|\bminor\b", re.IGNORECASE)),
)

CATEGORY_RULES: Tuple[Tuple[str, re.Pattern], ...] = (
    ("performance", re.compile(r"performance|slow|\blag\b", re.IGNORECASE)),
    ("security", re.compile(r"security|vulnerab|exploit", re.IGNORECASE)),
    ("ui", re.compile(r"\bui\b|display|visual", re.IGNORECASE)),
    ("data", re.compile(r"\bdata\b|database|corruption", re.IGNORECASE)),
)

SYMPTOM_PATTERNS = (
    re.compile(r"crash(?:es|ing|ed)?", re.IGNORECASE),
    re.compile(r"error\s+(?:message|code)?\s*:?\s*[^.\n]+", re.IGNORECASE),
    re.compile(r"fail(?:s|ing|ed|ure)?", re.IGNORECASE),
    re.compile(r"not\s+work(?:ing)?", re.IGNORECASE),
)

# (name, description, pattern, remedy)
KNOWN_BUG_PATTERNS = (
    (
        "null_reference",
        "Null reference exception",
        re.compile(
            r"null\s*(?:reference|pointer)|cannot\s+read\s+propert(?:y|ies).*of\s+(?:null|undefined)|NoneType",
            re.IGNORECASE,
        ),
        "Add null checks before accessing properties",
    ),
    (
        "memory_leak",
        "Memory leak pattern",
        re.compile(r"memory\s+leak|out\s+of\s+memory|heap\s+size", re.IGNORECASE),
        "Check for unreleased resources and circular references",
    ),
    (
        "race_condition",
        "Race condition",
        re.compile(r"race\s+condition|deadlock|intermittent", re.IGNORECASE),
        "Review shared state and locking order",
    ),
)


def _first_match(content: str, rules, default: str) -> str:
    for label, pattern in rules:
        if pattern.search(content):
            return label
    return default


class BugAnalyzerProcessor(BaseProcessor):
    """Classifies a bug report by severity and category.

    Emits one ``bug`` candidate per record plus a ``bug_pattern`` candidate
    for each known recurring pattern the report matches.
    """

    name = "bug_analyzer"
    memory_types = ("bug", "debug")
    detection_method = DetectionMethod.BUG_ANALYSIS

    async def detect(self, record: MemoryRecord) -> List[CandidateInsight]:
        content = record.content
        severity = _first_match(content, SEVERITY_RULES, "medium")
        category = _first_match(content, CATEGORY_RULES, "general")
        symptoms = [m.group(0).strip() for p in SYMPTOM_PATTERNS for m in p.finditer(content)]

        candidates = [
            self.make_candidate(
                record,
                insight_type=InsightType.BUG.value,
                category="debugging",
                confidence=0.8,
                subcategory=category,
                title=f"Bug Analysis: {category} issue ({severity})",
                summary=self.snippet(record),
                entities=[f"severity:{severity}"],
                impact=_impact(severity),
                tags=["bug", f"severity:{severity}", f"category:{category}"],
                evidence=[{"type": "symptom", "content": s} for s in symptoms[:5]],
            )
        ]

        for pattern_name, description, pattern, remedy in KNOWN_BUG_PATTERNS:
            if not pattern.search(content):
                continue
            candidates.append(
                self.make_candidate(
                    record,
                    insight_type=InsightType.BUG_PATTERN.value,
                    category="debugging",
                    confidence=0.7,
                    subcategory="recurring_issue",
                    title=f"Recurring Bug Pattern: {pattern_name}",
                    summary=f"This bug matches a known pattern: {description}. {remedy}.",
                    entities=[pattern_name],
                    tags=["bug-pattern", pattern_name],
                )
            )
        return candidates


def _impact(severity: str) -> float:
    return {"critical": 1.0, "high": 0.75, "medium": 0.5, "low": 0.25}[severity]
