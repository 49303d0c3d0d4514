"""Code metrics and code smells for code and architecture memories."""

from __future__ import annotations

import re
from typing import Any, Dict, List, Optional

from ..models import CandidateInsight, DetectionMethod, InsightType, MemoryRecord
from .base import BaseProcessor
from .pattern_detector import PatternDetectorProcessor


MAX_LINES = 300
MAX_CONDITIONALS = 10

CONDITIONAL = re.compile(r"\b(?:if|elif|switch|case)\b")

# (name, pattern, recommendation)
CODE_SMELLS = (
    (
        "long_parameter_list",
        re.compile(r"(?:function|def)\s+\w+\s*\([^)]{50,}\)"),
        "Group related parameters into an object or dataclass",
    ),
    (
        "long_method",
        re.compile(r"\{[^{}]{500,}\}"),
        "Split the method into smaller functions",
    ),
    (
        "nested_conditionals",
        re.compile(
            r"if\s*\([^)]*\)\s*\{[^{}]*if\s*\([^)]*\)\s*\{[^{}]*if\s*\("
            r"|^([ \t]*)if\b.*:\n\1[ \t]+if\b.*:\n\1[ \t]+[ \t]+if\b",
            re.MULTILINE,
        ),
        "Flatten nested conditionals with guard clauses",
    ),
)


class CodeAnalyzerProcessor(BaseProcessor):
    """Design patterns plus quality metrics and smells.

    Pattern detection runs for every claimed type. Metrics and smells are
    computed only for ``code`` memories.
    """

    name = "code_analyzer"
    memory_types = (
        "code",
        "architecture",
        "system_patterns",
        "tech_context",
        "tech_reference",
        "implementation_notes",
        "pattern_library_v2",
    )
    detection_method = DetectionMethod.CODE_ANALYSIS

    def __init__(self, patterns: Optional[PatternDetectorProcessor] = None):
        self.patterns = patterns or PatternDetectorProcessor()

    async def detect(self, record: MemoryRecord) -> List[CandidateInsight]:
        candidates = await self.patterns.detect(record)
        if record.memory_type != "code":
            return candidates

        quality = self._quality(record)
        if quality is not None:
            candidates.append(quality)
        candidates.extend(self._smells(record))
        return candidates

    def _quality(self, record: MemoryRecord) -> Optional[CandidateInsight]:
        issues: List[Dict[str, Any]] = []
        lines = record.content.count("\n") + 1
        if lines > MAX_LINES:
            issues.append(
                {
                    "type": "file_too_long",
                    "value": lines,
                    "severity": "medium",
                    "recommendation": "Split the file into smaller modules",
                }
            )
        conditionals = len(CONDITIONAL.findall(record.content))
        if conditionals > MAX_CONDITIONALS:
            issues.append(
                {
                    "type": "high_cyclomatic_complexity",
                    "value": conditionals,
                    "severity": "high",
                    "recommendation": "Reduce branching by extracting functions",
                }
            )
        if not issues:
            return None

        return self.make_candidate(
            record,
            insight_type=InsightType.CODE_QUALITY.value,
            category="quality",
            confidence=0.7,
            subcategory="code_metrics",
            title="Code Quality Analysis",
            summary=f"Found {len(issues)} potential quality issues",
            entities=[issue["type"] for issue in issues],
            tags=["code-quality"] + [f"issue:{issue['type']}" for issue in issues],
            evidence=[
                {"type": "metric", "content": f"{issue['type']}: {issue['value']}"}
                for issue in issues
            ],
            recommendations=[
                {
                    "text": issue["recommendation"],
                    "priority": issue["severity"],
                    "type": "code_quality",
                }
                for issue in issues
            ],
        )

    def _smells(self, record: MemoryRecord) -> List[CandidateInsight]:
        candidates = []
        for smell, pattern, remedy in CODE_SMELLS:
            match = pattern.search(record.content)
            if match is None:
                continue
            label = smell.replace("_", " ")
            candidates.append(
                self.make_candidate(
                    record,
                    insight_type=InsightType.CODE_SMELL.value,
                    category="quality",
                    confidence=0.6,
                    subcategory=smell,
                    title=f"Code Smell: {label}",
                    summary=f"Detected {label} in {record.memory_type}",
                    entities=[smell],
                    tags=["code-smell", smell],
                    evidence=[{"type": "code", "content": match.group(0)[:200]}],
                    recommendations=[
                        {"text": remedy, "priority": "medium", "type": "refactoring"}
                    ],
                )
            )
        return candidates
