"""Tests for the quality gate."""

from __future__ import annotations

import pytest

from minime.configuration import InsightSettings
from minime.insights import CandidateInsight, QualityGate, ValidationStatus
from minime.insights.processors import DecisionAnalyzerProcessor


def _candidate(**overrides) -> CandidateInsight:
    fields = dict(
        insight_type="pattern",
        category="architectural",
        confidence=0.5,
        source_memory_id="m1",
    )
    fields.update(overrides)
    return CandidateInsight(**fields)


def test_confidence_equal_to_floor_is_accepted() -> None:
    gate = QualityGate(InsightSettings(min_confidence_score=0.3))

    decision = gate.evaluate(_candidate(confidence=0.3))

    assert decision.accepted is True
    assert decision.reason is None
    assert decision.validation_status is ValidationStatus.AUTO_VALIDATED


def test_confidence_below_floor_is_rejected() -> None:
    gate = QualityGate(InsightSettings(min_confidence_score=0.3))

    decision = gate.evaluate(_candidate(confidence=0.29))

    assert decision.accepted is False
    assert decision.reason == "below_min_confidence"
    assert decision.validation_status is ValidationStatus.REJECTED


@pytest.mark.parametrize(
    ("overrides", "reason"),
    [
        ({"insight_type": None}, "missing_insight_type"),
        ({"category": "  "}, "missing_category"),
        ({"confidence": None}, "missing_confidence"),
        ({"confidence": 1.5}, "confidence_out_of_range"),
        ({"confidence": -0.1}, "confidence_out_of_range"),
    ],
)
def test_incomplete_candidates_are_rejected(overrides, reason) -> None:
    decision = QualityGate().evaluate(_candidate(**overrides))

    assert decision.accepted is False
    assert decision.reason == reason


def test_require_validation_marks_pending() -> None:
    gate = QualityGate(InsightSettings(require_validation=True))

    assert gate.evaluate(_candidate()).validation_status is ValidationStatus.PENDING


def test_processor_validation_runs_after_gate() -> None:
    processor = DecisionAnalyzerProcessor()
    gate = QualityGate()

    rejected = gate.evaluate(_candidate(title="Decision Analysis: Untitled decision"), processor)
    accepted = gate.evaluate(_candidate(title="Decision Analysis: Use SQLite"), processor)

    assert rejected.reason == "rejected_by_decision_analyzer"
    assert accepted.accepted is True
