"""Quality gate applied to every candidate before deduplication.

The gate is stateless: it reads its thresholds from ``InsightSettings`` and
decides per candidate. A rejection is a normal outcome, counted by the
pipeline, never an exception that escapes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from minime.configuration import InsightSettings
from minime.errors import InsightValidationError

from .models import CandidateInsight, ValidationStatus

if TYPE_CHECKING:
    from .processors.base import BaseProcessor

logger = logging.getLogger(__name__)


REQUIRED_FIELDS = ("insight_type", "category", "confidence")


@dataclass
class QualityDecision:
    """Outcome of gating one candidate.

    Attributes:
        accepted: Whether the candidate may be persisted or merged
        reason: Rejection reason code, ``None`` when accepted
        validation_status: Status to persist accepted candidates with
    """

    accepted: bool
    reason: Optional[str] = None
    validation_status: ValidationStatus = ValidationStatus.AUTO_VALIDATED


class QualityGate:
    """Rejects incomplete or low-confidence candidates.

    Usage:
        gate = QualityGate(settings.insights)
        decision = gate.evaluate(candidate, processor)
        if decision.accepted:
            # deduplicate and persist
    """

    def __init__(self, settings: Optional[InsightSettings] = None):
        self.settings = settings or InsightSettings()

    def evaluate(
        self,
        candidate: CandidateInsight,
        processor: Optional["BaseProcessor"] = None,
    ) -> QualityDecision:
        try:
            self._check(candidate, processor)
        except InsightValidationError as exc:
            logger.debug(
                "Candidate rejected",
                extra={"reason": exc.reason, "memory_id": candidate.source_memory_id},
            )
            return QualityDecision(
                accepted=False,
                reason=exc.reason,
                validation_status=ValidationStatus.REJECTED,
            )

        status = (
            ValidationStatus.PENDING
            if self.settings.require_validation
            else ValidationStatus.AUTO_VALIDATED
        )
        return QualityDecision(accepted=True, validation_status=status)

    def _check(
        self,
        candidate: CandidateInsight,
        processor: Optional["BaseProcessor"],
    ) -> None:
        for field_name in REQUIRED_FIELDS:
            value = getattr(candidate, field_name)
            if value is None or (isinstance(value, str) and not value.strip()):
                raise InsightValidationError(f"missing_{field_name}")

        if not 0.0 <= candidate.confidence <= 1.0:
            raise InsightValidationError("confidence_out_of_range")

        # Equality with the floor passes.
        if candidate.confidence < self.settings.min_confidence_score:
            raise InsightValidationError(
                "below_min_confidence",
                f"confidence {candidate.confidence:.2f} < {self.settings.min_confidence_score:.2f}",
            )

        if processor is not None and not processor.validate(candidate):
            raise InsightValidationError(f"rejected_by_{processor.name}")
