"""Centralized error definitions for minime.

Every error raised by the scheduler and the insight pipeline derives from
``MinimeError`` so callers can catch the whole family at one seam while
still switching on ``code`` for logging and statistics.

Usage:
    from minime.errors import MinimeError, InferenceError

    try:
        await pipeline.process_memory(record)
    except InferenceError as e:
        logger.warning("Transient failure: %s", e.to_dict())
"""

from __future__ import annotations

from minime.errors.user_messages import (
    format_error_for_user,
    get_recovery_suggestion,
    get_user_message,
)


# =============================================================================
# Base Error
# =============================================================================


class MinimeError(Exception):
    """Base exception for all minime errors.

    Attributes:
        code: Error code for categorization
        user_message: Operator-friendly message (optional override)
        recoverable: Whether retrying the same work may succeed
        details: Additional error details for debugging
    """

    code: str = "MINIME_ERROR"
    default_message: str = "An unexpected error occurred"
    recoverable: bool = True

    def __init__(
        self,
        message: str | None = None,
        *,
        user_message: str | None = None,
        details: dict | None = None,
    ) -> None:
        self.message = message or self.default_message
        self._user_message = user_message
        self.details = details or {}
        super().__init__(self.message)

    @property
    def user_message(self) -> str:
        """Get operator-friendly message."""
        if self._user_message:
            return self._user_message
        return get_user_message(self)

    @property
    def recovery_suggestion(self) -> str:
        """Get recovery suggestion."""
        return get_recovery_suggestion(self)

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "code": self.code,
            "message": self.message,
            "user_message": self.user_message,
            "recoverable": self.recoverable,
            "details": self.details,
        }


# =============================================================================
# Scheduler Errors
# =============================================================================


class SchedulerError(MinimeError):
    """Base error for job scheduler operations."""

    code = "SCHEDULER_ERROR"
    default_message = "Job scheduler operation failed"


class DuplicateJobError(SchedulerError):
    """A job id was registered twice. Fatal at setup time."""

    code = "DUPLICATE_JOB"
    default_message = "Job already registered"
    recoverable = False


class JobNotFoundError(SchedulerError, KeyError):
    """An operation referenced a job id that was never registered."""

    code = "JOB_NOT_FOUND"
    default_message = "Job not found"
    recoverable = False

    def __str__(self) -> str:
        return self.message


# =============================================================================
# Insight Pipeline Errors
# =============================================================================


class InsightError(MinimeError):
    """Base error for insight processing."""

    code = "INSIGHT_ERROR"
    default_message = "Insight processing failed"


class NoProcessorError(InsightError):
    """No processor is registered for a memory type."""

    code = "NO_PROCESSOR"
    default_message = "No processor registered for memory type"


class DuplicateProcessorError(InsightError):
    """A memory type was claimed by two processors. Fatal at setup time."""

    code = "DUPLICATE_PROCESSOR"
    default_message = "Processor already registered for memory type"
    recoverable = False


class InferenceError(InsightError):
    """The inference endpoint failed, timed out or returned garbage."""

    code = "INFERENCE_ERROR"
    default_message = "Inference request failed"
    recoverable = True


class InsightValidationError(InsightError):
    """A candidate insight failed a quality check.

    Raised inside the quality gate only; the gate converts it into a
    rejection so it never escapes the pipeline.
    """

    code = "INSIGHT_VALIDATION"
    default_message = "Candidate insight rejected"

    def __init__(self, reason: str, message: str | None = None, **kwargs) -> None:
        self.reason = reason
        super().__init__(message or reason, **kwargs)


class PermanentFailureError(InsightError):
    """A memory record exhausted its retry attempts."""

    code = "PERMANENT_FAILURE"
    default_message = "Memory record failed permanently"
    recoverable = False


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(MinimeError):
    """Raised when configuration is invalid or cannot be loaded."""

    code = "CONFIGURATION_ERROR"
    default_message = "Invalid configuration"
    recoverable = False


__all__ = [
    "MinimeError",
    "SchedulerError",
    "DuplicateJobError",
    "JobNotFoundError",
    "InsightError",
    "NoProcessorError",
    "DuplicateProcessorError",
    "InferenceError",
    "InsightValidationError",
    "PermanentFailureError",
    "ConfigurationError",
    "format_error_for_user",
    "get_recovery_suggestion",
    "get_user_message",
]
