"""Tests for the error hierarchy and operator messages."""

from __future__ import annotations

import pytest

from minime.errors import (
    ConfigurationError,
    InferenceError,
    InsightValidationError,
    JobNotFoundError,
    MinimeError,
    PermanentFailureError,
    format_error_for_user,
)


def test_job_not_found_is_also_key_error() -> None:
    with pytest.raises(KeyError):
        raise JobNotFoundError("Job nightly not found", details={"job_id": "nightly"})

    assert str(JobNotFoundError("Job nightly not found")) == "Job nightly not found"


def test_recoverability_flags() -> None:
    assert InferenceError().recoverable is True
    assert PermanentFailureError().recoverable is False
    assert ConfigurationError().recoverable is False


def test_to_dict() -> None:
    error = InferenceError("timed out", details={"memory_id": "m1"})

    assert error.to_dict() == {
        "code": "INFERENCE_ERROR",
        "message": "timed out",
        "user_message": "The inference endpoint did not return a usable answer.",
        "recoverable": True,
        "details": {"memory_id": "m1"},
    }


def test_validation_error_carries_reason() -> None:
    error = InsightValidationError("below_min_confidence", "0.10 < 0.30")

    assert error.reason == "below_min_confidence"
    assert error.message == "0.10 < 0.30"
    assert isinstance(error, MinimeError)


def test_format_error_hides_content() -> None:
    error = InferenceError(details={"memory_id": "m1", "content": "private notes"})

    text = format_error_for_user(error)

    assert text.startswith("Error [INFERENCE_ERROR]")
    assert "Suggestion: Make sure Ollama is running" in text
    assert "memory_id: m1" in text
    assert "private notes" not in text


def test_format_error_accepts_foreign_exceptions() -> None:
    assert "unexpected" in format_error_for_user(RuntimeError("boom"))
