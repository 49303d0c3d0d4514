"""Operator-facing error messages for minime.

Background jobs have no end-user error path; these strings surface only in
CLI output and logs.
"""

from __future__ import annotations

from typing import Any


# =============================================================================
# Error Message Catalog
# =============================================================================

ERROR_MESSAGES: dict[str, str] = {
    # Scheduler errors
    "SCHEDULER_ERROR": "The job scheduler encountered an issue.",
    "DUPLICATE_JOB": "A job with this id is already registered.",
    "JOB_NOT_FOUND": "No job is registered under this id.",
    # Insight errors
    "INSIGHT_ERROR": "Insight processing failed for a memory.",
    "NO_PROCESSOR": "No insight processor handles this memory type.",
    "DUPLICATE_PROCESSOR": "Two processors claim the same memory type.",
    "INFERENCE_ERROR": "The inference endpoint did not return a usable answer.",
    "INSIGHT_VALIDATION": "A candidate insight did not pass the quality gate.",
    "PERMANENT_FAILURE": "A memory failed too many times and will not be retried.",
    # Configuration errors
    "CONFIGURATION_ERROR": "The configuration file is invalid.",
    # Fallback
    "MINIME_ERROR": "An unexpected error occurred.",
    "UNKNOWN_ERROR": "An unexpected error occurred.",
}

RECOVERY_SUGGESTIONS: dict[str, str] = {
    "SCHEDULER_ERROR": "Check the scheduler logs for the failing job.",
    "DUPLICATE_JOB": "Register each job id exactly once at startup.",
    "JOB_NOT_FOUND": "List registered jobs with 'minime jobs run --seconds 0'.",
    "INSIGHT_ERROR": "The memory will be retried on the next batch.",
    "NO_PROCESSOR": "Register a processor for the memory type or configure a fallback.",
    "DUPLICATE_PROCESSOR": "Give each memory type exactly one processor.",
    "INFERENCE_ERROR": "Make sure Ollama is running and the model is pulled.",
    "INSIGHT_VALIDATION": "Lower min_confidence_score if too many insights are rejected.",
    "PERMANENT_FAILURE": "Reset the memory status to 'pending' to retry it.",
    "CONFIGURATION_ERROR": "Run 'minime config validate' to see each invalid field.",
    "MINIME_ERROR": "Check the logs for details.",
    "UNKNOWN_ERROR": "Check the logs for details.",
}


# =============================================================================
# Helper Functions
# =============================================================================


def _error_code(error: Any) -> str:
    if hasattr(error, "code"):
        return error.code
    if isinstance(error, str):
        return error
    return type(error).__name__.upper()


def get_user_message(error: Any) -> str:
    """Get operator-friendly message for an error.

    Args:
        error: The error (can be Exception or error code string)

    Returns:
        Operator-friendly error message
    """
    return ERROR_MESSAGES.get(_error_code(error), ERROR_MESSAGES["UNKNOWN_ERROR"])


def get_recovery_suggestion(error: Any) -> str:
    """Get recovery suggestion for an error."""
    return RECOVERY_SUGGESTIONS.get(
        _error_code(error), RECOVERY_SUGGESTIONS["UNKNOWN_ERROR"]
    )


def format_error_for_user(error: Any) -> str:
    """Format a complete error message with recovery suggestion.

    Args:
        error: The error to format

    Returns:
        CLI-ready error text
    """
    lines = [
        f"Error [{_error_code(error)}]: {get_user_message(error)}",
        "",
        f"Suggestion: {get_recovery_suggestion(error)}",
    ]

    details = getattr(error, "details", None)
    if details:
        lines.append("")
        lines.append("Details:")
        for key, value in details.items():
            # Memory content never leaves the process
            if key not in ("content", "prompt"):
                lines.append(f"  {key}: {value}")

    return "\n".join(lines)
