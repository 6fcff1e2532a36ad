"""
Session status classification.

Maps the raw session state strings emitted by the Jules API onto three
semantic statuses. The API has emitted both lowerCamel and UPPER_SNAKE
spellings over time, so both are listed.
"""

from enum import Enum
from typing import Optional


class SessionStatus(str, Enum):
    """Semantic status of a session."""

    BUSY = "busy"
    STABLE = "stable"
    FAILED = "failed"


BUSY_STATES = frozenset(
    {
        "queued",
        "QUEUED",
        "planning",
        "PLANNING",
        "inProgress",
        "IN_PROGRESS",
        "in_progress",
    }
)
FAILED_STATES = frozenset({"failed", "FAILED"})
TERMINAL_STATES = frozenset({"completed", "failed", "cancelled", "canceled"})

STATE_DESCRIPTIONS: dict[str, str] = {
    "unspecified": "Unknown state",
    "queued": "Queued and waiting to start",
    "planning": "Jules is planning",
    "awaitingplanapproval": "Waiting for plan approval",
    "awaiting_plan_approval": "Waiting for plan approval",
    "awaitinguserfeedback": "Waiting for your input",
    "awaiting_user_feedback": "Waiting for your input",
    "inprogress": "Jules is actively working on this task",
    "in_progress": "Jules is actively working on this task",
    "paused": "Session is paused",
    "completed": "Task completed successfully",
    "failed": "Task failed - check activities for error details",
    "cancelled": "Task was cancelled",
    "canceled": "Task was cancelled",
}


def classify(state: Optional[str]) -> SessionStatus:
    """
    Classify a raw session state.

    Failed wins over busy if a state is somehow in both sets. Anything not
    recognized is treated as stable.

    Args:
        state: Raw state string from the API

    Returns:
        SessionStatus for the state
    """
    if state in FAILED_STATES:
        return SessionStatus.FAILED
    if state in BUSY_STATES:
        return SessionStatus.BUSY
    return SessionStatus.STABLE


def is_busy(state: Optional[str]) -> bool:
    return classify(state) is SessionStatus.BUSY


def is_terminal_state(state: Optional[str]) -> bool:
    """True once a session can no longer make progress on its own."""
    if not state:
        return False
    return state.lower() in TERMINAL_STATES


def describe_state(state: Optional[str]) -> str:
    if not state:
        return STATE_DESCRIPTIONS["unspecified"]
    return STATE_DESCRIPTIONS.get(state.lower(), "Unknown state")
