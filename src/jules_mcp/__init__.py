"""
jules-mcp - MCP server for the Jules coding agent.

Exposes Jules sessions to MCP clients: session state, code review of
in-progress and finished work, diffs, command output, and create / wait
orchestration.

Usage:
    from jules_mcp import ClientConfig, JulesClient, derive_session_state

    async with JulesClient(ClientConfig.from_settings()) as client:
        session = await client.get_session("123")
        activities = await client.fetch_activities("123")
        state = derive_session_state(session, activities)
        print(state.status, state.pending_plan)
"""

from jules_mcp.client import JulesClient
from jules_mcp.config import ClientConfig, Settings
from jules_mcp.diff import extract_diff
from jules_mcp.exceptions import (
    InputValidationError,
    JulesApiError,
    JulesError,
    MissingApiKeyError,
    UnknownVariantError,
)
from jules_mcp.polling import PollReason, PollResult, poll
from jules_mcp.reconcile import reconcile_changes
from jules_mcp.services.session_state import derive_session_state
from jules_mcp.status import SessionStatus
from jules_mcp.waiters import wait_for_completion, wait_for_plan

__version__ = "0.1.0"

__all__ = [
    # Client
    "JulesClient",
    "ClientConfig",
    "Settings",
    # Core
    "derive_session_state",
    "reconcile_changes",
    "extract_diff",
    "wait_for_plan",
    "wait_for_completion",
    "poll",
    "PollResult",
    "PollReason",
    "SessionStatus",
    # Errors
    "JulesError",
    "InputValidationError",
    "UnknownVariantError",
    "MissingApiKeyError",
    "JulesApiError",
]
