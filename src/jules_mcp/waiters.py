"""
Milestone waiters.

Block (asynchronously) until a session reaches a milestone: a generated plan
or a terminal state. Both are thin layers over ``polling.poll``.
"""

import logging
from typing import Optional

from jules_mcp.activity_log import latest_of_type
from jules_mcp.client import JulesClient
from jules_mcp.config import Settings
from jules_mcp.models import Activity, ActivityType, Session
from jules_mcp.polling import PollResult, poll
from jules_mcp.status import is_terminal_state

logger = logging.getLogger(__name__)

PLAN_WAIT_DEFAULT_MS = 300_000
COMPLETION_WAIT_DEFAULT_MS = 600_000


def resolve_polling_interval(client: Optional[JulesClient] = None) -> int:
    """Interval from the client config, else from JULES_POLL_INTERVAL."""
    if client is not None:
        return client.config.poll_interval_ms
    return Settings().poll_interval_ms


def resolve_max_duration_ms(default_ms: int) -> int:
    """JULES_MAX_POLL_DURATION if set, read fresh on every call."""
    override = Settings().jules_max_poll_duration
    return override if override is not None else default_ms


async def wait_for_plan(
    client: JulesClient,
    session_id: str,
    interval_ms: Optional[int] = None,
    max_duration_ms: Optional[int] = None,
) -> PollResult[Optional[Activity]]:
    """
    Poll until the session has a generated plan.

    Each attempt refreshes the full activity history and looks for the newest
    planGenerated activity. ``value`` is that activity, or None on timeout.
    """
    if interval_ms is None:
        interval_ms = resolve_polling_interval(client)
    if max_duration_ms is None:
        max_duration_ms = resolve_max_duration_ms(PLAN_WAIT_DEFAULT_MS)

    async def fetch_latest_plan() -> Optional[Activity]:
        activities = await client.fetch_activities(session_id)
        return latest_of_type(activities, ActivityType.PLAN_GENERATED)

    logger.info(f"Waiting for plan on session {session_id} (max {max_duration_ms}ms)")
    return await poll(
        fetch_latest_plan,
        lambda activity: activity is not None,
        interval_ms=interval_ms,
        max_duration_ms=max_duration_ms,
    )


async def wait_for_completion(
    client: JulesClient,
    session_id: str,
    interval_ms: Optional[int] = None,
    max_duration_ms: Optional[int] = None,
) -> PollResult[Optional[Session]]:
    """
    Poll until the session is completed, failed or cancelled.

    ``value`` is the last session snapshot fetched, which is None only when
    no fetch succeeded.
    """
    if interval_ms is None:
        interval_ms = resolve_polling_interval(client)
    if max_duration_ms is None:
        max_duration_ms = resolve_max_duration_ms(COMPLETION_WAIT_DEFAULT_MS)

    async def fetch_session() -> Session:
        return await client.get_session(session_id)

    logger.info(
        f"Waiting for session {session_id} to finish (max {max_duration_ms}ms)"
    )
    return await poll(
        fetch_session,
        lambda session: is_terminal_state(session.state),
        interval_ms=interval_ms,
        max_duration_ms=max_duration_ms,
    )
