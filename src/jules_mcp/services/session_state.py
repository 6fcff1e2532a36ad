"""Session state: one snapshot merging session metadata and its activity log."""

import logging
from dataclasses import dataclass
from typing import Any, Optional, Sequence

from jules_mcp.activity_log import (
    LastActivity,
    LastAgentMessage,
    PendingPlan,
    reduce_activity_log,
)
from jules_mcp.client import JulesClient
from jules_mcp.exceptions import InputValidationError
from jules_mcp.models import Activity, Session
from jules_mcp.status import SessionStatus, classify

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PullRequestRef:
    url: str
    title: str


@dataclass(frozen=True)
class SessionStateResult:
    id: str
    status: SessionStatus
    url: str
    title: str
    prompt: Optional[str] = None
    pr: Optional[PullRequestRef] = None
    last_activity: Optional[LastActivity] = None
    last_agent_message: Optional[LastAgentMessage] = None
    pending_plan: Optional[PendingPlan] = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "status": self.status.value,
            "url": self.url,
            "title": self.title,
        }
        if self.prompt:
            result["prompt"] = self.prompt
        if self.pr is not None:
            result["pr"] = {"url": self.pr.url, "title": self.pr.title}
        if self.last_activity is not None:
            result["lastActivity"] = self.last_activity.to_dict()
        if self.last_agent_message is not None:
            result["lastAgentMessage"] = self.last_agent_message.to_dict()
        if self.pending_plan is not None:
            result["pendingPlan"] = self.pending_plan.to_dict()
        return result


def derive_session_state(
    session: Session, activities: Sequence[Activity]
) -> SessionStateResult:
    """
    Combine a session snapshot with its activity history.

    Args:
        session: Fresh session snapshot
        activities: Full activity history, in log order

    Returns:
        SessionStateResult with optional parts left as None when absent
    """
    view = reduce_activity_log(activities)
    pull_request = session.pull_request()
    return SessionStateResult(
        id=session.id,
        status=classify(session.state),
        url=session.url,
        title=session.title,
        prompt=session.prompt or None,
        pr=(
            PullRequestRef(url=pull_request.url, title=pull_request.title)
            if pull_request is not None
            else None
        ),
        last_activity=view.last_activity,
        last_agent_message=view.last_agent_message,
        pending_plan=view.pending_plan,
    )


async def get_session_state(client: JulesClient, session_id: str) -> SessionStateResult:
    if not session_id:
        raise InputValidationError("sessionId is required")

    activities = await client.fetch_activities(session_id)
    session = await client.get_session(session_id)
    return derive_session_state(session, activities)
