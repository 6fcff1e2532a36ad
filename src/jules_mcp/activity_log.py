"""
Activity log reduction.

Derives the current view of a session from its append-only activity history:
what happened last, what the agent last said, whether a plan is waiting for
approval, and whether the session was ever stable before.

All functions accept the full activity list in log order. An empty list is
valid input and yields "no data" results.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Sequence

from jules_mcp.models import (
    Activity,
    ActivityType,
    AgentMessaged,
    PlanGenerated,
    isoformat_utc,
)

logger = logging.getLogger(__name__)

STABLE_HISTORY_TYPES = frozenset(
    {ActivityType.SESSION_COMPLETED, ActivityType.PLAN_APPROVED}
)


@dataclass(frozen=True)
class LastActivity:
    activity_id: str
    type: str
    timestamp: datetime

    def to_dict(self) -> dict:
        return {
            "activityId": self.activity_id,
            "type": self.type,
            "timestamp": isoformat_utc(self.timestamp),
        }


@dataclass(frozen=True)
class LastAgentMessage:
    activity_id: str
    content: str
    timestamp: datetime

    def to_dict(self) -> dict:
        return {
            "activityId": self.activity_id,
            "content": self.content,
            "timestamp": isoformat_utc(self.timestamp),
        }


@dataclass(frozen=True)
class PlanStepSummary:
    title: str
    description: Optional[str] = None

    def to_dict(self) -> dict:
        d = {"title": self.title}
        if self.description:
            d["description"] = self.description
        return d


@dataclass(frozen=True)
class PendingPlan:
    activity_id: str
    plan_id: str
    steps: tuple[PlanStepSummary, ...] = ()

    def to_dict(self) -> dict:
        return {
            "activityId": self.activity_id,
            "planId": self.plan_id,
            "steps": [s.to_dict() for s in self.steps],
        }


@dataclass(frozen=True)
class ActivityLogView:
    """Everything the reducer derives from one activity list."""

    last_activity: Optional[LastActivity] = None
    last_agent_message: Optional[LastAgentMessage] = None
    pending_plan: Optional[PendingPlan] = None
    has_stable_history: bool = False
    counts: dict[str, int] = field(default_factory=dict)


def newest_first(activities: Sequence[Activity]) -> list[Activity]:
    """
    Sort activities newest first.

    Equal timestamps keep log order as the tie-breaker: the activity logged
    later counts as newer.
    """
    indexed = sorted(
        enumerate(activities),
        key=lambda pair: (pair[1].time_key, pair[0]),
        reverse=True,
    )
    return [activity for _, activity in indexed]


def latest_of_type(
    activities: Sequence[Activity], activity_type: ActivityType
) -> Optional[Activity]:
    for activity in newest_first(activities):
        if activity.type == activity_type:
            return activity
    return None


def find_last_activity(activities: Sequence[Activity]) -> Optional[Activity]:
    ordered = newest_first(activities)
    return ordered[0] if ordered else None


def last_activity(activities: Sequence[Activity]) -> Optional[LastActivity]:
    """The activity with the greatest creation time."""
    latest = find_last_activity(activities)
    if latest is None:
        return None
    return LastActivity(
        activity_id=latest.id,
        type=latest.type.value,
        timestamp=latest.create_time,
    )


def last_agent_message(activities: Sequence[Activity]) -> Optional[LastAgentMessage]:
    """The newest agent message that has content."""
    for activity in newest_first(activities):
        if isinstance(activity, AgentMessaged) and activity.message:
            return LastAgentMessage(
                activity_id=activity.id,
                content=activity.message,
                timestamp=activity.create_time,
            )
    return None


def pending_plan(activities: Sequence[Activity]) -> Optional[PendingPlan]:
    """
    The newest generated plan, unless an approval came strictly after it.

    Timestamps are compared down to the nanosecond. An approval with exactly
    the same timestamp as the plan does not count, so such a plan is still
    reported as pending.
    """
    ordered = newest_first(activities)
    plan_activity = next(
        (a for a in ordered if isinstance(a, PlanGenerated)),
        None,
    )
    if plan_activity is None:
        return None

    approved_later = any(
        a.type == ActivityType.PLAN_APPROVED
        and a.time_key > plan_activity.time_key
        for a in ordered
    )
    if approved_later:
        return None

    plan = plan_activity.plan
    if plan is None:
        logger.debug(f"Plan activity {plan_activity.id} has no plan payload")
        return None

    return PendingPlan(
        activity_id=plan_activity.id,
        plan_id=plan.id,
        steps=tuple(
            PlanStepSummary(title=step.title, description=step.description)
            for step in plan.steps
        ),
    )


def has_stable_history(activities: Sequence[Activity]) -> bool:
    """True if the session was ever completed or had a plan approved."""
    return any(a.type in STABLE_HISTORY_TYPES for a in activities)


def count_by_type(activities: Sequence[Activity]) -> dict[str, int]:
    counts: dict[str, int] = {}
    for activity in activities:
        counts[activity.type.value] = counts.get(activity.type.value, 0) + 1
    return counts


def reduce_activity_log(activities: Sequence[Activity]) -> ActivityLogView:
    return ActivityLogView(
        last_activity=last_activity(activities),
        last_agent_message=last_agent_message(activities),
        pending_plan=pending_plan(activities),
        has_stable_history=has_stable_history(activities),
        counts=count_by_type(activities),
    )
