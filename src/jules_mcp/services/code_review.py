"""
Code review context.

Reconciles a session's changes into a per-file list and renders it in one of
several text formats for review.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Sequence

from jules_mcp.activity_log import count_by_type
from jules_mcp.changeset import ChangeSummary, ChangeType
from jules_mcp.client import JulesClient
from jules_mcp.exceptions import InputValidationError
from jules_mcp.models import Activity, ActivityType, Session, isoformat_utc
from jules_mcp.reconcile import FileChange, reconcile_changes
from jules_mcp.status import SessionStatus

logger = logging.getLogger(__name__)

CHANGE_ICONS = {
    ChangeType.CREATED: "🟢",
    ChangeType.MODIFIED: "🟡",
    ChangeType.DELETED: "🔴",
}


class ReviewFormat(str, Enum):
    SUMMARY = "summary"
    TREE = "tree"
    DETAILED = "detailed"
    MARKDOWN = "markdown"


class ReviewDetail(str, Enum):
    MINIMAL = "minimal"
    STANDARD = "standard"
    FULL = "full"


@dataclass(frozen=True)
class SessionInsights:
    completion_attempts: int = 0
    plan_regenerations: int = 0
    user_interventions: int = 0
    failed_command_count: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "completionAttempts": self.completion_attempts,
            "planRegenerations": self.plan_regenerations,
            "userInterventions": self.user_interventions,
            "failedCommandCount": self.failed_command_count,
        }


@dataclass
class CodeReviewResult:
    session_id: str
    title: str
    state: str
    status: SessionStatus
    url: str
    files: list[FileChange]
    summary: ChangeSummary
    formatted: str = ""
    pr: Optional[dict[str, str]] = None
    warning: Optional[str] = None
    has_stable_history: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    duration_ms: Optional[int] = None
    insights: Optional[SessionInsights] = None
    activity_counts: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "sessionId": self.session_id,
            "title": self.title,
            "state": self.state,
            "status": self.status.value,
            "url": self.url,
            "files": [f.to_dict() for f in self.files],
            "summary": self.summary.to_dict(),
            "formatted": self.formatted,
        }
        if self.pr:
            result["pr"] = self.pr
        if self.warning:
            result["warning"] = self.warning
        if self.has_stable_history:
            result["hasStableHistory"] = True
        if self.created_at is not None:
            result["createdAt"] = isoformat_utc(self.created_at)
        if self.updated_at is not None:
            result["updatedAt"] = isoformat_utc(self.updated_at)
        if self.duration_ms is not None:
            result["durationMs"] = self.duration_ms
        if self.insights is not None:
            result["insights"] = self.insights.to_dict()
        if self.activity_counts:
            result["activityCounts"] = self.activity_counts
        return result


def compute_insights(activities: Sequence[Activity]) -> SessionInsights:
    counts = count_by_type(activities)
    failed_commands = sum(
        1
        for activity in activities
        for output in activity.bash_output_artifacts()
        if output.exit_code not in (0, None)
    )
    return SessionInsights(
        completion_attempts=counts.get(ActivityType.SESSION_COMPLETED.value, 0),
        plan_regenerations=counts.get(ActivityType.PLAN_GENERATED.value, 0),
        user_interventions=counts.get(ActivityType.USER_MESSAGED.value, 0),
        failed_command_count=failed_commands,
    )


# Formatters


def format_as_tree(files: Sequence[FileChange]) -> str:
    """Group files by directory; deleted files carry no line stats."""
    by_dir: dict[str, list[FileChange]] = defaultdict(list)
    for f in files:
        directory, _, _ = f.path.rpartition("/")
        by_dir[directory or "."].append(f)

    lines: list[str] = []
    for directory in sorted(by_dir):
        lines.append(f"{directory}/")
        for f in by_dir[directory]:
            basename = f.path.rsplit("/", 1)[-1]
            stats = "" if f.change_type == ChangeType.DELETED else f" (+{f.additions}/-{f.deletions})"
            lines.append(f"  {CHANGE_ICONS[f.change_type]} {basename}{stats}")
    return "\n".join(lines)


def format_detailed(files: Sequence[FileChange]) -> str:
    return "\n".join(
        f"{CHANGE_ICONS[f.change_type]} {f.path} (+{f.additions}/-{f.deletions}) "
        f"[{len(f.activity_ids)} activities]"
        for f in files
    )


def format_summary(files: Sequence[FileChange]) -> str:
    additions = sum(f.additions for f in files)
    deletions = sum(f.deletions for f in files)
    return f"{len(files)} files changed (+{additions}/-{deletions})"


def format_as_markdown(result: CodeReviewResult) -> str:
    lines = [
        "# Code Review Summary",
        "",
        f"**Session:** {result.title} ({result.session_id})",
        f"**Status:** {result.status.value.upper()} ({result.state})",
        f"**URL:** {result.url}",
    ]
    if result.pr:
        lines.append(f"**PR:** {result.pr['title']} - {result.pr['url']}")
    lines.append("")

    if result.warning:
        lines.extend([f"> ⚠️ {result.warning}", ""])

    s = result.summary
    lines.append("## Summary")
    lines.append(
        f"- Files: {s.total_files} (created: {s.created}, "
        f"modified: {s.modified}, deleted: {s.deleted})"
    )
    if result.created_at and result.updated_at:
        lines.append(f"- Created: {isoformat_utc(result.created_at)}")
        lines.append(f"- Updated: {isoformat_utc(result.updated_at)}")
        if result.duration_ms is not None:
            lines.append(f"- Duration: {round(result.duration_ms / 1000)}s")
    if result.insights:
        lines.append(f"- Completion attempts: {result.insights.completion_attempts}")
        lines.append(f"- Plan regenerations: {result.insights.plan_regenerations}")
        lines.append(f"- User interventions: {result.insights.user_interventions}")
        lines.append(f"- Failed commands: {result.insights.failed_command_count}")
    lines.append("")

    if result.files:
        lines.extend(["## Files", ""])
        for f in result.files:
            lines.append(
                f"- {CHANGE_ICONS[f.change_type]} {f.path} (+{f.additions}/-{f.deletions})"
            )

    return "\n".join(lines)


def build_code_review(
    session: Session,
    activities: Sequence[Activity],
    format: ReviewFormat = ReviewFormat.SUMMARY,
    change_filter: Optional[str] = None,
    detail: ReviewDetail = ReviewDetail.STANDARD,
    activity_id: Optional[str] = None,
) -> CodeReviewResult:
    """
    Reconcile and render a session's changes.

    Args:
        session: Fresh session snapshot
        activities: Full activity history, in log order
        format: Rendering of the ``formatted`` field
        change_filter: created / modified / deleted / all
        detail: minimal omits timing and insights; full adds activity counts
        activity_id: Restrict to one activity's change sets

    Returns:
        CodeReviewResult
    """
    format = ReviewFormat(format)
    detail = ReviewDetail(detail)
    reconciled = reconcile_changes(
        session, activities, activity_id=activity_id, change_filter=change_filter
    )
    pull_request = session.pull_request()

    result = CodeReviewResult(
        session_id=session.id,
        title=session.title,
        state=session.state,
        status=reconciled.status,
        url=session.url,
        files=list(reconciled.files),
        summary=reconciled.summary,
        pr={"url": pull_request.url, "title": pull_request.title} if pull_request else None,
        warning=reconciled.warning,
        has_stable_history=reconciled.mid_revision,
    )

    if detail is not ReviewDetail.MINIMAL:
        result.created_at = session.create_time
        result.updated_at = session.update_time
        result.duration_ms = session.duration_ms
        result.insights = compute_insights(activities)
    if detail is ReviewDetail.FULL:
        result.activity_counts = count_by_type(activities)

    if format is ReviewFormat.TREE:
        result.formatted = format_as_tree(result.files)
    elif format is ReviewFormat.DETAILED:
        result.formatted = format_detailed(result.files)
    elif format is ReviewFormat.MARKDOWN:
        result.formatted = format_as_markdown(result)
    else:
        result.formatted = format_summary(result.files)

    return result


async def code_review(
    client: JulesClient,
    session_id: str,
    format: ReviewFormat = ReviewFormat.SUMMARY,
    change_filter: Optional[str] = None,
    detail: ReviewDetail = ReviewDetail.STANDARD,
    activity_id: Optional[str] = None,
) -> CodeReviewResult:
    if not session_id:
        raise InputValidationError("sessionId is required")

    activities = await client.fetch_activities(session_id)
    session = await client.get_session(session_id)
    logger.debug(f"Reviewing {session_id}: {len(activities)} activities, state {session.state}")
    return build_code_review(
        session,
        activities,
        format=format,
        change_filter=change_filter,
        detail=detail,
        activity_id=activity_id,
    )
