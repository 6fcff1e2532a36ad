"""
Session lifecycle operations.

Creating, listing and talking to sessions, plus the composite
"create then wait" flows used by the orchestration tools.
"""

import logging
from enum import Enum
from typing import Any, Optional

from jules_mcp.activity_log import (
    count_by_type,
    find_last_activity,
    latest_of_type,
    last_agent_message,
    newest_first,
)
from jules_mcp.client import JulesClient, SessionPage
from jules_mcp.exceptions import InputValidationError, JulesError
from jules_mcp.formatting import (
    failure,
    format_activity,
    format_session,
    normalize_github_repo,
    parse_page_size,
    success,
    suggested_next_steps,
)
from jules_mcp.models import Activity, ActivityType, PlanGenerated, Session, SessionFailed
from jules_mcp.polling import PollReason, poll
from jules_mcp.retry import retry_fixed
from jules_mcp.waiters import (
    COMPLETION_WAIT_DEFAULT_MS,
    resolve_max_duration_ms,
    resolve_polling_interval,
    wait_for_completion,
)

logger = logging.getLogger(__name__)

DEFAULT_BRANCH = "main"
DEFAULT_LIST_PAGE_SIZE = 10
OVERVIEW_PAGE_SIZE = 25
ASK_REPLY_TIMEOUT_MS = 300_000
ASK_FETCH_ATTEMPTS = 3
ASK_FETCH_DELAY_MS = 1000

AUTOMATION_MODES = frozenset(
    {"AUTOMATION_MODE_UNSPECIFIED", "AUTO_CREATE_PR", "AUTO_CREATE_DRAFT_PR"}
)


class InteractAction(str, Enum):
    APPROVE = "approve"
    SEND = "send"
    ASK = "ask"


class PlanStatus(str, Enum):
    NOT_GENERATED = "not_generated"
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    REJECTED = "rejected"


def resolve_automation_mode(
    auto_pr: Optional[bool] = None, automation_mode: Optional[str] = None
) -> Optional[str]:
    """An explicit automation mode wins; otherwise ``auto_pr`` maps to AUTO_CREATE_PR."""
    if automation_mode:
        if automation_mode not in AUTOMATION_MODES:
            raise InputValidationError(f"Invalid automationMode: {automation_mode}")
        return automation_mode
    return "AUTO_CREATE_PR" if auto_pr else None


async def create_session(
    client: JulesClient,
    prompt: str,
    repo: Optional[str] = None,
    branch: Optional[str] = None,
    title: Optional[str] = None,
    require_plan_approval: bool = False,
    auto_pr: bool = True,
    automation_mode: Optional[str] = None,
) -> Session:
    """
    Start a new session.

    Args:
        client: Jules API client
        prompt: Task description
        repo: ``owner/repo`` (``sources/github/`` and ``github/`` prefixes accepted)
        branch: Starting branch, ``main`` when a repo is given without one
        title: Optional session title
        require_plan_approval: Pause for plan approval before executing
        auto_pr: Open a pull request when done (ignored if automation_mode is set)
        automation_mode: Explicit API automation mode

    Returns:
        The created Session
    """
    if not prompt:
        raise InputValidationError("Prompt is required")

    normalized_repo = normalize_github_repo(repo) if repo else None
    return await client.create_session(
        prompt=prompt,
        repo=normalized_repo,
        branch=(branch or DEFAULT_BRANCH) if normalized_repo else None,
        title=title,
        require_plan_approval=require_plan_approval,
        automation_mode=resolve_automation_mode(auto_pr, automation_mode),
    )


async def list_sessions(
    client: JulesClient,
    page_size: Optional[int] = None,
    page_token: Optional[str] = None,
) -> SessionPage:
    return await client.list_sessions(
        page_size=page_size or DEFAULT_LIST_PAGE_SIZE, page_token=page_token
    )


async def start_session(
    client: JulesClient,
    prompt: str,
    repo: str,
    branch: Optional[str] = None,
    title: Optional[str] = None,
    automation_mode: Optional[str] = None,
    require_plan_approval: bool = False,
) -> dict[str, Any]:
    """
    Create a repo-backed session and report it as a tool envelope.

    The created session is fetched again so the envelope carries its
    current state rather than the creation response.
    """
    if not prompt:
        raise InputValidationError("Prompt is required")
    if not repo:
        raise InputValidationError("Repo is required")

    created = await create_session(
        client,
        prompt=prompt,
        repo=repo,
        branch=branch,
        title=title,
        require_plan_approval=require_plan_approval,
        auto_pr=False,
        automation_mode=automation_mode,
    )
    session = await client.get_session(created.id)
    return success(
        f'Session created successfully. Jules is now working on: "{prompt}"',
        format_session(session),
        suggested_next_steps(session),
    )


async def list_sessions_overview(
    client: JulesClient,
    page_size: Optional[int] = None,
    page_token: Optional[str] = None,
) -> dict[str, Any]:
    """One page of sessions with a count per raw state."""
    page = await client.list_sessions(
        page_size=parse_page_size(page_size, OVERVIEW_PAGE_SIZE), page_token=page_token
    )
    state_counts: dict[str, int] = {}
    for session in page.sessions:
        state = session.state or "unknown"
        state_counts[state] = state_counts.get(state, 0) + 1

    return success(
        f"Found {len(page.sessions)} sessions",
        {
            "sessions": [format_session(s) for s in page.sessions],
            "summary": state_counts,
            "hasMore": bool(page.next_page_token),
            "nextPageToken": page.next_page_token,
        },
        ["Use jules_get_session with a session ID for more details"],
    )


async def _ask(
    client: JulesClient,
    session_id: str,
    message: str,
    timeout_ms: int,
    interval_ms: Optional[int],
) -> str:
    before = await client.fetch_activities(session_id)
    baseline = last_agent_message(before)
    await client.send_message(session_id, message)

    async def fetch_activities() -> list[Activity]:
        return await retry_fixed(
            lambda: client.fetch_activities(session_id),
            attempts=ASK_FETCH_ATTEMPTS,
            delay_ms=ASK_FETCH_DELAY_MS,
        )

    def has_new_reply(activities: list[Activity]) -> bool:
        reply = last_agent_message(activities)
        if reply is None:
            return False
        if baseline is None:
            return True
        return reply.activity_id != baseline.activity_id and reply.timestamp >= baseline.timestamp

    result = await poll(
        fetch_activities,
        has_new_reply,
        interval_ms=interval_ms if interval_ms is not None else resolve_polling_interval(client),
        max_duration_ms=timeout_ms,
    )
    if result.reason is PollReason.ERROR:
        raise JulesError(f"Failed while waiting for a reply: {result.error}")
    if not result.success:
        raise JulesError(f"Timed out waiting for a reply after {result.elapsed_ms}ms")
    return last_agent_message(result.value).content


async def interact(
    client: JulesClient,
    session_id: str,
    action: InteractAction,
    message: Optional[str] = None,
    reply_timeout_ms: int = ASK_REPLY_TIMEOUT_MS,
    interval_ms: Optional[int] = None,
) -> dict[str, Any]:
    """
    Approve a plan, send a message, or ask and wait for the agent's reply.

    Returns:
        ``{"success": True, "message": ...}`` or, for ask,
        ``{"success": True, "reply": ...}``
    """
    if not session_id:
        raise InputValidationError("sessionId is required")
    try:
        action = InteractAction(action)
    except ValueError:
        raise InputValidationError(f"Invalid action: {action}") from None

    if action is InteractAction.APPROVE:
        await client.approve_plan(session_id)
        return {"success": True, "message": "Plan approved."}

    if not message:
        raise InputValidationError(f"Message is required for '{action.value}' action")

    if action is InteractAction.SEND:
        await client.send_message(session_id, message)
        return {"success": True, "message": "Message sent."}

    reply = await _ask(client, session_id, message, reply_timeout_ms, interval_ms)
    return {"success": True, "reply": reply}


def plan_status(activities: list[Activity]) -> tuple[Optional[PlanGenerated], PlanStatus]:
    """
    Latest plan and where it stands.

    Only approvals or rejections logged strictly after the latest plan count;
    an older rejection belongs to a plan that has since been replaced.
    """
    plan = latest_of_type(activities, ActivityType.PLAN_GENERATED)
    if plan is None:
        return None, PlanStatus.NOT_GENERATED
    for activity in newest_first(activities):
        if activity.time_key <= plan.time_key:
            break
        if activity.type == ActivityType.PLAN_REJECTED:
            return plan, PlanStatus.REJECTED
        if activity.type == ActivityType.PLAN_APPROVED:
            return plan, PlanStatus.APPROVED
    return plan, PlanStatus.PENDING_APPROVAL


async def get_session_plan(client: JulesClient, session_id: str) -> dict[str, Any]:
    if not session_id:
        raise InputValidationError("sessionId is required")

    activities = await client.fetch_activities(session_id)
    plan, status = plan_status(activities)
    if plan is None:
        return success(
            f"No plan found for session {session_id}",
            {"sessionId": session_id, "plan": None},
            ["Jules may still be analyzing the codebase - try again in a moment"],
        )

    next_steps = None
    if status is PlanStatus.PENDING_APPROVAL:
        next_steps = [
            "Review the plan carefully",
            "Use jules_approve_plan to approve and start execution",
            "Use jules_reject_plan with feedback to request changes",
        ]
    return success(
        f"Found plan for session {session_id} (status: {status.value})",
        {"sessionId": session_id, "status": status.value, "plan": format_activity(plan)},
        next_steps,
    )


async def get_session_summary(client: JulesClient, session_id: str) -> dict[str, Any]:
    """Status, plan, latest progress, error and activity counts in one call."""
    if not session_id:
        raise InputValidationError("sessionId is required")

    session = await client.get_session(session_id)
    activities = await client.fetch_activities(session_id)

    plan, status = plan_status(activities)
    progress = latest_of_type(activities, ActivityType.PROGRESS_UPDATED)
    error = latest_of_type(activities, ActivityType.SESSION_FAILED)
    latest = find_last_activity(activities)

    summary = {
        "session": format_session(session),
        "activitySummary": {
            "total": len(activities),
            "byType": count_by_type(activities),
        },
        "plan": format_activity(plan) if plan else None,
        "planStatus": status.value,
        "latestProgress": format_activity(progress) if progress else None,
        "error": format_activity(error) if error else None,
        "latestActivity": format_activity(latest) if latest else None,
    }
    return success(
        f"Session {session_id} summary: {session.state or 'unknown state'}",
        summary,
        suggested_next_steps(session),
    )


async def wait_for_session(
    client: JulesClient,
    session_id: str,
    timeout_ms: Optional[int] = None,
    interval_ms: Optional[int] = None,
) -> dict[str, Any]:
    """
    Wait for a session to finish and report the outcome as a tool envelope.

    A timeout is not a failure: the last snapshot is returned with
    ``reason=timeout``. A fetch error is, even after earlier good snapshots.
    """
    if not session_id:
        raise InputValidationError("Session ID is required")

    if timeout_ms is None:
        timeout_ms = resolve_max_duration_ms(COMPLETION_WAIT_DEFAULT_MS)
    result = await wait_for_completion(
        client, session_id, interval_ms=interval_ms, max_duration_ms=timeout_ms
    )
    if result.value is None:
        return failure(
            result.error or "Failed to fetch session state", "WAIT_FOR_COMPLETION_ERROR"
        )

    session = result.value
    if result.reason is PollReason.ERROR:
        return failure(
            result.error or "Failed to fetch session state",
            "WAIT_FOR_COMPLETION_ERROR",
            {"session": format_session(session), "pollStats": result.stats()},
        )
    if result.success:
        return success(
            f"Session {session_id} completed with state: {session.state}",
            {"session": format_session(session), "pollStats": result.stats()},
            suggested_next_steps(session),
        )
    return success(
        f"Timed out waiting for session {session_id} "
        f"(current state: {session.state or 'unknown'})",
        {
            "session": format_session(session),
            "reason": result.reason.value,
            "pollStats": result.stats(),
        },
        ["The session is still running - use jules_get_session to check later"],
    )


async def create_and_wait(
    client: JulesClient,
    prompt: str,
    repo: str,
    branch: Optional[str] = None,
    title: Optional[str] = None,
    automation_mode: Optional[str] = None,
    require_plan_approval: bool = False,
    wait: bool = True,
    timeout_ms: Optional[int] = None,
    interval_ms: Optional[int] = None,
) -> dict[str, Any]:
    """
    Create a session and, unless ``wait`` is False, wait for it to finish.

    Returns:
        Tool envelope describing the created (and possibly finished) session
    """
    if not prompt or not repo:
        raise InputValidationError("Prompt and repo are required")

    created = await create_session(
        client,
        prompt=prompt,
        repo=repo,
        branch=branch,
        title=title,
        require_plan_approval=require_plan_approval,
        auto_pr=False,
        automation_mode=automation_mode,
    )

    if not wait:
        session = await client.get_session(created.id)
        return success(
            f"Session created: {created.id}. Not waiting for completion.",
            {"session": format_session(session), "waited": False},
            suggested_next_steps(session),
        )

    if timeout_ms is None:
        timeout_ms = resolve_max_duration_ms(COMPLETION_WAIT_DEFAULT_MS)
    result = await wait_for_completion(
        client, created.id, interval_ms=interval_ms, max_duration_ms=timeout_ms
    )
    if result.value is None:
        return failure(result.error or "Failed to fetch session state", "CREATE_AND_WAIT_ERROR")

    session = result.value
    if result.reason is PollReason.ERROR:
        return failure(
            result.error or "Failed to fetch session state",
            "CREATE_AND_WAIT_ERROR",
            {"session": format_session(session), "pollStats": result.stats()},
        )
    if result.success:
        return success(
            f"Session {created.id} completed with state: {session.state}",
            {"session": format_session(session), "waited": True, "pollStats": result.stats()},
            suggested_next_steps(session),
        )
    return success(
        f"Session {created.id} created but timed out waiting (current state: {session.state})",
        {
            "session": format_session(session),
            "waited": True,
            "timedOut": True,
            "reason": result.reason.value,
            "pollStats": result.stats(),
        },
        ["The session is still running - use jules_get_session to check later"],
    )


async def quick_task(
    client: JulesClient,
    prompt: str,
    repo: str,
    branch: Optional[str] = None,
    create_pr: bool = True,
    interval_ms: Optional[int] = None,
    timeout_ms: Optional[int] = None,
) -> dict[str, Any]:
    """Fire-and-wait with defaults: create a session, wait, report the outcome."""
    if not prompt or not repo:
        raise InputValidationError("Prompt and repo are required")

    created = await create_session(
        client, prompt=prompt, repo=repo, branch=branch, auto_pr=create_pr
    )
    if timeout_ms is None:
        timeout_ms = resolve_max_duration_ms(COMPLETION_WAIT_DEFAULT_MS)
    result = await wait_for_completion(
        client, created.id, interval_ms=interval_ms, max_duration_ms=timeout_ms
    )
    if result.value is None:
        return failure(result.error or "Failed to fetch session state", "QUICK_TASK_ERROR")

    session = result.value
    formatted = format_session(session)
    if result.reason is PollReason.ERROR:
        return failure(
            result.error or "Failed to fetch session state",
            "QUICK_TASK_ERROR",
            {"session": formatted, "elapsedMs": result.elapsed_ms},
        )
    state = (session.state or "").lower()

    if result.success and state == "completed":
        pull_request = session.pull_request()
        if pull_request is not None:
            return success(
                f"Task completed! Pull request created: {pull_request.url}",
                {
                    "session": formatted,
                    "pullRequest": pull_request.model_dump(by_alias=True, exclude_none=True),
                    "elapsedMs": result.elapsed_ms,
                },
                ["Review and merge the pull request"],
            )
        return success(
            "Task completed! Changes are ready.",
            {"session": formatted, "elapsedMs": result.elapsed_ms},
            ["Check the repository for changes"],
        )

    if state == "failed":
        activities = await client.fetch_activities(created.id)
        error_activity = latest_of_type(activities, ActivityType.SESSION_FAILED)
        reason = (
            error_activity.reason
            if isinstance(error_activity, SessionFailed) and error_activity.reason
            else "Unknown error"
        )
        return failure(
            f"Task failed: {reason}",
            "TASK_FAILED",
            {
                "session": formatted,
                "errorActivity": format_activity(error_activity) if error_activity else None,
            },
        )

    return success(
        f"Task still in progress (state: {session.state})",
        {
            "session": formatted,
            "timedOut": result.reason is PollReason.TIMEOUT,
            "elapsedMs": result.elapsed_ms,
        },
        ["Use jules_get_session to check status later"],
    )
