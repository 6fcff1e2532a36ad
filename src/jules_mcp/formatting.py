"""
Presentation helpers for tool responses.

Builds the JSON-ready dicts returned by the MCP tools: the success/failure
envelope, and compact views of sessions, activities, plans and sources.
"""

from typing import Any, Optional

from jules_mcp.models import (
    Activity,
    AgentMessaged,
    Plan,
    PlanGenerated,
    PlanRejected,
    ProgressUpdated,
    Session,
    SessionFailed,
    Source,
    UserMessaged,
    isoformat_utc,
)
from jules_mcp.status import describe_state

MAX_PAGE_SIZE = 100
SUMMARY_MAX_CHARS = 200

ACTIVITY_TYPE_DESCRIPTIONS: dict[str, str] = {
    "agentMessaged": "Response from Jules",
    "userMessaged": "Message from you",
    "planGenerated": "Jules created a plan",
    "planApproved": "Plan was approved",
    "planRejected": "Plan was rejected",
    "progressUpdated": "Progress update",
    "sessionCompleted": "Work completed",
    "sessionFailed": "An error occurred",
    "changeSet": "Code changes",
    "bashOutput": "Command output",
    "media": "Media attachment",
}


# Envelope


def success(
    message: str,
    data: Any = None,
    next_steps: Optional[list[str]] = None,
) -> dict[str, Any]:
    result: dict[str, Any] = {"success": True, "message": message}
    if data is not None:
        result["data"] = data
    if next_steps:
        result["suggestedNextSteps"] = next_steps
    return result


def failure(message: str, code: str = "ERROR", details: Any = None) -> dict[str, Any]:
    error: dict[str, Any] = {"code": code, "message": message}
    if details is not None:
        error["details"] = details
    return {"success": False, "message": message, "error": error}


# Argument parsing


def normalize_github_repo(value: str) -> str:
    """Accept ``owner/repo``, ``github/owner/repo`` or a full source name."""
    if not value:
        return value
    for prefix in ("sources/github/", "github/"):
        if value.startswith(prefix):
            return value[len(prefix):]
    return value


def parse_page_size(value: Any, fallback: int) -> int:
    """Clamp a requested page size to 1..100, else use the fallback."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return fallback
    if value != value or value in (float("inf"), float("-inf")):
        return fallback
    size = int(value)
    if size < 1:
        return fallback
    return min(size, MAX_PAGE_SIZE)


def parse_page_token(value: Any) -> int:
    """Offset-style page token; anything unparseable starts from 0."""
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return max(0, int(value))
    if isinstance(value, str):
        try:
            return max(0, int(value))
        except ValueError:
            return 0
    return 0


# Views


def format_plan(plan: Plan) -> dict[str, Any]:
    return {
        "id": plan.id,
        "totalSteps": len(plan.steps),
        "steps": [
            {"id": step.id, "title": step.title, "description": step.description}
            for step in plan.steps
        ],
    }


def _truncate(text: str, limit: int = SUMMARY_MAX_CHARS) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 3] + "..."


def summarize_activity(activity: Activity) -> str:
    """One-line human summary of an activity."""
    if isinstance(activity, (AgentMessaged, UserMessaged)):
        return _truncate(activity.message)
    if isinstance(activity, PlanGenerated):
        steps = len(activity.plan.steps) if activity.plan else 0
        return f"Plan with {steps} steps"
    if isinstance(activity, PlanRejected) and activity.feedback:
        return _truncate(f"Plan rejected: {activity.feedback}")
    if isinstance(activity, ProgressUpdated):
        return _truncate(activity.title or activity.details or "Progress update")
    if isinstance(activity, SessionFailed):
        return _truncate(f"Failed: {activity.reason}")
    if activity.description:
        return _truncate(activity.description)
    return ACTIVITY_TYPE_DESCRIPTIONS.get(activity.type.value, activity.type.value)


def format_activity(activity: Activity) -> dict[str, Any]:
    formatted: dict[str, Any] = {
        "id": activity.id,
        "type": activity.type.value,
        "typeDescription": ACTIVITY_TYPE_DESCRIPTIONS.get(
            activity.type.value, "Unknown activity"
        ),
        "timestamp": isoformat_utc(activity.create_time),
        "summary": summarize_activity(activity),
    }
    if isinstance(activity, (AgentMessaged, UserMessaged)) and activity.message:
        formatted["message"] = activity.message
    if isinstance(activity, PlanGenerated) and activity.plan is not None:
        formatted["plan"] = format_plan(activity.plan)
    if isinstance(activity, ProgressUpdated):
        formatted["progress"] = {
            "title": activity.title,
            "description": activity.description,
        }
    if isinstance(activity, SessionFailed):
        formatted["errorMessage"] = activity.reason
    if activity.artifacts:
        formatted["artifactTypes"] = [a.type.value for a in activity.artifacts]
    return formatted


def _format_outputs(session: Session) -> list[dict[str, Any]]:
    outputs: list[dict[str, Any]] = []
    for output in session.outputs:
        if output.pull_request is not None:
            outputs.append(
                {
                    "type": "pullRequest",
                    "pullRequest": output.pull_request.model_dump(
                        by_alias=True, exclude_none=True
                    ),
                }
            )
        if output.change_set is not None:
            patch = output.change_set.git_patch
            outputs.append(
                {
                    "type": "changeSet",
                    "changeSet": {
                        "source": output.change_set.source,
                        "gitPatch": {
                            "baseCommitId": patch.base_commit_id,
                            "suggestedCommitMessage": patch.suggested_commit_message,
                        },
                    },
                }
            )
    return outputs


def format_session(session: Session) -> dict[str, Any]:
    state = session.state or "unspecified"
    return {
        "id": session.id,
        "name": session.name,
        "url": session.url,
        "title": session.title or "(untitled)",
        "prompt": session.prompt,
        "state": state,
        "stateDescription": describe_state(state),
        "source": session.source_context.source if session.source_context else None,
        "branch": session.branch,
        "outputs": _format_outputs(session),
        "createTime": isoformat_utc(session.create_time),
        "updateTime": isoformat_utc(session.update_time),
    }


def format_source(source: Source) -> dict[str, Any]:
    if source.github_repo is None:
        return {"name": source.name, "id": source.id, "type": "unknown"}
    repo = source.github_repo
    return {
        "name": source.name,
        "id": source.id,
        "owner": repo.owner,
        "repo": repo.repo,
        "isPrivate": repo.is_private,
        "fullName": f"{repo.owner}/{repo.repo}",
    }


def suggested_next_steps(session: Session) -> list[str]:
    """What a caller can sensibly do next, given the session state."""
    state = (session.state or "unspecified").lower()
    if state in ("inprogress", "in_progress", "planning", "queued"):
        return [
            "Use jules_get_session to check current status",
            "Use jules_list_activities to see detailed progress",
            "Use jules_wait_for_completion to wait for the task to finish",
        ]
    if state in (
        "awaitingplanapproval",
        "awaiting_plan_approval",
        "awaitinguserfeedback",
        "awaiting_user_feedback",
    ):
        return [
            "Use jules_list_activities to see what Jules is waiting for",
            "If waiting for plan approval: use jules_approve_plan or jules_reject_plan",
            "Use jules_send_message to provide additional context",
        ]
    if state == "completed":
        if session.pull_request() is not None:
            return [
                "Review and merge the pull request",
                "Use create_session to start a new task",
            ]
        return ["Use jules_list_activities to see the final results"]
    if state == "failed":
        return [
            "Use jules_list_activities to see error details",
            "Use create_session to retry with a modified prompt",
        ]
    if state in ("cancelled", "canceled"):
        return ["Use create_session to start a new task"]
    return ["Use jules_get_session to check current status"]

