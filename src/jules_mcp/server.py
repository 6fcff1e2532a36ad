"""
MCP tool server.

Registers the Jules tools on a FastMCP instance. Every tool receives the
JulesClient passed to ``create_server``; nothing is read from module state.

The session-centric tools (get_session_state, get_code_review_context, ...)
return their result objects directly and let errors surface as MCP tool
errors. The ``jules_*`` orchestration tools always return an envelope:

    {"success": bool, "message": str, "data": ..., "error": {"code", "message"},
     "suggestedNextSteps": [...]}
"""

import logging
from typing import Any, Awaitable, Callable, Optional

from mcp.server.fastmcp import FastMCP

from jules_mcp.activity_log import find_last_activity
from jules_mcp.client import JulesClient
from jules_mcp.formatting import (
    failure,
    format_activity,
    format_session,
    parse_page_size,
    success,
    suggested_next_steps,
)
from jules_mcp.services import (
    bash_outputs,
    code_review,
    session_state,
    sessions,
    show_diff,
    sources,
)
from jules_mcp.waiters import PLAN_WAIT_DEFAULT_MS, resolve_max_duration_ms, wait_for_plan

logger = logging.getLogger(__name__)

SERVER_NAME = "jules-mcp"


async def _guarded(
    code: str, fallback_message: str, handler: Callable[[], Awaitable[dict[str, Any]]]
) -> dict[str, Any]:
    """Run an orchestration handler, turning any exception into a failure envelope."""
    try:
        return await handler()
    except Exception as e:
        logger.warning(f"{code}: {e}")
        return failure(str(e) or fallback_message, code)


def create_server(client: JulesClient) -> FastMCP:
    """
    Build the MCP server with every tool bound to ``client``.

    Args:
        client: Shared Jules API client

    Returns:
        Configured FastMCP instance (call ``.run()`` to serve over stdio)
    """
    mcp = FastMCP(SERVER_NAME)

    # Session-centric tools

    @mcp.tool(
        name="get_session_state",
        description=(
            "Get the current status of a Jules session: busy, stable or failed, "
            "plus the last activity, last agent message and any plan awaiting approval."
        ),
    )
    async def get_session_state_tool(session_id: str) -> dict[str, Any]:
        result = await session_state.get_session_state(client, session_id)
        return result.to_dict()

    @mcp.tool(
        name="get_code_review_context",
        description=(
            "Review the code changes of a Jules session. Works on finished "
            "sessions and on sessions still in progress."
        ),
    )
    async def get_code_review_context_tool(
        session_id: str,
        format: str = "summary",
        filter: str = "all",
        detail: str = "standard",
        activity_id: Optional[str] = None,
    ) -> dict[str, Any]:
        result = await code_review.code_review(
            client,
            session_id,
            format=code_review.ReviewFormat(format),
            change_filter=filter,
            detail=code_review.ReviewDetail(detail),
            activity_id=activity_id,
        )
        return result.to_dict()

    @mcp.tool(
        name="show_code_diff",
        description="Show the unified diff for a session, optionally for one file or activity.",
    )
    async def show_code_diff_tool(
        session_id: str,
        file: Optional[str] = None,
        activity_id: Optional[str] = None,
    ) -> dict[str, Any]:
        result = await show_diff.show_diff(
            client, session_id, file=file, activity_id=activity_id
        )
        return result.to_dict()

    @mcp.tool(
        name="get_bash_outputs",
        description="List the shell commands Jules ran in a session, with output and exit codes.",
    )
    async def get_bash_outputs_tool(
        session_id: str,
        activity_ids: Optional[list[str]] = None,
    ) -> dict[str, Any]:
        result = await bash_outputs.get_bash_outputs(client, session_id, activity_ids)
        return result.to_dict()

    @mcp.tool(
        name="create_session",
        description=(
            "Create a new Jules session. With interactive=true Jules waits for "
            "plan approval before making changes."
        ),
    )
    async def create_session_tool(
        prompt: str,
        repo: Optional[str] = None,
        branch: Optional[str] = None,
        title: Optional[str] = None,
        interactive: bool = False,
        auto_pr: bool = True,
        automation_mode: Optional[str] = None,
    ) -> dict[str, Any]:
        created = await sessions.create_session(
            client,
            prompt=prompt,
            repo=repo,
            branch=branch,
            title=title,
            require_plan_approval=interactive,
            auto_pr=auto_pr,
            automation_mode=automation_mode,
        )
        return {"id": created.id, "session": format_session(created)}

    @mcp.tool(name="list_sessions", description="List your recent Jules sessions.")
    async def list_sessions_tool(
        page_size: Optional[int] = None,
        page_token: Optional[str] = None,
    ) -> dict[str, Any]:
        page = await sessions.list_sessions(client, page_size, page_token)
        result: dict[str, Any] = {"sessions": [format_session(s) for s in page.sessions]}
        if page.next_page_token:
            result["nextPageToken"] = page.next_page_token
        return result

    @mcp.tool(
        name="send_reply_to_session",
        description=(
            "Interact with a session: 'approve' the pending plan, 'send' a message, "
            "or 'ask' a question and wait for Jules to reply."
        ),
    )
    async def send_reply_to_session_tool(
        session_id: str,
        action: str,
        message: Optional[str] = None,
    ) -> dict[str, Any]:
        return await sessions.interact(client, session_id, action, message)

    # Orchestration tools

    @mcp.tool(
        name="jules_create_session",
        description="Create a new Jules session to perform an asynchronous coding task on a repository.",
    )
    async def jules_create_session(
        prompt: str,
        repo: str,
        branch: Optional[str] = None,
        title: Optional[str] = None,
        automation_mode: Optional[str] = None,
        require_plan_approval: bool = False,
    ) -> dict[str, Any]:
        async def handler() -> dict[str, Any]:
            return await sessions.start_session(
                client,
                prompt=prompt,
                repo=repo,
                branch=branch,
                title=title,
                automation_mode=automation_mode,
                require_plan_approval=require_plan_approval,
            )

        return await _guarded("CREATE_SESSION_ERROR", "Failed to create session", handler)

    @mcp.tool(
        name="jules_list_sessions",
        description="List your Jules sessions with a count per state.",
    )
    async def jules_list_sessions(
        page_size: Optional[int] = None,
        page_token: Optional[str] = None,
    ) -> dict[str, Any]:
        async def handler() -> dict[str, Any]:
            return await sessions.list_sessions_overview(client, page_size, page_token)

        return await _guarded("LIST_SESSIONS_ERROR", "Failed to list sessions", handler)

    @mcp.tool(name="jules_get_session", description="Get the current status and details of a Jules session.")
    async def jules_get_session(session_id: str) -> dict[str, Any]:
        async def handler() -> dict[str, Any]:
            if not session_id:
                return failure("Session ID is required", "GET_SESSION_ERROR")
            session = await client.get_session(session_id)
            return success(
                f"Session {session_id} is {session.state or 'in unknown state'}",
                format_session(session),
                suggested_next_steps(session),
            )

        return await _guarded("GET_SESSION_ERROR", "Failed to get session", handler)

    @mcp.tool(name="jules_list_activities", description="List the activities (events) in a Jules session.")
    async def jules_list_activities(
        session_id: str,
        page_size: Optional[int] = None,
        page_token: Optional[str] = None,
    ) -> dict[str, Any]:
        async def handler() -> dict[str, Any]:
            if not session_id:
                return failure("Session ID is required", "LIST_ACTIVITIES_ERROR")
            page = await client.list_activities(
                session_id,
                page_size=parse_page_size(page_size, 50),
                page_token=page_token,
            )
            return success(
                f"Found {len(page.activities)} activities for session {session_id}",
                {
                    "sessionId": session_id,
                    "activities": [format_activity(a) for a in page.activities],
                    "hasMore": bool(page.next_page_token),
                    "nextPageToken": page.next_page_token,
                },
            )

        return await _guarded("LIST_ACTIVITIES_ERROR", "Failed to list activities", handler)

    @mcp.tool(name="jules_get_latest_activity", description="Get the most recent activity of a Jules session.")
    async def jules_get_latest_activity(session_id: str) -> dict[str, Any]:
        async def handler() -> dict[str, Any]:
            if not session_id:
                return failure("Session ID is required", "GET_LATEST_ACTIVITY_ERROR")
            activities = await client.fetch_activities(session_id)
            latest = find_last_activity(activities)
            if latest is None:
                return success(
                    f"No activities yet for session {session_id}",
                    {"sessionId": session_id, "activity": None},
                )
            return success(
                f"Latest activity: {latest.type.value}",
                {"sessionId": session_id, "activity": format_activity(latest)},
            )

        return await _guarded(
            "GET_LATEST_ACTIVITY_ERROR", "Failed to get latest activity", handler
        )

    @mcp.tool(name="jules_get_session_plan", description="Get the execution plan of a Jules session and its approval status.")
    async def jules_get_session_plan(session_id: str) -> dict[str, Any]:
        async def handler() -> dict[str, Any]:
            if not session_id:
                return failure("Session ID is required", "GET_SESSION_PLAN_ERROR")
            return await sessions.get_session_plan(client, session_id)

        return await _guarded("GET_SESSION_PLAN_ERROR", "Failed to get session plan", handler)

    @mcp.tool(name="jules_approve_plan", description="Approve the current plan of a session.")
    async def jules_approve_plan(session_id: str) -> dict[str, Any]:
        async def handler() -> dict[str, Any]:
            if not session_id:
                return failure("Session ID is required", "APPROVE_PLAN_ERROR")
            await client.approve_plan(session_id)
            return success(
                f"Plan approved for session {session_id}. Jules will now execute the plan.",
                {"sessionId": session_id, "action": "PLAN_APPROVED"},
                [
                    "Use jules_get_session to monitor execution progress",
                    "Use jules_wait_for_completion to wait for the task to finish",
                ],
            )

        return await _guarded("APPROVE_PLAN_ERROR", "Failed to approve plan", handler)

    @mcp.tool(name="jules_reject_plan", description="Reject the current plan of a session, optionally with feedback.")
    async def jules_reject_plan(session_id: str, feedback: Optional[str] = None) -> dict[str, Any]:
        async def handler() -> dict[str, Any]:
            if not session_id:
                return failure("Session ID is required", "REJECT_PLAN_ERROR")
            await client.reject_plan(session_id, feedback)
            return success(
                f"Plan rejected for session {session_id}. Jules will generate a new plan.",
                {
                    "sessionId": session_id,
                    "action": "PLAN_REJECTED",
                    "feedbackProvided": bool(feedback),
                },
                ["Use jules_wait_for_plan to wait for the new plan"],
            )

        return await _guarded("REJECT_PLAN_ERROR", "Failed to reject plan", handler)

    @mcp.tool(name="jules_send_message", description="Send a message to an active Jules session.")
    async def jules_send_message(session_id: str, message: str) -> dict[str, Any]:
        async def handler() -> dict[str, Any]:
            if not session_id or not message:
                return failure("Session ID and message are required", "SEND_MESSAGE_ERROR")
            await client.send_message(session_id, message)
            return success(
                f"Message sent to session {session_id}",
                {"sessionId": session_id, "action": "MESSAGE_SENT"},
                ["Use jules_list_activities to see Jules' response"],
            )

        return await _guarded("SEND_MESSAGE_ERROR", "Failed to send message", handler)

    @mcp.tool(name="jules_cancel_session", description="Cancel an active Jules session.")
    async def jules_cancel_session(session_id: str) -> dict[str, Any]:
        async def handler() -> dict[str, Any]:
            if not session_id:
                return failure("Session ID is required", "CANCEL_SESSION_ERROR")
            await client.cancel_session(session_id)
            return success(
                f"Session {session_id} has been cancelled",
                {"sessionId": session_id, "action": "CANCELLED"},
                ["Use create_session to start a new task"],
            )

        return await _guarded("CANCEL_SESSION_ERROR", "Failed to cancel session", handler)

    @mcp.tool(name="jules_list_sources", description="List the repositories connected to your Jules account.")
    async def jules_list_sources(
        page_size: Optional[int] = None,
        page_token: Optional[str] = None,
    ) -> dict[str, Any]:
        async def handler() -> dict[str, Any]:
            return await sources.list_sources(client, page_size, page_token)

        return await _guarded("LIST_SOURCES_ERROR", "Failed to list sources", handler)

    @mcp.tool(
        name="jules_get_source",
        description="Get details about one GitHub repository connected to Jules.",
    )
    async def jules_get_source(source: str) -> dict[str, Any]:
        async def handler() -> dict[str, Any]:
            return await sources.get_source(client, source)

        return await _guarded("GET_SOURCE_ERROR", "Failed to get source", handler)

    @mcp.tool(name="jules_wait_for_plan", description="Wait for Jules to generate a plan for a session.")
    async def jules_wait_for_plan(
        session_id: str,
        timeout_ms: Optional[int] = None,
    ) -> dict[str, Any]:
        async def handler() -> dict[str, Any]:
            if not session_id:
                return failure("Session ID is required", "WAIT_FOR_PLAN_ERROR")
            result = await wait_for_plan(
                client,
                session_id,
                max_duration_ms=(
                    timeout_ms
                    if timeout_ms is not None
                    else resolve_max_duration_ms(PLAN_WAIT_DEFAULT_MS)
                ),
            )
            if result.success and result.value is not None:
                return success(
                    f"Plan generated for session {session_id}",
                    {
                        "sessionId": session_id,
                        "plan": format_activity(result.value),
                        "pollStats": result.stats(),
                    },
                    [
                        "Review the plan carefully",
                        "Use jules_approve_plan to approve",
                        "Use jules_reject_plan with feedback to request changes",
                    ],
                )
            if result.error:
                return failure(result.error, "WAIT_FOR_PLAN_ERROR")
            return success(
                f"Timed out waiting for plan (session: {session_id})",
                {
                    "sessionId": session_id,
                    "reason": result.reason.value,
                    "pollStats": result.stats(),
                },
                [
                    "Jules may still be analyzing the codebase",
                    "Use jules_list_activities to check current status",
                ],
            )

        return await _guarded("WAIT_FOR_PLAN_ERROR", "Failed while waiting for plan", handler)

    @mcp.tool(
        name="jules_wait_for_completion",
        description="Wait for a Jules session to complete, fail or be cancelled.",
    )
    async def jules_wait_for_completion(
        session_id: str,
        timeout_ms: Optional[int] = None,
        poll_interval_ms: Optional[int] = None,
    ) -> dict[str, Any]:
        async def handler() -> dict[str, Any]:
            return await sessions.wait_for_session(
                client, session_id, timeout_ms=timeout_ms, interval_ms=poll_interval_ms
            )

        return await _guarded("WAIT_FOR_COMPLETION_ERROR", "Failed while waiting", handler)

    @mcp.tool(
        name="jules_create_and_wait",
        description="Create a Jules session and wait for it to complete in one call.",
    )
    async def jules_create_and_wait(
        prompt: str,
        repo: str,
        branch: Optional[str] = None,
        title: Optional[str] = None,
        automation_mode: Optional[str] = None,
        wait_for_completion: bool = True,
        timeout_ms: Optional[int] = None,
        require_plan_approval: bool = False,
    ) -> dict[str, Any]:
        async def handler() -> dict[str, Any]:
            return await sessions.create_and_wait(
                client,
                prompt=prompt,
                repo=repo,
                branch=branch,
                title=title,
                automation_mode=automation_mode,
                require_plan_approval=require_plan_approval,
                wait=wait_for_completion,
                timeout_ms=timeout_ms,
            )

        return await _guarded("CREATE_AND_WAIT_ERROR", "Failed to create and wait", handler)

    @mcp.tool(
        name="jules_quick_task",
        description="Assign a task to Jules with sensible defaults and wait for the result.",
    )
    async def jules_quick_task(
        prompt: str,
        repo: str,
        branch: Optional[str] = None,
        create_pr: bool = True,
    ) -> dict[str, Any]:
        async def handler() -> dict[str, Any]:
            return await sessions.quick_task(
                client, prompt=prompt, repo=repo, branch=branch, create_pr=create_pr
            )

        return await _guarded("QUICK_TASK_ERROR", "Quick task failed", handler)

    @mcp.tool(
        name="jules_get_session_summary",
        description="Summary of a session: status, plan, progress, errors and activity counts.",
    )
    async def jules_get_session_summary(session_id: str) -> dict[str, Any]:
        async def handler() -> dict[str, Any]:
            if not session_id:
                return failure("Session ID is required", "GET_SESSION_SUMMARY_ERROR")
            return await sessions.get_session_summary(client, session_id)

        return await _guarded(
            "GET_SESSION_SUMMARY_ERROR", "Failed to get session summary", handler
        )

    logger.debug("Registered Jules tools")
    return mcp
