"""Tests for session lifecycle operations."""

import json

import httpx
import pytest
from conftest import activity_payload, make_activity, plan_payload, session_payload

from jules_mcp.exceptions import InputValidationError, JulesError
from jules_mcp.services.sessions import (
    PlanStatus,
    create_and_wait,
    create_session,
    get_session_plan,
    get_session_summary,
    interact,
    list_sessions_overview,
    plan_status,
    quick_task,
    resolve_automation_mode,
    start_session,
    wait_for_session,
)


def posted(fake_api, suffix):
    return [
        r for r in fake_api.requests
        if r.method == "POST" and r.url.path.endswith(suffix)
    ]


class TestResolveAutomationMode:
    def test_explicit_mode_wins(self):
        assert resolve_automation_mode(True, "AUTO_CREATE_DRAFT_PR") == "AUTO_CREATE_DRAFT_PR"

    def test_auto_pr(self):
        assert resolve_automation_mode(True) == "AUTO_CREATE_PR"
        assert resolve_automation_mode(False) is None

    def test_invalid_mode(self):
        with pytest.raises(InputValidationError):
            resolve_automation_mode(False, "SHIP_IT")


class TestCreateSession:
    """Tests for create_session()."""

    @pytest.mark.asyncio
    async def test_repo_is_normalized_and_branch_defaults(self, client, fake_api):
        session = await create_session(client, "Add tests", repo="github/acme/app")

        assert session.id == "new"
        body = fake_api.created[0]
        assert body["sourceContext"] == {
            "source": "sources/github/acme/app",
            "githubRepoContext": {"startingBranch": "main"},
        }
        assert body["automationMode"] == "AUTO_CREATE_PR"

    @pytest.mark.asyncio
    async def test_repoless_session(self, client, fake_api):
        await create_session(
            client, "Explain the code", auto_pr=False, require_plan_approval=True
        )

        body = fake_api.created[0]
        assert "sourceContext" not in body
        assert "automationMode" not in body
        assert body["requirePlanApproval"] is True

    @pytest.mark.asyncio
    async def test_prompt_is_required(self, client, fake_api):
        with pytest.raises(InputValidationError):
            await create_session(client, "")

        assert fake_api.requests == []


class TestInteract:
    """Tests for interact()."""

    @pytest.mark.asyncio
    async def test_approve(self, client, fake_api):
        result = await interact(client, "s1", "approve")

        assert result == {"success": True, "message": "Plan approved."}
        assert len(posted(fake_api, ":approvePlan")) == 1

    @pytest.mark.asyncio
    async def test_send(self, client, fake_api):
        result = await interact(client, "s1", "send", "Use pytest please")

        assert result["message"] == "Message sent."
        request = posted(fake_api, ":sendMessage")[0]
        assert json.loads(request.content) == {"prompt": "Use pytest please"}

    @pytest.mark.asyncio
    async def test_send_requires_message(self, client, fake_api):
        with pytest.raises(InputValidationError):
            await interact(client, "s1", "send")

        assert fake_api.requests == []

    @pytest.mark.asyncio
    async def test_invalid_action(self, client):
        with pytest.raises(InputValidationError):
            await interact(client, "s1", "merge", "now")

    @pytest.mark.asyncio
    async def test_ask_waits_for_new_reply(self, client, fake_api):
        fake_api.activities["s1"] = [
            activity_payload("a1", "agentMessaged", 1, {"agentMessage": "Old answer"}),
        ]

        def reply(request):
            fake_api.activities["s1"].append(
                activity_payload("a2", "agentMessaged", 5, {"agentMessage": "New answer"})
            )
            return httpx.Response(200, text="")

        fake_api.responders["sessions/s1:sendMessage"] = reply

        result = await interact(client, "s1", "ask", "Why?", interval_ms=1)

        assert result == {"success": True, "reply": "New answer"}

    @pytest.mark.asyncio
    async def test_ask_times_out(self, client, fake_api):
        fake_api.activities["s1"] = [
            activity_payload("a1", "agentMessaged", 1, {"agentMessage": "Old answer"}),
        ]

        with pytest.raises(JulesError, match="Timed out"):
            await interact(
                client, "s1", "ask", "Why?", reply_timeout_ms=20, interval_ms=5
            )


class TestPlanStatus:
    def test_not_generated(self):
        assert plan_status([]) == (None, PlanStatus.NOT_GENERATED)

    def test_pending(self):
        activities = [make_activity("a1", "planGenerated", 1, plan_payload())]

        plan, status = plan_status(activities)

        assert plan.id == "a1"
        assert status is PlanStatus.PENDING_APPROVAL

    def test_approved(self):
        activities = [
            make_activity("a1", "planGenerated", 1, plan_payload()),
            make_activity("a2", "planApproved", 2, {"planId": "p1"}),
        ]

        assert plan_status(activities)[1] is PlanStatus.APPROVED

    def test_rejection_of_older_plan_is_ignored(self):
        activities = [
            make_activity("a1", "planGenerated", 1, plan_payload("p1")),
            make_activity("a2", "planRejected", 2, {"planId": "p1"}),
            make_activity("a3", "planGenerated", 3, plan_payload("p2")),
        ]

        plan, status = plan_status(activities)

        assert plan.plan.id == "p2"
        assert status is PlanStatus.PENDING_APPROVAL


class TestEnvelopes:
    """Tests for the envelope-returning operations."""

    @pytest.mark.asyncio
    async def test_get_session_plan_pending(self, client, fake_api):
        fake_api.activities["s1"] = [
            activity_payload("a1", "planGenerated", 1, plan_payload("p1")),
        ]

        result = await get_session_plan(client, "s1")

        assert result["success"] is True
        assert result["data"]["status"] == "pending_approval"
        assert result["data"]["plan"]["plan"]["totalSteps"] == 2
        assert "suggestedNextSteps" in result

    @pytest.mark.asyncio
    async def test_get_session_plan_missing(self, client, fake_api):
        fake_api.activities["s1"] = []

        result = await get_session_plan(client, "s1")

        assert result["data"] == {"sessionId": "s1", "plan": None}

    @pytest.mark.asyncio
    async def test_session_summary(self, client, fake_api):
        fake_api.add_session(session_payload("failed"))
        fake_api.activities["s1"] = [
            activity_payload("a1", "progressUpdated", 1, {"title": "Running tests"}),
            activity_payload("a2", "sessionFailed", 2, {"reason": "Tests failed"}),
        ]

        result = await get_session_summary(client, "s1")

        data = result["data"]
        assert data["planStatus"] == "not_generated"
        assert data["activitySummary"]["total"] == 2
        assert data["latestProgress"]["summary"] == "Running tests"
        assert data["error"]["errorMessage"] == "Tests failed"
        assert data["latestActivity"]["id"] == "a2"


class TestCreateAndWait:
    """Tests for create_and_wait() and quick_task()."""

    @pytest.mark.asyncio
    async def test_waits_until_completed(self, client, fake_api):
        fake_api.add_session(
            session_payload("queued", session_id="new"),
            session_payload("completed", session_id="new"),
        )

        result = await create_and_wait(
            client, "Fix it", "acme/app", interval_ms=1, timeout_ms=5000
        )

        assert result["success"] is True
        assert result["data"]["waited"] is True
        assert result["data"]["session"]["state"] == "completed"
        assert "automationMode" not in fake_api.created[0]

    @pytest.mark.asyncio
    async def test_no_wait(self, client, fake_api):
        fake_api.add_session(session_payload("queued", session_id="new"))

        result = await create_and_wait(client, "Fix it", "acme/app", wait=False)

        assert result["data"]["waited"] is False

    @pytest.mark.asyncio
    async def test_requires_repo(self, client):
        with pytest.raises(InputValidationError):
            await create_and_wait(client, "Fix it", "")

    @pytest.mark.asyncio
    async def test_quick_task_with_pull_request(self, client, fake_api):
        fake_api.add_session(
            session_payload("queued", session_id="new"),
            session_payload(
                "completed", session_id="new", pr_url="https://github.com/acme/app/pull/3"
            ),
        )

        result = await quick_task(client, "Fix it", "acme/app", interval_ms=1, timeout_ms=5000)

        assert result["success"] is True
        assert result["data"]["pullRequest"]["url"] == "https://github.com/acme/app/pull/3"

    @pytest.mark.asyncio
    async def test_quick_task_failure(self, client, fake_api):
        fake_api.add_session(session_payload("failed", session_id="new"))
        fake_api.activities["new"] = [
            activity_payload("a1", "sessionFailed", 1, {"reason": "No access"}),
        ]

        result = await quick_task(client, "Fix it", "acme/app", interval_ms=1, timeout_ms=5000)

        assert result["success"] is False
        assert result["error"]["code"] == "TASK_FAILED"
        assert result["message"] == "Task failed: No access"

    @pytest.mark.asyncio
    async def test_quick_task_timeout(self, client, fake_api):
        fake_api.add_session(session_payload("inProgress", session_id="new"))

        result = await quick_task(client, "Fix it", "acme/app", interval_ms=5, timeout_ms=20)

        assert result["success"] is True
        assert result["data"]["timedOut"] is True


def flaky_session(session_id, state="inProgress"):
    """Responder: one good snapshot, then permission errors."""
    calls = {"n": 0}

    def respond(request):
        calls["n"] += 1
        if calls["n"] == 1:
            return httpx.Response(200, json=session_payload(state, session_id=session_id))
        return httpx.Response(403, text="permission denied")

    return respond


class TestFetchErrorsWhileWaiting:
    """A failing fetch after a good snapshot is reported, not treated as a timeout."""

    @pytest.mark.asyncio
    async def test_create_and_wait(self, client, fake_api):
        fake_api.responders["sessions/new"] = flaky_session("new")

        result = await create_and_wait(
            client, "Fix it", "acme/app", interval_ms=1, timeout_ms=5000
        )

        assert result["success"] is False
        assert result["error"]["code"] == "CREATE_AND_WAIT_ERROR"
        assert "permission denied" in result["message"]
        assert result["error"]["details"]["session"]["state"] == "inProgress"

    @pytest.mark.asyncio
    async def test_quick_task(self, client, fake_api):
        fake_api.responders["sessions/new"] = flaky_session("new")

        result = await quick_task(client, "Fix it", "acme/app", interval_ms=1, timeout_ms=5000)

        assert result["success"] is False
        assert result["error"]["code"] == "QUICK_TASK_ERROR"
        assert "permission denied" in result["message"]

    @pytest.mark.asyncio
    async def test_wait_for_session(self, client, fake_api):
        fake_api.responders["sessions/s1"] = flaky_session("s1")

        result = await wait_for_session(client, "s1", timeout_ms=5000, interval_ms=1)

        assert result["success"] is False
        assert result["error"]["code"] == "WAIT_FOR_COMPLETION_ERROR"
        assert "permission denied" in result["message"]
        assert result["error"]["details"]["pollStats"]["attempts"] == 2


class TestWaitForSession:
    """Tests for wait_for_session()."""

    @pytest.mark.asyncio
    async def test_completed(self, client, fake_api):
        fake_api.add_session(session_payload("inProgress"), session_payload("completed"))

        result = await wait_for_session(client, "s1", timeout_ms=5000, interval_ms=1)

        assert result["success"] is True
        assert result["data"]["session"]["state"] == "completed"

    @pytest.mark.asyncio
    async def test_timeout_is_not_a_failure(self, client, fake_api):
        fake_api.add_session(session_payload("inProgress"))

        result = await wait_for_session(client, "s1", timeout_ms=20, interval_ms=5)

        assert result["success"] is True
        assert result["data"]["reason"] == "timeout"

    @pytest.mark.asyncio
    async def test_requires_session_id(self, client, fake_api):
        with pytest.raises(InputValidationError):
            await wait_for_session(client, "")

        assert fake_api.requests == []


class TestStartSession:
    """Tests for start_session()."""

    @pytest.mark.asyncio
    async def test_envelope_carries_fresh_state(self, client, fake_api):
        fake_api.add_session(session_payload("planning", session_id="new"))

        result = await start_session(
            client, "Add tests", "acme/app", automation_mode="AUTO_CREATE_DRAFT_PR"
        )

        assert result["success"] is True
        assert result["message"] == 'Session created successfully. Jules is now working on: "Add tests"'
        assert result["data"]["state"] == "planning"
        assert fake_api.created[0]["automationMode"] == "AUTO_CREATE_DRAFT_PR"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("prompt, repo", [("", "acme/app"), ("Add tests", "")])
    async def test_prompt_and_repo_required(self, client, fake_api, prompt, repo):
        with pytest.raises(InputValidationError):
            await start_session(client, prompt, repo)

        assert fake_api.requests == []


class TestListSessionsOverview:
    @pytest.mark.asyncio
    async def test_counts_by_state(self, client, fake_api):
        fake_api.add_session(session_payload("completed", session_id="s1"))
        fake_api.add_session(session_payload("completed", session_id="s2"))
        fake_api.add_session(session_payload("inProgress", session_id="s3"))

        result = await list_sessions_overview(client, page_size=500)

        assert result["message"] == "Found 3 sessions"
        assert result["data"]["summary"] == {"completed": 2, "inProgress": 1}
        assert result["data"]["hasMore"] is False
        assert result["data"]["nextPageToken"] is None
        assert fake_api.requests[0].url.params["pageSize"] == "100"
