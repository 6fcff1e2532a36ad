"""Shared fixtures and payload builders for jules-mcp tests."""

import json
from typing import Any, Callable, Optional

import httpx
import pytest
import pytest_asyncio

from jules_mcp.client import JulesClient
from jules_mcp.config import ClientConfig
from jules_mcp.models import Activity, Session, parse_activity
from jules_mcp.retry import RetryConfig

BASE_URL = "https://jules.test/v1alpha"


def ts(seconds: int) -> str:
    """ISO timestamp ``seconds`` after a fixed epoch."""
    minutes, secs = divmod(seconds, 60)
    return f"2024-01-01T10:{minutes:02d}:{secs:02d}Z"


def make_patch(path: str, change: str = "modified", additions: int = 1, deletions: int = 0) -> str:
    """A single-file git diff with the given line counts."""
    lines = [f"diff --git a/{path} b/{path}"]
    if change == "created":
        lines += ["new file mode 100644", "--- /dev/null", f"+++ b/{path}"]
    elif change == "deleted":
        lines += ["deleted file mode 100644", f"--- a/{path}", "+++ /dev/null"]
    else:
        lines += [f"--- a/{path}", f"+++ b/{path}"]
    lines.append(f"@@ -1,{deletions} +1,{additions} @@")
    lines += [f"+added line {i}" for i in range(additions)]
    lines += [f"-removed line {i}" for i in range(deletions)]
    return "\n".join(lines) + "\n"


def change_set_payload(patch: str) -> dict[str, Any]:
    return {"source": "sources/github/acme/app", "gitPatch": {"unidiffPatch": patch}}


def activity_payload(
    activity_id: str,
    kind: Optional[str],
    seconds: int,
    payload: Optional[dict[str, Any]] = None,
    patch: Optional[str] = None,
    bash: Optional[dict[str, Any]] = None,
) -> dict[str, Any]:
    """Activity in the REST wire shape."""
    raw: dict[str, Any] = {
        "name": f"sessions/s1/activities/{activity_id}",
        "id": activity_id,
        "createTime": ts(seconds),
    }
    if kind is not None:
        raw[kind] = payload or {}
    artifacts = []
    if patch is not None:
        artifacts.append({"changeSet": change_set_payload(patch)})
    if bash is not None:
        artifacts.append({"bashOutput": bash})
    if artifacts:
        raw["artifacts"] = artifacts
    return raw


def make_activity(*args: Any, **kwargs: Any) -> Activity:
    return parse_activity(activity_payload(*args, **kwargs))


def plan_payload(plan_id: str = "p1", steps: tuple[str, ...] = ("Step one", "Step two")) -> dict:
    return {
        "plan": {
            "id": plan_id,
            "steps": [{"id": f"st{i}", "title": t, "index": i} for i, t in enumerate(steps)],
        }
    }


def session_payload(
    state: str = "completed",
    patch: Optional[str] = None,
    pr_url: Optional[str] = None,
    session_id: str = "s1",
) -> dict[str, Any]:
    outputs = []
    if pr_url:
        outputs.append({"pullRequest": {"url": pr_url, "title": "Fix things"}})
    if patch is not None:
        outputs.append({"changeSet": change_set_payload(patch)})
    return {
        "name": f"sessions/{session_id}",
        "id": session_id,
        "title": "Fix the bug",
        "prompt": "Please fix the bug",
        "state": state,
        "url": f"https://jules.google.com/session/{session_id}",
        "createTime": ts(0),
        "updateTime": ts(90),
        "sourceContext": {
            "source": "sources/github/acme/app",
            "githubRepoContext": {"startingBranch": "main"},
        },
        "outputs": outputs,
    }


def make_session(**kwargs: Any) -> Session:
    return Session.model_validate(session_payload(**kwargs))


class FakeJulesApi:
    """
    In-memory stand-in for the Jules REST API, served via httpx.MockTransport.

    ``sessions`` holds a list of session payloads per id; each GET returns the
    next one (the last repeats), so tests can script state transitions.
    """

    def __init__(self):
        self.sessions: dict[str, list[dict]] = {}
        self.activities: dict[str, list[dict]] = {}
        self.sources: list[dict] = []
        self.activity_page_size: Optional[int] = None
        self.requests: list[httpx.Request] = []
        self.responders: dict[str, Callable[[httpx.Request], httpx.Response]] = {}
        self.created: list[dict] = []

    def add_session(self, *payloads: dict) -> None:
        session_id = payloads[0]["id"]
        self.sessions[session_id] = list(payloads)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path.removeprefix("/v1alpha/")

        for prefix, responder in self.responders.items():
            if path.startswith(prefix):
                return responder(request)

        if request.method == "POST" and path == "sessions":
            body = json.loads(request.content)
            self.created.append(body)
            payload = dict(self.sessions.get("new", [session_payload("queued", session_id="new")])[0])
            return httpx.Response(200, json=payload)

        if request.method == "POST" and ":" in path:
            return httpx.Response(200, text="")

        if path == "sessions":
            flat = [payloads[0] for payloads in self.sessions.values()]
            return httpx.Response(200, json={"sessions": flat})

        if path == "sources":
            return httpx.Response(200, json={"sources": self.sources})

        parts = path.split("/")
        if len(parts) == 3 and parts[2] == "activities":
            return self._activities_page(parts[1], request)
        if len(parts) == 2 and parts[0] == "sessions":
            scripted = self.sessions.get(parts[1])
            if not scripted:
                return httpx.Response(404, json={"error": "not found"})
            payload = scripted.pop(0) if len(scripted) > 1 else scripted[0]
            return httpx.Response(200, json=payload)

        return httpx.Response(404, json={"error": f"unexpected path {path}"})

    def _activities_page(self, session_id: str, request: httpx.Request) -> httpx.Response:
        items = self.activities.get(session_id, [])
        size = self.activity_page_size or len(items) or 1
        offset = int(request.url.params.get("pageToken") or 0)
        page = items[offset : offset + size]
        body: dict[str, Any] = {"activities": page}
        if offset + size < len(items):
            body["nextPageToken"] = str(offset + size)
        return httpx.Response(200, json=body)


@pytest.fixture
def fake_api() -> FakeJulesApi:
    return FakeJulesApi()


@pytest.fixture
def client_config() -> ClientConfig:
    return ClientConfig(api_key="test-key", base_url=BASE_URL, poll_interval_ms=10)


@pytest_asyncio.fixture
async def client(fake_api: FakeJulesApi, client_config: ClientConfig):
    """JulesClient wired to the fake API, with fast retries."""
    jules = JulesClient(
        client_config,
        transport=httpx.MockTransport(fake_api.handler),
        retry_config=RetryConfig(max_retries=2, initial_delay=0.001, jitter=False),
    )
    yield jules
    await jules.close()
