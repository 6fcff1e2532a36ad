"""
Async REST client for the Jules API.

Wraps the ``v1alpha`` endpoints used by the MCP tools. Every request goes
through ``check_response`` and the async retry decorator; responses are
parsed into the wire models from ``jules_mcp.models``.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from jules_mcp.activity_log import newest_first
from jules_mcp.config import ClientConfig
from jules_mcp.exceptions import JulesApiError, MissingApiKeyError
from jules_mcp.models import (
    Activity,
    ActivityType,
    Session,
    Source,
    parse_activities,
)
from jules_mcp.retry import NonRetryableError, RetryConfig, check_response, with_async_retry

logger = logging.getLogger(__name__)

ACTIVITY_PAGE_SIZE = 100
SOURCE_PAGE_SIZE = 100


@dataclass(frozen=True)
class SessionPage:
    sessions: list[Session]
    next_page_token: Optional[str] = None


@dataclass(frozen=True)
class ActivityPage:
    activities: list[Activity]
    next_page_token: Optional[str] = None


@dataclass(frozen=True)
class SourcePage:
    sources: list[Source]
    next_page_token: Optional[str] = None


def source_name_for_repo(repo: str) -> str:
    """``owner/repo`` -> ``sources/github/owner/repo``."""
    return f"sources/github/{repo}"


class JulesClient:
    """
    Asynchronous HTTP client for the Jules API.

    Usage:
        config = ClientConfig.from_settings()
        async with JulesClient(config) as client:
            session = await client.get_session("123")
            activities = await client.fetch_activities("123")
    """

    def __init__(
        self,
        config: ClientConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        retry_config: Optional[RetryConfig] = None,
    ):
        """
        Initialize the client.

        Args:
            config: Immutable client configuration
            transport: Custom httpx transport (tests use httpx.MockTransport)
            retry_config: Retry configuration (derived from config if omitted)
        """
        self.config = config
        self.retry_config = retry_config or RetryConfig.from_rate_limit_ms(
            max_retry_ms=config.rate_limit_max_retry_ms,
            base_delay_ms=config.rate_limit_base_delay_ms,
            max_delay_ms=config.rate_limit_max_delay_ms,
        )
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._send = with_async_retry(self.retry_config)(self._send_once)

    @property
    def client(self) -> httpx.AsyncClient:
        """Get or create the async HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=f"{self.config.base_url}/",
                headers={"Content-Type": "application/json"},
                timeout=self.config.timeout_ms / 1000,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the async HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "JulesClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    # Transport

    async def _send_once(
        self,
        method: str,
        path: str,
        params: Optional[dict[str, Any]] = None,
        body: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        response = await self.client.request(
            method,
            path.lstrip("/"),
            params={k: v for k, v in (params or {}).items() if v is not None},
            json=body,
            headers={"X-Goog-Api-Key": self.config.api_key or ""},
        )
        check_response(response, self.retry_config)
        if not response.content:
            return {}
        return response.json()

    async def request(
        self,
        method: str,
        path: str,
        params: Optional[dict[str, Any]] = None,
        body: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        """
        Send one API request with retries.

        Raises:
            MissingApiKeyError: If no API key is configured
            JulesApiError: If the request times out
            RetryableError / NonRetryableError: For HTTP error responses
        """
        if not self.config.api_key:
            raise MissingApiKeyError()

        logger.debug(f"{method} {path}")
        try:
            return await self._send(method, path, params, body)
        except httpx.TimeoutException as e:
            raise JulesApiError(
                f"Request timed out after {self.config.timeout_ms}ms"
            ) from e

    # Sessions

    async def get_session(self, session_id: str) -> Session:
        data = await self.request("GET", f"sessions/{session_id}")
        return Session.model_validate(data)

    async def list_sessions(
        self,
        page_size: Optional[int] = None,
        page_token: Optional[str] = None,
    ) -> SessionPage:
        data = await self.request(
            "GET",
            "sessions",
            params={"pageSize": page_size, "pageToken": page_token},
        )
        return SessionPage(
            sessions=[Session.model_validate(s) for s in data.get("sessions") or []],
            next_page_token=data.get("nextPageToken") or None,
        )

    async def create_session(
        self,
        prompt: str,
        repo: Optional[str] = None,
        branch: Optional[str] = None,
        title: Optional[str] = None,
        require_plan_approval: bool = False,
        automation_mode: Optional[str] = None,
    ) -> Session:
        """
        Create a new session.

        Args:
            prompt: Task description
            repo: GitHub repository as ``owner/repo``
            branch: Starting branch (only sent together with ``repo``)
            title: Optional session title
            require_plan_approval: Wait for explicit plan approval
            automation_mode: e.g. ``AUTO_CREATE_PR``

        Returns:
            The created Session
        """
        body: dict[str, Any] = {"prompt": prompt}
        if title:
            body["title"] = title
        if repo:
            source_context: dict[str, Any] = {"source": source_name_for_repo(repo)}
            if branch:
                source_context["githubRepoContext"] = {"startingBranch": branch}
            body["sourceContext"] = source_context
        if require_plan_approval:
            body["requirePlanApproval"] = True
        if automation_mode:
            body["automationMode"] = automation_mode

        data = await self.request("POST", "sessions", body=body)
        session = Session.model_validate(data)
        logger.info(f"Created session {session.id}")
        return session

    async def approve_plan(self, session_id: str, plan_id: Optional[str] = None) -> None:
        body = {"planId": plan_id} if plan_id else {}
        await self.request("POST", f"sessions/{session_id}:approvePlan", body=body)

    async def reject_plan(self, session_id: str, feedback: Optional[str] = None) -> None:
        body = {"feedback": feedback} if feedback else {}
        await self.request("POST", f"sessions/{session_id}:rejectPlan", body=body)

    async def send_message(self, session_id: str, message: str) -> None:
        await self.request(
            "POST", f"sessions/{session_id}:sendMessage", body={"prompt": message}
        )

    async def cancel_session(self, session_id: str) -> None:
        await self.request("POST", f"sessions/{session_id}:cancel", body={})

    # Activities

    async def list_activities(
        self,
        session_id: str,
        page_size: Optional[int] = None,
        page_token: Optional[str] = None,
    ) -> ActivityPage:
        """Fetch one page of a session's activities, in log order."""
        data = await self.request(
            "GET",
            f"sessions/{session_id}/activities",
            params={"pageSize": page_size, "pageToken": page_token},
        )
        return ActivityPage(
            activities=parse_activities(data.get("activities") or []),
            next_page_token=data.get("nextPageToken") or None,
        )

    async def fetch_activities(self, session_id: str) -> list[Activity]:
        """Fetch the full activity history of a session, following pagination."""
        activities: list[Activity] = []
        page_token: Optional[str] = None
        while True:
            page = await self.list_activities(
                session_id, page_size=ACTIVITY_PAGE_SIZE, page_token=page_token
            )
            activities.extend(page.activities)
            if not page.next_page_token:
                break
            page_token = page.next_page_token
        logger.debug(f"Fetched {len(activities)} activities for session {session_id}")
        return activities

    async def select_activities(
        self,
        session_id: str,
        order: str = "asc",
        type: Optional[ActivityType] = None,
        limit: Optional[int] = None,
        ids: Optional[list[str]] = None,
    ) -> list[Activity]:
        """
        Fetch the full history and filter it locally.

        Args:
            session_id: Session to read
            order: "asc" (log order) or "desc" (newest first)
            type: Keep only activities of this type
            limit: Keep at most this many after ordering
            ids: Keep only activities with these ids
        """
        activities = await self.fetch_activities(session_id)
        if type is not None:
            activities = [a for a in activities if a.type == type]
        if ids is not None:
            wanted = set(ids)
            activities = [a for a in activities if a.id in wanted]
        if order == "desc":
            activities = newest_first(activities)
        if limit is not None:
            activities = activities[:limit]
        return activities

    # Sources

    async def list_sources(
        self,
        page_size: Optional[int] = None,
        page_token: Optional[str] = None,
    ) -> SourcePage:
        data = await self.request(
            "GET",
            "sources",
            params={"pageSize": page_size, "pageToken": page_token},
        )
        return SourcePage(
            sources=[Source.model_validate(s) for s in data.get("sources") or []],
            next_page_token=data.get("nextPageToken") or None,
        )

    async def get_source(self, repo: str) -> Optional[Source]:
        """
        Look up one connected GitHub repository.

        Args:
            repo: ``owner/repo``

        Returns:
            The Source, or None if the repository is not connected
        """
        try:
            data = await self.request("GET", source_name_for_repo(repo))
        except NonRetryableError as e:
            if e.status_code == 404:
                return None
            raise
        return Source.model_validate(data)

    async def fetch_sources(self) -> list[Source]:
        """All connected sources, following pagination."""
        sources: list[Source] = []
        page_token: Optional[str] = None
        while True:
            page = await self.list_sources(page_size=SOURCE_PAGE_SIZE, page_token=page_token)
            sources.extend(page.sources)
            if not page.next_page_token:
                break
            page_token = page.next_page_token
        return sources
