"""Connected repositories (sources) as tool envelopes."""

from typing import Any, Optional

from jules_mcp.client import JulesClient
from jules_mcp.exceptions import InputValidationError
from jules_mcp.formatting import (
    failure,
    format_source,
    normalize_github_repo,
    parse_page_size,
    parse_page_token,
    success,
)

DEFAULT_PAGE_SIZE = 25


async def list_sources(
    client: JulesClient,
    page_size: Optional[int] = None,
    page_token: Optional[str] = None,
) -> dict[str, Any]:
    """
    One page of connected repositories.

    The API list is fetched in full and paged locally; ``page_token`` is an
    offset into it.
    """
    size = parse_page_size(page_size, DEFAULT_PAGE_SIZE)
    offset = parse_page_token(page_token)
    sources = await client.fetch_sources()
    page = sources[offset : offset + size]
    next_offset = offset + size
    has_more = next_offset < len(sources)
    return success(
        f"Found {len(sources)} connected repositories",
        {
            "sources": [format_source(s) for s in page],
            "total": len(sources),
            "hasMore": has_more,
            "nextPageToken": str(next_offset) if has_more else None,
        },
        ["Use the source name when creating sessions"],
    )


async def get_source(client: JulesClient, source: str) -> dict[str, Any]:
    """
    Details of one connected repository.

    Args:
        client: Jules API client
        source: ``owner/repo``, ``github/owner/repo`` or ``sources/github/owner/repo``
    """
    if not source:
        raise InputValidationError("Source name is required")

    repo = normalize_github_repo(source)
    found = await client.get_source(repo)
    if found is None:
        return failure(f"Repository {repo} is not connected", "GET_SOURCE_ERROR")
    return success(
        f"Repository {repo} is connected",
        format_source(found),
        ["Use jules_create_session to start a task on this repository"],
    )
