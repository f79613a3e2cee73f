"""Tests for GitHub API client."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest

from content_sync.github.client import GitHubClient
from content_sync.shared.exceptions import GitHubAPIError


def _client_with_response(
    status: int = 200,
    json_data: object = None,
    text: str = "",
    headers: dict[str, str] | None = None,
) -> GitHubClient:
    client = GitHubClient()

    mock_response = AsyncMock()
    mock_response.status = status
    mock_response.headers = headers or {}
    mock_response.json = AsyncMock(return_value=json_data)
    mock_response.text = AsyncMock(return_value=text)

    mock_context = MagicMock()
    mock_context.__aenter__ = AsyncMock(return_value=mock_response)
    mock_context.__aexit__ = AsyncMock(return_value=None)

    client.session = AsyncMock()
    client.session.request = MagicMock(return_value=mock_context)
    return client


@pytest.mark.asyncio
async def test_fetch_json_success():
    """Test that a 2xx response is decoded and the token sent as bearer."""
    client = _client_with_response(json_data=[{"number": 1}])

    data = await client.fetch_json("/repos/acme/api/pulls", "tok", params={"page": 1})

    assert data == [{"number": 1}]
    args, kwargs = client.session.request.call_args
    assert args == ("GET", "https://api.github.com/repos/acme/api/pulls")
    assert kwargs["headers"] == {"Authorization": "Bearer tok"}
    assert kwargs["params"] == {"page": 1}


@pytest.mark.asyncio
async def test_fetch_json_absolute_url_used_verbatim():
    """Test that absolute URLs bypass the base URL."""
    client = _client_with_response(json_data={})

    await client.fetch_json("https://example.test/graphql", "tok", method="POST", body={"q": 1})

    args, kwargs = client.session.request.call_args
    assert args == ("POST", "https://example.test/graphql")
    assert kwargs["json"] == {"q": 1}


@pytest.mark.asyncio
async def test_fetch_json_no_content_returns_none():
    """Test that 204 No Content returns None."""
    client = _client_with_response(status=204)

    assert await client.fetch_json("/user/starred/acme/api", "tok", method="PUT") is None


@pytest.mark.asyncio
async def test_fetch_json_error_status_raises():
    """Test that a non-2xx status raises GitHubAPIError with status and body."""
    client = _client_with_response(status=404, text='{"message":"Not Found"}')

    with pytest.raises(GitHubAPIError, match="GitHub API error: 404") as exc_info:
        await client.fetch_json("/repos/acme/missing", "tok")

    assert exc_info.value.status == 404


@pytest.mark.asyncio
async def test_fetch_json_rate_limited_raises_with_status():
    """Test that 403 rate limiting surfaces as GitHubAPIError with status 403."""
    client = _client_with_response(
        status=403,
        text="API rate limit exceeded",
        headers={"x-ratelimit-remaining": "0", "x-ratelimit-reset": "1717243200"},
    )

    with pytest.raises(GitHubAPIError) as exc_info:
        await client.fetch_json("/repos/acme/api/pulls", "tok")

    assert exc_info.value.status == 403


@pytest.mark.asyncio
async def test_fetch_json_network_error_wrapped():
    """Test that aiohttp client errors become GitHubAPIError without status."""
    client = GitHubClient()
    client.session = AsyncMock()
    client.session.request = MagicMock(side_effect=aiohttp.ClientConnectionError("reset"))

    with pytest.raises(GitHubAPIError, match="Network error") as exc_info:
        await client.fetch_json("/user", "tok")

    assert exc_info.value.status is None
    assert isinstance(exc_info.value.cause, aiohttp.ClientError)


@pytest.mark.asyncio
async def test_fetch_json_timeout_wrapped():
    """Test that timeouts become GitHubAPIError."""
    client = GitHubClient(timeout_seconds=5)
    client.session = AsyncMock()
    client.session.request = MagicMock(side_effect=asyncio.TimeoutError())

    with pytest.raises(GitHubAPIError, match="timed out after 5"):
        await client.fetch_json("/user", "tok")


@pytest.mark.asyncio
async def test_fetch_json_without_session_raises():
    """Test that using the client outside its context raises."""
    client = GitHubClient()

    with pytest.raises(GitHubAPIError, match="Session not initialized"):
        await client.fetch_json("/user", "tok")


@pytest.mark.asyncio
async def test_graphql_returns_data():
    """Test that GraphQL posts the query and returns the data object."""
    client = _client_with_response(json_data={"data": {"viewer": {"login": "octocat"}}})

    data = await client.graphql("tok", "query { viewer { login } }", {"a": 1})

    assert data == {"viewer": {"login": "octocat"}}
    args, kwargs = client.session.request.call_args
    assert args == ("POST", "https://api.github.com/graphql")
    assert kwargs["json"] == {"query": "query { viewer { login } }", "variables": {"a": 1}}


@pytest.mark.asyncio
async def test_graphql_errors_raise():
    """Test that a response with errors raises GitHubAPIError."""
    client = _client_with_response(
        json_data={"data": None, "errors": [{"message": "Could not resolve to a Repository"}]}
    )

    with pytest.raises(GitHubAPIError, match="GraphQL error: Could not resolve"):
        await client.graphql("tok", "query { x }")


@pytest.mark.asyncio
async def test_context_manager_creates_and_closes_session():
    """Test that the session is opened with default headers and closed on exit."""
    async with GitHubClient(user_agent="content-sync-tests") as client:
        assert client.session is not None
        assert client.session.headers["User-Agent"] == "content-sync-tests"
        session = client.session

    assert session.closed
