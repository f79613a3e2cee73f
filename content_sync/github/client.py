"""GitHub REST and GraphQL API client."""

import asyncio
from typing import Any

import aiohttp

from content_sync.core.logging import get_logger
from content_sync.shared.exceptions import GitHubAPIError

logger = get_logger(__name__)


class GitHubClient:
    """Async GitHub API client.

    One session is shared by every content source; the bearer token is passed
    per call. Requests are never retried: any non-2xx response, GraphQL error
    payload, transport failure or timeout raises GitHubAPIError and callers
    treat that failure as final for the call.

    Attributes:
        BASE_URL: Default REST API base URL
        GRAPHQL_URL: Default GraphQL endpoint
        ACCEPT: Media type sent with every request
    """

    BASE_URL = "https://api.github.com"
    GRAPHQL_URL = "https://api.github.com/graphql"
    ACCEPT = "application/vnd.github+json"

    def __init__(
        self,
        base_url: str = BASE_URL,
        graphql_url: str = GRAPHQL_URL,
        timeout_seconds: float = 30.0,
        user_agent: str = "github-content-sync",
    ) -> None:
        """Initialize GitHub client.

        Args:
            base_url: REST API base URL
            graphql_url: GraphQL endpoint URL
            timeout_seconds: Total timeout applied to each request
            user_agent: User-Agent header value
        """
        self.base_url = base_url.rstrip("/")
        self.graphql_url = graphql_url
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self.user_agent = user_agent
        self.session: aiohttp.ClientSession | None = None

    async def __aenter__(self) -> "GitHubClient":
        """Context manager entry: create aiohttp session."""
        self.session = aiohttp.ClientSession(
            headers={
                "Accept": self.ACCEPT,
                "User-Agent": self.user_agent,
            }
        )
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        """Context manager exit: close aiohttp session."""
        if self.session:
            await self.session.close()

    def _url(self, endpoint: str) -> str:
        if endpoint.startswith(("http://", "https://")):
            return endpoint
        return f"{self.base_url}/{endpoint.lstrip('/')}"

    async def fetch_json(
        self,
        endpoint: str,
        token: str,
        *,
        method: str = "GET",
        body: Any = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Perform a REST request and decode the JSON response.

        Args:
            endpoint: Path relative to the base URL (e.g., "/repos/o/r/pulls") or absolute URL
            token: Bearer token for this call
            method: HTTP method
            body: JSON body for non-GET requests
            params: Query string parameters

        Returns:
            Decoded JSON (None for 204 No Content)

        Raises:
            GitHubAPIError: On non-2xx status, transport failure or timeout
        """
        if not self.session:
            raise GitHubAPIError("Session not initialized")

        url = self._url(endpoint)
        try:
            async with self.session.request(
                method,
                url,
                headers={"Authorization": f"Bearer {token}"},
                params=params,
                json=body,
                timeout=self.timeout,
            ) as response:
                if response.status in (403, 429):
                    logger.warning(
                        "github.ratelimit",
                        remaining=response.headers.get("x-ratelimit-remaining"),
                        reset=response.headers.get("x-ratelimit-reset"),
                        status=response.status,
                        endpoint=endpoint,
                    )
                if not 200 <= response.status < 300:
                    text = await response.text()
                    raise GitHubAPIError(
                        f"GitHub API error: {response.status} - {text}",
                        status=response.status,
                    )
                if response.status == 204:
                    return None
                return await response.json(content_type=None)
        except aiohttp.ClientError as e:
            logger.warning("github.request.failed", method=method, endpoint=endpoint, error=str(e))
            raise GitHubAPIError(f"Network error: {e}", cause=e) from e
        except asyncio.TimeoutError as e:
            logger.warning("github.request.timeout", method=method, endpoint=endpoint)
            raise GitHubAPIError(
                f"Request timed out after {self.timeout.total}s", cause=e
            ) from e
        except ValueError as e:
            raise GitHubAPIError(f"Invalid JSON response: {e}", cause=e) from e

    async def graphql(
        self,
        token: str,
        query: str,
        variables: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Run a GraphQL query.

        Args:
            token: Bearer token for this call
            query: GraphQL document
            variables: Query variables

        Returns:
            The response's "data" object

        Raises:
            GitHubAPIError: On request failure or when the response carries errors
        """
        result = await self.fetch_json(
            self.graphql_url,
            token,
            method="POST",
            body={"query": query, "variables": variables or {}},
        )
        if not isinstance(result, dict):
            raise GitHubAPIError("GraphQL error: unexpected response shape")
        errors = result.get("errors")
        if errors:
            messages = "; ".join(str(e.get("message", e)) for e in errors)
            raise GitHubAPIError(f"GraphQL error: {messages}")
        data: dict[str, Any] = result.get("data") or {}
        return data
