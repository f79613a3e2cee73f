"""GitHub API fakes and payload builders shared by the GitHub tests."""

from typing import Any

from content_sync.shared.exceptions import GitHubAPIError


class FakeGitHub:
    """In-memory stand-in for GitHubClient routed by endpoint and page.

    Unknown endpoints answer 404, so enrichment calls degrade to empty lists
    unless a test registers a response for them.
    """

    def __init__(self) -> None:
        self.responses: dict[tuple[str, int | None], Any] = {}
        self.graphql_responses: list[Any] = []
        self.calls: list[tuple[str, dict[str, Any] | None]] = []
        self.graphql_calls: list[dict[str, Any]] = []

    def add(self, endpoint: str, data: Any, page: int | None = None) -> None:
        self.responses[(endpoint, page)] = data

    def endpoints(self) -> list[str]:
        return [endpoint for endpoint, _ in self.calls]

    async def fetch_json(
        self,
        endpoint: str,
        token: str,
        *,
        method: str = "GET",
        body: Any = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        self.calls.append((endpoint, params))
        page = (params or {}).get("page")
        if (endpoint, page) in self.responses:
            value = self.responses[(endpoint, page)]
        elif (endpoint, None) in self.responses:
            value = self.responses[(endpoint, None)]
        else:
            raise GitHubAPIError("GitHub API error: 404 - Not Found", status=404)
        if isinstance(value, Exception):
            raise value
        return value

    async def graphql(
        self, token: str, query: str, variables: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        self.graphql_calls.append(variables or {})
        value = self.graphql_responses.pop(0)
        if isinstance(value, Exception):
            raise value
        return value


def make_user(login: str, user_id: int) -> dict[str, Any]:
    return {"login": login, "id": user_id}


def make_pr(
    number: int,
    updated_at: str,
    labels: list[str] | None = None,
    repo: str = "acme/api",
) -> dict[str, Any]:
    """Pull request as returned by GET /repos/{repo}/pulls."""
    return {
        "number": number,
        "node_id": f"PR_{number}",
        "title": f"Change {number}",
        "body": "Fixes #12",
        "state": "open",
        "draft": False,
        "user": make_user("octocat", 1),
        "labels": [{"name": name} for name in labels or []],
        "assignees": [],
        "requested_reviewers": [],
        "base": {"ref": "main", "sha": "b" * 40, "repo": {"full_name": repo}},
        "head": {"ref": f"feature-{number}", "sha": "h" * 40},
        "created_at": "2024-05-01T00:00:00Z",
        "updated_at": updated_at,
        "html_url": f"https://github.com/{repo}/pull/{number}",
    }


def make_issue(
    number: int,
    updated_at: str,
    labels: list[str] | None = None,
    is_pull_request: bool = False,
    repo: str = "acme/api",
) -> dict[str, Any]:
    """Issue as returned by GET /repos/{repo}/issues."""
    issue = {
        "number": number,
        "node_id": f"I_{number}",
        "title": f"Issue {number}",
        "body": "Broken since #3",
        "state": "open",
        "user": make_user("hubot", 2),
        "labels": [{"name": name} for name in labels or []],
        "assignees": [],
        "comments": 0,
        "created_at": "2024-05-01T00:00:00Z",
        "updated_at": updated_at,
        "html_url": f"https://github.com/{repo}/issues/{number}",
    }
    if is_pull_request:
        issue["pull_request"] = {"url": f"https://api.github.com/repos/{repo}/pulls/{number}"}
    return issue


def make_discussion(number: int, updated_at: str) -> dict[str, Any]:
    """Discussion node as returned by the discussions GraphQL query."""
    return {
        "id": f"D_{number}",
        "number": number,
        "title": f"Question {number}",
        "body": "How do I deploy?",
        "author": {"login": "mona"},
        "category": {"name": "Q&A"},
        "answer": None,
        "comments": {"totalCount": 2},
        "upvoteCount": 4,
        "labels": {"nodes": [{"name": "help"}]},
        "url": f"https://github.com/acme/api/discussions/{number}",
        "createdAt": "2024-05-01T00:00:00Z",
        "updatedAt": updated_at,
    }


def discussions_page(
    nodes: list[dict[str, Any]], has_next: bool, cursor: str | None = None
) -> dict[str, Any]:
    return {
        "repository": {
            "discussions": {
                "pageInfo": {"hasNextPage": has_next, "endCursor": cursor},
                "nodes": nodes,
            }
        }
    }
