"""Tests for webhook handling."""

from typing import Any

import pytest

from content_sync.github.tests.fakes import make_discussion, make_issue, make_pr
from content_sync.github.webhook import GitHubWebhookHandler
from content_sync.shared.exceptions import SyncError


def _payload(action: str, **entities: Any) -> dict[str, Any]:
    return {"action": action, "repository": {"full_name": "acme/api"}, **entities}


@pytest.fixture
def handler(sync_service) -> GitHubWebhookHandler:
    return GitHubWebhookHandler(sync_service)


@pytest.mark.asyncio
async def test_unhandled_action_returns_none_without_requests(handler, fake_github, source):
    """Test that a labeled PR delivery is ignored."""
    payload = _payload(
        "labeled", pull_request={"number": 42, "title": "Add cache", "head": {"ref": "x"}}
    )

    assert await handler.handle(source, "pull_request", payload) is None
    assert fake_github.calls == []


@pytest.mark.asyncio
async def test_malformed_payload_returns_none(handler, fake_github, source):
    assert await handler.handle(source, "issues", {"action": "opened"}) is None
    assert fake_github.calls == []


@pytest.mark.asyncio
async def test_pull_request_delivery_refetches_current_state(handler, fake_github, source):
    """Test that the PR is re-fetched and enriched rather than read from the payload."""
    fake_github.add("/repos/acme/api/pulls/42", make_pr(42, "2024-06-05T00:00:00Z"))
    payload = _payload(
        "opened", pull_request={"number": 42, "title": "stale title", "head": {"ref": "x"}}
    )

    item = await handler.handle(source, "pull_request", payload)

    assert item.external_id == "acme/api#42"
    assert item.title == "PR #42: Change 42"
    assert "/repos/acme/api/pulls/42/reviews" in fake_github.endpoints()


@pytest.mark.asyncio
async def test_review_delivery_refreshes_pull_request(handler, fake_github, source):
    fake_github.add("/repos/acme/api/pulls/42", make_pr(42, "2024-06-05T00:00:00Z"))
    payload = _payload(
        "submitted", pull_request={"number": 42, "title": "Add cache", "head": {"ref": "x"}}
    )

    item = await handler.handle(source, "pull_request_review", payload)

    assert item.type == "pull_request"


@pytest.mark.asyncio
async def test_issue_delivery_refetches_issue(handler, fake_github, source):
    fake_github.add("/repos/acme/api/issues/12", make_issue(12, "2024-06-05T00:00:00Z"))
    payload = _payload(
        "edited", issue={"number": 12, "title": "Crash", "state": "open", "assignees": []}
    )

    item = await handler.handle(source, "issues", payload)

    assert item.external_id == "I_12"


@pytest.mark.asyncio
async def test_issue_comment_on_pull_request_returns_none(handler, fake_github, source):
    payload = _payload(
        "created",
        issue={
            "number": 12,
            "title": "PR",
            "state": "open",
            "assignees": [],
            "pull_request": {"url": "https://api.github.com/repos/acme/api/pulls/12"},
        },
    )

    assert await handler.handle(source, "issue_comment", payload) is None
    assert fake_github.calls == []


@pytest.mark.asyncio
async def test_discussion_delivery_refetches_through_graphql(handler, fake_github, source):
    fake_github.graphql_responses = [
        {"repository": {"discussion": make_discussion(9, "2024-06-05T00:00:00Z")}}
    ]
    payload = _payload("created", discussion={"number": 9, "title": "How?", "node_id": "D_9"})

    item = await handler.handle(source, "discussion", payload)

    assert item.external_id == "D_9"
    assert fake_github.graphql_calls[0]["number"] == 9


@pytest.mark.asyncio
async def test_refetch_failure_raises_sync_error(handler, source):
    """Test that an entity that cannot be re-fetched surfaces as SyncError."""
    payload = _payload(
        "closed", pull_request={"number": 404, "title": "Gone", "head": {"ref": "x"}}
    )

    with pytest.raises(SyncError):
        await handler.handle(source, "pull_request", payload)
