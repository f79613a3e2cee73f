"""Tests for webhook delivery decoding."""

from typing import Any

import pytest

from content_sync.github.payloads import (
    DiscussionDelivery,
    IssueDelivery,
    PullRequestDelivery,
    RejectedDelivery,
    decode_webhook,
)


def _pull_request_payload(action: str = "opened") -> dict[str, Any]:
    return {
        "action": action,
        "repository": {"full_name": "acme/api", "id": 1},
        "pull_request": {"number": 42, "title": "Add cache", "head": {"ref": "feature"}},
    }


def _issue_payload(action: str = "opened", pull_request: bool = False) -> dict[str, Any]:
    issue: dict[str, Any] = {"number": 12, "title": "Crash", "state": "open", "assignees": []}
    if pull_request:
        issue["pull_request"] = {"url": "https://api.github.com/repos/acme/api/pulls/12"}
    return {"action": action, "repository": {"full_name": "acme/api"}, "issue": issue}


def test_decode_pull_request() -> None:
    delivery = decode_webhook("pull_request", _pull_request_payload("synchronize"))

    assert delivery == PullRequestDelivery("pull_request", "synchronize", "acme/api", 42)


@pytest.mark.parametrize(
    ("event", "action"),
    [("pull_request_review", "submitted"), ("pull_request_review_comment", "created")],
)
def test_decode_review_events_refer_to_pull_request(event: str, action: str) -> None:
    delivery = decode_webhook(event, _pull_request_payload(action))

    assert isinstance(delivery, PullRequestDelivery)
    assert delivery.number == 42


def test_decode_issue() -> None:
    delivery = decode_webhook("issues", _issue_payload("closed"))

    assert delivery == IssueDelivery("issues", "closed", "acme/api", 12)


def test_decode_issue_comment_on_pull_request_rejected() -> None:
    """Test that comments on PRs (issue with pull_request) are not issues."""
    delivery = decode_webhook("issue_comment", _issue_payload("created", pull_request=True))

    assert isinstance(delivery, RejectedDelivery)
    assert delivery.reason == "issue is a pull request"


def test_decode_discussion() -> None:
    payload = {
        "action": "answered",
        "repository": {"full_name": "acme/api"},
        "discussion": {"number": 9, "title": "How?", "node_id": "D_9"},
    }

    delivery = decode_webhook("discussion", payload)

    assert delivery == DiscussionDelivery("discussion", "answered", "acme/api", 9, "D_9")


def test_unhandled_action_rejected() -> None:
    delivery = decode_webhook("pull_request", _pull_request_payload("labeled"))

    assert isinstance(delivery, RejectedDelivery)
    assert delivery.reason == "action not handled: labeled"


def test_unhandled_event_rejected() -> None:
    delivery = decode_webhook("push", {"action": "created"})

    assert isinstance(delivery, RejectedDelivery)
    assert delivery.reason == "event not handled: push"


@pytest.mark.parametrize(
    ("payload", "reason"),
    [
        ([1, 2], "payload is not an object"),
        ("text", "payload is not an object"),
        ({"repository": {"full_name": "acme/api"}}, "missing action"),
    ],
)
def test_non_object_or_missing_action_rejected(payload: Any, reason: str) -> None:
    delivery = decode_webhook("issues", payload)

    assert isinstance(delivery, RejectedDelivery)
    assert delivery.reason == reason


def test_wrong_field_types_rejected() -> None:
    """Test that a string number fails the shape check instead of being coerced."""
    payload = _pull_request_payload()
    payload["pull_request"]["number"] = "42"

    delivery = decode_webhook("pull_request", payload)

    assert isinstance(delivery, RejectedDelivery)
    assert delivery.reason.startswith("malformed payload")


def test_missing_repository_rejected() -> None:
    payload = _issue_payload()
    del payload["repository"]

    delivery = decode_webhook("issues", payload)

    assert isinstance(delivery, RejectedDelivery)
    assert delivery.reason.startswith("malformed payload")
