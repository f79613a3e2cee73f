"""Structural decoding of GitHub webhook deliveries.

GitHub does not put a reliable type discriminant in webhook bodies, so each
delivery is validated against the shape its event name implies. Decoding
never raises: a delivery that is not interesting or not well-formed becomes
a RejectedDelivery carrying the reason.
"""

from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, StrictInt, StrictStr, ValidationError

# Allowed actions per event name
EVENT_ACTIONS: dict[str, frozenset[str]] = {
    "pull_request": frozenset({"opened", "edited", "closed", "reopened", "synchronize"}),
    "issues": frozenset({"opened", "edited", "closed", "reopened"}),
    "issue_comment": frozenset({"created", "edited", "deleted"}),
    "pull_request_review": frozenset({"submitted", "edited", "dismissed"}),
    "pull_request_review_comment": frozenset({"created", "edited", "deleted"}),
    "discussion": frozenset({"created", "edited", "answered", "unanswered", "reopened", "closed"}),
}

PULL_REQUEST_EVENTS = frozenset(
    {"pull_request", "pull_request_review", "pull_request_review_comment"}
)
ISSUE_EVENTS = frozenset({"issues", "issue_comment"})


class _Shape(BaseModel):
    model_config = ConfigDict(extra="allow")


class RepositoryShape(_Shape):
    full_name: StrictStr


class HeadRefShape(_Shape):
    ref: StrictStr


class PullRequestShape(_Shape):
    number: StrictInt
    title: StrictStr
    head: HeadRefShape


class IssueShape(_Shape):
    number: StrictInt
    title: StrictStr
    state: StrictStr
    assignees: list[Any]
    pull_request: dict[str, Any] | None = None


class DiscussionShape(_Shape):
    number: StrictInt
    title: StrictStr
    node_id: StrictStr


@dataclass(frozen=True)
class PullRequestDelivery:
    """A delivery that concerns a pull request."""

    event: str
    action: str
    repo: str
    number: int


@dataclass(frozen=True)
class IssueDelivery:
    """A delivery that concerns an issue (never a pull request)."""

    event: str
    action: str
    repo: str
    number: int


@dataclass(frozen=True)
class DiscussionDelivery:
    """A delivery that concerns a discussion."""

    event: str
    action: str
    repo: str
    number: int
    node_id: str


@dataclass(frozen=True)
class RejectedDelivery:
    """A delivery that produces no content item."""

    event: str
    action: str | None
    reason: str


WebhookDelivery = PullRequestDelivery | IssueDelivery | DiscussionDelivery | RejectedDelivery


def decode_webhook(event: str, payload: Any) -> WebhookDelivery:
    """Classify a webhook delivery.

    Args:
        event: Value of the X-GitHub-Event header
        payload: Parsed JSON body (untrusted)

    Returns:
        A typed delivery, or RejectedDelivery if the event/action is not
        handled or the payload does not have the expected shape

    Example:
        >>> decode_webhook("pull_request", {"action": "labeled"}).reason
        'action not handled: labeled'
    """
    if not isinstance(payload, dict):
        return RejectedDelivery(event, None, "payload is not an object")

    action = payload.get("action")
    if not isinstance(action, str):
        return RejectedDelivery(event, None, "missing action")

    allowed = EVENT_ACTIONS.get(event)
    if allowed is None:
        return RejectedDelivery(event, action, f"event not handled: {event}")
    if action not in allowed:
        return RejectedDelivery(event, action, f"action not handled: {action}")

    try:
        repo = RepositoryShape.model_validate(payload.get("repository")).full_name

        if event in PULL_REQUEST_EVENTS:
            pr = PullRequestShape.model_validate(payload.get("pull_request"))
            return PullRequestDelivery(event, action, repo, pr.number)

        if event in ISSUE_EVENTS:
            issue = IssueShape.model_validate(payload.get("issue"))
            if issue.pull_request is not None:
                return RejectedDelivery(event, action, "issue is a pull request")
            return IssueDelivery(event, action, repo, issue.number)

        discussion = DiscussionShape.model_validate(payload.get("discussion"))
        return DiscussionDelivery(event, action, repo, discussion.number, discussion.node_id)
    except ValidationError as e:
        return RejectedDelivery(event, action, f"malformed payload: {e.error_count()} errors")
