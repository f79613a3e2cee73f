"""Conversion of GitHub API entities into canonical content items.

Every function here is pure: it takes the raw dictionaries returned by the
REST or GraphQL API (plus any enrichment collections) and returns a
CanonicalContentItem. The sync service and the webhook handler both go
through these functions so that both paths produce identical items.
"""

import base64
import re
from datetime import UTC, datetime
from typing import Any

from content_sync.github.code_context import extract_code_context, extract_symbol_changes
from content_sync.github.label_filter import label_names
from content_sync.shared.models import (
    CanonicalContentItem,
    DiscussionMetadata,
    IssueMetadata,
    Participant,
    ParticipantRole,
    PullRequestMetadata,
    ReviewState,
    WikiMetadata,
)

REVIEW_COMMENT_LIMIT = 10
ISSUE_COMMENT_LIMIT = 20

NO_DESCRIPTION = "_No description provided_"
UNKNOWN_USER = "unknown"

ISSUE_REFERENCE_PATTERNS = (
    re.compile(r"#(\d+)"),
    re.compile(r"(?:close[sd]?|fix(?:e[sd])?|resolve[sd]?)\s+#(\d+)", re.IGNORECASE),
    re.compile(r"github\.com/[\w-]+/[\w-]+/issues/(\d+)"),
)

REPO_FROM_URL_RE = re.compile(r"github\.com/([^/]+/[^/]+)")

REVIEW_STATE_MARKS = {
    "APPROVED": "✓",
    "CHANGES_REQUESTED": "✗",
    "COMMENTED": "○",
    "PENDING": "◌",
    "DISMISSED": "–",
}

REACTION_KEYS = ("+1", "-1", "laugh", "hooray", "confused", "heart", "rocket", "eyes")


def parse_github_timestamp(value: str | None) -> datetime | None:
    """Parse a GitHub ISO-8601 timestamp into an aware UTC datetime."""
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def extract_issue_references(text: str) -> list[int]:
    """Collect issue numbers referenced in free text.

    Matches bare "#123", closing keywords ("fixes #123") and full issue URLs.

    Args:
        text: PR or issue body

    Returns:
        Unique issue numbers in the order they were first found

    Example:
        >>> sorted(extract_issue_references("fixes #12 and see #7, also #12"))
        [7, 12]
    """
    numbers: dict[int, None] = {}
    for pattern in ISSUE_REFERENCE_PATTERNS:
        for match in pattern.finditer(text):
            numbers.setdefault(int(match.group(1)), None)
    return list(numbers)


def derive_review_state(reviews: list[dict[str, Any]]) -> ReviewState | None:
    """Summarize a PR's reviews into a single state.

    Returns:
        "approved" if any approval and no change requests,
        "changes_requested" if any change request,
        "pending" if there are other reviews, otherwise None
    """
    states = [review.get("state") for review in reviews]
    if "CHANGES_REQUESTED" in states:
        return "changes_requested"
    if "APPROVED" in states:
        return "approved"
    if reviews:
        return "pending"
    return None


def _login(user: dict[str, Any] | None) -> str:
    if not user:
        return UNKNOWN_USER
    return str(user.get("login") or UNKNOWN_USER)


def _user_external_id(user: dict[str, Any] | None) -> str:
    if not user:
        return UNKNOWN_USER
    if user.get("id") is not None:
        return str(user["id"])
    return _login(user)


def _build_participants(
    author: dict[str, Any] | None,
    others: list[dict[str, Any] | None],
    role: ParticipantRole,
) -> list[Participant]:
    """Author first, then each distinct other user once."""
    participants = [
        Participant(external_id=_user_external_id(author), name=_login(author), role="author")
    ]
    seen = {participants[0].external_id}
    for user in others:
        external_id = _user_external_id(user)
        if external_id in seen:
            continue
        seen.add(external_id)
        participants.append(Participant(external_id=external_id, name=_login(user), role=role))
    return participants


def _render_pr_content(
    pr: dict[str, Any],
    reviews: list[dict[str, Any]],
    review_comments: list[dict[str, Any]],
    files: list[dict[str, Any]],
) -> str:
    sections = [
        f"# {pr.get('title', '')}",
        "",
        pr.get("body") or NO_DESCRIPTION,
        "",
        "## Files Changed",
        "\n".join(
            f"- `{f['filename']}` (+{f.get('additions', 0)}/-{f.get('deletions', 0)})"
            for f in files
        ),
        "",
    ]

    if reviews:
        sections.append("## Reviews")
        for review in reviews:
            state = review.get("state", "")
            mark = REVIEW_STATE_MARKS.get(state, "○")
            sections.append(f"{mark} **{_login(review.get('user'))}**: {state}")
            if review.get("body"):
                sections.append(f"> {review['body']}")
        sections.append("")

    if review_comments:
        sections.append("## Review Comments")
        for comment in review_comments[:REVIEW_COMMENT_LIMIT]:
            location = ""
            if comment.get("path"):
                location = f" on `{comment['path']}:{comment.get('line')}`"
            sections.append(f"**{_login(comment.get('user'))}**{location}:")
            sections.append(f"> {comment.get('body', '')}")
            sections.append("")

    return "\n".join(sections)


def pr_to_item(
    pr: dict[str, Any],
    reviews: list[dict[str, Any]],
    review_comments: list[dict[str, Any]],
    files: list[dict[str, Any]],
) -> CanonicalContentItem:
    """Convert a pull request and its enrichment data into a canonical item.

    Args:
        pr: Pull request from GET /repos/{repo}/pulls or /pulls/{n}
        reviews: Entries from /pulls/{n}/reviews
        review_comments: Entries from /pulls/{n}/comments
        files: Entries from /pulls/{n}/files

    Returns:
        CanonicalContentItem of type pull_request keyed "{owner}/{repo}#{number}"
    """
    repo = pr["base"]["repo"]["full_name"]
    number = pr["number"]
    user = pr.get("user")
    symbol_changes = extract_symbol_changes(files)
    merged_by = pr.get("merged_by")

    if pr.get("merged") or pr.get("merged_at"):
        state = "merged"
    else:
        state = "closed" if pr.get("state") == "closed" else "open"

    metadata = PullRequestMetadata(
        repo=repo,
        number=number,
        node_id=pr.get("node_id"),
        state=state,
        draft=bool(pr.get("draft")),
        base_branch=pr["base"].get("ref"),
        head_branch=pr["head"].get("ref"),
        base_sha=pr["base"].get("sha"),
        head_sha=pr["head"].get("sha"),
        merge_commit_sha=pr.get("merge_commit_sha"),
        labels=label_names(pr.get("labels")),
        assignees=[a["login"] for a in pr.get("assignees") or []],
        reviewers=[r["login"] for r in pr.get("requested_reviewers") or []],
        review_state=derive_review_state(reviews),
        merged_by=merged_by.get("login") if merged_by else None,
        merged_at=parse_github_timestamp(pr.get("merged_at")),
        files_changed=pr.get("changed_files") or 0,
        additions=pr.get("additions") or 0,
        deletions=pr.get("deletions") or 0,
        commits=pr.get("commits") or 0,
        comments=pr.get("comments") or 0,
        review_comments=pr.get("review_comments") or 0,
        linked_issues=extract_issue_references(pr.get("body") or ""),
        url=pr.get("url"),
        html_url=pr.get("html_url"),
        code_context=extract_code_context(files),
        symbols_added=symbol_changes.added or None,
        symbols_modified=symbol_changes.modified or None,
        symbols_removed=symbol_changes.removed or None,
        components_changed=symbol_changes.components_changed or None,
    )

    return CanonicalContentItem(
        external_id=f"{repo}#{number}",
        type="pull_request",
        title=f"PR #{number}: {pr.get('title', '')}",
        content=_render_pr_content(pr, reviews, review_comments, files),
        author_external=_user_external_id(user),
        author_name=_login(user),
        created_at_source=parse_github_timestamp(pr.get("created_at")),
        updated_at_source=parse_github_timestamp(pr.get("updated_at")),
        metadata=metadata,
        participants=_build_participants(
            user, [review.get("user") for review in reviews], "reviewer"
        ),
    )


def _render_issue_content(issue: dict[str, Any], comments: list[dict[str, Any]]) -> str:
    sections = [f"# {issue.get('title', '')}", "", issue.get("body") or NO_DESCRIPTION]
    if comments:
        sections.extend(["", "## Comments", ""])
        for comment in comments[:ISSUE_COMMENT_LIMIT]:
            sections.append(f"**{_login(comment.get('user'))}** ({comment.get('created_at')}):")
            sections.append(f"> {comment.get('body', '')}")
            sections.append("")
    return "\n".join(sections)


def issue_to_item(issue: dict[str, Any], comments: list[dict[str, Any]]) -> CanonicalContentItem:
    """Convert an issue and its comments into a canonical item.

    Args:
        issue: Issue from GET /repos/{repo}/issues or /issues/{n}
        comments: Entries from /issues/{n}/comments

    Returns:
        CanonicalContentItem of type issue keyed by the issue's node id
    """
    html_url = issue.get("html_url") or ""
    repo_match = REPO_FROM_URL_RE.search(html_url)
    user = issue.get("user")
    state_reason = issue.get("state_reason")
    milestone = issue.get("milestone")
    reactions = issue.get("reactions") or {}

    metadata = IssueMetadata(
        repo=repo_match.group(1) if repo_match else "",
        number=issue["number"],
        node_id=issue.get("node_id"),
        state="closed" if issue.get("state") == "closed" else "open",
        state_reason=None if state_reason == "duplicate" else state_reason,
        labels=label_names(issue.get("labels")),
        assignees=[a["login"] for a in issue.get("assignees") or []],
        milestone=milestone.get("title") if milestone else None,
        linked_prs=extract_issue_references(issue.get("body") or ""),
        is_pull_request=bool(issue.get("pull_request")),
        comment_count=issue.get("comments") or 0,
        reactions={key: reactions[key] for key in REACTION_KEYS if reactions.get(key, 0) > 0},
        url=issue.get("url"),
        html_url=html_url or None,
    )

    return CanonicalContentItem(
        external_id=issue["node_id"],
        type="issue",
        title=f"Issue #{issue['number']}: {issue.get('title', '')}",
        content=_render_issue_content(issue, comments),
        author_external=_user_external_id(user),
        author_name=_login(user),
        created_at_source=parse_github_timestamp(issue.get("created_at")),
        updated_at_source=parse_github_timestamp(issue.get("updated_at")),
        metadata=metadata,
        participants=_build_participants(
            user, [comment.get("user") for comment in comments], "participant"
        ),
    )


def discussion_to_item(discussion: dict[str, Any], repo: str) -> CanonicalContentItem:
    """Convert a GraphQL discussion node into a canonical thread item.

    Args:
        discussion: Node from repository.discussions (see DISCUSSIONS_QUERY)
        repo: Repository full name

    Returns:
        CanonicalContentItem of type thread keyed by the discussion node id
    """
    author = discussion.get("author")
    answer = discussion.get("answer")
    category = discussion.get("category")

    metadata = DiscussionMetadata(
        repo=repo,
        number=discussion["number"],
        node_id=discussion["id"],
        category=category.get("name") if category else None,
        is_answered=bool(answer),
        answer_id=answer.get("id") if answer else None,
        answer_author=_login(answer.get("author")) if answer else None,
        comment_count=(discussion.get("comments") or {}).get("totalCount", 0),
        upvote_count=discussion.get("upvoteCount") or 0,
        labels=label_names((discussion.get("labels") or {}).get("nodes")),
        url=discussion.get("url"),
    )

    return CanonicalContentItem(
        external_id=discussion["id"],
        type="thread",
        title=f"Discussion #{discussion['number']}: {discussion.get('title', '')}",
        content=discussion.get("body") or "",
        author_external=_user_external_id(author),
        author_name=_login(author),
        created_at_source=parse_github_timestamp(discussion.get("createdAt")),
        updated_at_source=parse_github_timestamp(discussion.get("updatedAt")),
        metadata=metadata,
        participants=_build_participants(author, [], "participant"),
    )


def decode_content(content: str, encoding: str | None) -> str:
    """Decode a contents API payload (base64 with embedded newlines) to text.

    Bytes that are not valid UTF-8 become U+FFFD.

    Raises:
        binascii.Error: If the payload is not valid base64
    """
    if encoding == "base64":
        return base64.b64decode(content).decode("utf-8", errors="replace")
    return content


def wiki_page_title(name: str) -> str:
    """Display title for a wiki page file name ("Getting-Started.md" -> "Getting Started")."""
    stem = re.sub(r"\.(?:md|markdown)$", "", name, flags=re.IGNORECASE)
    return stem.replace("-", " ")


def wiki_page_url(repo: str, path: str) -> str:
    """Browser URL of a wiki page."""
    slug = re.sub(r"\.(?:md|markdown)$", "", path, flags=re.IGNORECASE)
    return f"https://github.com/{repo}/wiki/{slug}"


def wiki_to_item(page: dict[str, Any], repo: str) -> CanonicalContentItem:
    """Convert a wiki contents entry into a canonical document item.

    The wiki contents API carries no author or timestamps, so the item has
    no participants.

    Args:
        page: File entry from GET /repos/{owner}/{name}.wiki/contents/{path}
        repo: Repository full name

    Returns:
        CanonicalContentItem of type document keyed "{repo}/wiki/{path}"
    """
    content = decode_content(page.get("content") or "", page.get("encoding"))
    path = page.get("path") or page["name"]
    html_url = wiki_page_url(repo, path)

    return CanonicalContentItem(
        external_id=f"{repo}/wiki/{path}",
        type="document",
        title=f"Wiki: {wiki_page_title(page['name'])}",
        content=content,
        metadata=WikiMetadata(
            repo=repo,
            wiki_path=path,
            sha=page.get("sha"),
            size=page.get("size"),
            url=html_url,
            html_url=html_url,
        ),
        # The only item type without participants: the contents API has no author
        participants=[],
    )
