"""Tests for GitHub entity to canonical item conversion."""

import base64
from datetime import UTC, datetime

from content_sync.github.converters import (
    NO_DESCRIPTION,
    REVIEW_COMMENT_LIMIT,
    decode_content,
    derive_review_state,
    discussion_to_item,
    extract_issue_references,
    issue_to_item,
    parse_github_timestamp,
    pr_to_item,
    wiki_page_title,
    wiki_to_item,
)
from content_sync.github.tests.fakes import make_discussion, make_issue, make_pr, make_user


def test_parse_github_timestamp() -> None:
    """Test that Z timestamps become aware UTC datetimes."""
    assert parse_github_timestamp("2024-06-01T12:30:00Z") == datetime(
        2024, 6, 1, 12, 30, tzinfo=UTC
    )
    assert parse_github_timestamp(None) is None
    assert parse_github_timestamp("") is None


def test_extract_issue_references_unique_in_order() -> None:
    """Test bare refs, closing keywords and URLs are collected once each."""
    text = "fixes #12 and see #7, also #12 and https://github.com/acme/api/issues/30"

    assert sorted(extract_issue_references(text)) == [7, 12, 30]
    assert extract_issue_references(text)[:2] == [12, 7]


def test_extract_issue_references_none() -> None:
    assert extract_issue_references("no refs here") == []


def test_derive_review_state() -> None:
    """Test that change requests win over approvals."""
    assert derive_review_state([]) is None
    assert derive_review_state([{"state": "COMMENTED"}]) == "pending"
    assert derive_review_state([{"state": "APPROVED"}, {"state": "COMMENTED"}]) == "approved"
    assert (
        derive_review_state([{"state": "APPROVED"}, {"state": "CHANGES_REQUESTED"}])
        == "changes_requested"
    )


def test_pr_to_item_basic_fields() -> None:
    """Test pull request identity, title and metadata."""
    pr = make_pr(42, "2024-06-01T00:00:00Z", labels=["bug"])
    pr["merged_at"] = "2024-06-01T00:00:00Z"
    pr["merged_by"] = make_user("hubot", 2)
    files = [
        {"filename": "src/Foo.tsx", "additions": 3, "deletions": 1, "patch": "+function Foo() {}"}
    ]

    item = pr_to_item(pr, [{"state": "APPROVED", "user": make_user("mona", 3)}], [], files)

    assert item.external_id == "acme/api#42"
    assert item.type == "pull_request"
    assert item.title == "PR #42: Change 42"
    assert item.author_external == "1"
    assert item.author_name == "octocat"
    assert item.updated_at_source == datetime(2024, 6, 1, tzinfo=UTC)

    metadata = item.metadata
    assert metadata.kind == "pull_request"
    assert metadata.state == "merged"
    assert metadata.merged_by == "hubot"
    assert metadata.labels == ["bug"]
    assert metadata.review_state == "approved"
    assert metadata.linked_issues == [12]
    assert metadata.head_branch == "feature-42"
    assert metadata.code_context.components == ["Foo"]
    assert metadata.symbols_added == ["Foo"]
    assert metadata.symbols_removed is None


def test_pr_to_item_participants_author_first_deduplicated() -> None:
    """Test that the author comes first and each reviewer appears once."""
    pr = make_pr(1, "2024-06-01T00:00:00Z")
    reviews = [
        {"state": "COMMENTED", "user": make_user("mona", 3)},
        {"state": "APPROVED", "user": make_user("mona", 3)},
        {"state": "COMMENTED", "user": make_user("octocat", 1)},
        {"state": "COMMENTED", "user": None},
    ]

    item = pr_to_item(pr, reviews, [], [])

    assert [(p.name, p.role) for p in item.participants] == [
        ("octocat", "author"),
        ("mona", "reviewer"),
        ("unknown", "reviewer"),
    ]


def test_pr_to_item_renders_markdown() -> None:
    """Test the rendered sections of a pull request."""
    pr = make_pr(5, "2024-06-01T00:00:00Z")
    pr["body"] = None
    reviews = [{"state": "CHANGES_REQUESTED", "user": make_user("mona", 3), "body": "Needs tests"}]
    review_comments = [
        {"user": make_user("mona", 3), "path": "api.py", "line": 10, "body": "typo"}
    ]
    files = [{"filename": "api.py", "additions": 2, "deletions": 0}]

    content = pr_to_item(pr, reviews, review_comments, files).content

    assert content.startswith("# Change 5\n\n" + NO_DESCRIPTION)
    assert "## Files Changed\n- `api.py` (+2/-0)" in content
    assert "✗ **mona**: CHANGES_REQUESTED\n> Needs tests" in content
    assert "**mona** on `api.py:10`:\n> typo" in content


def test_pr_to_item_caps_review_comments() -> None:
    """Test that only the first review comments are rendered."""
    pr = make_pr(6, "2024-06-01T00:00:00Z")
    review_comments = [
        {"user": make_user("mona", 3), "body": f"comment-{i}"}
        for i in range(REVIEW_COMMENT_LIMIT + 5)
    ]

    content = pr_to_item(pr, [], review_comments, []).content

    assert f"comment-{REVIEW_COMMENT_LIMIT - 1}" in content
    assert f"comment-{REVIEW_COMMENT_LIMIT}" not in content


def test_pr_to_item_closed_unmerged() -> None:
    pr = make_pr(7, "2024-06-01T00:00:00Z")
    pr["state"] = "closed"

    assert pr_to_item(pr, [], [], []).metadata.state == "closed"


def test_issue_to_item() -> None:
    """Test issue identity, metadata and comment participants."""
    issue = make_issue(12, "2024-06-02T00:00:00Z", labels=["bug", "p1"])
    issue["reactions"] = {"+1": 3, "heart": 0, "total_count": 3}
    issue["milestone"] = {"title": "v1"}
    comments = [
        {"user": make_user("mona", 3), "body": "Same here", "created_at": "2024-06-02T01:00:00Z"},
        {"user": make_user("hubot", 2), "body": "Looking", "created_at": "2024-06-02T02:00:00Z"},
    ]

    item = issue_to_item(issue, comments)

    assert item.external_id == "I_12"
    assert item.type == "issue"
    assert item.title == "Issue #12: Issue 12"
    assert item.metadata.repo == "acme/api"
    assert item.metadata.labels == ["bug", "p1"]
    assert item.metadata.milestone == "v1"
    assert item.metadata.reactions == {"+1": 3}
    assert item.metadata.linked_prs == [3]
    assert [(p.name, p.role) for p in item.participants] == [
        ("hubot", "author"),
        ("mona", "participant"),
    ]
    assert "## Comments" in item.content
    assert "**mona** (2024-06-02T01:00:00Z):\n> Same here" in item.content


def test_issue_to_item_without_author() -> None:
    """Test that a deleted author maps to the unknown user."""
    issue = make_issue(13, "2024-06-02T00:00:00Z")
    issue["user"] = None

    item = issue_to_item(issue, [])

    assert item.author_name == "unknown"
    assert item.participants[0].external_id == "unknown"


def test_discussion_to_item() -> None:
    """Test that discussions become thread items keyed by node id."""
    discussion = make_discussion(9, "2024-06-03T00:00:00Z")
    discussion["answer"] = {"id": "DC_1", "author": {"login": "hubot"}}

    item = discussion_to_item(discussion, "acme/api")

    assert item.external_id == "D_9"
    assert item.type == "thread"
    assert item.title == "Discussion #9: Question 9"
    assert item.content == "How do I deploy?"
    assert item.metadata.category == "Q&A"
    assert item.metadata.is_answered is True
    assert item.metadata.answer_author == "hubot"
    assert item.metadata.comment_count == 2
    assert item.metadata.labels == ["help"]
    assert item.author_external == "mona"


def test_decode_content_base64() -> None:
    assert decode_content("IyBIZWxsbw==", "base64") == "# Hello"
    assert decode_content("IyBI\nZWxsbw==\n", "base64") == "# Hello"
    assert decode_content("plain", None) == "plain"


def test_decode_content_replaces_invalid_utf8() -> None:
    """Test that latin-1 text and binary bytes decode with replacement characters."""
    latin1 = base64.b64encode("café".encode("latin-1")).decode()
    binary = base64.b64encode(b"\x89PNG\r\n\x1a\n\xff\xfe").decode()

    assert decode_content(latin1, "base64") == "caf\ufffd"
    assert "\ufffd" in decode_content(binary, "base64")


def test_wiki_page_title() -> None:
    assert wiki_page_title("Getting-Started.md") == "Getting Started"
    assert wiki_page_title("Home.markdown") == "Home"


def test_wiki_to_item() -> None:
    """Test that wiki pages become documents; they are the only items without participants."""
    page = {
        "name": "Getting-Started.md",
        "path": "Getting-Started.md",
        "sha": "abc",
        "size": 7,
        "content": "IyBIZWxsbw==",
        "encoding": "base64",
    }

    item = wiki_to_item(page, "acme/api")

    assert item.external_id == "acme/api/wiki/Getting-Started.md"
    assert item.type == "document"
    assert item.title == "Wiki: Getting Started"
    assert item.content == "# Hello"
    assert item.participants == []
    assert item.metadata.html_url == "https://github.com/acme/api/wiki/Getting-Started"
