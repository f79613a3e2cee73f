"""Data models for content sync."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Annotated, Literal

from pydantic import BaseModel, Field, field_validator

from content_sync.shared.exceptions import SyncError

ContentItemType = Literal["pull_request", "issue", "thread", "document"]
ParticipantRole = Literal["author", "reviewer", "participant"]
ReviewState = Literal["approved", "changes_requested", "pending"]


def _ensure_utc(v: datetime | None) -> datetime | None:
    if v is not None and v.tzinfo is None:
        return v.replace(tzinfo=UTC)
    return v


class Participant(BaseModel):
    """A person attached to a content item."""

    external_id: str = Field(..., description="GitHub user id (or login when id is unknown)")
    name: str = Field(..., description="GitHub login")
    role: ParticipantRole = Field(..., description="author, reviewer or participant")


class CodeContext(BaseModel):
    """Signal derived from the added lines of a pull request diff.

    Every list is unique and keeps the order in which values were first seen.
    """

    languages: list[str] = Field(default_factory=list)
    files: list[str] = Field(default_factory=list)
    directories: list[str] = Field(default_factory=list)
    components: list[str] = Field(default_factory=list)
    functions: list[str] = Field(default_factory=list)
    classes: list[str] = Field(default_factory=list)
    imports: list[str] = Field(default_factory=list)


class PullRequestMetadata(BaseModel):
    """Pull request specific metadata."""

    kind: Literal["pull_request"] = "pull_request"
    repo: str
    number: int
    node_id: str | None = None
    state: Literal["open", "closed", "merged"]
    draft: bool = False
    base_branch: str | None = None
    head_branch: str | None = None
    base_sha: str | None = None
    head_sha: str | None = None
    merge_commit_sha: str | None = None
    labels: list[str] = Field(default_factory=list)
    assignees: list[str] = Field(default_factory=list)
    reviewers: list[str] = Field(default_factory=list)
    review_state: ReviewState | None = None
    merged_by: str | None = None
    merged_at: datetime | None = None
    files_changed: int = 0
    additions: int = 0
    deletions: int = 0
    commits: int = 0
    comments: int = 0
    review_comments: int = 0
    linked_issues: list[int] = Field(default_factory=list)
    url: str | None = None
    html_url: str | None = None
    code_context: CodeContext = Field(default_factory=CodeContext)
    symbols_added: list[str] | None = None
    symbols_modified: list[str] | None = None
    symbols_removed: list[str] | None = None
    components_changed: list[str] | None = None


class IssueMetadata(BaseModel):
    """Issue specific metadata."""

    kind: Literal["issue"] = "issue"
    repo: str
    number: int
    node_id: str | None = None
    state: Literal["open", "closed"]
    state_reason: str | None = None
    labels: list[str] = Field(default_factory=list)
    assignees: list[str] = Field(default_factory=list)
    milestone: str | None = None
    linked_prs: list[int] = Field(default_factory=list)
    is_pull_request: bool = False
    comment_count: int = 0
    reactions: dict[str, int] = Field(default_factory=dict)
    url: str | None = None
    html_url: str | None = None


class DiscussionMetadata(BaseModel):
    """Discussion specific metadata."""

    kind: Literal["discussion"] = "discussion"
    repo: str
    number: int
    node_id: str
    category: str | None = None
    is_answered: bool = False
    answer_id: str | None = None
    answer_author: str | None = None
    comment_count: int = 0
    upvote_count: int = 0
    labels: list[str] = Field(default_factory=list)
    url: str | None = None


class WikiMetadata(BaseModel):
    """Wiki page specific metadata."""

    kind: Literal["wiki"] = "wiki"
    repo: str
    wiki_path: str
    sha: str | None = None
    size: int | None = None
    url: str | None = None
    html_url: str | None = None


ContentMetadata = Annotated[
    PullRequestMetadata | IssueMetadata | DiscussionMetadata | WikiMetadata,
    Field(discriminator="kind"),
]


class CanonicalContentItem(BaseModel):
    """Source-independent representation of a synced artifact.

    Attributes:
        external_id: Identifier unique within the source, used as the dedup key
        type: pull_request, issue, thread or document
        title: Display title
        content: Rendered markdown body
        author_external: Author's GitHub user id
        author_name: Author's GitHub login
        created_at_source: Creation time reported by GitHub
        updated_at_source: Last update time reported by GitHub
        metadata: Type-specific metadata variant
        participants: Ordered participants, author first
    """

    external_id: str = Field(..., description="Unique id within the source")
    type: ContentItemType = Field(..., description="Canonical content type")
    title: str = Field(..., description="Display title")
    content: str = Field(default="", description="Rendered markdown body")
    author_external: str | None = Field(default=None, description="Author GitHub user id")
    author_name: str | None = Field(default=None, description="Author GitHub login")
    created_at_source: datetime | None = Field(default=None, description="Created at (GitHub)")
    updated_at_source: datetime | None = Field(default=None, description="Updated at (GitHub)")
    metadata: ContentMetadata
    participants: list[Participant] = Field(default_factory=list)

    @field_validator("created_at_source", "updated_at_source")
    @classmethod
    def ensure_timezone_aware(cls, v: datetime | None) -> datetime | None:
        """Ensure timestamps are timezone-aware, adding UTC if naive."""
        return _ensure_utc(v)


class GitHubContentConfig(BaseModel):
    """Per-source GitHub sync configuration."""

    repositories: list[str] = Field(default_factory=list, description="owner/name slugs")
    sync_prs: bool = True
    sync_issues: bool = True
    sync_discussions: bool = True
    sync_wiki: bool = False
    label_filters: list[str] = Field(default_factory=list)
    exclude_labels: list[str] = Field(default_factory=list)
    lookback_days: int | None = Field(default=None, description="Window for the first sync")

    @field_validator("repositories")
    @classmethod
    def validate_repositories(cls, v: list[str]) -> list[str]:
        """Reject slugs that are not of the form owner/name."""
        for repo in v:
            owner, _, name = repo.partition("/")
            if not owner or not name or "/" in name:
                raise ValueError(f"Invalid repository slug: {repo}")
        return v


class SourceCredentials(BaseModel):
    """Already-decrypted credentials handed over by the credentials provider."""

    access_token: str | None = None
    refresh_token: str | None = None
    expires_at: datetime | None = None


class ContentSource(BaseModel):
    """A configured content source."""

    id: str
    source_type: str = "github"
    name: str | None = None
    config: GitHubContentConfig = Field(default_factory=GitHubContentConfig)
    credentials: SourceCredentials = Field(default_factory=SourceCredentials)


class RepoSyncState(BaseModel):
    """Persisted incremental sync state of one repository within one source."""

    source_id: str
    repo_full_name: str
    repo_id: int | None = None
    default_branch: str | None = None
    is_private: bool | None = None
    last_sync_at: datetime | None = None
    last_pr_sync_at: datetime | None = None
    last_issue_sync_at: datetime | None = None
    last_discussion_sync_at: datetime | None = None
    pr_count: int | None = None
    issue_count: int | None = None
    discussion_count: int | None = None
    error_message: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator(
        "last_sync_at",
        "last_pr_sync_at",
        "last_issue_sync_at",
        "last_discussion_sync_at",
        "created_at",
        "updated_at",
    )
    @classmethod
    def ensure_timezone_aware(cls, v: datetime | None) -> datetime | None:
        """Database columns are naive UTC; normalise to aware."""
        return _ensure_utc(v)


class GitHubUser(BaseModel):
    """A repository contributor."""

    source_id: str
    github_user_id: int
    github_login: str
    avatar_url: str | None = None
    type: str | None = None


class GitHubRepo(BaseModel):
    """Repository entry returned by the repository listing."""

    id: int
    full_name: str
    name: str
    owner: str
    private: bool = False
    default_branch: str | None = None
    has_wiki: bool = False
    description: str | None = None
    html_url: str | None = None
    updated_at: datetime | None = None


class FileContent(BaseModel):
    """Decoded file content from the contents API or the file cache."""

    repo: str
    path: str
    ref: str
    content: str
    language: str
    size: int | None = None
    sha: str | None = None


@dataclass
class FetchResult:
    """Outcome of one fetch_content invocation.

    Per repo/content-type failures are collected in ``errors`` instead of
    aborting the whole invocation.
    """

    items: list[CanonicalContentItem] = field(default_factory=list)
    errors: list[SyncError] = field(default_factory=list)
    has_more: bool = False
    next_cursor: str | None = None


@dataclass
class SyncReport:
    """Summary of one stateful sync pass over a source."""

    source_id: str
    started_at: datetime
    items_synced: int = 0
    repos_synced: int = 0
    errors: list[SyncError] = field(default_factory=list)
    finished_at: datetime | None = None
