"""Contracts for the stores and services the sync pipeline depends on.

The asyncpg DatabaseClient implements every store here; tests substitute
in-memory fakes.
"""

from datetime import datetime
from typing import Protocol, runtime_checkable

from content_sync.shared.models import (
    CanonicalContentItem,
    ContentSource,
    FileContent,
    GitHubUser,
    Participant,
    RepoSyncState,
)


@runtime_checkable
class ContentRepository(Protocol):
    """Persistence of canonical content items keyed by (source_id, external_id)."""

    async def upsert_item(self, source_id: str, item: CanonicalContentItem) -> str:
        """Insert or update an item and return its stored id."""
        ...

    async def create_participants_batch(
        self, content_item_id: str, participants: list[Participant]
    ) -> None:
        """Replace the participants attached to a stored item."""
        ...


@runtime_checkable
class RepoSyncStateStore(Protocol):
    """Per-(source_id, repo_full_name) sync state with upsert semantics."""

    async def get_repo_sync_state(
        self, source_id: str, repo_full_name: str
    ) -> RepoSyncState | None:
        """Return the stored state, or None if the repo was never synced."""
        ...

    async def upsert_repo_sync_state(self, state: RepoSyncState) -> RepoSyncState:
        """Create or update the state row and return the stored result.

        Cursor timestamps never move backwards.
        """
        ...


@runtime_checkable
class FileCacheStore(Protocol):
    """Read-through cache of decoded repository file contents."""

    async def get_cached_file(
        self, source_id: str, repo_full_name: str, path: str, ref: str
    ) -> str | None:
        """Return cached content if present and not expired."""
        ...

    async def cache_file(self, source_id: str, entry: FileContent, expires_at: datetime) -> None:
        """Store or refresh a cache entry."""
        ...


@runtime_checkable
class GitHubUserStore(Protocol):
    """Storage for repository contributors."""

    async def upsert_github_user(self, user: GitHubUser) -> None:
        """Insert or update a user keyed by (source_id, github_user_id)."""
        ...


@runtime_checkable
class CredentialsProvider(Protocol):
    """Hands back already-decrypted credentials for a source."""

    async def get_access_token(self, source: ContentSource) -> str | None:
        """Return the bearer token for the source, or None if none is stored."""
        ...
