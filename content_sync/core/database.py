"""PostgreSQL database client with connection pooling."""

import asyncio
import json
from datetime import UTC, datetime
from types import TracebackType
from typing import ClassVar

import asyncpg

from content_sync.core.config import get_settings
from content_sync.core.logging import get_logger
from content_sync.shared.exceptions import DatabaseError
from content_sync.shared.models import (
    CanonicalContentItem,
    FileContent,
    GitHubUser,
    Participant,
    RepoSyncState,
)

logger = get_logger(__name__)


def _to_naive_utc(dt: datetime | None) -> datetime | None:
    """Convert timezone-aware datetime to naive UTC datetime.

    PostgreSQL TIMESTAMP columns (without timezone) expect naive datetimes.

    Args:
        dt: Datetime object (timezone-aware or naive), or None

    Returns:
        Naive datetime in UTC, or None
    """
    if dt is None or dt.tzinfo is None:
        return dt
    return dt.astimezone(UTC).replace(tzinfo=None)


class DatabaseClient:
    """Async PostgreSQL client with connection pooling.

    Implements the content repository, repo sync state, file cache and
    GitHub user stores on top of the tables in migrations/.
    """

    MAX_RETRIES: ClassVar[int] = 3
    RETRY_DELAYS: ClassVar[list[int]] = [2, 4, 8]

    def __init__(self) -> None:
        self.pool: asyncpg.Pool | None = None

    async def __aenter__(self) -> "DatabaseClient":
        """Create connection pool with retry logic."""
        settings = get_settings()

        for attempt in range(self.MAX_RETRIES):
            try:
                self.pool = await asyncpg.create_pool(
                    host=settings.db_host,
                    port=settings.db_port,
                    database=settings.db_name,
                    user=settings.db_user,
                    password=settings.db_password,
                    min_size=2,
                    max_size=10,
                    timeout=60.0,
                )
                logger.info("database.pool.created", min_size=2, max_size=10)
                return self
            except (asyncpg.PostgresError, OSError) as e:
                if attempt < self.MAX_RETRIES - 1:
                    logger.warning("database.pool.retry", attempt=attempt + 1, error=str(e))
                    await asyncio.sleep(self.RETRY_DELAYS[attempt])
                else:
                    logger.error("database.pool.failed", error=str(e), exc_info=True)
                    raise DatabaseError(f"Failed to create pool: {e}") from e
        raise DatabaseError("Unreachable")

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Close connection pool."""
        if self.pool:
            await self.pool.close()
            logger.info("database.pool.closed")

    async def get_repo_sync_state(
        self, source_id: str, repo_full_name: str
    ) -> RepoSyncState | None:
        """Get the sync state of a repository.

        Returns:
            RepoSyncState, or None if the repository was never synced

        Raises:
            DatabaseError: If connection pool is not initialized or query fails
        """
        if not self.pool:
            raise DatabaseError("Connection pool not initialized")

        query = """
            SELECT source_id, repo_full_name, repo_id, default_branch, is_private,
                   last_sync_at, last_pr_sync_at, last_issue_sync_at, last_discussion_sync_at,
                   pr_count, issue_count, discussion_count, error_message,
                   created_at, updated_at
            FROM github_repo_sync
            WHERE source_id = $1 AND repo_full_name = $2
        """

        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(query, source_id, repo_full_name)
                return RepoSyncState(**dict(row)) if row else None
        except asyncpg.PostgresError as e:
            logger.error("database.get_repo_sync_state.failed", error=str(e), exc_info=True)
            raise DatabaseError(f"Failed to get repo sync state: {e}") from e

    async def upsert_repo_sync_state(self, state: RepoSyncState) -> RepoSyncState:
        """Create or update the sync state row of a repository.

        Concurrent calls for the same (source_id, repo_full_name) converge on
        one row. Cursor columns only move forward and NULL inputs keep the
        stored value.

        Raises:
            DatabaseError: If connection pool is not initialized or query fails
        """
        if not self.pool:
            raise DatabaseError("Connection pool not initialized")

        query = """
            INSERT INTO github_repo_sync (
                source_id, repo_full_name, repo_id, default_branch, is_private,
                last_sync_at, last_pr_sync_at, last_issue_sync_at, last_discussion_sync_at,
                pr_count, issue_count, discussion_count, error_message,
                created_at, updated_at
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, NOW(), NOW())
            ON CONFLICT (source_id, repo_full_name)
            DO UPDATE SET
                repo_id = COALESCE(EXCLUDED.repo_id, github_repo_sync.repo_id),
                default_branch = COALESCE(EXCLUDED.default_branch, github_repo_sync.default_branch),
                is_private = COALESCE(EXCLUDED.is_private, github_repo_sync.is_private),
                last_sync_at = GREATEST(github_repo_sync.last_sync_at, EXCLUDED.last_sync_at),
                last_pr_sync_at = GREATEST(
                    github_repo_sync.last_pr_sync_at, EXCLUDED.last_pr_sync_at
                ),
                last_issue_sync_at = GREATEST(
                    github_repo_sync.last_issue_sync_at, EXCLUDED.last_issue_sync_at
                ),
                last_discussion_sync_at = GREATEST(
                    github_repo_sync.last_discussion_sync_at, EXCLUDED.last_discussion_sync_at
                ),
                pr_count = COALESCE(EXCLUDED.pr_count, github_repo_sync.pr_count),
                issue_count = COALESCE(EXCLUDED.issue_count, github_repo_sync.issue_count),
                discussion_count = COALESCE(
                    EXCLUDED.discussion_count, github_repo_sync.discussion_count
                ),
                error_message = EXCLUDED.error_message,
                updated_at = NOW()
            RETURNING source_id, repo_full_name, repo_id, default_branch, is_private,
                      last_sync_at, last_pr_sync_at, last_issue_sync_at, last_discussion_sync_at,
                      pr_count, issue_count, discussion_count, error_message,
                      created_at, updated_at
        """

        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    query,
                    state.source_id,
                    state.repo_full_name,
                    state.repo_id,
                    state.default_branch,
                    state.is_private,
                    _to_naive_utc(state.last_sync_at),
                    _to_naive_utc(state.last_pr_sync_at),
                    _to_naive_utc(state.last_issue_sync_at),
                    _to_naive_utc(state.last_discussion_sync_at),
                    state.pr_count,
                    state.issue_count,
                    state.discussion_count,
                    state.error_message,
                )
                logger.info(
                    "database.upsert_repo_sync_state.success",
                    source_id=state.source_id,
                    repo=state.repo_full_name,
                )
                return RepoSyncState(**dict(row))
        except asyncpg.PostgresError as e:
            logger.error("database.upsert_repo_sync_state.failed", error=str(e), exc_info=True)
            raise DatabaseError(f"Failed to upsert repo sync state: {e}") from e

    async def get_cached_file(
        self, source_id: str, repo_full_name: str, path: str, ref: str
    ) -> str | None:
        """Get cached file content if present and not expired.

        Raises:
            DatabaseError: If connection pool is not initialized or query fails
        """
        if not self.pool:
            raise DatabaseError("Connection pool not initialized")

        query = """
            SELECT content FROM github_file_cache
            WHERE source_id = $1 AND repo_full_name = $2 AND path = $3 AND ref = $4
              AND expires_at > $5
        """

        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    query,
                    source_id,
                    repo_full_name,
                    path,
                    ref,
                    _to_naive_utc(datetime.now(UTC)),
                )
                return row["content"] if row else None
        except asyncpg.PostgresError as e:
            logger.error("database.get_cached_file.failed", error=str(e), exc_info=True)
            raise DatabaseError(f"Failed to read file cache: {e}") from e

    async def cache_file(self, source_id: str, entry: FileContent, expires_at: datetime) -> None:
        """Store or refresh a file cache entry.

        Raises:
            DatabaseError: If connection pool is not initialized or query fails
        """
        if not self.pool:
            raise DatabaseError("Connection pool not initialized")

        query = """
            INSERT INTO github_file_cache (
                source_id, repo_full_name, path, ref, content, language, size, sha,
                expires_at, created_at
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, NOW())
            ON CONFLICT (source_id, repo_full_name, path, ref)
            DO UPDATE SET
                content = EXCLUDED.content,
                language = EXCLUDED.language,
                size = EXCLUDED.size,
                sha = EXCLUDED.sha,
                expires_at = EXCLUDED.expires_at
        """

        try:
            async with self.pool.acquire() as conn:
                await conn.execute(
                    query,
                    source_id,
                    entry.repo,
                    entry.path,
                    entry.ref,
                    entry.content,
                    entry.language,
                    entry.size,
                    entry.sha,
                    _to_naive_utc(expires_at),
                )
        except asyncpg.PostgresError as e:
            logger.error("database.cache_file.failed", error=str(e), exc_info=True)
            raise DatabaseError(f"Failed to write file cache: {e}") from e

    async def delete_expired_file_cache(self) -> int:
        """Delete expired file cache entries.

        Returns:
            Number of rows deleted
        """
        if not self.pool:
            raise DatabaseError("Connection pool not initialized")

        query = "DELETE FROM github_file_cache WHERE expires_at <= $1"

        try:
            async with self.pool.acquire() as conn:
                result = await conn.execute(query, _to_naive_utc(datetime.now(UTC)))
                # asyncpg returns a status string like "DELETE 3"
                deleted = int(result.split()[-1])
                logger.info("database.delete_expired_file_cache.success", deleted=deleted)
                return deleted
        except asyncpg.PostgresError as e:
            logger.error("database.delete_expired_file_cache.failed", error=str(e), exc_info=True)
            raise DatabaseError(f"Failed to delete expired file cache: {e}") from e

    async def upsert_github_user(self, user: GitHubUser) -> None:
        """Insert or update a contributor keyed by (source_id, github_user_id).

        Raises:
            DatabaseError: If connection pool is not initialized or query fails
        """
        if not self.pool:
            raise DatabaseError("Connection pool not initialized")

        query = """
            INSERT INTO github_users (
                source_id, github_user_id, github_login, avatar_url, type, created_at, updated_at
            ) VALUES ($1, $2, $3, $4, $5, NOW(), NOW())
            ON CONFLICT (source_id, github_user_id)
            DO UPDATE SET
                github_login = EXCLUDED.github_login,
                avatar_url = EXCLUDED.avatar_url,
                type = EXCLUDED.type,
                updated_at = NOW()
        """

        try:
            async with self.pool.acquire() as conn:
                await conn.execute(
                    query,
                    user.source_id,
                    user.github_user_id,
                    user.github_login,
                    user.avatar_url,
                    user.type,
                )
        except asyncpg.PostgresError as e:
            logger.error("database.upsert_github_user.failed", error=str(e), exc_info=True)
            raise DatabaseError(f"Failed to upsert GitHub user: {e}") from e

    async def upsert_item(self, source_id: str, item: CanonicalContentItem) -> str:
        """Insert or update a content item keyed by (source_id, external_id).

        Returns:
            Stored content item id

        Raises:
            DatabaseError: If connection pool is not initialized or query fails
        """
        if not self.pool:
            raise DatabaseError("Connection pool not initialized")

        query = """
            INSERT INTO content_items (
                source_id, external_id, type, title, content, author_external, author_name,
                created_at_source, updated_at_source, metadata, created_at, updated_at
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10::jsonb, NOW(), NOW())
            ON CONFLICT (source_id, external_id)
            DO UPDATE SET
                type = EXCLUDED.type,
                title = EXCLUDED.title,
                content = EXCLUDED.content,
                author_external = EXCLUDED.author_external,
                author_name = EXCLUDED.author_name,
                created_at_source = EXCLUDED.created_at_source,
                updated_at_source = EXCLUDED.updated_at_source,
                metadata = EXCLUDED.metadata,
                updated_at = NOW()
            RETURNING id::text
        """

        try:
            async with self.pool.acquire() as conn:
                content_item_id: str = await conn.fetchval(
                    query,
                    source_id,
                    item.external_id,
                    item.type,
                    item.title,
                    item.content,
                    item.author_external,
                    item.author_name,
                    _to_naive_utc(item.created_at_source),
                    _to_naive_utc(item.updated_at_source),
                    json.dumps(item.metadata.model_dump(mode="json")),
                )
                return content_item_id
        except asyncpg.PostgresError as e:
            logger.error(
                "database.upsert_item.failed",
                external_id=item.external_id,
                error=str(e),
                exc_info=True,
            )
            raise DatabaseError(f"Failed to upsert content item: {e}") from e

    async def create_participants_batch(
        self, content_item_id: str, participants: list[Participant]
    ) -> None:
        """Replace the participants of a content item.

        Raises:
            DatabaseError: If connection pool is not initialized or query fails
        """
        if not self.pool:
            raise DatabaseError("Connection pool not initialized")

        delete_query = "DELETE FROM content_participants WHERE content_item_id = $1::uuid"
        insert_query = """
            INSERT INTO content_participants (content_item_id, external_id, name, role, position)
            VALUES ($1::uuid, $2, $3, $4, $5)
        """

        try:
            async with self.pool.acquire() as conn:
                async with conn.transaction():
                    await conn.execute(delete_query, content_item_id)
                    await conn.executemany(
                        insert_query,
                        [
                            (content_item_id, p.external_id, p.name, p.role, position)
                            for position, p in enumerate(participants)
                        ],
                    )
        except asyncpg.PostgresError as e:
            logger.error("database.create_participants_batch.failed", error=str(e), exc_info=True)
            raise DatabaseError(f"Failed to store participants: {e}") from e
