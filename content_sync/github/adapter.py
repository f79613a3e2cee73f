"""GitHub implementation of the content source adapter contract."""

import asyncio
import re
from datetime import UTC, datetime, timedelta
from typing import Any

from content_sync.core.config import Settings
from content_sync.core.logging import get_logger, set_correlation_id
from content_sync.github.sync import GitHubSyncService, PageCallback
from content_sync.github.webhook import GitHubWebhookHandler
from content_sync.shared.contracts import (
    ContentRepository,
    CredentialsProvider,
    RepoSyncStateStore,
)
from content_sync.shared.exceptions import (
    AuthError,
    GitHubAPIError,
    StateError,
    SyncCancelledError,
    SyncError,
)
from content_sync.shared.models import (
    CanonicalContentItem,
    ContentSource,
    FetchResult,
    GitHubContentConfig,
    GitHubRepo,
    GitHubUser,
    RepoSyncState,
    SourceCredentials,
    SyncReport,
)
from content_sync.sources.base import ContentSourceAdapter
from content_sync.sources.persistence import persist_items

logger = get_logger(__name__)

PR_EXTERNAL_ID_RE = re.compile(r"^([\w.-]+/[\w.-]+)#(\d+)$")
WIKI_EXTERNAL_ID_RE = re.compile(r"^([^/]+/[^/]+)/wiki/(.+)$")

# Content type -> (RepoSyncState cursor field, count field); wiki has no cursor
CURSOR_FIELDS: dict[str, tuple[str, str]] = {
    "prs": ("last_pr_sync_at", "pr_count"),
    "issues": ("last_issue_sync_at", "issue_count"),
    "discussions": ("last_discussion_sync_at", "discussion_count"),
}


def enabled_content_types(config: GitHubContentConfig) -> list[str]:
    """Content types a source is configured to sync, in a fixed order."""
    types = []
    if config.sync_prs:
        types.append("prs")
    if config.sync_issues:
        types.append("issues")
    if config.sync_discussions:
        types.append("discussions")
    if config.sync_wiki:
        types.append("wiki")
    return types


class GitHubContentAdapter(ContentSourceAdapter):
    """Syncs pull requests, issues, discussions and wiki pages from GitHub.

    Stateless entry points (fetch_content, sync_prs, ...) take the boundary
    from the caller. sync_source() additionally drives the per-repo,
    per-content-type cursor stored in the repo sync state store:

    - never synced: bounded backfill (or lookback_days window)
    - synced: incremental pass from the stored cursor
    - a successful pass moves the cursor to the pass start time
    - a failed pass leaves the cursor unchanged so the window is retried
    """

    def __init__(
        self,
        sync_service: GitHubSyncService,
        settings: Settings,
        state_store: RepoSyncStateStore | None = None,
        repository: ContentRepository | None = None,
        credentials_provider: CredentialsProvider | None = None,
    ) -> None:
        """Initialize adapter.

        Args:
            sync_service: Paginated sync service
            settings: Service settings
            state_store: Repo sync state store (required by sync_source)
            repository: Content repository for page-by-page persistence
            credentials_provider: Source of refreshed tokens
        """
        self.sync_service = sync_service
        self.settings = settings
        self.state_store = state_store
        self.repository = repository
        self.credentials_provider = credentials_provider
        self.webhook_handler = GitHubWebhookHandler(sync_service)

    @property
    def source_type(self) -> str:
        return "github"

    async def validate_credentials(self, source: ContentSource) -> bool:
        token = source.credentials.access_token
        if not token:
            return False
        try:
            await self.sync_service.client.fetch_json("/user", token)
        except GitHubAPIError as e:
            logger.info("github.credentials.invalid", source_id=source.id, status=e.status)
            return False
        return True

    async def refresh_auth(self, source: ContentSource) -> SourceCredentials:
        if self.credentials_provider is not None:
            token = await self.credentials_provider.get_access_token(source)
            if token:
                return SourceCredentials(access_token=token)
        if source.credentials.access_token:
            return source.credentials
        raise AuthError(f"No GitHub credentials available for source {source.id}")

    async def _sync_content_type(
        self,
        source: ContentSource,
        repo: str,
        content_type: str,
        since: datetime | None,
        on_page: PageCallback | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> list[CanonicalContentItem]:
        if content_type == "prs":
            return await self.sync_service.sync_prs(
                source, repo, since, on_page=on_page, cancel_event=cancel_event
            )
        if content_type == "issues":
            return await self.sync_service.sync_issues(
                source, repo, since, on_page=on_page, cancel_event=cancel_event
            )
        if content_type == "discussions":
            return await self.sync_service.sync_discussions(
                source, repo, since, on_page=on_page, cancel_event=cancel_event
            )
        return await self.sync_service.sync_wiki(
            source, repo, on_page=on_page, cancel_event=cancel_event
        )

    async def fetch_content(
        self, source: ContentSource, since: datetime | None = None
    ) -> FetchResult:
        """Fetch every configured repo and content type concurrently.

        A failing repo/content type is reported in FetchResult.errors and
        does not affect the others. A missing or rejected token aborts.
        """
        self.sync_service.access_token(source)
        semaphore = asyncio.Semaphore(self.settings.repo_concurrency)
        jobs = [
            (repo, content_type)
            for repo in source.config.repositories
            for content_type in enabled_content_types(source.config)
        ]

        async def run(repo: str, content_type: str) -> list[CanonicalContentItem]:
            async with semaphore:
                return await self._sync_content_type(source, repo, content_type, since)

        results = await asyncio.gather(
            *(run(repo, content_type) for repo, content_type in jobs),
            return_exceptions=True,
        )

        fetch_result = FetchResult()
        for result in results:
            if isinstance(result, SyncError):
                fetch_result.errors.append(result)
            elif isinstance(result, BaseException):
                raise result
            else:
                fetch_result.items.extend(result)

        logger.info(
            "github.fetch_content.complete",
            source_id=source.id,
            items=len(fetch_result.items),
            errors=len(fetch_result.errors),
        )
        return fetch_result

    async def fetch_item(
        self, source: ContentSource, external_id: str
    ) -> CanonicalContentItem | None:
        """Fetch one item by external id.

        "owner/repo#N" is a pull request, "{repo}/wiki/{path}" a wiki page;
        anything else is resolved as an issue or discussion node id.
        """
        try:
            match = PR_EXTERNAL_ID_RE.match(external_id)
            if match:
                return await self.sync_service.fetch_pull_request(
                    source, match.group(1), int(match.group(2))
                )
            match = WIKI_EXTERNAL_ID_RE.match(external_id)
            if match:
                return await self.sync_service.fetch_wiki_page(
                    source, match.group(1), match.group(2)
                )
            return await self.sync_service.fetch_node(source, external_id)
        except SyncError as e:
            logger.info(
                "github.fetch_item.not_found",
                source_id=source.id,
                external_id=external_id,
                error=str(e),
            )
            return None

    async def handle_webhook(
        self, source: ContentSource, event: str, payload: Any
    ) -> CanonicalContentItem | None:
        return await self.webhook_handler.handle(source, event, payload)

    async def list_repositories(self, source: ContentSource) -> list[GitHubRepo]:
        return await self.sync_service.list_repositories(source)

    async def sync_prs(
        self, source: ContentSource, repo: str, since: datetime | None = None
    ) -> list[CanonicalContentItem]:
        return await self.sync_service.sync_prs(source, repo, since)

    async def sync_issues(
        self, source: ContentSource, repo: str, since: datetime | None = None
    ) -> list[CanonicalContentItem]:
        return await self.sync_service.sync_issues(source, repo, since)

    async def sync_discussions(
        self, source: ContentSource, repo: str, since: datetime | None = None
    ) -> list[CanonicalContentItem]:
        return await self.sync_service.sync_discussions(source, repo, since)

    async def sync_wiki(self, source: ContentSource, repo: str) -> list[CanonicalContentItem]:
        return await self.sync_service.sync_wiki(source, repo)

    async def sync_users(self, source: ContentSource) -> list[GitHubUser]:
        return await self.sync_service.sync_users(source)

    async def get_file_content(
        self, source: ContentSource, repo: str, path: str, ref: str | None = None
    ) -> str | None:
        return await self.sync_service.get_file_content(source, repo, path, ref)

    def _require_state_store(self) -> RepoSyncStateStore:
        if self.state_store is None:
            raise StateError("No repo sync state store configured")
        return self.state_store

    async def get_repo_sync_state(
        self, source_id: str, repo_full_name: str
    ) -> RepoSyncState | None:
        return await self._require_state_store().get_repo_sync_state(source_id, repo_full_name)

    async def update_repo_sync_state(self, state: RepoSyncState) -> RepoSyncState:
        """Upsert the sync state of a repository; overlapping calls converge on one row."""
        return await self._require_state_store().upsert_repo_sync_state(state)

    async def sync_source(
        self, source: ContentSource, cancel_event: asyncio.Event | None = None
    ) -> SyncReport:
        """Run one stateful sync pass over every configured repository.

        Items are persisted page by page when a content repository is
        configured, so a cancelled pass keeps what it already stored.

        Raises:
            AuthError: Missing or rejected token
            SyncCancelledError: cancel_event was set during the pass
        """
        self._require_state_store()
        self.sync_service.access_token(source)
        set_correlation_id()

        started_at = datetime.now(UTC)
        report = SyncReport(source_id=source.id, started_at=started_at)
        logger.info(
            "github.sync_source.started",
            source_id=source.id,
            repos=len(source.config.repositories),
        )

        semaphore = asyncio.Semaphore(self.settings.repo_concurrency)

        async def run(repo: str) -> tuple[int, list[SyncError]]:
            async with semaphore:
                return await self._sync_repo(source, repo, started_at, cancel_event)

        results = await asyncio.gather(
            *(run(repo) for repo in source.config.repositories),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result
            count, errors = result
            report.items_synced += count
            report.errors.extend(errors)
            if not errors:
                report.repos_synced += 1

        report.finished_at = datetime.now(UTC)
        logger.info(
            "github.sync_source.complete",
            source_id=source.id,
            items=report.items_synced,
            repos_synced=report.repos_synced,
            errors=len(report.errors),
        )
        return report

    async def _sync_repo(
        self,
        source: ContentSource,
        repo: str,
        pass_started_at: datetime,
        cancel_event: asyncio.Event | None,
    ) -> tuple[int, list[SyncError]]:
        state = await self.get_repo_sync_state(source.id, repo)
        lookback_since = None
        if source.config.lookback_days:
            lookback_since = pass_started_at - timedelta(days=source.config.lookback_days)

        def since_for(content_type: str) -> datetime | None:
            if state is None:
                return lookback_since
            cursor_field = CURSOR_FIELDS.get(content_type)
            cursor = getattr(state, cursor_field[0]) if cursor_field else None
            return cursor or state.last_sync_at or lookback_since

        async def persist(items: list[CanonicalContentItem]) -> None:
            if self.repository is not None:
                await persist_items(self.repository, source.id, items)

        content_types = enabled_content_types(source.config)
        results = await asyncio.gather(
            *(
                self._sync_content_type(
                    source,
                    repo,
                    content_type,
                    since_for(content_type),
                    on_page=persist,
                    cancel_event=cancel_event,
                )
                for content_type in content_types
            ),
            return_exceptions=True,
        )

        update: dict[str, Any] = {}
        errors: list[SyncError] = []
        items_synced = 0
        for content_type, result in zip(content_types, results):
            if isinstance(result, SyncError):
                errors.append(result)
            elif isinstance(result, BaseException):
                raise result
            else:
                items_synced += len(result)
                if content_type in CURSOR_FIELDS:
                    cursor_field, count_field = CURSOR_FIELDS[content_type]
                    update[cursor_field] = pass_started_at
                    update[count_field] = len(result)

        if state is None or state.repo_id is None:
            info = await self.sync_service.describe_repository(source, repo)
            if info:
                update["repo_id"] = info.get("id")
                update["default_branch"] = info.get("default_branch")
                update["is_private"] = info.get("private")

        await self.update_repo_sync_state(
            RepoSyncState(
                source_id=source.id,
                repo_full_name=repo,
                last_sync_at=pass_started_at if not errors else None,
                error_message="; ".join(str(e) for e in errors) or None,
                **update,
            )
        )
        logger.info(
            "github.sync_repo.complete",
            source_id=source.id,
            repo=repo,
            items=items_synced,
            errors=len(errors),
            incremental=state is not None,
        )
        return items_synced, errors
