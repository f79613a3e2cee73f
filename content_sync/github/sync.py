"""Paginated GitHub content sync with enrichment and label filtering."""

import asyncio
import binascii
from collections.abc import Awaitable, Callable, Coroutine
from datetime import UTC, datetime, timedelta
from typing import Any, TypeVar

from content_sync.core.config import Settings
from content_sync.core.logging import get_logger
from content_sync.github.client import GitHubClient
from content_sync.github.code_context import detect_language
from content_sync.github.converters import (
    decode_content,
    discussion_to_item,
    issue_to_item,
    parse_github_timestamp,
    pr_to_item,
    wiki_to_item,
)
from content_sync.github.label_filter import label_names, passes_label_filters
from content_sync.shared.contracts import FileCacheStore, GitHubUserStore
from content_sync.shared.exceptions import (
    AuthError,
    DatabaseError,
    GitHubAPIError,
    SyncCancelledError,
    SyncError,
)
from content_sync.shared.models import (
    CanonicalContentItem,
    ContentSource,
    FileContent,
    GitHubRepo,
    GitHubUser,
)

logger = get_logger(__name__)

T = TypeVar("T")

PageCallback = Callable[[list[CanonicalContentItem]], Awaitable[None]]

DISCUSSION_FIELDS = """
    id
    number
    title
    body
    author { login }
    category { name }
    answer { id author { login } }
    comments { totalCount }
    upvoteCount
    labels(first: 10) { nodes { name } }
    url
    createdAt
    updatedAt
"""

DISCUSSIONS_QUERY = (
    """
query($owner: String!, $name: String!, $first: Int!, $cursor: String) {
  repository(owner: $owner, name: $name) {
    discussions(first: $first, after: $cursor, orderBy: {field: UPDATED_AT, direction: DESC}) {
      pageInfo { hasNextPage endCursor }
      nodes {"""
    + DISCUSSION_FIELDS
    + """}
    }
  }
}
"""
)

DISCUSSION_QUERY = (
    """
query($owner: String!, $name: String!, $number: Int!) {
  repository(owner: $owner, name: $name) {
    discussion(number: $number) {"""
    + DISCUSSION_FIELDS
    + """}
  }
}
"""
)

NODE_QUERY = (
    """
query($id: ID!) {
  node(id: $id) {
    __typename
    ... on Issue { number repository { nameWithOwner } }
    ... on Discussion {
      repository { nameWithOwner }"""
    + DISCUSSION_FIELDS
    + """}
  }
}
"""
)

MARKDOWN_SUFFIXES = (".md", ".markdown")


def _is_markdown_file(entry: dict[str, Any]) -> bool:
    return entry.get("type") == "file" and str(entry.get("name", "")).lower().endswith(
        MARKDOWN_SUFFIXES
    )


def _as_utc(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def _updated_since(entity_updated_at: str | None, since: datetime | None) -> bool:
    if since is None:
        return True
    updated_at = parse_github_timestamp(entity_updated_at)
    return updated_at is not None and updated_at >= since


def _split_repo(repo: str) -> tuple[str, str]:
    owner, _, name = repo.partition("/")
    return owner, name


class GitHubSyncService:
    """Fetches and converts GitHub content for one source at a time.

    Pages within a repo/content type are fetched strictly in order because
    each continuation decision depends on the previous page. Enrichment
    calls within a page run with bounded concurrency and results keep the
    API's ordering.

    Stop conditions for list pagination:
    1. A page shorter than the page size (exhausted)
    2. A page containing an entity updated before ``since`` (descending order)
    3. The configured page ceiling
    """

    def __init__(
        self,
        client: GitHubClient,
        settings: Settings,
        file_cache: FileCacheStore | None = None,
        user_store: GitHubUserStore | None = None,
    ) -> None:
        """Initialize sync service.

        Args:
            client: GitHub API client (session already opened)
            settings: Service settings (page sizes, ceilings, concurrency)
            file_cache: Optional cache for get_file_content()
            user_store: Optional store for sync_users()
        """
        self.client = client
        self.settings = settings
        self.file_cache = file_cache
        self.user_store = user_store

    @staticmethod
    def access_token(source: ContentSource) -> str:
        """Return the source's bearer token.

        Raises:
            AuthError: If the source has no token
        """
        token = source.credentials.access_token
        if not token:
            raise AuthError(f"No GitHub access token configured for source {source.id}")
        return token

    @staticmethod
    def _check_cancelled(
        cancel_event: asyncio.Event | None, source: ContentSource, repo: str, content_type: str
    ) -> None:
        if cancel_event is not None and cancel_event.is_set():
            logger.info(
                "github.sync.cancelled",
                source_id=source.id,
                repo=repo,
                content_type=content_type,
            )
            raise SyncCancelledError(f"Sync of {content_type} for {repo} was cancelled")

    async def _fetch_primary(
        self,
        source: ContentSource,
        repo: str,
        content_type: str,
        endpoint: str,
        token: str,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Fetch a primary listing; failures abort the repo/content type."""
        try:
            return await self.client.fetch_json(endpoint, token, params=params)
        except GitHubAPIError as e:
            if e.status == 401:
                raise AuthError(f"GitHub rejected the token for source {source.id}") from e
            logger.error(
                "github.sync.page_failed",
                source_id=source.id,
                repo=repo,
                content_type=content_type,
                endpoint=endpoint,
                status=e.status,
                error=str(e),
            )
            raise SyncError(
                f"Failed to fetch {content_type} for {repo}: {e}",
                source_id=source.id,
                repo=repo,
                content_type=content_type,
                cause=e,
            ) from e

    async def _graphql_primary(
        self,
        source: ContentSource,
        repo: str,
        content_type: str,
        token: str,
        query: str,
        variables: dict[str, Any],
    ) -> dict[str, Any]:
        try:
            return await self.client.graphql(token, query, variables)
        except GitHubAPIError as e:
            if e.status == 401:
                raise AuthError(f"GitHub rejected the token for source {source.id}") from e
            logger.error(
                "github.sync.page_failed",
                source_id=source.id,
                repo=repo,
                content_type=content_type,
                status=e.status,
                error=str(e),
            )
            raise SyncError(
                f"Failed to fetch {content_type} for {repo}: {e}",
                source_id=source.id,
                repo=repo,
                content_type=content_type,
                cause=e,
            ) from e

    async def _fetch_enrichment(
        self, endpoint: str, token: str, params: dict[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        """Fetch a secondary collection; any failure degrades to an empty list."""
        try:
            data = await self.client.fetch_json(endpoint, token, params=params)
        except GitHubAPIError as e:
            logger.debug("github.enrichment.failed", endpoint=endpoint, error=str(e))
            return []
        return data if isinstance(data, list) else []

    async def _gather_bounded(self, coros: list[Coroutine[Any, Any, T]]) -> list[T]:
        """Run coroutines with bounded concurrency, preserving input order."""
        semaphore = asyncio.Semaphore(self.settings.enrichment_concurrency)

        async def run(coro: Coroutine[Any, Any, T]) -> T:
            async with semaphore:
                return await coro

        return list(await asyncio.gather(*(run(c) for c in coros)))

    async def build_pr_item(
        self, repo: str, pr: dict[str, Any], token: str
    ) -> CanonicalContentItem:
        """Enrich a pull request with reviews, review comments and files, then convert."""
        base = f"/repos/{repo}/pulls/{pr['number']}"
        reviews, review_comments, files = await asyncio.gather(
            self._fetch_enrichment(f"{base}/reviews", token, {"per_page": 100}),
            self._fetch_enrichment(f"{base}/comments", token, {"per_page": 100}),
            self._fetch_enrichment(f"{base}/files", token, {"per_page": 100}),
        )
        return pr_to_item(pr, reviews, review_comments, files)

    async def build_issue_item(
        self, repo: str, issue: dict[str, Any], token: str
    ) -> CanonicalContentItem:
        """Enrich an issue with its comments, then convert."""
        comments = await self._fetch_enrichment(
            f"/repos/{repo}/issues/{issue['number']}/comments", token, {"per_page": 100}
        )
        return issue_to_item(issue, comments)

    async def sync_prs(
        self,
        source: ContentSource,
        repo: str,
        since: datetime | None = None,
        *,
        on_page: PageCallback | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> list[CanonicalContentItem]:
        """Sync pull requests of one repository, newest update first.

        Args:
            source: Content source (token, label filters)
            repo: Repository full name
            since: Only return PRs updated at or after this time
            on_page: Awaited with each page's converted items
            cancel_event: When set, the sync stops at the next page boundary

        Returns:
            Converted PRs in API order

        Raises:
            AuthError: Missing or rejected token
            SyncError: A list page could not be fetched
            SyncCancelledError: cancel_event was set
        """
        token = self.access_token(source)
        since = _as_utc(since)
        config = source.config
        page_size = self.settings.pr_page_size
        items: list[CanonicalContentItem] = []

        for page in range(1, self.settings.pr_max_pages + 1):
            self._check_cancelled(cancel_event, source, repo, "prs")
            prs = await self._fetch_primary(
                source,
                repo,
                "prs",
                f"/repos/{repo}/pulls",
                token,
                {
                    "state": "all",
                    "sort": "updated",
                    "direction": "desc",
                    "per_page": page_size,
                    "page": page,
                },
            )
            prs = prs if isinstance(prs, list) else []

            in_window = [pr for pr in prs if _updated_since(pr.get("updated_at"), since)]
            crossed_since = len(in_window) < len(prs)
            selected = [
                pr
                for pr in in_window
                if passes_label_filters(
                    label_names(pr.get("labels")), config.label_filters, config.exclude_labels
                )
            ]

            page_items = await self._gather_bounded(
                [self.build_pr_item(repo, pr, token) for pr in selected]
            )
            items.extend(page_items)
            if on_page and page_items:
                await on_page(page_items)

            logger.info(
                "github.sync.prs.page",
                source_id=source.id,
                repo=repo,
                page=page,
                fetched=len(prs),
                selected=len(page_items),
            )

            if crossed_since or len(prs) < page_size:
                break

        logger.info("github.sync.prs.complete", source_id=source.id, repo=repo, total=len(items))
        return items

    async def sync_issues(
        self,
        source: ContentSource,
        repo: str,
        since: datetime | None = None,
        *,
        on_page: PageCallback | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> list[CanonicalContentItem]:
        """Sync issues of one repository, newest update first.

        The issues endpoint also lists pull requests; those entries are
        skipped. ``since`` is sent to the API and also used for early exit.

        Returns:
            Converted issues in API order

        Raises:
            AuthError: Missing or rejected token
            SyncError: A list page could not be fetched
            SyncCancelledError: cancel_event was set
        """
        token = self.access_token(source)
        since = _as_utc(since)
        config = source.config
        page_size = self.settings.issue_page_size
        items: list[CanonicalContentItem] = []

        for page in range(1, self.settings.issue_max_pages + 1):
            self._check_cancelled(cancel_event, source, repo, "issues")
            params: dict[str, Any] = {
                "state": "all",
                "sort": "updated",
                "direction": "desc",
                "per_page": page_size,
                "page": page,
            }
            if since is not None:
                params["since"] = since.isoformat().replace("+00:00", "Z")

            issues = await self._fetch_primary(
                source, repo, "issues", f"/repos/{repo}/issues", token, params
            )
            issues = issues if isinstance(issues, list) else []

            in_window = [i for i in issues if _updated_since(i.get("updated_at"), since)]
            crossed_since = len(in_window) < len(issues)
            selected = [
                issue
                for issue in in_window
                if not issue.get("pull_request")
                and passes_label_filters(
                    label_names(issue.get("labels")), config.label_filters, config.exclude_labels
                )
            ]

            page_items = await self._gather_bounded(
                [self.build_issue_item(repo, issue, token) for issue in selected]
            )
            items.extend(page_items)
            if on_page and page_items:
                await on_page(page_items)

            logger.info(
                "github.sync.issues.page",
                source_id=source.id,
                repo=repo,
                page=page,
                fetched=len(issues),
                selected=len(page_items),
            )

            if crossed_since or len(issues) < page_size:
                break

        logger.info(
            "github.sync.issues.complete", source_id=source.id, repo=repo, total=len(items)
        )
        return items

    async def sync_discussions(
        self,
        source: ContentSource,
        repo: str,
        since: datetime | None = None,
        *,
        on_page: PageCallback | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> list[CanonicalContentItem]:
        """Sync discussions of one repository through GraphQL cursor pagination.

        Returns:
            Converted discussions, most recently updated first

        Raises:
            AuthError: Missing or rejected token
            SyncError: A GraphQL page could not be fetched
            SyncCancelledError: cancel_event was set
        """
        token = self.access_token(source)
        since = _as_utc(since)
        owner, name = _split_repo(repo)
        items: list[CanonicalContentItem] = []
        cursor: str | None = None

        for page in range(1, self.settings.discussion_max_pages + 1):
            self._check_cancelled(cancel_event, source, repo, "discussions")
            data = await self._graphql_primary(
                source,
                repo,
                "discussions",
                token,
                DISCUSSIONS_QUERY,
                {
                    "owner": owner,
                    "name": name,
                    "first": self.settings.discussion_page_size,
                    "cursor": cursor,
                },
            )
            repository = data.get("repository")
            if not repository:
                logger.info("github.sync.discussions.no_repository", source_id=source.id, repo=repo)
                break

            connection = repository.get("discussions") or {}
            nodes = [n for n in connection.get("nodes") or [] if n]
            in_window = [n for n in nodes if _updated_since(n.get("updatedAt"), since)]
            crossed_since = len(in_window) < len(nodes)

            page_items = [discussion_to_item(node, repo) for node in in_window]
            items.extend(page_items)
            if on_page and page_items:
                await on_page(page_items)

            logger.info(
                "github.sync.discussions.page",
                source_id=source.id,
                repo=repo,
                page=page,
                fetched=len(nodes),
                selected=len(page_items),
            )

            page_info = connection.get("pageInfo") or {}
            if crossed_since or not page_info.get("hasNextPage"):
                break
            cursor = page_info.get("endCursor")

        logger.info(
            "github.sync.discussions.complete", source_id=source.id, repo=repo, total=len(items)
        )
        return items

    async def sync_wiki(
        self,
        source: ContentSource,
        repo: str,
        *,
        on_page: PageCallback | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> list[CanonicalContentItem]:
        """Sync markdown wiki pages of one repository.

        Only the root of the wiki tree and one directory level below it are
        read. A wiki tree that cannot be listed is treated as empty.

        Raises:
            AuthError: Missing or rejected token
            SyncError: Repository info could not be fetched
            SyncCancelledError: cancel_event was set
        """
        token = self.access_token(source)
        owner, name = _split_repo(repo)
        wiki_base = f"/repos/{owner}/{name}.wiki/contents"

        info = await self._fetch_primary(source, repo, "wiki", f"/repos/{repo}", token)
        if not (info or {}).get("has_wiki"):
            logger.info("github.sync.wiki.disabled", source_id=source.id, repo=repo)
            return []

        try:
            root = await self.client.fetch_json(wiki_base, token)
        except GitHubAPIError as e:
            logger.info("github.sync.wiki.missing", source_id=source.id, repo=repo, error=str(e))
            return []
        if not isinstance(root, list):
            return []

        pages = [entry for entry in root if _is_markdown_file(entry)]
        directories = [entry for entry in root if entry.get("type") == "dir"]

        for directory in directories[: self.settings.wiki_max_dirs]:
            self._check_cancelled(cancel_event, source, repo, "wiki")
            try:
                entries = await self.client.fetch_json(f"{wiki_base}/{directory['path']}", token)
            except GitHubAPIError as e:
                logger.debug(
                    "github.sync.wiki.dir_failed", repo=repo, path=directory["path"], error=str(e)
                )
                continue
            if isinstance(entries, list):
                markdown = [entry for entry in entries if _is_markdown_file(entry)]
                pages.extend(markdown[: self.settings.wiki_max_pages_per_dir])

        self._check_cancelled(cancel_event, source, repo, "wiki")
        fetched = await self._gather_bounded(
            [self._fetch_wiki_entry(wiki_base, page["path"], token) for page in pages]
        )
        items = []
        for page in fetched:
            item = self._wiki_item(page, repo) if page else None
            if item:
                items.append(item)
        if on_page and items:
            await on_page(items)

        logger.info("github.sync.wiki.complete", source_id=source.id, repo=repo, total=len(items))
        return items

    async def _fetch_wiki_entry(
        self, wiki_base: str, path: str, token: str
    ) -> dict[str, Any] | None:
        try:
            page = await self.client.fetch_json(f"{wiki_base}/{path}", token)
        except GitHubAPIError as e:
            logger.debug("github.sync.wiki.page_failed", path=path, error=str(e))
            return None
        return page if isinstance(page, dict) else None

    def _wiki_item(self, page: dict[str, Any], repo: str) -> CanonicalContentItem | None:
        try:
            return wiki_to_item(page, repo)
        except binascii.Error as e:
            logger.warning(
                "github.sync.wiki.page_failed", repo=repo, path=page.get("path"), error=str(e)
            )
            return None

    async def list_repositories(self, source: ContentSource) -> list[GitHubRepo]:
        """List repositories visible to the source's token.

        Raises:
            AuthError: Missing or rejected token
            SyncError: A listing page could not be fetched
        """
        token = self.access_token(source)
        page_size = self.settings.repo_page_size
        repos: list[GitHubRepo] = []

        for page in range(1, self.settings.repo_max_pages + 1):
            data = await self._fetch_primary(
                source,
                "*",
                "repositories",
                "/user/repos",
                token,
                {"per_page": page_size, "page": page, "sort": "updated"},
            )
            data = data if isinstance(data, list) else []
            for raw in data:
                repos.append(
                    GitHubRepo(
                        id=raw["id"],
                        full_name=raw["full_name"],
                        name=raw["name"],
                        owner=(raw.get("owner") or {}).get("login", raw["full_name"].split("/")[0]),
                        private=bool(raw.get("private")),
                        default_branch=raw.get("default_branch"),
                        has_wiki=bool(raw.get("has_wiki")),
                        description=raw.get("description"),
                        html_url=raw.get("html_url"),
                        updated_at=parse_github_timestamp(raw.get("updated_at")),
                    )
                )
            if len(data) < page_size:
                break

        logger.info("github.repositories.listed", source_id=source.id, total=len(repos))
        return repos

    async def describe_repository(
        self, source: ContentSource, repo: str
    ) -> dict[str, Any] | None:
        """Fetch repository info (id, default branch, visibility); None on failure."""
        token = self.access_token(source)
        try:
            info = await self.client.fetch_json(f"/repos/{repo}", token)
        except GitHubAPIError as e:
            logger.debug("github.repository.describe_failed", repo=repo, error=str(e))
            return None
        return info if isinstance(info, dict) else None

    async def sync_users(self, source: ContentSource) -> list[GitHubUser]:
        """Collect contributors of every configured repository.

        Contributor listing failures degrade to no users for that repo; store
        failures are logged and skipped.
        """
        token = self.access_token(source)
        users: dict[int, GitHubUser] = {}

        for repo in source.config.repositories:
            contributors = await self._fetch_enrichment(
                f"/repos/{repo}/contributors", token, {"per_page": 100}
            )
            for contributor in contributors:
                if contributor.get("id") is None or not contributor.get("login"):
                    continue
                users.setdefault(
                    contributor["id"],
                    GitHubUser(
                        source_id=source.id,
                        github_user_id=contributor["id"],
                        github_login=contributor["login"],
                        avatar_url=contributor.get("avatar_url"),
                        type=contributor.get("type"),
                    ),
                )

        if self.user_store is not None:
            for user in users.values():
                try:
                    await self.user_store.upsert_github_user(user)
                except DatabaseError as e:
                    logger.warning(
                        "github.users.store_failed",
                        source_id=source.id,
                        login=user.github_login,
                        error=str(e),
                    )

        logger.info("github.users.synced", source_id=source.id, total=len(users))
        return list(users.values())

    async def get_file_content(
        self,
        source: ContentSource,
        repo: str,
        path: str,
        ref: str | None = None,
    ) -> str | None:
        """Return decoded file content, reading through the file cache.

        Returns:
            File text, or None if GitHub could not provide it
        """
        token = self.access_token(source)
        cache_ref = ref or "HEAD"

        if self.file_cache is not None:
            try:
                cached = await self.file_cache.get_cached_file(source.id, repo, path, cache_ref)
            except DatabaseError as e:
                logger.warning("github.file_cache.read_failed", repo=repo, path=path, error=str(e))
                cached = None
            if cached is not None:
                return cached

        try:
            data = await self.client.fetch_json(
                f"/repos/{repo}/contents/{path}", token, params={"ref": ref} if ref else None
            )
        except GitHubAPIError as e:
            logger.info("github.file_content.unavailable", repo=repo, path=path, error=str(e))
            return None
        if not isinstance(data, dict) or data.get("content") is None:
            return None

        try:
            content = decode_content(data["content"], data.get("encoding"))
        except binascii.Error as e:
            logger.info("github.file_content.unavailable", repo=repo, path=path, error=str(e))
            return None

        if self.file_cache is not None:
            entry = FileContent(
                repo=repo,
                path=path,
                ref=cache_ref,
                content=content,
                language=detect_language(path),
                size=data.get("size"),
                sha=data.get("sha"),
            )
            expires_at = datetime.now(UTC) + timedelta(days=self.settings.file_cache_ttl_days)
            try:
                await self.file_cache.cache_file(source.id, entry, expires_at)
            except DatabaseError as e:
                logger.warning("github.file_cache.write_failed", repo=repo, path=path, error=str(e))

        return content

    async def fetch_pull_request(
        self, source: ContentSource, repo: str, number: int
    ) -> CanonicalContentItem:
        """Re-fetch one pull request with its enrichment data and convert it.

        Raises:
            AuthError: Missing or rejected token
            SyncError: The pull request could not be fetched
        """
        token = self.access_token(source)
        pr = await self._fetch_primary(
            source, repo, "prs", f"/repos/{repo}/pulls/{number}", token
        )
        return await self.build_pr_item(repo, pr, token)

    async def fetch_issue(
        self, source: ContentSource, repo: str, number: int
    ) -> CanonicalContentItem | None:
        """Re-fetch one issue with its comments and convert it.

        Returns:
            The issue item, or None if the number refers to a pull request

        Raises:
            AuthError: Missing or rejected token
            SyncError: The issue could not be fetched
        """
        token = self.access_token(source)
        issue = await self._fetch_primary(
            source, repo, "issues", f"/repos/{repo}/issues/{number}", token
        )
        if issue.get("pull_request"):
            return None
        return await self.build_issue_item(repo, issue, token)

    async def fetch_discussion(
        self, source: ContentSource, repo: str, number: int
    ) -> CanonicalContentItem | None:
        """Re-fetch one discussion and convert it.

        Raises:
            AuthError: Missing or rejected token
            SyncError: The GraphQL request failed
        """
        token = self.access_token(source)
        owner, name = _split_repo(repo)
        data = await self._graphql_primary(
            source,
            repo,
            "discussions",
            token,
            DISCUSSION_QUERY,
            {"owner": owner, "name": name, "number": number},
        )
        discussion = (data.get("repository") or {}).get("discussion")
        if not discussion:
            return None
        return discussion_to_item(discussion, repo)

    async def fetch_wiki_page(
        self, source: ContentSource, repo: str, path: str
    ) -> CanonicalContentItem | None:
        """Fetch one wiki page by path, or None if it cannot be read."""
        token = self.access_token(source)
        owner, name = _split_repo(repo)
        page = await self._fetch_wiki_entry(f"/repos/{owner}/{name}.wiki/contents", path, token)
        if not page:
            return None
        return self._wiki_item(page, repo)

    async def fetch_node(self, source: ContentSource, node_id: str) -> CanonicalContentItem | None:
        """Resolve an issue or discussion node id into an item.

        Raises:
            AuthError: Missing or rejected token
            SyncError: The lookup failed
        """
        token = self.access_token(source)
        data = await self._graphql_primary(
            source, "*", "node", token, NODE_QUERY, {"id": node_id}
        )
        node = data.get("node")
        if not node:
            return None

        repo = (node.get("repository") or {}).get("nameWithOwner")
        if not repo:
            return None
        typename = node.get("__typename")
        if typename == "Issue":
            return await self.fetch_issue(source, repo, node["number"])
        if typename == "Discussion":
            return discussion_to_item(node, repo)
        return None
