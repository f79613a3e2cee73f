"""Custom exception hierarchy for content sync."""


class ContentSyncError(Exception):
    """Base exception for all content sync errors."""

    pass


class ConfigError(ContentSyncError):
    """Raised when configuration validation fails."""

    pass


class GitHubAPIError(ContentSyncError):
    """Raised when a GitHub REST or GraphQL request fails.

    Attributes:
        status: HTTP status code, or None for transport failures and GraphQL errors
        cause: Underlying exception, if any
    """

    def __init__(
        self,
        message: str,
        status: int | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.cause = cause


class AuthError(ContentSyncError):
    """Raised when a source has no usable token or the token is rejected."""

    pass


class SyncError(ContentSyncError):
    """Raised when the primary listing of a repo/content type fails.

    Attributes:
        source_id: Content source identifier
        repo: Repository full name ("owner/name")
        content_type: One of prs, issues, discussions, wiki
        cause: Underlying exception
    """

    def __init__(
        self,
        message: str,
        source_id: str,
        repo: str,
        content_type: str,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.source_id = source_id
        self.repo = repo
        self.content_type = content_type
        self.cause = cause


class SyncCancelledError(ContentSyncError):
    """Raised at a page boundary when the caller has cancelled a sync."""

    pass


class AdapterNotFoundError(ContentSyncError):
    """Raised when no adapter is registered for a source type."""

    pass


class StateError(ContentSyncError):
    """Raised when state persistence operations fail."""

    pass


class DatabaseError(ContentSyncError):
    """Raised when database operations fail."""

    pass
