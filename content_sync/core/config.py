"""Configuration management using Pydantic Settings."""

from typing import ClassVar

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from content_sync.shared.exceptions import ConfigError
from content_sync.shared.models import ContentSource, GitHubContentConfig, SourceCredentials

# Singleton instance
_settings: "Settings | None" = None


def _split_csv(value: str) -> list[str]:
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


class Settings(BaseSettings):
    """Service settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="allow",
    )

    # GitHub API
    github_api_base_url: str = "https://api.github.com"
    github_graphql_url: str = "https://api.github.com/graphql"
    github_request_timeout_seconds: float = 30.0
    github_user_agent: str = "github-content-sync"

    # Pagination ceilings
    pr_page_size: int = 50
    pr_max_pages: int = 20
    issue_page_size: int = 50
    issue_max_pages: int = 20
    discussion_page_size: int = 50
    discussion_max_pages: int = 10
    repo_page_size: int = 100
    repo_max_pages: int = 10
    wiki_max_dirs: int = 10
    wiki_max_pages_per_dir: int = 50

    # Concurrency
    enrichment_concurrency: int = 5
    repo_concurrency: int = 4

    # File content cache
    file_cache_ttl_days: int = 7

    # Default content source
    source_id: str = "default"
    github_token: str
    github_repositories: str = ""  # Comma-separated owner/name list
    sync_prs: bool = True
    sync_issues: bool = True
    sync_discussions: bool = True
    sync_wiki: bool = False
    label_filters: str = ""
    exclude_labels: str = ""
    lookback_days: int | None = None

    # Scheduler
    sync_interval_minutes: int = 15

    # Webhook server
    webhook_enabled: bool = False
    webhook_host: str = "0.0.0.0"
    webhook_port: int = 8080
    webhook_secret: str = ""

    # Database configuration
    db_host: str = "postgres"
    db_port: int = 5432
    db_name: str = "content_sync"
    db_user: str = "content_sync"
    db_password: str  # Required, no default

    # Application settings
    log_level: str = "INFO"
    state_file_path: str | None = None
    app_version: str = "0.1.0"
    environment: str = "development"

    # Valid log levels
    VALID_LOG_LEVELS: ClassVar[set[str]] = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is one of the allowed values."""
        v_upper = v.upper()
        if v_upper not in cls.VALID_LOG_LEVELS:
            raise ConfigError(
                f"Invalid log level: {v}. Must be one of {', '.join(cls.VALID_LOG_LEVELS)}"
            )
        return v_upper

    @field_validator("sync_interval_minutes")
    @classmethod
    def validate_sync_interval(cls, v: int) -> int:
        """Validate sync interval is within acceptable range (1-1440 minutes)."""
        if not 1 <= v <= 1440:
            raise ConfigError(f"Sync interval must be between 1 and 1440 minutes, got {v}")
        return v

    @field_validator(
        "pr_page_size",
        "issue_page_size",
        "discussion_page_size",
        "repo_page_size",
    )
    @classmethod
    def validate_page_size(cls, v: int) -> int:
        """GitHub caps per_page (and GraphQL first) at 100."""
        if not 1 <= v <= 100:
            raise ConfigError(f"Page size must be between 1 and 100, got {v}")
        return v

    @field_validator(
        "pr_max_pages",
        "issue_max_pages",
        "discussion_max_pages",
        "repo_max_pages",
        "wiki_max_dirs",
        "wiki_max_pages_per_dir",
        "enrichment_concurrency",
        "repo_concurrency",
        "file_cache_ttl_days",
    )
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Validate ceilings and pool sizes are positive."""
        if v < 1:
            raise ConfigError(f"Value must be at least 1, got {v}")
        return v

    @field_validator("lookback_days")
    @classmethod
    def validate_lookback_days(cls, v: int | None) -> int | None:
        """Validate lookback window (1-3650 days) when set."""
        if v is not None and not 1 <= v <= 3650:
            raise ConfigError(f"Lookback days must be between 1 and 3650, got {v}")
        return v

    @property
    def github_repositories_list(self) -> list[str]:
        """Parse comma-separated repositories into a list.

        Returns:
            List of repository slugs (e.g., ['owner/repo1', 'owner/repo2'])
        """
        return _split_csv(self.github_repositories)

    @property
    def label_filters_list(self) -> list[str]:
        """Parse comma-separated include labels into a list."""
        return _split_csv(self.label_filters)

    @property
    def exclude_labels_list(self) -> list[str]:
        """Parse comma-separated exclude labels into a list."""
        return _split_csv(self.exclude_labels)

    def to_content_source(self) -> ContentSource:
        """Build the default content source described by these settings."""
        return ContentSource(
            id=self.source_id,
            source_type="github",
            config=GitHubContentConfig(
                repositories=self.github_repositories_list,
                sync_prs=self.sync_prs,
                sync_issues=self.sync_issues,
                sync_discussions=self.sync_discussions,
                sync_wiki=self.sync_wiki,
                label_filters=self.label_filters_list,
                exclude_labels=self.exclude_labels_list,
                lookback_days=self.lookback_days,
            ),
            credentials=SourceCredentials(access_token=self.github_token),
        )


def get_settings() -> Settings:
    """Get or create the global Settings instance (cached singleton)."""
    global _settings
    if _settings is None:
        _settings = Settings()  # type: ignore[call-arg]
    return _settings
