"""Shared test fixtures for GitHub integration tests."""

import pytest

from content_sync.core.config import Settings
from content_sync.github.sync import GitHubSyncService
from content_sync.github.tests.fakes import FakeGitHub
from content_sync.shared.models import ContentSource, GitHubContentConfig, SourceCredentials


@pytest.fixture
def fake_github() -> FakeGitHub:
    """Fake GitHub API with no responses registered."""
    return FakeGitHub()


@pytest.fixture
def source() -> ContentSource:
    """GitHub content source with one repository."""
    return ContentSource(
        id="src-1",
        source_type="github",
        name="Acme GitHub",
        config=GitHubContentConfig(repositories=["acme/api"]),
        credentials=SourceCredentials(access_token="test_token"),
    )


@pytest.fixture
def sync_service(fake_github: FakeGitHub, mock_settings: Settings) -> GitHubSyncService:
    """Sync service with page size 2 and at most 3 pages per listing."""
    return GitHubSyncService(client=fake_github, settings=mock_settings)  # type: ignore[arg-type]
