"""Shared fixtures for core tests."""

from datetime import UTC, datetime

import pytest

from content_sync.shared.models import RepoSyncState


@pytest.fixture
def pass_start() -> datetime:
    """Start time of a sync pass used as the cursor value."""
    return datetime(2024, 6, 1, 12, 0, tzinfo=UTC)


@pytest.fixture
def repo_state(pass_start: datetime) -> RepoSyncState:
    """Sync state of a repository after one successful pass."""
    return RepoSyncState(
        source_id="src-1",
        repo_full_name="acme/api",
        repo_id=42,
        default_branch="main",
        is_private=False,
        last_sync_at=pass_start,
        last_pr_sync_at=pass_start,
        last_issue_sync_at=pass_start,
        pr_count=3,
        issue_count=5,
    )
