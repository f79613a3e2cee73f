"""Shared pytest fixtures for content sync tests."""

from pathlib import Path

import pytest

from content_sync.core.config import Settings


@pytest.fixture
def temp_state_file(tmp_path: Path) -> Path:
    """Create a temporary state file path for testing.

    Args:
        tmp_path: pytest's temporary directory fixture

    Returns:
        Path to temporary sync_state.json file
    """
    return tmp_path / "sync_state.json"


@pytest.fixture
def mock_settings(temp_state_file: Path) -> Settings:
    """Create Settings instance with test values.

    Args:
        temp_state_file: Temporary state file path

    Returns:
        Settings instance configured for testing
    """
    return Settings(
        github_token="test_github_token",
        github_repositories="acme/api,acme/web",
        db_password="test_password",
        log_level="INFO",
        state_file_path=str(temp_state_file),
        pr_page_size=2,
        pr_max_pages=3,
        issue_page_size=2,
        issue_max_pages=3,
        discussion_page_size=2,
        discussion_max_pages=3,
        repo_page_size=2,
        repo_max_pages=3,
        wiki_max_dirs=2,
        wiki_max_pages_per_dir=2,
        sync_interval_minutes=5,
        app_version="0.1.0",
        environment="test",
    )


@pytest.fixture(autouse=True)
def reset_settings_cache() -> None:
    """Reset the global settings cache before and after each test.

    This ensures tests don't interfere with each other via cached settings.
    """
    import content_sync.core.config

    content_sync.core.config._settings = None

    yield

    content_sync.core.config._settings = None
