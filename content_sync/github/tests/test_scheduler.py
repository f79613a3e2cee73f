"""Tests for the periodic sync scheduler."""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from content_sync.core.config import Settings
from content_sync.github.scheduler import SyncScheduler
from content_sync.shared.exceptions import AuthError, SyncCancelledError
from content_sync.shared.models import ContentSource, SyncReport


@pytest.fixture
def adapter() -> MagicMock:
    adapter = MagicMock()
    adapter.sync_source = AsyncMock(
        side_effect=lambda source, cancel_event: SyncReport(
            source_id=source.id, started_at=datetime(2024, 6, 1, tzinfo=UTC)
        )
    )
    return adapter


@pytest.fixture
def sources() -> list[ContentSource]:
    return [ContentSource(id="src-1"), ContentSource(id="src-2")]


@pytest.mark.asyncio
async def test_sync_once_runs_every_source(adapter, mock_settings: Settings, sources):
    scheduler = SyncScheduler(adapter, mock_settings, sources)

    reports = await scheduler.sync_once()

    assert [report.source_id for report in reports] == ["src-1", "src-2"]
    adapter.sync_source.assert_any_await(sources[0], scheduler.cancel_event)


@pytest.mark.asyncio
async def test_sync_once_auth_failure_skips_source(adapter, mock_settings: Settings, sources):
    """Test that a source without valid credentials does not stop the others."""

    async def sync_source(source, cancel_event):
        if source.id == "src-1":
            raise AuthError("No GitHub access token configured for source src-1")
        return SyncReport(source_id=source.id, started_at=datetime(2024, 6, 1, tzinfo=UTC))

    adapter.sync_source.side_effect = sync_source
    scheduler = SyncScheduler(adapter, mock_settings, sources)

    reports = await scheduler.sync_once()

    assert [report.source_id for report in reports] == ["src-2"]


@pytest.mark.asyncio
async def test_sync_loop_ends_on_cancelled_pass(adapter, mock_settings: Settings, sources):
    adapter.sync_source.side_effect = SyncCancelledError("cancelled")
    scheduler = SyncScheduler(adapter, mock_settings, sources)
    scheduler.running = True

    await scheduler._sync_loop()

    assert adapter.sync_source.await_count == 1


@pytest.mark.asyncio
async def test_start_stop_lifecycle(adapter, mock_settings: Settings, sources):
    """Test task creation, cancel event and cancellation."""
    scheduler = SyncScheduler(adapter, mock_settings, sources)

    await scheduler.start()
    assert scheduler.running is True
    assert scheduler.task is not None
    assert not scheduler.cancel_event.is_set()

    await scheduler.stop()
    assert scheduler.running is False
    assert scheduler.cancel_event.is_set()


@pytest.mark.asyncio
async def test_stop_when_not_running(adapter, mock_settings: Settings, sources):
    scheduler = SyncScheduler(adapter, mock_settings, sources)

    await scheduler.stop()

    assert scheduler.task is None
