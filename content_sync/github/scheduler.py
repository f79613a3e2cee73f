"""Periodic sync of configured content sources."""

import asyncio

from content_sync.core.config import Settings
from content_sync.core.logging import get_logger
from content_sync.github.adapter import GitHubContentAdapter
from content_sync.shared.exceptions import AuthError, SyncCancelledError
from content_sync.shared.models import ContentSource, SyncReport

logger = get_logger(__name__)


class SyncScheduler:
    """Runs GitHubContentAdapter.sync_source for each source at a fixed interval.

    A pass that fails on auth is logged and retried on the next tick. Stopping
    the scheduler sets the cancel event so an in-flight pass ends at the next
    page boundary, keeping the pages it already persisted.
    """

    def __init__(
        self,
        adapter: GitHubContentAdapter,
        settings: Settings,
        sources: list[ContentSource],
    ) -> None:
        """Initialize scheduler.

        Args:
            adapter: Adapter that performs the stateful sync pass
            settings: Application settings
            sources: Sources to sync on every tick
        """
        self.adapter = adapter
        self.settings = settings
        self.sources = sources
        self.running = False
        self.task: asyncio.Task[None] | None = None
        self.cancel_event = asyncio.Event()

    async def sync_once(self) -> list[SyncReport]:
        """Run one pass over every source and return their reports."""
        reports = []
        for source in self.sources:
            try:
                reports.append(await self.adapter.sync_source(source, self.cancel_event))
            except AuthError as e:
                logger.error("sync.scheduler.auth_failed", source_id=source.id, error=str(e))
        return reports

    async def _sync_loop(self) -> None:
        """Background task loop for syncing at regular intervals."""
        while self.running:
            try:
                await self.sync_once()
            except SyncCancelledError:
                logger.info("sync.scheduler.pass_cancelled")
                return

            await asyncio.sleep(self.settings.sync_interval_minutes * 60)

    async def start(self) -> None:
        """Start the background sync task."""
        if self.running:
            logger.warning("sync.scheduler.already_running")
            return

        self.running = True
        self.cancel_event.clear()
        self.task = asyncio.create_task(self._sync_loop())
        logger.info(
            "sync.scheduler.started",
            sources=[source.id for source in self.sources],
            interval_minutes=self.settings.sync_interval_minutes,
        )

    async def stop(self) -> None:
        """Stop the background sync task and wait for it to finish."""
        if not self.running:
            logger.warning("sync.scheduler.not_running")
            return

        self.running = False
        self.cancel_event.set()

        if self.task:
            self.task.cancel()
            try:
                await self.task
            except asyncio.CancelledError:
                pass

        logger.info("sync.scheduler.stopped")
