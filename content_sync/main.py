"""GitHub content sync main entry point."""

import asyncio
import signal
import sys

from content_sync.core.config import get_settings
from content_sync.core.database import DatabaseClient
from content_sync.core.logging import get_logger, setup_logging
from content_sync.core.state import FileRepoSyncStateStore
from content_sync.github.adapter import GitHubContentAdapter
from content_sync.github.client import GitHubClient
from content_sync.github.scheduler import SyncScheduler
from content_sync.github.sync import GitHubSyncService
from content_sync.github.webhook_server import WebhookServer
from content_sync.shared.contracts import RepoSyncStateStore
from content_sync.shared.exceptions import ConfigError, DatabaseError
from content_sync.sources.registry import AdapterRegistry

logger = get_logger(__name__)

# Module-level variables for lifecycle management
database_client: DatabaseClient | None = None
github_client: GitHubClient | None = None
sync_scheduler: SyncScheduler | None = None
webhook_server: WebhookServer | None = None


async def startup() -> None:
    """Initialize application on startup."""
    global database_client, github_client, sync_scheduler, webhook_server

    settings = get_settings()

    logger.info(
        "application.lifecycle.started",
        version=settings.app_version,
        environment=settings.environment,
    )

    source = settings.to_content_source()
    logger.info(
        "application.config.loaded",
        log_level=settings.log_level,
        sync_interval=settings.sync_interval_minutes,
        repositories=source.config.repositories,
        state_file=settings.state_file_path,
    )

    # Initialize database client
    database_client = DatabaseClient()
    await database_client.__aenter__()
    logger.info("database.client.initialized")

    try:
        purged = await database_client.delete_expired_file_cache()
        logger.info("database.file_cache.purged", count=purged)
    except DatabaseError as e:
        logger.warning("database.file_cache.purge_failed", error=str(e))

    # Initialize GitHub client
    github_client = GitHubClient(
        base_url=settings.github_api_base_url,
        graphql_url=settings.github_graphql_url,
        timeout_seconds=settings.github_request_timeout_seconds,
        user_agent=settings.github_user_agent,
    )
    await github_client.__aenter__()

    state_store: RepoSyncStateStore = database_client
    if settings.state_file_path:
        state_store = FileRepoSyncStateStore(settings.state_file_path)

    sync_service = GitHubSyncService(
        client=github_client,
        settings=settings,
        file_cache=database_client,
        user_store=database_client,
    )
    adapter = GitHubContentAdapter(
        sync_service=sync_service,
        settings=settings,
        state_store=state_store,
        repository=database_client,
    )

    # Validate GitHub token
    if not await adapter.validate_credentials(source):
        raise ConfigError("Invalid GitHub token")
    logger.info("github.auth.validated", source_id=source.id)

    registry = AdapterRegistry()
    registry.register(adapter)

    sync_scheduler = SyncScheduler(adapter=adapter, settings=settings, sources=[source])
    await sync_scheduler.start()

    if settings.webhook_enabled:
        webhook_server = WebhookServer(
            host=settings.webhook_host,
            port=settings.webhook_port,
            webhook_secret=settings.webhook_secret,
            registry=registry,
            sources={source.id: source},
            repository=database_client,
        )
        await webhook_server.start()

    logger.info("application.initialization.completed")


async def shutdown() -> None:
    """Cleanup on application shutdown."""
    global database_client, github_client, sync_scheduler, webhook_server

    logger.info("application.shutdown.started")

    # Stop accepting deliveries before the sync loop goes away
    if webhook_server:
        await webhook_server.stop()
        webhook_server = None

    if sync_scheduler:
        await sync_scheduler.stop()
        sync_scheduler = None

    if github_client:
        await github_client.__aexit__(None, None, None)
        github_client = None

    if database_client:
        await database_client.__aexit__(None, None, None)
        database_client = None

    logger.info("application.shutdown.completed")


async def main() -> None:
    """Main application loop."""
    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()

    def signal_handler(sig: int) -> None:
        logger.info("application.signal.received", signal=signal.Signals(sig).name)
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):

        def make_handler(s: int = sig) -> None:
            signal_handler(s)

        loop.add_signal_handler(sig, make_handler)

    try:
        await startup()
        await stop_event.wait()
    except Exception as e:
        logger.error("application.error.fatal", error=str(e), exc_info=True)
        raise
    finally:
        await shutdown()


def run() -> None:
    """Entry point for running the sync service."""
    try:
        # Load settings first to validate configuration
        settings = get_settings()

        setup_logging(log_level=settings.log_level)

        asyncio.run(main())

    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        pass
    except Exception as e:
        print(f"Fatal error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    run()
