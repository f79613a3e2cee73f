"""Webhook server for receiving GitHub webhook deliveries."""

import asyncio
import hashlib
import hmac
import json
from typing import Any

from aiohttp import web

from content_sync.core.logging import get_logger, set_correlation_id
from content_sync.shared.contracts import ContentRepository
from content_sync.shared.exceptions import ContentSyncError
from content_sync.shared.models import ContentSource
from content_sync.sources.persistence import persist_items
from content_sync.sources.registry import AdapterRegistry

logger = get_logger(__name__)

SIGNATURE_PREFIX = "sha256="


class WebhookServer:
    """Async HTTP server for receiving GitHub webhook deliveries.

    Provides endpoints for:
    - POST /webhooks/github/{source_id}: GitHub webhook deliveries
    - GET /health: Health check endpoint

    Attributes:
        host: Server host address
        port: Server port
        webhook_secret: Secret for validating webhook signatures
    """

    def __init__(
        self,
        host: str,
        port: int,
        webhook_secret: str,
        registry: AdapterRegistry,
        sources: dict[str, ContentSource],
        repository: ContentRepository | None = None,
    ) -> None:
        """Initialize webhook server.

        Args:
            host: Host address to bind to
            port: Port to listen on
            webhook_secret: GitHub webhook secret for signature validation
            registry: Adapter registry used to resolve the source's adapter
            sources: Known content sources by id
            repository: Content repository for storing refreshed items
        """
        self.host = host
        self.port = port
        self.webhook_secret = webhook_secret
        self.registry = registry
        self.sources = sources
        self.repository = repository
        self.app: web.Application | None = None
        self.runner: web.AppRunner | None = None
        self.site: web.TCPSite | None = None
        self._running = False
        self._tasks: set[asyncio.Task[None]] = set()

    def build_app(self) -> web.Application:
        """Create the aiohttp application with all routes registered."""
        app = web.Application()
        app.router.add_get("/health", self._handle_health)
        app.router.add_post("/webhooks/github/{source_id}", self._handle_github_webhook)
        return app

    async def start(self) -> None:
        """Start the webhook server."""
        self.app = self.build_app()

        self.runner = web.AppRunner(self.app)
        await self.runner.setup()

        self.site = web.TCPSite(self.runner, self.host, self.port)
        await self.site.start()

        self._running = True
        logger.info("webhook.server.started", host=self.host, port=self.port)

    async def stop(self) -> None:
        """Stop the webhook server gracefully."""
        self._running = False

        if self.site:
            await self.site.stop()

        if self.runner:
            await self.runner.cleanup()

        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

        logger.info("webhook.server.stopped")

    @property
    def is_running(self) -> bool:
        """Check if server is running."""
        return self._running

    async def _handle_health(self, request: web.Request) -> web.Response:
        return web.json_response({"status": "healthy", "service": "content-sync-webhooks"})

    def _verify_signature(self, payload: bytes, signature: str) -> bool:
        """Verify a GitHub webhook signature.

        GitHub sends "sha256=<hex>" where hex is HMAC-SHA256 of the raw body.

        Args:
            payload: Raw request body
            signature: Value of the X-Hub-Signature-256 header

        Returns:
            True if signature is valid, False otherwise
        """
        if not self.webhook_secret:
            logger.warning("webhook.signature.no_secret_configured")
            return False

        if not signature.startswith(SIGNATURE_PREFIX):
            return False

        expected = hmac.new(
            self.webhook_secret.encode(),
            payload,
            hashlib.sha256,
        ).hexdigest()

        return hmac.compare_digest(expected, signature[len(SIGNATURE_PREFIX) :])

    async def _handle_github_webhook(self, request: web.Request) -> web.Response:
        """Handle a GitHub webhook delivery.

        Validates signature and parses the payload, then acknowledges with
        202 and processes the delivery in the background.
        """
        source_id = request.match_info["source_id"]
        source = self.sources.get(source_id)
        if source is None:
            logger.warning("webhook.source.unknown", source_id=source_id)
            return web.json_response({"error": "Unknown source"}, status=404)

        body = await request.read()

        signature = request.headers.get("X-Hub-Signature-256", "")
        if not signature:
            logger.warning("webhook.signature.missing", source_id=source_id)
            return web.json_response({"error": "Missing signature"}, status=401)

        if not self._verify_signature(body, signature):
            logger.warning("webhook.signature.invalid", source_id=source_id)
            return web.json_response({"error": "Invalid signature"}, status=401)

        event = request.headers.get("X-GitHub-Event", "")
        if not event:
            return web.json_response({"error": "Missing event header"}, status=400)

        try:
            payload: Any = json.loads(body)
        except ValueError as e:
            logger.error("webhook.parse.failed", error=str(e))
            return web.json_response({"error": "Invalid JSON"}, status=400)

        delivery_id = request.headers.get("X-GitHub-Delivery", "")
        logger.info(
            "webhook.delivery.received",
            source_id=source_id,
            github_event=event,
            delivery_id=delivery_id,
        )

        if event == "ping":
            return web.json_response({"status": "pong"})

        task = asyncio.create_task(self._process_delivery(source, event, payload, delivery_id))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        return web.json_response({"status": "accepted"}, status=202)

    async def _process_delivery(
        self, source: ContentSource, event: str, payload: Any, delivery_id: str
    ) -> None:
        """Dispatch a delivery to the source's adapter and store the refreshed item."""
        set_correlation_id(delivery_id or None)
        try:
            adapter = self.registry.for_source(source)
            item = await adapter.handle_webhook(source, event, payload)
            if item is not None and self.repository is not None:
                await persist_items(self.repository, source.id, [item])
        except ContentSyncError as e:
            logger.error(
                "webhook.process.failed",
                source_id=source.id,
                github_event=event,
                error=str(e),
            )
        except Exception as e:
            logger.error("webhook.process.failed", error=str(e), exc_info=True)
