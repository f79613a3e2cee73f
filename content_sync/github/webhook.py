"""Webhook handling: classify a delivery, re-fetch, convert."""

from typing import Any

from content_sync.core.logging import get_logger
from content_sync.github.payloads import (
    DiscussionDelivery,
    IssueDelivery,
    PullRequestDelivery,
    RejectedDelivery,
    decode_webhook,
)
from content_sync.github.sync import GitHubSyncService
from content_sync.shared.models import CanonicalContentItem, ContentSource

logger = get_logger(__name__)


class GitHubWebhookHandler:
    """Turns webhook deliveries into canonical items.

    The payload only tells us *what* changed. The current state of the entity
    and its side data (reviews, files, comments) are always re-fetched and run
    through the same converters as polling, so both paths store identical items.
    """

    def __init__(self, sync_service: GitHubSyncService) -> None:
        self.sync_service = sync_service

    async def handle(
        self, source: ContentSource, event: str, payload: Any
    ) -> CanonicalContentItem | None:
        """Process one webhook delivery.

        Args:
            source: Content source the delivery belongs to
            event: X-GitHub-Event header value
            payload: Parsed JSON body

        Returns:
            The refreshed item, or None when the delivery is not of interest
            or not well-formed

        Raises:
            AuthError: Missing or rejected token
            SyncError: The entity could not be re-fetched
        """
        delivery = decode_webhook(event, payload)

        if isinstance(delivery, RejectedDelivery):
            logger.info(
                "webhook.delivery.rejected",
                source_id=source.id,
                event=event,
                action=delivery.action,
                reason=delivery.reason,
            )
            return None

        logger.info(
            "webhook.delivery.accepted",
            source_id=source.id,
            event=event,
            action=delivery.action,
            repo=delivery.repo,
            number=delivery.number,
        )

        if isinstance(delivery, PullRequestDelivery):
            return await self.sync_service.fetch_pull_request(
                source, delivery.repo, delivery.number
            )
        if isinstance(delivery, IssueDelivery):
            return await self.sync_service.fetch_issue(source, delivery.repo, delivery.number)
        if isinstance(delivery, DiscussionDelivery):
            return await self.sync_service.fetch_discussion(
                source, delivery.repo, delivery.number
            )
        return None
