"""Hand canonical items to the content repository."""

from content_sync.core.logging import get_logger
from content_sync.shared.contracts import ContentRepository
from content_sync.shared.models import CanonicalContentItem

logger = get_logger(__name__)


async def persist_items(
    repository: ContentRepository,
    source_id: str,
    items: list[CanonicalContentItem],
) -> int:
    """Upsert items and their participants.

    Items are keyed by (source_id, external_id), so persisting the same item
    twice updates one row.

    Args:
        repository: Content repository implementation
        source_id: Owning content source
        items: Items to store

    Returns:
        Number of items persisted
    """
    for item in items:
        content_item_id = await repository.upsert_item(source_id, item)
        if item.participants:
            await repository.create_participants_batch(content_item_id, item.participants)

    if items:
        logger.info("content.items.persisted", source_id=source_id, count=len(items))
    return len(items)
