"""Registry mapping source types to adapter instances."""

from content_sync.core.logging import get_logger
from content_sync.shared.exceptions import AdapterNotFoundError
from content_sync.shared.models import ContentSource
from content_sync.sources.base import ContentSourceAdapter

logger = get_logger(__name__)


class AdapterRegistry:
    """Lookup table from source type to its adapter."""

    def __init__(self) -> None:
        self._adapters: dict[str, ContentSourceAdapter] = {}

    def register(self, adapter: ContentSourceAdapter) -> None:
        """Register an adapter under its source type, replacing any previous one."""
        if adapter.source_type in self._adapters:
            logger.warning("adapter.registry.replaced", source_type=adapter.source_type)
        self._adapters[adapter.source_type] = adapter
        logger.info("adapter.registry.registered", source_type=adapter.source_type)

    def get(self, source_type: str) -> ContentSourceAdapter:
        """Get the adapter for a source type.

        Raises:
            AdapterNotFoundError: If no adapter is registered for the type
        """
        adapter = self._adapters.get(source_type)
        if adapter is None:
            raise AdapterNotFoundError(f"No adapter registered for source type: {source_type}")
        return adapter

    def for_source(self, source: ContentSource) -> ContentSourceAdapter:
        """Get the adapter that handles a content source."""
        return self.get(source.source_type)

    @property
    def source_types(self) -> list[str]:
        """Registered source types, in registration order."""
        return list(self._adapters)
