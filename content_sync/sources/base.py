"""Abstract base class for content source adapters."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from content_sync.shared.models import (
    CanonicalContentItem,
    ContentSource,
    FetchResult,
    SourceCredentials,
)


class ContentSourceAdapter(ABC):
    """Uniform contract every content source implementation provides.

    All adapters must inherit from this class and implement the required
    methods; the AdapterRegistry dispatches on source_type.
    """

    @property
    @abstractmethod
    def source_type(self) -> str:
        """Get source type identifier.

        Returns:
            Source type (e.g., "github")
        """
        pass

    @abstractmethod
    async def validate_credentials(self, source: ContentSource) -> bool:
        """Check whether the source's credentials are accepted by the provider.

        Returns:
            True if valid; any failure yields False
        """
        pass

    @abstractmethod
    async def fetch_content(
        self, source: ContentSource, since: datetime | None = None
    ) -> FetchResult:
        """Fetch all configured content updated at or after ``since``.

        Args:
            source: Content source
            since: Incremental boundary; None for a full bounded backfill

        Returns:
            FetchResult with items and per-repo/content-type errors

        Raises:
            AuthError: Missing or invalid credentials
        """
        pass

    @abstractmethod
    async def fetch_item(
        self, source: ContentSource, external_id: str
    ) -> CanonicalContentItem | None:
        """Fetch a single item by its external id, or None if not found."""
        pass

    @abstractmethod
    async def handle_webhook(
        self, source: ContentSource, event: str, payload: Any
    ) -> CanonicalContentItem | None:
        """Convert an inbound webhook delivery into an item, or None."""
        pass

    @abstractmethod
    async def refresh_auth(self, source: ContentSource) -> SourceCredentials:
        """Return current credentials for the source.

        Raises:
            AuthError: If no credentials can be obtained
        """
        pass
