"""Repo sync state persistence using a JSON file with atomic writes."""

import asyncio
import json
from datetime import UTC, datetime
from pathlib import Path
from threading import Lock
from typing import Any

from content_sync.core.logging import get_logger
from content_sync.shared.exceptions import StateError
from content_sync.shared.models import RepoSyncState

logger = get_logger(__name__)

CURSOR_FIELDS = (
    "last_sync_at",
    "last_pr_sync_at",
    "last_issue_sync_at",
    "last_discussion_sync_at",
)

KEEP_IF_NONE_FIELDS = (
    "repo_id",
    "default_branch",
    "is_private",
    "pr_count",
    "issue_count",
    "discussion_count",
)


def _later(a: datetime | None, b: datetime | None) -> datetime | None:
    if a is None:
        return b
    if b is None:
        return a
    return max(a, b)


def merge_repo_sync_state(
    existing: RepoSyncState | None, incoming: RepoSyncState, now: datetime
) -> RepoSyncState:
    """Apply upsert semantics: cursors only advance, missing values keep the stored ones."""
    if existing is None:
        return incoming.model_copy(update={"created_at": now, "updated_at": now})

    update: dict[str, Any] = {"error_message": incoming.error_message, "updated_at": now}
    for name in CURSOR_FIELDS:
        update[name] = _later(getattr(existing, name), getattr(incoming, name))
    for name in KEEP_IF_NONE_FIELDS:
        value = getattr(incoming, name)
        update[name] = getattr(existing, name) if value is None else value
    return existing.model_copy(update=update)


class FileRepoSyncStateStore:
    """Thread-safe repo sync state store backed by one JSON file.

    Rows are keyed "{source_id}::{repo_full_name}". Each upsert holds the lock
    for the whole read-merge-write so overlapping updates of the same repo
    end up as a single row.
    """

    def __init__(self, file_path: str | Path) -> None:
        """Initialize store with file path.

        Args:
            file_path: Path to JSON state file
        """
        self.file_path = Path(file_path)
        self.lock = Lock()
        self._ensure_file_exists()

    @staticmethod
    def _key(source_id: str, repo_full_name: str) -> str:
        return f"{source_id}::{repo_full_name}"

    def _ensure_file_exists(self) -> None:
        """Create state file with empty dict if it doesn't exist."""
        if not self.file_path.exists():
            self.file_path.parent.mkdir(parents=True, exist_ok=True)
            self.file_path.write_text("{}")
            logger.info("state.file.created", path=str(self.file_path))

    def _read_state(self) -> dict[str, Any]:
        """Read state from JSON file; caller holds the lock.

        Returns:
            State dictionary, or empty dict if file is corrupted
        """
        try:
            content = self.file_path.read_text()
            result: dict[str, Any] = json.loads(content)
            return result
        except json.JSONDecodeError as e:
            logger.warning("state.file.corrupted", path=str(self.file_path), error=str(e))
            return {}
        except OSError as e:
            logger.error(
                "state.file.read_failed",
                path=str(self.file_path),
                error=str(e),
                exc_info=True,
            )
            raise StateError(f"Failed to read state file: {e}") from e

    def _write_state(self, state: dict[str, Any]) -> None:
        """Write state to JSON file atomically (temp file + rename); caller holds the lock."""
        try:
            temp_path = self.file_path.with_suffix(".tmp")
            temp_path.write_text(json.dumps(state, indent=2))
            temp_path.replace(self.file_path)
        except OSError as e:
            logger.error(
                "state.file.write_failed",
                path=str(self.file_path),
                error=str(e),
                exc_info=True,
            )
            raise StateError(f"Failed to write state file: {e}") from e

    def _get(self, source_id: str, repo_full_name: str) -> RepoSyncState | None:
        with self.lock:
            raw = self._read_state().get(self._key(source_id, repo_full_name))
        return RepoSyncState.model_validate(raw) if raw else None

    def _upsert(self, state: RepoSyncState) -> RepoSyncState:
        key = self._key(state.source_id, state.repo_full_name)
        with self.lock:
            data = self._read_state()
            existing_raw = data.get(key)
            existing = RepoSyncState.model_validate(existing_raw) if existing_raw else None
            merged = merge_repo_sync_state(existing, state, datetime.now(UTC))
            data[key] = merged.model_dump(mode="json")
            self._write_state(data)
        return merged

    async def get_repo_sync_state(
        self, source_id: str, repo_full_name: str
    ) -> RepoSyncState | None:
        """Get the stored state of a repository, or None if never synced."""
        return await asyncio.to_thread(self._get, source_id, repo_full_name)

    async def upsert_repo_sync_state(self, state: RepoSyncState) -> RepoSyncState:
        """Create or update the state of a repository.

        File I/O runs in a worker thread; the lock serialises read-merge-write
        across threads and event loops.

        Returns:
            The stored state after merging
        """
        merged = await asyncio.to_thread(self._upsert, state)

        logger.info(
            "state.repo_sync.updated",
            source_id=state.source_id,
            repo=state.repo_full_name,
            last_sync_at=merged.last_sync_at.isoformat() if merged.last_sync_at else None,
        )
        return merged
