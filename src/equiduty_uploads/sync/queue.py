"""Persistent queue of failed photo uploads awaiting background retry."""

import logging
import uuid
from collections.abc import Callable, Iterable
from datetime import datetime, timezone
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, model_validator

from equiduty_uploads.sync.store import KeyValueStore

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 3
QUEUE_KEY = "upload_queue"

T = TypeVar("T")


class QueuedUpload(BaseModel):
    """An upload that failed in the foreground and waits for a background retry."""

    model_config = ConfigDict(
        validate_assignment=True,
        ser_json_bytes="base64",
        val_json_bytes="base64",
    )

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    image_bytes: bytes
    endpoint: str
    request_body: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    retry_count: int = Field(default=0, ge=0)
    max_retries: int = Field(default=DEFAULT_MAX_RETRIES, ge=0)

    @model_validator(mode="after")
    def check_retry_ceiling(self) -> "QueuedUpload":
        """Keep retry_count within max_retries."""
        if self.retry_count > self.max_retries:
            raise ValueError(
                f"retry_count {self.retry_count} exceeds max_retries {self.max_retries}"
            )
        return self

    @property
    def retries_exhausted(self) -> bool:
        """True when another failure means the item is dropped."""
        return self.retry_count >= self.max_retries


_queue_adapter = TypeAdapter(list[QueuedUpload])


class UploadQueue:
    """Ordered, persisted list of failed uploads.

    The whole list is serialized under one key. Every mutation is a
    read-modify-write inside one store transaction: the stored list is read
    again, changed and written back. A foreground process can therefore
    enqueue while a running agent drains, and neither overwrites the
    other's items. Expected sizes are single-digit, so the O(n) rewrite is
    fine.

    ``items``, ``get`` and ``len`` read the in-memory copy, which is
    refreshed by load() and by every mutation.
    """

    def __init__(
        self,
        store: KeyValueStore,
        key: str = QUEUE_KEY,
        max_retries: int = DEFAULT_MAX_RETRIES,
    ) -> None:
        """Initialize the upload queue.

        Args:
            store: Key-value store used for persistence
            key: Key the serialized queue is stored under
            max_retries: Retry ceiling given to newly created items
        """
        self._store = store
        self._key = key
        self.max_retries = max_retries
        self._items: list[QueuedUpload] = []

    def __len__(self) -> int:
        return len(self._items)

    @property
    def items(self) -> list[QueuedUpload]:
        """Snapshot of queued items, front first."""
        return list(self._items)

    def get(self, item_id: str) -> QueuedUpload | None:
        """Return the item with item_id, or None."""
        for item in self._items:
            if item.id == item_id:
                return item
        return None

    def _parse(self, raw: str | None) -> list[QueuedUpload]:
        """Decode a stored queue. Unreadable data is logged and treated as empty."""
        if raw is None:
            return []
        try:
            return _queue_adapter.validate_json(raw)
        except ValidationError:
            logger.exception("Persisted upload queue is unreadable, starting empty")
            return []

    def _mutate(self, change: Callable[[list[QueuedUpload]], T]) -> T:
        """Apply change to the freshly stored list and write the result back."""
        result: T | None = None
        items: list[QueuedUpload] = []

        def apply(raw: str | None) -> str:
            nonlocal result, items
            items = self._parse(raw)
            result = change(items)
            return _queue_adapter.dump_json(items).decode()

        self._store.update(self._key, apply)
        self._items = items
        return result

    def load(self) -> None:
        """Replace the in-memory queue with the persisted one.

        Unreadable data is logged and discarded so a corrupt file never
        blocks startup.
        """
        self._items = self._parse(self._store.get(self._key))
        logger.debug("Loaded upload queue: size=%d", len(self._items))

    def save(self) -> None:
        """Overwrite the persisted queue with the in-memory list.

        Mutating methods persist on their own; this is for callers that
        built a list in memory and want it stored as-is.
        """
        self._store.set(self._key, _queue_adapter.dump_json(self._items).decode())

    def create_item(
        self,
        image_bytes: bytes,
        endpoint: str,
        request_body: dict[str, Any],
    ) -> QueuedUpload:
        """Build a fresh item using this queue's retry ceiling."""
        return QueuedUpload(
            image_bytes=image_bytes,
            endpoint=endpoint,
            request_body=request_body,
            max_retries=self.max_retries,
        )

    def enqueue(self, item: QueuedUpload) -> QueuedUpload:
        """Append a failed upload to the back of the queue.

        Args:
            item: Upload whose inline retries are exhausted

        Returns:
            The queued item
        """

        def append(items: list[QueuedUpload]) -> QueuedUpload:
            items.append(item)
            return item

        return self._mutate(append)

    def dequeue_successful(self, ids: Iterable[str]) -> int:
        """Remove items that uploaded successfully.

        Args:
            ids: Queue item ids to remove

        Returns:
            Number of items removed
        """
        done = set(ids)

        def drop_done(items: list[QueuedUpload]) -> int:
            before = len(items)
            items[:] = [item for item in items if item.id not in done]
            return before - len(items)

        return self._mutate(drop_done)

    def remove(self, item_id: str) -> bool:
        """Remove a single item. Returns True if it was queued."""
        return self.dequeue_successful([item_id]) == 1

    def bump_retry(self, item_id: str) -> QueuedUpload | None:
        """Record one more failed attempt for an item.

        Args:
            item_id: Queue item id

        Returns:
            The updated item, or None if it is not queued

        Raises:
            ValueError: If the item has no retries left
        """

        def bump(items: list[QueuedUpload]) -> QueuedUpload | None:
            for item in items:
                if item.id == item_id:
                    if item.retries_exhausted:
                        raise ValueError(f"Queue item {item_id} already at max_retries")
                    item.retry_count += 1
                    return item
            return None

        return self._mutate(bump)

    def clear(self) -> int:
        """Drop every queued item. Returns the number removed."""

        def drop_all(items: list[QueuedUpload]) -> int:
            removed = len(items)
            items.clear()
            return removed

        return self._mutate(drop_all)

    def get_stats(self) -> dict[str, int]:
        """Get queue statistics.

        Returns:
            Dictionary with total, fresh (never retried) and retrying counts
        """
        retrying = sum(1 for item in self._items if item.retry_count > 0)
        return {
            "total": len(self._items),
            "fresh": len(self._items) - retrying,
            "retrying": retrying,
            "bytes": sum(len(item.image_bytes) for item in self._items),
        }
