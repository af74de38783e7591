"""Durable queue of mutations awaiting remote confirmation.

Items live in the local store's ``sync_queue`` collection and are
read-modify-written whole on every call, so the queue survives restarts and
is never partially updated.
"""

from __future__ import annotations

import logging
import secrets
import threading
from typing import Any

from hometrack.errors import unknown_operation
from hometrack.local_store import Collection, LocalStore
from hometrack.models import SyncOpType, SyncQueueItem, now_ms

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 3

PROFILE_TARGET = "profile"

_KNOWN_TYPES = {op.value for op in SyncOpType}


def target_key(op_type: SyncOpType, payload: dict[str, Any]) -> str | None:
    """Identify the record a mutation targets.

    Returns:
        House id, payment id, the profile marker, or None when the payload
        names no target.
    """
    if op_type == SyncOpType.UPDATE_PROFILE:
        return PROFILE_TARGET
    if op_type in (SyncOpType.ADD_HOUSE, SyncOpType.UPDATE_HOUSE):
        return payload.get("id")
    if op_type == SyncOpType.DELETE_HOUSE:
        return payload.get("house_id")
    return payload.get("payment_id")


def _new_item_id() -> str:
    return f"{now_ms()}_{secrets.token_hex(5)}"


class MutationQueue:
    """Ordered, durable log of pending remote operations.

    Example:
        >>> queue = MutationQueue(store)
        >>> item = queue.enqueue(SyncOpType.DELETE_HOUSE, {"house_id": "h1"})
        >>> queue.increment_retry(item.id)
        1
        >>> queue.dequeue_by_id(item.id)
        True
    """

    def __init__(
        self,
        store: LocalStore,
        max_retries: int = DEFAULT_MAX_RETRIES,
        collapse_duplicates: bool = True,
    ) -> None:
        """Initialize the queue.

        Args:
            store: Local store the queue is persisted in.
            max_retries: Failed attempts after which an item should be dropped.
            collapse_duplicates: Replace queued items of the same type and
                target instead of appending another one.
        """
        self._store = store
        self._lock = threading.RLock()
        self.max_retries = max_retries
        self.collapse_duplicates = collapse_duplicates

    def _load(self) -> list[SyncQueueItem]:
        items: list[SyncQueueItem] = []
        for data in self._store.get(Collection.SYNC_QUEUE):
            op_type = data.get("type") if isinstance(data, dict) else None
            if op_type not in _KNOWN_TYPES:
                logger.error(f"Dropping queued item: {unknown_operation(str(op_type))}")
                continue
            try:
                items.append(SyncQueueItem.from_dict(data))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping corrupted sync queue item: {e}")
        return items

    def _persist(self, items: list[SyncQueueItem]) -> None:
        self._store.save(Collection.SYNC_QUEUE, [item.to_dict() for item in items])

    def enqueue(self, op_type: SyncOpType | str, payload: dict[str, Any]) -> SyncQueueItem:
        """Append a mutation to the queue.

        Args:
            op_type: Operation type.
            payload: Operation data (JSON-compatible).

        Returns:
            The stored item, with id, enqueue time and a zero retry count.
        """
        op_type = SyncOpType(op_type)
        item = SyncQueueItem(
            id=_new_item_id(),
            type=op_type,
            payload=dict(payload),
            enqueued_at=now_ms(),
            retry_count=0,
        )

        with self._lock:
            items = self._load()

            if self.collapse_duplicates:
                target = target_key(op_type, payload)
                if target is not None:
                    before = len(items)
                    items = [
                        existing
                        for existing in items
                        if not (
                            existing.type == op_type
                            and target_key(existing.type, existing.payload) == target
                        )
                    ]
                    if len(items) != before:
                        logger.debug(
                            f"Collapsed {before - len(items)} queued {op_type.value} for {target}"
                        )

            items.append(item)
            self._persist(items)

        logger.debug(f"Enqueued {op_type.value} operation: {item.id}")
        return item

    def dequeue_by_id(self, item_id: str) -> bool:
        """Remove an item. Returns True if it was queued."""
        with self._lock:
            items = self._load()
            remaining = [item for item in items if item.id != item_id]
            if len(remaining) == len(items):
                return False
            self._persist(remaining)
            return True

    def increment_retry(self, item_id: str) -> int | None:
        """Record a failed attempt.

        Returns:
            The new retry count, or None if the item is not queued.
        """
        with self._lock:
            items = self._load()
            for item in items:
                if item.id == item_id:
                    item.retry_count += 1
                    self._persist(items)
                    return item.retry_count
            return None

    def get(self, item_id: str) -> SyncQueueItem | None:
        with self._lock:
            return next((item for item in self._load() if item.id == item_id), None)

    def list_all(self) -> list[SyncQueueItem]:
        """All queued items in insertion order."""
        with self._lock:
            return self._load()

    def clear(self) -> None:
        """Drop every queued item. Use with caution."""
        with self._lock:
            self._persist([])

    def __len__(self) -> int:
        return len(self.list_all())

    def stats(self) -> dict[str, Any]:
        with self._lock:
            items = self._load()
            by_type: dict[str, int] = {}
            for item in items:
                by_type[item.type.value] = by_type.get(item.type.value, 0) + 1
            return {
                "total": len(items),
                "by_type": by_type,
                "retrying": sum(1 for item in items if item.retry_count > 0),
                "oldest_enqueued_at": min((item.enqueued_at for item in items), default=None),
                "max_retries": self.max_retries,
            }
