"""Durable, identity-scoped local store.

Holds the on-device copy of houses, payments, the profile, the sync queue and
the last-sync timestamp. Every key is suffixed with the active identity so
that switching users never mixes data; with no identity set, the unscoped
global keys are used.

The store never raises to its callers:
- read misses and undecodable values return a neutral default ([] or None)
- write failures are logged and the value is kept in an in-process overlay,
  so the rest of the session still sees the write

Usage:
    from hometrack.infrastructure.storage import MemoryBackend
    from hometrack.local_store import LocalStore

    store = LocalStore(MemoryBackend(), user_id="alice")
    store.upsert_house(house)
    store.delete_house("h1")  # also removes the house's payments
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from enum import Enum
from typing import Any

import orjson

from hometrack.errors import StorageError
from hometrack.infrastructure.storage.base import StorageBackend
from hometrack.models import House, Payment, UserProfile, payment_display_key

logger = logging.getLogger(__name__)

KEY_PREFIX = "mortgage_tracker"
USER_ID_KEY = f"{KEY_PREFIX}_user_id"


class Collection(str, Enum):
    """Named collections persisted per identity."""

    HOUSES = "houses"
    PAYMENTS = "payments"
    PROFILE = "profile"
    SYNC_QUEUE = "sync_queue"
    LAST_SYNC = "last_sync"


_LIST_COLLECTIONS = {Collection.HOUSES, Collection.PAYMENTS, Collection.SYNC_QUEUE}


def _default_for(collection: Collection) -> Any:
    return [] if collection in _LIST_COLLECTIONS else None


class LocalStore:
    """Identity-scoped key/value store over a StorageBackend.

    All operations are synchronous and read-modify-write whole collections,
    so a single call is never observed half-applied.
    """

    def __init__(self, backend: StorageBackend, user_id: str | None = None) -> None:
        """Initialize the store.

        Args:
            backend: Text key/value backend.
            user_id: Optional identity to scope keys to immediately.
        """
        self._backend = backend
        self._lock = threading.RLock()
        # Values whose backend write failed, keyed by full storage key
        self._overlay: dict[str, Any] = {}
        self._user_id: str | None = None
        self._write_failures = 0

        if user_id:
            self.set_user_id(user_id)

    # Identity

    def set_user_id(self, user_id: str) -> None:
        """Scope subsequent reads and writes to ``user_id``."""
        with self._lock:
            self._user_id = user_id
            self._write(USER_ID_KEY, user_id)
        logger.debug(f"Local store scoped to user {user_id}")

    def get_user_id(self) -> str | None:
        """Active identity, restoring the persisted marker if none is set."""
        with self._lock:
            if self._user_id is None:
                stored = self._read(USER_ID_KEY, None)
                if isinstance(stored, str) and stored:
                    self._user_id = stored
            return self._user_id

    def clear_user_id(self) -> None:
        with self._lock:
            self._user_id = None
            self._overlay.pop(USER_ID_KEY, None)
            try:
                self._backend.delete(USER_ID_KEY)
            except StorageError as e:
                logger.error(f"Failed to clear user id marker: {e}")

    def key_for(self, collection: Collection | str) -> str:
        """Full storage key for a collection under the active identity."""
        name = Collection(collection).value
        user_id = self.get_user_id()
        base = f"{KEY_PREFIX}_{name}"
        return f"{base}_{user_id}" if user_id else base

    # Raw access

    def _read(self, key: str, default: Any) -> Any:
        if key in self._overlay:
            return self._overlay[key]
        try:
            raw = self._backend.get(key)
        except StorageError as e:
            logger.error(f"Failed to load {key} from local storage: {e}")
            return default
        if raw is None:
            return default
        try:
            return orjson.loads(raw)
        except orjson.JSONDecodeError as e:
            logger.warning(f"Discarding undecodable value for {key}: {e}")
            return default

    def _write(self, key: str, value: Any) -> bool:
        try:
            self._backend.set(key, orjson.dumps(value).decode("utf-8"))
        except (StorageError, OSError, TypeError) as e:
            self._write_failures += 1
            self._overlay[key] = value
            logger.error(f"Failed to save {key} to local storage, keeping in memory: {e}")
            return False
        self._overlay.pop(key, None)
        return True

    def save(self, collection: Collection | str, items: Any) -> bool:
        """Replace a collection's stored value.

        Returns:
            True if persisted, False if only kept in memory.
        """
        with self._lock:
            return self._write(self.key_for(collection), items)

    def get(self, collection: Collection | str) -> Any:
        """Read a collection; [] or None when nothing is stored."""
        collection = Collection(collection)
        with self._lock:
            value = self._read(self.key_for(collection), _default_for(collection))
            if collection in _LIST_COLLECTIONS and not isinstance(value, list):
                logger.warning(f"Expected a list for {collection.value}, got {type(value).__name__}")
                return []
            return value

    def delete(self, collection: Collection | str, predicate: Callable[[Any], bool]) -> int:
        """Remove every item of a list collection matching ``predicate``.

        Only dict items are offered to the predicate; anything else is a
        corrupted record and is left in place.

        Returns:
            Number of items removed.
        """
        with self._lock:
            items = self.get(collection)
            kept = [item for item in items if not (isinstance(item, dict) and predicate(item))]
            removed = len(items) - len(kept)
            if removed:
                self.save(collection, kept)
            return removed

    # Houses

    def get_houses(self) -> list[House]:
        houses: list[House] = []
        for data in self.get(Collection.HOUSES):
            try:
                houses.append(House.from_dict(data))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping corrupted house record: {e}")
        return houses

    def save_houses(self, houses: list[House]) -> bool:
        return self.save(Collection.HOUSES, [h.to_dict() for h in houses])

    def get_house(self, house_id: str) -> House | None:
        return next((h for h in self.get_houses() if h.id == house_id), None)

    def upsert_house(self, house: House) -> bool:
        """Insert or replace a house by id.

        Returns:
            True if a house with this id already existed.
        """
        with self._lock:
            houses = self.get_houses()
            for index, existing in enumerate(houses):
                if existing.id == house.id:
                    houses[index] = house
                    self.save_houses(houses)
                    return True
            houses.append(house)
            self.save_houses(houses)
            return False

    def delete_house(self, house_id: str) -> int:
        """Delete a house and every payment that references it.

        Returns:
            Number of payments removed with the house.
        """
        with self._lock:
            self.delete(Collection.HOUSES, lambda h: h.get("id") == house_id)
            return self.delete(Collection.PAYMENTS, lambda p: p.get("house_id") == house_id)

    # Payments

    def get_payments(self) -> list[Payment]:
        payments: list[Payment] = []
        for data in self.get(Collection.PAYMENTS):
            try:
                payments.append(Payment.from_dict(data))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping corrupted payment record: {e}")
        return payments

    def save_payments(self, payments: list[Payment]) -> bool:
        return self.save(Collection.PAYMENTS, [p.to_dict() for p in payments])

    def get_payments_by_house(self, house_id: str) -> list[Payment]:
        """Payments of one house, newest first."""
        return sorted(
            (p for p in self.get_payments() if p.house_id == house_id),
            key=payment_display_key,
        )

    def get_payment(self, payment_id: str) -> Payment | None:
        return next((p for p in self.get_payments() if p.id == payment_id), None)

    def payment_at(self, house_id: str, index: int) -> Payment | None:
        """Resolve a row of the displayed payment history to its payment."""
        payments = self.get_payments_by_house(house_id)
        if 0 <= index < len(payments):
            return payments[index]
        return None

    def add_payment(self, payment: Payment) -> None:
        with self._lock:
            payments = self.get_payments()
            payments.append(payment)
            self.save_payments(payments)

    def update_payment(self, payment: Payment) -> bool:
        """Replace the payment with the same id.

        Returns:
            True if it was found and replaced.
        """
        with self._lock:
            payments = self.get_payments()
            for index, existing in enumerate(payments):
                if existing.id == payment.id:
                    payments[index] = payment
                    self.save_payments(payments)
                    return True
            return False

    def remove_payment(self, payment_id: str) -> bool:
        return self.delete(Collection.PAYMENTS, lambda p: p.get("id") == payment_id) > 0

    # Profile

    def get_profile(self) -> UserProfile | None:
        data = self.get(Collection.PROFILE)
        if not isinstance(data, dict):
            return None
        return UserProfile.from_dict(data)

    def save_profile(self, profile: UserProfile) -> bool:
        return self.save(Collection.PROFILE, profile.to_dict())

    # Last sync

    def get_last_sync_time(self) -> int | None:
        value = self.get(Collection.LAST_SYNC)
        return int(value) if isinstance(value, int | float) else None

    def set_last_sync_time(self, timestamp_ms: int) -> bool:
        return self.save(Collection.LAST_SYNC, int(timestamp_ms))

    # Logout

    def clear_all_data(self) -> None:
        """Remove every collection of the active identity and forget it."""
        with self._lock:
            user_id = self.get_user_id()
            if user_id:
                for collection in Collection:
                    key = self.key_for(collection)
                    self._overlay.pop(key, None)
                    try:
                        self._backend.delete(key)
                    except StorageError as e:
                        logger.error(f"Failed to remove {key}: {e}")
            self.clear_user_id()
        logger.info(f"Cleared local data for user {user_id}")

    def stats(self) -> dict[str, Any]:
        with self._lock:
            return {
                "user_id": self._user_id,
                "write_failures": self._write_failures,
                "unpersisted_keys": sorted(self._overlay),
                "backend": self._backend.stats(),
            }
