from __future__ import annotations

import threading

from hometrack.errors import ErrorCode, StorageError
from hometrack.infrastructure.storage.base import StorageBackend


class MemoryBackend(StorageBackend):
    """In-memory key/value backend.

    Used for tests and for sessions that should not touch disk. An optional
    ``max_bytes`` quota makes writes fail the way a full browser-style store
    does, raising StorageError.
    """

    def __init__(self, max_bytes: int | None = None) -> None:
        self._data: dict[str, str] = {}
        self._lock = threading.RLock()
        self._max_bytes = max_bytes
        self._writes = 0
        self._rejected = 0

    def _size_with(self, key: str, value: str) -> int:
        size = sum(len(k) + len(v) for k, v in self._data.items() if k != key)
        return size + len(key) + len(value)

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            if self._max_bytes is not None and self._size_with(key, value) > self._max_bytes:
                self._rejected += 1
                raise StorageError(
                    "Storage quota exceeded",
                    key=key,
                    code=ErrorCode.STO_WRITE_FAILED,
                    details={"max_bytes": self._max_bytes},
                )
            self._data[key] = value
            self._writes += 1

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._data.pop(key, None) is not None

    def keys(self, prefix: str = "") -> list[str]:
        with self._lock:
            return [k for k in self._data if k.startswith(prefix)]

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def stats(self) -> dict[str, object]:
        with self._lock:
            return {
                "entries": len(self._data),
                "writes": self._writes,
                "rejected_writes": self._rejected,
                "max_bytes": self._max_bytes,
            }
