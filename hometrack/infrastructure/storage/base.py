from __future__ import annotations

from abc import ABC, abstractmethod


class StorageBackend(ABC):
    """Abstract base class for text key/value storage backends."""

    @abstractmethod
    def get(self, key: str) -> str | None:
        """Get the stored text for a key, or None if absent."""
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store text under a key, replacing any previous value."""
        pass

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Delete a key. Returns True if it existed."""
        pass

    @abstractmethod
    def keys(self, prefix: str = "") -> list[str]:
        """List keys starting with prefix."""
        pass

    @abstractmethod
    def clear(self) -> None:
        """Remove every key."""
        pass

    @abstractmethod
    def stats(self) -> dict[str, object]:
        """Get statistics for the backend."""
        pass
