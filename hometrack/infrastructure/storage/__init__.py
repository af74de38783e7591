from __future__ import annotations

from pathlib import Path

from hometrack.infrastructure.storage.base import StorageBackend
from hometrack.infrastructure.storage.memory import MemoryBackend
from hometrack.infrastructure.storage.sqlite import SQLiteBackend


def create_default_backend(db_path: str | Path | None = None) -> StorageBackend:
    """Create the durable backend used by the local store.

    Defaults to the path configured under ``storage.db_path``.
    """
    if db_path is None:
        from hometrack.config import get_config

        db_path = get_config().storage.db_path
    return SQLiteBackend(db_path=db_path)


__all__ = [
    "StorageBackend",
    "MemoryBackend",
    "SQLiteBackend",
    "create_default_backend",
]
