from __future__ import annotations

import sqlite3
from pathlib import Path

from hometrack.errors import ErrorCode, StorageError
from hometrack.infrastructure.storage.base import StorageBackend


class SQLiteBackend(StorageBackend):
    """Persistent SQLite-based key/value backend.

    One row per key in a ``kv`` table. sqlite3 errors are re-raised as
    StorageError so the LocalStore has a single exception type to absorb.
    """

    def __init__(self, db_path: str | Path) -> None:
        self.db_path = Path(db_path)
        self._init_db()

    def _init_db(self) -> None:
        """Initialize the database schema."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with sqlite3.connect(self.db_path) as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS kv (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
                """
            )

    def get(self, key: str) -> str | None:
        try:
            with sqlite3.connect(self.db_path) as conn:
                row = conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        except sqlite3.Error as e:
            raise StorageError(
                f"Failed to read {key}", key=key, code=ErrorCode.STO_READ_FAILED, cause=e
            ) from e
        return row[0] if row else None

    def set(self, key: str, value: str) -> None:
        try:
            with sqlite3.connect(self.db_path) as conn:
                conn.execute(
                    "INSERT OR REPLACE INTO kv (key, value) VALUES (?, ?)",
                    (key, value),
                )
        except sqlite3.Error as e:
            raise StorageError(
                f"Failed to write {key}", key=key, code=ErrorCode.STO_WRITE_FAILED, cause=e
            ) from e

    def delete(self, key: str) -> bool:
        try:
            with sqlite3.connect(self.db_path) as conn:
                cursor = conn.execute("DELETE FROM kv WHERE key = ?", (key,))
                return cursor.rowcount > 0
        except sqlite3.Error as e:
            raise StorageError(
                f"Failed to delete {key}", key=key, code=ErrorCode.STO_WRITE_FAILED, cause=e
            ) from e

    def keys(self, prefix: str = "") -> list[str]:
        # LIKE treats _ as a wildcard and every key contains one, so filter in Python
        with sqlite3.connect(self.db_path) as conn:
            rows = conn.execute("SELECT key FROM kv ORDER BY key").fetchall()
        return [row[0] for row in rows if row[0].startswith(prefix)]

    def clear(self) -> None:
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("DELETE FROM kv")

    def stats(self) -> dict[str, object]:
        with sqlite3.connect(self.db_path) as conn:
            count = conn.execute("SELECT COUNT(*) FROM kv").fetchone()[0]
            return {
                "entries": count,
                "db_path": str(self.db_path),
            }
