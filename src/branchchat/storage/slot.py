"""Durable key-value slots backed by SQLite."""

from __future__ import annotations

import sqlite3
from pathlib import Path

from branchchat.storage.base import Database, utcnow
from branchchat.storage.exceptions import DatabaseError, StorageError
from branchchat.storage.migrations import get_all_migrations


class KeyValueSlot:
    """String values stored under string keys."""

    def __init__(self, db_path: Path | str) -> None:
        """Connect to or create the database. Runs migrations if needed."""
        self._db = Database(db_path)
        try:
            self._db.run_migrations(get_all_migrations())
        except StorageError:
            self._db.close()
            raise

    @property
    def conn(self) -> sqlite3.Connection:
        """Access underlying connection."""
        return self._db.conn

    def close(self) -> None:
        """Close the database connection."""
        self._db.close()

    def get(self, key: str) -> str | None:
        """Return the stored value, or None when the key is absent."""
        try:
            row = self.conn.execute(
                "SELECT value FROM kv_slot WHERE key = ?", (key,)
            ).fetchone()
        except sqlite3.Error as e:
            raise DatabaseError(f"Read of '{key}' failed: {e}") from e
        return row["value"] if row is not None else None

    def set(self, key: str, value: str) -> None:
        """Insert or replace the value under ``key``."""
        try:
            self.conn.execute(
                """
                INSERT INTO kv_slot (key, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = excluded.updated_at
                """,
                (key, value, utcnow()),
            )
        except sqlite3.Error as e:
            raise DatabaseError(f"Write of '{key}' failed: {e}") from e

    def delete(self, key: str) -> bool:
        """Remove ``key``. Returns True if a row was deleted."""
        try:
            cursor = self.conn.execute("DELETE FROM kv_slot WHERE key = ?", (key,))
        except sqlite3.Error as e:
            raise DatabaseError(f"Delete of '{key}' failed: {e}") from e
        return cursor.rowcount > 0

    def keys(self) -> list[str]:
        try:
            cursor = self.conn.execute("SELECT key FROM kv_slot ORDER BY key")
            return [row["key"] for row in cursor]
        except sqlite3.Error as e:
            raise DatabaseError(f"Listing keys failed: {e}") from e
