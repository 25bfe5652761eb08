"""SQLite-backed key-value store for agent state that must survive restarts."""

import sqlite3
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path

_UPSERT = """
    INSERT INTO kv_store (key, value, updated_at)
    VALUES (?, ?, ?)
    ON CONFLICT(key) DO UPDATE SET
        value = excluded.value,
        updated_at = excluded.updated_at
"""


class KeyValueStore:
    """Small persistent key-value store.

    Values are opaque strings; callers serialize their own data. The upload
    queue keeps its whole serialized list under a single key and changes it
    through update(), so several processes can share one database file.
    """

    def __init__(self, db_path: Path, timeout: float = 10.0) -> None:
        """Initialize the store.

        Args:
            db_path: Path to the SQLite database file
            timeout: Seconds to wait for another process's write lock
        """
        self.db_path = db_path
        db_path.parent.mkdir(parents=True, exist_ok=True)

        self._conn = sqlite3.connect(str(db_path), timeout=timeout, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._create_table()

    def _create_table(self) -> None:
        """Create the key-value table if it doesn't exist."""
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS kv_store (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)
        self._conn.commit()

    def get(self, key: str) -> str | None:
        """Return the value stored under key, or None."""
        cursor = self._conn.execute(
            "SELECT value FROM kv_store WHERE key = ?",
            (key,),
        )
        row = cursor.fetchone()
        return row["value"] if row else None

    def set(self, key: str, value: str) -> None:
        """Store value under key, replacing any previous value."""
        self._conn.execute(_UPSERT, (key, value, datetime.now(timezone.utc).isoformat()))
        self._conn.commit()

    def update(self, key: str, apply: Callable[[str | None], str]) -> str:
        """Read, transform and write one value inside a single write transaction.

        The write lock is taken before reading, so a concurrent update from
        another connection or process waits instead of being overwritten.
        If apply raises, nothing is written and the exception propagates.

        Args:
            key: Key to update
            apply: Function from the current value (or None) to the new value

        Returns:
            The value written
        """
        self._conn.execute("BEGIN IMMEDIATE")
        try:
            value = apply(self.get(key))
            self._conn.execute(_UPSERT, (key, value, datetime.now(timezone.utc).isoformat()))
        except BaseException:
            self._conn.rollback()
            raise
        self._conn.commit()
        return value

    def delete(self, key: str) -> None:
        """Remove key if present."""
        self._conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
        self._conn.commit()

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()
