"""Durable key-value storage for small serialized blobs."""

import logging
import sqlite3
from datetime import datetime
from pathlib import Path

logger = logging.getLogger(__name__)

BLOB_SCHEMA = """
CREATE TABLE IF NOT EXISTS blobs (
    key TEXT PRIMARY KEY,
    value BLOB NOT NULL,
    updated_at TEXT NOT NULL
);
"""


class SQLiteBlobStore:
    """Stores opaque byte blobs under string keys in SQLite.

    Every write commits immediately so a blob survives process restarts.
    """

    def __init__(self, db_path: str | Path):
        """Initialize the blob store.

        Args:
            db_path: Path to SQLite database file, or ":memory:".
        """
        self.db_path = Path(db_path).expanduser()
        self._conn: sqlite3.Connection | None = None

    def connect(self) -> None:
        """Initialize database connection and schema."""
        if str(self.db_path) != ":memory:":
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        self._conn.executescript(BLOB_SCHEMA)
        self._conn.commit()
        logger.info(f"SQLiteBlobStore connected to {self.db_path}")

    def close(self) -> None:
        """Close database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    def _ensure_connected(self) -> sqlite3.Connection:
        if self._conn is None:
            self.connect()
        return self._conn

    def load_blob(self, key: str) -> bytes | None:
        """Return the blob stored under ``key``, or None."""
        conn = self._ensure_connected()
        row = conn.execute("SELECT value FROM blobs WHERE key = ?", (key,)).fetchone()
        return bytes(row[0]) if row else None

    def save_blob(self, key: str, data: bytes) -> None:
        """Store ``data`` under ``key``, replacing any previous value."""
        conn = self._ensure_connected()
        conn.execute(
            """
            INSERT INTO blobs (key, value, updated_at) VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET value = excluded.value,
                                           updated_at = excluded.updated_at
            """,
            (key, sqlite3.Binary(data), datetime.now().isoformat()),
        )
        conn.commit()
        logger.debug(f"Saved blob {key} ({len(data)} bytes)")

    def delete_blob(self, key: str) -> None:
        conn = self._ensure_connected()
        conn.execute("DELETE FROM blobs WHERE key = ?", (key,))
        conn.commit()
