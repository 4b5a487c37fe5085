"""
SQLite-backed cache store, so last-known quotes and critical error records
survive process restarts.

Schema is created idempotently on open. Expiry uses wall-clock epoch seconds
because entries outlive the process.
"""

from __future__ import annotations

import logging
import sqlite3
import time
from pathlib import Path
from typing import Callable, Optional, Union

logger = logging.getLogger(__name__)


def run_migrations(conn: sqlite3.Connection) -> None:
    """Create the cache table if missing. Safe to call on every startup."""
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS cache_entries (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            expires_at REAL NOT NULL,
            updated_at REAL NOT NULL
        );
        """
    )
    conn.execute("CREATE INDEX IF NOT EXISTS idx_cache_entries_expires ON cache_entries(expires_at);")
    conn.commit()


class SqliteCacheStore:
    """Read/write cache entries in one SQLite table."""

    def __init__(
        self,
        db_path: Union[str, Path] = ":memory:",
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        path = str(db_path)
        if path != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)
        self._conn: Optional[sqlite3.Connection] = sqlite3.connect(path)
        self._clock = clock
        run_migrations(self._conn)

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise RuntimeError("SqliteCacheStore is closed")
        return self._conn

    async def get(self, key: str) -> Optional[str]:
        cur = self.conn.execute(
            "SELECT value, expires_at FROM cache_entries WHERE key = ?",
            (key,),
        )
        row = cur.fetchone()
        if row is None:
            return None
        if self._clock() >= row[1]:
            self.conn.execute("DELETE FROM cache_entries WHERE key = ?", (key,))
            self.conn.commit()
            return None
        return row[0]

    async def set(self, key: str, value: str, ttl_s: float) -> None:
        if ttl_s <= 0:
            raise ValueError(f"ttl_s must be positive, got {ttl_s}")
        now = self._clock()
        self.conn.execute(
            """
            INSERT INTO cache_entries (key, value, expires_at, updated_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET
                value = excluded.value,
                expires_at = excluded.expires_at,
                updated_at = excluded.updated_at;
            """,
            (key, value, now + ttl_s, now),
        )
        self.conn.commit()

    async def delete(self, key: str) -> bool:
        cur = self.conn.execute("DELETE FROM cache_entries WHERE key = ?", (key,))
        self.conn.commit()
        return cur.rowcount > 0

    async def ping(self) -> bool:
        self.conn.execute("SELECT 1").fetchone()
        return True

    def purge_expired(self) -> int:
        cur = self.conn.execute("DELETE FROM cache_entries WHERE expires_at <= ?", (self._clock(),))
        self.conn.commit()
        if cur.rowcount:
            logger.debug("Purged %d expired cache entries", cur.rowcount)
        return cur.rowcount

    async def close(self) -> None:
        """Idempotent: safe to call multiple times."""
        if self._conn is None:
            return
        try:
            self._conn.close()
        finally:
            self._conn = None
