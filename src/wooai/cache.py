"""Shared key/value cache with TTL and group flush.

Backed by the ``cache_entries`` table of the knowledge base database, so every
process that opens the same file sees the same entries. Values are stored as
JSON; expired rows are treated as misses and purged lazily.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import time
from typing import Any, Callable

from wooai.db.connection import connection_lock

logger = logging.getLogger(__name__)

# An expired counter restarts at the increment with a fresh expiry; a live one
# keeps its expiry.
_INCR_SQL = """
INSERT INTO cache_entries (cache_group, cache_key, value, expires_at)
VALUES (:group, :key, :amount, :expires_at)
ON CONFLICT(cache_group, cache_key) DO UPDATE SET
    value = CASE
        WHEN expires_at IS NOT NULL AND expires_at <= :now THEN excluded.value
        ELSE CAST(value AS INTEGER) + excluded.value
    END,
    expires_at = CASE
        WHEN expires_at IS NOT NULL AND expires_at <= :now THEN excluded.expires_at
        ELSE expires_at
    END
"""


class Cache:
    """TTL cache over a SQLite connection.

    Args:
        conn: Connection with the schema initialised.
        clock: Time source in epoch seconds (injectable for tests).
    """

    def __init__(self, conn: sqlite3.Connection, clock: Callable[[], float] = time.time) -> None:
        self._conn = conn
        self._clock = clock
        self._lock = connection_lock(conn)

    def _write(self, sql: str, params: Any) -> int:
        """Run one statement as its own transaction; return the affected row count."""
        with self._lock:
            try:
                cur = self._conn.execute(sql, params)
            except sqlite3.Error:
                self._conn.rollback()
                raise
            self._conn.commit()
            return cur.rowcount

    def get(self, key: str, group: str = "default", default: Any = None) -> Any:
        """Return the cached value for *key*, or *default* on miss or expiry."""
        with self._lock:
            row = self._conn.execute(
                "SELECT value, expires_at FROM cache_entries WHERE cache_group = ? AND cache_key = ?",
                (group, key),
            ).fetchone()
        if row is None:
            return default
        if row["expires_at"] is not None and row["expires_at"] <= self._clock():
            self.delete(key, group)
            return default
        return json.loads(row["value"])

    def set(self, key: str, value: Any, group: str = "default", ttl: int | None = None) -> None:
        """Store *value* (JSON-serialisable) for *ttl* seconds (None = no expiry)."""
        expires_at = self._clock() + ttl if ttl else None
        self._write(
            """
            INSERT INTO cache_entries (cache_group, cache_key, value, expires_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(cache_group, cache_key) DO UPDATE SET
                value = excluded.value,
                expires_at = excluded.expires_at
            """,
            (group, key, json.dumps(value), expires_at),
        )

    def delete(self, key: str, group: str = "default") -> bool:
        removed = self._write(
            "DELETE FROM cache_entries WHERE cache_group = ? AND cache_key = ?", (group, key)
        )
        return removed > 0

    def flush_group(self, group: str) -> int:
        """Drop every entry of *group*. Returns the number of entries removed."""
        removed = self._write("DELETE FROM cache_entries WHERE cache_group = ?", (group,))
        logger.debug("Flushed cache group %s (%d entries)", group, removed)
        return removed

    def incr(self, key: str, group: str = "default", amount: int = 1, ttl: int | None = None) -> int:
        """Atomically add *amount* to an integer counter and return the new value.

        A missing or expired counter starts at *amount* and expires after
        *ttl* seconds.
        """
        now = self._clock()
        params = {
            "group": group,
            "key": key,
            "amount": amount,
            "expires_at": now + ttl if ttl else None,
            "now": now,
        }
        with self._lock:
            try:
                self._conn.execute(_INCR_SQL, params)
                row = self._conn.execute(
                    "SELECT value FROM cache_entries WHERE cache_group = ? AND cache_key = ?",
                    (group, key),
                ).fetchone()
            except sqlite3.Error:
                self._conn.rollback()
                raise
            self._conn.commit()
        return int(json.loads(row["value"]))

    def purge_expired(self) -> int:
        return self._write(
            "DELETE FROM cache_entries WHERE expires_at IS NOT NULL AND expires_at <= ?",
            (self._clock(),),
        )
