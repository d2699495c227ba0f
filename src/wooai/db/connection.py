"""SQLite connection layer for the knowledge base and shared cache."""

from __future__ import annotations

import sqlite3
import threading
from pathlib import Path

from wooai.errors import PersistenceError

# Used for connections not opened through Database.connect().
_FALLBACK_LOCK = threading.RLock()


class LockedConnection(sqlite3.Connection):
    """sqlite3 connection carrying the lock that serialises its transactions."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.lock = threading.RLock()


def connection_lock(conn: sqlite3.Connection) -> threading.RLock:
    """Return the lock every reader and writer of *conn* must hold."""
    return getattr(conn, "lock", _FALLBACK_LOCK)


class Database:
    """Per-store SQLite database holding knowledge chunks and cache entries."""

    def __init__(self, db_path: Path | str) -> None:
        """Store the database path. Call connect() to open the connection.

        Args:
            db_path: Path to the SQLite database file (created if missing).
        """
        self.db_path = Path(db_path)
        self._conn: sqlite3.Connection | None = None

    def connect(self) -> sqlite3.Connection:
        """Open a connection and return it.

        The connection may be shared by the worker threads of one process
        (``check_same_thread=False``). Its ``lock`` serialises them; see
        :func:`connection_lock`.

        Raises:
            PersistenceError: If the database file cannot be opened.
        """
        try:
            conn = sqlite3.connect(
                self.db_path, check_same_thread=False, timeout=10.0, factory=LockedConnection
            )
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA foreign_keys = ON")
            conn.execute("PRAGMA journal_mode = WAL")
        except sqlite3.Error as exc:
            raise PersistenceError(f"Cannot open database '{self.db_path}': {exc}") from exc
        return conn

    def __enter__(self) -> sqlite3.Connection:
        """Open the database and return the connection (context manager support)."""
        self._conn = self.connect()
        return self._conn

    def __exit__(self, *args: object) -> None:
        """Close the connection when leaving the context manager."""
        if self._conn:
            self._conn.close()
            self._conn = None
