"""Tests for the forward-only migration runner."""

from __future__ import annotations

from wooai.db.connection import Database
from wooai.db.migrations import MIGRATIONS, run_migrations
from wooai.db.schema import CURRENT_VERSION, initialize


def _fresh_conn(tmp_path):
    """Open a new connection without running migrations."""
    return Database(tmp_path / "test.db").connect()


def _table_exists(conn, name: str) -> bool:
    return conn.execute(
        "SELECT name FROM sqlite_master WHERE type = 'table' AND name = ?", (name,)
    ).fetchone() is not None


def test_run_migrations_records_version(tmp_path):
    conn = _fresh_conn(tmp_path)
    run_migrations(conn)
    version = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()[0]
    conn.close()
    assert version == MIGRATIONS[-1][0] == CURRENT_VERSION


def test_run_migrations_idempotent(tmp_path):
    conn = _fresh_conn(tmp_path)
    run_migrations(conn)
    initialize(conn)
    count = conn.execute("SELECT COUNT(*) FROM schema_version").fetchone()[0]
    conn.close()
    assert count == len(MIGRATIONS)


def test_creates_knowledge_chunks_and_cache_tables(tmp_path):
    conn = _fresh_conn(tmp_path)
    run_migrations(conn)
    assert _table_exists(conn, "knowledge_chunks")
    assert _table_exists(conn, "cache_entries")
    conn.close()


def test_knowledge_chunk_timestamps_default_to_now(tmp_db):
    tmp_db.execute(
        "INSERT INTO knowledge_chunks (source_type, chunk_content, content_hash) VALUES (?, ?, ?)",
        ("faq", "text", "h"),
    )
    row = tmp_db.execute("SELECT indexed_at, updated_at FROM knowledge_chunks").fetchone()
    assert row["indexed_at"]
    assert row["updated_at"]
