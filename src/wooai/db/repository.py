"""Repository pattern for all knowledge base database operations.

Single interface for: knowledge chunks, their JSON-encoded embeddings,
LIKE lookups and the aggregate queries used by health scoring.
"""

from __future__ import annotations

import json
import sqlite3
from collections.abc import Iterable, Iterator
from contextlib import contextmanager

from wooai.db.connection import connection_lock
from wooai.db.models import ChunkStats, KnowledgeChunk

_CHUNK_COLUMNS = (
    "id, source_type, source_id, title, full_content, chunk_content, chunk_index, "
    "content_hash, embedding, metadata, indexed_at, updated_at"
)


class Repository:
    """Data access layer for knowledge chunks.

    Wraps an open sqlite3.Connection. The connection is owned by the caller
    and must be closed after use. Every statement runs under the connection's
    lock, and each write method is one transaction.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        """Initialise with an open database connection.

        Args:
            conn: An open sqlite3.Connection with the schema initialised
                (see wooai.db.schema.initialize).
        """
        self._conn = conn
        self._lock = connection_lock(conn)

    @property
    def connection(self) -> sqlite3.Connection:
        return self._conn

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Hold the lock for one transaction; commit on success, roll back on error."""
        with self._lock:
            try:
                yield self._conn
            except sqlite3.Error:
                self._conn.rollback()
                raise
            self._conn.commit()

    def add_chunk(self, chunk: KnowledgeChunk) -> int:
        """Insert a chunk and return its new id. Sets ``chunk.id``."""
        with self._transaction():
            return self._insert(chunk)

    def add_chunks(self, chunks: Iterable[KnowledgeChunk]) -> list[int]:
        """Insert several chunks in one transaction. Returns the new ids."""
        with self._transaction():
            return [self._insert(c) for c in chunks]

    def replace_source_chunks(
        self,
        source_type: str,
        source_id: str | None,
        chunks: Iterable[KnowledgeChunk],
    ) -> tuple[int, list[int]]:
        """Swap the stored chunks of one source for *chunks* atomically.

        The new rows keep the earliest ``indexed_at`` of the rows they
        replace. On any database error nothing changes.

        Returns:
            (rows deleted, ids of the inserted rows)
        """
        with self._transaction() as conn:
            first_indexed = conn.execute(
                "SELECT MIN(indexed_at) FROM knowledge_chunks "
                "WHERE source_type = ? AND source_id IS ?",
                (source_type, source_id),
            ).fetchone()[0]
            deleted = conn.execute(
                "DELETE FROM knowledge_chunks WHERE source_type = ? AND source_id IS ?",
                (source_type, source_id),
            ).rowcount
            ids: list[int] = []
            for chunk in chunks:
                if chunk.indexed_at is None:
                    chunk.indexed_at = first_indexed
                ids.append(self._insert(chunk))
        return deleted, ids

    def _insert(self, chunk: KnowledgeChunk) -> int:
        cur = self._conn.execute(
            """
            INSERT INTO knowledge_chunks (
                source_type, source_id, title, full_content, chunk_content,
                chunk_index, content_hash, embedding, metadata, indexed_at, updated_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?,
                    COALESCE(?, datetime('now')), COALESCE(?, datetime('now')))
            """,
            (
                chunk.source_type,
                chunk.source_id,
                chunk.title,
                chunk.full_content,
                chunk.chunk_content,
                chunk.chunk_index,
                chunk.content_hash,
                json.dumps(chunk.embedding) if chunk.embedding is not None else None,
                json.dumps(chunk.metadata or {}),
                chunk.indexed_at,
                chunk.updated_at,
            ),
        )
        chunk.id = cur.lastrowid
        return cur.lastrowid

    def update_embedding(self, chunk_id: int, embedding: list[float] | None) -> bool:
        """Replace the stored embedding of *chunk_id*. Returns False if no such row."""
        with self._transaction() as conn:
            cur = conn.execute(
                "UPDATE knowledge_chunks SET embedding = ?, updated_at = datetime('now') WHERE id = ?",
                (json.dumps(embedding) if embedding is not None else None, chunk_id),
            )
        return cur.rowcount > 0

    def delete_chunk(self, chunk_id: int) -> bool:
        with self._transaction() as conn:
            cur = conn.execute("DELETE FROM knowledge_chunks WHERE id = ?", (chunk_id,))
        return cur.rowcount > 0

    def delete_chunks_by_source(self, source_type: str, source_id: str | None) -> int:
        """Delete every chunk of one source. Returns the number of rows removed."""
        with self._transaction() as conn:
            cur = conn.execute(
                "DELETE FROM knowledge_chunks WHERE source_type = ? AND source_id IS ?",
                (source_type, source_id),
            )
        return cur.rowcount

    def delete_all(self) -> int:
        with self._transaction() as conn:
            cur = conn.execute("DELETE FROM knowledge_chunks")
        return cur.rowcount

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _fetchall(self, sql: str, params: Iterable[object] = ()) -> list[sqlite3.Row]:
        with self._lock:
            return self._conn.execute(sql, tuple(params)).fetchall()

    def _fetchone(self, sql: str, params: Iterable[object] = ()) -> sqlite3.Row | None:
        with self._lock:
            return self._conn.execute(sql, tuple(params)).fetchone()

    def get_chunk(self, chunk_id: int) -> KnowledgeChunk | None:
        """Return a chunk by id, or None if not found."""
        row = self._fetchone(
            f"SELECT {_CHUNK_COLUMNS} FROM knowledge_chunks WHERE id = ?", (chunk_id,)
        )
        return _row_to_chunk(row) if row else None

    def list_chunks(
        self,
        source_type: str | None = None,
        source_id: str | None = None,
    ) -> list[KnowledgeChunk]:
        """Return chunks ordered by (source_type, source_id, chunk_index)."""
        sql = f"SELECT {_CHUNK_COLUMNS} FROM knowledge_chunks"
        clauses: list[str] = []
        params: list[object] = []
        if source_type is not None:
            clauses.append("source_type = ?")
            params.append(source_type)
        if source_id is not None:
            clauses.append("source_id = ?")
            params.append(source_id)
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY source_type, source_id, chunk_index, id"
        return [_row_to_chunk(r) for r in self._fetchall(sql, params)]

    def list_embedded_chunks(
        self, source_types: Iterable[str] | None = None
    ) -> list[KnowledgeChunk]:
        """Return every chunk that has an embedding, optionally filtered by type."""
        sql = f"SELECT {_CHUNK_COLUMNS} FROM knowledge_chunks WHERE embedding IS NOT NULL"
        params: list[object] = []
        types = list(source_types or [])
        if types:
            sql += f" AND source_type IN ({','.join('?' * len(types))})"
            params.extend(types)
        return [_row_to_chunk(r) for r in self._fetchall(sql, params)]

    def search_like(
        self,
        term: str,
        source_types: Iterable[str] | None = None,
        limit: int = 20,
    ) -> list[KnowledgeChunk]:
        """Case-insensitive LIKE lookup over title, chunk text and metadata."""
        escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        pattern = f"%{escaped}%"
        sql = (
            f"SELECT {_CHUNK_COLUMNS} FROM knowledge_chunks "
            "WHERE (title LIKE ? ESCAPE '\\' OR chunk_content LIKE ? ESCAPE '\\' "
            "OR metadata LIKE ? ESCAPE '\\')"
        )
        params: list[object] = [pattern, pattern, pattern]
        types = list(source_types or [])
        if types:
            sql += f" AND source_type IN ({','.join('?' * len(types))})"
            params.extend(types)
        sql += " ORDER BY indexed_at DESC, id LIMIT ?"
        params.append(limit)
        return [_row_to_chunk(r) for r in self._fetchall(sql, params)]

    def count_chunks(self) -> int:
        return self._fetchone("SELECT COUNT(*) FROM knowledge_chunks")[0]

    def count_sources_by_type(self) -> dict[str, int]:
        """Return {source_type: number of distinct sources} (NULL ids count once)."""
        rows = self._fetchall(
            """
            SELECT source_type, COUNT(DISTINCT COALESCE(source_id, '')) AS n
            FROM knowledge_chunks GROUP BY source_type
            """
        )
        return {r["source_type"]: r["n"] for r in rows}

    def duplicate_hash_counts(self) -> dict[str, int]:
        """Return {content_hash: occurrences} for hashes stored more than once."""
        rows = self._fetchall(
            """
            SELECT content_hash, COUNT(*) AS n FROM knowledge_chunks
            GROUP BY content_hash HAVING COUNT(*) > 1
            """
        )
        return {r["content_hash"]: r["n"] for r in rows}

    def chunk_stats(self, source_type: str | None = None) -> list[ChunkStats]:
        """Aggregate per-type statistics, optionally for a single type."""
        sql = """
            SELECT source_type,
                   COUNT(*) AS total_chunks,
                   COUNT(DISTINCT COALESCE(source_id, '')) AS total_sources,
                   AVG(LENGTH(chunk_content)) AS avg_chunk_size,
                   SUM(CASE WHEN embedding IS NOT NULL THEN 1 ELSE 0 END) AS with_embedding,
                   MAX(indexed_at) AS last_indexed
            FROM knowledge_chunks
        """
        params: list[object] = []
        if source_type is not None:
            sql += " WHERE source_type = ?"
            params.append(source_type)
        sql += " GROUP BY source_type ORDER BY source_type"
        return [
            ChunkStats(
                source_type=r["source_type"],
                total_chunks=r["total_chunks"],
                total_sources=r["total_sources"],
                avg_chunk_size=round(r["avg_chunk_size"] or 0.0, 1),
                with_embedding=r["with_embedding"] or 0,
                last_indexed=r["last_indexed"],
            )
            for r in self._fetchall(sql, params)
        ]


# ------------------------------------------------------------------
# Row → model helpers
# ------------------------------------------------------------------


def _row_to_chunk(row: sqlite3.Row) -> KnowledgeChunk:
    embedding = json.loads(row["embedding"]) if row["embedding"] else None
    metadata = json.loads(row["metadata"]) if row["metadata"] else {}
    return KnowledgeChunk(
        id=row["id"],
        source_type=row["source_type"],
        source_id=row["source_id"],
        title=row["title"],
        full_content=row["full_content"],
        chunk_content=row["chunk_content"],
        chunk_index=row["chunk_index"],
        content_hash=row["content_hash"],
        embedding=embedding,
        metadata=metadata if isinstance(metadata, dict) else {},
        indexed_at=row["indexed_at"],
        updated_at=row["updated_at"],
    )
