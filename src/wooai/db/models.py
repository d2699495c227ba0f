"""Domain models for the wooai database layer."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class KnowledgeChunk:
    """One indexed slice of storefront content.

    ``embedding`` is None until computed; when present it has unit L2 norm.
    Timestamps are SQLite ``datetime('now')`` strings (UTC).
    """

    source_type: str
    chunk_content: str
    content_hash: str
    source_id: str | None = None
    title: str = ""
    full_content: str = ""
    chunk_index: int = 0
    embedding: list[float] | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    indexed_at: str | None = None
    updated_at: str | None = None
    id: int | None = None  # set after insert; None for unsaved chunks


@dataclass
class ChunkStats:
    source_type: str
    total_chunks: int
    total_sources: int
    avg_chunk_size: float
    with_embedding: int
    last_indexed: str | None = None
