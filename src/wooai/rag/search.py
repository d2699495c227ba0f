"""Cosine similarity search over stored chunk embeddings.

Embeddings live as JSON in ``knowledge_chunks.embedding``; candidates are
loaded and scored with numpy. Similarity is the cosine clamped to [0, 1]:
opposite-direction vectors score 0 rather than negative.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

import numpy as np

from wooai.db.repository import Repository
from wooai.rag.embeddings import EmbeddingClient
from wooai.rag.vectors import normalize_vector

logger = logging.getLogger(__name__)


@dataclass
class SearchResult:
    """A retrieved chunk with its similarity to the query."""

    id: int
    similarity: float
    title: str
    content: str
    source_type: str
    source_id: str | None
    chunk_index: int = 0
    metadata: dict[str, Any] = field(default_factory=dict)
    indexed_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "similarity": self.similarity,
            "title": self.title,
            "content": self.content,
            "source_type": self.source_type,
            "source_id": self.source_id,
            "chunk_index": self.chunk_index,
            "metadata": self.metadata,
            "indexed_at": self.indexed_at,
        }


class VectorSearch:
    """Similarity search and vector storage for knowledge chunks."""

    def __init__(self, repo: Repository, embeddings: EmbeddingClient) -> None:
        self._repo = repo
        self._embeddings = embeddings

    def search_similar(
        self,
        query_vector: Sequence[float],
        limit: int = 5,
        threshold: float = 0.0,
        source_types: Iterable[str] | None = None,
    ) -> list[SearchResult]:
        """Return up to *limit* chunks with similarity >= *threshold*, best first.

        Ties are broken by ``indexed_at`` (newest first) then ``id``. An empty
        or malformed query, or ``limit < 1``, yields ``[]``. Stored vectors of a
        different dimension are skipped.
        """
        if limit < 1:
            return []
        query = normalize_vector(query_vector)
        if query is None:
            return []
        q = np.asarray(query, dtype=np.float64)
        if not q.any():
            return []

        candidates = [
            c
            for c in self._repo.list_embedded_chunks(source_types)
            if c.embedding is not None and len(c.embedding) == q.shape[0]
        ]
        if not candidates:
            return []

        matrix = np.asarray([c.embedding for c in candidates], dtype=np.float64)
        norms = np.linalg.norm(matrix, axis=1)
        norms[norms == 0.0] = 1.0
        scores = np.clip((matrix @ q) / norms, 0.0, 1.0)

        hits: list[SearchResult] = []
        for chunk, score in zip(candidates, scores.tolist()):
            if score < threshold:
                continue
            hits.append(
                SearchResult(
                    id=chunk.id,
                    similarity=round(score, 6),
                    title=chunk.title,
                    content=chunk.chunk_content,
                    source_type=chunk.source_type,
                    source_id=chunk.source_id,
                    chunk_index=chunk.chunk_index,
                    metadata=chunk.metadata,
                    indexed_at=chunk.indexed_at,
                )
            )

        # stable sorts: id asc, then indexed_at desc, then similarity desc
        hits.sort(key=lambda h: h.id)
        hits.sort(key=lambda h: h.indexed_at or "", reverse=True)
        hits.sort(key=lambda h: h.similarity, reverse=True)
        return hits[:limit]

    def store_vector(self, chunk_id: int, vector: Sequence[float]) -> bool:
        """Normalise *vector* and save it as the embedding of *chunk_id*.

        Returns False for a non-positive id, an empty or non-numeric vector,
        or an unknown chunk.
        """
        if not isinstance(chunk_id, int) or isinstance(chunk_id, bool) or chunk_id <= 0:
            return False
        normalised = normalize_vector(vector)
        if normalised is None:
            return False
        stored = self._repo.update_embedding(chunk_id, normalised)
        if not stored:
            logger.debug("store_vector: no chunk with id %d", chunk_id)
        return stored

    def search_text(
        self,
        query: str,
        limit: int = 5,
        threshold: float = 0.0,
        source_types: Iterable[str] | None = None,
    ) -> list[SearchResult]:
        """Embed *query* and run ``search_similar``. Blank queries yield ``[]``."""
        if not query or not query.strip():
            return []
        vector = self._embeddings.generate_embedding(query)
        return self.search_similar(vector, limit=limit, threshold=threshold, source_types=source_types)
