"""Knowledge base indexer.

Pipeline per content item:

    optimise text -> chunk (per-type size and overlap) -> drop chunks already
    seen in this run -> embed (best-effort) -> swap the stored rows for
    (source_type, source_id) in one transaction -> publish ContentChanged

Embedding failures never abort indexing: chunks are stored without a vector
and show up as ``missing_embedding`` in the health report.
"""

from __future__ import annotations

import logging
import sqlite3
import time
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from itertools import islice
from typing import Any

from wooai.cache import Cache
from wooai.config import ChunkingCfg
from wooai.db.models import ChunkStats, KnowledgeChunk
from wooai.db.repository import Repository
from wooai.errors import InvalidArgument, PersistenceError
from wooai.events import ContentChanged, EventBus
from wooai.ingest.chunker import ContentChunker, TextChunk, validate_overlap
from wooai.ingest.dedup import content_hash
from wooai.ingest.optimize import optimize_for_ai
from wooai.ingest.sources import ContentItem, ContentSource
from wooai.rag.embeddings import EmbeddingClient
from wooai.rag.vectors import normalize_vector

logger = logging.getLogger(__name__)

MIN_INDEX_CHUNK_SIZE = 100
MAX_INDEX_CHUNK_SIZE = 4_000

_PROGRESS_GROUP = "indexer"
_PROGRESS_KEY = "bulk_reindex_progress"


@dataclass
class IndexingResult:
    total_processed: int = 0
    chunks_created: int = 0
    duplicates_skipped: int = 0
    errors: int = 0
    batches_processed: int = 0
    processing_time: float = 0.0
    error_messages: list[str] = field(default_factory=list)


@dataclass
class StoreResult:
    stored: int = 0
    skipped: int = 0
    replaced: int = 0


@dataclass
class BulkReindexResult:
    processed: int = 0
    chunks_created: int = 0
    errors: int = 0
    batches: int = 0
    completed: bool = False
    resumed: bool = False
    content_types: list[str] = field(default_factory=list)


def _batched(items: Iterable[Any], size: int) -> Iterator[list[Any]]:
    it = iter(items)
    while batch := list(islice(it, size)):
        yield batch


class Indexer:
    """Turn storefront content into stored, embedded knowledge chunks.

    Args:
        repo:       Knowledge chunk repository.
        embeddings: Embedding client (may be in offline mode).
        events:     Bus on which ContentChanged is published.
        cache:      Shared cache, used to persist bulk re-index progress.
        chunking:   Chunking defaults.
    """

    def __init__(
        self,
        repo: Repository,
        embeddings: EmbeddingClient,
        events: EventBus,
        cache: Cache,
        chunking: ChunkingCfg | None = None,
    ) -> None:
        self._repo = repo
        self._embeddings = embeddings
        self._events = events
        self._cache = cache
        self._chunking = chunking or ChunkingCfg()
        self._chunker = ContentChunker(
            self._chunking.max_chunk_size,
            self._chunking.min_chunk_size,
            self._chunking.preserve_sentences,
            self._chunking.overlap,
        )

    # ------------------------------------------------------------------
    # Batch indexing
    # ------------------------------------------------------------------

    def process_content(
        self,
        items: Iterable[ContentItem | Mapping[str, Any]],
        chunk_size: int | None = None,
        min_chunk_size: int | None = None,
        batch_size: int | None = None,
        optimize: bool = True,
        embed: bool = True,
        overlap: int | None = None,
    ) -> IndexingResult:
        """Index *items* in batches.

        Each item is chunked with the size and overlap configured for its
        source type. An explicit *chunk_size* or *overlap* applies to every
        item; a per-type overlap is capped at half the chunk size.

        Malformed items (no id, empty content) are counted in ``errors`` and
        skipped; the rest of the batch continues.

        Raises:
            InvalidArgument: If *items* is empty, *chunk_size* is outside
                [100, 4000] or *overlap* is outside [0, chunk_size / 2].
            PersistenceError: If the chunks of an item could not be stored.
                Items stored before the failure stay stored.
        """
        items = list(items)
        if not items:
            raise InvalidArgument("Content data cannot be empty")
        if chunk_size is not None and not (
            MIN_INDEX_CHUNK_SIZE <= chunk_size <= MAX_INDEX_CHUNK_SIZE
        ):
            raise InvalidArgument(
                f"Chunk size must be between {MIN_INDEX_CHUNK_SIZE} and {MAX_INDEX_CHUNK_SIZE}"
            )
        if overlap is not None:
            validate_overlap(overlap, chunk_size or MAX_INDEX_CHUNK_SIZE)
        min_size = self._chunking.min_chunk_size if min_chunk_size is None else min_chunk_size
        batch_size = max(1, batch_size or self._chunking.batch_size)

        started = time.perf_counter()
        result = IndexingResult()
        seen_hashes: set[str] = set()

        for batch in _batched(items, batch_size):
            result.batches_processed += 1
            for raw in batch:
                try:
                    item = raw if isinstance(raw, ContentItem) else ContentItem.from_mapping(raw)
                    text = optimize_for_ai(item.content) if optimize else item.content.strip()
                    if not text:
                        raise InvalidArgument(f"Content item {item.id} is empty after clean-up")
                    size, type_overlap = self._chunking.for_type(item.type)
                    if chunk_size is not None:
                        size = chunk_size
                    item_overlap = min(type_overlap if overlap is None else overlap, size // 2)
                    chunks = self._chunker.chunk(
                        text, size, min(min_size, size - 1), overlap=item_overlap
                    )
                except InvalidArgument as exc:
                    result.errors += 1
                    result.error_messages.append(str(exc))
                    logger.warning("Skipping content item: %s", exc)
                    continue

                fresh: list[TextChunk] = []
                for chunk in chunks:
                    digest = content_hash(chunk.content)
                    if digest in seen_hashes:
                        result.duplicates_skipped += 1
                        continue
                    seen_hashes.add(digest)
                    fresh.append(chunk)

                stored = self.store_chunks(fresh, item, embed=embed)
                result.chunks_created += stored.stored
                result.total_processed += 1

        result.processing_time = round(time.perf_counter() - started, 4)
        logger.info(
            "Indexed %d item(s): %d chunk(s), %d duplicate(s), %d error(s) in %.2fs",
            result.total_processed,
            result.chunks_created,
            result.duplicates_skipped,
            result.errors,
            result.processing_time,
        )
        return result

    def store_chunks(
        self,
        chunks: list[TextChunk],
        item: ContentItem,
        embed: bool = True,
    ) -> StoreResult:
        """Replace the stored chunks of *item* with *chunks*.

        Embeddings are generated first; the existing rows for
        ``(item.type, item.id)`` are then swapped for the new ones in a single
        transaction, so the last writer wins and a failed write keeps the old
        rows. Chunks inherit the item title and metadata (plus ``url`` when
        the item has one).

        Raises:
            PersistenceError: If the database rejects the write.
        """
        result = StoreResult()

        vectors: dict[str, list[float]] = {}
        texts = [c.content for c in chunks]
        if embed and texts:
            vectors = self._embeddings.generate_embeddings(texts, skip_failures=True)

        metadata = dict(item.metadata)
        if item.url:
            metadata.setdefault("url", item.url)

        rows: list[KnowledgeChunk] = []
        for chunk in chunks:
            if not chunk.content.strip():
                result.skipped += 1
                continue
            vector = vectors.get(chunk.content)
            rows.append(
                KnowledgeChunk(
                    source_type=item.type,
                    source_id=item.id,
                    title=item.title,
                    full_content=item.content,
                    chunk_content=chunk.content,
                    chunk_index=len(rows),
                    content_hash=content_hash(chunk.content),
                    embedding=normalize_vector(vector) if vector else None,
                    metadata=dict(metadata),
                )
            )
        try:
            result.replaced, _ = self._repo.replace_source_chunks(item.type, item.id, rows)
        except sqlite3.Error as exc:
            raise PersistenceError(
                f"Failed to store chunks for {item.type}/{item.id}: {exc}"
            ) from exc
        result.stored = len(rows)

        if result.stored or result.replaced:
            action = "updated" if result.replaced else "created"
            self._events.publish(ContentChanged(item.type, item.id, action))
        return result

    # ------------------------------------------------------------------
    # Incremental updates
    # ------------------------------------------------------------------

    def on_content_updated(
        self,
        source_type: str,
        source_id: str,
        item: ContentItem | Mapping[str, Any] | None = None,
    ) -> IndexingResult | int:
        """Re-index one source, or delete it when *item* is None.

        Returns the IndexingResult of the re-index, or the number of rows
        removed on delete.
        """
        if item is None:
            removed = self._repo.delete_chunks_by_source(source_type, source_id)
            if removed:
                self._events.publish(ContentChanged(source_type, source_id, "deleted"))
            logger.info("Removed %d chunk(s) for %s/%s", removed, source_type, source_id)
            return removed
        if isinstance(item, Mapping):
            item = ContentItem.from_mapping(
                {**item, "id": source_id, "type": source_type}, default_type=source_type
            )
        return self.process_content([item])

    def process_bulk_reindex(
        self,
        source: ContentSource,
        content_types: list[str] | None = None,
        batch_size: int | None = None,
        force: bool = False,
    ) -> BulkReindexResult:
        """Re-index every item of *source*, resuming an interrupted run.

        Progress is saved to the cache after each batch. A later call with the
        same content types continues from the saved position; *force* discards
        it and starts over.
        """
        types = list(content_types or source.content_types())
        batch_size = max(1, batch_size or self._chunking.batch_size)

        if force:
            self._cache.delete(_PROGRESS_KEY, _PROGRESS_GROUP)
        progress = self._cache.get(_PROGRESS_KEY, _PROGRESS_GROUP)
        result = BulkReindexResult(content_types=types)
        if progress and progress.get("content_types") == types:
            result.resumed = True
            result.processed = progress.get("processed", 0)
            result.chunks_created = progress.get("chunks_created", 0)
            result.errors = progress.get("errors", 0)
            result.batches = progress.get("batches", 0)
            logger.info(
                "Resuming bulk re-index (type %d of %d, offset %d)",
                progress["type_index"] + 1,
                len(types),
                progress["offset"],
            )
        else:
            progress = {"content_types": types, "type_index": 0, "offset": 0}

        for type_index in range(progress["type_index"], len(types)):
            content_type = types[type_index]
            items = list(source.iter_items(content_type))
            start = progress["offset"] if type_index == progress["type_index"] else 0
            for offset in range(start, len(items), batch_size):
                batch = items[offset : offset + batch_size]
                batch_result = self.process_content(batch, batch_size=batch_size)
                result.processed += batch_result.total_processed
                result.chunks_created += batch_result.chunks_created
                result.errors += batch_result.errors
                result.batches += 1
                self._save_progress(result, types, type_index, offset + batch_size)
            self._save_progress(result, types, type_index + 1, 0)

        self._cache.delete(_PROGRESS_KEY, _PROGRESS_GROUP)
        self._events.publish(ContentChanged("*", None, "reindexed"))
        result.completed = True
        return result

    def _save_progress(
        self, result: BulkReindexResult, types: list[str], type_index: int, offset: int
    ) -> None:
        self._cache.set(
            _PROGRESS_KEY,
            {
                "content_types": types,
                "type_index": type_index,
                "offset": offset,
                "processed": result.processed,
                "chunks_created": result.chunks_created,
                "errors": result.errors,
                "batches": result.batches,
            },
            _PROGRESS_GROUP,
        )

    def get_chunk_stats(self, source_type: str | None = None) -> list[ChunkStats]:
        return self._repo.chunk_stats(source_type)
