"""wooai ingest pipeline: clean-up, chunking, de-duplication and indexing."""

from wooai.ingest.chunker import ContentChunker, TextChunk, chunk_text
from wooai.ingest.dedup import DedupResult, content_hash, remove_duplicates
from wooai.ingest.optimize import optimize_for_ai
from wooai.ingest.sources import ContentItem, ContentSource, JsonContentSource

__all__ = [
    "ContentChunker",
    "ContentItem",
    "ContentSource",
    "DedupResult",
    "JsonContentSource",
    "TextChunk",
    "chunk_text",
    "content_hash",
    "optimize_for_ai",
    "remove_duplicates",
]
