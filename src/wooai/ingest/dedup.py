"""Content fingerprinting and in-run de-duplication."""

from __future__ import annotations

import hashlib
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any


def content_hash(text: str) -> str:
    """Return the SHA-256 hex digest of *text* (UTF-8)."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


@dataclass
class DedupResult:
    original_count: int
    duplicates_found: int
    unique_items: list[Any] = field(default_factory=list)


def _content_of(item: Any) -> str:
    if isinstance(item, Mapping):
        return str(item.get("content") or "")
    return str(getattr(item, "content", "") or "")


def remove_duplicates(items: Iterable[Any]) -> DedupResult:
    """Drop items whose content hashes to an earlier item's digest.

    Items may be mappings or objects exposing ``content``. The first
    occurrence wins and the input order is preserved.
    """
    seen: set[str] = set()
    unique: list[Any] = []
    total = 0
    for item in items:
        total += 1
        digest = content_hash(_content_of(item))
        if digest in seen:
            continue
        seen.add(digest)
        unique.append(item)
    return DedupResult(
        original_count=total,
        duplicates_found=total - len(unique),
        unique_items=unique,
    )
