"""Content source providers.

A content source yields the storefront's indexable items (products, pages,
policies, settings...) one content type at a time. The commerce backend is
external; ``JsonContentSource`` reads an export file so the knowledge base
can be built without it.

Accepted export shapes (JSON or YAML)::

    [{"id": 1, "type": "product", "title": "...", "content": "..."}, ...]

    {"product": [{"id": 1, ...}], "faq": [{"id": "faq-1", ...}]}
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

import yaml

from wooai.errors import InvalidArgument

logger = logging.getLogger(__name__)


@dataclass
class ContentItem:
    """One indexable storefront item."""

    id: str
    content: str
    type: str = "product"
    title: str = ""
    url: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], default_type: str = "product") -> ContentItem:
        """Build an item from a raw mapping.

        Raises:
            InvalidArgument: If ``id`` is missing or ``content`` is empty.
        """
        raw_id = data.get("id")
        if raw_id is None or str(raw_id).strip() == "":
            raise InvalidArgument("Content item is missing an id")
        content = data.get("content")
        if not isinstance(content, str) or not content.strip():
            raise InvalidArgument(f"Content item {raw_id} has no content")
        metadata = data.get("metadata") or {}
        if not isinstance(metadata, Mapping):
            raise InvalidArgument(f"Content item {raw_id} has non-mapping metadata")
        return cls(
            id=str(raw_id),
            content=content,
            type=str(data.get("type") or default_type),
            title=str(data.get("title") or ""),
            url=str(data.get("url") or ""),
            metadata=dict(metadata),
        )


class ContentSource(Protocol):
    """Anything that can enumerate indexable items by content type."""

    def content_types(self) -> list[str]: ...

    def iter_items(self, content_type: str) -> Iterator[ContentItem]: ...


class JsonContentSource:
    """Content source backed by a JSON or YAML export file.

    Malformed entries are logged and skipped at iteration time.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._data: dict[str, list[Mapping[str, Any]]] | None = None

    def _load(self) -> dict[str, list[Mapping[str, Any]]]:
        if self._data is not None:
            return self._data
        text = self.path.read_text(encoding="utf-8")
        if self.path.suffix.lower() in {".yaml", ".yml"}:
            raw = yaml.safe_load(text)
        else:
            raw = json.loads(text)

        grouped: dict[str, list[Mapping[str, Any]]] = {}
        if isinstance(raw, list):
            for entry in raw:
                if isinstance(entry, Mapping):
                    grouped.setdefault(str(entry.get("type") or "product"), []).append(entry)
                else:
                    logger.warning("Skipping non-object entry in %s", self.path)
        elif isinstance(raw, Mapping):
            for content_type, entries in raw.items():
                if not isinstance(entries, list):
                    raise InvalidArgument(
                        f"Section '{content_type}' in {self.path} must be a list of items"
                    )
                grouped[str(content_type)] = [
                    {**e, "type": e.get("type") or content_type}
                    for e in entries
                    if isinstance(e, Mapping)
                ]
        else:
            raise InvalidArgument(f"{self.path} must contain a list or a mapping of items")
        self._data = grouped
        return grouped

    def content_types(self) -> list[str]:
        return list(self._load())

    def iter_items(self, content_type: str) -> Iterator[ContentItem]:
        for entry in self._load().get(content_type, []):
            try:
                yield ContentItem.from_mapping(entry, default_type=content_type)
            except InvalidArgument as exc:
                logger.warning("Skipping item in %s: %s", self.path, exc)
