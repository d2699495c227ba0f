"""In-process typed event bus.

The indexer publishes ``ContentChanged`` whenever knowledge chunks are
created, replaced or deleted; subscribers (health cache, search cache)
invalidate what they hold.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ContentChanged:
    source_type: str
    source_id: str | None = None
    action: str = "updated"  # created | updated | deleted | reindexed


Handler = Callable[[Any], None]


class EventBus:
    """Dispatch events to handlers registered for their exact type."""

    def __init__(self) -> None:
        self._handlers: dict[type, list[Handler]] = defaultdict(list)

    def subscribe(self, event_type: type, handler: Handler) -> None:
        if handler not in self._handlers[event_type]:
            self._handlers[event_type].append(handler)

    def unsubscribe(self, event_type: type, handler: Handler) -> None:
        if handler in self._handlers.get(event_type, []):
            self._handlers[event_type].remove(handler)

    def publish(self, event: Any) -> int:
        """Call every handler for ``type(event)`` in subscription order.

        Returns:
            Number of handlers invoked.
        """
        handlers = list(self._handlers.get(type(event), []))
        for handler in handlers:
            handler(event)
        if handlers:
            logger.debug("Published %s to %d handler(s)", type(event).__name__, len(handlers))
        return len(handlers)
