"""Conversation state kept in the shared cache between chat requests."""

from __future__ import annotations

import time
import uuid
from dataclasses import asdict, dataclass, field
from typing import Any

from wooai.cache import Cache

_CACHE_GROUP = "conversations"
DEFAULT_TTL = 1_800
MAX_STORED_TURNS = 50


def new_conversation_id() -> str:
    return f"conv-{uuid.uuid4().hex}"


@dataclass
class Turn:
    role: str  # user | assistant
    content: str
    timestamp: float = field(default_factory=time.time)


@dataclass
class Conversation:
    conversation_id: str
    turns: list[Turn] = field(default_factory=list)
    context: dict[str, Any] = field(default_factory=dict)
    created_at: float = field(default_factory=time.time)

    def append(self, role: str, content: str) -> Turn:
        turn = Turn(role=role, content=content)
        self.turns.append(turn)
        return turn

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Conversation:
        return cls(
            conversation_id=data["conversation_id"],
            turns=[Turn(**t) for t in data.get("turns", [])],
            context=dict(data.get("context") or {}),
            created_at=data.get("created_at", time.time()),
        )


class ConversationStore:
    """Load and save conversations with a sliding TTL.

    Only the newest ``MAX_STORED_TURNS`` turns are persisted.
    """

    def __init__(self, cache: Cache, ttl: int = DEFAULT_TTL) -> None:
        self._cache = cache
        self._ttl = ttl

    def load(self, conversation_id: str) -> Conversation | None:
        data = self._cache.get(conversation_id, _CACHE_GROUP)
        return Conversation.from_dict(data) if data else None

    def get_or_create(
        self, conversation_id: str | None = None, context: dict[str, Any] | None = None
    ) -> Conversation:
        """Return the stored conversation, or a new one under *conversation_id*.

        A fresh ``conv-<hex>`` id is generated when none is supplied. The page
        context snapshot is replaced when a new one is given.
        """
        conversation = self.load(conversation_id) if conversation_id else None
        if conversation is None:
            conversation = Conversation(conversation_id=conversation_id or new_conversation_id())
        if context:
            conversation.context = dict(context)
        return conversation

    def save(self, conversation: Conversation) -> None:
        conversation.turns = conversation.turns[-MAX_STORED_TURNS:]
        self._cache.set(
            conversation.conversation_id, conversation.to_dict(), _CACHE_GROUP, self._ttl
        )

    def delete(self, conversation_id: str) -> bool:
        return self._cache.delete(conversation_id, _CACHE_GROUP)
