"""RAG response orchestrator.

One shopper message goes through:

    validate -> safety filter -> plan quota -> retrieve -> compose prompt
    -> dispatch to the LLM (or answer offline) -> record turn and usage

Every failure becomes a ``ChatResponse`` with ``success=False`` and a stable
``error_code``; ``generate_response`` never raises for a bad message or an
unavailable provider.
"""

from __future__ import annotations

import logging
import re
import sqlite3
import time
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any

from wooai.config import WooAiConfig
from wooai.errors import InvalidArgument, PersistenceError, UpstreamUnavailable, WooAiError
from wooai.license import PlanService
from wooai.rag import llm_client
from wooai.rag.conversation import Conversation, ConversationStore
from wooai.rag.prompt import PromptComponents, PromptConfig, build_messages, trim_history
from wooai.rag.safety import SafetyFilter
from wooai.rag.search import SearchResult, VectorSearch

logger = logging.getLogger(__name__)

NO_CONTEXT_CONFIDENCE = 0.3
OFFLINE_MODEL = "offline"
STREAM_CHUNK_SIZE = 100

_SAFETY_RESPONSE = (
    "I'm sorry, but I can't process that request. "
    "Please rephrase your question about our products or store."
)
_UPSTREAM_RESPONSE = (
    "I'm having trouble answering right now. Please try again in a moment, "
    "or contact the store directly for help."
)
_RATE_LIMIT_RESPONSE = (
    "The assistant has reached its message limit for now. "
    "Please try again later or contact the store directly."
)
_INVALID_RESPONSE = "Please type a question so I can help you."
_GENERIC_RESPONSE = "Something went wrong while answering. Please try again."
_NO_CONTEXT_OFFLINE = (
    "I couldn't find information about that in our store. "
    "Please contact us and we'll be happy to help."
)

_FALLBACK_TEXT = {
    "invalid_argument": _INVALID_RESPONSE,
    "safety_filter": _SAFETY_RESPONSE,
    "rate_limited": _RATE_LIMIT_RESPONSE,
    "upstream_unavailable": _UPSTREAM_RESPONSE,
}

_SENTENCE_SPLIT_RE = re.compile(r"(?<=[.!?])\s+")


@dataclass
class ChatOptions:
    """Per-request overrides. ``None`` means use the configured value."""

    model: str | None = None
    max_tokens: int | None = None
    temperature: float | None = None
    top_k: int | None = None
    threshold: float | None = None
    source_types: list[str] | None = None


@dataclass
class ChatResponse:
    success: bool
    response: str
    conversation_id: str | None = None
    model_used: str = "none"
    tokens_used: int = 0
    context_chunks: int = 0
    rag_sources: list[dict[str, Any]] = field(default_factory=list)
    confidence_score: float = 0.0
    response_time: float = 0.0
    safety_check: str = "passed"
    error: str | None = None
    error_code: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "success": self.success,
            "response": self.response,
            "model_used": self.model_used,
            "tokens_used": self.tokens_used,
            "context_chunks": self.context_chunks,
            "conversation_id": self.conversation_id,
            "metadata": {
                "rag_sources": self.rag_sources,
                "confidence_score": self.confidence_score,
                "response_time": self.response_time,
                "safety_check": self.safety_check,
            },
        }
        if not self.success:
            data["error"] = self.error
            data["error_code"] = self.error_code
        return data


@dataclass
class StreamEvent:
    """A streamed text fragment, or the final event carrying the full envelope."""

    message: str = ""
    done: bool = False
    response: ChatResponse | None = None


@dataclass
class _Prepared:
    message: str
    conversation: Conversation
    results: list[SearchResult]
    prompt: PromptComponents
    model: str
    max_tokens: int
    temperature: float


def create_response_chunks(text: str, chunk_size: int = STREAM_CHUNK_SIZE) -> list[str]:
    """Split *text* into display fragments of roughly *chunk_size* characters.

    Sentences are kept whole where they fit; longer sentences fall back to
    word windows. Joining the result with single spaces gives back the text
    (with runs of whitespace between sentences collapsed). Blank text yields
    ``['']``.
    """
    stripped = text.strip()
    if not stripped:
        return [""]
    if len(stripped) <= chunk_size:
        return [stripped]

    chunks: list[str] = []
    current = ""
    for sentence in _SENTENCE_SPLIT_RE.split(stripped):
        if len(sentence) > chunk_size:
            if current:
                chunks.append(current)
                current = ""
            chunks.extend(_word_chunks(sentence, chunk_size))
            continue
        candidate = f"{current} {sentence}" if current else sentence
        if len(candidate) <= chunk_size:
            current = candidate
        else:
            chunks.append(current)
            current = sentence
    if current:
        chunks.append(current)
    return chunks


def _word_chunks(text: str, chunk_size: int) -> list[str]:
    chunks: list[str] = []
    current = ""
    for word in text.split():
        candidate = f"{current} {word}" if current else word
        if current and len(candidate) > chunk_size:
            chunks.append(current)
            current = word
        else:
            current = candidate
    if current:
        chunks.append(current)
    return chunks


class ResponseOrchestrator:
    """Answer shopper messages with retrieval-augmented generation.

    Args:
        search:        Vector search over the knowledge base.
        plans:         Plan service (model choice, quotas).
        conversations: Conversation store.
        config:        Full configuration (generation, retrieval, store).
        safety:        Safety filter; the default rule set when omitted.
    """

    def __init__(
        self,
        search: VectorSearch,
        plans: PlanService,
        conversations: ConversationStore,
        config: WooAiConfig,
        safety: SafetyFilter | None = None,
    ) -> None:
        self._search = search
        self._plans = plans
        self._conversations = conversations
        self._config = config
        self._safety = safety or SafetyFilter()

    @property
    def offline(self) -> bool:
        return self._config.generation.offline

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def generate_response(
        self,
        message: str,
        conversation_id: str | None = None,
        context: Mapping[str, Any] | None = None,
        options: ChatOptions | None = None,
    ) -> ChatResponse:
        """Produce the response envelope for one shopper message."""
        started = time.perf_counter()
        try:
            prepared = self._prepare(message, conversation_id, context, options)
        except WooAiError as exc:
            return self._error_response(exc, conversation_id, started)

        if self.offline:
            text, tokens, model = self._offline_answer(prepared), 0, OFFLINE_MODEL
        else:
            try:
                completion = llm_client.complete(
                    model=prepared.model,
                    messages=prepared.prompt.messages,
                    max_tokens=prepared.max_tokens,
                    temperature=prepared.temperature,
                    num_retries=self._config.generation.num_retries,
                )
            except UpstreamUnavailable as exc:
                logger.error("Response generation failed: %s", exc)
                return self._error_response(exc, prepared.conversation.conversation_id, started)
            text, tokens, model = completion.text.strip(), completion.tokens_used, completion.model

        return self._finish(prepared, text, tokens, model, started)

    def stream_response(
        self,
        message: str,
        conversation_id: str | None = None,
        context: Mapping[str, Any] | None = None,
        options: ChatOptions | None = None,
    ) -> Iterator[StreamEvent]:
        """Yield response fragments, then a final event with the envelope."""
        started = time.perf_counter()
        try:
            prepared = self._prepare(message, conversation_id, context, options)
        except WooAiError as exc:
            yield StreamEvent(done=True, response=self._error_response(exc, conversation_id, started))
            return

        if self.offline:
            text = self._offline_answer(prepared)
            for piece in create_response_chunks(text):
                yield StreamEvent(message=piece)
            yield StreamEvent(done=True, response=self._finish(prepared, text, 0, OFFLINE_MODEL, started))
            return

        parts: list[str] = []
        try:
            for fragment in llm_client.stream_complete(
                model=prepared.model,
                messages=prepared.prompt.messages,
                max_tokens=prepared.max_tokens,
                temperature=prepared.temperature,
                num_retries=self._config.generation.num_retries,
            ):
                parts.append(fragment)
                yield StreamEvent(message=fragment)
        except UpstreamUnavailable as exc:
            logger.error("Streaming generation failed after %d fragment(s): %s", len(parts), exc)
            yield StreamEvent(
                done=True,
                response=self._error_response(exc, prepared.conversation.conversation_id, started),
            )
            return

        text = "".join(parts).strip()
        tokens = llm_client.count_tokens(prepared.model, text)
        yield StreamEvent(done=True, response=self._finish(prepared, text, tokens, prepared.model, started))

    def validate_conversation_context(
        self,
        history: Iterable[Any],
        max_tokens: int | None = None,
    ) -> list[dict[str, str]]:
        """Keep the most recent well-formed turns that fit in *max_tokens*.

        Turns with an unknown role or empty content are dropped. The result is
        in chronological order.
        """
        history = list(history)
        budget = self._config.generation.history_token_budget if max_tokens is None else max_tokens
        turns, _ = trim_history(
            history, self._plans.model_for_plan(), max(len(history), 1), budget
        )
        return turns

    # ------------------------------------------------------------------
    # Pipeline steps
    # ------------------------------------------------------------------

    def _prepare(
        self,
        message: str,
        conversation_id: str | None,
        context: Mapping[str, Any] | None,
        options: ChatOptions | None,
    ) -> _Prepared:
        if not isinstance(message, str) or not message.strip():
            raise InvalidArgument("Message cannot be empty")
        message = message.strip()
        self._safety.check(message)
        self._plans.check_quota()

        options = options or ChatOptions()
        gen = self._config.generation
        retrieval = self._config.retrieval
        model = options.model or self._plans.model_for_plan()

        conversation = self._load_conversation(conversation_id, context)
        results = self._retrieve(
            message,
            options.top_k or retrieval.top_k,
            retrieval.threshold if options.threshold is None else options.threshold,
            options.source_types,
        )
        prompt = build_messages(
            message,
            results,
            PromptConfig(
                model=model,
                store_name=self._config.store.name,
                assistant_name=self._config.store.assistant_name,
                context_token_budget=retrieval.context_token_budget,
                max_history_messages=gen.max_history_messages,
                history_token_budget=gen.history_token_budget,
            ),
            history=conversation.turns,
            page_context=conversation.context,
        )
        return _Prepared(
            message=message,
            conversation=conversation,
            results=results,
            prompt=prompt,
            model=model,
            max_tokens=options.max_tokens or gen.max_tokens,
            temperature=gen.temperature if options.temperature is None else options.temperature,
        )

    def _load_conversation(
        self, conversation_id: str | None, context: Mapping[str, Any] | None
    ) -> Conversation:
        try:
            return self._conversations.get_or_create(
                conversation_id, dict(context) if context else None
            )
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to load conversation: {exc}") from exc

    def _retrieve(
        self,
        message: str,
        top_k: int,
        threshold: float,
        source_types: list[str] | None,
    ) -> list[SearchResult]:
        try:
            return self._search.search_text(
                message, limit=top_k, threshold=threshold, source_types=source_types
            )
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to search the knowledge base: {exc}") from exc

    def _offline_answer(self, prepared: _Prepared) -> str:
        chunks = prepared.prompt.context_chunks
        if not chunks:
            return _NO_CONTEXT_OFFLINE
        body = "\n\n".join(c.content for c in chunks)
        text = f"Here is what I found in our store information:\n\n{body}"
        limit = prepared.max_tokens * 4
        if len(text) > limit:
            text = text[:limit].rstrip() + "..."
        return text

    def _finish(
        self,
        prepared: _Prepared,
        text: str,
        tokens: int,
        model: str,
        started: float,
    ) -> ChatResponse:
        conversation = prepared.conversation
        conversation.append("user", prepared.message)
        conversation.append("assistant", text)
        try:
            self._conversations.save(conversation)
            self._plans.record_usage(tokens)
        except sqlite3.Error:
            logger.exception("Failed to persist conversation %s", conversation.conversation_id)

        used = prepared.prompt.context_chunks
        return ChatResponse(
            success=True,
            response=text,
            conversation_id=conversation.conversation_id,
            model_used=model,
            tokens_used=tokens,
            context_chunks=len(used),
            rag_sources=[_source_entry(r) for r in used],
            confidence_score=confidence_score(used),
            response_time=round(time.perf_counter() - started, 4),
        )

    def _error_response(
        self, exc: WooAiError, conversation_id: str | None, started: float
    ) -> ChatResponse:
        return error_envelope(
            exc.error_code,
            str(exc),
            conversation_id=conversation_id,
            response_time=round(time.perf_counter() - started, 4),
        )


def error_envelope(
    error_code: str,
    error: str,
    conversation_id: str | None = None,
    response_time: float = 0.0,
) -> ChatResponse:
    """Failure envelope carrying the shopper-facing fallback text for *error_code*."""
    return ChatResponse(
        success=False,
        response=_FALLBACK_TEXT.get(error_code, _GENERIC_RESPONSE),
        conversation_id=conversation_id,
        response_time=response_time,
        safety_check="failed" if error_code == "safety_filter" else "passed",
        error=error,
        error_code=error_code,
    )


def confidence_score(results: list[SearchResult]) -> float:
    """0.3 with no context, else 0.3 + 0.7 × mean similarity (capped at 1)."""
    if not results:
        return NO_CONTEXT_CONFIDENCE
    mean = sum(r.similarity for r in results) / len(results)
    return round(min(1.0, NO_CONTEXT_CONFIDENCE + 0.7 * mean), 4)


def _source_entry(result: SearchResult) -> dict[str, Any]:
    return {
        "id": result.id,
        "title": result.title,
        "source_type": result.source_type,
        "source_id": result.source_id,
        "similarity": result.similarity,
        "url": result.metadata.get("url"),
    }
