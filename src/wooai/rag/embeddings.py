"""Embedding client with caching and a deterministic offline fallback."""

from __future__ import annotations

import hashlib
import logging
from collections.abc import Iterable

from wooai.cache import Cache
from wooai.config import EmbeddingCfg
from wooai.errors import InvalidArgument, UpstreamUnavailable
from wooai.rag import llm_client
from wooai.rag.vectors import dummy_embedding, normalize_vector

logger = logging.getLogger(__name__)

_CACHE_GROUP = "embeddings"


class EmbeddingClient:
    """Generate normalised embeddings through LiteLLM.

    Single-text requests never fail: on a service error, a missing API key,
    or when ``offline`` is set, a deterministic fallback vector is returned.
    Batch requests raise ``UpstreamUnavailable`` on a failing batch unless
    the caller opts into skipping it.

    Args:
        config: Embedding configuration (model, dimensions, batch size...).
        cache:  Optional shared cache for computed vectors.
    """

    def __init__(self, config: EmbeddingCfg | None = None, cache: Cache | None = None) -> None:
        self.config = config or EmbeddingCfg()
        self._cache = cache

    @property
    def offline(self) -> bool:
        return self.config.offline

    def _cache_key(self, text: str) -> str:
        raw = f"{self.config.model}\x00{self.config.dimensions}\x00{text}"
        return hashlib.sha256(raw.encode("utf-8")).hexdigest()

    def _cached(self, text: str) -> list[float] | None:
        if self._cache is None:
            return None
        return self._cache.get(self._cache_key(text), _CACHE_GROUP)

    def _remember(self, text: str, vector: list[float]) -> None:
        if self._cache is not None:
            self._cache.set(self._cache_key(text), vector, _CACHE_GROUP, self.config.cache_ttl)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def generate_embedding(self, text: str, use_cache: bool = True) -> list[float]:
        """Return a unit-norm embedding for *text*.

        Raises:
            InvalidArgument: If *text* is empty.
        """
        if not text or not text.strip():
            raise InvalidArgument("Text cannot be empty")

        if self.offline:
            return dummy_embedding(text, self.config.dimensions)

        if use_cache and (hit := self._cached(text)) is not None:
            return hit

        if not llm_client.is_configured(self.config.model):
            logger.warning(
                "No API key for embedding model %s; using fallback vector", self.config.model
            )
            return dummy_embedding(text, self.config.dimensions)

        try:
            raw = llm_client.embed(self.config.model, text)
        except UpstreamUnavailable as exc:
            logger.warning("Embedding service failed, using fallback vector: %s", exc)
            return dummy_embedding(text, self.config.dimensions)

        vector = normalize_vector(raw)
        if vector is None:
            logger.warning("Embedding service returned a malformed vector; using fallback")
            return dummy_embedding(text, self.config.dimensions)
        if use_cache:
            self._remember(text, vector)
        return vector

    def generate_embeddings(
        self,
        texts: Iterable[str],
        batch_size: int | None = None,
        skip_failures: bool = False,
    ) -> dict[str, list[float]]:
        """Embed many texts, keyed by text. Blank and repeated texts are skipped.

        Raises:
            InvalidArgument: If *texts* is empty.
            UpstreamUnavailable: If a batch fails and *skip_failures* is False.
        """
        texts = list(texts)
        if not texts:
            raise InvalidArgument("Texts array cannot be empty")
        unique = list(dict.fromkeys(t for t in texts if t and t.strip()))
        batch_size = max(1, batch_size or self.config.batch_size)

        if self.offline:
            return {t: dummy_embedding(t, self.config.dimensions) for t in unique}

        result: dict[str, list[float]] = {}
        pending: list[str] = []
        for text in unique:
            hit = self._cached(text)
            if hit is not None:
                result[text] = hit
            else:
                pending.append(text)

        for start in range(0, len(pending), batch_size):
            batch = pending[start : start + batch_size]
            try:
                vectors = llm_client.embed_batch(self.config.model, batch)
            except UpstreamUnavailable:
                if not skip_failures:
                    raise
                logger.warning(
                    "Skipping embedding batch %d (%d text(s)) after service failure",
                    start // batch_size + 1,
                    len(batch),
                    exc_info=True,
                )
                continue
            for text, raw in zip(batch, vectors):
                vector = normalize_vector(raw)
                if vector is None:
                    logger.warning("Discarding malformed embedding for a %d-char text", len(text))
                    continue
                result[text] = vector
                self._remember(text, vector)

        logger.debug("Embedded %d of %d text(s)", len(result), len(unique))
        return result
