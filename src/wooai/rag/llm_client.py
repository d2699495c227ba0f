"""LiteLLM client wrapper with retry, backoff, and API key validation.

All chat-completion and embedding calls route through this module.
LiteLLM's built-in retry is used (num_retries, exponential backoff).
Provider failures surface as ``wooai.errors.UpstreamUnavailable`` chained to
the LiteLLM exception.
"""

from __future__ import annotations

import os
from collections.abc import Iterator
from dataclasses import dataclass

import litellm

from wooai.errors import UpstreamUnavailable

# Disable LiteLLM verbose logging unless explicitly enabled
litellm.suppress_debug_info = True
litellm.set_verbose = False  # type: ignore[assignment]


# ------------------------------------------------------------------
# Provider → env var mapping for API key validation
# ------------------------------------------------------------------

_PROVIDER_ENV: dict[str, str | None] = {
    "openai": "OPENAI_API_KEY",
    "openrouter": "OPENROUTER_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "azure": "AZURE_API_KEY",
    "cohere": "COHERE_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "google": "GOOGLE_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "groq": "GROQ_API_KEY",
    "together_ai": "TOGETHERAI_API_KEY",
    "ollama": None,  # Local, no key required
    "ollama_chat": None,
}


@dataclass
class Completion:
    """Text of the first choice plus usage accounting."""

    text: str
    tokens_used: int
    model: str


def validate_api_key(model: str) -> None:
    """Check that the required API key env var is set for *model*.

    Args:
        model: LiteLLM model string in 'provider/model' format.

    Raises:
        EnvironmentError: If the required key is missing from environment.
    """
    provider = model.split("/")[0].lower() if "/" in model else "openai"
    env_var = _PROVIDER_ENV.get(provider)

    if env_var is None:
        return  # No key required (e.g. ollama)

    if not os.getenv(env_var):
        raise EnvironmentError(
            f"API key not found for provider '{provider}'. "
            f"Set the {env_var} environment variable."
        )


def is_configured(model: str) -> bool:
    """Return True when the API key for *model*'s provider is available."""
    try:
        validate_api_key(model)
    except EnvironmentError:
        return False
    return True


def complete(
    model: str,
    messages: list[dict],
    max_tokens: int = 2048,
    temperature: float = 0.7,
    num_retries: int = 3,
) -> Completion:
    """Call litellm.completion() with retry/backoff.

    Args:
        model: LiteLLM model string (provider/model format).
        messages: OpenAI-style message list.
        max_tokens: Maximum output tokens.
        temperature: Sampling temperature.
        num_retries: Number of retries on transient errors (exponential backoff).

    Returns:
        Completion with the text of the first choice and total token usage.

    Raises:
        UpstreamUnavailable: On persistent API failure after retries.
    """
    try:
        response = litellm.completion(
            model=model,
            messages=messages,
            max_tokens=max_tokens,
            temperature=temperature,
            num_retries=num_retries,
        )
    except Exception as exc:
        raise UpstreamUnavailable(f"Completion request to {model} failed: {exc}") from exc

    text = response.choices[0].message.content or ""
    usage = getattr(response, "usage", None)
    tokens = int(getattr(usage, "total_tokens", 0) or 0) if usage is not None else 0
    return Completion(text=text, tokens_used=tokens, model=model)


def stream_complete(
    model: str,
    messages: list[dict],
    max_tokens: int = 2048,
    temperature: float = 0.7,
    num_retries: int = 3,
) -> Iterator[str]:
    """Yield content fragments from a streaming completion.

    Raises:
        UpstreamUnavailable: If the request or the stream fails.
    """
    try:
        stream = litellm.completion(
            model=model,
            messages=messages,
            max_tokens=max_tokens,
            temperature=temperature,
            num_retries=num_retries,
            stream=True,
        )
        for part in stream:
            delta = part.choices[0].delta
            content = getattr(delta, "content", None)
            if content:
                yield content
    except UpstreamUnavailable:
        raise
    except Exception as exc:
        raise UpstreamUnavailable(f"Streaming request to {model} failed: {exc}") from exc


def embed(model: str, text: str, num_retries: int = 3) -> list[float]:
    """Call litellm.embedding() with retry/backoff. Returns embedding vector.

    Raises:
        UpstreamUnavailable: On persistent API failure after retries.
    """
    return embed_batch(model, [text], num_retries=num_retries)[0]


def embed_batch(model: str, texts: list[str], num_retries: int = 3) -> list[list[float]]:
    """Embed several texts in one request. Vectors come back in input order.

    Raises:
        UpstreamUnavailable: On API failure or a response of the wrong length.
    """
    try:
        response = litellm.embedding(
            model=model,
            input=texts,
            num_retries=num_retries,
        )
    except Exception as exc:
        raise UpstreamUnavailable(f"Embedding request to {model} failed: {exc}") from exc

    data = list(response.data)
    if len(data) != len(texts):
        raise UpstreamUnavailable(
            f"Embedding response from {model} has {len(data)} vectors for {len(texts)} inputs"
        )
    return [d["embedding"] for d in data]


def count_tokens(model: str, text: str) -> int:
    """Count tokens in *text* for *model* using LiteLLM's provider-aware counter.

    Falls back to character-based approximation (4 chars ≈ 1 token) if the model
    is not supported by litellm.token_counter().
    """
    if not text:
        return 0
    try:
        return litellm.token_counter(model=model, text=text)
    except Exception:
        return max(1, len(text) // 4)
