"""Error taxonomy shared by the indexing pipeline, retrieval and chat layers.

Every error carries a stable ``error_code`` so the orchestrator and the HTTP
layer can turn it into a response envelope without inspecting messages.
"""

from __future__ import annotations


class WooAiError(Exception):
    """Base class for all wooai errors."""

    error_code: str = "internal_error"


class InvalidArgument(WooAiError, ValueError):
    """Malformed input: empty content, bad chunk size, unknown content type."""

    error_code = "invalid_argument"


class SafetyRejection(WooAiError):
    """The message matched a disallowed input pattern."""

    error_code = "safety_filter"

    def __init__(self, message: str = "Message contains inappropriate content", *, category: str = "") -> None:
        super().__init__(message)
        self.category = category


class UpstreamUnavailable(WooAiError):
    """The embedding or LLM service could not be reached or rejected the call."""

    error_code = "upstream_unavailable"


class PersistenceError(WooAiError, RuntimeError):
    """The data store is unreachable or a write failed."""

    error_code = "persistence_error"


class RateLimited(WooAiError):
    """The plan quota or per-minute request limit has been exceeded."""

    error_code = "rate_limited"
