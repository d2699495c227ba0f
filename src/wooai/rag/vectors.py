"""Vector helpers: L2 normalisation, cosine similarity, offline fallback vectors."""

from __future__ import annotations

import hashlib
import math
from collections.abc import Sequence
from numbers import Real
from typing import Any

import numpy as np

from wooai.errors import InvalidArgument


def _as_array(vector: Sequence[Any] | None) -> np.ndarray | None:
    """Return *vector* as a float64 array, or None if empty or not purely numeric."""
    if vector is None or len(vector) == 0:
        return None
    for value in vector:
        if isinstance(value, bool) or not isinstance(value, Real):
            return None
        if not math.isfinite(value):
            return None
    return np.asarray(vector, dtype=np.float64)


def normalize_vector(vector: Sequence[Any] | None) -> list[float] | None:
    """Scale *vector* to unit L2 norm.

    An all-zero vector is returned unchanged. Empty input, or input holding a
    non-numeric element (bools and NaN/inf included), yields None.
    """
    arr = _as_array(vector)
    if arr is None:
        return None
    norm = float(np.linalg.norm(arr))
    if norm == 0.0:
        return arr.tolist()
    return (arr / norm).tolist()


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine of the angle between *a* and *b*, in [-1, 1]. Zero vectors give 0.0.

    Raises:
        InvalidArgument: If either vector is invalid or the lengths differ.
    """
    va, vb = _as_array(a), _as_array(b)
    if va is None or vb is None:
        raise InvalidArgument("Vectors must be non-empty and numeric")
    if va.shape != vb.shape:
        raise InvalidArgument(f"Vector dimensions differ: {va.shape[0]} != {vb.shape[0]}")
    denom = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if denom == 0.0:
        return 0.0
    return float(np.clip(np.dot(va, vb) / denom, -1.0, 1.0))


def dummy_embedding(text: str, dimensions: int = 1536) -> list[float]:
    """Deterministic unit vector derived from the SHA-256 of *text*.

    Used when the embedding service is unavailable or disabled. Identical
    texts always map to identical vectors; it carries no semantic meaning.
    """
    if dimensions < 1:
        raise InvalidArgument("dimensions must be >= 1")
    seed = hashlib.sha256(text.encode("utf-8")).digest()
    n_blocks = math.ceil(dimensions * 4 / 32)
    stream = b"".join(
        hashlib.sha256(seed + i.to_bytes(4, "big")).digest() for i in range(n_blocks)
    )
    raw = np.frombuffer(stream, dtype=">u4")[:dimensions].astype(np.float64)
    # map uint32 to [-1, 1)
    arr = raw / 2**31 - 1.0
    norm = float(np.linalg.norm(arr))
    if norm == 0.0:
        arr = np.ones(dimensions)
        norm = float(np.linalg.norm(arr))
    return (arr / norm).tolist()
