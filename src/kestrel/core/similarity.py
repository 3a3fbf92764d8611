"""Pure text and vector primitives shared by the relevance classifier and the embedding cache."""

from __future__ import annotations

import hashlib
import math
from collections.abc import Sequence


def normalize_text(text: str) -> str:
    """Trim and collapse every run of whitespace to a single space."""
    return " ".join(text.split())


def content_hash(text: str) -> str:
    """SHA-256 hex digest of the normalized text."""
    return hashlib.sha256(normalize_text(text).encode("utf-8")).hexdigest()


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """dot(a, b) / (|a| * |b|), or 0.0 when either magnitude is zero.

    Vectors of different length are compared over their common prefix.
    """
    dot = sum(x * y for x, y in zip(a, b))
    magnitude_a = math.sqrt(sum(x * x for x in a))
    magnitude_b = math.sqrt(sum(y * y for y in b))
    if magnitude_a == 0 or magnitude_b == 0:
        return 0.0
    return dot / (magnitude_a * magnitude_b)


def similarity_score(similarity: float) -> int:
    """Round a similarity to a 0..100 score, halves rounding up."""
    score = math.floor(similarity * 100 + 0.5)
    return max(0, min(100, score))
