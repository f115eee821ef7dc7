"""Vector and text similarity primitives used for near-duplicate detection."""

import re
from typing import Any, Iterable, List, Optional, Sequence

import numpy as np

_TOKEN_RE = re.compile(r"[a-z0-9_]+")


def to_numeric_vector(raw: Any) -> Optional[List[float]]:
    """Convert a stored embedding into a list of floats.

    Accepts lists/tuples/arrays as well as the string forms PostgreSQL returns
    for vector columns ("[1,2,3]", "{1,2,3}" or "1,2,3").

    Returns:
        List of floats, or None when the value is empty or not numeric.
    """
    if raw is None:
        return None

    if isinstance(raw, str):
        normalized = re.sub(r"[\[\]{}()]", "", raw)
        parts = [p.strip() for p in normalized.split(",") if p.strip()]
        if not parts:
            return None
        try:
            vector = [float(p) for p in parts]
        except ValueError:
            return None
        return vector if all(np.isfinite(vector)) else None

    if isinstance(raw, (list, tuple, np.ndarray)):
        if len(raw) == 0:
            return None
        try:
            return [float(v) for v in raw]
        except (TypeError, ValueError):
            return None

    return None


def cosine_similarity(vec_a: Sequence[float], vec_b: Sequence[float]) -> float:
    """Cosine similarity between two vectors.

    Vectors of different length are compared over their common prefix.
    Zero-length or zero-norm input yields 0.0.
    """
    length = min(len(vec_a), len(vec_b))
    if length == 0:
        return 0.0

    a = np.asarray(vec_a[:length], dtype=float)
    b = np.asarray(vec_b[:length], dtype=float)
    norm_a = np.linalg.norm(a)
    norm_b = np.linalg.norm(b)
    if norm_a == 0 or norm_b == 0:
        return 0.0

    return float(np.dot(a, b) / (norm_a * norm_b))


def max_cosine_similarity(vector: Sequence[float], others: Iterable[Sequence[float]]) -> float:
    """Highest cosine similarity of `vector` against any of `others` (0.0 if none)."""
    scores = [cosine_similarity(vector, other) for other in others]
    return max(scores) if scores else 0.0


def tokenize(text: str) -> set:
    """Lower-cased word tokens of a text."""
    return set(_TOKEN_RE.findall((text or "").lower()))


def jaccard_similarity(text_a: str, text_b: str) -> float:
    """Jaccard overlap of the word-token sets of two texts.

    Two empty texts are considered dissimilar (0.0).
    """
    tokens_a = tokenize(text_a)
    tokens_b = tokenize(text_b)
    if not tokens_a or not tokens_b:
        return 0.0

    union = tokens_a | tokens_b
    return len(tokens_a & tokens_b) / len(union)
