"""Shared utilities: similarity, weighted selection, MCQ helpers, timeouts."""

from .similarity import (
    to_numeric_vector,
    cosine_similarity,
    max_cosine_similarity,
    jaccard_similarity,
)
from .selection import (
    weighted_random_index,
    weighted_random_select,
    calculate_coverage_weights,
    inverse_coverage_weights,
)
from .timeout import call_with_timeout

__all__ = [
    "to_numeric_vector",
    "cosine_similarity",
    "max_cosine_similarity",
    "jaccard_similarity",
    "weighted_random_index",
    "weighted_random_select",
    "calculate_coverage_weights",
    "inverse_coverage_weights",
    "call_with_timeout",
]
