"""Weighted random selection and coverage weighting.

The random source is always passed in explicitly so callers (and tests) can
fix the seed. Passing `rng=None` uses the module-level `random` functions.
"""

import math
import random
from typing import Dict, List, Mapping, Optional, Sequence, TypeVar

T = TypeVar("T")


def _sanitize(weights: Sequence[float]) -> List[float]:
    clean = []
    for w in weights:
        try:
            value = float(w)
        except (TypeError, ValueError):
            value = 0.0
        clean.append(value if math.isfinite(value) and value > 0 else 0.0)
    return clean


def weighted_random_index(weights: Sequence[float], rng: Optional[random.Random] = None) -> int:
    """Pick an index with probability proportional to its weight.

    Negative, NaN and infinite weights count as zero. When every weight is zero
    the pick falls back to uniform.

    Raises:
        ValueError: If weights is empty
    """
    if not weights:
        raise ValueError("weighted_random_index: weights must be non-empty")

    rng = rng or random
    sanitized = _sanitize(weights)
    total = sum(sanitized)

    if total <= 0:
        return min(len(sanitized) - 1, int(rng.random() * len(sanitized)))

    r = rng.random() * total
    acc = 0.0
    for i, w in enumerate(sanitized):
        acc += w
        if w > 0 and r < acc:
            return i

    # Floating point slack: last index with positive weight
    for i in range(len(sanitized) - 1, -1, -1):
        if sanitized[i] > 0:
            return i
    return len(sanitized) - 1


def weighted_random_select(
    items: Sequence[T],
    weights: Sequence[float],
    rng: Optional[random.Random] = None
) -> T:
    """Pick an item using the parallel weights list.

    Raises:
        ValueError: If items and weights differ in length or are empty
    """
    if len(items) != len(weights) or len(items) == 0:
        raise ValueError("weighted_random_select: items and weights must be same non-zero length")
    return items[weighted_random_index(weights, rng)]


def calculate_coverage_weights(
    distribution: Mapping[str, int],
    categories: Sequence[str],
    min_weight: float = 1.0
) -> Dict[str, float]:
    """Inverse-frequency weights over `categories`.

    A category seen `c` times gets `(max_count + 1) / (c + 1)`, clamped to
    `min_weight`, so unseen categories weigh the most and every category keeps
    some exploration weight.

    Args:
        distribution: Occurrence histogram (missing keys count as 0)
        categories: Full list of categories to weight
        min_weight: Lower bound for every weight

    Returns:
        Mapping of category -> weight
    """
    counts = [distribution.get(c, 0) or 0 for c in categories]
    max_count = max(counts) if counts else 0

    weights: Dict[str, float] = {}
    for category, count in zip(categories, counts):
        weights[category] = max(min_weight, (max_count + 1) / (count + 1))
    return weights


def inverse_coverage_weights(distribution: Mapping[str, int], categories: Sequence[str]) -> List[float]:
    """Plain `1 / (count + 1)` weights, in the order of `categories`."""
    return [1.0 / ((distribution.get(c, 0) or 0) + 1) for c in categories]
