"""Shared math utilities."""

from __future__ import annotations

import math


def clamp01(value: float) -> float:
    """Clamp to [0, 1]; non-finite values become 0."""
    if not math.isfinite(value):
        return 0.0
    return min(1.0, max(0.0, value))


def clamp(value: float, low: float, high: float) -> float:
    """Clamp to [low, high]; non-finite values become *low*."""
    if not math.isfinite(value):
        return low
    return min(high, max(low, value))


def cosine_similarity(a: list[float], b: list[float]) -> float:
    """Compute cosine similarity over the shared prefix of two vectors."""
    length = min(len(a), len(b))
    if length == 0:
        return 0.0
    dot = sum(a[i] * b[i] for i in range(length))
    norm_a = sum(a[i] * a[i] for i in range(length)) ** 0.5
    norm_b = sum(b[i] * b[i] for i in range(length)) ** 0.5
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)
