"""Vector similarity used by every semantic routing layer."""

from __future__ import annotations

import math
from typing import Sequence

from concierge.errors import DimensionMismatchError


def cosine(a: Sequence[float], b: Sequence[float]) -> float:
    """Return the cosine similarity of two equal-length, non-empty vectors."""

    if len(a) != len(b):
        raise DimensionMismatchError(f"Cannot compare vectors of dimension {len(a)} and {len(b)}")
    if not a:
        raise DimensionMismatchError("Cannot compare zero-dimensional vectors")
    dot = 0.0
    norm_a = 0.0
    norm_b = 0.0
    for x, y in zip(a, b):
        dot += x * y
        norm_a += x * x
        norm_b += y * y
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    value = dot / (math.sqrt(norm_a) * math.sqrt(norm_b))
    return max(-1.0, min(1.0, value))


def clamp_unit(score: float) -> float:
    if score < 0.0:
        return 0.0
    if score > 1.0:
        return 1.0
    return score
