"""
Keyword score normalizers.

Raw lexical scores are backend specific and unbounded. The keyword
adapter maps them into [0, 1] with one of these before fusion.
"""

from typing import List, Protocol, Sequence


class ScoreNormalizer(Protocol):
    def normalize(self, scores: Sequence[float]) -> List[float]:
        ...


class MinMaxNormalizer:
    """(s - min) / (max - min) over the returned batch.

    A batch whose scores are all equal (including a single hit) maps to 1.0.
    """

    name = "minmax"

    def normalize(self, scores: Sequence[float]) -> List[float]:
        if not scores:
            return []
        low, high = min(scores), max(scores)
        if high == low:
            return [1.0] * len(scores)
        span = high - low
        return [(s - low) / span for s in scores]


class SaturationNormalizer:
    """Fixed calibration curve s / (s + k), independent of the batch."""

    name = "saturation"

    def __init__(self, k: float = 10.0):
        if k <= 0:
            raise ValueError("k must be positive")
        self.k = k

    def normalize(self, scores: Sequence[float]) -> List[float]:
        return [max(s, 0.0) / (max(s, 0.0) + self.k) for s in scores]


def get_normalizer(name: str, saturation_k: float = 10.0) -> ScoreNormalizer:
    """Normalizer by settings name ('minmax' or 'saturation')."""
    if name == "minmax":
        return MinMaxNormalizer()
    if name == "saturation":
        return SaturationNormalizer(k=saturation_k)
    raise ValueError(f"Unknown keyword normalizer: {name}")
