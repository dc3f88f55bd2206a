from __future__ import annotations

import random
from typing import Optional, Sequence, TypeVar

T = TypeVar("T")


class WeightedSampler:
    """Weighted random choice over an injectable ``random.Random``."""

    def __init__(self, rng: Optional[random.Random] = None, seed: int | None = None) -> None:
        self.rng = rng or random.Random(seed)

    def choose(self, items: Sequence[T], weights: Sequence[float]) -> T:
        """
        Draws one item with probability proportional to its weight.

        Args:
            items (Sequence[T]): Candidates.
            weights (Sequence[float]): Non-negative weights; negatives count as 0.

        Returns:
            T: The chosen item; uniform when every weight is 0.

        Raises:
            ValueError: ``items`` is empty or the lengths differ.
        """
        if not items:
            raise ValueError("cannot sample from an empty sequence")
        if len(items) != len(weights):
            raise ValueError("items and weights must have the same length")
        total = float(sum(max(0.0, w) for w in weights))
        if total <= 0:
            return items[self.rng.randrange(len(items))]
        pick = self.rng.random() * total
        acc = 0.0
        for item, weight in zip(items, weights):
            acc += max(0.0, weight)
            if pick < acc:
                return item
        return items[-1]

    def uniform(self, low: float, high: float) -> float:
        return self.rng.uniform(low, high)

    def randint(self, low: int, high: int) -> int:
        return self.rng.randint(low, high)


__all__ = ["WeightedSampler"]
