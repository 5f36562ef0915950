"""
packetgen/shared/randomness.py

Injectable randomness for the one place the pipeline needs it
(CycleResolver picking which reciprocal item to regenerate).
"""

import random
from typing import Optional, Protocol, Sequence, TypeVar

T = TypeVar("T")


class RandomSource(Protocol):
    def choice(self, items: Sequence[T]) -> T:
        ...


class SeededRandomSource:
    """
    random.Random-backed source. Same seed, same picks.
    """

    def __init__(self, seed: Optional[int] = None) -> None:
        self.seed = seed
        self._rng = random.Random(seed)

    def choice(self, items: Sequence[T]) -> T:
        if not items:
            raise ValueError("cannot choose from an empty sequence")
        return self._rng.choice(list(items))


__all__ = ["RandomSource", "SeededRandomSource"]
