"""Seeded randomness helpers for deterministic sessions."""

import random
from typing import List, Sequence, TypeVar

T = TypeVar("T")


def build_rng(*, seed: int | None = None) -> random.Random:
    """Return a deterministic random generator."""
    return random.Random(seed)


def shuffled(rng: random.Random, items: Sequence[T]) -> List[T]:
    """Return a shuffled copy of ``items``.

    Args:
        rng: Random number generator
        items: Items to shuffle (left untouched)

    Returns:
        New list holding the same items in random order
    """
    result = list(items)
    rng.shuffle(result)
    return result
