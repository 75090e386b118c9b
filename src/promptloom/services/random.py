"""Seeded random helpers shared by the selection and blending services.

Every helper takes the generator explicitly so callers can pin a seed in
tests and parallel requests never share state.
"""

from __future__ import annotations

import hashlib
import random
from typing import Callable, Optional, Sequence, TypeVar

T = TypeVar("T")

Rng = Callable[[], float]


def create_rng(seed: int) -> Rng:
    """Return a fresh generator of floats in [0, 1) for ``seed``."""
    return random.Random(seed).random


def unseeded_rng() -> Rng:
    return random.Random().random


def deterministic_seed(text: str) -> int:
    digest = hashlib.sha256(text.encode("utf-8")).digest()
    return int.from_bytes(digest[:8], byteorder="big", signed=False)


def pick_random(items: Sequence[T], rng: Rng) -> Optional[T]:
    if not items:
        return None
    return items[int(rng() * len(items))]


def shuffle(items: Sequence[T], rng: Rng) -> list[T]:
    result = list(items)
    for index in range(len(result) - 1, 0, -1):
        swap = int(rng() * (index + 1))
        result[index], result[swap] = result[swap], result[index]
    return result


def select_random_n(items: Sequence[T], count: int, rng: Rng) -> list[T]:
    if count <= 0:
        return []
    return shuffle(items, rng)[:count]


def roll_chance(chance: Optional[float], rng: Rng) -> bool:
    if chance is None:
        return True
    return rng() < chance


def random_int_inclusive(low: int, high: int, rng: Rng) -> int:
    if high <= low:
        return low
    return low + int(rng() * (high - low + 1))
