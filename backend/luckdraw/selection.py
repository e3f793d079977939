from __future__ import annotations

import random
import secrets
from typing import Sequence, TypeVar

T = TypeVar("T")

_system_random = secrets.SystemRandom()


def select_winners(pool: Sequence[T], count: int, *, rng: random.Random | None = None) -> list[T]:
    """Pick ``count`` distinct entries of ``pool`` uniformly at random.

    ``random.Random.shuffle`` is a Fisher-Yates shuffle driven by
    ``randbelow``, so every permutation is equally likely. The default
    generator is the OS entropy source; pass a seeded ``random.Random`` to
    make a selection reproducible. The input sequence is not modified.
    """

    if count < 0:
        raise ValueError("count must not be negative")
    if count > len(pool):
        raise ValueError(f"cannot select {count} winners from a pool of {len(pool)}")
    shuffled = list(pool)
    (rng or _system_random).shuffle(shuffled)
    return shuffled[:count]
