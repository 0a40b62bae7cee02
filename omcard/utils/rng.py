"""Random utilities for card draws.

Every helper takes an optional ``random.Random`` so draws can be reproduced in
tests with ``seeded_random``; production code passes nothing and gets the
process-wide generator.
"""

import hashlib
import random
from typing import Collection, List, Mapping, Optional, Sequence, TypeVar

from omcard.errors import ExhaustedPool

T = TypeVar("T")

_SYSTEM_RNG = random.Random()


def seeded_random(seed: str, salt: str = "") -> random.Random:
    """Create a deterministic random.Random instance from seed and optional salt.

    Args:
        seed: Base seed string
        salt: Optional salt to modify the seed (e.g. the draw purpose)

    Returns:
        random.Random instance that will produce deterministic sequences
    """
    combined = f"{seed}{salt}"
    hash_obj = hashlib.sha256(combined.encode("utf-8"))
    int_seed = int(hash_obj.hexdigest(), 16)

    # Mask to fit within Python's random seed range
    int_seed = int_seed & ((1 << 31) - 1)

    return random.Random(int_seed)


def resolve(rng: Optional[random.Random]) -> random.Random:
    return rng if rng is not None else _SYSTEM_RNG


def pick(items: Sequence[T], rng: Optional[random.Random] = None) -> T:
    """Uniform pick from a non-empty sequence."""
    return resolve(rng).choice(items)


def weighted_choice(weights: Mapping[str, float], rng: Optional[random.Random] = None) -> str:
    """Pick a key of ``weights`` with probability proportional to its weight.

    Args:
        weights: Mapping of bucket name to non-negative weight
        rng: Optional random source

    Returns:
        The chosen bucket name
    """
    names = list(weights)
    if not names:
        raise ValueError("weighted_choice needs at least one bucket")
    values = [float(weights[n]) for n in names]
    if any(v < 0 for v in values) or sum(values) <= 0:
        raise ValueError(f"Invalid weights: {dict(weights)}")
    return resolve(rng).choices(names, weights=values, k=1)[0]


def pick_excluding(
    ids: Sequence[int],
    exclude: Collection[int],
    rng: Optional[random.Random] = None,
) -> int:
    """Uniform pick among ``ids`` not in ``exclude``.

    Raises:
        ExhaustedPool: every id is excluded
    """
    excluded = set(exclude)
    available = [i for i in ids if i not in excluded]
    if not available:
        raise ExhaustedPool(f"All {len(ids)} ids are excluded")
    return resolve(rng).choice(available)


def sample_distinct(ids: Sequence[int], count: int, rng: Optional[random.Random] = None) -> List[int]:
    """Draw ``count`` pairwise distinct ids, like dealing from a shuffled deck."""
    shuffled = list(ids)
    resolve(rng).shuffle(shuffled)
    return shuffled[:count]
