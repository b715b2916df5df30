"""Seeded randomness helpers for deterministic matches.

Every random decision in a match comes from a ``random.Random`` built here,
seeded from one of the match seeds plus an explicit offset (day number,
action name, player id). Nothing in the package touches the module-level
``random`` state.
"""

import hashlib
import random
from typing import List, Sequence, TypeVar

T = TypeVar("T")


def build_rng(*, seed: int | None = None) -> random.Random:
    """Return a deterministic random generator."""
    return random.Random(seed)


def derive_seed(base: int, *offsets: int | str) -> int:
    """Combine a base seed with round-identifying offsets into a new seed.

    Strings are hashed with SHA-256 rather than ``hash()`` so the result is
    stable across interpreter runs.

    Args:
        base: One of the fixed match seeds
        offsets: Day numbers, action names, player ids, ...

    Returns:
        A 64-bit integer seed
    """
    material = ":".join([str(base), *(str(offset) for offset in offsets)])
    digest = hashlib.sha256(material.encode("utf-8")).digest()
    return int.from_bytes(digest[:8], "big")


def derive_rng(base: int, *offsets: int | str) -> random.Random:
    """Shortcut for ``build_rng(seed=derive_seed(base, *offsets))``."""
    return build_rng(seed=derive_seed(base, *offsets))


def shuffled(rng: random.Random, items: Sequence[T]) -> List[T]:
    """Return a Fisher-Yates shuffled copy of ``items``."""
    result = list(items)
    rng.shuffle(result)
    return result


def choose(rng: random.Random, items: Sequence[T]) -> T:
    """Pick one element; raises ``ValueError`` on an empty sequence."""
    if not items:
        raise ValueError("Cannot choose from an empty sequence")
    return rng.choice(list(items))


def sample_items(rng: random.Random, items: Sequence[T], count: int) -> List[T]:
    """Sample ``count`` distinct elements, preserving draw order."""
    if count < 0 or count > len(items):
        raise ValueError(f"Cannot sample {count} items from {len(items)}")
    return rng.sample(list(items), count)


def int_in_range(rng: random.Random, low: int, high: int) -> int:
    """Inclusive integer in ``[low, high]``."""
    if high < low:
        raise ValueError(f"Empty range [{low}, {high}]")
    return rng.randint(low, high)
