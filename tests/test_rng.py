"""
Tests for seeded randomness helpers.
"""

import pytest

from aiwolf.utils.rng import build_rng, choose, derive_rng, derive_seed, int_in_range, sample_items, shuffled


def test_derive_seed_is_stable_and_offset_sensitive():
    assert derive_seed(7, 1, "vote") == derive_seed(7, 1, "vote")
    assert derive_seed(7, 1, "vote") != derive_seed(7, 2, "vote")
    assert derive_seed(7, 1, "vote") != derive_seed(7, 1, "attack")
    assert derive_seed(7, 1, "vote") != derive_seed(8, 1, "vote")
    assert 0 <= derive_seed(7) < 2 ** 64


def test_same_seed_same_stream():
    first = [build_rng(seed=99).random() for _ in range(3)]
    second = [build_rng(seed=99).random() for _ in range(3)]
    assert first == second

    a = derive_rng(5, 3, "p1")
    b = derive_rng(5, 3, "p1")
    assert [a.randint(0, 1000) for _ in range(5)] == [b.randint(0, 1000) for _ in range(5)]


def test_shuffled_returns_copy_with_same_items():
    items = list(range(10))
    result = shuffled(build_rng(seed=1), items)
    assert items == list(range(10))
    assert sorted(result) == items


def test_choose_and_sample_bounds():
    rng = build_rng(seed=3)
    with pytest.raises(ValueError):
        choose(rng, [])
    with pytest.raises(ValueError):
        sample_items(rng, [1, 2], 3)
    assert len(set(sample_items(rng, list("abcdef"), 4))) == 4
    assert choose(rng, ["only"]) == "only"


def test_int_in_range_inclusive():
    rng = build_rng(seed=4)
    values = {int_in_range(rng, 0, 3) for _ in range(200)}
    assert values == {0, 1, 2, 3}
    with pytest.raises(ValueError):
        int_in_range(rng, 3, 2)
