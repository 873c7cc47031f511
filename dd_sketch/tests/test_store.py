"""Tests for the bin stores in :mod:`dd_sketch.store`."""
from __future__ import annotations

import logging
import random
from collections import Counter
from typing import Callable, Dict, Iterable, List

import pytest

from dd_sketch import InvalidArgumentError
from dd_sketch.store import CHUNK_SIZE, CollapsingHighestDenseStore, CollapsingLowestDenseStore, DenseStore

BIN_LIMITS = [1, 20, 1000]


def _key_sequences() -> Dict[str, List[int]]:
    rng = random.Random(42)
    return {
        "single": [0],
        "constant": [7] * 50,
        "increasing": list(range(-500, 500)),
        "decreasing": list(range(500, -500, -1)),
        "zigzag": [k if k % 2 else -k for k in range(300)],
        "wide-jumps": [0, 10_000, -10_000, 5_000, -5_000, 0],
        "random-narrow": [rng.randint(-100, 100) for _ in range(2_000)],
        "random-wide": [rng.randint(-20_000, 20_000) for _ in range(500)],
    }


KEY_SEQUENCES = _key_sequences()


def _collapsed_lowest(keys: Iterable[int], bin_limit: int) -> Counter:
    keys = list(keys)
    floor = max(keys) - bin_limit + 1
    return Counter(max(k, floor) for k in keys)


def _collapsed_highest(keys: Iterable[int], bin_limit: int) -> Counter:
    keys = list(keys)
    ceiling = min(keys) + bin_limit - 1
    return Counter(min(k, ceiling) for k in keys)


def _assert_store_holds(store: DenseStore, expected: Counter) -> None:
    total = float(sum(expected.values()))
    assert store.count == pytest.approx(total)
    assert sum(store.bins) == pytest.approx(total)
    assert dict(store.keys()) == pytest.approx({k: float(v) for k, v in expected.items()})
    if expected:
        assert store.min_key <= min(expected)
        assert store.max_key >= max(expected)
        assert 0 <= store.min_key - store.offset <= store.max_key - store.offset < store.length()


# ------------------------------- DenseStore ---------------------------------
def test_empty_store() -> None:
    store = DenseStore()
    assert store.is_empty()
    assert store.count == 0
    assert store.length() == 0
    assert store.min_key == float("inf")
    assert store.max_key == float("-inf")
    assert list(store.keys()) == []


@pytest.mark.parametrize("name", sorted(KEY_SEQUENCES))
def test_dense_store_add(name: str) -> None:
    keys = KEY_SEQUENCES[name]
    store = DenseStore()
    for key in keys:
        store.add(key)
    _assert_store_holds(store, Counter(keys))
    assert store.min_key == min(keys)
    assert store.max_key == max(keys)
    assert store.length() % CHUNK_SIZE == 0


@pytest.mark.parametrize("name", sorted(KEY_SEQUENCES))
def test_dense_store_weighted_add(name: str) -> None:
    keys = KEY_SEQUENCES[name]
    store = DenseStore()
    for key, weight in Counter(keys).items():
        store.add(key, float(weight))
    _assert_store_holds(store, Counter(keys))


def test_dense_store_chunk_size() -> None:
    store = DenseStore(chunk_size=16)
    store.add(0)
    assert store.length() == 16
    store.add(20)
    assert store.length() == 32
    store.add(-40)
    assert store.length() % 16 == 0
    _assert_store_holds(store, Counter([0, 20, -40]))


def test_invalid_chunk_size() -> None:
    with pytest.raises(InvalidArgumentError):
        DenseStore(chunk_size=0)


def test_key_at_rank_lower_and_upper() -> None:
    store = DenseStore()
    store.add(4)
    store.add(9)

    assert store.key_at_rank(0) == 4
    assert store.key_at_rank(0.5) == 4
    assert store.key_at_rank(1) == 9
    assert store.key_at_rank(1.5) == 9

    assert store.key_at_rank(-0.5, lower=False) == 4
    assert store.key_at_rank(0, lower=False) == 4
    assert store.key_at_rank(0.5, lower=False) == 9
    assert store.key_at_rank(1, lower=False) == 9

    # ranks past the end fall back to the highest key
    assert store.key_at_rank(10) == 9


def test_key_at_rank_with_weights() -> None:
    store = DenseStore()
    store.add(-3, 2.5)
    store.add(0, 0.5)
    store.add(12, 7.0)
    assert store.key_at_rank(2.4) == -3
    assert store.key_at_rank(2.5) == 0
    assert store.key_at_rank(2.99) == 0
    assert store.key_at_rank(3.0) == 12


@pytest.mark.parametrize("shift", [0, 1, 5, 40, -1, -5, -60])
def test_shift_bins_round_trip(shift: int) -> None:
    # 20 keys centred in a 128-bin list: every shift above stays inside the padding
    store = DenseStore()
    for key in range(40, 60):
        store.add(key, float(key))
    before = dict(store.keys())
    offset = store.offset
    bins = store.bins[:]

    store.shift_bins(shift)
    assert store.offset == offset - shift
    assert store.length() == len(bins)
    assert dict(store.keys()) == before

    store.shift_bins(-shift)
    assert store.offset == offset
    assert store.bins == bins


def test_shift_bins_moves_contents() -> None:
    store = DenseStore(chunk_size=4)
    store.bins = [1.0, 2.0, 0.0, 0.0]
    store.offset = 10
    store.shift_bins(2)
    assert store.bins == [0.0, 0.0, 1.0, 2.0]
    assert store.offset == 8
    store.shift_bins(-2)
    assert store.bins == [1.0, 2.0, 0.0, 0.0]
    assert store.offset == 10


@pytest.mark.parametrize("left", sorted(KEY_SEQUENCES))
@pytest.mark.parametrize("right", ["single", "increasing", "wide-jumps", "random-wide"])
def test_dense_store_merge(left: str, right: str) -> None:
    a, b = DenseStore(), DenseStore()
    for key in KEY_SEQUENCES[left]:
        a.add(key)
    for key in KEY_SEQUENCES[right]:
        b.add(key)
    b_snapshot = (b.bins[:], b.count, b.offset)

    a.merge(b)

    _assert_store_holds(a, Counter(KEY_SEQUENCES[left]) + Counter(KEY_SEQUENCES[right]))
    assert (b.bins, b.count, b.offset) == b_snapshot


def test_merge_empty_stores() -> None:
    a, b = DenseStore(), DenseStore()
    a.merge(b)
    assert a.is_empty()

    b.add(3, 2.0)
    a.merge(b)
    _assert_store_holds(a, Counter({3: 2}))
    assert a.bins is not b.bins

    c = DenseStore()
    a.merge(c)
    _assert_store_holds(a, Counter({3: 2}))


def test_copy_is_independent() -> None:
    a, b = DenseStore(), DenseStore()
    for key in (1, 2, 3):
        b.add(key)
    a.copy(b)
    b.add(100)
    _assert_store_holds(a, Counter([1, 2, 3]))
    _assert_store_holds(b, Counter([1, 2, 3, 100]))


def test_repr_lists_keys() -> None:
    store = DenseStore()
    store.add(5, 2.0)
    text = repr(store)
    assert "5: 2.0" in text
    assert "min_key=5" in text


# ----------------------------- Collapsing stores ----------------------------
COLLAPSING = [
    (CollapsingLowestDenseStore, _collapsed_lowest),
    (CollapsingHighestDenseStore, _collapsed_highest),
]
COLLAPSING_IDS = ["lowest", "highest"]


@pytest.mark.parametrize("store_cls, expected_for", COLLAPSING, ids=COLLAPSING_IDS)
@pytest.mark.parametrize("bin_limit", BIN_LIMITS)
@pytest.mark.parametrize("name", sorted(KEY_SEQUENCES))
def test_collapsing_store_add(
    store_cls: type, expected_for: Callable[[Iterable[int], int], Counter], bin_limit: int, name: str
) -> None:
    keys = KEY_SEQUENCES[name]
    store = store_cls(bin_limit)
    for key in keys:
        store.add(key)
        assert store.length() <= bin_limit
    _assert_store_holds(store, expected_for(keys, bin_limit))
    assert store.is_collapsed == (max(keys) - min(keys) + 1 > bin_limit)


@pytest.mark.parametrize("store_cls, expected_for", COLLAPSING, ids=COLLAPSING_IDS)
@pytest.mark.parametrize("bin_limit", BIN_LIMITS)
@pytest.mark.parametrize("left", ["increasing", "decreasing", "random-wide", "wide-jumps"])
@pytest.mark.parametrize("right", ["single", "random-narrow", "random-wide", "constant"])
def test_collapsing_store_merge(
    store_cls: type,
    expected_for: Callable[[Iterable[int], int], Counter],
    bin_limit: int,
    left: str,
    right: str,
) -> None:
    a, b = store_cls(bin_limit), store_cls(bin_limit)
    for key in KEY_SEQUENCES[left]:
        a.add(key)
    for key in KEY_SEQUENCES[right]:
        b.add(key)
    b_count = b.count

    a.merge(b)

    assert a.length() <= bin_limit
    assert b.count == b_count
    _assert_store_holds(a, expected_for(KEY_SEQUENCES[left] + KEY_SEQUENCES[right], bin_limit))


@pytest.mark.parametrize("store_cls", [CollapsingLowestDenseStore, CollapsingHighestDenseStore])
def test_extreme_keys_collapse_without_error(store_cls: type) -> None:
    store = store_cls(128)
    keys = [-(2 ** 31), 2 ** 31, 0, 2 ** 31 - 1, -(2 ** 31) + 1]
    for key in keys:
        store.add(key)
    assert store.is_collapsed
    assert store.count == len(keys)
    assert sum(store.bins) == len(keys)
    assert store.length() == 128


def test_collapsing_lowest_routes_low_keys_to_first_bin() -> None:
    store = CollapsingLowestDenseStore(10)
    for key in range(100, 120):
        store.add(key)
    assert store.is_collapsed
    assert store.min_key == 110
    store.add(-5, 3.0)
    assert store.min_key == 110
    assert dict(store.keys())[110] == 11 + 3.0


def test_collapsing_highest_routes_high_keys_to_last_bin() -> None:
    store = CollapsingHighestDenseStore(10)
    for key in range(100, 120):
        store.add(key)
    assert store.is_collapsed
    assert store.max_key == 109
    store.add(10_000, 3.0)
    assert store.max_key == 109
    assert dict(store.keys())[109] == 11 + 3.0


def test_collapse_is_logged_once(caplog: pytest.LogCaptureFixture) -> None:
    store = CollapsingLowestDenseStore(8)
    with caplog.at_level(logging.DEBUG, logger="dd_sketch.store"):
        for key in range(100):
            store.add(key)
    records = [r for r in caplog.records if "bin_limit=8" in r.getMessage()]
    assert len(records) == 1


@pytest.mark.parametrize("bin_limit", [0, -3, None])
def test_invalid_bin_limit(bin_limit: object) -> None:
    with pytest.raises(InvalidArgumentError):
        CollapsingLowestDenseStore(bin_limit)  # type: ignore[arg-type]
    with pytest.raises(InvalidArgumentError):
        CollapsingHighestDenseStore(bin_limit)  # type: ignore[arg-type]


@pytest.mark.parametrize("store_cls, expected_for", COLLAPSING, ids=COLLAPSING_IDS)
def test_collapsing_copy_keeps_own_limit(store_cls: type, expected_for: Callable[[Iterable[int], int], Counter]) -> None:
    keys = list(range(20))
    source = store_cls(50)
    for key in keys:
        source.add(key)
    target = store_cls(5)
    target.add(1_000)
    target.copy(source)

    assert target.bin_limit == 5
    assert target.length() <= 5
    assert target.is_collapsed
    _assert_store_holds(target, expected_for(keys, 5))


@pytest.mark.parametrize("store_cls, expected_for", COLLAPSING, ids=COLLAPSING_IDS)
def test_collapsing_copy_of_small_store_is_exact(
    store_cls: type, expected_for: Callable[[Iterable[int], int], Counter]
) -> None:
    source = DenseStore(chunk_size=8)
    for key in (3, 4, 9):
        source.add(key)
    target = store_cls(16)
    target.copy(source)

    assert target.bin_limit == 16
    assert not target.is_collapsed
    _assert_store_holds(target, Counter([3, 4, 9]))


@pytest.mark.parametrize("store_cls, expected_for", COLLAPSING, ids=COLLAPSING_IDS)
@pytest.mark.parametrize("bin_limit", BIN_LIMITS)
@pytest.mark.parametrize("name", sorted(KEY_SEQUENCES))
def test_merge_dense_into_empty_collapsing_store(
    store_cls: type, expected_for: Callable[[Iterable[int], int], Counter], bin_limit: int, name: str
) -> None:
    keys = KEY_SEQUENCES[name]
    source = DenseStore()
    for key in keys:
        source.add(key)
    target = store_cls(bin_limit)

    target.merge(source)

    assert target.bin_limit == bin_limit
    assert target.length() <= bin_limit
    assert target.is_collapsed == (max(keys) - min(keys) + 1 > bin_limit)
    _assert_store_holds(target, expected_for(keys, bin_limit))
    assert dict(source.keys()) == {k: float(v) for k, v in Counter(keys).items()}


@pytest.mark.parametrize("store_cls, expected_for", COLLAPSING, ids=COLLAPSING_IDS)
def test_merge_from_larger_limit_into_empty_store(
    store_cls: type, expected_for: Callable[[Iterable[int], int], Counter]
) -> None:
    keys = KEY_SEQUENCES["random-wide"]
    source = store_cls(4096)
    for key in keys:
        source.add(key)
    target = store_cls(128)

    target.merge(source)

    assert target.bin_limit == 128
    assert target.length() <= 128
    assert source.bin_limit == 4096
    _assert_store_holds(target, expected_for(keys, 128))
