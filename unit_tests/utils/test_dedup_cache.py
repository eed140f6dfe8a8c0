"""Tests for the bounded dedup cache."""

import pytest

from pricestream.utils.cache import BoundedKeyCache


def test_add_and_membership() -> None:
    cache = BoundedKeyCache(capacity=3)
    cache.add("a1", 100)

    assert "a1" in cache
    assert "a2" not in cache
    assert len(cache) == 1


def test_oldest_entry_evicted_at_capacity() -> None:
    cache = BoundedKeyCache(capacity=2)
    cache.add("a1", 1)
    cache.add("a2", 2)
    cache.add("a3", 3)

    assert len(cache) == 2
    assert "a1" not in cache
    assert "a3" in cache


def test_re_adding_refreshes_recency() -> None:
    cache = BoundedKeyCache(capacity=2)
    cache.add("a1", 1)
    cache.add("a2", 2)
    cache.add("a1", 5)
    cache.add("a3", 3)

    assert "a1" in cache
    assert "a2" not in cache


def test_discard() -> None:
    cache = BoundedKeyCache()
    cache.add("a1", 1)
    cache.discard("a1")
    cache.discard("missing")
    assert "a1" not in cache
    assert len(cache) == 0


def test_capacity_must_be_positive() -> None:
    with pytest.raises(ValueError):
        BoundedKeyCache(capacity=0)
