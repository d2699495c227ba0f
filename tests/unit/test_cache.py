"""Tests for the SQLite-backed shared cache."""

from __future__ import annotations

import threading

import pytest

from wooai.cache import Cache


class FakeClock:
    def __init__(self, now: float = 1_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(tmp_db, clock):
    return Cache(tmp_db, clock=clock)


def test_get_missing_returns_default(cache):
    assert cache.get("nope") is None
    assert cache.get("nope", default=7) == 7


def test_set_and_get_json_values(cache):
    cache.set("k", {"a": [1, 2], "b": "x"}, group="g")

    assert cache.get("k", group="g") == {"a": [1, 2], "b": "x"}


def test_groups_are_separate_namespaces(cache):
    cache.set("k", 1, group="a")
    cache.set("k", 2, group="b")

    assert cache.get("k", group="a") == 1
    assert cache.get("k", group="b") == 2


def test_set_overwrites(cache):
    cache.set("k", 1)
    cache.set("k", 2)

    assert cache.get("k") == 2


def test_entry_expires_after_ttl(cache, clock):
    cache.set("k", "v", ttl=60)
    clock.now += 59
    assert cache.get("k") == "v"

    clock.now += 1
    assert cache.get("k") is None


def test_zero_ttl_never_expires(cache, clock):
    cache.set("k", "v", ttl=0)
    clock.now += 10**8

    assert cache.get("k") == "v"


def test_delete(cache):
    cache.set("k", "v")

    assert cache.delete("k") is True
    assert cache.delete("k") is False
    assert cache.get("k") is None


def test_flush_group_only_touches_that_group(cache):
    cache.set("a", 1, group="health")
    cache.set("b", 2, group="health")
    cache.set("c", 3, group="other")

    assert cache.flush_group("health") == 2
    assert cache.get("a", group="health") is None
    assert cache.get("c", group="other") == 3


def test_incr_creates_then_increments(cache):
    assert cache.incr("n", amount=2) == 2
    assert cache.incr("n") == 3
    assert cache.get("n") == 3


def test_incr_keeps_original_expiry(cache, clock):
    cache.incr("n", ttl=60)
    clock.now += 30
    cache.incr("n", ttl=60)
    clock.now += 31

    assert cache.get("n") is None


def test_purge_expired(cache, clock):
    cache.set("old", 1, ttl=10)
    cache.set("new", 2, ttl=100)
    clock.now += 50

    assert cache.purge_expired() == 1
    assert cache.get("new") == 2


def test_entries_are_shared_across_connections(tmp_path, clock):
    from wooai.db.connection import Database
    from wooai.db.schema import initialize

    path = tmp_path / "shared.db"
    with Database(path) as first:
        initialize(first)
        Cache(first, clock=clock).set("k", "from-first")
    with Database(path) as second:
        assert Cache(second, clock=clock).get("k") == "from-first"


def test_incr_restarts_expired_counter(cache, clock):
    cache.incr("n", amount=5, ttl=60)
    clock.now += 61

    assert cache.incr("n", ttl=60) == 1
    clock.now += 59
    assert cache.get("n") == 1


def test_incr_is_atomic_across_threads(cache):
    def bump():
        for _ in range(200):
            cache.incr("hits", group="rate")

    workers = [threading.Thread(target=bump) for _ in range(8)]
    for worker in workers:
        worker.start()
    for worker in workers:
        worker.join()

    assert cache.get("hits", group="rate") == 1600
