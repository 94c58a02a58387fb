from __future__ import annotations

import sys
import threading
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from sentinel.registry import KeyedRegistry


def test_get_or_create_builds_once():
    registry: KeyedRegistry[list] = KeyedRegistry()
    calls = []

    def factory():
        calls.append(1)
        return []

    first = registry.get_or_create("alice", factory)
    second = registry.get_or_create("alice", factory)

    assert first is second
    assert len(calls) == 1
    assert "alice" in registry
    assert len(registry) == 1


def test_update_unknown_key_raises():
    registry: KeyedRegistry[dict] = KeyedRegistry()

    with pytest.raises(KeyError):
        registry.update("missing", lambda value: value)


def test_insert_rejects_duplicates():
    registry: KeyedRegistry[int] = KeyedRegistry()
    registry.insert("a", 1)

    with pytest.raises(KeyError):
        registry.insert("a", 2)
    assert registry.get("a") == 1


def test_pop_applies_mutator_then_removes():
    registry: KeyedRegistry[dict] = KeyedRegistry()
    registry.insert("t1", {"status": "active"})

    removed = registry.pop("t1", lambda value: value.update(status="resolved"))

    assert removed == {"status": "resolved"}
    assert registry.get("t1") is None
    with pytest.raises(KeyError):
        registry.update("t1", lambda value: value)
    with pytest.raises(KeyError):
        registry.pop("t1")


def test_snapshot_reads_each_value():
    registry: KeyedRegistry[dict] = KeyedRegistry()
    registry.insert("a", {"score": 10})
    registry.insert("b", {"score": 70})

    assert sorted(registry.snapshot(lambda value: value["score"])) == [10, 70]


def test_concurrent_updates_are_serialized_per_key():
    registry: KeyedRegistry[dict] = KeyedRegistry()
    keys = ["alpha", "beta"]

    def increment(value):
        current = value["count"]
        value["count"] = current + 1

    def worker(key):
        registry.get_or_create(key, lambda: {"count": 0})
        for _ in range(500):
            registry.update(key, increment)

    threads = [threading.Thread(target=worker, args=(keys[index % 2],)) for index in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert registry.get("alpha") == {"count": 2000}
    assert registry.get("beta") == {"count": 2000}


def test_only_one_concurrent_pop_wins():
    registry: KeyedRegistry[dict] = KeyedRegistry()
    registry.insert("t1", {})
    winners = []
    barrier = threading.Barrier(6)

    def worker():
        barrier.wait()
        try:
            registry.pop("t1")
        except KeyError:
            return
        winners.append(1)

    threads = [threading.Thread(target=worker) for _ in range(6)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(winners) == 1
    assert len(registry) == 0
