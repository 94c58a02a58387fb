"""Lock-protected keyed store shared across concurrent pipelines."""
from __future__ import annotations

import threading
from typing import Callable, Dict, Generic, List, Optional, Tuple, TypeVar

V = TypeVar("V")
R = TypeVar("R")


class KeyedRegistry(Generic[V]):
    """Values indexed by key, each guarded by its own lock.

    The guard lock covers only the key table. Work on a single value runs
    under that value's lock, so operations on different keys never wait on
    each other. Lock order is always value lock first, then guard.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._entries: Dict[str, Tuple[V, threading.RLock]] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._guard:
            return key in self._entries

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def get_or_create(self, key: str, factory: Callable[[], V]) -> V:
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = (factory(), threading.RLock())
                self._entries[key] = entry
            return entry[0]

    def insert(self, key: str, value: V) -> None:
        with self._guard:
            if key in self._entries:
                raise KeyError(f"{key} is already registered")
            self._entries[key] = (value, threading.RLock())

    def get(self, key: str) -> Optional[V]:
        with self._guard:
            entry = self._entries.get(key)
        return entry[0] if entry is not None else None

    def read(self, key: str, reader: Callable[[V], R]) -> R:
        """Run ``reader`` against the value while holding its lock."""

        return self.update(key, reader)

    def update(self, key: str, mutator: Callable[[V], R]) -> R:
        """Apply ``mutator`` to the value under its lock.

        Raises ``KeyError`` when the key is unknown or was removed while the
        caller waited for the lock.
        """

        entry = self._entry(key)
        value, lock = entry
        with lock:
            self._ensure_current(key, entry)
            return mutator(value)

    def pop(self, key: str, mutator: Optional[Callable[[V], R]] = None) -> V:
        """Apply ``mutator`` under the value lock, then remove the key."""

        entry = self._entry(key)
        value, lock = entry
        with lock:
            self._ensure_current(key, entry)
            if mutator is not None:
                mutator(value)
            with self._guard:
                del self._entries[key]
        return value

    def values(self) -> List[V]:
        with self._guard:
            return [value for value, _ in self._entries.values()]

    def snapshot(self, reader: Callable[[V], R]) -> List[R]:
        """Return ``reader`` applied to every value, each under its own lock."""

        with self._guard:
            entries = list(self._entries.items())
        results: List[R] = []
        for key, entry in entries:
            value, lock = entry
            with lock:
                with self._guard:
                    if self._entries.get(key) is not entry:
                        continue
                results.append(reader(value))
        return results

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _entry(self, key: str) -> Tuple[V, threading.RLock]:
        with self._guard:
            entry = self._entries.get(key)
        if entry is None:
            raise KeyError(key)
        return entry

    def _ensure_current(self, key: str, entry: Tuple[V, threading.RLock]) -> None:
        with self._guard:
            if self._entries.get(key) is not entry:
                raise KeyError(key)


__all__ = ["KeyedRegistry"]
