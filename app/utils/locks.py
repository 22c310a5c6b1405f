"""
Process-local advisory locks keyed by arbitrary tuples
"""

import threading
from contextlib import contextmanager
from typing import Dict, Hashable, Iterable, Iterator


class KeyedLock:
    """Hands out one lock per key and drops it once nobody holds or waits on it."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[Hashable, threading.Lock] = {}
        self._waiters: Dict[Hashable, int] = {}

    def _acquire(self, key: Hashable) -> None:
        with self._guard:
            lock = self._locks.setdefault(key, threading.Lock())
            self._waiters[key] = self._waiters.get(key, 0) + 1
        lock.acquire()

    def _release(self, key: Hashable) -> None:
        with self._guard:
            lock = self._locks[key]
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                del self._waiters[key]
                del self._locks[key]
        lock.release()

    @contextmanager
    def hold(self, keys: Iterable[Hashable]) -> Iterator[None]:
        # sorted and deduplicated so two callers never take the same pair in opposite order
        ordered = sorted(set(keys), key=repr)
        taken = []
        try:
            for key in ordered:
                self._acquire(key)
                taken.append(key)
            yield
        finally:
            for key in reversed(taken):
                self._release(key)

    def active_keys(self) -> int:
        with self._guard:
            return len(self._locks)


walk_in_locks = KeyedLock()
