from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Hashable, Iterator, List


class KeyedLocks:
    """Striped locks: each key hashes onto one of ``stripes`` mutexes.

    Callers touching several keys at once must go through :meth:`hold`, which
    acquires the distinct stripes in index order so two callers can never
    deadlock on each other.
    """

    def __init__(self, stripes: int = 64) -> None:
        if stripes < 1:
            raise ValueError("stripes must be >= 1")
        self._locks: List[threading.Lock] = [threading.Lock() for _ in range(stripes)]

    def __len__(self) -> int:
        return len(self._locks)

    def stripe_of(self, key: Hashable) -> int:
        return hash(key) % len(self._locks)

    @contextmanager
    def hold(self, *keys: Hashable) -> Iterator[None]:
        indices = sorted({self.stripe_of(k) for k in keys if k is not None})
        acquired: List[threading.Lock] = []
        try:
            for i in indices:
                lock = self._locks[i]
                lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()


__all__ = ["KeyedLocks"]
