"""Summary: Process-local advisory locks keyed by string or tuple.

Importance: Serializes check-then-write sequences (token refresh, cache fill) per key.
Alternatives: Use database advisory locks or a distributed lock service.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Hashable, Iterator


class KeyedLocks:
    """Summary: Hands out one lock per key, created on first use.

    Importance: Two requests for different users never wait on each other.
    Alternatives: A single global lock around every refresh.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[Hashable, threading.Lock] = {}
        self._waiters: dict[Hashable, int] = {}

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        """Summary: Hold the lock for ``key`` for the duration of the block.

        Importance: Entries are dropped once nobody holds or waits on them.
        Alternatives: Keep every lock forever and accept the memory growth.
        """

        with self._guard:
            lock = self._locks.setdefault(key, threading.Lock())
            self._waiters[key] = self._waiters.get(key, 0) + 1
        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                self._waiters[key] -= 1
                if self._waiters[key] == 0:
                    del self._waiters[key]
                    del self._locks[key]


class NullLocks:
    """Lock provider used when the lock mode is not ``advisory``."""

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        yield


def build_locks(lock_mode: str) -> KeyedLocks | NullLocks:
    return KeyedLocks() if lock_mode == "advisory" else NullLocks()
