"""
core/locks.py -- Per-key mutual exclusion for shared counters.

The rate limiter and the lockout tracker both run a read-increment-compare
sequence against shared state. Two concurrent failures for the same account
must not both read the pre-increment value, so each sequence runs while
holding the lock for its key. Unrelated keys never contend.

Locks are reference counted and dropped once no thread holds or waits on
them, so the table does not grow with every IP address ever seen.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager


class KeyedLock:
    """A table of threading.Lock objects, one per active key.

    Usage:
        locks = KeyedLock()
        with locks.hold("a@x.com"):
            record = store.get("a@x.com")
            ...
            store.save(record)
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        # key -> [lock, number of threads holding or waiting]
        self._entries: dict[str, list] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = [threading.Lock(), 0]
                self._entries[key] = entry
            entry[1] += 1
        lock: threading.Lock = entry[0]
        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._entries[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)
