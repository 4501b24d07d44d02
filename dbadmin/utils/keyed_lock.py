"""
Per-key mutual exclusion without an ever-growing lock table
"""

import threading
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, List


class KeyedLocks:
    """One lock per key, dropped once nobody holds or waits on it"""

    def __init__(self, factory: Callable[[], object] = threading.Lock):
        self._factory = factory
        self._guard = threading.Lock()
        # key -> [lock, number of holders and waiters]
        self._entries: Dict[str, List] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = self._entries[key] = [self._factory(), 0]
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._entries[key]

    def __contains__(self, key: str) -> bool:
        with self._guard:
            return key in self._entries

    def __len__(self):
        with self._guard:
            return len(self._entries)
