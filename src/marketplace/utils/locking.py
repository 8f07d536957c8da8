"""Per-key mutual exclusion for load → check → save sequences.

Stock reservations and order-number allocation are each a read-modify-write
against one aggregate. A ``KeyedLock`` serialises those sequences per key
(``"stock:<product>:<variant>"``, ``"order-number:<day>"``) inside one
process, so that reservations racing on the same record queue up instead of
failing. Across processes, Protean's aggregate version check still rejects
a save based on a stale copy.

Locks exist only while someone holds or waits for them.
"""

import threading
from collections.abc import Iterator
from contextlib import contextmanager


class KeyedLock:
    """A registry of re-entrant locks, one per key in use."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks = {}  # key -> [lock, holders and waiters]

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            entry = self._locks.setdefault(key, [threading.RLock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    def clear(self) -> None:
        with self._guard:
            self._locks.clear()


_locks = KeyedLock()


def get_locks() -> KeyedLock:
    """Return the process-wide lock registry."""
    return _locks
