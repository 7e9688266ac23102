"""KeyedLocks — one :class:`threading.Lock` per key.

Used by the document cache and the attempt store so that contention is
scoped to a single DID or attempt id. The registry itself is guarded by a
short-lived lock that is only held while a key's lock is looked up or
released. A key's lock is dropped once no thread holds or waits on it.
"""
from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Hashable, Iterator


class _Slot:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.users = 0


class KeyedLocks:
    """Reference-counted, per-key locks.

    Example
    -------
    ::

        locks = KeyedLocks()
        with locks.hold("did:fan:example.com:alice"):
            ...
    """

    def __init__(self) -> None:
        self._slots: dict[Hashable, _Slot] = {}
        self._registry_lock = threading.Lock()

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        """Hold the lock for *key* for the duration of the ``with`` block."""
        with self._registry_lock:
            slot = self._slots.get(key)
            if slot is None:
                slot = _Slot()
                self._slots[key] = slot
            slot.users += 1
        try:
            with slot.lock:
                yield
        finally:
            with self._registry_lock:
                slot.users -= 1
                if slot.users == 0:
                    del self._slots[key]

    def __len__(self) -> int:
        """Number of keys currently held or waited on."""
        with self._registry_lock:
            return len(self._slots)


__all__ = ["KeyedLocks"]
