"""Keyed locks - One serialization domain per campaign.

Shared state (layers, snapshots, logs) is keyed by campaign id. Each key
gets its own lock so that concurrent calls on the same campaign serialize
while independent campaigns never block each other.

Locks are plain ``threading.Lock`` objects: every critical section in
storyctx is synchronous and never awaits while holding one.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator


class KeyedLocks:
    """Lazily created lock per key.

    Example:
        locks = KeyedLocks()
        with locks.hold("campaign-1"):
            ...
    """

    def __init__(self) -> None:
        self._locks: dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def get(self, key: str) -> threading.Lock:
        """Get (or create) the lock for a key."""
        lock = self._locks.get(key)
        if lock is None:
            with self._registry_lock:
                lock = self._locks.setdefault(key, threading.Lock())
        return lock

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        lock = self.get(key)
        with lock:
            yield

    def __len__(self) -> int:
        return len(self._locks)


__all__ = ["KeyedLocks"]
