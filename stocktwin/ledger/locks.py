"""
Per-product exclusive access for ledger mutations.

``ProductLockRegistry.hold(product_id)`` returns a context manager around a
re-entrant lock dedicated to that product. Two threads mutating the same
product serialize; different products proceed in parallel (SQLite's
``BEGIN IMMEDIATE`` then serializes the commits themselves).

Locks are created lazily and never evicted; the catalog is small and
bounded, so the registry's footprint is one lock per product ever touched.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Generator

logger = logging.getLogger(__name__)


class ProductLockRegistry:
    """Hands out one ``threading.RLock`` per product id."""

    def __init__(self) -> None:
        self._locks: dict[int, threading.RLock] = {}
        self._guard = threading.Lock()

    def lock_for(self, product_id: int) -> threading.RLock:
        """Return (creating if needed) the lock for ``product_id``."""
        with self._guard:
            lock = self._locks.get(product_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[product_id] = lock
            return lock

    @contextmanager
    def hold(self, product_id: int) -> Generator[None, None, None]:
        """Hold ``product_id``'s lock for the duration of the block."""
        lock = self.lock_for(product_id)
        with lock:
            yield

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
