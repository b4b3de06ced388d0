"""
Shared helpers: keyed locking, rounding and clock
"""

import math
import threading
import zlib
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Hashable, List


def utcnow() -> datetime:
    """Timezone-aware current UTC time"""
    return datetime.now(timezone.utc)


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for non-negative values"""
    return int(math.floor(value + 0.5))


class KeyedLock:
    """
    Sharded mutual exclusion keyed by an arbitrary hashable value.

    Two callers using the same key always contend on the same lock, so a
    check-then-write sequence guarded by ``hold(key)`` is serialized per key.
    Unrelated keys may share a shard; that only costs contention.
    """

    def __init__(self, shards: int = 64):
        if shards < 1:
            raise ValueError("shards must be positive")
        self._locks: List[threading.RLock] = [threading.RLock() for _ in range(shards)]

    def _index(self, key: Hashable) -> int:
        # crc32 of repr is stable across processes, unlike hash() of str
        return zlib.crc32(repr(key).encode("utf-8")) % len(self._locks)

    def lock_for(self, key: Hashable) -> threading.RLock:
        return self._locks[self._index(key)]

    @contextmanager
    def hold(self, key: Hashable):
        lock = self.lock_for(key)
        with lock:
            yield
