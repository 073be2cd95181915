"""Single-slot TTL cache for reconciliation results.

At most one entry is resident. Storing under a new key evicts the previous
entry; an entry older than the TTL is treated as missing.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 30.0


@dataclass(frozen=True)
class TTLPolicy:
    ttl_seconds: float = DEFAULT_TTL_SECONDS

    def is_fresh(self, stored_at: float, now: float) -> bool:
        return now - stored_at < self.ttl_seconds


@dataclass
class CacheEntry:
    key: str
    value: Any
    stored_at: float


class SingleSlotCache:
    """Memoizes one value at a time.

    clock defaults to time.monotonic; tests pass a fake. Slot reads and writes
    are atomic. get_or_compute runs the computation outside the lock, so two
    concurrent misses both compute and the later store wins.
    """

    def __init__(
        self,
        policy: TTLPolicy | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.policy = policy or TTLPolicy()
        self.clock = clock
        self._entry: CacheEntry | None = None
        self._lock = threading.Lock()

    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._entry
        if entry is None or entry.key != key:
            return None
        if not self.policy.is_fresh(entry.stored_at, self.clock()):
            return None
        return entry.value

    def set(self, key: str, value: Any, timestamp: float | None = None) -> None:
        stored_at = self.clock() if timestamp is None else timestamp
        with self._lock:
            self._entry = CacheEntry(key=key, value=value, stored_at=stored_at)

    def clear(self) -> None:
        with self._lock:
            self._entry = None

    @property
    def entry(self) -> CacheEntry | None:
        return self._entry

    def get_or_compute(self, key: str, compute: Callable[[], Any]) -> Any:
        value = self.get(key)
        if value is not None:
            logger.debug("Reconciliation cache hit for %s", key)
            return value
        logger.debug("Reconciliation cache miss for %s", key)
        value = compute()
        self.set(key, value)
        return value
