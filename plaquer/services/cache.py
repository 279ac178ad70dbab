from __future__ import annotations

import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

from plaquer.models import Coordinate

T = TypeVar("T")


@dataclass
class CacheEntry(Generic[T]):
    value: T
    expires_at: float


class TTLCache(Generic[T]):
    """In-memory cache for provider responses: entries expire after `ttl_s`,
    and the least recently used entry is evicted once `max_size` is reached."""

    def __init__(self, *, ttl_s: float, max_size: int) -> None:
        self.ttl_s = ttl_s
        self.max_size = max_size
        self._store: OrderedDict[str, CacheEntry[T]] = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._store)

    def get(self, key: str) -> Optional[T]:
        now = time.monotonic()
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            if entry.expires_at < now:
                del self._store[key]
                return None
            self._store.move_to_end(key)
            return entry.value

    def set(self, key: str, value: T) -> None:
        if self.max_size <= 0:
            return
        now = time.monotonic()
        with self._lock:
            self._store.pop(key, None)
            while len(self._store) >= self.max_size:
                self._store.popitem(last=False)
            self._store[key] = CacheEntry(value=value, expires_at=now + self.ttl_s)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()


def make_cache_key(*parts: object) -> str:
    return "|".join(str(part) for part in parts)


def segment_cache_key(origin: Coordinate, destination: Coordinate) -> str:
    # 6 decimals is ~10cm, finer than any marker position in the dataset
    return make_cache_key(
        "walk",
        f"{origin.lat:.6f},{origin.lon:.6f}",
        f"{destination.lat:.6f},{destination.lon:.6f}",
    )
