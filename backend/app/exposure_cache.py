from __future__ import annotations

import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from threading import Lock
from typing import Generic, TypeVar

from .settings import settings

V = TypeVar("V")


@dataclass
class _CacheEntry(Generic[V]):
    inserted_at: float
    ttl_s: float
    value: V


class TileCacheStore(Generic[V]):
    """Thread-safe TTL map keyed by tile id.

    Expiry is lazy: an entry is only dropped when a read finds it stale.
    Capacity overflow evicts the oldest insertion first.
    """

    def __init__(
        self,
        *,
        ttl_s: float,
        max_entries: int,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._ttl_s = max(1.0, float(ttl_s))
        self._max_entries = max(1, int(max_entries))
        self._clock = clock
        self._lock = Lock()
        self._items: OrderedDict[str, _CacheEntry[V]] = OrderedDict()

        self._hits = 0
        self._misses = 0
        self._expired = 0
        self._evictions = 0

    def _is_expired(self, entry: _CacheEntry[V], now: float) -> bool:
        return (now - entry.inserted_at) >= entry.ttl_s

    def get(self, key: str) -> V | None:
        with self._lock:
            entry = self._items.get(key)
            if entry is None:
                self._misses += 1
                return None

            if self._is_expired(entry, self._clock()):
                self._items.pop(key, None)
                self._expired += 1
                self._misses += 1
                return None

            self._hits += 1
            return entry.value

    def set(self, key: str, value: V, *, ttl_s: float | None = None) -> None:
        entry_ttl = self._ttl_s if ttl_s is None else max(1.0, min(float(ttl_s), self._ttl_s))
        with self._lock:
            self._items.pop(key, None)
            self._items[key] = _CacheEntry(inserted_at=self._clock(), ttl_s=entry_ttl, value=value)

            while len(self._items) > self._max_entries:
                self._items.popitem(last=False)
                self._evictions += 1

    def clear(self) -> int:
        with self._lock:
            cleared = len(self._items)
            self._items.clear()
            return cleared

    def reset(self) -> None:
        with self._lock:
            self._items.clear()
            self._hits = 0
            self._misses = 0
            self._expired = 0
            self._evictions = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def snapshot(self) -> dict[str, int | float]:
        with self._lock:
            return {
                "size": len(self._items),
                "hits": self._hits,
                "misses": self._misses,
                "expired": self._expired,
                "evictions": self._evictions,
                "ttl_s": self._ttl_s,
                "max_entries": self._max_entries,
            }


def new_exposure_cache() -> TileCacheStore:
    return TileCacheStore(
        ttl_s=settings.exposure_cache_ttl_s,
        max_entries=settings.exposure_cache_max_entries,
    )
