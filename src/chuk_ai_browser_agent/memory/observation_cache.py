# chuk_ai_browser_agent/memory/observation_cache.py
"""
Observation Cache - avoids re-reading a page that was just observed.

Structural page reads are the most expensive driver round-trip. Within a
single step several subsystems want the same observation (intervention
detection, self-heal, the auto snapshot). This cache keeps the last payload
per page identity for a short TTL.

Entries are evicted:
- by TTL on read
- oldest-first on write once the cache is full
- explicitly after any action that may have changed the page

Usage::

    cache = ObservationCache(ttl_seconds=3.0)
    key = ObservationCache.page_key(tab_id=1, url="https://example.com")
    payload = cache.get(key)
    if payload is None:
        payload = await driver.execute("read_page", {})
        cache.put(key, payload)
"""

from __future__ import annotations

import logging
import time
from collections import OrderedDict
from collections.abc import Callable
from typing import Any

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class ObservationEntry(BaseModel):
    """A cached observation."""

    key: str
    timestamp: float
    payload: Any = None


class ObservationCacheStats(BaseModel):
    """Observation cache statistics."""

    hits: int = Field(default=0)
    misses: int = Field(default=0)
    expirations: int = Field(default=0)
    evictions: int = Field(default=0)
    invalidations: int = Field(default=0)
    size: int = Field(default=0)
    max_size: int = Field(default=0)

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0


class ObservationCache:
    """Short-TTL, size-bounded cache of page observations."""

    def __init__(
        self,
        ttl_seconds: float = 3.0,
        max_entries: int = 8,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self.max_entries = max(1, max_entries)
        self._clock = clock
        self._cache: OrderedDict[str, ObservationEntry] = OrderedDict()
        self._stats = {
            "hits": 0,
            "misses": 0,
            "expirations": 0,
            "evictions": 0,
            "invalidations": 0,
        }

    @staticmethod
    def page_key(tab_id: Any = None, url: str = "", kind: str = "structure") -> str:
        """Page identity: tab, url and observation kind."""
        return f"{kind}|{tab_id if tab_id is not None else '-'}|{url}"

    def get(self, key: str) -> Any | None:
        entry = self._cache.get(key)
        if entry is None:
            self._stats["misses"] += 1
            return None

        if self._clock() - entry.timestamp > self.ttl_seconds:
            del self._cache[key]
            self._stats["expirations"] += 1
            self._stats["misses"] += 1
            return None

        self._stats["hits"] += 1
        return entry.payload

    def put(self, key: str, payload: Any) -> None:
        """Store an observation, evicting the oldest entries if full."""
        self._cache.pop(key, None)
        while len(self._cache) >= self.max_entries:
            evicted_key, _ = self._cache.popitem(last=False)
            self._stats["evictions"] += 1
            logger.debug("Observation cache evicted %s", evicted_key)
        self._cache[key] = ObservationEntry(key=key, timestamp=self._clock(), payload=payload)

    def invalidate(self, key: str | None = None) -> int:
        """Drop one entry, or everything when ``key`` is None."""
        if key is None:
            count = len(self._cache)
            self._cache.clear()
        else:
            count = 1 if self._cache.pop(key, None) is not None else 0
        self._stats["invalidations"] += count
        return count

    def clear(self) -> None:
        """Reset entries and statistics (start of a new run)."""
        self._cache.clear()
        for name in self._stats:
            self._stats[name] = 0

    @property
    def size(self) -> int:
        return len(self._cache)

    def get_stats(self) -> ObservationCacheStats:
        return ObservationCacheStats(
            **self._stats,
            size=len(self._cache),
            max_size=self.max_entries,
        )
