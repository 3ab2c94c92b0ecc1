"""
In-process TTL cache with an injectable clock.

Provides:
    • TTL-aware get/set keyed by any hashable
    • Explicit invalidation (single key or everything)
    • Hit/miss counters for the health report

Owned by the component whose data it fronts (alert source, subscriber
store, weather service) instead of living as module-level state, so
each owner controls its own freshness window and invalidation.

Usage:
    from alert_relay.core.cache import TTLCache

    cache = TTLCache(ttl=30.0)
    cache.set("alerts", alerts)
    cached = cache.get("alerts")     # None once 30 s have passed
    cache.invalidate("alerts")
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, Hashable, Optional, TypeVar

Clock = Callable[[], float]

T = TypeVar("T")

_MISSING = object()


@dataclass
class _Entry(Generic[T]):
    value: T
    stored_at: float


class TTLCache(Generic[T]):
    """Small dictionary cache whose entries expire ``ttl`` seconds after set."""

    def __init__(self, ttl: float, *, clock: Clock = time.monotonic):
        if ttl < 0:
            raise ValueError("ttl must be >= 0")
        self.ttl = ttl
        self._clock = clock
        self._entries: Dict[Hashable, _Entry[T]] = {}
        self.hits = 0
        self.misses = 0

    def get(self, key: Hashable, default: Any = None) -> Optional[T]:
        """Return the cached value, or ``default`` on miss/expiry."""
        entry = self._entries.get(key)
        if entry is None or not self._is_fresh(entry):
            if entry is not None:
                del self._entries[key]
            self.misses += 1
            return default
        self.hits += 1
        return entry.value

    def __contains__(self, key: Hashable) -> bool:
        return self.get(key, _MISSING) is not _MISSING

    def set(self, key: Hashable, value: T) -> None:
        self._entries[key] = _Entry(value=value, stored_at=self._clock())

    def age(self, key: Hashable) -> Optional[float]:
        """Seconds since ``key`` was stored, fresh or not."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        return self._clock() - entry.stored_at

    def invalidate(self, key: Optional[Hashable] = None) -> None:
        """Drop one key, or every key when ``key`` is None."""
        if key is None:
            self._entries.clear()
        else:
            self._entries.pop(key, None)

    def stats(self) -> Dict[str, Any]:
        return {
            "ttl_seconds": self.ttl,
            "entries": len(self._entries),
            "hits": self.hits,
            "misses": self.misses,
        }

    def _is_fresh(self, entry: _Entry[T]) -> bool:
        return self._clock() - entry.stored_at < self.ttl
