"""
TTL-bounded in-process cache.

One ``CacheStore`` class backs every memoized view in the core: per-user
materialized histories, the shared active timeline (key ``"global"``) and
the status manager's refresh payloads. Each instance carries exactly one
TTL, a size bound and an injected clock.

Manifesto:
    The derived package view is read far more often than it changes, but
    it must never outlive a write for long. Every cache here is:

    - **TTL-bounded:** An entry is valid while ``now - timestamp < ttl``
    - **Size-bounded:** LRU eviction past ``max_size``
    - **Clock-injected:** Tests advance a FixedClock instead of sleeping
    - **Explicitly invalidated:** Writers call ``delete(key)``

Architecture:
    ::

        CacheStore
        ├── get(key)          → value | None   (lazy expiry)
        ├── set(key, value)   stamps clock.now()
        ├── delete(key)
        ├── exists(key)       → bool
        ├── entry(key)        → CacheEntry | None
        ├── clear()
        └── size() / keys()

Examples:
    >>> from parcelspine.core.clock import FixedClock
    >>> clock = FixedClock("2024-01-01T00:00:00Z")
    >>> cache = CacheStore(ttl_seconds=30, clock=clock)
    >>> cache.set("u1", ["record"])
    >>> cache.get("u1")
    ['record']
    >>> _ = clock.advance(seconds=30)
    >>> cache.get("u1") is None
    True

Performance:
    - get/set: O(1) (OrderedDict move_to_end)
    - Expiry: Lazy, checked on read

Guardrails:
    ❌ DON'T: Share one instance between views with different freshness needs
    ✅ DO: One instance per use, each with its own TTL

    ❌ DON'T: Use across processes (no sharing)
    ✅ DO: Treat the backing store as the single source of truth

Tags:
    cache, caching, in-memory, ttl, lru

Doc-Types:
    - API Reference
    - Technical Design
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from parcelspine.core.clock import Clock, SystemClock


@dataclass(frozen=True, slots=True)
class CacheEntry:
    """A cached value and the instant it was stored."""

    value: Any
    timestamp: datetime


class CacheStore:
    """Bounded in-memory cache with a single TTL.

    Attributes:
        ttl_seconds: Lifetime of every entry.
        max_size: Maximum number of keys before LRU eviction.
    """

    def __init__(
        self,
        *,
        ttl_seconds: float,
        max_size: int = 10_000,
        clock: Clock | None = None,
        name: str = "cache",
    ):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self._store: OrderedDict[str, CacheEntry] = OrderedDict()
        self._ttl = float(ttl_seconds)
        self._max_size = max_size
        self._clock = clock or SystemClock()
        self.name = name

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    @property
    def max_size(self) -> int:
        return self._max_size

    def _is_fresh(self, entry: CacheEntry) -> bool:
        age = (self._clock.now() - entry.timestamp).total_seconds()
        return age < self._ttl

    def entry(self, key: str) -> CacheEntry | None:
        """Return the live entry for *key* (value and timestamp)."""
        entry = self._store.get(key)
        if entry is None:
            return None
        if not self._is_fresh(entry):
            del self._store[key]
            return None
        self._store.move_to_end(key)
        return entry

    def get(self, key: str) -> Any | None:
        """Retrieve a value, or ``None`` if missing or expired."""
        entry = self.entry(key)
        return entry.value if entry is not None else None

    def set(self, key: str, value: Any) -> None:
        """Store a value stamped with the current instant."""
        if key in self._store:
            self._store.move_to_end(key)
        elif len(self._store) >= self._max_size:
            self._store.popitem(last=False)
        self._store[key] = CacheEntry(value=value, timestamp=self._clock.now())

    def delete(self, key: str) -> None:
        """Remove a key. No-op if absent."""
        self._store.pop(key, None)

    def exists(self, key: str) -> bool:
        """Check if key exists and is not expired."""
        return self.entry(key) is not None

    def clear(self) -> None:
        """Remove all keys."""
        self._store.clear()

    def size(self) -> int:
        """Return current number of stored keys (expired ones included until read)."""
        return len(self._store)

    def keys(self) -> list[str]:
        """Stored keys, least recently used first."""
        return list(self._store.keys())

    def __repr__(self) -> str:
        return f"CacheStore(name={self.name!r}, ttl={self._ttl}, size={len(self._store)})"


__all__ = ["CacheEntry", "CacheStore"]
