"""
In-memory response cache with per-entry TTL and a capacity bound.

The cache is shared by the Innertube client (player responses) and the
cipher solver (derived signature pipelines). It is owned by whoever
composes the application (normally MediaEngine) and injected into both;
there is no module-level instance.

Eviction:
    Inserting a NEW key when the cache is full evicts exactly one entry:
    the one with the oldest creation time (insertion order, not recency
    of use). Overwriting an existing key never evicts; it replaces the
    entry and refreshes its creation time.

Expiry:
    Checked lazily on get()/has(). An entry is expired once
    (now - created_at) > ttl; expired entries are removed when seen.

Thread Safety:
    All public methods acquire self._lock before touching the store, and
    each key maps to a single immutable CacheEntry, so a reader can never
    observe a value from one write paired with a timestamp from another.
"""

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable


# Default capacity and TTL (seconds)
DEFAULT_MAX_ENTRIES = 100
DEFAULT_TTL = 3600.0


@dataclass(frozen=True)
class CacheEntry:
    """
    One cached value with its creation time and lifetime.

    Attributes:
        value: The cached object.
        created_at: Clock reading when the entry was stored.
        ttl: Lifetime in seconds.
    """
    value: Any
    created_at: float
    ttl: float

    def is_expired(self, now: float) -> bool:
        return (now - self.created_at) > self.ttl


class ResponseCache:
    """
    Capacity-bounded TTL cache.

    Attributes:
        max_entries: Maximum number of live entries.
        default_ttl: TTL used by set() when none is given.

    Example:
        cache = ResponseCache(max_entries=100)
        cache.set("player:dQw4w9WgXcQ", response, ttl=3600)
        cached = cache.get("player:dQw4w9WgXcQ")
    """

    def __init__(
        self,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        default_ttl: float = DEFAULT_TTL,
        clock: Callable[[], float] = time.monotonic
    ) -> None:
        """
        Initialize an empty cache.

        Args:
            max_entries: Capacity; must be at least 1.
            default_ttl: TTL in seconds for set() calls without one.
            clock: Zero-argument callable returning seconds. Tests pass a
                   fake clock to control expiry.

        Raises:
            ValueError: If max_entries < 1.
        """
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.max_entries = max_entries
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        """
        Store a value under key.

        Args:
            key: Cache key (e.g. 'player:{video_id}', 'cipher:pipeline').
            value: Object to store.
            ttl: Lifetime in seconds. Defaults to default_ttl.
        """
        entry = CacheEntry(
            value=value,
            created_at=self._clock(),
            ttl=self.default_ttl if ttl is None else ttl,
        )
        with self._lock:
            if key in self._entries:
                # Re-insert so creation order in the dict matches created_at
                del self._entries[key]
            elif len(self._entries) >= self.max_entries:
                self._evict_oldest()
            self._entries[key] = entry

    def get(self, key: str) -> Any | None:
        """
        Return the value for key, or None if absent or expired.

        An expired entry is deleted as a side effect.
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.is_expired(self._clock()):
                del self._entries[key]
                return None
            return entry.value

    def has(self, key: str) -> bool:
        """Return True if key holds a live (non-expired) entry."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return False
            if entry.is_expired(self._clock()):
                del self._entries[key]
                return False
            return True

    def delete(self, key: str) -> bool:
        """
        Remove key from the cache.

        Returns:
            True if an entry was removed, False if the key was absent.
        """
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _evict_oldest(self) -> None:
        """
        Drop the entry with the smallest created_at. Caller holds the lock.

        Ties resolve to the first such entry in insertion order.
        """
        oldest_key = min(self._entries, key=lambda k: self._entries[k].created_at)
        del self._entries[oldest_key]
