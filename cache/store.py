"""
cache/store.py -- In-process key-value cache with optional per-entry TTL.

Backs the proxy credential cache and the content-type alias cache. Callers
only depend on the narrow get/set/delete/sweep surface, so the backing store
can move to a shared external cache without touching them.

Usage:
    cache = MemoryStore()
    cache.set("admin", token, ttl=3600)
    cache.get("admin")          # returns the value, or None once expired
    cache.sweep()               # drop expired entries, returns count removed

Expired entries are evicted on read, never returned stale.
"""

import threading
import time
from typing import Any, Callable, Optional, Protocol


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[Any]: ...

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None: ...

    def delete(self, key: str) -> bool: ...

    def sweep(self) -> int: ...


class MemoryStore:
    """Thread-safe dict-backed KeyValueStore.

    clock is injectable so tests can move time forward without sleeping.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._entries: dict[str, tuple[Any, Optional[float]]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        """Return the value for key if present and unexpired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if expires_at is not None and self._clock() >= expires_at:
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """Store value under key, replacing any existing entry. ttl=None never expires."""
        expires_at = self._clock() + ttl if ttl is not None else None
        with self._lock:
            self._entries[key] = (value, expires_at)

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def sweep(self) -> int:
        """Delete all expired entries. Returns number of entries removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, (_, exp) in self._entries.items() if exp is not None and now >= exp]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
