"""In-process key/value cache with per-entry TTL.

The cache is shared by every ``UpdateClient`` in the process and is the only
mutable state they have in common, so every client works through a
``CacheNamespace`` that prefixes its keys with the unit slug.

All operations take a ``threading.Lock``; ``update`` performs an atomic
read-modify-write which the rate limiter relies on for lost-update-free
counters when a host triggers overlapping checks.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Final

import structlog

if TYPE_CHECKING:
    from collections.abc import Callable

logger = structlog.get_logger(__name__)

HOUR_IN_SECONDS: Final = 3600
MINUTE_IN_SECONDS: Final = 60


class _FailedMarker:
    """Sentinel stored in place of a value to remember a failed lookup."""

    _instance: _FailedMarker | None = None

    def __new__(cls) -> _FailedMarker:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "FAILED"

    def __bool__(self) -> bool:
        return False


FAILED: Final = _FailedMarker()

_MISSING: Final = object()


@dataclass
class CacheEntry:
    """A cached value and the monotonic time at which it stops being valid."""

    key: str
    value: Any
    expires_at: float

    def is_expired(self, now: float) -> bool:
        """Check whether the entry must be treated as a miss at ``now``."""
        return now >= self.expires_at


class CacheStore:
    """Thread-safe TTL cache.

    Example:
        >>> store = CacheStore()
        >>> store.set("answer", 42, ttl=60)
        >>> store.get("answer")
        42
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        """Initialize the cache.

        Args:
            clock: Monotonic time source, injectable for tests.
        """
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._clock = clock
        self._log = logger.bind(component="cache")

    def _live_entry(self, key: str, now: float) -> CacheEntry | None:
        # Caller holds the lock
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.is_expired(now):
            del self._entries[key]
            return None
        return entry

    def get(self, key: str, default: Any = None) -> Any:
        """Return the live value for ``key`` or ``default`` on a miss."""
        with self._lock:
            entry = self._live_entry(key, self._clock())
            return default if entry is None else entry.value

    def get_entry(self, key: str) -> CacheEntry | None:
        """Return the live entry for ``key`` including its expiry."""
        with self._lock:
            return self._live_entry(key, self._clock())

    def set(self, key: str, value: Any, ttl: float) -> None:
        """Store ``value`` under ``key`` for ``ttl`` seconds.

        Raises:
            ValueError: If ``ttl`` is not positive.
        """
        if ttl <= 0:
            raise ValueError(f"ttl must be positive, got {ttl}")
        with self._lock:
            self._entries[key] = CacheEntry(key=key, value=value, expires_at=self._clock() + ttl)

    def update(
        self,
        key: str,
        func: Callable[[Any], tuple[Any, float | None]],
    ) -> Any:
        """Atomically transform the value stored under ``key``.

        ``func`` receives the current live value (or ``None`` on a miss) and
        returns ``(new_value, ttl)``. A ``ttl`` of ``None`` keeps the existing
        expiry, which on a miss means the value is not stored. ``func`` may
        raise to abort without changing anything.

        Returns:
            The new value.
        """
        with self._lock:
            now = self._clock()
            entry = self._live_entry(key, now)
            new_value, ttl = func(None if entry is None else entry.value)
            if ttl is not None:
                self._entries[key] = CacheEntry(key=key, value=new_value, expires_at=now + ttl)
            elif entry is not None:
                entry.value = new_value
            return new_value

    def delete(self, key: str) -> bool:
        """Remove ``key``. Returns True if a live entry was removed."""
        with self._lock:
            entry = self._live_entry(key, self._clock())
            if entry is None:
                return False
            del self._entries[key]
            return True

    def clear(self, prefix: str = "") -> int:
        """Remove all entries whose key starts with ``prefix``.

        Returns:
            Number of entries removed.
        """
        with self._lock:
            keys = [key for key in self._entries if key.startswith(prefix)]
            for key in keys:
                del self._entries[key]
        self._log.debug("cache_cleared", prefix=prefix, removed=len(keys))
        return len(keys)

    def purge_expired(self) -> int:
        """Drop expired entries. Lookups ignore them anyway; this frees memory."""
        with self._lock:
            now = self._clock()
            expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def namespace(self, name: str) -> CacheNamespace:
        """Return a view of the cache that prefixes every key with ``name``."""
        return CacheNamespace(self, name)

    def __len__(self) -> int:
        with self._lock:
            now = self._clock()
            return sum(1 for entry in self._entries.values() if not entry.is_expired(now))


class CacheNamespace:
    """Key-prefixed view over a shared ``CacheStore``."""

    def __init__(self, store: CacheStore, name: str) -> None:
        self.store = store
        self.name = name
        self._prefix = f"{name}:"

    def _key(self, key: str) -> str:
        return self._prefix + key

    def get(self, key: str, default: Any = None) -> Any:
        return self.store.get(self._key(key), default)

    def get_entry(self, key: str) -> CacheEntry | None:
        return self.store.get_entry(self._key(key))

    def set(self, key: str, value: Any, ttl: float) -> None:
        self.store.set(self._key(key), value, ttl)

    def update(self, key: str, func: Callable[[Any], tuple[Any, float | None]]) -> Any:
        return self.store.update(self._key(key), func)

    def delete(self, key: str) -> bool:
        return self.store.delete(self._key(key))

    def clear(self) -> int:
        """Remove every entry belonging to this namespace."""
        return self.store.clear(self._prefix)

    def contains(self, key: str) -> bool:
        return self.store.get(self._key(key), _MISSING) is not _MISSING


_default_store: CacheStore | None = None
_default_lock = threading.Lock()


def get_cache_store() -> CacheStore:
    """Get the process-wide CacheStore instance."""
    global _default_store

    with _default_lock:
        if _default_store is None:
            _default_store = CacheStore()
        return _default_store


def reset_cache_store() -> None:
    """Reset the process-wide CacheStore instance.

    Useful for testing.
    """
    global _default_store

    with _default_lock:
        _default_store = None
