"""
Expiring key-value cache.

Small in-process store with per-entry time-to-live. Instances are created by
the caller and passed to the services that need them; nothing here is
module-global.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Hashable
from typing import Any

from loguru import logger

_MISSING = object()


class ExpiringCache:
    """
    Key-value store with TTL eviction.

    Expired entries are dropped lazily when they are read, or in bulk
    through ``purge_expired``.
    """

    def __init__(
        self,
        ttl_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            ttl_seconds: Default lifetime for new entries
            clock: Monotonic time source (injectable for tests)
        """
        if ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be positive, got {ttl_seconds}")
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[Hashable, tuple[float, Any]] = {}

    def get(self, key: Hashable, default: Any = None) -> Any:
        entry = self._entries.get(key)
        if entry is None:
            return default

        expires_at, value = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return default
        return value

    def set(self, key: Hashable, value: Any, ttl_seconds: float | None = None) -> None:
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        self._entries[key] = (self._clock() + ttl, value)

    def pop(self, key: Hashable, default: Any = None) -> Any:
        """Remove and return a live entry."""
        value = self.get(key, _MISSING)
        if value is _MISSING:
            return default
        del self._entries[key]
        return value

    def invalidate_prefix(self, *prefix: Hashable) -> int:
        """
        Drop every tuple key starting with ``prefix``.

        Returns:
            Number of entries removed
        """
        size = len(prefix)
        doomed = [
            key
            for key in self._entries
            if isinstance(key, tuple) and key[:size] == prefix
        ]
        for key in doomed:
            del self._entries[key]
        if doomed:
            logger.debug(f"Invalidated {len(doomed)} cache entries for {prefix}")
        return len(doomed)

    def purge_expired(self) -> int:
        """Remove all expired entries and return how many were dropped."""
        now = self._clock()
        expired = [key for key, (expires_at, _) in self._entries.items() if now >= expires_at]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, key: Hashable) -> bool:
        return self.get(key, _MISSING) is not _MISSING

    def __len__(self) -> int:
        self.purge_expired()
        return len(self._entries)
