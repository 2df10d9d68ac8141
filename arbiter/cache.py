from __future__ import annotations

import logging
import time
from collections import OrderedDict
from typing import Any, Callable, Dict, Optional

from .models import CacheEntry

logger = logging.getLogger(__name__)


class TTLCache:
    """In-memory result cache with a fixed time-to-live.

    Entries expire ``ttl`` seconds after they were stored; a hit does not
    extend the lifetime. Expired entries are dropped lazily on read. When
    ``max_entries`` is set, the least recently used entry is evicted once
    the cache is full."""

    def __init__(
        self,
        ttl: float,
        max_entries: Optional[int] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._ttl = ttl
        self._max_entries = max_entries
        self._clock = clock
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self.hits = 0
        self.misses = 0

    def get(self, key: str, default: Any = None) -> Optional[Any]:
        """Return the cached value for key, or default if absent or expired."""
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return default
        if self._clock() - entry.stored_at >= self._ttl:
            del self._entries[key]
            self.misses += 1
            logger.debug("Cache entry expired for key: %s", key)
            return default
        self._entries.move_to_end(key)
        self.hits += 1
        logger.info("Cache hit for key: %s", key)
        return entry.value

    def set(self, key: str, value: Any) -> None:
        """Store value under key, replacing any existing entry."""
        self._entries[key] = CacheEntry(key=key, value=value, stored_at=self._clock())
        self._entries.move_to_end(key)
        if self._max_entries is not None:
            while len(self._entries) > self._max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("Cache evicted key: %s", evicted)
        logger.info("Cached content for key: %s", key)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, key: str) -> bool:
        entry = self._entries.get(key)
        return entry is not None and self._clock() - entry.stored_at < self._ttl

    def __len__(self) -> int:
        return len(self._entries)


def make_cache_key(kind: str, params: Dict[str, Any]) -> str:
    """Deterministic key from the request kind and its normalized arguments."""
    parts = [kind]
    for name in sorted(params):
        value = params[name]
        if isinstance(value, str):
            value = " ".join(value.split())
        parts.append(f"{name}={value}")
    return ":".join(parts)
