"""In-memory response cache backed by ``cachetools.TTLCache``.

Entries are stamped with the cache's clock and live for ``2 x ttl``
seconds; freshness (``age < ttl``) is judged by the caller.  The store has
no size bound -- only the sweep (or an overwrite) removes entries.

Every structural mutation of the underlying ``TTLCache`` happens under an
``asyncio.Lock`` so concurrent requests cannot interleave inside it.
"""

from __future__ import annotations

import asyncio
import math
import time
from typing import Any, Callable

import structlog
from cachetools import TTLCache

from src.interfaces.cache_provider import ICacheProvider
from src.models.cache import CacheEntry

logger = structlog.get_logger(logger_name=__name__)


class MemoryCacheProvider(ICacheProvider):
    """Process-local response cache.

    Parameters
    ----------
    ttl:
        Freshness window in seconds.  Entries are evicted once older than
        twice this value.
    timer:
        Monotonic clock used for stamping and expiry; injectable for tests.
    max_size:
        Optional entry bound; unbounded by default.
    """

    def __init__(
        self,
        ttl: float = 300,
        timer: Callable[[], float] = time.monotonic,
        max_size: float = math.inf,
    ) -> None:
        self._ttl = ttl
        self._timer = timer
        self._cache: TTLCache[str, CacheEntry] = TTLCache(
            maxsize=max_size, ttl=2 * ttl, timer=timer
        )
        self._lock = asyncio.Lock()

    @property
    def ttl(self) -> float:
        return self._ttl

    def now(self) -> float:
        return self._timer()

    def __len__(self) -> int:
        return len(self._cache)

    # ------------------------------------------------------------------
    # ICacheProvider implementation
    # ------------------------------------------------------------------

    async def get(self, key: str) -> CacheEntry | None:
        """Return the stored entry for *key*, or ``None`` once evicted."""
        async with self._lock:
            entry = self._cache.get(key)
        if entry is not None:
            logger.debug("cache_lookup_found", key=key)
        else:
            logger.debug("cache_lookup_empty", key=key)
        return entry

    async def put(self, key: str, payload: Any) -> CacheEntry:
        entry = CacheEntry(payload=payload, stored_at=self._timer())
        async with self._lock:
            self._cache[key] = entry
        logger.debug("cache_put", key=key)
        return entry

    async def sweep(self) -> int:
        """Drop every entry past ``2 x ttl``; returns how many were removed."""
        async with self._lock:
            expired = self._cache.expire()
        removed = len(expired)
        logger.info("cache_swept", removed=removed, remaining=len(self._cache))
        return removed

    async def clear(self) -> None:
        async with self._lock:
            self._cache.clear()
