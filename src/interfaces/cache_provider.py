"""Abstract base class for response-cache providers.

Defines the contract the request coordinator relies on: look an entry up,
store a payload, and periodically sweep long-stale entries.  Freshness is
NOT decided here -- ``get`` returns whatever is stored and the caller
compares the entry age against its own TTL.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from src.models.cache import CacheEntry


class ICacheProvider(ABC):
    """Contract for the response cache.

    All operations are async so a provider can serialise access behind an
    ``asyncio.Lock`` (or a network-backed store) without blocking the loop.
    """

    @abstractmethod
    async def get(self, key: str) -> CacheEntry | None:
        """Return the entry stored under *key*, fresh or not, or ``None``."""

    @abstractmethod
    async def put(self, key: str, payload: Any) -> CacheEntry:
        """Store *payload* under *key*, overwriting any previous entry.

        Returns
        -------
        CacheEntry
            The entry as stored, stamped with the provider's clock.
        """

    @abstractmethod
    async def sweep(self) -> int:
        """Evict every entry older than the eviction horizon.

        Returns
        -------
        int
            Number of entries removed.
        """

    @abstractmethod
    def now(self) -> float:
        """Current reading of the clock used to stamp entries."""
