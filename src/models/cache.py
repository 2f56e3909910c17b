"""Response-cache entry model."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict


class CacheEntry(BaseModel):
    """A cached upstream payload and the clock reading at which it was stored.

    ``stored_at`` comes from the cache's own monotonic clock, so ages are
    only comparable against readings of that same clock.
    """

    model_config = ConfigDict(frozen=True)

    payload: Any
    stored_at: float

    def age(self, now: float) -> float:
        return now - self.stored_at

    def fresh_until(self, ttl: float) -> float:
        return self.stored_at + ttl

    def evict_at(self, ttl: float) -> float:
        return self.stored_at + 2 * ttl

    def is_fresh(self, now: float, ttl: float) -> bool:
        return self.age(now) < ttl
