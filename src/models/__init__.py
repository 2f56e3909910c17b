"""Domain models -- re-exports all public model classes.

    - cache.py     -- CacheEntry stored by the response cache
    - upstream.py  -- UpstreamSource, UpstreamResponse and the success check
"""

from __future__ import annotations

from src.models.cache import CacheEntry
from src.models.upstream import (
    FAILURE_PAYLOAD,
    SUCCESS_CODE,
    UpstreamResponse,
    UpstreamSource,
    looks_successful,
)

__all__ = [
    "FAILURE_PAYLOAD",
    "SUCCESS_CODE",
    "CacheEntry",
    "UpstreamResponse",
    "UpstreamSource",
    "looks_successful",
]
