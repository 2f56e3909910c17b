"""Abstract interfaces for swappable backends.

The response cache is reached only through ``ICacheProvider`` so the
in-memory store can be replaced without touching the request coordinator.
"""

from src.interfaces.cache_provider import ICacheProvider

__all__ = ["ICacheProvider"]
