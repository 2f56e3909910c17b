"""Cache providers.

MemoryCacheProvider keeps search responses in process memory only; it is
not shared across workers.
"""

from src.providers.cache.memory_cache import MemoryCacheProvider

__all__ = ["MemoryCacheProvider"]
