"""
Redirect cache module.
Implements Strategy Pattern for flexible cache backends.
"""

from .strategies import CACHE_MISS, CacheHit, CacheMiss, RedirectCache, InMemoryCache, NullCache
from .factory import CacheFactory, CacheBackend

__all__ = [
    "CACHE_MISS",
    "CacheHit",
    "CacheMiss",
    "RedirectCache",
    "InMemoryCache",
    "NullCache",
    "CacheFactory",
    "CacheBackend",
]
