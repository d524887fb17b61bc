"""
Factory for creating redirect cache instances.
"""

import logging
from enum import Enum

from .strategies import InMemoryCache, NullCache, RedirectCache

logger = logging.getLogger(__name__)


class CacheBackend(Enum):
    """Available cache backends"""
    MEMORY = "memory"
    NULL = "null"


class CacheFactory:
    """
    Simple factory for creating redirect caches.

    Returns a new instance on every call; the component container owns it.
    """

    @classmethod
    def create(cls, backend: CacheBackend) -> RedirectCache:
        """
        Create a redirect cache.

        Args:
            backend: Type of cache backend (from enum)

        Returns:
            New RedirectCache instance
        """
        if backend == CacheBackend.MEMORY:
            logger.info("In-memory redirect cache initialized")
            return InMemoryCache()

        if backend == CacheBackend.NULL:
            logger.info("Null redirect cache initialized (caching disabled)")
            return NullCache()

        raise ValueError(f"Unknown cache backend: {backend}")
