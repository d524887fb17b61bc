"""
Redirect cache strategies using Strategy Pattern.

The cache maps a short code to a LinkSnapshot so repeat redirects skip the
store. It is read-through: the caller fills it after a miss, the cache itself
never talks to the store.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Union

from shortlink_app.schemas.link import LinkSnapshot


@dataclass(frozen=True)
class CacheHit:
    link: LinkSnapshot
    hit = True


@dataclass(frozen=True)
class CacheMiss:
    hit = False


CACHE_MISS = CacheMiss()

LookupResult = Union[CacheHit, CacheMiss]


class RedirectCache(ABC):
    """
    Abstract base class for redirect caches.

    Implementations must be safe to call from many request threads at once.
    """

    @abstractmethod
    def lookup(self, code: str) -> LookupResult:
        """
        Look up a code.

        Args:
            code: Short code

        Returns:
            CacheHit carrying the snapshot, or CACHE_MISS
        """
        pass

    @abstractmethod
    def insert(self, code: str, link: LinkSnapshot) -> LinkSnapshot:
        """
        Store a snapshot under ``code`` unless one is already there.

        Two threads that both missed on the same code will both insert; they
        carry the same snapshot, so whichever lands first is kept.

        Args:
            code: Short code
            link: Snapshot fetched from the store

        Returns:
            The snapshot now cached for ``code``
        """
        pass

    @abstractmethod
    def clear(self) -> None:
        """Drop every entry"""
        pass

    @abstractmethod
    def __len__(self) -> int:
        pass

    def __contains__(self, code: str) -> bool:
        return self.lookup(code).hit


class InMemoryCache(RedirectCache):
    """
    In-memory cache backed by a plain dict.

    ``dict.get`` never blocks and ``dict.setdefault`` inserts atomically per
    key, so neither reads nor writes take a lock and unrelated codes never wait
    on each other.

    Unbounded: entries are never evicted or expired. Links are immutable apart
    from click_count, which is never read from here, so entries cannot go stale
    in a way that matters for redirects.
    """

    def __init__(self):
        self._entries: Dict[str, LinkSnapshot] = {}

    def lookup(self, code: str) -> LookupResult:
        link = self._entries.get(code)
        if link is None:
            return CACHE_MISS
        return CacheHit(link)

    def insert(self, code: str, link: LinkSnapshot) -> LinkSnapshot:
        return self._entries.setdefault(code, link)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class NullCache(RedirectCache):
    """
    Null Object Pattern - cache that does nothing.

    Every lookup misses, so every redirect reads the store. Used to disable
    caching or to exercise the store path in tests.
    """

    def lookup(self, code: str) -> LookupResult:
        return CACHE_MISS

    def insert(self, code: str, link: LinkSnapshot) -> LinkSnapshot:
        return link

    def clear(self) -> None:
        pass

    def __len__(self) -> int:
        return 0
