"""
Sequential short code allocation.

The allocator is the only writer of new links. Each allocation reads the most
recent link under an exclusive lock, derives the next code with ``successor``
and inserts the new link before the lock is released, so concurrent requests
are totally ordered and never collide.
"""

import logging
import threading

from shortlink_app.errors import AllocationFailure, StoreError
from shortlink_app.schemas.link import LinkSnapshot
from shortlink_app.services.short_codes import SEED_CODE, successor
from shortlink_app.storage.strategies import LinkStore

logger = logging.getLogger(__name__)


class CodeAllocator:
    """
    Hands out "0000", "0001", ... one link at a time.

    Two locks are held during an allocation:
    - ``self._lock``, which queues up threads of this process
    - the store's allocation scope, which excludes other processes writing to
      the same database

    Blocked callers wait without a timeout.
    """

    def __init__(self, store: LinkStore):
        self.store = store
        self._lock = threading.Lock()

    def allocate(self, url: str) -> LinkSnapshot:
        """
        Allocate the next code for ``url`` and persist the link.

        The caller guarantees ``url`` is non-empty.

        Returns:
            Snapshot of the committed link

        Raises:
            AllocationFailure: if the locked read, the insert or the commit
                failed, or the last stored code is outside the alphabet.
                Nothing is persisted and no code is consumed.
        """
        with self._lock:
            try:
                with self.store.allocation_scope() as scope:
                    last_link = scope.locked_read_max_link()
                    next_id = SEED_CODE if last_link is None else successor(last_link.id)
                    link = scope.insert_link(next_id, url)
            except (StoreError, ValueError) as e:
                logger.error("Allocation failed for %s: %s", url, e)
                raise AllocationFailure("Failed to create short link") from e

        logger.info("Allocated %s -> %s", link.id, link.url)
        return link
