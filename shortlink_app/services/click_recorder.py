import logging
from typing import List, Optional

from shortlink_app.errors import StoreError
from shortlink_app.queue.models import CounterIncrement
from shortlink_app.queue.strategies import QueueStrategy
from shortlink_app.schemas.link import RefererCount
from shortlink_app.storage.strategies import LinkStore

logger = logging.getLogger(__name__)


class ClickRecorder:
    """
    Records redirect analytics without holding up the redirect.

    The click event is written before the redirect response goes out, so the
    referer is captured while the request is still alive. The click_count
    increment is only queued here; the counter worker applies it later.

    Analytics are best-effort: any failure is logged and swallowed.
    """

    def __init__(self, store: LinkStore, queue: QueueStrategy, queue_name: str):
        self.store = store
        self.queue = queue
        self.queue_name = queue_name

    def record_click(self, link_id: str, referer: Optional[str]) -> Optional[int]:
        """
        Store one click event and queue its counter increment.

        Args:
            link_id: Short code that was followed
            referer: Referer header of the request (None or "" if absent)

        Returns:
            The click event id, or None if the event could not be stored
        """
        try:
            event_id = self.store.insert_click_event(link_id, referer or "")
        except StoreError as e:
            logger.warning("Click on %s not recorded: %s", link_id, e)
            return None

        job = CounterIncrement(link_id=link_id, click_event_id=event_id)
        if not self.queue.publish(self.queue_name, job):
            logger.warning("Counter increment for %s (event %s) not queued", link_id, event_id)

        return event_id

    def top_referrers(self, limit: int) -> List[RefererCount]:
        """
        Most frequent referers across all click events.

        Sorted by count descending; equal counts are ordered by referer.

        Raises:
            ValueError: if ``limit`` is negative
            StoreError: if the aggregate query fails
        """
        if limit < 0:
            raise ValueError("limit must be >= 0")
        if limit == 0:
            return []
        return self.store.aggregate_count_by_referer(limit=limit)
