import logging
from dataclasses import dataclass
from typing import List, Optional

from shortlink_app.cache.strategies import RedirectCache
from shortlink_app.errors import NotFoundError, ValidationError
from shortlink_app.schemas.link import LinkSnapshot, RefererCount
from shortlink_app.services.click_recorder import ClickRecorder
from shortlink_app.services.code_allocator import CodeAllocator
from shortlink_app.services.short_codes import is_valid_code
from shortlink_app.storage.strategies import LinkStore

logger = logging.getLogger(__name__)


@dataclass
class LinkListing:
    links: List[LinkSnapshot]
    top_referrers: List[RefererCount]


class LinkService:
    """
    Link service composing the allocator, the redirect cache and the click
    recorder for the HTTP layer.

    All collaborators are injected; the service holds no state of its own.
    """

    def __init__(
        self,
        store: LinkStore,
        cache: RedirectCache,
        allocator: CodeAllocator,
        recorder: ClickRecorder,
        top_referrers_limit: int = 3
    ):
        self.store = store
        self.cache = cache
        self.allocator = allocator
        self.recorder = recorder
        self.top_referrers_limit = top_referrers_limit

    def create_link(self, url: Optional[str]) -> LinkSnapshot:
        """Create a new short link.

        Always allocates a new code, even if the URL was shortened before.
        The URL is stored and echoed exactly as given.

        Raises:
            ValidationError: if ``url`` is empty or blank (nothing is allocated)
            AllocationFailure: if the code could not be allocated
        """
        if url is None or not url.strip():
            raise ValidationError("URL is required")
        return self.allocator.allocate(url)

    def resolve(self, code: str) -> LinkSnapshot:
        """
        Get the link for a redirect using the read-through cache.

        Flow:
        1. Check cache first
        2. If cache miss, read the store
        3. Populate cache for next time (found links only)

        Raises:
            NotFoundError: if no link has this code (nothing gets cached)
            StoreError: if the store read fails
        """
        cached = self.cache.lookup(code)
        if cached.hit:
            return cached.link

        # Codes outside the alphabet can never have been allocated
        link = self.store.find_link_by_id(code) if is_valid_code(code) else None
        if link is None:
            raise NotFoundError(code)

        return self.cache.insert(code, link)

    def redirect(self, code: str, referer: Optional[str] = None) -> LinkSnapshot:
        """
        Resolve ``code`` and record the click.

        The click event is stored before this returns; the counter increment
        is queued and never waited on. Click recording failures do not fail
        the redirect.

        Raises:
            NotFoundError: if no link has this code (no click is recorded)
            StoreError: if the store read fails
        """
        link = self.resolve(code)
        self.recorder.record_click(link.id, referer)
        return link

    def list_links(self) -> LinkListing:
        """All links in allocation order plus the top referrers."""
        return LinkListing(
            links=self.store.list_links(),
            top_referrers=self.recorder.top_referrers(self.top_referrers_limit),
        )

    def get_link_stats(self, code: str) -> LinkSnapshot:
        """
        Read a link straight from the store.

        Bypasses the cache on purpose: cached snapshots carry a stale
        click_count.

        Raises:
            NotFoundError: if no link has this code
        """
        link = self.store.find_link_by_id(code) if is_valid_code(code) else None
        if link is None:
            raise NotFoundError(code)
        return link
