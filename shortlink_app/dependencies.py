"""
Component container and FastAPI dependencies.

Pattern: Dependency Injection
- ``build_components(settings)`` constructs the store, cache, queue, services
  and counter worker once per application
- the app lifespan calls ``start()`` and ``close()`` on the container
- request handlers receive the container's pieces through ``Depends``

Nothing here is a module-level singleton: two apps built with different
settings (e.g. in tests) never share a cache, a lock or a queue.
"""

import logging
from dataclasses import dataclass

from fastapi import Request

from shortlink_app.cache.factory import CacheBackend, CacheFactory
from shortlink_app.cache.strategies import RedirectCache
from shortlink_app.config import Settings
from shortlink_app.hit_processor.counter_worker import CounterWorker
from shortlink_app.queue.factory import QueueBackend, QueueFactory
from shortlink_app.queue.strategies import QueueStrategy
from shortlink_app.services.click_recorder import ClickRecorder
from shortlink_app.services.code_allocator import CodeAllocator
from shortlink_app.services.link_service import LinkService
from shortlink_app.storage.factory import StoreBackend, StoreFactory
from shortlink_app.storage.strategies import LinkStore

logger = logging.getLogger(__name__)


@dataclass
class Components:
    settings: Settings
    store: LinkStore
    cache: RedirectCache
    queue: QueueStrategy
    allocator: CodeAllocator
    recorder: ClickRecorder
    link_service: LinkService
    worker: CounterWorker

    def start(self):
        """
        Create the schema and start the counter worker thread.

        Raises:
            StoreError: if the schema cannot be created (startup must abort)
        """
        self.store.create_schema()
        if self.settings.counter_worker_enabled:
            self.worker.start()
        logger.info("Components started")

    def close(self):
        """Stop the worker (applying queued increments), then release backends"""
        self.worker.stop()
        self.cache.clear()
        self.queue.close()
        self.store.close()
        logger.info("Components closed")


def build_components(settings: Settings) -> Components:
    """Construct every component from ``settings``."""
    store = StoreFactory.create(StoreBackend(settings.store_backend), settings)
    cache = CacheFactory.create(CacheBackend(settings.cache_backend))
    queue = QueueFactory.create(QueueBackend(settings.queue_backend), settings)

    allocator = CodeAllocator(store)
    recorder = ClickRecorder(store, queue, settings.queue_name)
    link_service = LinkService(
        store=store,
        cache=cache,
        allocator=allocator,
        recorder=recorder,
        top_referrers_limit=settings.top_referrers_limit,
    )
    worker = CounterWorker(
        queue=queue,
        store=store,
        queue_name=settings.queue_name,
        batch_size=settings.queue_batch_size,
        block_ms=settings.queue_block_ms,
        max_attempts=settings.counter_max_attempts,
    )

    return Components(
        settings=settings,
        store=store,
        cache=cache,
        queue=queue,
        allocator=allocator,
        recorder=recorder,
        link_service=link_service,
        worker=worker,
    )


def get_components(request: Request) -> Components:
    """Components attached to the running app by its lifespan."""
    return request.app.state.components


def get_settings(request: Request) -> Settings:
    return get_components(request).settings


def get_link_service(request: Request) -> LinkService:
    """
    Get LinkService with all dependencies injected.

    Controllers depend on the service; the service depends on the store,
    cache, allocator and recorder.
    """
    return get_components(request).link_service
