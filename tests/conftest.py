"""
Test configuration and fixtures for the link shortener.
This centralizes all test setup, making individual tests clean.
"""

import pytest
from fastapi.testclient import TestClient

from main import create_app
from shortlink_app.cache.strategies import InMemoryCache
from shortlink_app.config import Settings
from shortlink_app.database.connection import create_db_engine
from shortlink_app.hit_processor.counter_worker import CounterWorker
from shortlink_app.queue.strategies import InMemoryQueue
from shortlink_app.services.click_recorder import ClickRecorder
from shortlink_app.services.code_allocator import CodeAllocator
from shortlink_app.services.link_service import LinkService
from shortlink_app.storage.strategies import InMemoryLinkStore, SQLAlchemyLinkStore

QUEUE_NAME = "test_click_counters"


@pytest.fixture(scope="function")
def settings(tmp_path):
    """
    Settings pointing at a fresh SQLite file per test.

    The in-process worker thread is off so tests decide when increments are
    applied (``worker.drain()``).
    """
    return Settings(
        _env_file=None,
        database_url=f"sqlite:///{tmp_path / 'test.db'}",
        base_url="http://testserver",
        store_backend="sqlalchemy",
        cache_backend="memory",
        queue_backend="memory",
        queue_name=QUEUE_NAME,
        queue_block_ms=50,
        counter_worker_enabled=False,
    )


@pytest.fixture(scope="function")
def sql_store(settings):
    """SQLAlchemy store on a fresh SQLite file, schema created."""
    store = SQLAlchemyLinkStore(create_db_engine(settings.database_url))
    store.create_schema()
    try:
        yield store
    finally:
        store.close()


@pytest.fixture(scope="function", params=["sqlalchemy", "memory"])
def store(request, settings):
    """Each test using this fixture runs once per store backend."""
    if request.param == "memory":
        yield InMemoryLinkStore()
        return
    yield request.getfixturevalue("sql_store")


@pytest.fixture(scope="function")
def cache():
    return InMemoryCache()


@pytest.fixture(scope="function")
def queue():
    return InMemoryQueue()


@pytest.fixture(scope="function")
def allocator(store):
    return CodeAllocator(store)


@pytest.fixture(scope="function")
def recorder(store, queue):
    return ClickRecorder(store, queue, QUEUE_NAME)


@pytest.fixture(scope="function")
def worker(store, queue):
    return CounterWorker(queue=queue, store=store, queue_name=QUEUE_NAME, block_ms=50)


@pytest.fixture(scope="function")
def link_service(store, cache, allocator, recorder):
    return LinkService(
        store=store,
        cache=cache,
        allocator=allocator,
        recorder=recorder,
        top_referrers_limit=3,
    )


@pytest.fixture(scope="function")
def client(settings):
    """
    Test client running the full app lifespan against the per-test settings.
    """
    app = create_app(settings)

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture(scope="function")
def components(client):
    """The component container of the app behind ``client``."""
    return client.app.state.components
