"""
Factory for creating link store instances.
"""

import logging
from enum import Enum

from shortlink_app.config import Settings
from shortlink_app.database.connection import create_db_engine
from .strategies import InMemoryLinkStore, LinkStore, SQLAlchemyLinkStore

logger = logging.getLogger(__name__)


class StoreBackend(Enum):
    """Available store backends"""
    SQLALCHEMY = "sqlalchemy"
    MEMORY = "memory"


class StoreFactory:
    """
    Simple factory for creating link stores.

    Returns a new instance on every call; the component container owns it.
    """

    @classmethod
    def create(cls, backend: StoreBackend, settings: Settings) -> LinkStore:
        """
        Create a link store.

        Args:
            backend: Type of store backend (from enum)
            settings: Settings providing the database URL

        Returns:
            New LinkStore instance
        """
        if backend == StoreBackend.SQLALCHEMY:
            engine = create_db_engine(settings.database_url)
            logger.info("SQLAlchemy link store initialized (%s)", engine.dialect.name)
            return SQLAlchemyLinkStore(engine)

        if backend == StoreBackend.MEMORY:
            logger.info("In-memory link store initialized")
            return InMemoryLinkStore()

        raise ValueError(f"Unknown store backend: {backend}")
