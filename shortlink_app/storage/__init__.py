"""
Link store module.

Implements the Strategy Pattern for the durable record-keeper of links and
click events.
"""

from .strategies import AllocationScope, LinkStore, SQLAlchemyLinkStore, InMemoryLinkStore
from .factory import StoreFactory, StoreBackend

__all__ = [
    "AllocationScope",
    "LinkStore",
    "SQLAlchemyLinkStore",
    "InMemoryLinkStore",
    "StoreFactory",
    "StoreBackend",
]
