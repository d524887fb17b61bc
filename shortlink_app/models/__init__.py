"""
Database models for the link shortener.

Links and their click events live in the same database: the click table is
small per row and the top-referrers aggregate reads it directly.
"""

from .link import Link
from .click_event import ClickEvent
from .allocation_lock import ALLOCATION_LOCK_ID, AllocationLock

__all__ = ["Link", "ClickEvent", "AllocationLock", "ALLOCATION_LOCK_ID"]
