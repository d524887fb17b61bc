"""
Link store strategies using Strategy Pattern.

The store is the durable record-keeper for links and click events. The services
only see the LinkStore interface; two backends implement it:

- SQLAlchemyLinkStore: any SQLAlchemy database (SQLite by default)
- InMemoryLinkStore: thread-safe dicts, for development and tests

All I/O failures surface as StoreError. Retrying is the caller's business.
"""

import itertools
import threading
from abc import ABC, abstractmethod
from collections import Counter
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Dict, Iterator, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from shortlink_app.database.connection import Base, create_session_factory
from shortlink_app.errors import StoreError
from shortlink_app.models import ALLOCATION_LOCK_ID, AllocationLock, ClickEvent, Link
from shortlink_app.schemas.link import LinkSnapshot, RefererCount

COUNTER_FIELDS = frozenset({"click_count"})

ALLOCATION_LOCK_QUERY = (
    select(AllocationLock.id)
    .where(AllocationLock.id == ALLOCATION_LOCK_ID)
    .with_for_update()
)


class AllocationScope(ABC):
    """
    Exclusive read-then-insert unit used by the code allocator.

    Obtained from ``LinkStore.allocation_scope()``. The exclusive lock taken by
    ``locked_read_max_link`` is held until the scope exits, and the insert
    becomes visible only when the scope exits cleanly.
    """

    @abstractmethod
    def locked_read_max_link(self) -> Optional[LinkSnapshot]:
        """
        Read the most recently allocated link under an exclusive lock.

        Returns:
            Snapshot of the highest link, or None if no link exists yet
        """
        pass

    @abstractmethod
    def insert_link(self, link_id: str, url: str) -> LinkSnapshot:
        """
        Insert a new link with click_count = 0.

        Must be called after ``locked_read_max_link`` in the same scope.

        Args:
            link_id: The short code to register
            url: Target URL

        Returns:
            Snapshot of the inserted link (timestamps populated)
        """
        pass


class LinkStore(ABC):
    """
    Abstract base class for link stores.

    This is the Strategy Pattern interface: the allocator, the link service and
    the click recorder work against it without knowing the backend.
    """

    def create_schema(self) -> None:
        """Create tables if the backend needs them"""
        pass

    def close(self) -> None:
        """Release connections held by the backend"""
        pass

    @abstractmethod
    def allocation_scope(self):
        """
        Context manager yielding an AllocationScope.

        Commits on clean exit, rolls back if the body raises.

        Raises:
            StoreError: if the lock, the read, the insert or the commit fails
        """
        pass

    @abstractmethod
    def find_link_by_id(self, link_id: str) -> Optional[LinkSnapshot]:
        """Get a link by its short code, or None if it is not registered"""
        pass

    @abstractmethod
    def list_links(self) -> List[LinkSnapshot]:
        """Get all links in allocation order"""
        pass

    @abstractmethod
    def insert_click_event(self, link_id: str, referer: str) -> int:
        """
        Persist one click event.

        Returns:
            The store-assigned event id
        """
        pass

    @abstractmethod
    def atomic_increment(
        self,
        link_id: str,
        field: str = "click_count",
        event_id: Optional[int] = None
    ) -> bool:
        """
        Add 1 to a counter column, evaluated by the store.

        When ``event_id`` is given the increment is applied at most once per
        event: the event is marked counted in the same transaction, and a
        second call for the same event does nothing.

        Args:
            link_id: Link whose counter is incremented
            field: Counter column name (only "click_count" today)
            event_id: Click event this increment accounts for

        Returns:
            True if the counter changed, False if the event was already counted
            or the link does not exist
        """
        pass

    @abstractmethod
    def aggregate_count_by_referer(self, limit: Optional[int] = None) -> List[RefererCount]:
        """
        Count click events grouped by referer.

        Ordered by count descending, then referer ascending so equal counts
        come back in a stable order.
        """
        pass


def _check_counter_field(field: str) -> None:
    if field not in COUNTER_FIELDS:
        raise ValueError(f"Unknown counter field: {field}")


class _SQLAlchemyAllocationScope(AllocationScope):

    def __init__(self, session: Session):
        self.session = session
        self._next_seq: Optional[int] = None

    def locked_read_max_link(self) -> Optional[LinkSnapshot]:
        # The scope already holds the allocation lock row, so this sees every
        # committed allocation.
        stmt = (
            select(Link)
            .order_by(Link.allocation_seq.desc())
            .limit(1)
            .with_for_update()
        )
        link = self.session.scalars(stmt).first()
        self._next_seq = 0 if link is None else link.allocation_seq + 1
        return LinkSnapshot.model_validate(link) if link is not None else None

    def insert_link(self, link_id: str, url: str) -> LinkSnapshot:
        if self._next_seq is None:
            raise RuntimeError("locked_read_max_link() must be called before insert_link()")

        link = Link(id=link_id, url=url, click_count=0, allocation_seq=self._next_seq)
        self.session.add(link)
        self.session.flush()
        return LinkSnapshot.model_validate(link)


class SQLAlchemyLinkStore(LinkStore):
    """
    SQLAlchemy implementation of the link store.

    Pros:
    - Durable, shared between processes
    - Works with SQLite out of the box, PostgreSQL/MySQL in production
    - Row locks and atomic UPDATE expressions come from the database
    - Allocations are serialized across processes: BEGIN IMMEDIATE on SQLite,
      a FOR UPDATE lock on the allocation_lock row elsewhere (PostgreSQL at
      READ COMMITTED, MySQL/InnoDB)

    Cons:
    - Every cache miss and every click costs a round-trip
    - SQLite serializes all writers on one file lock
    """

    def __init__(self, engine: Engine):
        """
        Initialize the store.

        Args:
            engine: Engine from ``create_db_engine`` (owned by the store from now on)
        """
        self.engine = engine
        self.session_factory = create_session_factory(engine)

    def create_schema(self) -> None:
        """Create tables and the allocation lock row (idempotent)"""
        try:
            Base.metadata.create_all(bind=self.engine)
            with self.session_factory.begin() as session:
                if session.get(AllocationLock, ALLOCATION_LOCK_ID) is None:
                    session.add(AllocationLock(id=ALLOCATION_LOCK_ID))
        except IntegrityError:
            # Another process inserted the lock row first
            pass
        except SQLAlchemyError as e:
            raise StoreError(f"Could not create schema: {e}") from e

    def close(self) -> None:
        self.engine.dispose()

    @contextmanager
    def allocation_scope(self) -> Iterator[AllocationScope]:
        session = self.session_factory()
        try:
            # sqlite_immediate only matters on SQLite (see database.connection)
            session.connection(execution_options={"sqlite_immediate": True})
            # Blocks until any other allocation transaction ends
            if session.scalar(ALLOCATION_LOCK_QUERY) is None:
                raise StoreError("Allocation lock row is missing, run create_schema()")
            yield _SQLAlchemyAllocationScope(session)
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            raise StoreError(f"Allocation transaction failed: {e}") from e
        finally:
            # Also rolls back when the body raised something else
            session.close()

    def find_link_by_id(self, link_id: str) -> Optional[LinkSnapshot]:
        try:
            with self.session_factory() as session:
                link = session.get(Link, link_id)
                return LinkSnapshot.model_validate(link) if link is not None else None
        except SQLAlchemyError as e:
            raise StoreError(f"Could not read link {link_id}: {e}") from e

    def list_links(self) -> List[LinkSnapshot]:
        try:
            with self.session_factory() as session:
                links = session.scalars(select(Link).order_by(Link.allocation_seq)).all()
                return [LinkSnapshot.model_validate(link) for link in links]
        except SQLAlchemyError as e:
            raise StoreError(f"Could not list links: {e}") from e

    def insert_click_event(self, link_id: str, referer: str) -> int:
        try:
            with self.session_factory.begin() as session:
                event = ClickEvent(link_id=link_id, referer=referer)
                session.add(event)
                session.flush()
                event_id = event.id
            return event_id
        except SQLAlchemyError as e:
            raise StoreError(f"Could not record click for {link_id}: {e}") from e

    def atomic_increment(
        self,
        link_id: str,
        field: str = "click_count",
        event_id: Optional[int] = None
    ) -> bool:
        _check_counter_field(field)
        column = getattr(Link, field)
        no_sync = {"synchronize_session": False}

        try:
            with self.session_factory.begin() as session:
                if event_id is not None:
                    claimed = session.execute(
                        update(ClickEvent)
                        .where(ClickEvent.id == event_id, ClickEvent.counted.is_(False))
                        .values(counted=True),
                        execution_options=no_sync,
                    )
                    if claimed.rowcount == 0:
                        return False

                result = session.execute(
                    update(Link)
                    .where(Link.id == link_id)
                    .values({field: column + 1}),
                    execution_options=no_sync,
                )
                return result.rowcount > 0
        except SQLAlchemyError as e:
            raise StoreError(f"Could not increment {field} for {link_id}: {e}") from e

    def aggregate_count_by_referer(self, limit: Optional[int] = None) -> List[RefererCount]:
        clicks = func.count(ClickEvent.id).label("clicks")
        stmt = (
            select(ClickEvent.referer, clicks)
            .group_by(ClickEvent.referer)
            .order_by(clicks.desc(), ClickEvent.referer.asc())
        )
        if limit is not None:
            stmt = stmt.limit(limit)

        try:
            with self.session_factory() as session:
                rows = session.execute(stmt).all()
        except SQLAlchemyError as e:
            raise StoreError(f"Could not aggregate referers: {e}") from e

        return [RefererCount(referer=referer, count=count) for referer, count in rows]


class _InMemoryAllocationScope(AllocationScope):

    def __init__(self, store: "InMemoryLinkStore"):
        self.store = store
        self.pending: List[LinkSnapshot] = []
        self._read_done = False

    def locked_read_max_link(self) -> Optional[LinkSnapshot]:
        self._read_done = True
        return self.store._last_link()

    def insert_link(self, link_id: str, url: str) -> LinkSnapshot:
        if not self._read_done:
            raise RuntimeError("locked_read_max_link() must be called before insert_link()")
        if self.store.find_link_by_id(link_id) is not None:
            raise StoreError(f"Link {link_id} already exists")

        now = datetime.now(timezone.utc)
        link = LinkSnapshot(id=link_id, url=url, click_count=0, created_at=now, updated_at=now)
        self.pending.append(link)
        return link


class InMemoryLinkStore(LinkStore):
    """
    In-memory link store using Python dicts.

    Pros:
    - No database needed
    - Good for development and testing

    Cons:
    - Lost on restart
    - The allocation lock only covers this process

    Links are kept as frozen snapshots; an increment swaps in an updated copy.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._allocation_lock = threading.Lock()
        self._links: Dict[str, LinkSnapshot] = {}
        self._order: List[str] = []
        self._events: Dict[int, dict] = {}
        self._event_ids = itertools.count(1)

    def _last_link(self) -> Optional[LinkSnapshot]:
        with self._lock:
            return self._links[self._order[-1]] if self._order else None

    @contextmanager
    def allocation_scope(self) -> Iterator[AllocationScope]:
        with self._allocation_lock:
            scope = _InMemoryAllocationScope(self)
            yield scope
            with self._lock:
                for link in scope.pending:
                    self._links[link.id] = link
                    self._order.append(link.id)

    def find_link_by_id(self, link_id: str) -> Optional[LinkSnapshot]:
        with self._lock:
            return self._links.get(link_id)

    def list_links(self) -> List[LinkSnapshot]:
        with self._lock:
            return [self._links[link_id] for link_id in self._order]

    def insert_click_event(self, link_id: str, referer: str) -> int:
        with self._lock:
            if link_id not in self._links:
                raise StoreError(f"Could not record click: link {link_id} does not exist")
            event_id = next(self._event_ids)
            self._events[event_id] = {
                "link_id": link_id,
                "referer": referer,
                "timestamp": datetime.now(timezone.utc),
                "counted": False,
            }
            return event_id

    def atomic_increment(
        self,
        link_id: str,
        field: str = "click_count",
        event_id: Optional[int] = None
    ) -> bool:
        _check_counter_field(field)
        with self._lock:
            if event_id is not None:
                event = self._events.get(event_id)
                if event is None or event["counted"]:
                    return False
                event["counted"] = True

            link = self._links.get(link_id)
            if link is None:
                return False
            self._links[link_id] = link.model_copy(update={
                field: getattr(link, field) + 1,
                "updated_at": datetime.now(timezone.utc),
            })
            return True

    def aggregate_count_by_referer(self, limit: Optional[int] = None) -> List[RefererCount]:
        with self._lock:
            counts = Counter(event["referer"] for event in self._events.values())

        ordered = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
        if limit is not None:
            ordered = ordered[:limit]
        return [RefererCount(referer=referer, count=count) for referer, count in ordered]
