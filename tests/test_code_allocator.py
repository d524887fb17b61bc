"""
Tests for the code allocator: ordering, uniqueness under concurrency, failures.
"""

from concurrent.futures import ThreadPoolExecutor
from unittest.mock import patch

import pytest
from sqlalchemy import delete, event, select
from sqlalchemy.dialects import mysql, postgresql
from sqlalchemy.exc import OperationalError

from shortlink_app.database.connection import create_db_engine
from shortlink_app.errors import AllocationFailure, StoreError
from shortlink_app.models import ALLOCATION_LOCK_ID, AllocationLock, Link
from shortlink_app.services.code_allocator import CodeAllocator
from shortlink_app.services.short_codes import SEED_CODE, successor
from shortlink_app.storage.strategies import ALLOCATION_LOCK_QUERY, SQLAlchemyLinkStore


def first_codes(count: int) -> list:
    codes = [SEED_CODE]
    while len(codes) < count:
        codes.append(successor(codes[-1]))
    return codes


class TestSequentialAllocation:
    """Single-threaded allocation (runs against both store backends)"""

    def test_first_three_allocations(self, allocator):
        ids = [allocator.allocate(f"https://example.com/{n}").id for n in range(3)]

        assert ids == ["0000", "0001", "0002"]

    def test_new_link_has_zero_clicks_and_timestamps(self, allocator, store):
        link = allocator.allocate("https://example.com/")

        assert link.url == "https://example.com/"
        assert link.click_count == 0
        assert link.created_at is not None
        assert link.updated_at is not None
        assert store.find_link_by_id(link.id) == link

    def test_crosses_digit_to_letter_boundary(self, allocator):
        ids = [allocator.allocate("https://example.com/").id for _ in range(12)]

        assert ids[9] == "0009"
        assert ids[10] == "000a"
        assert ids[11] == "000b"

    def test_same_url_gets_new_code_each_time(self, allocator):
        first = allocator.allocate("https://example.com/")
        second = allocator.allocate("https://example.com/")

        assert first.id != second.id
        assert first.url == second.url


class TestConcurrentAllocation:
    """Concurrent creation requests are totally ordered"""

    def test_concurrent_allocations_have_no_duplicates_or_gaps(self, allocator, store):
        count = 60
        urls = [f"https://example.com/page/{n}" for n in range(count)]

        with ThreadPoolExecutor(max_workers=8) as pool:
            links = list(pool.map(allocator.allocate, urls))

        ids = [link.id for link in links]
        assert len(set(ids)) == count
        assert set(ids) == set(first_codes(count))

        # Allocation order is exactly the successor chain
        assert [link.id for link in store.list_links()] == first_codes(count)

    def test_each_url_is_kept_with_its_own_code(self, allocator, store):
        urls = [f"https://example.com/{n}" for n in range(20)]

        with ThreadPoolExecutor(max_workers=5) as pool:
            links = list(pool.map(allocator.allocate, urls))

        for link in links:
            assert store.find_link_by_id(link.id).url == link.url
        assert sorted(link.url for link in links) == sorted(urls)

    def test_two_allocators_on_one_store_do_not_collide(self, sql_store):
        """Separate allocator instances only share the store-level lock"""
        allocators = [CodeAllocator(sql_store), CodeAllocator(sql_store)]

        def allocate(n):
            return allocators[n % 2].allocate(f"https://example.com/{n}").id

        with ThreadPoolExecutor(max_workers=4) as pool:
            ids = list(pool.map(allocate, range(30)))

        assert len(set(ids)) == 30


class TestAllocationOrderingInStore:
    """The "highest link" read follows allocation order, not string order"""

    def _seed(self, sql_store, link_id):
        with sql_store.session_factory.begin() as session:
            session.add(Link(id=link_id, url="https://seed.example/", allocation_seq=0))

    def test_lowercase_z_is_followed_by_uppercase_a(self, sql_store):
        self._seed(sql_store, "000z")
        allocator = CodeAllocator(sql_store)

        assert allocator.allocate("https://example.com/1").id == "000A"
        # 'A' sorts before 'z' in the database, the allocator must not care
        assert allocator.allocate("https://example.com/2").id == "000B"

    def test_full_carry_grows_code_length(self, sql_store):
        self._seed(sql_store, "ZZZZ")
        allocator = CodeAllocator(sql_store)

        assert allocator.allocate("https://example.com/1").id == "00000"
        assert allocator.allocate("https://example.com/2").id == "00001"


class TestAllocationFailure:
    """Failures leave no partial state and consume no code"""

    def test_insert_failure_raises_allocation_failure(self, sql_store):
        allocator = CodeAllocator(sql_store)
        error = OperationalError("INSERT INTO links", {}, Exception("disk I/O error"))

        with patch(
            "shortlink_app.storage.strategies._SQLAlchemyAllocationScope.insert_link",
            side_effect=error,
        ):
            with pytest.raises(AllocationFailure):
                allocator.allocate("https://example.com/")

        assert sql_store.list_links() == []
        # The code was not consumed
        assert allocator.allocate("https://example.com/").id == "0000"

    def test_locked_read_failure_raises_allocation_failure(self, sql_store):
        allocator = CodeAllocator(sql_store)
        error = OperationalError("SELECT", {}, Exception("database is locked"))

        with patch(
            "shortlink_app.storage.strategies._SQLAlchemyAllocationScope.locked_read_max_link",
            side_effect=error,
        ):
            with pytest.raises(AllocationFailure):
                allocator.allocate("https://example.com/")

        assert sql_store.list_links() == []

    def test_store_error_from_scope_is_wrapped(self, store):
        allocator = CodeAllocator(store)

        with patch.object(store, "allocation_scope", side_effect=StoreError("connection lost")):
            with pytest.raises(AllocationFailure) as exc_info:
                allocator.allocate("https://example.com/")

        assert isinstance(exc_info.value.__cause__, StoreError)

    def test_stored_code_outside_alphabet_raises_allocation_failure(self, sql_store):
        with sql_store.session_factory.begin() as session:
            session.add(Link(id="ab-c", url="https://seed.example/", allocation_seq=0))
        allocator = CodeAllocator(sql_store)

        with pytest.raises(AllocationFailure) as exc_info:
            allocator.allocate("https://example.com/")

        assert isinstance(exc_info.value.__cause__, ValueError)
        assert [link.id for link in sql_store.list_links()] == ["ab-c"]
        assert not allocator._lock.locked()

    def test_lock_is_released_after_failure(self, sql_store):
        allocator = CodeAllocator(sql_store)

        with patch.object(sql_store, "allocation_scope", side_effect=StoreError("boom")):
            with pytest.raises(AllocationFailure):
                allocator.allocate("https://example.com/")

        assert not allocator._lock.locked()
        assert allocator.allocate("https://example.com/").id == "0000"


class TestAllocationLock:
    """Allocations are serialized by the database, not only by the process"""

    def test_lock_row_is_created_once(self, sql_store):
        sql_store.create_schema()

        with sql_store.session_factory() as session:
            assert [row.id for row in session.scalars(select(AllocationLock))] == [ALLOCATION_LOCK_ID]

    def test_lock_row_is_taken_before_the_highest_link_is_read(self, sql_store):
        statements = []

        def capture(conn, cursor, statement, parameters, context, executemany):
            statements.append(statement)

        event.listen(sql_store.engine, "before_cursor_execute", capture)
        try:
            CodeAllocator(sql_store).allocate("https://example.com/")
        finally:
            event.remove(sql_store.engine, "before_cursor_execute", capture)

        selects = [statement for statement in statements if statement.lstrip().upper().startswith("SELECT")]
        assert "allocation_lock" in selects[0]
        assert "links" in selects[1]

    def test_lock_query_is_a_row_lock_on_server_databases(self):
        for dialect in (postgresql.dialect(), mysql.dialect()):
            assert "FOR UPDATE" in str(ALLOCATION_LOCK_QUERY.compile(dialect=dialect))

    def test_missing_lock_row_fails_allocation(self, sql_store):
        with sql_store.session_factory.begin() as session:
            session.execute(delete(AllocationLock))

        with pytest.raises(AllocationFailure):
            CodeAllocator(sql_store).allocate("https://example.com/")

        assert sql_store.list_links() == []

    def test_separate_engines_on_one_database_do_not_collide(self, sql_store, settings):
        """Each store stands in for another process with its own connection pool"""
        other_store = SQLAlchemyLinkStore(create_db_engine(settings.database_url))
        allocators = [CodeAllocator(sql_store), CodeAllocator(other_store)]

        def allocate(n):
            return allocators[n % 2].allocate(f"https://example.com/{n}").id

        try:
            with ThreadPoolExecutor(max_workers=4) as pool:
                ids = list(pool.map(allocate, range(30)))
        finally:
            other_store.close()

        assert sorted(ids) == sorted(first_codes(30))
