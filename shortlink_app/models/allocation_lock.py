from sqlalchemy import Column, Integer

from shortlink_app.database.connection import Base

ALLOCATION_LOCK_ID = 1


class AllocationLock(Base):
    """
    Single-row table whose row lock serializes code allocation.

    Every allocation transaction locks row ``ALLOCATION_LOCK_ID`` with
    SELECT ... FOR UPDATE before reading the highest link. The row always
    exists (``create_schema`` inserts it), so even the first allocation on an
    empty ``links`` table waits for a concurrent one to commit, and the waiter
    then reads the link the other transaction inserted.
    """
    __tablename__ = "allocation_lock"

    id = Column(Integer, primary_key=True, autoincrement=False)

    def __repr__(self):
        return f"<AllocationLock {self.id}>"
