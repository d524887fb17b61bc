from datetime import datetime, timezone

from sqlalchemy import BigInteger, Column, DateTime, Integer, String
from sqlalchemy.orm import relationship

from shortlink_app.database.connection import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Link(Base):
    """
    One shortened URL.

    ``id`` is the short code itself. ``allocation_seq`` records allocation order;
    the "highest link" read during allocation orders by it instead of by ``id``,
    because database string collation puts 'Z' before 'a' while the code
    alphabet does the opposite.

    Timestamps use Python-side defaults so they are populated on flush and the
    store can snapshot a new row without a refresh round-trip.
    """
    __tablename__ = "links"

    id = Column(String(16), primary_key=True, index=True)
    url = Column(String(2048), nullable=False, index=True)
    click_count = Column(Integer, nullable=False, default=0, index=True)
    allocation_seq = Column(BigInteger, nullable=False, unique=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    click_events = relationship(
        "ClickEvent",
        back_populates="link",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self):
        return f"<Link {self.id} -> {self.url} ({self.click_count} clicks)>"
