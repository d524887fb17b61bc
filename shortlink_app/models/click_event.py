from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from shortlink_app.database.connection import Base
from shortlink_app.models.link import utcnow


class ClickEvent(Base):
    """
    One redirect traversal.

    ``counted`` flips to True exactly once, in the same transaction that adds
    this click to ``Link.click_count``. A redelivered increment job finds it
    already set and changes nothing.
    """
    __tablename__ = "click_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    link_id = Column(String(16), ForeignKey("links.id", ondelete="CASCADE"), nullable=False, index=True)
    referer = Column(String(2048), nullable=False, default="", index=True)
    timestamp = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    counted = Column(Boolean, nullable=False, default=False)

    link = relationship("Link", back_populates="click_events")

    def __repr__(self):
        return f"<ClickEvent {self.id} for link {self.link_id}>"
