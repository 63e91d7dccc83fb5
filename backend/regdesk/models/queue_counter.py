"""
Per-(event, prefix) queue number counter.

One row per allocation channel. Only ever incremented, through a single
upsert statement, so numbers are never reused after cancellation or deletion.
"""

from sqlalchemy import CheckConstraint, Column, ForeignKey, Integer, String

from regdesk.db.base import Base


class QueueCounter(Base):
    __tablename__ = "queue_counters"

    event_id = Column(String(32), ForeignKey("events.id", ondelete="CASCADE"), primary_key=True)
    prefix = Column(String(8), primary_key=True, default="")
    last_number = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        CheckConstraint("last_number >= 0", name="check_last_number_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<QueueCounter(event={self.event_id}, prefix={self.prefix!r}, last={self.last_number})>"
