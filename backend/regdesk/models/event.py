"""
Event model with seat capacity.

Key design decisions:
- `max_seats` is the only capacity input; occupancy is always counted live
  from uncancelled participant groups, so an admin can change it mid-window
- String ids (uuid hex) never contain "_", the credential segment separator
"""

import uuid

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Index, Integer, String

from regdesk.db.base import Base, TimestampMixin


def new_id() -> str:
    return uuid.uuid4().hex


class Event(Base, TimestampMixin):
    __tablename__ = "events"

    id = Column(String(32), primary_key=True, default=new_id)
    title = Column(String(255), nullable=False)
    description = Column(String(1000), nullable=True)
    location = Column(String(255), nullable=True)
    start_datetime = Column(DateTime(timezone=True), nullable=True)
    end_datetime = Column(DateTime(timezone=True), nullable=True)
    max_seats = Column(Integer, nullable=False)
    is_draft = Column(Boolean, nullable=False, default=True)
    organizer_id = Column(String(64), nullable=True, index=True)

    __table_args__ = (
        CheckConstraint("max_seats > 0", name="check_max_seats_positive"),
        Index("ix_events_start_datetime", "start_datetime"),
    )

    def __repr__(self) -> str:
        return f"<Event(id={self.id}, title={self.title}, max_seats={self.max_seats})>"
