"""
Order and participant group models.

Key design decisions:
- One order registers one or more people; each person is a ParticipantGroup,
  the unit of check-in
- Unique constraint on (event_id, queue_number) is the store-level backstop
  against double allocation and overbooking
- Check constraint keeps a cancelled group from ever being marked present
- `identity_fact` freezes the phone number the credential was derived from;
  `phone_number` follows field edits and serves the participant lookup
"""

from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from regdesk.db.base import Base, TimestampMixin
from regdesk.models.event import new_id


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Order(Base, TimestampMixin):
    __tablename__ = "orders"

    id = Column(String(32), primary_key=True, default=new_id)
    event_id = Column(String(32), ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    buyer_id = Column(String(64), nullable=True, index=True)

    groups = relationship(
        "ParticipantGroup",
        back_populates="order",
        lazy="selectin",
        order_by="ParticipantGroup.position",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Order(id={self.id}, event={self.event_id}, groups={len(self.groups)})>"


class ParticipantGroup(Base):
    __tablename__ = "participant_groups"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String(32), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    group_id = Column(String(32), nullable=False)
    position = Column(Integer, nullable=False, default=0)
    event_id = Column(String(32), ForeignKey("events.id", ondelete="CASCADE"), nullable=False)
    queue_number = Column(String(16), nullable=False)
    fields = Column(JSON, nullable=False, default=list)
    phone_number = Column(String(32), nullable=False, default="", index=True)
    identity_fact = Column(String(64), nullable=False, default="")
    attendance = Column(Boolean, nullable=False, default=False)
    cancelled = Column(Boolean, nullable=False, default=False)
    qr_code = Column(Text, nullable=False)
    last_updated = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    order = relationship("Order", back_populates="groups")

    __table_args__ = (
        UniqueConstraint("event_id", "queue_number", name="uq_group_event_queue_number"),
        UniqueConstraint("order_id", "group_id", name="uq_group_order_group_id"),
        CheckConstraint("NOT (cancelled AND attendance)", name="check_cancelled_not_attended"),
        # Capacity count: WHERE event_id = ? AND cancelled = false
        Index("ix_groups_event_cancelled", "event_id", "cancelled"),
    )

    def __repr__(self) -> str:
        return (
            f"<ParticipantGroup(event={self.event_id}, queue={self.queue_number}, "
            f"attendance={self.attendance}, cancelled={self.cancelled})>"
        )
