"""
Seat capacity enforcement at registration time.

CAPACITY STRATEGY: Live count, best effort
==========================================

Occupancy is never stored; it is counted from uncancelled participant
groups every time. That lets an admin change `max_seats` in the middle of a
registration window (the next reservation sees the new value) and lets
cancellations free a seat without any bookkeeping.

The check-then-create sequence is not race-free: two requests can both
count 99/100 and both insert. Queue number uniqueness in the store keeps
such a race from ever producing duplicate or silently merged registrations;
a strictly capped event would need a conditional write in the store itself.

Lowering `max_seats` below current occupancy cancels nobody.
"""

from dataclasses import dataclass

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from regdesk.core.exceptions import CapacityExceeded
from regdesk.core.logging import get_logger
from regdesk.core.metrics import capacity_rejections
from regdesk.db.session import translate_store_errors
from regdesk.models.event import Event
from regdesk.models.order import ParticipantGroup

logger = get_logger(__name__)


@dataclass(frozen=True)
class CapacitySnapshot:
    event_id: str
    max_seats: int
    occupied: int
    requested: int

    @property
    def remaining_after(self) -> int:
        return self.max_seats - self.occupied - self.requested


@dataclass(frozen=True)
class Occupancy:
    event_id: str
    max_seats: int
    total: int
    active: int
    attended: int
    cancelled: int

    @property
    def available(self) -> int:
        return max(self.max_seats - self.active, 0)


async def count_occupied(db: AsyncSession, event_id: str) -> int:
    async with translate_store_errors("count_occupied"):
        result = await db.execute(
            select(func.count(ParticipantGroup.id)).where(
                ParticipantGroup.event_id == event_id,
                ParticipantGroup.cancelled.is_(False),
            )
        )
        return result.scalar_one()


async def reserve(db: AsyncSession, event: Event, requested_seats: int) -> CapacitySnapshot:
    """
    Check that `requested_seats` more people fit into the event.
    Raises CapacityExceeded otherwise; nothing is written either way.
    """
    if requested_seats < 1:
        raise ValueError("requested_seats must be at least 1")

    occupied = await count_occupied(db, event.id)
    snapshot = CapacitySnapshot(
        event_id=event.id,
        max_seats=event.max_seats,
        occupied=occupied,
        requested=requested_seats,
    )

    if occupied + requested_seats > event.max_seats:
        capacity_rejections.inc()
        logger.warning(
            "capacity_rejected",
            event_id=event.id,
            max_seats=event.max_seats,
            occupied=occupied,
            requested=requested_seats,
        )
        raise CapacityExceeded(
            detail=f"Requested {requested_seats}, available {max(event.max_seats - occupied, 0)}",
            max_seats=event.max_seats,
            occupied=occupied,
        )
    return snapshot


async def get_occupancy(db: AsyncSession, event: Event) -> Occupancy:
    """Total, active, attended and cancelled counts in one aggregate query."""
    async with translate_store_errors("get_occupancy"):
        result = await db.execute(
            select(
                func.count(ParticipantGroup.id),
                func.coalesce(func.sum(case((ParticipantGroup.cancelled.is_(True), 1), else_=0)), 0),
                func.coalesce(func.sum(case((ParticipantGroup.attendance.is_(True), 1), else_=0)), 0),
            ).where(ParticipantGroup.event_id == event.id)
        )
        total, cancelled, attended = result.one()

    return Occupancy(
        event_id=event.id,
        max_seats=event.max_seats,
        total=total,
        active=total - cancelled,
        attended=attended,
        cancelled=cancelled,
    )
