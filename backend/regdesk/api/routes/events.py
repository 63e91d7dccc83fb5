"""
Event endpoints: creation, seat limits, occupancy and queue number preview.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from regdesk.core.security import Caller, get_optional_caller, require_admin
from regdesk.db.session import commit_or_raise, get_db
from regdesk.schemas.event import (
    EventCreate,
    EventListResponse,
    EventResponse,
    MaxSeatsUpdate,
    NextQueueNumberResponse,
    OccupancyResponse,
)
from regdesk.schemas.registration import PREFIX_PATTERN
from regdesk.services.capacity_guard import get_occupancy
from regdesk.services.event_service import create_event, get_event, list_events, update_max_seats
from regdesk.services.queue_allocator import peek_next

router = APIRouter(prefix="/events", tags=["Events"])


@router.post("", response_model=EventResponse, status_code=status.HTTP_201_CREATED)
async def create_event_endpoint(
    event_data: EventCreate,
    caller: Caller = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Create a new event. Admin only."""
    event = await create_event(db, event_data, caller.id)
    await commit_or_raise(db, "create_event")
    return event


@router.get("", response_model=EventListResponse)
async def list_events_endpoint(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    include_drafts: bool = Query(False),
    caller: Optional[Caller] = Depends(get_optional_caller),
    db: AsyncSession = Depends(get_db),
):
    """List events with pagination. Drafts are only listed for admins."""
    drafts = include_drafts and caller is not None and caller.is_admin
    events, total = await list_events(db, page, page_size, drafts)
    return EventListResponse(
        events=[EventResponse.model_validate(e) for e in events],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/{event_id}", response_model=EventResponse)
async def get_event_endpoint(event_id: str, db: AsyncSession = Depends(get_db)):
    return await get_event(db, event_id)


@router.patch("/{event_id}/max-seats", response_model=EventResponse)
async def update_max_seats_endpoint(
    event_id: str,
    body: MaxSeatsUpdate,
    caller: Caller = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Change the seat limit; applies to the next registration."""
    event = await update_max_seats(db, event_id, body.max_seats)
    await commit_or_raise(db, "update_max_seats")
    return event


@router.get("/{event_id}/occupancy", response_model=OccupancyResponse)
async def occupancy_endpoint(event_id: str, db: AsyncSession = Depends(get_db)):
    event = await get_event(db, event_id)
    occupancy = await get_occupancy(db, event)
    return OccupancyResponse(
        event_id=event_id,
        max_seats=occupancy.max_seats,
        total=occupancy.total,
        active=occupancy.active,
        attended=occupancy.attended,
        cancelled=occupancy.cancelled,
        available=occupancy.available,
    )


@router.get("/{event_id}/queue-numbers/next", response_model=NextQueueNumberResponse)
async def next_queue_number_endpoint(
    event_id: str,
    prefix: str = Query("", pattern=PREFIX_PATTERN),
    db: AsyncSession = Depends(get_db),
):
    """Preview only; the number is not reserved."""
    await get_event(db, event_id)
    next_number = await peek_next(db, event_id, prefix)
    return NextQueueNumberResponse(event_id=event_id, prefix=prefix, next_queue_number=next_number)
