"""
Event service handling event CRUD and seat-count changes.
"""

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from regdesk.core.exceptions import NotFound
from regdesk.models.event import Event
from regdesk.schemas.event import EventCreate
from regdesk.core.logging import get_logger
from regdesk.db.session import translate_store_errors

logger = get_logger(__name__)


async def create_event(db: AsyncSession, event_data: EventCreate, organizer_id: str) -> Event:
    event = Event(
        title=event_data.title,
        description=event_data.description,
        location=event_data.location,
        start_datetime=event_data.start_datetime,
        end_datetime=event_data.end_datetime,
        max_seats=event_data.max_seats,
        is_draft=event_data.is_draft,
        organizer_id=organizer_id,
    )
    async with translate_store_errors("create_event"):
        db.add(event)
        await db.flush()
        await db.refresh(event)

    logger.info("event_created", event_id=event.id, title=event.title, max_seats=event.max_seats)
    return event


async def get_event(db: AsyncSession, event_id: str) -> Event:
    """Get a single event by ID."""
    async with translate_store_errors("get_event"):
        result = await db.execute(select(Event).where(Event.id == event_id))
        event = result.scalar_one_or_none()

    if not event:
        raise NotFound(detail=f"Event {event_id} not found")
    return event


async def list_events(
    db: AsyncSession,
    page: int = 1,
    page_size: int = 20,
    include_drafts: bool = False,
) -> tuple[list[Event], int]:
    """List events with pagination, newest start first."""
    query = select(Event)
    if not include_drafts:
        query = query.where(Event.is_draft.is_(False))

    async with translate_store_errors("list_events"):
        count_query = select(func.count()).select_from(query.subquery())
        total = (await db.execute(count_query)).scalar()

        events_query = (
            query
            .order_by(Event.start_datetime.desc(), Event.created_at.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        result = await db.execute(events_query)
        events = list(result.scalars().all())

    return events, total


async def update_max_seats(db: AsyncSession, event_id: str, max_seats: int) -> Event:
    """
    Change the seat limit. Takes effect for the next reservation; existing
    registrations are left alone even if the event is now over capacity.
    """
    event = await get_event(db, event_id)
    previous = event.max_seats
    event.max_seats = max_seats

    async with translate_store_errors("update_max_seats"):
        await db.flush()
        await db.refresh(event)

    logger.info("max_seats_updated", event_id=event_id, previous=previous, max_seats=max_seats)
    return event
