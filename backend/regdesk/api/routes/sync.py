"""
Polling snapshots for the admin console and the participant page.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from regdesk.db.session import get_db
from regdesk.schemas.sync import EventSyncResponse, LookupSyncResponse
from regdesk.services.sync_service import build_event_snapshot, build_lookup_snapshot

router = APIRouter(prefix="/sync", tags=["Sync"])


@router.get("/events/{event_id}", response_model=EventSyncResponse)
async def event_snapshot_endpoint(
    event_id: str,
    scanner_active: bool = Query(False),
    db: AsyncSession = Depends(get_db),
):
    """State-only rows plus occupancy; the suggested poll interval follows the scanner state."""
    return await build_event_snapshot(db, event_id, scanner_active)


@router.get("/lookup", response_model=LookupSyncResponse)
async def lookup_snapshot_endpoint(
    phone: str = Query(..., min_length=1, max_length=32),
    event_id: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    return await build_lookup_snapshot(db, phone, event_id)
