"""
Pydantic schemas for reconciliation polling snapshots.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel

from regdesk.schemas.event import OccupancyResponse


class SyncRow(BaseModel):
    order_id: str
    group_id: str
    event_id: str
    queue_number: str
    attendance: bool
    cancelled: bool
    last_updated: datetime


class EventSyncResponse(BaseModel):
    event_id: str
    rows: list[SyncRow]
    occupancy: OccupancyResponse
    server_time: datetime
    poll_interval_seconds: float


class LookupSyncResponse(BaseModel):
    phone_number: str
    rows: list[SyncRow]
    server_time: datetime
    poll_interval_seconds: float
    event_id: Optional[str] = None
