"""
Pydantic schemas for event-related request/response validation.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field, model_validator


class EventCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=1000)
    location: Optional[str] = Field(None, max_length=255)
    start_datetime: Optional[datetime] = None
    end_datetime: Optional[datetime] = None
    max_seats: int = Field(..., gt=0, le=100000)
    is_draft: bool = True

    @model_validator(mode="after")
    def check_time_window(self):
        if self.start_datetime and self.end_datetime and self.end_datetime < self.start_datetime:
            raise ValueError("end_datetime must not be before start_datetime")
        return self


class EventResponse(BaseModel):
    id: str
    title: str
    description: Optional[str]
    location: Optional[str]
    start_datetime: Optional[datetime]
    end_datetime: Optional[datetime]
    max_seats: int
    is_draft: bool
    organizer_id: Optional[str]
    created_at: datetime

    model_config = {"from_attributes": True}


class EventListResponse(BaseModel):
    events: list[EventResponse]
    total: int
    page: int
    page_size: int


class MaxSeatsUpdate(BaseModel):
    max_seats: int = Field(..., gt=0, le=100000)


class OccupancyResponse(BaseModel):
    event_id: str
    max_seats: int
    total: int
    active: int
    attended: int
    cancelled: int
    available: int


class NextQueueNumberResponse(BaseModel):
    event_id: str
    prefix: str
    next_queue_number: str
