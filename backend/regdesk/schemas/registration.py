"""
Pydantic schemas for registrations, attendance and check-in.

Answer fields are schema-described triples rather than fixed columns: the
set of questions (name, phone, postal code, custom ones) varies per event.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field, field_validator, model_validator

PREFIX_PATTERN = r"^[A-Za-z]{0,8}$"


class FieldValue(BaseModel):
    id: str = Field(..., min_length=1, max_length=64)
    label: str = Field(..., min_length=1, max_length=255)
    type: str = Field("text", max_length=32)
    value: str = Field("", max_length=1000)


class GroupCreate(BaseModel):
    fields: list[FieldValue] = Field(..., min_length=1)

    @field_validator("fields")
    @classmethod
    def require_name(cls, fields: list[FieldValue]) -> list[FieldValue]:
        if not any(f.type == "name" or "name" in f.label.lower() for f in fields):
            raise ValueError("each participant needs a name field")
        return fields


class OrderCreate(BaseModel):
    event_id: str = Field(..., min_length=1, max_length=32)
    groups: list[GroupCreate] = Field(..., min_length=1, max_length=50)
    prefix: str = Field("", pattern=PREFIX_PATTERN)


class GroupResponse(BaseModel):
    order_id: str
    group_id: str
    event_id: str
    queue_number: str
    fields: list[FieldValue]
    attendance: bool
    cancelled: bool
    qr_code: Optional[str] = None
    last_updated: datetime
    duplicate_phone: bool = False


class OrderResponse(BaseModel):
    id: str
    event_id: str
    buyer_id: Optional[str]
    created_at: datetime
    groups: list[GroupResponse]


class GroupTarget(BaseModel):
    """Either (event_id, queue_number) or (order_id, group_id)."""

    event_id: Optional[str] = None
    queue_number: Optional[str] = None
    order_id: Optional[str] = None
    group_id: Optional[str] = None

    @model_validator(mode="after")
    def check_identifiers(self):
        by_queue = bool(self.event_id and self.queue_number)
        by_group = bool(self.order_id and self.group_id)
        if not (by_queue or by_group):
            raise ValueError("provide event_id and queue_number, or order_id and group_id")
        return self


class AttendanceUpdate(GroupTarget):
    attended: bool


class BatchAttendanceRequest(BaseModel):
    items: list[AttendanceUpdate] = Field(..., min_length=1, max_length=500)


class BatchItemResult(BaseModel):
    index: int
    ok: bool
    queue_number: Optional[str] = None
    attendance: Optional[bool] = None
    code: Optional[str] = None
    message: Optional[str] = None
    message_zh: Optional[str] = None


class BatchAttendanceResponse(BaseModel):
    results: list[BatchItemResult]
    succeeded: int
    failed: int


class CancellationUpdate(BaseModel):
    event_id: str
    queue_number: Optional[str] = None
    order_id: Optional[str] = None
    group_id: Optional[str] = None
    cancelled: bool

    @model_validator(mode="after")
    def check_identifiers(self):
        if not self.queue_number and not (self.order_id and self.group_id):
            raise ValueError("provide queue_number, or order_id and group_id")
        return self


class FieldUpdate(BaseModel):
    value: str = Field(..., max_length=1000)


class DeletedGroupResponse(BaseModel):
    event_id: str
    queue_number: str
    order_id: str
    order_deleted: bool


class ScanRequest(BaseModel):
    event_id: str
    payload: str = Field(..., min_length=1, max_length=512)
    scanner_id: Optional[str] = Field(None, max_length=64)


class ScanResponse(BaseModel):
    status: str  # checked_in, already_marked, debounced
    event_id: str
    queue_number: Optional[str] = None
    name: Optional[str] = None
    group: Optional[GroupResponse] = None
