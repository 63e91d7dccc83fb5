from regdesk.schemas.event import (
    EventCreate, EventResponse, EventListResponse, MaxSeatsUpdate,
    OccupancyResponse, NextQueueNumberResponse,
)
from regdesk.schemas.registration import (
    FieldValue, GroupCreate, OrderCreate, GroupResponse, OrderResponse,
    AttendanceUpdate, BatchAttendanceRequest, BatchAttendanceResponse, BatchItemResult,
    CancellationUpdate, FieldUpdate, DeletedGroupResponse, ScanRequest, ScanResponse,
)
from regdesk.schemas.sync import SyncRow, EventSyncResponse, LookupSyncResponse

__all__ = [
    "EventCreate", "EventResponse", "EventListResponse", "MaxSeatsUpdate",
    "OccupancyResponse", "NextQueueNumberResponse",
    "FieldValue", "GroupCreate", "OrderCreate", "GroupResponse", "OrderResponse",
    "AttendanceUpdate", "BatchAttendanceRequest", "BatchAttendanceResponse", "BatchItemResult",
    "CancellationUpdate", "FieldUpdate", "DeletedGroupResponse", "ScanRequest", "ScanResponse",
    "SyncRow", "EventSyncResponse", "LookupSyncResponse",
]
