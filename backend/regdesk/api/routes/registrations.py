"""
Registration endpoints: orders, attendance, cancellation and admin edits.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from regdesk.api.presenters import (
    can_see_order,
    duplicate_phones,
    is_admin,
    present_group,
    present_order,
)
from regdesk.core.config import get_settings
from regdesk.core.exceptions import PermissionDenied
from regdesk.core.logging import get_logger
from regdesk.core.security import Caller, get_caller, get_optional_caller, require_admin
from regdesk.db.session import commit_or_raise, get_db
from regdesk.schemas.registration import (
    AttendanceUpdate,
    BatchAttendanceRequest,
    BatchAttendanceResponse,
    CancellationUpdate,
    DeletedGroupResponse,
    FieldUpdate,
    GroupResponse,
    OrderCreate,
    OrderResponse,
)
from regdesk.services.registration_service import (
    create_order,
    delete_group,
    get_order,
    list_by_event,
    list_by_phone,
    mark_attendance,
    mark_attendance_batch,
    set_cancelled,
    update_field,
)
from regdesk.services.event_service import get_event

logger = get_logger(__name__)
settings = get_settings()
router = APIRouter(prefix="/registrations", tags=["Registrations"])


@router.post("", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
async def create_order_endpoint(
    body: OrderCreate,
    caller: Optional[Caller] = Depends(get_optional_caller),
    db: AsyncSession = Depends(get_db),
):
    """
    Register one or more participants.

    Capacity is checked for the whole order; on CapacityExceeded nothing is
    written and no queue number is consumed. Only admins may draw from a
    series other than the default one.
    """
    prefix = body.prefix or settings.DEFAULT_QUEUE_PREFIX
    if prefix != settings.DEFAULT_QUEUE_PREFIX and not is_admin(caller):
        raise PermissionDenied(detail="Only admins can choose the queue number series")

    order = await create_order(
        db,
        body.event_id,
        body.groups,
        buyer_id=caller.id if caller else None,
        prefix=prefix,
    )
    await commit_or_raise(db, "create_order")
    return present_order(order, reveal_pii=True)


@router.post("/upload", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
async def upload_order_endpoint(
    body: OrderCreate,
    caller: Caller = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Admin bulk entry; numbered from the upload series (U001, U002, ...)."""
    order = await create_order(
        db,
        body.event_id,
        body.groups,
        buyer_id=caller.id,
        prefix=body.prefix or settings.UPLOAD_QUEUE_PREFIX,
    )
    await commit_or_raise(db, "upload_order")
    return present_order(order, reveal_pii=True)


@router.get("/orders/{order_id}", response_model=OrderResponse)
async def get_order_endpoint(
    order_id: str,
    caller: Optional[Caller] = Depends(get_optional_caller),
    db: AsyncSession = Depends(get_db),
):
    order = await get_order(db, order_id)
    return present_order(order, reveal_pii=can_see_order(order, caller))


@router.get("/events/{event_id}", response_model=list[GroupResponse])
async def list_event_registrations_endpoint(
    event_id: str,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    """
    Admin console list, ordered by queue number. Non-admins get masked
    answers and no QR codes.
    """
    await get_event(db, event_id)
    groups = await list_by_event(db, event_id)
    admin = is_admin(caller)
    duplicates = duplicate_phones(groups) if admin else None
    return [present_group(g, reveal_pii=admin, duplicates=duplicates) for g in groups]


@router.get("/lookup", response_model=list[GroupResponse])
async def lookup_endpoint(
    phone: str = Query(..., min_length=1, max_length=32),
    caller: Optional[Caller] = Depends(get_optional_caller),
    db: AsyncSession = Depends(get_db),
):
    """
    Participant self-service: every registration under one phone number,
    with QR codes, since the phone number is the credential's identity fact.
    """
    groups = await list_by_phone(db, phone)
    return [present_group(g, reveal_pii=is_admin(caller), include_credential=True) for g in groups]


@router.post("/attendance", response_model=GroupResponse)
async def mark_attendance_endpoint(
    body: AttendanceUpdate,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    group = await mark_attendance(
        db,
        body.attended,
        event_id=body.event_id,
        queue_number=body.queue_number,
        order_id=body.order_id,
        group_id=body.group_id,
    )
    await commit_or_raise(db, "mark_attendance")
    return present_group(group, reveal_pii=caller.is_admin)


@router.post("/attendance/batch", response_model=BatchAttendanceResponse)
async def mark_attendance_batch_endpoint(
    body: BatchAttendanceRequest,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    """Per-item results; one conflicting item does not undo the others."""
    results = await mark_attendance_batch(db, body.items)
    await commit_or_raise(db, "mark_attendance_batch")
    succeeded = sum(1 for r in results if r.ok)
    return BatchAttendanceResponse(
        results=results,
        succeeded=succeeded,
        failed=len(results) - succeeded,
    )


@router.post("/cancellation", response_model=GroupResponse)
async def cancellation_endpoint(
    body: CancellationUpdate,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    """
    Cancel or restore. Cancelling also clears attendance. Participants may
    only change registrations from their own orders.
    """
    group = await set_cancelled(
        db,
        body.event_id,
        body.cancelled,
        queue_number=body.queue_number,
        order_id=body.order_id,
        group_id=body.group_id,
        buyer_id=None if caller.is_admin else caller.id,
    )
    await commit_or_raise(db, "set_cancelled")
    return present_group(group, reveal_pii=True)


@router.delete("/events/{event_id}/{queue_number}", response_model=DeletedGroupResponse)
async def delete_registration_endpoint(
    event_id: str,
    queue_number: str,
    caller: Caller = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Irreversible. The queue number is never reissued."""
    deleted = await delete_group(db, event_id, queue_number)
    await commit_or_raise(db, "delete_group")
    logger.info("registration_deleted_by_admin", admin_id=caller.id, queue_number=queue_number)
    return DeletedGroupResponse(
        event_id=deleted.event_id,
        queue_number=deleted.queue_number,
        order_id=deleted.order_id,
        order_deleted=deleted.order_deleted,
    )


@router.patch(
    "/orders/{order_id}/groups/{group_id}/fields/{field_id}",
    response_model=GroupResponse,
)
async def update_field_endpoint(
    order_id: str,
    group_id: str,
    field_id: str,
    body: FieldUpdate,
    caller: Caller = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    group = await update_field(db, order_id, group_id, field_id, body.value)
    await commit_or_raise(db, "update_field")
    return present_group(group, reveal_pii=True)
