"""
Registration store: orders, participant groups and their state transitions.

STATE MACHINE (per participant group)
=====================================

    Active-NotAttended     --mark(true)-->    Active-Attended
    Active-Attended        --mark(false)-->   Active-NotAttended
    Active-*               --cancel(true)-->  Cancelled-NotAttended
    Cancelled-NotAttended  --cancel(false)--> Active-NotAttended
    *-NotAttended          --delete-->        removed

Writes are conditional UPDATEs rather than read-modify-write:

  - mark(true)   UPDATE .. SET attendance = true  WHERE id = :id AND cancelled = false
  - cancel(true) UPDATE .. SET cancelled = true, attendance = false WHERE id = :id

If the guarded mark matches no row, the group was cancelled in the meantime
and the caller gets CancelledRegistrationConflict. The CHECK constraint
`NOT (cancelled AND attendance)` is the final safety net.

Beyond that, writes are last-write-wins per group. There is no version
column, so two admins toggling cancellation on the same group at the same
moment overwrite each other. Writes are rare and human-paced; optimistic
versioning is the upgrade path if that ever matters.
"""

from dataclasses import dataclass
from typing import Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from regdesk.core.exceptions import (
    CancelledRegistrationConflict,
    InvalidFieldValue,
    NotFound,
    PermissionDenied,
    RegistrationConflict,
    RegistrationError,
    StoreUnavailable,
    DuplicateQueueNumber,
)
from regdesk.core.logging import get_logger
from regdesk.core.metrics import record_transition, registrations_created
from regdesk.db.session import translate_store_errors
from regdesk.models.order import Order, ParticipantGroup, utcnow
from regdesk.schemas.registration import AttendanceUpdate, BatchItemResult, GroupCreate
from regdesk.services.capacity_guard import reserve
from regdesk.services.checkin_token import build_credential, extract_phone, render_qr_code
from regdesk.services.event_service import get_event
from regdesk.services.phone import is_phone_field, is_valid_phone, normalize_phone
from regdesk.services.queue_allocator import allocate, queue_sort_key

logger = get_logger(__name__)


@dataclass(frozen=True)
class DeletedGroup:
    event_id: str
    queue_number: str
    order_id: str
    order_deleted: bool


def _normalized_fields(group_data: GroupCreate) -> list[dict]:
    fields = []
    for field in group_data.fields:
        data = field.model_dump()
        if is_phone_field(data["id"], data["label"], data["type"]):
            data["value"] = normalize_phone(data["value"])
        fields.append(data)
    return fields


async def create_order(
    db: AsyncSession,
    event_id: str,
    groups: Sequence[GroupCreate],
    buyer_id: Optional[str] = None,
    prefix: str = "",
) -> Order:
    """
    Register one or more people in one unit.

    Capacity is checked once for the whole batch, one contiguous run of
    queue numbers is allocated, every group gets its credential and QR code,
    and the order is flushed with all its groups. Any failure propagates and
    the caller's transaction rolls everything back, including the counter
    increment.
    """
    if not groups:
        raise ValueError("an order needs at least one participant group")

    event = await get_event(db, event_id)
    await reserve(db, event, len(groups))
    queue_numbers = await allocate(db, event_id, prefix, len(groups))

    now = utcnow()
    order = Order(event_id=event_id, buyer_id=buyer_id)
    for position, (group_data, queue_number) in enumerate(zip(groups, queue_numbers), start=1):
        fields = _normalized_fields(group_data)
        phone = normalize_phone(extract_phone(fields))
        credential = build_credential(event_id, queue_number, phone)
        order.groups.append(
            ParticipantGroup(
                group_id=f"group_{position}",
                position=position,
                event_id=event_id,
                queue_number=queue_number,
                fields=fields,
                phone_number=phone,
                identity_fact=phone,
                attendance=False,
                cancelled=False,
                qr_code=render_qr_code(credential),
                last_updated=now,
            )
        )

    async with translate_store_errors("create_order"):
        db.add(order)
        await db.flush()
        await db.refresh(order)

    registrations_created.labels(prefix=prefix or "default").inc(len(groups))
    logger.info(
        "order_created",
        order_id=order.id,
        event_id=event_id,
        buyer_id=buyer_id,
        queue_numbers=queue_numbers,
    )
    return order


async def get_order(db: AsyncSession, order_id: str) -> Order:
    async with translate_store_errors("get_order"):
        result = await db.execute(select(Order).where(Order.id == order_id))
        order = result.scalar_one_or_none()
    if not order:
        raise NotFound(detail=f"Order {order_id} not found")
    return order


async def find_by_queue_number(
    db: AsyncSession, event_id: str, queue_number: str
) -> Optional[ParticipantGroup]:
    """Exact string match: '007' and '7' are different queue numbers."""
    async with translate_store_errors("find_by_queue_number"):
        result = await db.execute(
            select(ParticipantGroup).where(
                ParticipantGroup.event_id == event_id,
                ParticipantGroup.queue_number == str(queue_number),
            )
        )
        return result.scalar_one_or_none()


async def find_by_group_id(
    db: AsyncSession, order_id: str, group_id: str
) -> Optional[ParticipantGroup]:
    async with translate_store_errors("find_by_group_id"):
        result = await db.execute(
            select(ParticipantGroup).where(
                ParticipantGroup.order_id == order_id,
                ParticipantGroup.group_id == group_id,
            )
        )
        return result.scalar_one_or_none()


async def resolve_group(
    db: AsyncSession,
    event_id: Optional[str] = None,
    queue_number: Optional[str] = None,
    order_id: Optional[str] = None,
    group_id: Optional[str] = None,
) -> ParticipantGroup:
    group = None
    if event_id and queue_number:
        group = await find_by_queue_number(db, event_id, queue_number)
    elif order_id and group_id:
        group = await find_by_group_id(db, order_id, group_id)
    else:
        raise ValueError("need (event_id, queue_number) or (order_id, group_id)")

    if group is None:
        raise NotFound(
            detail="No registration matches the given identifiers",
            event_id=event_id,
            queue_number=queue_number,
            order_id=order_id,
            group_id=group_id,
        )
    return group


async def apply_attendance(db: AsyncSession, group: ParticipantGroup, attended: bool) -> ParticipantGroup:
    """Attendance transition on an already resolved group."""
    if attended and group.cancelled:
        record_transition("rejected")
        raise CancelledRegistrationConflict(queue_number=group.queue_number)

    if group.attendance == attended:
        # Idempotent: no write, last_updated untouched
        record_transition("noop")
        return group

    stmt = (
        update(ParticipantGroup)
        .where(ParticipantGroup.id == group.id)
        .values(attendance=attended, last_updated=utcnow())
        .execution_options(synchronize_session=False)
    )
    if attended:
        stmt = stmt.where(ParticipantGroup.cancelled.is_(False))

    async with translate_store_errors("mark_attendance"):
        result = await db.execute(stmt)

    if result.rowcount == 0:
        # Cancelled (or deleted) between our read and the guarded write
        record_transition("rejected")
        logger.info("attendance_rejected_after_race", event_id=group.event_id, queue_number=group.queue_number)
        raise CancelledRegistrationConflict(queue_number=group.queue_number)

    async with translate_store_errors("mark_attendance"):
        await db.refresh(group)

    record_transition("attended" if attended else "absent")
    logger.info(
        "attendance_marked",
        event_id=group.event_id,
        queue_number=group.queue_number,
        attended=attended,
    )
    return group


async def mark_attendance(
    db: AsyncSession,
    attended: bool,
    event_id: Optional[str] = None,
    queue_number: Optional[str] = None,
    order_id: Optional[str] = None,
    group_id: Optional[str] = None,
) -> ParticipantGroup:
    group = await resolve_group(db, event_id, queue_number, order_id, group_id)
    return await apply_attendance(db, group, attended)


async def mark_attendance_batch(
    db: AsyncSession, items: Sequence[AttendanceUpdate]
) -> list[BatchItemResult]:
    """
    Apply many attendance changes. A conflict or miss on one item is reported
    in its result and the rest are still processed. Store failures abort the
    batch.
    """
    results = []
    for index, item in enumerate(items):
        try:
            group = await mark_attendance(
                db,
                item.attended,
                event_id=item.event_id,
                queue_number=item.queue_number,
                order_id=item.order_id,
                group_id=item.group_id,
            )
        except (StoreUnavailable, DuplicateQueueNumber):
            raise
        except RegistrationError as e:
            results.append(
                BatchItemResult(
                    index=index,
                    ok=False,
                    queue_number=item.queue_number,
                    code=e.code,
                    message=e.message,
                    message_zh=e.message_zh,
                )
            )
            continue
        results.append(
            BatchItemResult(
                index=index,
                ok=True,
                queue_number=group.queue_number,
                attendance=group.attendance,
            )
        )

    logger.info(
        "attendance_batch_processed",
        total=len(results),
        failed=sum(1 for r in results if not r.ok),
    )
    return results


async def set_cancelled(
    db: AsyncSession,
    event_id: str,
    cancelled: bool,
    queue_number: Optional[str] = None,
    order_id: Optional[str] = None,
    group_id: Optional[str] = None,
    buyer_id: Optional[str] = None,
) -> ParticipantGroup:
    """
    Cancel or restore a registration.

    (event_id, queue_number) is the preferred key; (order_id, group_id) is
    the fallback. When both are given and disagree, the disagreement is
    logged and the queue number match wins.

    With `buyer_id` set, only registrations from that buyer's orders may be
    changed; admins call without it.
    """
    by_queue = await find_by_queue_number(db, event_id, queue_number) if queue_number else None
    by_group = await find_by_group_id(db, order_id, group_id) if order_id and group_id else None

    if queue_number and order_id and group_id:
        same = by_queue is not None and by_group is not None and by_queue.id == by_group.id
        if not same:
            logger.warning(
                "cancellation_identifier_mismatch",
                event_id=event_id,
                queue_number=queue_number,
                order_id=order_id,
                group_id=group_id,
                queue_match=by_queue.queue_number if by_queue else None,
                group_match=by_group.queue_number if by_group else None,
            )

    group = by_queue or by_group
    if group is None or group.event_id != event_id:
        raise NotFound(
            detail="No registration matches the given identifiers",
            event_id=event_id,
            queue_number=queue_number,
        )

    if buyer_id is not None:
        order = await get_order(db, group.order_id)
        if order.buyer_id != buyer_id:
            logger.warning(
                "cancellation_not_permitted",
                event_id=event_id,
                queue_number=group.queue_number,
                caller_id=buyer_id,
            )
            raise PermissionDenied(detail="Only the registrant or an admin can change this registration")

    if group.cancelled == cancelled and not (cancelled and group.attendance):
        record_transition("noop")
        return group

    values = {"cancelled": cancelled, "last_updated": utcnow()}
    if cancelled:
        values["attendance"] = False

    async with translate_store_errors("set_cancelled"):
        await db.execute(
            update(ParticipantGroup)
            .where(ParticipantGroup.id == group.id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        await db.refresh(group)

    record_transition("cancelled" if cancelled else "restored")
    logger.info(
        "registration_cancelled" if cancelled else "registration_restored",
        event_id=event_id,
        queue_number=group.queue_number,
        order_id=group.order_id,
    )
    return group


async def delete_group(db: AsyncSession, event_id: str, queue_number: str) -> DeletedGroup:
    """
    Remove one participant group; the order goes too once it is empty.
    Irreversible. The queue number is never issued again.
    """
    group = await resolve_group(db, event_id=event_id, queue_number=queue_number)
    if group.attendance:
        raise RegistrationConflict(
            detail="Mark the participant absent before deleting the registration",
            queue_number=queue_number,
        )

    order = await get_order(db, group.order_id)
    order.groups.remove(group)
    order_deleted = not order.groups

    async with translate_store_errors("delete_group"):
        if order_deleted:
            await db.delete(order)
        await db.flush()

    logger.info(
        "registration_deleted",
        event_id=event_id,
        queue_number=queue_number,
        order_id=order.id,
        order_deleted=order_deleted,
    )
    return DeletedGroup(
        event_id=event_id,
        queue_number=queue_number,
        order_id=order.id,
        order_deleted=order_deleted,
    )


async def update_field(
    db: AsyncSession,
    order_id: str,
    group_id: str,
    field_id: str,
    value: str,
) -> ParticipantGroup:
    """
    Correct one answer in place. Queue number, credential, QR code and
    attendance are untouched; the identity fact the credential was derived
    from stays as it was at registration.
    """
    group = await resolve_group(db, order_id=order_id, group_id=group_id)

    fields = [dict(f) for f in group.fields]
    index = next((i for i, f in enumerate(fields) if f.get("id") == field_id), None)
    if index is None:
        raise NotFound(detail=f"Field {field_id} not found in registration")

    field = fields[index]
    new_value = value
    if is_phone_field(field_id, field.get("label", ""), field.get("type", "")):
        new_value = normalize_phone(value)
        if not is_valid_phone(new_value):
            raise InvalidFieldValue(detail="Invalid phone number format")

    fields[index] = {**field, "value": new_value}
    group.fields = fields
    group.phone_number = normalize_phone(extract_phone(fields))
    group.last_updated = utcnow()

    async with translate_store_errors("update_field"):
        await db.flush()
        await db.refresh(group)

    logger.info(
        "registration_field_updated",
        event_id=group.event_id,
        queue_number=group.queue_number,
        field_id=field_id,
    )
    return group


def _sorted(groups: Sequence[ParticipantGroup]) -> list[ParticipantGroup]:
    return sorted(groups, key=lambda g: (queue_sort_key(g.queue_number), g.event_id))


async def list_by_event(db: AsyncSession, event_id: str) -> list[ParticipantGroup]:
    """Admin console read path, ordered by numeric queue number."""
    async with translate_store_errors("list_by_event"):
        result = await db.execute(
            select(ParticipantGroup).where(ParticipantGroup.event_id == event_id)
        )
        groups = list(result.scalars().all())
    return _sorted(groups)


async def list_by_phone(db: AsyncSession, phone_number: str) -> list[ParticipantGroup]:
    """Participant self-service read path."""
    phone = normalize_phone(phone_number)
    if not phone:
        return []
    async with translate_store_errors("list_by_phone"):
        result = await db.execute(
            select(ParticipantGroup).where(ParticipantGroup.phone_number == phone)
        )
        groups = list(result.scalars().all())
    return _sorted(groups)
