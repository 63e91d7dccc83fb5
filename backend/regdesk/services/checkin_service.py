"""
Check-in by scanned credential.

Flow for one decoded QR string:
  1. Parse locally (no store access): wrong shape -> InvalidFormat
  2. Look up the group by (event_id, queue_number): none -> NotFound
  3. Recompute the token from the group's identity fact: differs -> TokenMismatch
  4. Mark attendance (guarded against a concurrent cancellation)

An already attended group is reported as "already_marked", not an error.
"""

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from regdesk.core.exceptions import (
    CancelledRegistrationConflict,
    InvalidFormat,
    NotFound,
    TokenMismatch,
)
from regdesk.core.logging import get_logger
from regdesk.core.metrics import record_scan
from regdesk.models.order import ParticipantGroup
from regdesk.services.checkin_token import extract_name, parse_credential, verify_scanned
from regdesk.services.registration_service import apply_attendance, find_by_queue_number

logger = get_logger(__name__)

CHECKED_IN = "checked_in"
ALREADY_MARKED = "already_marked"
DEBOUNCED = "debounced"


@dataclass(frozen=True)
class ScanOutcome:
    status: str
    group: ParticipantGroup

    @property
    def name(self) -> str:
        return extract_name(self.group.fields) or "Unknown"


async def check_in_by_scan(db: AsyncSession, event_id: str, payload: str) -> ScanOutcome:
    try:
        scanned = parse_credential(payload)
    except InvalidFormat:
        record_scan("invalid_format")
        raise

    if scanned.event_id != event_id:
        record_scan("invalid_format")
        raise InvalidFormat(detail="QR code belongs to a different event")

    group = await find_by_queue_number(db, event_id, scanned.queue_number)
    if group is None:
        record_scan("not_found")
        raise NotFound(
            detail=f"Registration not found for queue number {scanned.queue_number}",
            queue_number=scanned.queue_number,
        )

    if not verify_scanned(scanned, group.identity_fact):
        record_scan("token_mismatch")
        logger.warning("scan_token_mismatch", event_id=event_id, queue_number=scanned.queue_number)
        raise TokenMismatch(queue_number=scanned.queue_number)

    if group.attendance:
        record_scan("already_marked")
        return ScanOutcome(status=ALREADY_MARKED, group=group)

    try:
        group = await apply_attendance(db, group, True)
    except CancelledRegistrationConflict:
        record_scan("cancelled")
        raise

    record_scan("checked_in")
    logger.info("checked_in_by_scan", event_id=event_id, queue_number=group.queue_number)
    return ScanOutcome(status=CHECKED_IN, group=group)
