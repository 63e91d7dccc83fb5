"""
Scanner endpoint: one decoded QR string in, one check-in outcome out.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from regdesk.api.presenters import present_group
from regdesk.core.exceptions import StoreUnavailable
from regdesk.core.logging import bind_scan_context
from regdesk.core.metrics import debounced_scans
from regdesk.core.security import Caller, get_caller
from regdesk.db.session import commit_or_raise, get_db
from regdesk.schemas.registration import ScanRequest, ScanResponse
from regdesk.services.checkin_service import DEBOUNCED, check_in_by_scan
from regdesk.services.interfaces.debounce import ScanDebouncer
from regdesk.services.strategy_factory import get_debouncer

router = APIRouter(prefix="/check-in", tags=["Check-in"])


@router.post("/scan", response_model=ScanResponse)
async def scan_endpoint(
    body: ScanRequest,
    caller: Caller = Depends(get_caller),
    debouncer: ScanDebouncer = Depends(get_debouncer),
    db: AsyncSession = Depends(get_db),
):
    """
    Verify the credential and mark the participant present.

    Repeat decodes of the same code from the same scanner inside the
    debounce window return status "debounced" without touching the store.
    """
    scanner_id = body.scanner_id or caller.id
    bind_scan_context(scanner_id, body.event_id)
    if not await debouncer.should_process(scanner_id, body.payload):
        debounced_scans.inc()
        return ScanResponse(status=DEBOUNCED, event_id=body.event_id)

    try:
        outcome = await check_in_by_scan(db, body.event_id, body.payload)
        await commit_or_raise(db, "check_in_by_scan")
    except StoreUnavailable:
        # Nothing was recorded; let the next decode through
        await debouncer.reset(scanner_id, body.payload)
        raise

    return ScanResponse(
        status=outcome.status,
        event_id=body.event_id,
        queue_number=outcome.group.queue_number,
        name=outcome.name,
        group=present_group(outcome.group, reveal_pii=caller.is_admin),
    )
