"""
Reconciliation polling between the admin console, the participant page and
the store.

There is no push channel. Each view polls a snapshot on its own fixed
interval (participant page 2s; admin console 10s while a scanner is active,
15s otherwise) and diffs it against what it rendered last. A group whose
attendance flipped false -> true since the previous poll is "newly marked"
for a short display window and triggers a one-shot cue.

This is presentation, not correctness:
  - Snapshots are current state only; two flips between polls collapse
    into one observed change (or none), and nothing assumes ordering.
  - A failed poll is logged and swallowed; the rendered state stays as it
    was and the next tick tries again.
  - Stopping a poller cancels its loop, never a write. A write that already
    started completes and its result is applied only if the group is still
    part of the rendered state.

The first half of this module builds the server-side snapshots, the second
half is the transport-agnostic client-side poller.
"""

import asyncio
import inspect
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Iterable, Mapping, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from regdesk.core.config import get_settings
from regdesk.core.logging import get_logger
from regdesk.models.order import ParticipantGroup
from regdesk.schemas.event import OccupancyResponse
from regdesk.schemas.sync import EventSyncResponse, LookupSyncResponse, SyncRow
from regdesk.services.capacity_guard import get_occupancy
from regdesk.services.event_service import get_event
from regdesk.services.registration_service import list_by_event, list_by_phone
from regdesk.services.phone import normalize_phone

logger = get_logger(__name__)
settings = get_settings()


def admin_poll_interval(scanner_active: bool) -> float:
    if scanner_active:
        return settings.ADMIN_POLL_INTERVAL_SCANNING_SECONDS
    return settings.ADMIN_POLL_INTERVAL_IDLE_SECONDS


# ---------------------------------------------------------------------------
# Server-side snapshots
# ---------------------------------------------------------------------------

def to_sync_row(group: ParticipantGroup) -> SyncRow:
    return SyncRow(
        order_id=group.order_id,
        group_id=group.group_id,
        event_id=group.event_id,
        queue_number=group.queue_number,
        attendance=group.attendance,
        cancelled=group.cancelled,
        last_updated=group.last_updated,
    )


async def build_event_snapshot(
    db: AsyncSession, event_id: str, scanner_active: bool = False
) -> EventSyncResponse:
    event = await get_event(db, event_id)
    groups = await list_by_event(db, event_id)
    occupancy = await get_occupancy(db, event)
    return EventSyncResponse(
        event_id=event_id,
        rows=[to_sync_row(g) for g in groups],
        occupancy=OccupancyResponse(
            event_id=event_id,
            max_seats=occupancy.max_seats,
            total=occupancy.total,
            active=occupancy.active,
            attended=occupancy.attended,
            cancelled=occupancy.cancelled,
            available=occupancy.available,
        ),
        server_time=datetime.now(timezone.utc),
        poll_interval_seconds=admin_poll_interval(scanner_active),
    )


async def build_lookup_snapshot(
    db: AsyncSession, phone_number: str, event_id: Optional[str] = None
) -> LookupSyncResponse:
    groups = await list_by_phone(db, phone_number)
    if event_id:
        groups = [g for g in groups if g.event_id == event_id]
    return LookupSyncResponse(
        phone_number=normalize_phone(phone_number),
        rows=[to_sync_row(g) for g in groups],
        server_time=datetime.now(timezone.utc),
        poll_interval_seconds=settings.PARTICIPANT_POLL_INTERVAL_SECONDS,
        event_id=event_id,
    )


# ---------------------------------------------------------------------------
# Client-side reconciliation
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RowState:
    key: str
    queue_number: str
    attendance: bool
    cancelled: bool


@dataclass
class SnapshotDiff:
    newly_attended: list[RowState] = field(default_factory=list)
    newly_cancelled: list[RowState] = field(default_factory=list)
    added: list[RowState] = field(default_factory=list)
    removed: list[RowState] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.newly_attended or self.newly_cancelled or self.added or self.removed)


def row_key(order_id: str, group_id: str) -> str:
    return f"{order_id}:{group_id}"


def _value(row: Any, name: str) -> Any:
    if isinstance(row, Mapping):
        return row.get(name)
    return getattr(row, name)


def to_state(rows: Iterable[Any]) -> dict[str, RowState]:
    """Index rows (SyncRow, GroupResponse or their JSON dicts) by group key."""
    state = {}
    for row in rows:
        key = row_key(_value(row, "order_id"), _value(row, "group_id"))
        state[key] = RowState(
            key=key,
            queue_number=_value(row, "queue_number"),
            attendance=bool(_value(row, "attendance")),
            cancelled=bool(_value(row, "cancelled")),
        )
    return state


def diff_snapshots(
    previous: Mapping[str, RowState], current: Mapping[str, RowState]
) -> SnapshotDiff:
    diff = SnapshotDiff()
    for key, row in current.items():
        before = previous.get(key)
        if before is None:
            diff.added.append(row)
            continue
        if row.attendance and not before.attendance:
            diff.newly_attended.append(row)
        if row.cancelled and not before.cancelled:
            diff.newly_cancelled.append(row)
    diff.removed = [row for key, row in previous.items() if key not in current]
    return diff


class NewlyMarkedTracker:
    """Keys stay "newly marked" for a fixed window, then drop out."""

    def __init__(self, window_seconds: Optional[float] = None, clock: Callable[[], float] = time.monotonic):
        self.window_seconds = (
            settings.NEWLY_MARKED_WINDOW_SECONDS if window_seconds is None else window_seconds
        )
        self._clock = clock
        self._marked_at: dict[str, float] = {}

    def mark(self, keys: Iterable[str]):
        now = self._clock()
        for key in keys:
            self._marked_at[key] = now

    def active(self) -> set[str]:
        now = self._clock()
        self._marked_at = {
            k: t for k, t in self._marked_at.items() if now - t < self.window_seconds
        }
        return set(self._marked_at)

    def is_newly_marked(self, key: str) -> bool:
        return key in self.active()


Fetch = Callable[[], Awaitable[Iterable[Any]]]
NewlyAttendedCallback = Callable[[list[RowState]], Any]


class ReconciliationPoller:
    """
    Periodic fetch-and-diff for one view.

    The first successful poll only establishes the baseline; cues fire from
    the second poll on.
    """

    def __init__(
        self,
        fetch: Fetch,
        interval: float,
        on_newly_attended: Optional[NewlyAttendedCallback] = None,
        tracker: Optional[NewlyMarkedTracker] = None,
        name: str = "poller",
    ):
        self._fetch = fetch
        self.interval = interval
        self._on_newly_attended = on_newly_attended
        self.tracker = tracker or NewlyMarkedTracker()
        self.name = name
        self.state: dict[str, RowState] = {}
        self.has_baseline = False
        self.failures = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def set_interval(self, seconds: float):
        """Takes effect from the next sleep."""
        self.interval = seconds

    async def poll_once(self) -> Optional[SnapshotDiff]:
        try:
            rows = await self._fetch()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.failures += 1
            logger.warning("poll_failed", poller=self.name, error=str(e), failures=self.failures)
            return None

        current = to_state(rows)
        if not self.has_baseline:
            self.state = current
            self.has_baseline = True
            return SnapshotDiff()

        diff = diff_snapshots(self.state, current)
        self.state = current

        if diff.newly_attended:
            self.tracker.mark(row.key for row in diff.newly_attended)
            logger.info(
                "attendance_observed",
                poller=self.name,
                queue_numbers=[row.queue_number for row in diff.newly_attended],
            )
            await self._notify(diff.newly_attended)
        return diff

    async def _notify(self, rows: list[RowState]):
        if self._on_newly_attended is None:
            return
        try:
            result = self._on_newly_attended(rows)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            # A cue that fails to play must not stop polling
            logger.warning("newly_attended_callback_failed", poller=self.name, error=str(e))

    async def run(self):
        while True:
            await self.poll_once()
            await asyncio.sleep(self.interval)

    def start(self) -> asyncio.Task:
        if not self.running:
            self._task = asyncio.create_task(self.run(), name=f"reconcile-{self.name}")
        return self._task

    async def stop(self):
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    def apply_write_result(self, row: Any) -> bool:
        """
        Apply the result of a write this view issued.

        Ignored when the group is no longer rendered (deleted, or the view
        has moved on); the next poll is the source of truth either way.
        """
        incoming = to_state([row])
        key, state = next(iter(incoming.items()))
        if key not in self.state:
            logger.debug("stale_write_result_ignored", poller=self.name, key=key)
            return False
        self.state[key] = state
        return True
