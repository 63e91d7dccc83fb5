"""
Tests for reconciliation polling: snapshot diffing, newly-marked cues,
failure handling and teardown.
"""

import asyncio

import pytest

from regdesk.services.sync_service import (
    NewlyMarkedTracker,
    ReconciliationPoller,
    admin_poll_interval,
    build_event_snapshot,
    build_lookup_snapshot,
    diff_snapshots,
    to_state,
)
from regdesk.services.registration_service import create_order, mark_attendance, set_cancelled
from conftest import participant


def row(queue_number, attendance=False, cancelled=False, order_id="o1"):
    return {
        "order_id": order_id,
        "group_id": f"group_{int(queue_number)}",
        "event_id": "e1",
        "queue_number": queue_number,
        "attendance": attendance,
        "cancelled": cancelled,
    }


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class ScriptedFetch:
    """Returns the queued snapshots in order; an Exception entry is raised."""

    def __init__(self, *snapshots):
        self.snapshots = list(snapshots)
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        item = self.snapshots.pop(0) if len(self.snapshots) > 1 else self.snapshots[0]
        if isinstance(item, Exception):
            raise item
        return item


def test_diff_detects_flips_additions_and_removals():
    before = to_state([row("001"), row("002"), row("003", attendance=True)])
    after = to_state([
        row("001", attendance=True),
        row("002", cancelled=True),
        row("004"),
    ])

    diff = diff_snapshots(before, after)

    assert [r.queue_number for r in diff.newly_attended] == ["001"]
    assert [r.queue_number for r in diff.newly_cancelled] == ["002"]
    assert [r.queue_number for r in diff.added] == ["004"]
    assert [r.queue_number for r in diff.removed] == ["003"]
    assert diff.changed


def test_diff_ignores_true_to_false():
    before = to_state([row("001", attendance=True)])
    after = to_state([row("001", attendance=False)])
    assert diff_snapshots(before, after).newly_attended == []


def test_admin_poll_interval_follows_scanner_state():
    assert admin_poll_interval(True) == 10.0
    assert admin_poll_interval(False) == 15.0


def test_newly_marked_window_expires():
    clock = FakeClock()
    tracker = NewlyMarkedTracker(window_seconds=2.0, clock=clock)
    tracker.mark(["o1:group_1"])

    clock.now = 1.9
    assert tracker.is_newly_marked("o1:group_1")
    clock.now = 2.0
    assert not tracker.is_newly_marked("o1:group_1")
    assert tracker.active() == set()


@pytest.mark.asyncio
async def test_first_poll_is_baseline_then_cue_fires_once():
    fetch = ScriptedFetch(
        [row("001", attendance=True), row("002")],
        [row("001", attendance=True), row("002", attendance=True)],
        [row("001", attendance=True), row("002", attendance=True)],
    )
    cues = []
    poller = ReconciliationPoller(fetch, interval=0.01, on_newly_attended=cues.append)

    baseline = await poller.poll_once()
    assert not baseline.changed
    assert cues == []

    diff = await poller.poll_once()
    assert [r.queue_number for r in diff.newly_attended] == ["002"]
    assert poller.tracker.is_newly_marked("o1:group_2")

    await poller.poll_once()
    assert len(cues) == 1


@pytest.mark.asyncio
async def test_async_cue_callback_is_awaited():
    fetch = ScriptedFetch([row("001")], [row("001", attendance=True)])
    seen = []

    async def cue(rows):
        seen.extend(r.queue_number for r in rows)

    poller = ReconciliationPoller(fetch, interval=0.01, on_newly_attended=cue)
    await poller.poll_once()
    await poller.poll_once()
    assert seen == ["001"]


@pytest.mark.asyncio
async def test_failing_cue_does_not_break_polling():
    fetch = ScriptedFetch([row("001")], [row("001", attendance=True)])

    def broken(rows):
        raise RuntimeError("speaker unplugged")

    poller = ReconciliationPoller(fetch, interval=0.01, on_newly_attended=broken)
    await poller.poll_once()
    diff = await poller.poll_once()
    assert len(diff.newly_attended) == 1


@pytest.mark.asyncio
async def test_failed_poll_keeps_previous_state():
    fetch = ScriptedFetch(
        [row("001")],
        ConnectionError("store down"),
        [row("001", attendance=True)],
    )
    poller = ReconciliationPoller(fetch, interval=0.01)

    await poller.poll_once()
    assert await poller.poll_once() is None
    assert poller.failures == 1
    assert poller.state["o1:group_1"].attendance is False

    diff = await poller.poll_once()
    assert len(diff.newly_attended) == 1


@pytest.mark.asyncio
async def test_flip_and_flip_back_between_polls_is_not_observed():
    fetch = ScriptedFetch([row("001")], [row("001")])
    cues = []
    poller = ReconciliationPoller(fetch, interval=0.01, on_newly_attended=cues.append)
    await poller.poll_once()
    await poller.poll_once()
    assert cues == []


@pytest.mark.asyncio
async def test_stop_cancels_the_loop():
    fetch = ScriptedFetch([row("001")])
    poller = ReconciliationPoller(fetch, interval=0.01)

    poller.start()
    await asyncio.sleep(0.05)
    assert poller.running
    await poller.stop()

    calls = fetch.calls
    assert calls >= 1
    await asyncio.sleep(0.05)
    assert fetch.calls == calls
    assert not poller.running


@pytest.mark.asyncio
async def test_write_result_for_unrendered_group_is_ignored():
    fetch = ScriptedFetch([row("001")])
    poller = ReconciliationPoller(fetch, interval=0.01)
    await poller.poll_once()

    assert poller.apply_write_result(row("001", cancelled=True)) is True
    assert poller.state["o1:group_1"].cancelled is True
    assert poller.apply_write_result(row("009", cancelled=True)) is False
    assert "o1:group_9" not in poller.state


# Server-side snapshots


@pytest.mark.asyncio
async def test_event_snapshot(db_session, test_event):
    await create_order(db_session, test_event.id, [participant(f"P{i}") for i in range(3)])
    await db_session.commit()
    await mark_attendance(db_session, True, event_id=test_event.id, queue_number="001")
    await set_cancelled(db_session, test_event.id, True, queue_number="003")
    await db_session.commit()

    snapshot = await build_event_snapshot(db_session, test_event.id, scanner_active=True)

    assert [r.queue_number for r in snapshot.rows] == ["001", "002", "003"]
    assert snapshot.rows[0].attendance is True
    assert snapshot.rows[2].cancelled is True
    assert snapshot.occupancy.active == 2
    assert snapshot.occupancy.attended == 1
    assert snapshot.poll_interval_seconds == 10.0


@pytest.mark.asyncio
async def test_lookup_snapshot_normalises_phone(db_session, test_event):
    await create_order(db_session, test_event.id, [participant("A", "+6591234567")])
    await db_session.commit()

    snapshot = await build_lookup_snapshot(db_session, "+65 9123-4567")
    assert snapshot.phone_number == "+6591234567"
    assert len(snapshot.rows) == 1
    assert snapshot.poll_interval_seconds == 2.0

    assert (await build_lookup_snapshot(db_session, "+65 9123-4567", event_id="other")).rows == []
