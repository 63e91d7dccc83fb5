"""
Tests for the API client and the admin console / participant page views,
run against the app in-process.
"""

import pytest
import httpx
from httpx import ASGITransport

from regdesk.client import AdminConsole, ParticipantPage, RegdeskClient, error_from_response
from regdesk.core.exceptions import CapacityExceeded, InvalidFormat, NotFound, PermissionDenied, StoreUnavailable
from regdesk.core.security import create_access_token
from regdesk.main import app
from regdesk.services.checkin_token import build_credential
from regdesk.services.interfaces.memory_debounce import InMemoryDebouncer
from conftest import participant_json

PHONE = "+6591234567"


@pytest.fixture
def api(client, admin_token):
    """Admin API client sharing the test database overrides of `client`."""
    return RegdeskClient(base_url="http://test", token=admin_token, transport=ASGITransport(app=app))


@pytest.fixture
def anonymous_api(client):
    return RegdeskClient(base_url="http://test", transport=ASGITransport(app=app))


@pytest.fixture
def participant_api(client):
    """Signed in as user-1, the registrant."""
    token = create_access_token(data={"sub": "user-1"})
    return RegdeskClient(base_url="http://test", token=token, transport=ASGITransport(app=app))


@pytest.mark.asyncio
async def test_client_raises_typed_errors(api, small_event):
    async with api:
        await api.create_order(small_event.id, [participant_json("A"), participant_json("B")])
        with pytest.raises(CapacityExceeded):
            await api.create_order(small_event.id, [participant_json("C")])
        with pytest.raises(NotFound):
            await api.get_order("missing")


def test_error_from_response_rebuilds_store_unavailable():
    response = httpx.Response(
        503, json={"code": "store_unavailable", "message": "x", "message_zh": "y", "detail": "db down"}
    )
    error = error_from_response(response)
    assert isinstance(error, StoreUnavailable)
    assert error.detail == "db down"


@pytest.mark.asyncio
async def test_admin_console_scan_flow(api, anonymous_api, test_event):
    newly_attended = []
    console = AdminConsole(
        api,
        test_event.id,
        scanner_id="desk-1",
        debouncer=InMemoryDebouncer(window_seconds=2.0),
        on_newly_attended=newly_attended.append,
    )
    await console.refresh()
    assert console.registrations == []
    assert console.occupancy["total"] == 0

    # Registered after the console's last poll: found by the refresh-once retry
    await anonymous_api.create_order(test_event.id, [participant_json("Alice", PHONE)])
    payload = build_credential(test_event.id, "001", PHONE)

    result = await console.handle_scan(payload)
    assert result["status"] == "checked_in"
    assert result["name"] == "Alice"

    assert (await console.handle_scan(payload))["status"] == "debounced"

    with pytest.raises(InvalidFormat):
        await console.handle_scan("garbage")
    with pytest.raises(NotFound):
        await console.handle_scan(build_credential(test_event.id, "099", PHONE))

    await api.aclose()
    await anonymous_api.aclose()


@pytest.mark.asyncio
async def test_scanner_state_changes_poll_interval(api, test_event):
    console = AdminConsole(api, test_event.id)
    assert console.poller.interval == 15.0
    console.set_scanner_active(True)
    assert console.poller.interval == 10.0
    await api.aclose()


@pytest.mark.asyncio
async def test_admin_console_polls_state_only(api, anonymous_api, test_event):
    await anonymous_api.create_order(test_event.id, [participant_json("Alice", PHONE)])
    console = AdminConsole(api, test_event.id)
    await console.refresh()

    assert [row["queue_number"] for row in console.registrations] == ["001"]
    assert "fields" not in console.registrations[0]
    assert "qr_code" not in console.registrations[0]
    assert console.occupancy["active"] == 1

    await api.aclose()
    await anonymous_api.aclose()


@pytest.mark.asyncio
async def test_participant_page_sees_check_in(api, participant_api, test_event):
    cues = []
    await participant_api.create_order(test_event.id, [participant_json("Alice", PHONE)])
    page = ParticipantPage(participant_api, PHONE, on_newly_attended=cues.append)
    await page.refresh()
    assert len(page.registrations) == 1
    assert "qr_code" not in page.registrations[0]

    details = await page.load_details()
    assert details[0]["qr_code"].startswith("data:image/png;base64,")

    await api.scan(test_event.id, build_credential(test_event.id, "001", PHONE), scanner_id="desk-1")
    await page.refresh()

    assert [row.queue_number for row in cues[0]] == ["001"]
    assert page.poller.tracker.is_newly_marked(cues[0][0].key)

    row = await page.set_cancelled(test_event.id, "001", True)
    assert row["cancelled"] is True
    assert next(iter(page.poller.state.values())).cancelled is True

    await api.aclose()
    await participant_api.aclose()


@pytest.mark.asyncio
async def test_participant_cannot_cancel_someone_else(anonymous_api, participant_api, test_event):
    await anonymous_api.create_order(test_event.id, [participant_json("Bob", "+6598765432")])
    page = ParticipantPage(participant_api, "+6598765432")

    with pytest.raises(PermissionDenied):
        await page.set_cancelled(test_event.id, "001", True)

    await anonymous_api.aclose()
    await participant_api.aclose()
