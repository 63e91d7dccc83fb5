"""
HTTP client for the registration desk API, plus the two polling views built
on top of it: the admin console (scanner station) and the participant page.

Reads never retry; the next poll is the retry. Idempotent writes
(attendance, cancellation, scan) retry with exponential backoff while the
store reports itself unavailable. Creating an order is not idempotent and
is never retried.
"""

from typing import Any, Optional

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from regdesk.core.config import get_settings
from regdesk.core.exceptions import (
    InvalidFormat,
    NotFound,
    RegistrationError,
    StoreUnavailable,
)
from regdesk.core.logging import get_logger
from regdesk.services.checkin_token import extract_phone, parse_credential, verify_scanned
from regdesk.services.interfaces import InMemoryDebouncer, ScanDebouncer
from regdesk.services.sync_service import (
    NewlyAttendedCallback,
    ReconciliationPoller,
    admin_poll_interval,
)

logger = get_logger(__name__)
settings = get_settings()

API_PREFIX = "/api/v1"

ERRORS_BY_CODE: dict[str, type[RegistrationError]] = {
    cls.code: cls for cls in RegistrationError.__subclasses__()
}

_retry_while_unavailable = retry(
    stop=stop_after_attempt(settings.CLIENT_RETRY_ATTEMPTS),
    wait=wait_exponential(multiplier=0.5, min=0.5, max=5),
    retry=retry_if_exception_type((StoreUnavailable, httpx.TransportError)),
    reraise=True,
)


def error_from_response(response: httpx.Response) -> RegistrationError:
    """Rebuild the typed error the API serialized into the response body."""
    try:
        body = response.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}
    error = body.get("error", body)
    error_cls = ERRORS_BY_CODE.get(error.get("code"), RegistrationError)
    return error_cls(detail=error.get("detail"), status_code=response.status_code)


class RegdeskClient:
    """Typed wrapper over the HTTP API."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.AsyncClient(
            base_url=base_url or settings.API_BASE_URL,
            timeout=timeout or settings.CLIENT_TIMEOUT_SECONDS,
            headers=headers,
            transport=transport,
        )

    async def __aenter__(self) -> "RegdeskClient":
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    async def aclose(self):
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        response = await self._client.request(method, f"{API_PREFIX}{path}", **kwargs)
        if response.is_success:
            return response.json()
        error = error_from_response(response)
        logger.debug("api_error", path=path, status=response.status_code, code=error.code)
        raise error

    # Reads

    async def get_event(self, event_id: str) -> dict:
        return await self._request("GET", f"/events/{event_id}")

    async def get_order(self, order_id: str) -> dict:
        return await self._request("GET", f"/registrations/orders/{order_id}")

    async def list_event_registrations(self, event_id: str) -> list[dict]:
        return await self._request("GET", f"/registrations/events/{event_id}")

    async def lookup_by_phone(self, phone_number: str) -> list[dict]:
        return await self._request("GET", "/registrations/lookup", params={"phone": phone_number})

    async def fetch_event_snapshot(self, event_id: str, scanner_active: bool = False) -> dict:
        return await self._request(
            "GET",
            f"/sync/events/{event_id}",
            params={"scanner_active": str(scanner_active).lower()},
        )

    async def fetch_lookup_snapshot(self, phone_number: str, event_id: Optional[str] = None) -> dict:
        params = {"phone": phone_number}
        if event_id:
            params["event_id"] = event_id
        return await self._request("GET", "/sync/lookup", params=params)

    # Writes

    async def create_order(self, event_id: str, groups: list[dict], prefix: str = "") -> dict:
        return await self._request(
            "POST",
            "/registrations",
            json={"event_id": event_id, "groups": groups, "prefix": prefix},
        )

    @_retry_while_unavailable
    async def mark_attendance(self, attended: bool, **target: str) -> dict:
        return await self._request(
            "POST", "/registrations/attendance", json={**target, "attended": attended}
        )

    @_retry_while_unavailable
    async def set_cancelled(
        self,
        event_id: str,
        cancelled: bool,
        queue_number: Optional[str] = None,
        order_id: Optional[str] = None,
        group_id: Optional[str] = None,
    ) -> dict:
        return await self._request(
            "POST",
            "/registrations/cancellation",
            json={
                "event_id": event_id,
                "queue_number": queue_number,
                "order_id": order_id,
                "group_id": group_id,
                "cancelled": cancelled,
            },
        )

    @_retry_while_unavailable
    async def scan(self, event_id: str, payload: str, scanner_id: Optional[str] = None) -> dict:
        return await self._request(
            "POST",
            "/check-in/scan",
            json={"event_id": event_id, "payload": payload, "scanner_id": scanner_id},
        )


class AdminConsole:
    """
    Scanner station for one event.

    Polls the event's sync snapshot (state only, no answers or QR codes).
    The full registration rows are fetched only when a scan needs a local
    match: the first scan loads them, and a queue number missing from the
    loaded rows triggers one reload before NotFound. The server is
    authoritative: a local mismatch is only logged, because a participant's
    phone number may have been corrected since the code was issued.
    """

    def __init__(
        self,
        client: RegdeskClient,
        event_id: str,
        scanner_id: str = "admin-console",
        debouncer: Optional[ScanDebouncer] = None,
        on_newly_attended: Optional[NewlyAttendedCallback] = None,
    ):
        self.client = client
        self.event_id = event_id
        self.scanner_id = scanner_id
        self.debouncer = debouncer or InMemoryDebouncer(settings.SCAN_DEBOUNCE_SECONDS)
        self.registrations: list[dict] = []
        self.occupancy: Optional[dict] = None
        self.scanner_active = False
        self._details: dict[str, dict] = {}
        self.poller = ReconciliationPoller(
            fetch=self._fetch,
            interval=admin_poll_interval(False),
            on_newly_attended=on_newly_attended,
            name=f"admin:{event_id}",
        )

    async def _fetch(self) -> list[dict]:
        snapshot = await self.client.fetch_event_snapshot(self.event_id, self.scanner_active)
        self.registrations = snapshot["rows"]
        self.occupancy = snapshot["occupancy"]
        return self.registrations

    async def _load_details(self):
        rows = await self.client.list_event_registrations(self.event_id)
        self._details = {row["queue_number"]: row for row in rows}

    def set_scanner_active(self, active: bool):
        self.scanner_active = active
        self.poller.set_interval(admin_poll_interval(active))

    async def refresh(self):
        await self.poller.poll_once()

    def start(self):
        return self.poller.start()

    async def stop(self):
        await self.poller.stop()

    async def _match(self, queue_number: str) -> Optional[dict]:
        row = self._details.get(queue_number)
        if row is None:
            # Not loaded yet, or registered since the last load
            await self._load_details()
            row = self._details.get(queue_number)
        return row

    async def handle_scan(self, payload: str) -> dict:
        """
        Process one decoded QR string.

        Returns the server's scan response, or {"status": "debounced"} for a
        repeat decode inside the debounce window.
        """
        if not await self.debouncer.should_process(self.scanner_id, payload):
            return {"status": "debounced", "event_id": self.event_id}

        scanned = parse_credential(payload)
        if scanned.event_id != self.event_id:
            raise InvalidFormat(detail="QR code belongs to a different event")

        row = await self._match(scanned.queue_number)
        if row is None:
            raise NotFound(queue_number=scanned.queue_number)

        if not verify_scanned(scanned, extract_phone(row.get("fields", []))):
            logger.info(
                "local_verification_inconclusive",
                event_id=self.event_id,
                queue_number=scanned.queue_number,
            )

        try:
            result = await self.client.scan(self.event_id, payload, self.scanner_id)
        except StoreUnavailable:
            # Let the operator rescan straight away once the store is back
            await self.debouncer.reset(self.scanner_id, payload)
            raise

        if result.get("group"):
            self.poller.apply_write_result(result["group"])
        return result

    async def toggle_cancelled(self, queue_number: str, cancelled: bool) -> dict:
        row = await self.client.set_cancelled(self.event_id, cancelled, queue_number=queue_number)
        self.poller.apply_write_result(row)
        return row


class ParticipantPage:
    """
    Self-service view of every registration under one phone number.

    Polls the lookup snapshot; `load_details` fetches the full rows with
    answers and QR codes when the page needs to show them.
    """

    def __init__(
        self,
        client: RegdeskClient,
        phone_number: str,
        on_newly_attended: Optional[NewlyAttendedCallback] = None,
    ):
        self.client = client
        self.phone_number = phone_number
        self.registrations: list[dict] = []
        self.details: list[dict] = []
        self.poller = ReconciliationPoller(
            fetch=self._fetch,
            interval=settings.PARTICIPANT_POLL_INTERVAL_SECONDS,
            on_newly_attended=on_newly_attended,
            name="participant",
        )

    async def _fetch(self) -> list[dict]:
        snapshot = await self.client.fetch_lookup_snapshot(self.phone_number)
        self.registrations = snapshot["rows"]
        return self.registrations

    async def load_details(self) -> list[dict]:
        self.details = await self.client.lookup_by_phone(self.phone_number)
        return self.details

    async def refresh(self):
        await self.poller.poll_once()

    def start(self):
        return self.poller.start()

    async def stop(self):
        await self.poller.stop()

    async def set_cancelled(self, event_id: str, queue_number: str, cancelled: bool) -> dict:
        """Needs a client signed in as the registrant (or an admin)."""
        row = await self.client.set_cancelled(event_id, cancelled, queue_number=queue_number)
        self.poller.apply_write_result(row)
        return row
