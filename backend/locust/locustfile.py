"""
Locust Load Test Suite

Tokens are minted locally with the API's SECRET_KEY, so run with the same
environment as the server.

Run scenarios:
  locust -f locustfile.py --tags registration  # Concurrent queue number allocation
  locust -f locustfile.py --tags scan          # Scanner stations checking people in
  locust -f locustfile.py --tags polling       # Participant pages polling
  locust -f locustfile.py --tags edge          # Bad input
  locust -f locustfile.py                      # All tests
"""

import random

import httpx

from locust import HttpUser, task, between, tag, events

from regdesk.core.security import create_access_token
from regdesk.services.checkin_token import build_credential

ADMIN_HEADERS = {
    "Authorization": f"Bearer {create_access_token({'sub': 'load-admin', 'is_admin': True})}"
}

# Shared state
EVENT_ID = None
ISSUED = []  # (queue_number, phone, buyer headers)


def user_headers(user_id: str) -> dict:
    return {"Authorization": f"Bearer {create_access_token({'sub': user_id})}"}


def random_phone() -> str:
    return f"+659{random.randint(1000000, 9999999)}"


def group(phone: str) -> dict:
    return {"fields": [
        {"id": "name", "label": "Full Name", "type": "name", "value": f"Load {phone[-4:]}"},
        {"id": "phone", "label": "Phone Number", "type": "phone", "value": phone},
    ]}


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    """Setup: one published event with 200 seats for every scenario."""
    global EVENT_ID

    response = httpx.post(
        f"{environment.host}/api/v1/events",
        json={"title": "Load Test Session", "max_seats": 200, "is_draft": False},
        headers=ADMIN_HEADERS,
    )
    response.raise_for_status()
    EVENT_ID = response.json()["id"]
    print(f"\nCreated event {EVENT_ID} with 200 seats\n")


class RegistrationUser(HttpUser):
    """
    TEST 1: 300 users -> 200 seats

    Run: locust -f locustfile.py --tags registration -u 300 -r 100 --run-time 30s

    After test, verify:
      SELECT queue_number, COUNT(*) FROM participant_groups
      WHERE event_id = X GROUP BY queue_number HAVING COUNT(*) > 1;
    Should return no rows.
    """
    wait_time = between(0, 0.1)

    def on_start(self):
        self.headers = user_headers(f"load-user-{random.randint(1, 1_000_000)}")

    @tag("registration")
    @task
    def register(self):
        if not EVENT_ID:
            return
        phone = random_phone()
        size = random.randint(1, 3)
        with self.client.post(
            "/api/v1/registrations",
            json={"event_id": EVENT_ID, "groups": [group(phone) for _ in range(size)]},
            headers=self.headers,
            catch_response=True,
        ) as resp:
            if resp.status_code == 201:
                for g in resp.json()["groups"]:
                    ISSUED.append((g["queue_number"], phone, self.headers))
                resp.success()
            elif resp.status_code == 409 and resp.json().get("code") == "capacity_exceeded":
                resp.success()  # Expected: event full
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class ScannerUser(HttpUser):
    """
    TEST 2: Scanner stations

    Run: locust -f locustfile.py --tags scan -u 10 -r 10 --run-time 60s

    Each user is one station; every third scan repeats the previous code to
    exercise the debounce path.
    """
    wait_time = between(0.2, 1.0)

    def on_start(self):
        self.scanner_id = f"desk-{random.randint(1, 10_000)}"
        self.last_payload = None

    @tag("scan")
    @task
    def scan(self):
        if not EVENT_ID or not ISSUED:
            return
        if self.last_payload and random.random() < 0.33:
            payload = self.last_payload
        else:
            queue_number, phone, _ = random.choice(ISSUED)
            payload = build_credential(EVENT_ID, queue_number, phone)
        self.last_payload = payload

        with self.client.post(
            "/api/v1/check-in/scan",
            json={"event_id": EVENT_ID, "payload": payload, "scanner_id": self.scanner_id},
            headers=ADMIN_HEADERS,
            catch_response=True,
        ) as resp:
            if resp.status_code == 200:
                resp.success()
            elif resp.status_code == 409:
                resp.success()  # Cancelled by a concurrent participant
            else:
                resp.failure(f"Unexpected: {resp.status_code}")

    @tag("scan", "polling")
    @task(2)
    def poll_console(self):
        if EVENT_ID:
            self.client.get(
                f"/api/v1/sync/events/{EVENT_ID}?scanner_active=true",
                name="/api/v1/sync/events/{id}",
            )


class ParticipantUser(HttpUser):
    """
    TEST 3: Participant pages polling every 2s, occasionally cancelling
    their own registration

    Run: locust -f locustfile.py --tags polling -u 200 -r 50 --run-time 60s
    """
    wait_time = between(1.5, 2.5)

    def on_start(self):
        self.entry = random.choice(ISSUED) if ISSUED else None

    @tag("polling")
    @task(20)
    def poll(self):
        if self.entry:
            self.client.get(
                "/api/v1/sync/lookup",
                params={"phone": self.entry[1]},
                name="/api/v1/sync/lookup",
            )

    @tag("polling")
    @task(1)
    def toggle_cancellation(self):
        if self.entry and EVENT_ID:
            self.client.post(
                "/api/v1/registrations/cancellation",
                json={
                    "event_id": EVENT_ID,
                    "queue_number": self.entry[0],
                    "cancelled": random.random() < 0.5,
                },
                headers=self.entry[2],
            )


class EdgeCaseUser(HttpUser):
    """
    TEST 4: Edge cases - Bad input handling

    Run: locust -f locustfile.py --tags edge -u 20 -r 5 --run-time 30s

    System should NOT crash, return proper error codes.
    """
    wait_time = between(0.5, 1.5)

    def _expect(self, resp, *codes):
        if resp.status_code in codes:
            resp.success()
        else:
            resp.failure(f"Expected {codes}, got {resp.status_code}")

    @tag("edge")
    @task
    def unknown_event(self):
        with self.client.post(
            "/api/v1/registrations",
            json={"event_id": "doesnotexist", "groups": [group(random_phone())]},
            catch_response=True,
        ) as resp:
            self._expect(resp, 404)

    @tag("edge")
    @task
    def malformed_scan(self):
        with self.client.post(
            "/api/v1/check-in/scan",
            json={"event_id": EVENT_ID or "x", "payload": "not-a-credential"},
            headers=ADMIN_HEADERS,
            catch_response=True,
        ) as resp:
            self._expect(resp, 400)

    @tag("edge")
    @task
    def forged_scan(self):
        if not EVENT_ID:
            return
        with self.client.post(
            "/api/v1/check-in/scan",
            json={"event_id": EVENT_ID, "payload": f"{EVENT_ID}_001_0000000000000000"},
            headers=ADMIN_HEADERS,
            catch_response=True,
        ) as resp:
            self._expect(resp, 400, 404)

    @tag("edge")
    @task
    def empty_order(self):
        with self.client.post(
            "/api/v1/registrations",
            json={"event_id": EVENT_ID or "x", "groups": []},
            catch_response=True,
        ) as resp:
            self._expect(resp, 422)

    @tag("edge")
    @task
    def malformed_json(self):
        with self.client.post(
            "/api/v1/registrations",
            data="not json at all",
            headers={"Content-Type": "application/json"},
            catch_response=True,
        ) as resp:
            self._expect(resp, 400, 422)
