"""
Tests for event endpoints.
"""

import pytest
from datetime import datetime, timezone, timedelta
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_create_event(client: AsyncClient, admin_headers):
    """Admin can create an event."""
    start = datetime.now(timezone.utc) + timedelta(days=30)
    response = await client.post(
        "/api/v1/events",
        json={
            "title": "Community Health Screening",
            "description": "Morning session",
            "location": "Community Centre",
            "start_datetime": start.isoformat(),
            "end_datetime": (start + timedelta(hours=3)).isoformat(),
            "max_seats": 120,
            "is_draft": False,
        },
        headers=admin_headers,
    )
    assert response.status_code == 201
    data = response.json()
    assert data["title"] == "Community Health Screening"
    assert data["max_seats"] == 120
    assert data["organizer_id"] == "admin-1"
    assert "_" not in data["id"]


@pytest.mark.asyncio
async def test_create_event_requires_admin(client: AsyncClient, user_headers):
    body = {"title": "Nope", "max_seats": 10}

    anonymous = await client.post("/api/v1/events", json=body)
    assert anonymous.status_code == 401

    participant = await client.post("/api/v1/events", json=body, headers=user_headers)
    assert participant.status_code == 403
    assert participant.json()["code"] == "forbidden"


@pytest.mark.asyncio
@pytest.mark.parametrize("max_seats", [0, -5])
async def test_create_event_invalid_max_seats(client: AsyncClient, admin_headers, max_seats):
    response = await client.post(
        "/api/v1/events",
        json={"title": "Bad", "max_seats": max_seats},
        headers=admin_headers,
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_create_event_end_before_start(client: AsyncClient, admin_headers):
    start = datetime.now(timezone.utc) + timedelta(days=1)
    response = await client.post(
        "/api/v1/events",
        json={
            "title": "Backwards",
            "max_seats": 10,
            "start_datetime": start.isoformat(),
            "end_datetime": (start - timedelta(hours=1)).isoformat(),
        },
        headers=admin_headers,
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_list_events_hides_drafts(client: AsyncClient, admin_headers, test_event):
    await client.post(
        "/api/v1/events",
        json={"title": "Draft", "max_seats": 10, "is_draft": True},
        headers=admin_headers,
    )

    public = await client.get("/api/v1/events")
    assert public.status_code == 200
    assert [e["title"] for e in public.json()["events"]] == ["Morning Session"]

    admin = await client.get("/api/v1/events", params={"include_drafts": True}, headers=admin_headers)
    assert admin.json()["total"] == 2


@pytest.mark.asyncio
async def test_get_event_not_found(client: AsyncClient):
    response = await client.get("/api/v1/events/doesnotexist")
    assert response.status_code == 404
    data = response.json()
    assert data["code"] == "not_found"
    assert data["message"]
    assert data["message_zh"]


@pytest.mark.asyncio
async def test_update_max_seats(client: AsyncClient, admin_headers, small_event):
    response = await client.patch(
        f"/api/v1/events/{small_event.id}/max-seats",
        json={"max_seats": 50},
        headers=admin_headers,
    )
    assert response.status_code == 200
    assert response.json()["max_seats"] == 50

    occupancy = await client.get(f"/api/v1/events/{small_event.id}/occupancy")
    assert occupancy.json()["available"] == 50


@pytest.mark.asyncio
async def test_next_queue_number_preview(client: AsyncClient, test_event):
    response = await client.get(f"/api/v1/events/{test_event.id}/queue-numbers/next")
    assert response.json()["next_queue_number"] == "001"

    response = await client.get(
        f"/api/v1/events/{test_event.id}/queue-numbers/next", params={"prefix": "U"}
    )
    assert response.json()["next_queue_number"] == "U001"

    bad = await client.get(
        f"/api/v1/events/{test_event.id}/queue-numbers/next", params={"prefix": "U-1"}
    )
    assert bad.status_code == 422


@pytest.mark.asyncio
async def test_health_and_metrics(client: AsyncClient):
    health = await client.get("/health")
    assert health.status_code == 200
    assert health.json()["status"] == "healthy"

    metrics = await client.get("/metrics")
    assert metrics.status_code == 200
    assert "queue_numbers_allocated_total" in metrics.text
