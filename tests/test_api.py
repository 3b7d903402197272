"""
HTTP surface tests: routers are driven through httpx against the ASGI app,
with the booking service swapped for the per-test instance.
"""
from datetime import datetime, timedelta

import pytest
from httpx import ASGITransport, AsyncClient

from conftest import ADMIN_ID, ADMIN_KEY
from app.main import app
from app.services.booking_service import get_booking_service

USER = {"X-User-Id": "user-1"}
ADMIN = {"X-User-Id": ADMIN_ID, "X-API-Key": ADMIN_KEY}


def _window(hours_ahead: int, hours: int):
    start = (datetime.utcnow() + timedelta(days=2, hours=hours_ahead)).replace(
        minute=0, second=0, microsecond=0
    )
    return start, start + timedelta(hours=hours)


@pytest.fixture
async def client(service):
    app.dependency_overrides[get_booking_service] = lambda: service
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


def _booking_body(location, start, end, space_id="A1", payment_method="cash"):
    return {
        "location_id": str(location.id),
        "space_id": space_id,
        "vehicle_info": {"plate_number": "ba 2 kha 5678", "vehicle_type": "car"},
        "start_time": start.isoformat(),
        "end_time": end.isoformat(),
        "payment_method": payment_method,
    }


async def test_root_and_health(client):
    root = await client.get("/")
    assert root.status_code == 200
    assert root.json()["status"] == "healthy"

    health = await client.get("/health")
    assert health.json() == {"status": "ok"}


async def test_create_and_fetch_booking(client, location):
    start, end = _window(0, 2)
    response = await client.post("/api/bookings", json=_booking_body(location, start, end), headers=USER)

    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "confirmed"
    assert body["plate_number"] == "BA 2 KHA 5678"
    assert body["total_amount"] == 200.0
    assert body["duration_hours"] == 2
    assert body["extensions"] == []

    fetched = await client.get(f"/api/bookings/{body['id']}", headers=USER)
    assert fetched.status_code == 200
    assert fetched.json()["id"] == body["id"]

    forbidden = await client.get(f"/api/bookings/{body['id']}", headers={"X-User-Id": "user-2"})
    assert forbidden.status_code == 403
    assert forbidden.json()["success"] is False


async def test_conflict_is_reported_with_details(client, location):
    start, end = _window(0, 2)
    first = await client.post("/api/bookings", json=_booking_body(location, start, end), headers=USER)

    response = await client.post(
        "/api/bookings",
        json=_booking_body(location, start + timedelta(hours=1), end + timedelta(hours=1)),
        headers={"X-User-Id": "user-2"},
    )

    assert response.status_code == 409
    body = response.json()
    assert body["code"] == "ConflictError"
    assert body["details"]["conflicting_bookings"][0]["id"] == first.json()["id"]


async def test_missing_user_header_is_rejected(client, location):
    start, end = _window(0, 2)
    response = await client.post("/api/bookings", json=_booking_body(location, start, end))
    assert response.status_code == 422


async def test_validation_error_maps_to_400(client, location):
    start, end = _window(0, 2)
    body = _booking_body(location, start, end, payment_method="bitcoin")

    response = await client.post("/api/bookings", json=body, headers=USER)

    assert response.status_code == 400
    assert response.json()["code"] == "ValidationError"


async def test_payment_cancel_flow(client, location):
    start, end = _window(40, 2)
    created = await client.post(
        "/api/bookings",
        json=_booking_body(location, start, end, payment_method="esewa"),
        headers=USER,
    )
    booking_id = created.json()["id"]
    assert created.json()["status"] == "pending"

    unauthorized = await client.post(
        f"/api/bookings/{booking_id}/payment", json={"succeeded": True}, headers={"X-API-Key": "wrong"}
    )
    assert unauthorized.status_code == 403

    paid = await client.post(
        f"/api/bookings/{booking_id}/payment",
        json={"succeeded": True, "transaction_id": "esewa-42"},
        headers=ADMIN,
    )
    assert paid.status_code == 200
    assert paid.json()["status"] == "confirmed"

    cancelled = await client.post(
        f"/api/bookings/{booking_id}/cancel", json={"reason": "Trip cancelled"}, headers=USER
    )
    assert cancelled.status_code == 200
    cancellation = cancelled.json()["cancellation"]
    assert cancellation["reason"] == "Trip cancelled"
    assert cancellation["refund"] == {"amount": 200.0, "percentage": 100.0, "status": "pending"}


async def test_extend_and_list(client, location):
    start, end = _window(0, 2)
    created = await client.post("/api/bookings", json=_booking_body(location, start, end), headers=USER)
    booking_id = created.json()["id"]

    extended = await client.post(
        f"/api/bookings/{booking_id}/extend",
        json={"new_end_time": (end + timedelta(hours=1)).isoformat()},
        headers=USER,
    )
    assert extended.status_code == 200
    assert extended.json()["total_amount"] == 300.0
    assert len(extended.json()["extensions"]) == 1

    listing = await client.get("/api/bookings", headers=USER)
    assert listing.json()["total"] == 1
    assert listing.json()["items"][0]["id"] == booking_id

    location_listing = await client.get(f"/api/locations/{location.id}/bookings", headers=ADMIN)
    assert location_listing.json()["total"] == 1


async def test_slots_endpoint(client, location):
    start, _ = _window(0, 2)
    response = await client.get(
        "/api/bookings/slots",
        params={"location_id": str(location.id), "space_id": "A2", "date": start.date().isoformat()},
    )

    assert response.status_code == 200
    body = response.json()
    assert len(body["slots"]) == 24
    assert body["available_count"] == 24
    assert body["slots"][0]["price"] == 120.0


async def test_location_endpoints(client, location):
    fetched = await client.get(f"/api/locations/{location.id}")
    assert fetched.status_code == 200
    assert fetched.json()["total_spaces"] == 4
    assert [s["space_id"] for s in fetched.json()["spaces"]] == ["A1", "A2", "A3", "B1"]

    occupancy = await client.get(f"/api/locations/{location.id}/occupancy")
    assert occupancy.json()["available_spaces"] == 4
    assert occupancy.json()["occupancy_percentage"] == 0

    availability = await client.get(f"/api/locations/{location.id}/availability")
    assert availability.status_code == 200
    assert availability.json()["available_space_types"] == {
        "regular": 2,
        "ev-charging": 1,
        "handicapped": 1,
    }

    missing = await client.get("/api/locations/00000000-0000-0000-0000-000000000000")
    assert missing.status_code == 404
    assert missing.json()["code"] == "NotFoundError"


async def test_create_location_requires_api_key(client):
    body = {
        "name": "Lalitpur Lot",
        "address": "Pulchowk",
        "hourly_rate": 60,
        "is_24_hours": True,
        "spaces": [{"space_id": "L1"}, {"space_id": "L2", "type": "ev-charging"}],
        "admin_ids": [ADMIN_ID],
    }

    denied = await client.post("/api/locations", json=body)
    assert denied.status_code == 422

    created = await client.post("/api/locations", json=body, headers=ADMIN)
    assert created.status_code == 201
    assert created.json()["available_spaces"] == 2
    assert created.json()["timezone"] == "UTC"


async def test_space_status_endpoints(client, location):
    single = await client.put(
        f"/api/locations/{location.id}/spaces/A1/status",
        json={"status": "maintenance"},
        headers=ADMIN,
    )
    assert single.status_code == 200
    assert single.json()["available_spaces"] == 3

    not_admin = await client.put(
        f"/api/locations/{location.id}/spaces/A2/status",
        json={"status": "maintenance"},
        headers={"X-User-Id": "user-1", "X-API-Key": ADMIN_KEY},
    )
    assert not_admin.status_code == 403

    bulk = await client.put(
        f"/api/locations/{location.id}/spaces/status",
        json={"updates": [{"space_id": "A1", "status": "available"}, {"space_id": "Q7", "status": "available"}]},
        headers=ADMIN,
    )
    assert bulk.status_code == 200
    assert [s["space_id"] for s in bulk.json()["updated_spaces"]] == ["A1"]
    assert bulk.json()["errors"][0]["space_id"] == "Q7"
    assert bulk.json()["available_spaces"] == 4


async def test_checkout_of_pending_booking_returns_409(client, location):
    start, end = _window(0, 2)
    created = await client.post(
        "/api/bookings",
        json=_booking_body(location, start, end, payment_method="card"),
        headers=USER,
    )

    response = await client.post(f"/api/bookings/{created.json()['id']}/checkout")

    assert response.status_code == 409
    assert response.json()["details"]["current_status"] == "pending"
