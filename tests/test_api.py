"""
Integration tests for the REST API endpoints.

Runs the real application against a throwaway SQLite database and the
in-memory Redis double from ``conftest``.  The caller's identity is passed
in the ``X-User-Id`` header, as the auth gateway would.
"""

from __future__ import annotations

from decimal import Decimal

import pytest
from httpx import AsyncClient

from tests.conftest import tomorrow

API = "/api/v1"


def as_user(user_id: int) -> dict:
    return {"X-User-Id": str(user_id)}


async def register(client: AsyncClient, name: str, vehicle: dict | None = None) -> int:
    body = {"first_name": name, "last_name": "Tester", "email": f"{name.lower()}@example.com"}
    if vehicle:
        body["vehicle"] = vehicle
    resp = await client.post(f"{API}/users", json=body)
    assert resp.status_code == 201, resp.text
    return resp.json()["id"]


async def publish_ride(client: AsyncClient, driver_id: int, seats: int = 2, **extra) -> dict:
    body = {
        "start": {"latitude": 12.9352, "longitude": 77.6245, "address": "Koramangala"},
        "end": {"latitude": 12.9698, "longitude": 77.7500, "address": "Whitefield"},
        "route": {"distance_km": 100, "duration_min": 60},
        "departure_time": tomorrow().isoformat(),
        "seats": seats,
        "fare": {"per_km": "8.00", "base_fare": "30.00"},
        **extra,
    }
    resp = await client.post(f"{API}/rides", json=body, headers=as_user(driver_id))
    assert resp.status_code == 201, resp.text
    return resp.json()


async def join(client: AsyncClient, ride_id: int, driver_id: int, rider_id: int) -> dict:
    resp = await client.post(f"{API}/rides/{ride_id}/requests", json={}, headers=as_user(rider_id))
    assert resp.status_code == 200, resp.text
    resp = await client.post(
        f"{API}/rides/{ride_id}/requests/{rider_id}",
        json={"status": "accepted"},
        headers=as_user(driver_id),
    )
    assert resp.status_code == 200, resp.text
    return resp.json()


# ── Users ─────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get(f"{API}/admin/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_register_and_profile(client):
    user_id = await register(client, "Asha", {"make": "Tata", "fuel_type": "Electric"})
    resp = await client.get(f"{API}/users/me", headers=as_user(user_id))
    assert resp.status_code == 200
    data = resp.json()
    assert data["vehicle_make"] == "Tata"
    assert Decimal(data["wallet_balance"]) == 0


@pytest.mark.asyncio
async def test_duplicate_email_is_409(client):
    await register(client, "Dup")
    resp = await client.post(
        f"{API}/users",
        json={"first_name": "Dup", "last_name": "Again", "email": "dup@example.com"},
    )
    assert resp.status_code == 409
    assert resp.json()["error"] == "conflict"


@pytest.mark.asyncio
async def test_missing_identity_header_is_422(client):
    resp = await client.get(f"{API}/wallet")
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_unknown_user_is_404(client):
    resp = await client.get(f"{API}/users/9999")
    assert resp.status_code == 404
    assert resp.json() == {"detail": "User not found", "error": "not_found"}


@pytest.mark.asyncio
async def test_profile_endpoints(client):
    user = await register(client, "Nila")
    headers = as_user(user)

    resp = await client.put(
        f"{API}/users/me",
        json={"phone_number": "+91 90000 00000", "work_address": {"city": "Bengaluru"}},
        headers=headers,
    )
    assert resp.status_code == 200
    assert resp.json()["work_address"]["city"] == "Bengaluru"
    assert resp.json()["first_name"] == "Nila"

    resp = await client.put(
        f"{API}/users/me/preferences",
        json={"passenger_preferences": {"smoking": False, "music": False}},
        headers=headers,
    )
    assert resp.json()["passenger_preferences"]["music"] is False
    assert resp.json()["driver_preferences"]["music"] is True

    resp = await client.post(
        f"{API}/users/me/emergency-contacts",
        json={"name": "Ravi", "phone_number": "+91 98450 00001", "relation": "brother"},
        headers=headers,
    )
    assert resp.status_code == 201
    contact_id = resp.json()[0]["id"]
    resp = await client.delete(f"{API}/users/me/emergency-contacts/{contact_id}", headers=headers)
    assert resp.json() == []
    resp = await client.delete(f"{API}/users/me/emergency-contacts/{contact_id}", headers=headers)
    assert resp.status_code == 404

    resp = await client.post(
        f"{API}/users/me/frequent-routes",
        json={
            "name": "Office",
            "start": {"latitude": 12.9352, "longitude": 77.6245, "address": "Koramangala"},
            "end": {"latitude": 12.9698, "longitude": 77.7500, "address": "Whitefield"},
            "schedule": [{"day": "monday", "departure_time": "08:30"}],
        },
        headers=headers,
    )
    assert resp.status_code == 201
    route = resp.json()[0]
    assert route["schedule"] == [{"day": "monday", "departure_time": "08:30"}]

    resp = await client.put(
        f"{API}/users/me/frequent-routes/{route['id']}", json={"name": "Work"}, headers=headers
    )
    assert resp.json()["name"] == "Work"
    assert resp.json()["start"]["address"] == "Koramangala"

    resp = await client.put(
        f"{API}/users/me/frequent-routes/{route['id']}",
        json={"schedule": [{"day": "funday"}]},
        headers=headers,
    )
    assert resp.status_code == 422

    resp = await client.delete(f"{API}/users/me/frequent-routes/{route['id']}", headers=headers)
    assert resp.json() == []


# ── Rides ─────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_ride_flow_over_http(client):
    driver = await register(client, "Driver", {"fuel_efficiency": 10})
    rider = await register(client, "Rider")

    ride = await publish_ride(client, driver, seats=2, preferences={"music": True})
    assert ride["status"] == "scheduled"
    assert ride["available_seats"] == 2

    ride = await join(client, ride["id"], driver, rider)
    assert ride["available_seats"] == 1
    assert ride["passengers"][0]["status"] == "accepted"

    resp = await client.post(f"{API}/rides/{ride['id']}/start", headers=as_user(driver))
    assert resp.json()["status"] == "in_progress"

    resp = await client.put(
        f"{API}/rides/{ride['id']}/location",
        json={"latitude": 12.95, "longitude": 77.70},
        headers=as_user(driver),
    )
    assert resp.json()["current_location"]["latitude"] == 12.95

    resp = await client.post(f"{API}/rides/{ride['id']}/complete", headers=as_user(driver))
    assert resp.status_code == 200
    assert resp.json()["status"] == "completed"

    resp = await client.get(f"{API}/users/{driver}/impact")
    assert resp.json()["fuel_saved"] == pytest.approx(10.0)

    resp = await client.post(
        f"{API}/ratings",
        json={"rated_user_id": driver, "role": "driver", "rating": 5, "ride_id": ride["id"]},
        headers=as_user(rider),
    )
    assert resp.status_code == 201
    assert resp.json() == {"average": 5.0, "count": 1}

    resp = await client.get(f"{API}/users/me/rides?role=passenger", headers=as_user(rider))
    assert resp.json()["total"] == 1


@pytest.mark.asyncio
async def test_error_mapping(client):
    driver = await register(client, "Driver")
    rider = await register(client, "Rider")
    other = await register(client, "Other")
    ride = await publish_ride(client, driver, seats=1)

    # driver joining own ride
    resp = await client.post(f"{API}/rides/{ride['id']}/requests", json={}, headers=as_user(driver))
    assert resp.status_code == 409

    # passenger trying to start
    resp = await client.post(f"{API}/rides/{ride['id']}/start", headers=as_user(rider))
    assert resp.status_code == 403
    assert resp.json()["error"] == "unauthorized"

    # complete before start
    resp = await client.post(f"{API}/rides/{ride['id']}/complete", headers=as_user(driver))
    assert resp.status_code == 409
    assert resp.json()["error"] == "invalid_transition"

    # full ride
    await join(client, ride["id"], driver, rider)
    resp = await client.post(f"{API}/rides/{ride['id']}/requests", json={}, headers=as_user(other))
    assert resp.status_code == 409

    # missing ride
    resp = await client.get(f"{API}/rides/9999")
    assert resp.status_code == 404

    # schema validation
    resp = await client.post(
        f"{API}/rides/{ride['id']}/requests/{rider}",
        json={"status": "maybe"},
        headers=as_user(driver),
    )
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_search_and_delete(client):
    driver = await register(client, "Driver")
    ride = await publish_ride(client, driver, seats=3)

    resp = await client.get(
        f"{API}/rides/search",
        params={"start_lat": 12.9350, "start_lng": 77.6240, "seats": 2, "max_distance": 1000},
    )
    assert resp.status_code == 200
    page = resp.json()
    assert page["total"] == 1
    assert page["items"][0]["id"] == ride["id"]

    resp = await client.get(f"{API}/rides/search", params={"start_lat": 12.2958, "start_lng": 76.6394})
    assert resp.json()["total"] == 0

    resp = await client.delete(f"{API}/rides/{ride['id']}", headers=as_user(driver))
    assert resp.status_code == 204
    resp = await client.get(f"{API}/rides/{ride['id']}")
    assert resp.status_code == 404


# ── Wallet & payments ─────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_wallet_endpoints(client):
    user = await register(client, "Saver")
    resp = await client.post(
        f"{API}/wallet/topup",
        json={"amount": "200.00", "payment_method": "upi"},
        headers=as_user(user),
    )
    assert resp.status_code == 201
    assert resp.json()["status"] == "completed"

    resp = await client.post(
        f"{API}/wallet/withdraw", json={"amount": "500.00"}, headers=as_user(user)
    )
    assert resp.status_code == 402
    assert resp.json()["error"] == "insufficient_funds"

    resp = await client.post(
        f"{API}/wallet/withdraw", json={"amount": "50.00"}, headers=as_user(user)
    )
    assert resp.status_code == 201
    withdrawal = resp.json()
    assert withdrawal["status"] == "pending"

    resp = await client.get(f"{API}/wallet", headers=as_user(user))
    assert Decimal(resp.json()["balance"]) == Decimal("150.00")

    resp = await client.post(
        f"{API}/admin/withdrawals/{withdrawal['id']}/settle",
        json={"succeeded": False},
    )
    assert resp.json()["status"] == "failed"

    resp = await client.get(f"{API}/wallet/transactions", headers=as_user(user))
    assert resp.json()["total"] == 2

    resp = await client.post(f"{API}/admin/wallets/{user}/reconcile")
    report = resp.json()
    assert report["consistent"] is True
    assert Decimal(report["derived"]) == Decimal("200.00")


@pytest.mark.asyncio
async def test_payment_and_refund_over_http(client, fake_redis):
    driver = await register(client, "Driver")
    rider = await register(client, "Rider")
    ride = await publish_ride(client, driver)
    await join(client, ride["id"], driver, rider)
    await client.post(
        f"{API}/wallet/topup", json={"amount": "300", "payment_method": "card"}, headers=as_user(rider)
    )

    resp = await client.post(
        f"{API}/rides/{ride['id']}/payments",
        json={"amount": "120.00", "payment_method": "wallet"},
        headers=as_user(rider),
    )
    assert resp.status_code == 201, resp.text
    payment = resp.json()

    resp = await client.get(f"{API}/transactions/{payment['id']}", headers=as_user(driver))
    assert resp.status_code == 200
    resp = await client.get(f"{API}/transactions/{payment['id']}", headers=as_user(9999))
    assert resp.status_code == 403

    resp = await client.post(
        f"{API}/rides/{ride['id']}/refunds", json={"reason": "plans changed"}, headers=as_user(rider)
    )
    assert resp.status_code == 201
    refund = resp.json()

    resp = await client.post(
        f"{API}/refunds/{refund['id']}/settle", json={"approve": True}, headers=as_user(driver)
    )
    assert resp.json()["status"] == "completed"

    resp = await client.get(f"{API}/wallet", headers=as_user(rider))
    assert Decimal(resp.json()["balance"]) == Decimal("300.00")

    resp = await client.get(f"{API}/notifications", headers=as_user(rider))
    types = [n["type"] for n in resp.json()["items"]]
    assert "refund_processed" in types
    assert any(channel == f"notifications:{rider}" for channel, _ in fake_redis.published)
