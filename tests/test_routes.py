import uuid
from datetime import timedelta

import pytest
from httpx import ASGITransport, AsyncClient

from app import app
from core.date_helper import utc_today
from core.get_db import get_db_async


@pytest.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db_async] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


def headers(actor):
    return {"X-Actor-Id": str(actor.id), "X-Actor-Role": actor.role.value}


async def create_listing(client, owner, total_rooms=1):
    response = await client.post(
        "/v1/properties", json={"title": "Lakeside Hall"}, headers=headers(owner)
    )
    assert response.status_code == 201
    property_id = response.json()["id"]

    response = await client.post(
        f"/v1/properties/{property_id}/room-types",
        json={
            "name": "Double",
            "room_kind": "double",
            "total_rooms": total_rooms,
            "max_occupancy": 2,
            "price_per_bed": "4500",
        },
        headers=headers(owner),
    )
    assert response.status_code == 201
    return property_id, response.json()["id"]


async def create_booking(client, student, property_id, room_type_id):
    start = utc_today() + timedelta(days=10)
    response = await client.post(
        "/v1/bookings",
        json={
            "property_id": property_id,
            "room_type_id": room_type_id,
            "start_date": start.isoformat(),
            "end_date": (start + timedelta(days=120)).isoformat(),
            "rooms_count": 1,
            "members_count": 1,
        },
        headers=headers(student),
    )
    assert response.status_code == 201
    return response.json()["id"]


async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


async def test_booking_to_active_agreement_over_http(client, owner, student):
    property_id, room_type_id = await create_listing(client, owner)
    booking_id = await create_booking(client, student, property_id, room_type_id)

    response = await client.post(f"/v1/bookings/{booking_id}/confirm", headers=headers(owner))
    assert response.status_code == 200
    body = response.json()
    assert body["booking"]["status"] == "Confirmed"
    assert body["agreement"]["status"] == "draft"
    agreement_id = body["agreement"]["id"]

    response = await client.get(f"/v1/room-types/{room_type_id}/availability")
    assert response.json() == {"room_type_id": room_type_id, "total": 1, "available": 0}

    response = await client.get(f"/v1/properties/{property_id}")
    assert response.json()["is_available"] is False

    response = await client.post(
        f"/v1/agreements/{agreement_id}/sign",
        json={"signature_data": "Owner"},
        headers=headers(owner),
    )
    assert response.status_code == 200
    assert response.json()["message"] == "Agreement signed successfully"
    assert response.json()["agreement"]["status"] == "pending_student"

    response = await client.post(
        f"/v1/agreements/{agreement_id}/sign", headers=headers(student)
    )
    assert response.json()["activated"] is True
    assert response.json()["message"] == "Agreement signed by both parties and is now active"

    response = await client.post(
        f"/v1/agreements/{agreement_id}/sign", headers=headers(student)
    )
    assert response.status_code == 200
    assert response.json()["already_signed"] is True
    assert response.json()["message"] == "This agreement has already been signed by you"

    response = await client.get(
        f"/v1/agreements/booking/{booking_id}", headers=headers(student)
    )
    agreement = response.json()
    assert agreement["status"] == "active"
    assert agreement["owner_signature"]["signature_data"] == "Owner"
    assert agreement["student_signature"]["signed"] is True
    assert agreement["monthly_rent"] == "4500.00"


async def test_last_room_conflict_is_reported(client, owner, student, other_student):
    property_id, room_type_id = await create_listing(client, owner, total_rooms=1)
    first = await create_booking(client, student, property_id, room_type_id)
    second = await create_booking(client, other_student, property_id, room_type_id)

    await client.post(f"/v1/bookings/{first}/confirm", headers=headers(owner))
    response = await client.post(f"/v1/bookings/{second}/confirm", headers=headers(owner))

    assert response.status_code == 409
    assert response.json() == {
        "success": False,
        "error": "OutOfCapacity",
        "detail": "This room is no longer available",
    }

    response = await client.get(f"/v1/bookings/{second}", headers=headers(other_student))
    assert response.json()["status"] == "Pending"


async def test_outsider_gets_403(client, owner, student, other_student):
    property_id, room_type_id = await create_listing(client, owner)
    booking_id = await create_booking(client, student, property_id, room_type_id)
    response = await client.post(f"/v1/bookings/{booking_id}/confirm", headers=headers(owner))
    agreement_id = response.json()["agreement"]["id"]

    response = await client.post(
        f"/v1/agreements/{agreement_id}/sign", headers=headers(other_student)
    )

    assert response.status_code == 403
    assert response.json()["error"] == "WrongParty"
    assert response.json()["detail"] == "You are not a party to this agreement"


async def test_student_leaves_through_the_api(client, owner, student):
    property_id, room_type_id = await create_listing(client, owner, total_rooms=2)
    booking_id = await create_booking(client, student, property_id, room_type_id)
    await client.post(f"/v1/bookings/{booking_id}/confirm", headers=headers(owner))

    response = await client.post(
        f"/v1/bookings/{booking_id}/cancel", headers=headers(student)
    )
    assert response.status_code == 409
    assert response.json()["error"] == "InvalidTransition"

    response = await client.post(
        f"/v1/bookings/{booking_id}/leave",
        json={"reason": "Graduated"},
        headers=headers(student),
    )
    assert response.status_code == 200
    assert response.json()["status"] == "Completed"

    response = await client.get(f"/v1/room-types/{room_type_id}/availability")
    assert response.json()["available"] == 2


async def test_missing_identity_is_401(client):
    response = await client.post(f"/v1/bookings/{uuid.uuid4()}/confirm")

    assert response.status_code == 401


async def test_unknown_role_is_403(client):
    response = await client.get(
        "/v1/bookings/mine",
        headers={"X-Actor-Id": str(uuid.uuid4()), "X-Actor-Role": "landlord"},
    )

    assert response.status_code == 403


async def test_unknown_booking_is_404(client, owner):
    response = await client.post(
        f"/v1/bookings/{uuid.uuid4()}/confirm", headers=headers(owner)
    )

    assert response.status_code == 404
    assert response.json()["error"] == "NotFound"


async def test_invalid_payload_is_422(client, student):
    response = await client.post(
        "/v1/bookings", json={"rooms_count": 0}, headers=headers(student)
    )

    assert response.status_code == 422
    assert response.json()["success"] is False


async def test_status_filter_ignores_case(client, owner, student):
    property_id, room_type_id = await create_listing(client, owner)
    booking_id = await create_booking(client, student, property_id, room_type_id)

    response = await client.get("/v1/bookings/mine?status=pending", headers=headers(student))
    assert [b["id"] for b in response.json()] == [booking_id]

    response = await client.get("/v1/bookings/owner?status=CONFIRMED", headers=headers(owner))
    assert response.json() == []

    response = await client.get("/v1/bookings/mine?status=approved", headers=headers(student))
    assert response.status_code == 400
    assert response.json()["error"] == "BookingValidationError"
