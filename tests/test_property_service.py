import uuid

import pytest

from core.lifecycle_errors import Conflict, NotFound, WrongParty
from models.enums import ActorRole, SigningOrder
from schemas.schema import Actor, PropertyCreate, RoomTypeCreate, SigningOrderUpdate
from services.lifecycle_coordinator import LifecycleCoordinator
from services.property_service import PropertyService

from tests.helpers import load_booking, load_property, request_booking


async def test_only_owners_list_properties(db, student):
    with pytest.raises(WrongParty):
        await PropertyService(db).create_property(student, PropertyCreate(title="Dorm"))


async def test_new_property_is_unavailable_until_it_has_rooms(db, owner):
    service = PropertyService(db)
    property = await service.create_property(owner, PropertyCreate(title="  Maple House "))

    assert property.title == "Maple House"
    assert property.is_available is False

    room_type = await service.add_room_type(
        property.id, owner, RoomTypeCreate(name="Single", total_rooms=4)
    )
    assert room_type.available_rooms == 4
    assert property.is_available is True


async def test_other_owner_cannot_change_listing(session_factory, make_listing):
    property_id, _ = await make_listing()
    intruder = Actor(id=uuid.uuid4(), role=ActorRole.OWNER)

    async with session_factory() as session:
        service = PropertyService(session)
        with pytest.raises(WrongParty):
            await service.add_room_type(
                property_id, intruder, RoomTypeCreate(name="Suite", total_rooms=1)
            )
        with pytest.raises(WrongParty):
            await service.set_signing_order(
                property_id,
                intruder,
                SigningOrderUpdate(signing_order=SigningOrder.OWNER_FIRST),
            )


async def test_signing_order_is_stored(session_factory, make_listing, owner):
    property_id, _ = await make_listing()

    async with session_factory() as session:
        await PropertyService(session).set_signing_order(
            property_id, owner, SigningOrderUpdate(signing_order=SigningOrder.STUDENT_FIRST)
        )

    assert (await load_property(session_factory, property_id)).signing_order == (
        SigningOrder.STUDENT_FIRST
    )


async def test_room_type_with_open_bookings_cannot_be_deleted(
    session_factory, make_listing, student, owner
):
    property_id, room_type_id = await make_listing()
    booking_id = await request_booking(session_factory, student, property_id, room_type_id)

    async with session_factory() as session:
        with pytest.raises(Conflict):
            await PropertyService(session).delete_room_type(room_type_id, owner)

    async with session_factory() as session:
        await LifecycleCoordinator(session).cancel_booking(booking_id, student)

    async with session_factory() as session:
        await PropertyService(session).delete_room_type(room_type_id, owner)

    async with session_factory() as session:
        with pytest.raises(NotFound):
            await PropertyService(session).get_availability(room_type_id)
    assert (await load_booking(session_factory, booking_id)).room_type_id is None
    assert (await load_property(session_factory, property_id)).is_available is False
