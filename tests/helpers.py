from datetime import timedelta

from sqlalchemy import func, select

from core.date_helper import utc_today
from models.models import Agreement, Booking, Property
from repos.lifecycle_log_repo import LifecycleLogRepo
from schemas.schema import BookingCreate
from services.lifecycle_coordinator import LifecycleCoordinator
from services.room_ledger_service import RoomLedgerService


def booking_request(property_id, room_type_id, **overrides) -> BookingCreate:
    start = utc_today() + timedelta(days=7)
    data = {
        "property_id": property_id,
        "room_type_id": room_type_id,
        "start_date": start,
        "end_date": start + timedelta(days=180),
        "rooms_count": 1,
        "members_count": 2,
    }
    data.update(overrides)
    return BookingCreate(**data)


async def available_rooms(session_factory, room_type_id) -> int:
    async with session_factory() as session:
        availability = await RoomLedgerService(session).get_availability(room_type_id)
        return availability.available


async def load_booking(session_factory, booking_id) -> Booking:
    async with session_factory() as session:
        return await session.get(Booking, booking_id)


async def load_agreement(session_factory, agreement_id) -> Agreement:
    async with session_factory() as session:
        return await session.get(Agreement, agreement_id)


async def load_property(session_factory, property_id) -> Property:
    async with session_factory() as session:
        return await session.get(Property, property_id)


async def agreement_count(session_factory, booking_id) -> int:
    async with session_factory() as session:
        return await session.scalar(
            select(func.count(Agreement.id)).where(Agreement.booking_id == booking_id)
        )


async def log_events(session_factory, entity_id) -> list:
    async with session_factory() as session:
        entries = await LifecycleLogRepo(session).list_for_entity(entity_id)
        return [entry.event for entry in entries]


def event_names(published) -> list:
    return [name for name, _ in published]


async def request_booking(session_factory, student, property_id, room_type_id, **overrides):
    async with session_factory() as session:
        booking = await LifecycleCoordinator(session).create_booking(
            student, booking_request(property_id, room_type_id, **overrides)
        )
        return booking.id


async def confirm_booking(session_factory, owner, booking_id, **kwargs):
    async with session_factory() as session:
        return await LifecycleCoordinator(session, **kwargs).confirm_booking(
            booking_id, owner
        )


async def sign(session_factory, actor, agreement_id, **kwargs):
    async with session_factory() as session:
        return await LifecycleCoordinator(session).sign_agreement(
            agreement_id, actor, **kwargs
        )
