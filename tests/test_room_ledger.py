import asyncio
import uuid

import pytest
from sqlalchemy import select

from core.entity_lock import entity_locks
from core.lifecycle_errors import (
    BookingValidationError,
    InvalidRelease,
    LockTimeout,
    NotFound,
    OutOfCapacity,
)
from models.enums import LifecycleEntity, LifecycleEvent
from models.models import LifecycleLog
from schemas.schema import RoomTypeCreate
from services.property_service import PropertyService
from services.room_ledger_service import ROOM_TYPE_SCOPE, RoomLedgerService

from tests.helpers import available_rooms, load_property, log_events


async def test_reserve_and_release_move_the_counter(session_factory, make_listing):
    property_id, room_type_id = await make_listing(total_rooms=3)

    async with session_factory() as session:
        ledger = RoomLedgerService(session)
        token = await ledger.reserve(room_type_id, 2)
        assert token.count == 2
        assert token.available_after == 1

    assert await available_rooms(session_factory, room_type_id) == 1

    async with session_factory() as session:
        await RoomLedgerService(session).release(room_type_id, 2)

    assert await available_rooms(session_factory, room_type_id) == 3


async def test_reserve_beyond_capacity_changes_nothing(session_factory, make_listing):
    _, room_type_id = await make_listing(total_rooms=1)

    async with session_factory() as session:
        with pytest.raises(OutOfCapacity) as exc:
            await RoomLedgerService(session).reserve(room_type_id, 2)

    assert exc.value.status_code == 409
    assert exc.value.message == "This room is no longer available"
    assert await available_rooms(session_factory, room_type_id) == 1


async def test_release_overflow_is_refused_and_recorded(session_factory, make_listing):
    _, room_type_id = await make_listing(total_rooms=2)

    async with session_factory() as session:
        with pytest.raises(InvalidRelease):
            await RoomLedgerService(session).release(room_type_id, 1)

    assert await available_rooms(session_factory, room_type_id) == 2
    events = await log_events(session_factory, room_type_id)
    assert events == [LifecycleEvent.INVARIANT_VIOLATION]

    async with session_factory() as session:
        row = await session.scalar(
            select(LifecycleLog).where(LifecycleLog.entity_id == room_type_id)
        )
    assert row.entity_type == LifecycleEntity.ROOM_TYPE
    assert row.old_value == {"available_rooms": 2, "total_rooms": 2}
    assert row.new_value == {"attempted_release": 1}


@pytest.mark.parametrize("count", [0, -1])
async def test_count_must_be_positive(db, make_listing, count):
    _, room_type_id = await make_listing()
    ledger = RoomLedgerService(db)

    with pytest.raises(BookingValidationError):
        await ledger.reserve(room_type_id, count)
    with pytest.raises(BookingValidationError):
        await ledger.release(room_type_id, count)


async def test_unknown_room_type(db):
    ledger = RoomLedgerService(db)

    with pytest.raises(NotFound):
        await ledger.reserve(uuid.uuid4())
    with pytest.raises(NotFound):
        await ledger.get_availability(uuid.uuid4())


async def test_property_availability_follows_its_rooms(session_factory, make_listing):
    property_id, room_type_id = await make_listing(total_rooms=1)
    assert (await load_property(session_factory, property_id)).is_available is True

    async with session_factory() as session:
        await RoomLedgerService(session).reserve(room_type_id)
    assert (await load_property(session_factory, property_id)).is_available is False

    async with session_factory() as session:
        await RoomLedgerService(session).release(room_type_id)
    assert (await load_property(session_factory, property_id)).is_available is True


async def test_concurrent_reserves_never_oversell(session_factory, make_listing):
    _, room_type_id = await make_listing(total_rooms=3)

    async def attempt():
        async with session_factory() as session:
            return await RoomLedgerService(session).reserve(room_type_id)

    results = await asyncio.gather(
        *(attempt() for _ in range(5)), return_exceptions=True
    )

    granted = [r for r in results if not isinstance(r, Exception)]
    refused = [r for r in results if isinstance(r, OutOfCapacity)]
    assert len(granted) == 3
    assert len(refused) == 2
    assert sorted(t.available_after for t in granted) == [0, 1, 2]
    assert await available_rooms(session_factory, room_type_id) == 0


async def test_failed_reserve_discards_staged_work(session_factory, make_listing):
    _, room_type_id = await make_listing(total_rooms=1)

    async with session_factory() as session:
        ledger = RoomLedgerService(session)
        await ledger.reserve(room_type_id)

        ledger.logs.add(
            entity_type=LifecycleEntity.ROOM_TYPE,
            entity_id=room_type_id,
            event=LifecycleEvent.COMPENSATION_APPLIED,
        )
        with pytest.raises(OutOfCapacity):
            await ledger.reserve(room_type_id)

    assert await log_events(session_factory, room_type_id) == []


async def test_lock_timeout_discards_staged_work(session_factory, make_listing, monkeypatch):
    monkeypatch.setattr(entity_locks, "default_timeout", 0.1)
    _, room_type_id = await make_listing(total_rooms=1)

    async with session_factory() as session:
        ledger = RoomLedgerService(session)
        ledger.logs.add(
            entity_type=LifecycleEntity.ROOM_TYPE,
            entity_id=room_type_id,
            event=LifecycleEvent.COMPENSATION_APPLIED,
        )
        async with entity_locks.hold(ROOM_TYPE_SCOPE, room_type_id):
            with pytest.raises(LockTimeout):
                await ledger.reserve(room_type_id)
        await session.commit()

    assert await log_events(session_factory, room_type_id) == []
    assert await available_rooms(session_factory, room_type_id) == 1


async def test_property_availability_across_room_types(
    session_factory, make_listing, owner
):
    property_id, first_room = await make_listing(total_rooms=1)
    async with session_factory() as session:
        second = await PropertyService(session).add_room_type(
            property_id,
            owner,
            RoomTypeCreate(name="Single", total_rooms=1, max_occupancy=1),
        )
    second_room = second.id

    async def change(room_type_id, release=False):
        async with session_factory() as session:
            ledger = RoomLedgerService(session)
            if release:
                return await ledger.release(room_type_id)
            return await ledger.reserve(room_type_id)

    await asyncio.gather(change(first_room), change(second_room))
    assert (await load_property(session_factory, property_id)).is_available is False

    await asyncio.gather(
        change(first_room, release=True), change(second_room, release=True)
    )
    assert (await load_property(session_factory, property_id)).is_available is True
