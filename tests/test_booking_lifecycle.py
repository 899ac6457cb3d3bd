import asyncio
from datetime import timedelta

import pytest

from core.lifecycle_errors import (
    BookingValidationError,
    Conflict,
    InvalidTransition,
    OutOfCapacity,
    WrongParty,
)
from models.enums import (
    AgreementStatus,
    BookingStatus,
    CapacityFailurePolicy,
    LifecycleEvent,
)
from services.lifecycle_coordinator import LifecycleCoordinator

from tests.helpers import (
    available_rooms,
    booking_request,
    confirm_booking,
    event_names,
    load_agreement,
    load_booking,
    log_events,
    request_booking,
)


async def test_request_stays_pending_without_touching_capacity(
    session_factory, make_listing, student, published
):
    property_id, room_type_id = await make_listing(total_rooms=2)

    booking_id = await request_booking(session_factory, student, property_id, room_type_id)

    booking = await load_booking(session_factory, booking_id)
    assert booking.status == BookingStatus.PENDING
    assert booking.student_id == student.id
    assert await available_rooms(session_factory, room_type_id) == 2
    assert event_names(published) == ["booking.requested"]
    assert await log_events(session_factory, booking_id) == [LifecycleEvent.BOOKING_CREATED]


async def test_request_validation(db, make_listing, student, owner):
    property_id, room_type_id = await make_listing(total_rooms=1, max_occupancy=2)
    _, foreign_room_type_id = await make_listing()
    coordinator = LifecycleCoordinator(db)
    start = booking_request(property_id, room_type_id).start_date

    with pytest.raises(BookingValidationError):
        await coordinator.create_booking(
            student, booking_request(property_id, room_type_id, end_date=start)
        )
    with pytest.raises(BookingValidationError):
        await coordinator.create_booking(
            student, booking_request(property_id, room_type_id, members_count=3)
        )
    with pytest.raises(BookingValidationError):
        await coordinator.create_booking(
            student, booking_request(property_id, room_type_id, rooms_count=2)
        )
    with pytest.raises(BookingValidationError):
        await coordinator.create_booking(
            student, booking_request(property_id, foreign_room_type_id)
        )
    with pytest.raises(WrongParty):
        await coordinator.create_booking(owner, booking_request(property_id, room_type_id))


async def test_second_active_request_for_same_property_conflicts(
    session_factory, make_listing, student
):
    property_id, room_type_id = await make_listing()
    await request_booking(session_factory, student, property_id, room_type_id)

    with pytest.raises(Conflict):
        await request_booking(
            session_factory,
            student,
            property_id,
            room_type_id,
            start_date=booking_request(property_id, room_type_id).start_date
            + timedelta(days=30),
        )


async def test_confirm_reserves_and_opens_draft_agreement(
    session_factory, make_listing, student, owner, published
):
    property_id, room_type_id = await make_listing(total_rooms=2)
    booking_id = await request_booking(session_factory, student, property_id, room_type_id)

    confirmation = await confirm_booking(session_factory, owner, booking_id)

    booking = await load_booking(session_factory, booking_id)
    agreement = await load_agreement(session_factory, confirmation.agreement.id)
    assert booking.status == BookingStatus.CONFIRMED
    assert booking.decided_by_id == owner.id
    assert agreement.status == AgreementStatus.DRAFT
    assert agreement.booking_id == booking_id
    assert agreement.owner_id == owner.id
    assert agreement.student_id == student.id
    assert agreement.start_date == booking.start_date
    assert agreement.end_date == booking.end_date
    assert await available_rooms(session_factory, room_type_id) == 1
    assert event_names(published)[-2:] == ["booking.confirmed", "agreement.opened"]


async def test_only_the_owner_confirms(session_factory, make_listing, student, other_student):
    property_id, room_type_id = await make_listing()
    booking_id = await request_booking(session_factory, student, property_id, room_type_id)

    with pytest.raises(WrongParty):
        await confirm_booking(session_factory, other_student, booking_id)
    assert (await load_booking(session_factory, booking_id)).status == BookingStatus.PENDING


async def test_admin_can_confirm(session_factory, make_listing, student, admin):
    property_id, room_type_id = await make_listing()
    booking_id = await request_booking(session_factory, student, property_id, room_type_id)

    await confirm_booking(session_factory, admin, booking_id)

    assert (await load_booking(session_factory, booking_id)).status == BookingStatus.CONFIRMED


async def test_confirm_twice_is_refused(session_factory, make_listing, student, owner):
    property_id, room_type_id = await make_listing(total_rooms=2)
    booking_id = await request_booking(session_factory, student, property_id, room_type_id)
    await confirm_booking(session_factory, owner, booking_id)

    with pytest.raises(InvalidTransition):
        await confirm_booking(session_factory, owner, booking_id)
    assert await available_rooms(session_factory, room_type_id) == 1


async def test_full_room_type_keeps_booking_pending(
    session_factory, make_listing, student, other_student, owner
):
    property_id, room_type_id = await make_listing(total_rooms=1)
    first = await request_booking(session_factory, student, property_id, room_type_id)
    second = await request_booking(session_factory, other_student, property_id, room_type_id)
    await confirm_booking(session_factory, owner, first)

    with pytest.raises(OutOfCapacity):
        await confirm_booking(
            session_factory,
            owner,
            second,
            capacity_policy=CapacityFailurePolicy.KEEP_PENDING,
        )

    assert (await load_booking(session_factory, second)).status == BookingStatus.PENDING
    assert await available_rooms(session_factory, room_type_id) == 0


async def test_full_room_type_can_auto_reject(
    session_factory, make_listing, student, other_student, owner, published
):
    property_id, room_type_id = await make_listing(total_rooms=1)
    first = await request_booking(session_factory, student, property_id, room_type_id)
    second = await request_booking(session_factory, other_student, property_id, room_type_id)
    await confirm_booking(session_factory, owner, first)

    with pytest.raises(OutOfCapacity):
        await confirm_booking(
            session_factory,
            owner,
            second,
            capacity_policy=CapacityFailurePolicy.AUTO_REJECT,
        )

    booking = await load_booking(session_factory, second)
    assert booking.status == BookingStatus.REJECTED
    assert booking.cancellation_reason == "No rooms of this type are left."
    assert event_names(published)[-1] == "booking.rejected"


async def test_two_owners_racing_for_the_last_room(
    session_factory, make_listing, student, other_student, owner
):
    property_id, room_type_id = await make_listing(total_rooms=1)
    first = await request_booking(session_factory, student, property_id, room_type_id)
    second = await request_booking(session_factory, other_student, property_id, room_type_id)

    results = await asyncio.gather(
        confirm_booking(session_factory, owner, first),
        confirm_booking(session_factory, owner, second),
        return_exceptions=True,
    )

    assert sum(isinstance(r, OutOfCapacity) for r in results) == 1
    statuses = sorted(
        [
            (await load_booking(session_factory, first)).status.value,
            (await load_booking(session_factory, second)).status.value,
        ]
    )
    assert statuses == [BookingStatus.CONFIRMED.value, BookingStatus.PENDING.value]
    assert await available_rooms(session_factory, room_type_id) == 0


async def test_reject_pending_booking(session_factory, make_listing, student, owner):
    property_id, room_type_id = await make_listing()
    booking_id = await request_booking(session_factory, student, property_id, room_type_id)

    async with session_factory() as session:
        booking = await LifecycleCoordinator(session).reject_booking(
            booking_id, owner, "Under renovation"
        )

    assert booking.status == BookingStatus.REJECTED
    assert booking.cancellation_reason == "Under renovation"
    assert await available_rooms(session_factory, room_type_id) == 2


async def test_confirmed_booking_cannot_be_rejected(
    session_factory, make_listing, student, owner
):
    property_id, room_type_id = await make_listing()
    booking_id = await request_booking(session_factory, student, property_id, room_type_id)
    await confirm_booking(session_factory, owner, booking_id)

    async with session_factory() as session:
        with pytest.raises(InvalidTransition):
            await LifecycleCoordinator(session).reject_booking(booking_id, owner)
    assert await available_rooms(session_factory, room_type_id) == 1


async def test_student_cancels_pending_booking(session_factory, make_listing, student):
    property_id, room_type_id = await make_listing()
    booking_id = await request_booking(session_factory, student, property_id, room_type_id)

    async with session_factory() as session:
        booking = await LifecycleCoordinator(session).cancel_booking(
            booking_id, student, "Found another place"
        )

    assert booking.status == BookingStatus.CANCELLED
    assert booking.cancelled_at is not None
    assert await available_rooms(session_factory, room_type_id) == 2


async def test_student_cannot_cancel_confirmed_booking(
    session_factory, make_listing, student, owner
):
    property_id, room_type_id = await make_listing()
    booking_id = await request_booking(session_factory, student, property_id, room_type_id)
    await confirm_booking(session_factory, owner, booking_id)

    async with session_factory() as session:
        with pytest.raises(InvalidTransition):
            await LifecycleCoordinator(session).cancel_booking(booking_id, student)
    assert (await load_booking(session_factory, booking_id)).status == BookingStatus.CONFIRMED


async def test_owner_cancels_confirmed_booking(
    session_factory, make_listing, student, owner, published
):
    property_id, room_type_id = await make_listing()
    booking_id = await request_booking(session_factory, student, property_id, room_type_id)
    confirmation = await confirm_booking(session_factory, owner, booking_id)

    async with session_factory() as session:
        booking = await LifecycleCoordinator(session).cancel_booking(
            booking_id, owner, "Double booked"
        )

    agreement = await load_agreement(session_factory, confirmation.agreement.id)
    assert booking.status == BookingStatus.CANCELLED
    assert agreement.status == AgreementStatus.CANCELLED
    assert agreement.cancellation_reason == "Double booked"
    assert await available_rooms(session_factory, room_type_id) == 2
    assert event_names(published)[-2:] == ["booking.cancelled", "agreement.cancelled"]


async def test_stranger_cannot_cancel(session_factory, make_listing, student, other_student):
    property_id, room_type_id = await make_listing()
    booking_id = await request_booking(session_factory, student, property_id, room_type_id)

    async with session_factory() as session:
        with pytest.raises(WrongParty):
            await LifecycleCoordinator(session).cancel_booking(booking_id, other_student)


async def test_terminal_booking_cannot_be_cancelled(session_factory, make_listing, student):
    property_id, room_type_id = await make_listing()
    booking_id = await request_booking(session_factory, student, property_id, room_type_id)

    async with session_factory() as session:
        coordinator = LifecycleCoordinator(session)
        await coordinator.cancel_booking(booking_id, student)
        with pytest.raises(InvalidTransition):
            await coordinator.cancel_booking(booking_id, student)


async def test_leaving_completes_booking_and_frees_the_room(
    session_factory, make_listing, student, owner
):
    property_id, room_type_id = await make_listing(total_rooms=2)
    booking_id = await request_booking(session_factory, student, property_id, room_type_id)
    confirmation = await confirm_booking(session_factory, owner, booking_id)
    assert await available_rooms(session_factory, room_type_id) == 1

    async with session_factory() as session:
        booking = await LifecycleCoordinator(session).leave_room(
            booking_id, student, "Semester over"
        )

    assert booking.status == BookingStatus.COMPLETED
    assert booking.completion_reason == "Semester over"
    assert await available_rooms(session_factory, room_type_id) == 2
    agreement = await load_agreement(session_factory, confirmation.agreement.id)
    assert agreement.status == AgreementStatus.CANCELLED


async def test_pending_booking_cannot_be_left(session_factory, make_listing, student):
    property_id, room_type_id = await make_listing()
    booking_id = await request_booking(session_factory, student, property_id, room_type_id)

    async with session_factory() as session:
        with pytest.raises(InvalidTransition):
            await LifecycleCoordinator(session).leave_room(booking_id, student, "Changed plans")


async def test_finished_booking_allows_a_new_request(
    session_factory, make_listing, student, owner
):
    property_id, room_type_id = await make_listing()
    booking_id = await request_booking(session_factory, student, property_id, room_type_id)
    await confirm_booking(session_factory, owner, booking_id)
    async with session_factory() as session:
        await LifecycleCoordinator(session).leave_room(booking_id, student, "Moving out")

    again = await request_booking(session_factory, student, property_id, room_type_id)

    assert again != booking_id
    assert await log_events(session_factory, booking_id) == [
        LifecycleEvent.BOOKING_CREATED,
        LifecycleEvent.BOOKING_CONFIRMED,
        LifecycleEvent.BOOKING_COMPLETED,
    ]
