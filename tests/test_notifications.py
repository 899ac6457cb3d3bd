from models.enums import AgreementStatus, BookingStatus

from tests.helpers import (
    available_rooms,
    confirm_booking,
    load_agreement,
    load_booking,
    request_booking,
    sign,
)


async def test_broken_publisher_never_undoes_a_transition(
    session_factory, make_listing, student, owner, monkeypatch
):
    async def unreachable_broker(event_name, data):
        raise ConnectionError("broker down")

    monkeypatch.setattr(
        "fire_and_forget.lifecycle_events.publish_event", unreachable_broker
    )
    property_id, room_type_id = await make_listing(total_rooms=1)

    booking_id = await request_booking(session_factory, student, property_id, room_type_id)
    confirmation = await confirm_booking(session_factory, owner, booking_id)
    await sign(session_factory, owner, confirmation.agreement.id)
    outcome = await sign(session_factory, student, confirmation.agreement.id)

    assert outcome.activated
    assert (await load_booking(session_factory, booking_id)).status == BookingStatus.CONFIRMED
    agreement = await load_agreement(session_factory, confirmation.agreement.id)
    assert agreement.status == AgreementStatus.ACTIVE
    assert await available_rooms(session_factory, room_type_id) == 0


async def test_events_carry_identifiers(session_factory, make_listing, student, owner, published):
    property_id, room_type_id = await make_listing()
    booking_id = await request_booking(session_factory, student, property_id, room_type_id)
    confirmation = await confirm_booking(session_factory, owner, booking_id)
    await sign(session_factory, student, confirmation.agreement.id)

    payloads = dict(published)
    assert payloads["booking.confirmed"]["booking_id"] == str(booking_id)
    assert payloads["booking.confirmed"]["status"] == BookingStatus.CONFIRMED.value
    assert payloads["agreement.opened"]["agreement_id"] == str(confirmation.agreement.id)
    assert payloads["agreement.signed"]["party"] == "student"
    assert payloads["agreement.signed"]["status"] == AgreementStatus.PENDING_OWNER.value
