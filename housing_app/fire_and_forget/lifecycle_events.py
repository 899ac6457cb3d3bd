import logging
from datetime import datetime, timezone

from core.event_publish import publish_event
from models.enums import AgreementStatus, SignatureParty

logger = logging.getLogger(__name__)


def _booking_payload(booking) -> dict:
    return {
        "booking_id": str(booking.id),
        "student_id": str(booking.student_id),
        "property_id": str(booking.property_id),
        "room_type_id": str(booking.room_type_id) if booking.room_type_id else None,
        "rooms_count": booking.rooms_count,
        "status": booking.status.value,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


def _agreement_payload(agreement) -> dict:
    return {
        "agreement_id": str(agreement.id),
        "agreement_number": agreement.agreement_number,
        "booking_id": str(agreement.booking_id),
        "owner_id": str(agreement.owner_id),
        "student_id": str(agreement.student_id),
        "status": agreement.status.value,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


class LifecycleNotifier:
    """Publishes lifecycle events after the state change is committed.

    Failures are logged and never reach the caller.
    """

    async def _emit(self, event_name: str, data: dict):
        try:
            await publish_event(event_name, data)
        except Exception as e:
            logger.warning(f"Publishing {event_name} failed: {e}")

    async def booking_requested(self, booking):
        await self._emit("booking.requested", _booking_payload(booking))

    async def booking_confirmed(self, booking):
        await self._emit("booking.confirmed", _booking_payload(booking))

    async def booking_rejected(self, booking):
        await self._emit("booking.rejected", _booking_payload(booking))

    async def booking_cancelled(self, booking):
        await self._emit("booking.cancelled", _booking_payload(booking))

    async def booking_completed(self, booking):
        await self._emit("booking.completed", _booking_payload(booking))

    async def agreement_opened(self, agreement):
        await self._emit("agreement.opened", _agreement_payload(agreement))

    async def agreement_signed(self, agreement, party: SignatureParty, activated: bool):
        payload = _agreement_payload(agreement)
        payload["party"] = party.value
        await self._emit("agreement.signed", payload)
        if activated:
            await self._emit("agreement.active", _agreement_payload(agreement))

    async def agreement_amended(self, agreement):
        await self._emit("agreement.amended", _agreement_payload(agreement))

    async def agreement_terminated(self, agreement):
        await self._emit("agreement.terminated", _agreement_payload(agreement))

    async def agreement_cancelled(self, agreement):
        await self._emit("agreement.cancelled", _agreement_payload(agreement))

    async def agreement_expired(self, agreement):
        await self._emit("agreement.expired", _agreement_payload(agreement))

    async def agreement_closed(self, agreement):
        if agreement.status == AgreementStatus.TERMINATED:
            await self.agreement_terminated(agreement)
        elif agreement.status == AgreementStatus.CANCELLED:
            await self.agreement_cancelled(agreement)
