import logging
import uuid
from datetime import date
from typing import Dict, List, Optional, Set

from core.date_helper import utcnow
from core.lifecycle_errors import (
    BookingValidationError,
    Conflict,
    InvalidTransition,
    NotFound,
    WrongParty,
)
from models.enums import (
    ActorRole,
    BookingStatus,
    LifecycleEntity,
    LifecycleEvent,
)
from models.models import Booking, Property, RoomType
from policy.lifecycle_policy import LifecyclePolicy
from repos.booking_repo import BookingRepo
from repos.lifecycle_log_repo import LifecycleLogRepo
from repos.property_repo import PropertyRepo
from schemas.schema import Actor

logger = logging.getLogger(__name__)

TRANSITIONS: Dict[BookingStatus, Set[BookingStatus]] = {
    BookingStatus.PENDING: {
        BookingStatus.CONFIRMED,
        BookingStatus.REJECTED,
        BookingStatus.CANCELLED,
    },
    BookingStatus.CONFIRMED: {BookingStatus.COMPLETED, BookingStatus.CANCELLED},
    BookingStatus.REJECTED: set(),
    BookingStatus.CANCELLED: set(),
    BookingStatus.COMPLETED: set(),
}

EVENT_FOR_STATUS = {
    BookingStatus.CONFIRMED: LifecycleEvent.BOOKING_CONFIRMED,
    BookingStatus.REJECTED: LifecycleEvent.BOOKING_REJECTED,
    BookingStatus.CANCELLED: LifecycleEvent.BOOKING_CANCELLED,
    BookingStatus.COMPLETED: LifecycleEvent.BOOKING_COMPLETED,
}


class BookingService:
    """Booking state machine.

    Every ``mark_*`` method only stages the change on the session; the
    coordinator decides when the unit of work commits.
    """

    def __init__(self, db):
        self.repo: BookingRepo = BookingRepo(db)
        self.properties: PropertyRepo = PropertyRepo(db)
        self.logs: LifecycleLogRepo = LifecycleLogRepo(db)
        self.policy = LifecyclePolicy

    @staticmethod
    def can_transition(current: BookingStatus, target: BookingStatus) -> bool:
        return target in TRANSITIONS.get(current, set())

    def assert_transition(self, booking: Booking, target: BookingStatus):
        if not self.can_transition(booking.status, target):
            raise InvalidTransition(
                f"Cannot move a {booking.status.value} booking to {target.value}.",
            )

    def _record(
        self,
        booking: Booking,
        event: LifecycleEvent,
        actor_id: Optional[uuid.UUID],
        old_status: Optional[BookingStatus],
        extra: dict | None = None,
    ):
        new_value = {"status": booking.status.value}
        if extra:
            new_value.update(extra)
        self.logs.add(
            entity_type=LifecycleEntity.BOOKING,
            entity_id=booking.id,
            event=event,
            actor_id=actor_id,
            old_value={"status": old_status.value} if old_status else None,
            new_value=new_value,
        )

    def _move(
        self,
        booking: Booking,
        target: BookingStatus,
        actor_id: Optional[uuid.UUID],
        extra: dict | None = None,
    ):
        self.assert_transition(booking, target)
        old_status = booking.status
        booking.status = target
        self._record(booking, EVENT_FOR_STATUS[target], actor_id, old_status, extra)
        logger.info(f"Booking {booking.id}: {old_status.value} -> {target.value}")

    async def create(
        self,
        actor: Actor,
        property: Property,
        room_type: RoomType,
        start_date: date,
        end_date: date,
        rooms_count: int = 1,
        members_count: int = 1,
    ) -> Booking:
        if actor.role != ActorRole.STUDENT:
            raise WrongParty("Only students can request a booking")
        if room_type.property_id != property.id:
            raise BookingValidationError("Room type does not belong to this property.")
        if end_date <= start_date:
            raise BookingValidationError("End date must be after the start date.")
        if rooms_count < 1 or members_count < 1:
            raise BookingValidationError("Rooms and members must be at least 1.")
        if rooms_count > room_type.total_rooms:
            raise BookingValidationError(
                f"This room type only has {room_type.total_rooms} rooms."
            )
        if members_count > rooms_count * room_type.max_occupancy:
            raise BookingValidationError(
                f"{rooms_count} room(s) of this type hold at most "
                f"{rooms_count * room_type.max_occupancy} members."
            )
        if await self.repo.has_active_for_student_property(actor.id, property.id):
            raise Conflict("You already have an active booking for this property.")

        booking = Booking(
            id=uuid.uuid4(),
            student_id=actor.id,
            property_id=property.id,
            room_type_id=room_type.id,
            rooms_count=rooms_count,
            members_count=members_count,
            start_date=start_date,
            end_date=end_date,
            status=BookingStatus.PENDING,
        )
        self.repo.add(booking)
        self._record(booking, LifecycleEvent.BOOKING_CREATED, actor.id, None)
        return booking

    def mark_confirmed(self, booking: Booking, actor: Actor):
        self._move(booking, BookingStatus.CONFIRMED, actor.id)
        booking.decided_by_id = actor.id
        booking.decided_at = utcnow()

    def mark_rejected(
        self, booking: Booking, actor: Optional[Actor], reason: Optional[str] = None
    ):
        actor_id = actor.id if actor else None
        self._move(booking, BookingStatus.REJECTED, actor_id, {"reason": reason})
        booking.decided_by_id = actor_id
        booking.decided_at = utcnow()
        booking.cancellation_reason = reason

    def mark_cancelled(
        self, booking: Booking, actor: Optional[Actor], reason: Optional[str] = None
    ):
        self._move(
            booking,
            BookingStatus.CANCELLED,
            actor.id if actor else None,
            {"reason": reason},
        )
        booking.cancelled_at = utcnow()
        booking.cancellation_reason = reason

    def mark_completed(
        self, booking: Booking, actor: Optional[Actor], reason: Optional[str] = None
    ):
        self._move(
            booking,
            BookingStatus.COMPLETED,
            actor.id if actor else None,
            {"reason": reason},
        )
        booking.completed_at = utcnow()
        booking.completion_reason = reason

    def revert_confirmation(self, booking: Booking, reason: str):
        """Compensation only: undo a confirmation whose follow-up failed."""
        if booking.status != BookingStatus.CONFIRMED:
            raise InvalidTransition(
                f"Cannot revert a {booking.status.value} booking to Pending."
            )
        booking.status = BookingStatus.PENDING
        booking.decided_by_id = None
        booking.decided_at = None
        self.logs.add(
            entity_type=LifecycleEntity.BOOKING,
            entity_id=booking.id,
            event=LifecycleEvent.COMPENSATION_APPLIED,
            old_value={"status": BookingStatus.CONFIRMED.value},
            new_value={"status": BookingStatus.PENDING.value, "reason": reason},
        )

    async def get_visible(self, booking_id: uuid.UUID, actor: Actor) -> Booking:
        booking = await self.repo.get_by_id(booking_id)
        if booking is None:
            raise NotFound("Booking not found")
        property = await self.properties.get_by_id(booking.property_id)
        if not self.policy.can_view_booking(booking, property, actor):
            raise NotFound("Booking not found")
        return booking

    async def list_mine(
        self, actor: Actor, status: Optional[BookingStatus] = None
    ) -> List[Booking]:
        return await self.repo.list_for_student(actor.id, status)

    async def list_for_owner(
        self, actor: Actor, status: Optional[BookingStatus] = None
    ) -> List[Booking]:
        if actor.role not in {ActorRole.OWNER, ActorRole.ADMIN}:
            raise WrongParty("Only property owners can list owner bookings")
        return await self.repo.list_for_owner(actor.id, status)
