import logging
import uuid
from contextlib import asynccontextmanager, contextmanager
from datetime import date
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from core.entity_lock import entity_locks
from core.lifecycle_errors import (
    Conflict,
    InvalidTransition,
    LifecycleError,
    NotFound,
    OutOfCapacity,
    WrongParty,
)
from core.settings import settings
from fire_and_forget.lifecycle_events import LifecycleNotifier
from models.enums import (
    TERMINAL_AGREEMENT_STATUSES,
    UNSIGNED_AGREEMENT_STATUSES,
    AgreementStatus,
    BookingStatus,
    CapacityFailurePolicy,
)
from models.models import Agreement, Booking, Property
from policy.lifecycle_policy import LifecyclePolicy
from repos.agreement_repo import AgreementRepo
from repos.booking_repo import BookingRepo
from repos.property_repo import PropertyRepo
from repos.room_type_repo import RoomTypeRepo
from schemas.schema import (
    Actor,
    AgreementAmendRequest,
    AgreementOpenRequest,
    AgreementTerms,
    BookingConfirmation,
    BookingCreate,
    SignatureMeta,
    SignOutcome,
)
from services.agreement_service import AgreementService
from services.booking_service import BookingService
from services.room_ledger_service import RoomLedgerService

logger = logging.getLogger(__name__)

BOOKING_SCOPE = "booking"
AGREEMENT_SCOPE = "agreement"
BOOKING_REQUEST_SCOPE = "booking_request"


class LifecycleCoordinator:
    """Single entry point for every booking and agreement mutation.

    Locks are always taken booking -> room_type -> property -> agreement.
    The room-type and property locks live inside the ledger, so agreement
    changes are staged under the agreement lock and committed afterwards by
    the ledger or ``_commit``. A failure after staging discards the staged
    changes.
    Notifications go out only after the commit.
    """

    def __init__(self, db, notifier=None, capacity_policy=None):
        self.db = db
        self.bookings: BookingService = BookingService(db)
        self.agreements: AgreementService = AgreementService(db)
        self.ledger: RoomLedgerService = RoomLedgerService(db)
        self.booking_repo: BookingRepo = BookingRepo(db)
        self.agreement_repo: AgreementRepo = AgreementRepo(db)
        self.property_repo: PropertyRepo = PropertyRepo(db)
        self.room_type_repo: RoomTypeRepo = RoomTypeRepo(db)
        self.notifier: LifecycleNotifier = notifier or LifecycleNotifier()
        self.capacity_policy: CapacityFailurePolicy = (
            capacity_policy or settings.CAPACITY_FAILURE_POLICY
        )
        self.policy = LifecyclePolicy

    @contextmanager
    def _conflicts(self):
        try:
            yield
        except (StaleDataError, IntegrityError) as e:
            logger.warning(f"Concurrent modification rejected: {e}")
            raise Conflict(detail=str(e)) from e

    @asynccontextmanager
    async def _staged(self):
        """Discards whatever the block staged if it fails."""
        try:
            yield
        except LifecycleError:
            await self.db.rollback()
            raise

    async def _commit(self):
        try:
            with self._conflicts():
                await self.db.commit()
        except (LifecycleError, SQLAlchemyError):
            await self.db.rollback()
            raise

    async def _load_booking(self, booking_id: uuid.UUID) -> Booking:
        booking = await self.booking_repo.get_for_update(booking_id)
        if booking is None:
            raise NotFound("Booking not found")
        return booking

    async def _load_property(self, property_id: uuid.UUID) -> Property:
        property = await self.property_repo.get_by_id(property_id)
        if property is None:
            raise NotFound("Property not found")
        return property

    async def _find_agreement(self, agreement_id: uuid.UUID) -> Agreement:
        agreement = await self.agreement_repo.get_by_id(agreement_id)
        if agreement is None:
            raise NotFound("Agreement not found")
        return agreement

    async def _reload_agreement(self, agreement_id: uuid.UUID) -> Agreement:
        agreement = await self.agreement_repo.get_for_update(agreement_id)
        if agreement is None:
            raise NotFound("Agreement not found")
        return agreement

    async def _release(self, booking: Booking):
        with self._conflicts():
            await self.ledger.release(booking.room_type_id, booking.rooms_count)

    # bookings

    async def create_booking(self, actor: Actor, payload: BookingCreate) -> Booking:
        async with entity_locks.hold(
            BOOKING_REQUEST_SCOPE, f"{actor.id}:{payload.property_id}"
        ):
            property = await self._load_property(payload.property_id)
            room_type = await self.room_type_repo.get_by_id(payload.room_type_id)
            if room_type is None:
                raise NotFound("Room type not found")

            booking = await self.bookings.create(
                actor,
                property,
                room_type,
                start_date=payload.start_date,
                end_date=payload.end_date,
                rooms_count=payload.rooms_count,
                members_count=payload.members_count,
            )
            await self._commit()

        await self.notifier.booking_requested(booking)
        return booking

    async def confirm_booking(
        self,
        booking_id: uuid.UUID,
        actor: Actor,
        terms: Optional[AgreementTerms] = None,
    ) -> BookingConfirmation:
        async with entity_locks.hold(BOOKING_SCOPE, booking_id):
            booking = await self._load_booking(booking_id)
            property = await self._load_property(booking.property_id)
            if not self.policy.can_manage_property(property, actor):
                raise WrongParty("Only the property owner can confirm this booking")
            self.bookings.assert_transition(booking, BookingStatus.CONFIRMED)

            agreement = await self.on_booking_confirmed(booking, property, actor, terms)

        await self.notifier.booking_confirmed(booking)
        await self.notifier.agreement_opened(agreement)
        return BookingConfirmation(booking=booking, agreement=agreement)

    async def on_booking_confirmed(
        self,
        booking: Booking,
        property: Property,
        actor: Actor,
        terms: Optional[AgreementTerms] = None,
    ) -> Agreement:
        """Reserve, commit Confirmed, then open the agreement.

        Caller holds the booking lock. A failed open is compensated before
        the original error propagates.
        """
        if booking.room_type_id is None:
            raise InvalidTransition("The room type of this booking no longer exists.")

        booking_id = booking.id
        room_type_id = booking.room_type_id
        rooms_count = booking.rooms_count

        self.bookings.mark_confirmed(booking, actor)
        try:
            with self._conflicts():
                await self.ledger.reserve(room_type_id, rooms_count)
        except OutOfCapacity:
            await self.db.refresh(booking)
            await self._apply_capacity_policy(booking, actor)
            raise

        try:
            room_type = await self.room_type_repo.get_by_id(room_type_id)
            agreement = await self.agreements.open(
                booking, property, room_type, terms, actor
            )
            await self._commit()
        except Exception as exc:
            try:
                await self._compensate_confirmation(
                    booking_id, room_type_id, rooms_count, exc
                )
            except Exception:
                logger.critical(
                    f"Compensation failed for booking {booking_id}", exc_info=True
                )
            raise
        return agreement

    async def _apply_capacity_policy(self, booking: Booking, actor: Actor):
        if self.capacity_policy != CapacityFailurePolicy.AUTO_REJECT:
            logger.info(f"Booking {booking.id} stays Pending: room type is full")
            return

        self.bookings.mark_rejected(
            booking, actor, reason="No rooms of this type are left."
        )
        await self._commit()
        logger.info(f"Booking {booking.id} auto-rejected: room type is full")
        await self.notifier.booking_rejected(booking)

    async def _compensate_confirmation(
        self,
        booking_id: uuid.UUID,
        room_type_id: uuid.UUID,
        rooms_count: int,
        exc: Exception,
    ):
        await self.db.rollback()
        booking = await self._load_booking(booking_id)
        self.bookings.revert_confirmation(
            booking, reason=f"Agreement could not be opened: {type(exc).__name__}"
        )
        with self._conflicts():
            await self.ledger.release(room_type_id, rooms_count)
        logger.warning(
            f"Compensated booking {booking_id}: reverted to Pending and released "
            f"{rooms_count} on room type {room_type_id} after {type(exc).__name__}: {exc}"
        )

    async def reject_booking(
        self, booking_id: uuid.UUID, actor: Actor, reason: Optional[str] = None
    ) -> Booking:
        async with entity_locks.hold(BOOKING_SCOPE, booking_id):
            booking = await self._load_booking(booking_id)
            property = await self._load_property(booking.property_id)
            if not self.policy.can_manage_property(property, actor):
                raise WrongParty("Only the property owner can reject this booking")
            self.bookings.mark_rejected(booking, actor, reason)
            await self._commit()

        await self.notifier.booking_rejected(booking)
        return booking

    async def cancel_booking(
        self, booking_id: uuid.UUID, actor: Actor, reason: Optional[str] = None
    ) -> Booking:
        closed_agreement = None
        async with entity_locks.hold(BOOKING_SCOPE, booking_id):
            booking = await self._load_booking(booking_id)
            property = await self._load_property(booking.property_id)
            is_student = self.policy.is_booking_student(booking, actor)
            is_manager = self.policy.can_manage_property(property, actor)
            if not (is_student or is_manager):
                raise WrongParty("You are not a party to this booking")

            if booking.status == BookingStatus.PENDING:
                self.bookings.mark_cancelled(booking, actor, reason)
                await self._commit()
            elif booking.status == BookingStatus.CONFIRMED:
                if not is_manager:
                    raise InvalidTransition(
                        "A confirmed booking cannot be cancelled. Leave the room instead."
                    )
                closed_agreement = await self.on_booking_terminated(
                    booking, BookingStatus.CANCELLED, actor, reason
                )
            else:
                self.bookings.assert_transition(booking, BookingStatus.CANCELLED)

        await self.notifier.booking_cancelled(booking)
        if closed_agreement is not None:
            await self.notifier.agreement_closed(closed_agreement)
        return booking

    async def leave_room(
        self, booking_id: uuid.UUID, actor: Actor, reason: Optional[str] = None
    ) -> Booking:
        async with entity_locks.hold(BOOKING_SCOPE, booking_id):
            booking = await self._load_booking(booking_id)
            property = await self._load_property(booking.property_id)
            if not (
                self.policy.is_booking_student(booking, actor)
                or self.policy.can_manage_property(property, actor)
            ):
                raise WrongParty("You are not a party to this booking")
            if booking.status != BookingStatus.CONFIRMED:
                raise InvalidTransition(
                    f"Only a confirmed booking can be left, this one is {booking.status.value}."
                )
            closed_agreement = await self.on_booking_terminated(
                booking, BookingStatus.COMPLETED, actor, reason
            )

        await self.notifier.booking_completed(booking)
        if closed_agreement is not None:
            await self.notifier.agreement_closed(closed_agreement)
        return booking

    async def on_booking_terminated(
        self,
        booking: Booking,
        final_status: BookingStatus,
        actor: Optional[Actor],
        reason: Optional[str] = None,
    ) -> Optional[Agreement]:
        """Close a booking, its agreement and its capacity in one commit.

        Caller holds the booking lock. Returns the agreement it closed, if any.
        """
        was_confirmed = booking.status == BookingStatus.CONFIRMED
        async with self._staged():
            if final_status == BookingStatus.COMPLETED:
                self.bookings.mark_completed(booking, actor, reason)
            else:
                self.bookings.mark_cancelled(booking, actor, reason)

            agreement = await self._close_agreement(booking, actor, reason)

            if was_confirmed and booking.room_type_id is not None:
                await self._release(booking)
            else:
                await self._commit()
        return agreement

    async def _close_agreement(
        self, booking: Booking, actor: Optional[Actor], reason: Optional[str]
    ) -> Optional[Agreement]:
        agreement = await self.agreement_repo.get_open_for_booking(booking.id)
        if agreement is None:
            return None

        async with entity_locks.hold(AGREEMENT_SCOPE, agreement.id):
            agreement = await self._reload_agreement(agreement.id)
            if agreement.status in TERMINAL_AGREEMENT_STATUSES:
                return None
            if agreement.status == AgreementStatus.ACTIVE:
                self.agreements.terminate(agreement, actor, reason, check_party=False)
            elif agreement.status in UNSIGNED_AGREEMENT_STATUSES:
                self.agreements.cancel(agreement, actor, reason, check_party=False)
        return agreement

    # agreements

    async def open_agreement(
        self, actor: Actor, payload: AgreementOpenRequest
    ) -> Agreement:
        async with entity_locks.hold(BOOKING_SCOPE, payload.booking_id):
            booking = await self._load_booking(payload.booking_id)
            property = await self._load_property(booking.property_id)
            if not self.policy.can_manage_property(property, actor):
                raise WrongParty("Only the property owner can open an agreement")

            room_type = None
            if booking.room_type_id is not None:
                room_type = await self.room_type_repo.get_by_id(booking.room_type_id)
            terms = AgreementTerms(**payload.model_dump(exclude={"booking_id"}))
            agreement = await self.agreements.open(
                booking, property, room_type, terms, actor
            )
            await self._commit()

        await self.notifier.agreement_opened(agreement)
        return agreement

    async def sign_agreement(
        self,
        agreement_id: uuid.UUID,
        actor: Actor,
        meta: Optional[SignatureMeta] = None,
        today: Optional[date] = None,
    ) -> SignOutcome:
        found = await self._find_agreement(agreement_id)

        async with entity_locks.hold(BOOKING_SCOPE, found.booking_id):
            async with entity_locks.hold(AGREEMENT_SCOPE, agreement_id):
                agreement = await self._reload_agreement(agreement_id)
                property = await self._load_property(agreement.property_id)
                outcome = self.agreements.sign(
                    agreement,
                    actor,
                    meta,
                    signing_order=property.signing_order,
                    today=today,
                )
                if not outcome.already_signed:
                    await self._commit()

        if not outcome.already_signed:
            await self.notifier.agreement_signed(
                outcome.agreement, outcome.party, outcome.activated
            )
        return outcome

    async def terminate_agreement(
        self, agreement_id: uuid.UUID, actor: Actor, reason: Optional[str] = None
    ) -> Agreement:
        found = await self._find_agreement(agreement_id)

        async with entity_locks.hold(BOOKING_SCOPE, found.booking_id):
            async with entity_locks.hold(AGREEMENT_SCOPE, agreement_id):
                agreement = await self._reload_agreement(agreement_id)
                self.agreements.terminate(agreement, actor, reason)

            async with self._staged():
                booking = await self._load_booking(agreement.booking_id)
                booking_completed = booking.status == BookingStatus.CONFIRMED
                if booking_completed:
                    self.bookings.mark_completed(booking, actor, reason)
                    await self._release(booking)
                else:
                    await self._commit()

        await self.notifier.agreement_terminated(agreement)
        if booking_completed:
            await self.notifier.booking_completed(booking)
        return agreement

    async def cancel_agreement(
        self, agreement_id: uuid.UUID, actor: Actor, reason: Optional[str] = None
    ) -> Agreement:
        found = await self._find_agreement(agreement_id)

        async with entity_locks.hold(BOOKING_SCOPE, found.booking_id):
            async with entity_locks.hold(AGREEMENT_SCOPE, agreement_id):
                agreement = await self._reload_agreement(agreement_id)
                self.agreements.cancel(agreement, actor, reason)
                await self._commit()

        await self.notifier.agreement_cancelled(agreement)
        return agreement

    async def amend_agreement(
        self, agreement_id: uuid.UUID, actor: Actor, changes: AgreementAmendRequest
    ) -> Agreement:
        found = await self._find_agreement(agreement_id)

        async with entity_locks.hold(BOOKING_SCOPE, found.booking_id):
            async with entity_locks.hold(AGREEMENT_SCOPE, agreement_id):
                agreement = await self._reload_agreement(agreement_id)
                self.agreements.amend(agreement, actor, changes)
                await self._commit()

        await self.notifier.agreement_amended(agreement)
        return agreement

    async def expire_agreement(
        self,
        agreement_id: uuid.UUID,
        today: Optional[date] = None,
        actor: Optional[Actor] = None,
    ) -> Agreement:
        if actor is not None and not actor.is_admin:
            raise WrongParty("Only an admin can expire agreements")
        found = await self._find_agreement(agreement_id)
        booking_completed = False

        async with entity_locks.hold(BOOKING_SCOPE, found.booking_id):
            async with entity_locks.hold(AGREEMENT_SCOPE, agreement_id):
                agreement = await self._reload_agreement(agreement_id)
                changed = self.agreements.expire(agreement, today)
            if not changed:
                return agreement

            async with self._staged():
                booking = await self._load_booking(agreement.booking_id)
                booking_completed = booking.status == BookingStatus.CONFIRMED
                if booking_completed:
                    self.bookings.mark_completed(booking, None, "Agreement expired")
                    await self._release(booking)
                else:
                    await self._commit()

        await self.notifier.agreement_expired(agreement)
        if booking_completed:
            await self.notifier.booking_completed(booking)
        return agreement
