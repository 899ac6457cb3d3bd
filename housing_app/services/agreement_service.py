import logging
import uuid
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional, Set

from core.date_helper import utc_today, utcnow
from core.lifecycle_errors import (
    AgreementExpired,
    BookingValidationError,
    Conflict,
    InvalidTransition,
    NotFound,
    WrongParty,
)
from core.settings import settings
from models.enums import (
    UNSIGNED_AGREEMENT_STATUSES,
    AgreementStatus,
    BookingStatus,
    LifecycleEntity,
    LifecycleEvent,
    SignatureParty,
    SigningOrder,
)
from models.models import Agreement, Booking, Property, RoomType
from policy.lifecycle_policy import LifecyclePolicy
from repos.agreement_repo import AgreementRepo
from repos.lifecycle_log_repo import LifecycleLogRepo
from schemas.schema import (
    Actor,
    AgreementAmendRequest,
    AgreementTerms,
    SignatureMeta,
    SignOutcome,
)

logger = logging.getLogger(__name__)

TRANSITIONS: Dict[AgreementStatus, Set[AgreementStatus]] = {
    AgreementStatus.DRAFT: {
        AgreementStatus.PENDING_STUDENT,
        AgreementStatus.PENDING_OWNER,
        AgreementStatus.CANCELLED,
    },
    AgreementStatus.PENDING_STUDENT: {
        AgreementStatus.ACTIVE,
        AgreementStatus.DRAFT,
        AgreementStatus.CANCELLED,
    },
    AgreementStatus.PENDING_OWNER: {
        AgreementStatus.ACTIVE,
        AgreementStatus.DRAFT,
        AgreementStatus.CANCELLED,
    },
    AgreementStatus.ACTIVE: {AgreementStatus.EXPIRED, AgreementStatus.TERMINATED},
    AgreementStatus.EXPIRED: set(),
    AgreementStatus.TERMINATED: set(),
    AgreementStatus.CANCELLED: set(),
}

DEFAULT_TERMS = [
    {
        "title": "Payment Terms",
        "description": "Rent is due on the 1st of every month with a 5 day grace "
        "period. Late payment attracts a penalty of 2% per week.",
    },
    {
        "title": "Security Deposit",
        "description": "The deposit is refunded within 30 days of moving out, "
        "less any damages or outstanding dues.",
    },
    {
        "title": "Maintenance",
        "description": "The student handles day-to-day upkeep. The owner handles "
        "major repairs.",
    },
    {
        "title": "Utilities",
        "description": "Electricity and water are billed separately on actual "
        "consumption.",
    },
    {
        "title": "Visitors",
        "description": "Overnight guests must be announced to the owner in advance. "
        "Subletting is not allowed.",
    },
]

DEFAULT_RULES = [
    "No smoking inside the premises",
    "No illegal activities",
    "Keep rooms and shared spaces clean",
    "Quiet hours from 10 PM to 7 AM",
    "No structural changes without the owner's permission",
    "Pets only as allowed by the property rules",
]

AMENDABLE_FIELDS = (
    "monthly_rent",
    "security_deposit",
    "maintenance_charges",
    "notice_period_days",
    "terms",
    "rules",
    "included_services",
    "notes",
    "start_date",
    "end_date",
)


def derive_status(owner_signed: bool, student_signed: bool) -> AgreementStatus:
    if owner_signed and student_signed:
        return AgreementStatus.ACTIVE
    if owner_signed:
        return AgreementStatus.PENDING_STUDENT
    if student_signed:
        return AgreementStatus.PENDING_OWNER
    return AgreementStatus.DRAFT


def _jsonable(value):
    if isinstance(value, (Decimal, date, uuid.UUID)):
        return str(value)
    return value


class AgreementService:
    """Dual-signature agreement state machine.

    Like the booking machine, every mutation is staged on the session and
    committed by the coordinator.
    """

    def __init__(self, db):
        self.repo: AgreementRepo = AgreementRepo(db)
        self.logs: LifecycleLogRepo = LifecycleLogRepo(db)
        self.policy = LifecyclePolicy

    @staticmethod
    def can_transition(current: AgreementStatus, target: AgreementStatus) -> bool:
        return target in TRANSITIONS.get(current, set())

    def _assert_transition(self, agreement: Agreement, target: AgreementStatus):
        if not self.can_transition(agreement.status, target):
            raise InvalidTransition(
                f"Cannot move a {agreement.status.value} agreement to {target.value}."
            )

    def _record(
        self,
        agreement: Agreement,
        event: LifecycleEvent,
        actor_id: Optional[uuid.UUID],
        old_value: dict | None,
        new_value: dict | None,
    ):
        self.logs.add(
            entity_type=LifecycleEntity.AGREEMENT,
            entity_id=agreement.id,
            event=event,
            actor_id=actor_id,
            old_value=old_value,
            new_value=new_value,
        )

    @staticmethod
    def default_rent(booking: Booking, room_type: RoomType) -> Decimal:
        if room_type.price_per_bed and room_type.price_per_bed > 0:
            return Decimal(room_type.price_per_bed) * booking.members_count
        return Decimal(room_type.price_per_room or 0) * booking.rooms_count

    async def open(
        self,
        booking: Booking,
        property: Property,
        room_type: Optional[RoomType],
        terms: Optional[AgreementTerms] = None,
        actor: Optional[Actor] = None,
    ) -> Agreement:
        if booking.status != BookingStatus.CONFIRMED:
            raise InvalidTransition("Agreements can only be opened for confirmed bookings.")
        if await self.repo.get_open_for_booking(booking.id) is not None:
            raise Conflict("An agreement already exists for this booking.")

        terms = terms or AgreementTerms()
        if terms.monthly_rent is not None:
            monthly_rent = terms.monthly_rent
        elif room_type is not None:
            monthly_rent = self.default_rent(booking, room_type)
        else:
            raise BookingValidationError("Monthly rent is required for this booking.")

        security_deposit = terms.security_deposit
        if security_deposit is None:
            security_deposit = monthly_rent * settings.SECURITY_DEPOSIT_MONTHS

        notice_period_days = terms.notice_period_days
        if notice_period_days is None:
            notice_period_days = settings.DEFAULT_NOTICE_PERIOD_DAYS

        agreement = Agreement(
            id=uuid.uuid4(),
            booking_id=booking.id,
            property_id=property.id,
            owner_id=property.owner_id,
            student_id=booking.student_id,
            agreement_type=terms.agreement_type,
            status=AgreementStatus.DRAFT,
            start_date=booking.start_date,
            end_date=booking.end_date,
            monthly_rent=monthly_rent,
            security_deposit=security_deposit,
            maintenance_charges=terms.maintenance_charges,
            notice_period_days=notice_period_days,
            terms=(
                [clause.model_dump() for clause in terms.terms]
                if terms.terms is not None
                else [dict(clause) for clause in DEFAULT_TERMS]
            ),
            rules=list(terms.rules) if terms.rules is not None else list(DEFAULT_RULES),
            included_services=list(terms.included_services),
            notes=terms.notes,
        )
        self.repo.add(agreement)
        self._record(
            agreement,
            LifecycleEvent.AGREEMENT_OPENED,
            actor.id if actor else None,
            None,
            {"status": agreement.status.value, "booking_id": str(booking.id)},
        )
        logger.info(f"Opened agreement {agreement.id} for booking {booking.id}")
        return agreement

    @staticmethod
    def _check_order(agreement: Agreement, party: SignatureParty, order: SigningOrder):
        if (
            order == SigningOrder.OWNER_FIRST
            and party == SignatureParty.STUDENT
            and not agreement.owner_signed
        ):
            raise InvalidTransition("The owner must sign this agreement first.")
        if (
            order == SigningOrder.STUDENT_FIRST
            and party == SignatureParty.OWNER
            and not agreement.student_signed
        ):
            raise InvalidTransition("The student must sign this agreement first.")

    def sign(
        self,
        agreement: Agreement,
        actor: Actor,
        meta: Optional[SignatureMeta] = None,
        signing_order: Optional[SigningOrder] = None,
        today: Optional[date] = None,
    ) -> SignOutcome:
        party = self.policy.agreement_party(agreement, actor)
        if party is None:
            raise WrongParty()

        if agreement.status == AgreementStatus.EXPIRED:
            raise AgreementExpired()
        if agreement.status in {AgreementStatus.TERMINATED, AgreementStatus.CANCELLED}:
            raise InvalidTransition(
                f"A {agreement.status.value} agreement can no longer be signed."
            )

        if agreement.is_signed_by(party):
            return SignOutcome(
                agreement=agreement, party=party, already_signed=True, activated=False
            )

        today = today or utc_today()
        if agreement.end_date < today:
            raise AgreementExpired(detail=f"Agreement {agreement.id} ended {agreement.end_date}")

        self._check_order(
            agreement, party, signing_order or settings.DEFAULT_SIGNING_ORDER
        )

        meta = meta or SignatureMeta()
        signed_at = utcnow()
        signature_data = meta.signature_data or f"Digitally signed by {actor.id}"
        prefix = party.value
        setattr(agreement, f"{prefix}_signed", True)
        setattr(agreement, f"{prefix}_signed_at", signed_at)
        setattr(agreement, f"{prefix}_signature_data", signature_data)
        setattr(agreement, f"{prefix}_signature_ip", meta.ip_address)
        setattr(agreement, f"{prefix}_signature_user_agent", meta.user_agent)

        old_status = agreement.status
        new_status = derive_status(agreement.owner_signed, agreement.student_signed)
        self._assert_transition(agreement, new_status)
        agreement.status = new_status

        self._record(
            agreement,
            LifecycleEvent.AGREEMENT_SIGNED,
            actor.id,
            {"status": old_status.value},
            {"status": new_status.value, "party": party.value},
        )
        logger.info(
            f"Agreement {agreement.id} signed by {party.value}: "
            f"{old_status.value} -> {new_status.value}"
        )
        return SignOutcome(
            agreement=agreement,
            party=party,
            already_signed=False,
            activated=new_status == AgreementStatus.ACTIVE,
        )

    def terminate(
        self,
        agreement: Agreement,
        actor: Optional[Actor],
        reason: Optional[str],
        check_party: bool = True,
    ):
        if check_party and not (
            actor is not None
            and (actor.is_admin or self.policy.agreement_party(agreement, actor))
        ):
            raise WrongParty()
        if agreement.status != AgreementStatus.ACTIVE:
            raise InvalidTransition("Only active agreements can be terminated.")

        agreement.status = AgreementStatus.TERMINATED
        agreement.terminated_by_id = actor.id if actor else None
        agreement.termination_reason = reason
        agreement.terminated_at = utcnow()
        self._record(
            agreement,
            LifecycleEvent.AGREEMENT_TERMINATED,
            actor.id if actor else None,
            {"status": AgreementStatus.ACTIVE.value},
            {"status": agreement.status.value, "reason": reason},
        )
        logger.info(f"Agreement {agreement.id} terminated")

    def cancel(
        self,
        agreement: Agreement,
        actor: Optional[Actor],
        reason: Optional[str],
        check_party: bool = True,
    ):
        if check_party and not (
            actor is not None
            and self.policy.can_administer_agreement(agreement, actor)
        ):
            raise WrongParty("Only the owner or an admin can cancel this agreement")
        if agreement.status == AgreementStatus.ACTIVE:
            raise InvalidTransition(
                "Cannot cancel an active agreement. Use terminate instead."
            )
        if agreement.status not in UNSIGNED_AGREEMENT_STATUSES:
            raise InvalidTransition(
                f"A {agreement.status.value} agreement cannot be cancelled."
            )

        old_status = agreement.status
        agreement.status = AgreementStatus.CANCELLED
        agreement.cancellation_reason = reason
        agreement.cancelled_at = utcnow()
        self._record(
            agreement,
            LifecycleEvent.AGREEMENT_CANCELLED,
            actor.id if actor else None,
            {"status": old_status.value},
            {"status": agreement.status.value, "reason": reason},
        )
        logger.info(f"Agreement {agreement.id} cancelled from {old_status.value}")

    def is_due_for_expiry(self, agreement: Agreement, today: Optional[date] = None) -> bool:
        today = today or utc_today()
        return agreement.status == AgreementStatus.ACTIVE and agreement.end_date < today

    def expire(self, agreement: Agreement, today: Optional[date] = None) -> bool:
        """Returns False when the agreement had already expired."""
        if agreement.status == AgreementStatus.EXPIRED:
            return False
        if agreement.status != AgreementStatus.ACTIVE:
            raise InvalidTransition(
                f"A {agreement.status.value} agreement cannot expire."
            )
        if not self.is_due_for_expiry(agreement, today):
            raise InvalidTransition(
                f"Agreement runs until {agreement.end_date} and has not expired yet."
            )

        agreement.status = AgreementStatus.EXPIRED
        agreement.expired_at = utcnow()
        self._record(
            agreement,
            LifecycleEvent.AGREEMENT_EXPIRED,
            None,
            {"status": AgreementStatus.ACTIVE.value},
            {"status": agreement.status.value},
        )
        logger.info(f"Agreement {agreement.id} expired")
        return True

    def amend(
        self, agreement: Agreement, actor: Actor, changes: AgreementAmendRequest
    ) -> Agreement:
        if actor.id != agreement.owner_id:
            raise WrongParty("Only the owner can amend this agreement")
        if agreement.status not in UNSIGNED_AGREEMENT_STATUSES:
            raise InvalidTransition(
                f"A {agreement.status.value} agreement can no longer be amended."
            )

        updates = changes.model_dump(exclude_unset=True, exclude_none=True)
        if not updates:
            raise BookingValidationError("Nothing to amend.")

        start_date = updates.get("start_date", agreement.start_date)
        end_date = updates.get("end_date", agreement.end_date)
        if end_date <= start_date:
            raise BookingValidationError("End date must be after the start date.")

        old_value = {
            field: _jsonable(getattr(agreement, field))
            for field in AMENDABLE_FIELDS
            if field in updates
        }
        for field in AMENDABLE_FIELDS:
            if field in updates:
                setattr(agreement, field, updates[field])

        # Changed terms must be accepted again by the student.
        if agreement.student_signed:
            agreement.student_signed = False
            agreement.student_signed_at = None
            agreement.student_signature_data = None
            agreement.student_signature_ip = None
            agreement.student_signature_user_agent = None

        old_status = agreement.status
        agreement.status = derive_status(agreement.owner_signed, agreement.student_signed)

        new_value = {field: _jsonable(updates[field]) for field in old_value}
        old_value["status"] = old_status.value
        new_value["status"] = agreement.status.value
        self._record(
            agreement, LifecycleEvent.AGREEMENT_AMENDED, actor.id, old_value, new_value
        )
        logger.info(f"Agreement {agreement.id} amended by {actor.id}")
        return agreement

    async def get_visible(self, agreement_id: uuid.UUID, actor: Actor) -> Agreement:
        agreement = await self.repo.get_by_id(agreement_id)
        if agreement is None or not self.policy.can_view_agreement(agreement, actor):
            raise NotFound("Agreement not found")
        return agreement

    async def get_for_booking(self, booking_id: uuid.UUID, actor: Actor) -> Agreement:
        agreement = await self.repo.get_open_for_booking(booking_id)
        if agreement is None:
            agreement = await self.repo.get_latest_for_booking(booking_id)
        if agreement is None or not self.policy.can_view_agreement(agreement, actor):
            raise NotFound("Agreement not found")
        return agreement

    async def list_mine(
        self,
        actor: Actor,
        party: Optional[SignatureParty] = None,
        status: Optional[AgreementStatus] = None,
    ) -> List[Agreement]:
        return await self.repo.list_for_actor(actor.id, party, status)

