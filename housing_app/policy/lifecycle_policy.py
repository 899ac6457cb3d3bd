from typing import Optional

from models.enums import ActorRole, SignatureParty
from models.models import Agreement, Booking, Property
from schemas.schema import Actor


class LifecyclePolicy:
    @staticmethod
    def can_manage_property(property: Property, actor: Actor) -> bool:
        if actor.is_admin:
            return True
        return actor.role == ActorRole.OWNER and property.owner_id == actor.id

    @staticmethod
    def is_booking_student(booking: Booking, actor: Actor) -> bool:
        return actor.role == ActorRole.STUDENT and booking.student_id == actor.id

    @staticmethod
    def can_view_booking(booking: Booking, property: Property, actor: Actor) -> bool:
        return booking.student_id == actor.id or LifecyclePolicy.can_manage_property(
            property, actor
        )

    @staticmethod
    def agreement_party(agreement: Agreement, actor: Actor) -> Optional[SignatureParty]:
        if actor.id == agreement.owner_id and actor.role in {
            ActorRole.OWNER,
            ActorRole.ADMIN,
        }:
            return SignatureParty.OWNER
        if actor.id == agreement.student_id and actor.role == ActorRole.STUDENT:
            return SignatureParty.STUDENT
        return None

    @staticmethod
    def can_view_agreement(agreement: Agreement, actor: Actor) -> bool:
        return actor.is_admin or actor.id in {agreement.owner_id, agreement.student_id}

    @staticmethod
    def can_administer_agreement(agreement: Agreement, actor: Actor) -> bool:
        return actor.is_admin or (
            actor.role == ActorRole.OWNER and actor.id == agreement.owner_id
        )
