import secrets
import string

from sqlalchemy import event, select

from core.date_helper import agreement_period
from core.lifecycle_errors import Conflict
from core.settings import settings

from .models import Agreement, Property, RoomType

AGREEMENT_SUFFIX_ALPHABET = string.ascii_uppercase + string.digits
AGREEMENT_NUMBER_ATTEMPTS = 10


def generate_agreement_number() -> str:
    suffix = "".join(secrets.choice(AGREEMENT_SUFFIX_ALPHABET) for _ in range(6))
    return f"{settings.AGREEMENT_NUMBER_PREFIX}-{agreement_period()}-{suffix}"


@event.listens_for(Agreement, "before_insert")
def set_agreement_number(mapper, connection, target: Agreement):
    if target.agreement_number:
        return

    table = Agreement.__table__
    for _ in range(AGREEMENT_NUMBER_ATTEMPTS):
        candidate = generate_agreement_number()
        taken = connection.execute(
            select(table.c.id).where(table.c.agreement_number == candidate)
        ).first()
        if taken is None:
            target.agreement_number = candidate
            return
    raise Conflict(
        detail=f"No free agreement number after {AGREEMENT_NUMBER_ATTEMPTS} attempts"
    )


@event.listens_for(Property, "before_insert")
@event.listens_for(Property, "before_update")
def normalize_title(mapper, connection, target: Property):
    if target.title:
        target.title = target.title.strip()


@event.listens_for(RoomType, "before_insert")
@event.listens_for(RoomType, "before_update")
def normalize_room_name(mapper, connection, target: RoomType):
    if target.name:
        target.name = target.name.strip()
