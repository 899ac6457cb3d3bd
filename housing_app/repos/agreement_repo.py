import uuid
from datetime import date
from typing import List, Optional

from sqlalchemy import or_, select

import models.event_listener  # noqa: F401  registers agreement numbering
from models.enums import AgreementStatus, SignatureParty
from models.models import Agreement


class AgreementRepo:
    def __init__(self, db):
        self.db = db

    async def get_by_id(self, agreement_id: uuid.UUID) -> Optional[Agreement]:
        result = await self.db.execute(
            select(Agreement).where(Agreement.id == agreement_id)
        )
        return result.scalar_one_or_none()

    async def get_for_update(self, agreement_id: uuid.UUID) -> Optional[Agreement]:
        result = await self.db.execute(
            select(Agreement)
            .where(Agreement.id == agreement_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_open_for_booking(
        self, booking_id: uuid.UUID, for_update: bool = False
    ) -> Optional[Agreement]:
        stmt = select(Agreement).where(
            Agreement.booking_id == booking_id,
            Agreement.status != AgreementStatus.CANCELLED,
        )
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_latest_for_booking(self, booking_id: uuid.UUID) -> Optional[Agreement]:
        result = await self.db.execute(
            select(Agreement)
            .where(Agreement.booking_id == booking_id)
            .order_by(Agreement.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def list_for_actor(
        self,
        actor_id: uuid.UUID,
        party: Optional[SignatureParty] = None,
        status: Optional[AgreementStatus] = None,
    ) -> List[Agreement]:
        if party == SignatureParty.OWNER:
            stmt = select(Agreement).where(Agreement.owner_id == actor_id)
        elif party == SignatureParty.STUDENT:
            stmt = select(Agreement).where(Agreement.student_id == actor_id)
        else:
            stmt = select(Agreement).where(
                or_(Agreement.owner_id == actor_id, Agreement.student_id == actor_id)
            )
        if status is not None:
            stmt = stmt.where(Agreement.status == status)
        result = await self.db.execute(stmt.order_by(Agreement.created_at.desc()))
        return list(result.scalars().all())

    async def due_for_expiry(self, today: date, limit: int = 500) -> List[uuid.UUID]:
        result = await self.db.execute(
            select(Agreement.id)
            .where(
                Agreement.status == AgreementStatus.ACTIVE,
                Agreement.end_date < today,
            )
            .order_by(Agreement.end_date)
            .limit(limit)
        )
        return list(result.scalars().all())

    def add(self, agreement: Agreement):
        self.db.add(agreement)
