import uuid
from typing import List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError

from models.enums import SigningOrder
from models.models import Property, RoomType


class PropertyRepo:
    def __init__(self, db):
        self.db = db

    async def get_by_id(self, property_id: uuid.UUID) -> Optional[Property]:
        result = await self.db.execute(
            select(Property).where(Property.id == property_id)
        )
        return result.scalar_one_or_none()

    async def list_for_owner(self, owner_id: uuid.UUID) -> List[Property]:
        result = await self.db.execute(
            select(Property)
            .where(Property.owner_id == owner_id)
            .order_by(Property.created_at.desc())
        )
        return list(result.scalars().all())

    async def create(
        self,
        owner_id: uuid.UUID,
        title: str,
        address: Optional[str] = None,
        signing_order: Optional[SigningOrder] = None,
    ) -> Property:
        property = Property(
            owner_id=owner_id,
            title=title,
            address=address,
            signing_order=signing_order,
            is_available=False,
        )
        self.db.add(property)
        try:
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            raise
        return property

    async def set_signing_order(
        self, property: Property, signing_order: Optional[SigningOrder]
    ) -> Property:
        property.signing_order = signing_order
        try:
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            raise
        return property

    async def recompute_availability(self, property_id: uuid.UUID) -> bool:
        """Sync ``is_available`` with the room counters; caller commits."""
        count = await self.db.scalar(
            select(func.count(RoomType.id)).where(
                RoomType.property_id == property_id,
                RoomType.available_rooms > 0,
            )
        )
        is_available = bool(count)
        await self.db.execute(
            update(Property)
            .where(Property.id == property_id)
            .values(is_available=is_available)
        )
        return is_available
