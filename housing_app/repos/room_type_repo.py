import uuid
from typing import List, Optional

from sqlalchemy import select, update

from models.models import RoomType


class RoomTypeRepo:
    def __init__(self, db):
        self.db = db

    async def get_by_id(
        self, room_type_id: uuid.UUID, fresh: bool = False
    ) -> Optional[RoomType]:
        stmt = select(RoomType).where(RoomType.id == room_type_id)
        if fresh:
            stmt = stmt.execution_options(populate_existing=True)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def list_for_property(self, property_id: uuid.UUID) -> List[RoomType]:
        result = await self.db.execute(
            select(RoomType)
            .where(RoomType.property_id == property_id)
            .order_by(RoomType.created_at)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def try_decrement(self, room_type_id: uuid.UUID, count: int):
        """Take ``count`` units only if that many are free.

        Returns the row (available_rooms, total_rooms, property_id) after the
        change, or None when the guard did not match.
        """
        stmt = (
            update(RoomType)
            .where(RoomType.id == room_type_id, RoomType.available_rooms >= count)
            .values(available_rooms=RoomType.available_rooms - count)
            .returning(
                RoomType.available_rooms,
                RoomType.total_rooms,
                RoomType.property_id,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.one_or_none()

    async def try_increment(self, room_type_id: uuid.UUID, count: int):
        stmt = (
            update(RoomType)
            .where(
                RoomType.id == room_type_id,
                RoomType.available_rooms + count <= RoomType.total_rooms,
            )
            .values(available_rooms=RoomType.available_rooms + count)
            .returning(
                RoomType.available_rooms,
                RoomType.total_rooms,
                RoomType.property_id,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.one_or_none()

    async def delete(self, room_type: RoomType):
        await self.db.delete(room_type)
