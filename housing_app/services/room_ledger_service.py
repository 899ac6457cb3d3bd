import logging
import uuid
from contextlib import asynccontextmanager

from sqlalchemy.exc import SQLAlchemyError

from core.entity_lock import entity_locks
from core.lifecycle_errors import (
    BookingValidationError,
    InvalidRelease,
    LifecycleError,
    NotFound,
    OutOfCapacity,
)
from models.enums import LifecycleEntity, LifecycleEvent
from repos.lifecycle_log_repo import LifecycleLogRepo
from repos.property_repo import PropertyRepo
from repos.room_type_repo import RoomTypeRepo
from schemas.schema import Availability, ReservationToken

logger = logging.getLogger(__name__)

ROOM_TYPE_SCOPE = "room_type"
PROPERTY_SCOPE = "property"


class RoomLedgerService:
    """Owns the ``available_rooms`` counter of every room type.

    ``reserve`` and ``release`` commit whatever the caller has staged on the
    session together with the counter change, while the room-type and
    property locks are held. On failure the staged work is rolled back and
    nothing changes, including when a lock cannot be taken in time.
    """

    def __init__(self, db):
        self.db = db
        self.room_types: RoomTypeRepo = RoomTypeRepo(db)
        self.properties: PropertyRepo = PropertyRepo(db)
        self.logs: LifecycleLogRepo = LifecycleLogRepo(db)

    @staticmethod
    def _check_count(count: int):
        if not isinstance(count, int) or count < 1:
            raise BookingValidationError("Room count must be at least 1.")

    async def _room_type_or_404(self, room_type_id: uuid.UUID):
        room_type = await self.room_types.get_by_id(room_type_id, fresh=True)
        if room_type is None:
            raise NotFound("Room type not found")
        return room_type

    async def _commit(self):
        try:
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            raise

    @asynccontextmanager
    async def _locked(self, room_type_id: uuid.UUID):
        """Room-type then property lock; yields the property id."""
        try:
            async with entity_locks.hold(ROOM_TYPE_SCOPE, room_type_id):
                room_type = await self._room_type_or_404(room_type_id)
                property_id = room_type.property_id
                async with entity_locks.hold(PROPERTY_SCOPE, property_id):
                    yield property_id
        except LifecycleError:
            await self.db.rollback()
            raise

    async def reserve(self, room_type_id: uuid.UUID, count: int = 1) -> ReservationToken:
        self._check_count(count)

        async with self._locked(room_type_id) as property_id:
            row = await self.room_types.try_decrement(room_type_id, count)
            if row is None:
                await self.db.rollback()
                room_type = await self._room_type_or_404(room_type_id)
                logger.warning(
                    f"Reserve of {count} on room type {room_type_id} refused: "
                    f"{room_type.available_rooms} left"
                )
                raise OutOfCapacity(
                    detail=f"Room type {room_type_id} has fewer than {count} units left"
                )

            available = row[0]
            await self.properties.recompute_availability(property_id)
            await self._commit()

        logger.info(f"Reserved {count} on room type {room_type_id}, {available} left")
        return ReservationToken(
            room_type_id=room_type_id, count=count, available_after=available
        )

    async def release(self, room_type_id: uuid.UUID, count: int = 1) -> None:
        self._check_count(count)

        async with self._locked(room_type_id) as property_id:
            row = await self.room_types.try_increment(room_type_id, count)
            if row is None:
                await self.db.rollback()
                room_type = await self._room_type_or_404(room_type_id)
                logger.critical(
                    f"Release of {count} on room type {room_type_id} would exceed "
                    f"total ({room_type.available_rooms}/{room_type.total_rooms})"
                )
                self.logs.add(
                    entity_type=LifecycleEntity.ROOM_TYPE,
                    entity_id=room_type_id,
                    event=LifecycleEvent.INVARIANT_VIOLATION,
                    old_value={
                        "available_rooms": room_type.available_rooms,
                        "total_rooms": room_type.total_rooms,
                    },
                    new_value={"attempted_release": count},
                )
                await self._commit()
                raise InvalidRelease(
                    detail=f"Release of {count} on room type {room_type_id} overflows total"
                )

            available = row[0]
            await self.properties.recompute_availability(property_id)
            await self._commit()

        logger.info(f"Released {count} on room type {room_type_id}, {available} free")

    async def get_availability(self, room_type_id: uuid.UUID) -> Availability:
        room_type = await self.room_types.get_by_id(room_type_id, fresh=True)
        if room_type is None:
            raise NotFound("Room type not found")
        return Availability(
            room_type_id=room_type.id,
            total=room_type.total_rooms,
            available=room_type.available_rooms,
        )
