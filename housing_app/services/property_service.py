import logging
import uuid
from typing import List

from sqlalchemy.exc import SQLAlchemyError

from core.entity_lock import entity_locks
from core.lifecycle_errors import Conflict, NotFound, WrongParty
from models.enums import ActorRole
from models.models import Property, RoomType
from policy.lifecycle_policy import LifecyclePolicy
from repos.booking_repo import BookingRepo
from repos.property_repo import PropertyRepo
from repos.room_type_repo import RoomTypeRepo
from schemas.schema import (
    Actor,
    Availability,
    PropertyCreate,
    RoomTypeCreate,
    SigningOrderUpdate,
)
from services.room_ledger_service import (
    PROPERTY_SCOPE,
    ROOM_TYPE_SCOPE,
    RoomLedgerService,
)

logger = logging.getLogger(__name__)


class PropertyService:
    def __init__(self, db):
        self.db = db
        self.repo: PropertyRepo = PropertyRepo(db)
        self.room_types: RoomTypeRepo = RoomTypeRepo(db)
        self.bookings: BookingRepo = BookingRepo(db)
        self.ledger: RoomLedgerService = RoomLedgerService(db)
        self.policy = LifecyclePolicy

    async def _commit(self):
        try:
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            raise

    async def _managed_property(self, property_id: uuid.UUID, actor: Actor) -> Property:
        property = await self.repo.get_by_id(property_id)
        if property is None:
            raise NotFound("Property not found")
        if not self.policy.can_manage_property(property, actor):
            raise WrongParty("You do not manage this property")
        return property

    async def create_property(self, actor: Actor, payload: PropertyCreate) -> Property:
        if actor.role not in {ActorRole.OWNER, ActorRole.ADMIN}:
            raise WrongParty("Only owners can list a property")
        property = await self.repo.create(
            owner_id=actor.id,
            title=payload.title,
            address=payload.address,
            signing_order=payload.signing_order,
        )
        logger.info(f"Property {property.id} created by {actor.id}")
        return property

    async def get_property(self, property_id: uuid.UUID) -> Property:
        property = await self.repo.get_by_id(property_id)
        if property is None:
            raise NotFound("Property not found")
        return property

    async def list_room_types(self, property_id: uuid.UUID) -> List[RoomType]:
        await self.get_property(property_id)
        return await self.room_types.list_for_property(property_id)

    async def add_room_type(
        self, property_id: uuid.UUID, actor: Actor, payload: RoomTypeCreate
    ) -> RoomType:
        property = await self._managed_property(property_id, actor)
        room_type = RoomType(
            property_id=property.id,
            name=payload.name,
            room_kind=payload.room_kind,
            total_rooms=payload.total_rooms,
            available_rooms=payload.total_rooms,
            max_occupancy=payload.max_occupancy,
            price_per_bed=payload.price_per_bed,
            price_per_room=payload.price_per_room,
        )
        async with entity_locks.hold(PROPERTY_SCOPE, property.id):
            self.db.add(room_type)
            property.is_available = True
            await self._commit()
        logger.info(
            f"Room type {room_type.id} added to property {property.id} "
            f"with {room_type.total_rooms} rooms"
        )
        return room_type

    async def delete_room_type(self, room_type_id: uuid.UUID, actor: Actor):
        room_type = await self.room_types.get_by_id(room_type_id)
        if room_type is None:
            raise NotFound("Room type not found")
        property = await self._managed_property(room_type.property_id, actor)

        async with entity_locks.hold(ROOM_TYPE_SCOPE, room_type_id):
            async with entity_locks.hold(PROPERTY_SCOPE, property.id):
                if await self.bookings.has_non_terminal_for_room_type(room_type_id):
                    raise Conflict(
                        "This room type still has pending or confirmed bookings."
                    )
                await self.bookings.detach_room_type(room_type_id)
                await self.room_types.delete(room_type)
                await self.db.flush()
                await self.repo.recompute_availability(property.id)
                await self._commit()
        logger.info(f"Room type {room_type_id} deleted by {actor.id}")

    async def set_signing_order(
        self, property_id: uuid.UUID, actor: Actor, payload: SigningOrderUpdate
    ) -> Property:
        property = await self._managed_property(property_id, actor)
        return await self.repo.set_signing_order(property, payload.signing_order)

    async def get_availability(self, room_type_id: uuid.UUID) -> Availability:
        return await self.ledger.get_availability(room_type_id)
