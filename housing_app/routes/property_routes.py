import uuid
from typing import List

from fastapi import APIRouter, Depends, Request
from fastapi_utils.cbv import cbv
from sqlalchemy.ext.asyncio import AsyncSession

from core.get_current_actor import get_current_actor
from core.get_db import get_db_async
from core.safe_handler import safe_handler
from schemas.schema import (
    Actor,
    AvailabilityOut,
    PropertyCreate,
    PropertyOut,
    RoomTypeCreate,
    RoomTypeOut,
    SigningOrderUpdate,
)
from services.property_service import PropertyService

router = APIRouter(tags=["Properties & Room Inventory"])


@cbv(router=router)
class PropertyRoutes:
    @router.post("/properties", response_model=PropertyOut, status_code=201)
    @safe_handler
    async def create_property(
        self,
        request: Request,
        payload: PropertyCreate,
        actor: Actor = Depends(get_current_actor),
        db: AsyncSession = Depends(get_db_async),
    ):
        return await PropertyService(db).create_property(actor, payload)

    @router.get("/properties/{property_id}", response_model=PropertyOut)
    @safe_handler
    async def get_property(
        self,
        request: Request,
        property_id: uuid.UUID,
        db: AsyncSession = Depends(get_db_async),
    ):
        return await PropertyService(db).get_property(property_id)

    @router.patch("/properties/{property_id}/signing-order", response_model=PropertyOut)
    @safe_handler
    async def set_signing_order(
        self,
        request: Request,
        property_id: uuid.UUID,
        payload: SigningOrderUpdate,
        actor: Actor = Depends(get_current_actor),
        db: AsyncSession = Depends(get_db_async),
    ):
        return await PropertyService(db).set_signing_order(property_id, actor, payload)

    @router.post(
        "/properties/{property_id}/room-types",
        response_model=RoomTypeOut,
        status_code=201,
    )
    @safe_handler
    async def add_room_type(
        self,
        request: Request,
        property_id: uuid.UUID,
        payload: RoomTypeCreate,
        actor: Actor = Depends(get_current_actor),
        db: AsyncSession = Depends(get_db_async),
    ):
        return await PropertyService(db).add_room_type(property_id, actor, payload)

    @router.get(
        "/properties/{property_id}/room-types", response_model=List[RoomTypeOut]
    )
    @safe_handler
    async def list_room_types(
        self,
        request: Request,
        property_id: uuid.UUID,
        db: AsyncSession = Depends(get_db_async),
    ):
        return await PropertyService(db).list_room_types(property_id)

    @router.get(
        "/room-types/{room_type_id}/availability", response_model=AvailabilityOut
    )
    @safe_handler
    async def availability(
        self,
        request: Request,
        room_type_id: uuid.UUID,
        db: AsyncSession = Depends(get_db_async),
    ):
        return await PropertyService(db).get_availability(room_type_id)

    @router.delete("/room-types/{room_type_id}")
    @safe_handler
    async def delete_room_type(
        self,
        request: Request,
        room_type_id: uuid.UUID,
        actor: Actor = Depends(get_current_actor),
        db: AsyncSession = Depends(get_db_async),
    ):
        await PropertyService(db).delete_room_type(room_type_id, actor)
        return {"success": True, "message": "Room type deleted"}
