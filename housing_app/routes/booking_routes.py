import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi_utils.cbv import cbv
from sqlalchemy.ext.asyncio import AsyncSession

from core.get_current_actor import get_current_actor
from core.get_db import get_db_async
from core.paginate import paginator
from core.safe_handler import safe_handler
from core.validate_enum import validate_enum
from models.enums import BookingStatus
from schemas.schema import (
    Actor,
    AgreementOut,
    BookingConfirmationOut,
    BookingCreate,
    BookingOut,
    LeaveRequest,
    ReasonRequest,
)
from services.booking_service import BookingService
from services.lifecycle_coordinator import LifecycleCoordinator

router = APIRouter(tags=["Bookings"])


@cbv(router=router)
class BookingRoutes:
    @router.post("", response_model=BookingOut, status_code=201)
    @safe_handler
    async def create_booking(
        self,
        request: Request,
        payload: BookingCreate,
        actor: Actor = Depends(get_current_actor),
        db: AsyncSession = Depends(get_db_async),
    ):
        return await LifecycleCoordinator(db).create_booking(actor, payload)

    @router.get("/mine", response_model=List[BookingOut])
    @safe_handler
    async def my_bookings(
        self,
        request: Request,
        status: Optional[str] = Query(default=None),
        page: int = Query(default=1, ge=1),
        per_page: int = Query(default=20, ge=1, le=100),
        actor: Actor = Depends(get_current_actor),
        db: AsyncSession = Depends(get_db_async),
    ):
        status_filter = (
            validate_enum(status, BookingStatus, field="status") if status else None
        )
        bookings = await BookingService(db).list_mine(actor, status_filter)
        return paginator.paginate(bookings, page, per_page)

    @router.get("/owner", response_model=List[BookingOut])
    @safe_handler
    async def owner_bookings(
        self,
        request: Request,
        status: Optional[str] = Query(default=None),
        page: int = Query(default=1, ge=1),
        per_page: int = Query(default=20, ge=1, le=100),
        actor: Actor = Depends(get_current_actor),
        db: AsyncSession = Depends(get_db_async),
    ):
        status_filter = (
            validate_enum(status, BookingStatus, field="status") if status else None
        )
        bookings = await BookingService(db).list_for_owner(actor, status_filter)
        return paginator.paginate(bookings, page, per_page)

    @router.get("/{booking_id}", response_model=BookingOut)
    @safe_handler
    async def get_booking(
        self,
        request: Request,
        booking_id: uuid.UUID,
        actor: Actor = Depends(get_current_actor),
        db: AsyncSession = Depends(get_db_async),
    ):
        return await BookingService(db).get_visible(booking_id, actor)

    @router.post("/{booking_id}/confirm", response_model=BookingConfirmationOut)
    @safe_handler
    async def confirm_booking(
        self,
        request: Request,
        booking_id: uuid.UUID,
        actor: Actor = Depends(get_current_actor),
        db: AsyncSession = Depends(get_db_async),
    ):
        confirmation = await LifecycleCoordinator(db).confirm_booking(booking_id, actor)
        return BookingConfirmationOut(
            booking=BookingOut.model_validate(confirmation.booking),
            agreement=AgreementOut.model_validate(confirmation.agreement),
        )

    @router.post("/{booking_id}/reject", response_model=BookingOut)
    @safe_handler
    async def reject_booking(
        self,
        request: Request,
        booking_id: uuid.UUID,
        payload: Optional[ReasonRequest] = None,
        actor: Actor = Depends(get_current_actor),
        db: AsyncSession = Depends(get_db_async),
    ):
        reason = payload.reason if payload else None
        return await LifecycleCoordinator(db).reject_booking(booking_id, actor, reason)

    @router.post("/{booking_id}/cancel", response_model=BookingOut)
    @safe_handler
    async def cancel_booking(
        self,
        request: Request,
        booking_id: uuid.UUID,
        payload: Optional[ReasonRequest] = None,
        actor: Actor = Depends(get_current_actor),
        db: AsyncSession = Depends(get_db_async),
    ):
        reason = payload.reason if payload else None
        return await LifecycleCoordinator(db).cancel_booking(booking_id, actor, reason)

    @router.post("/{booking_id}/leave", response_model=BookingOut)
    @safe_handler
    async def leave_room(
        self,
        request: Request,
        booking_id: uuid.UUID,
        payload: LeaveRequest,
        actor: Actor = Depends(get_current_actor),
        db: AsyncSession = Depends(get_db_async),
    ):
        return await LifecycleCoordinator(db).leave_room(
            booking_id, actor, payload.reason
        )
