import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi_utils.cbv import cbv
from sqlalchemy.ext.asyncio import AsyncSession

from core.get_current_actor import get_current_actor
from core.get_db import get_db_async
from core.safe_handler import safe_handler
from core.validate_enum import validate_enum
from models.enums import AgreementStatus, SignatureParty
from schemas.schema import (
    Actor,
    AgreementAmendRequest,
    AgreementOpenRequest,
    AgreementOut,
    ReasonRequest,
    SignatureMeta,
    SignOutcomeOut,
    SignRequest,
)
from services.agreement_service import AgreementService
from services.lifecycle_coordinator import LifecycleCoordinator

router = APIRouter(tags=["Agreements"])

ALREADY_SIGNED_MESSAGE = "This agreement has already been signed by you"


@cbv(router=router)
class AgreementRoutes:
    @router.post("", response_model=AgreementOut, status_code=201)
    @safe_handler
    async def open_agreement(
        self,
        request: Request,
        payload: AgreementOpenRequest,
        actor: Actor = Depends(get_current_actor),
        db: AsyncSession = Depends(get_db_async),
    ):
        return await LifecycleCoordinator(db).open_agreement(actor, payload)

    @router.get("/mine", response_model=List[AgreementOut])
    @safe_handler
    async def my_agreements(
        self,
        request: Request,
        role: Optional[str] = Query(default=None),
        status: Optional[str] = Query(default=None),
        actor: Actor = Depends(get_current_actor),
        db: AsyncSession = Depends(get_db_async),
    ):
        party = validate_enum(role, SignatureParty, field="role") if role else None
        status_filter = (
            validate_enum(status, AgreementStatus, field="status") if status else None
        )
        return await AgreementService(db).list_mine(actor, party, status_filter)

    @router.get("/booking/{booking_id}", response_model=AgreementOut)
    @safe_handler
    async def agreement_for_booking(
        self,
        request: Request,
        booking_id: uuid.UUID,
        actor: Actor = Depends(get_current_actor),
        db: AsyncSession = Depends(get_db_async),
    ):
        return await AgreementService(db).get_for_booking(booking_id, actor)

    @router.get("/{agreement_id}", response_model=AgreementOut)
    @safe_handler
    async def get_agreement(
        self,
        request: Request,
        agreement_id: uuid.UUID,
        actor: Actor = Depends(get_current_actor),
        db: AsyncSession = Depends(get_db_async),
    ):
        return await AgreementService(db).get_visible(agreement_id, actor)

    @router.post("/{agreement_id}/sign", response_model=SignOutcomeOut)
    @safe_handler
    async def sign_agreement(
        self,
        request: Request,
        agreement_id: uuid.UUID,
        payload: Optional[SignRequest] = None,
        actor: Actor = Depends(get_current_actor),
        db: AsyncSession = Depends(get_db_async),
    ):
        meta = SignatureMeta(
            signature_data=payload.signature_data if payload else None,
            ip_address=request.client.host if request.client else None,
            user_agent=request.headers.get("user-agent"),
        )
        outcome = await LifecycleCoordinator(db).sign_agreement(
            agreement_id, actor, meta
        )
        if outcome.already_signed:
            message = ALREADY_SIGNED_MESSAGE
        elif outcome.activated:
            message = "Agreement signed by both parties and is now active"
        else:
            message = "Agreement signed successfully"
        return SignOutcomeOut(
            message=message,
            party=outcome.party,
            already_signed=outcome.already_signed,
            activated=outcome.activated,
            agreement=AgreementOut.model_validate(outcome.agreement),
        )

    @router.patch("/{agreement_id}", response_model=AgreementOut)
    @safe_handler
    async def amend_agreement(
        self,
        request: Request,
        agreement_id: uuid.UUID,
        payload: AgreementAmendRequest,
        actor: Actor = Depends(get_current_actor),
        db: AsyncSession = Depends(get_db_async),
    ):
        return await LifecycleCoordinator(db).amend_agreement(
            agreement_id, actor, payload
        )

    @router.post("/{agreement_id}/terminate", response_model=AgreementOut)
    @safe_handler
    async def terminate_agreement(
        self,
        request: Request,
        agreement_id: uuid.UUID,
        payload: Optional[ReasonRequest] = None,
        actor: Actor = Depends(get_current_actor),
        db: AsyncSession = Depends(get_db_async),
    ):
        reason = payload.reason if payload else None
        return await LifecycleCoordinator(db).terminate_agreement(
            agreement_id, actor, reason
        )

    @router.post("/{agreement_id}/cancel", response_model=AgreementOut)
    @safe_handler
    async def cancel_agreement(
        self,
        request: Request,
        agreement_id: uuid.UUID,
        payload: Optional[ReasonRequest] = None,
        actor: Actor = Depends(get_current_actor),
        db: AsyncSession = Depends(get_db_async),
    ):
        reason = payload.reason if payload else None
        return await LifecycleCoordinator(db).cancel_agreement(
            agreement_id, actor, reason
        )

    @router.post("/{agreement_id}/expire", response_model=AgreementOut)
    @safe_handler
    async def expire_agreement(
        self,
        request: Request,
        agreement_id: uuid.UUID,
        actor: Actor = Depends(get_current_actor),
        db: AsyncSession = Depends(get_db_async),
    ):
        return await LifecycleCoordinator(db).expire_agreement(
            agreement_id, actor=actor
        )
