from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, List, Optional

from pydantic import BaseModel, Field, field_validator

from models.enums import (
    ActorRole,
    AgreementStatus,
    AgreementType,
    BookingStatus,
    RoomKind,
    SignatureParty,
    SigningOrder,
)

if TYPE_CHECKING:
    from models.models import Agreement, Booking


@dataclass(frozen=True)
class Actor:
    id: uuid.UUID
    role: ActorRole

    @property
    def is_admin(self) -> bool:
        return self.role == ActorRole.ADMIN


@dataclass(frozen=True)
class ReservationToken:
    room_type_id: uuid.UUID
    count: int
    available_after: int


@dataclass(frozen=True)
class Availability:
    room_type_id: uuid.UUID
    total: int
    available: int


@dataclass(frozen=True)
class SignOutcome:
    agreement: "Agreement"
    party: SignatureParty
    already_signed: bool
    activated: bool


@dataclass(frozen=True)
class BookingConfirmation:
    booking: "Booking"
    agreement: "Agreement"


class SignatureMeta(BaseModel):
    signature_data: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


class PropertyCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    address: Optional[str] = Field(default=None, max_length=255)
    signing_order: Optional[SigningOrder] = None


class SigningOrderUpdate(BaseModel):
    signing_order: Optional[SigningOrder] = None


class RoomTypeCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    room_kind: RoomKind = RoomKind.SINGLE
    total_rooms: int = Field(..., ge=1)
    max_occupancy: int = Field(default=1, ge=1)
    price_per_bed: Decimal = Field(default=Decimal("0"), ge=0)
    price_per_room: Decimal = Field(default=Decimal("0"), ge=0)


class BookingCreate(BaseModel):
    property_id: uuid.UUID
    room_type_id: uuid.UUID
    start_date: date
    end_date: date
    rooms_count: int = Field(default=1, ge=1)
    members_count: int = Field(default=1, ge=1)


class ReasonRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=1000)


class LeaveRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=1000)


class TermClause(BaseModel):
    title: str = Field(..., min_length=1, max_length=120)
    description: str = Field(..., min_length=1)


class AgreementTerms(BaseModel):
    agreement_type: AgreementType = AgreementType.RENTAL
    monthly_rent: Optional[Decimal] = Field(default=None, ge=0)
    security_deposit: Optional[Decimal] = Field(default=None, ge=0)
    maintenance_charges: Decimal = Field(default=Decimal("0"), ge=0)
    notice_period_days: Optional[int] = Field(default=None, ge=0)
    terms: Optional[List[TermClause]] = None
    rules: Optional[List[str]] = None
    included_services: List[str] = Field(default_factory=list)
    notes: Optional[str] = None


class AgreementOpenRequest(AgreementTerms):
    booking_id: uuid.UUID


class AgreementAmendRequest(BaseModel):
    monthly_rent: Optional[Decimal] = Field(default=None, ge=0)
    security_deposit: Optional[Decimal] = Field(default=None, ge=0)
    maintenance_charges: Optional[Decimal] = Field(default=None, ge=0)
    notice_period_days: Optional[int] = Field(default=None, ge=0)
    terms: Optional[List[TermClause]] = None
    rules: Optional[List[str]] = None
    included_services: Optional[List[str]] = None
    notes: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class SignRequest(BaseModel):
    signature_data: Optional[str] = Field(default=None, max_length=20000)

    @field_validator("signature_data")
    @classmethod
    def strip_signature(cls, v: Optional[str]):
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("Signature cannot be blank.")
        return v


class RoomTypeOut(BaseModel):
    id: uuid.UUID
    property_id: uuid.UUID
    name: str
    room_kind: RoomKind
    total_rooms: int
    available_rooms: int
    max_occupancy: int
    price_per_bed: Decimal
    price_per_room: Decimal

    model_config = {"from_attributes": True}


class PropertyOut(BaseModel):
    id: uuid.UUID
    owner_id: uuid.UUID
    title: str
    address: Optional[str]
    is_available: bool
    signing_order: Optional[SigningOrder]
    created_at: datetime

    model_config = {"from_attributes": True}


class AvailabilityOut(BaseModel):
    room_type_id: uuid.UUID
    total: int
    available: int

    model_config = {"from_attributes": True}


class BookingOut(BaseModel):
    id: uuid.UUID
    student_id: uuid.UUID
    property_id: uuid.UUID
    room_type_id: Optional[uuid.UUID]
    rooms_count: int
    members_count: int
    status: BookingStatus
    start_date: date
    end_date: date
    decided_by_id: Optional[uuid.UUID]
    decided_at: Optional[datetime]
    completed_at: Optional[datetime]
    completion_reason: Optional[str]
    cancelled_at: Optional[datetime]
    cancellation_reason: Optional[str]
    created_at: datetime
    updated_at: datetime
    version: int

    model_config = {"from_attributes": True}


class SignatureOut(BaseModel):
    signed: bool
    signed_at: Optional[datetime]
    signature_data: Optional[str]


class AgreementOut(BaseModel):
    id: uuid.UUID
    agreement_number: str
    booking_id: uuid.UUID
    property_id: uuid.UUID
    owner_id: uuid.UUID
    student_id: uuid.UUID
    agreement_type: AgreementType
    status: AgreementStatus
    start_date: date
    end_date: date
    monthly_rent: Decimal
    security_deposit: Decimal
    maintenance_charges: Decimal
    notice_period_days: int
    terms: List[TermClause]
    rules: List[str]
    included_services: List[str]
    notes: Optional[str]
    owner_signature: SignatureOut
    student_signature: SignatureOut
    terminated_by_id: Optional[uuid.UUID]
    termination_reason: Optional[str]
    terminated_at: Optional[datetime]
    cancellation_reason: Optional[str]
    cancelled_at: Optional[datetime]
    expired_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime
    version: int

    model_config = {"from_attributes": True}


class BookingConfirmationOut(BaseModel):
    booking: BookingOut
    agreement: AgreementOut


class SignOutcomeOut(BaseModel):
    success: bool = True
    message: str
    party: SignatureParty
    already_signed: bool
    activated: bool
    agreement: AgreementOut
