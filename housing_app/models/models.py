import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from core.date_helper import utcnow
from core.get_db import Base

from .enums import (
    AgreementStatus,
    AgreementType,
    BookingStatus,
    LifecycleEntity,
    LifecycleEvent,
    RoomKind,
    SignatureParty,
    SigningOrder,
)


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


def _enum_column(enum_cls):
    return Enum(
        enum_cls,
        native_enum=False,
        values_callable=_enum_values,
        validate_strings=True,
    )


class Property(Base):
    __tablename__ = "properties"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    owner_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    address: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    is_available: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    signing_order: Mapped[Optional[SigningOrder]] = mapped_column(
        _enum_column(SigningOrder), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )

    room_types: Mapped[List["RoomType"]] = relationship(
        "RoomType", back_populates="property", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Property id={self.id} owner_id={self.owner_id}>"


class RoomType(Base):
    __tablename__ = "room_types"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    property_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("properties.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    property: Mapped["Property"] = relationship("Property", back_populates="room_types")

    name: Mapped[str] = mapped_column(String(120), nullable=False)
    room_kind: Mapped[RoomKind] = mapped_column(
        _enum_column(RoomKind), nullable=False, default=RoomKind.SINGLE
    )
    total_rooms: Mapped[int] = mapped_column(Integer, nullable=False)
    available_rooms: Mapped[int] = mapped_column(Integer, nullable=False)
    max_occupancy: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    price_per_bed: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0")
    )
    price_per_room: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0")
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )

    __table_args__ = (
        CheckConstraint("total_rooms >= 1", name="ck_room_types_total_positive"),
        CheckConstraint(
            "available_rooms >= 0 AND available_rooms <= total_rooms",
            name="ck_room_types_available_bounds",
        ),
        CheckConstraint("max_occupancy >= 1", name="ck_room_types_occupancy_positive"),
    )

    @validates("total_rooms", "max_occupancy")
    def validate_positive(self, key, value):
        if value is None or value < 1:
            raise ValueError(f"{key} must be at least 1.")
        return value


class Booking(Base):
    __tablename__ = "bookings"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    student_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    property_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("properties.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    room_type_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("room_types.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    property: Mapped["Property"] = relationship("Property")
    room_type: Mapped[Optional["RoomType"]] = relationship("RoomType")

    rooms_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    members_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    status: Mapped[BookingStatus] = mapped_column(
        _enum_column(BookingStatus),
        nullable=False,
        default=BookingStatus.PENDING,
        index=True,
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)

    decided_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    decided_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    completion_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint("end_date > start_date", name="ck_bookings_dates"),
        CheckConstraint("rooms_count >= 1", name="ck_bookings_rooms_positive"),
        CheckConstraint("members_count >= 1", name="ck_bookings_members_positive"),
    )

    def __repr__(self) -> str:
        return f"<Booking id={self.id} status={self.status}>"


class Agreement(Base):
    __tablename__ = "agreements"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    agreement_number: Mapped[str] = mapped_column(
        String(32), unique=True, nullable=False, index=True
    )
    booking_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("bookings.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    booking: Mapped["Booking"] = relationship("Booking")
    property_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("properties.id", ondelete="RESTRICT"), nullable=False
    )
    owner_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    student_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)

    agreement_type: Mapped[AgreementType] = mapped_column(
        _enum_column(AgreementType), nullable=False, default=AgreementType.RENTAL
    )
    status: Mapped[AgreementStatus] = mapped_column(
        _enum_column(AgreementStatus),
        nullable=False,
        default=AgreementStatus.DRAFT,
        index=True,
    )

    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    monthly_rent: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    security_deposit: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    maintenance_charges: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0")
    )
    notice_period_days: Mapped[int] = mapped_column(Integer, nullable=False, default=30)
    terms: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    rules: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    included_services: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    owner_signed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    owner_signed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    owner_signature_data: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    owner_signature_ip: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    owner_signature_user_agent: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True
    )
    student_signed: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
    student_signed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime, nullable=True
    )
    student_signature_data: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    student_signature_ip: Mapped[Optional[str]] = mapped_column(
        String(64), nullable=True
    )
    student_signature_user_agent: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True
    )

    terminated_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    termination_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    terminated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    expired_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index(
            "uq_agreements_open_booking",
            "booking_id",
            unique=True,
            sqlite_where=text("status != 'cancelled'"),
            postgresql_where=text("status != 'cancelled'"),
        ),
        CheckConstraint("end_date > start_date", name="ck_agreements_dates"),
    )

    @validates("booking_id")
    def validate_booking_id(self, key, value):
        current = self.__dict__.get("booking_id")
        if current is not None and current != value:
            raise ValueError("An agreement cannot be moved to another booking.")
        return value

    def is_signed_by(self, party: SignatureParty) -> bool:
        if party == SignatureParty.OWNER:
            return self.owner_signed
        return self.student_signed

    @property
    def owner_signature(self) -> dict:
        return {
            "signed": self.owner_signed,
            "signed_at": self.owner_signed_at,
            "signature_data": self.owner_signature_data,
        }

    @property
    def student_signature(self) -> dict:
        return {
            "signed": self.student_signed,
            "signed_at": self.student_signed_at,
            "signature_data": self.student_signature_data,
        }

    def __repr__(self) -> str:
        return f"<Agreement number={self.agreement_number} status={self.status}>"


class LifecycleLog(Base):
    __tablename__ = "lifecycle_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    entity_type: Mapped[LifecycleEntity] = mapped_column(
        _enum_column(LifecycleEntity), nullable=False
    )
    entity_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    event: Mapped[LifecycleEvent] = mapped_column(
        _enum_column(LifecycleEvent), nullable=False, index=True
    )
    actor_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    old_value: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    new_value: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, nullable=False
    )
