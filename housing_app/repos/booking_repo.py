import uuid
from typing import List, Optional

from sqlalchemy import select, update

from models.enums import ACTIVE_BOOKING_STATUSES, TERMINAL_BOOKING_STATUSES, BookingStatus
from models.models import Booking, Property


class BookingRepo:
    def __init__(self, db):
        self.db = db

    async def get_by_id(self, booking_id: uuid.UUID) -> Optional[Booking]:
        result = await self.db.execute(select(Booking).where(Booking.id == booking_id))
        return result.scalar_one_or_none()

    async def get_for_update(self, booking_id: uuid.UUID) -> Optional[Booking]:
        result = await self.db.execute(
            select(Booking)
            .where(Booking.id == booking_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_for_student(
        self, student_id: uuid.UUID, status: Optional[BookingStatus] = None
    ) -> List[Booking]:
        stmt = select(Booking).where(Booking.student_id == student_id)
        if status is not None:
            stmt = stmt.where(Booking.status == status)
        result = await self.db.execute(stmt.order_by(Booking.created_at.desc()))
        return list(result.scalars().all())

    async def list_for_owner(
        self, owner_id: uuid.UUID, status: Optional[BookingStatus] = None
    ) -> List[Booking]:
        stmt = (
            select(Booking)
            .join(Property, Property.id == Booking.property_id)
            .where(Property.owner_id == owner_id)
        )
        if status is not None:
            stmt = stmt.where(Booking.status == status)
        result = await self.db.execute(stmt.order_by(Booking.created_at.desc()))
        return list(result.scalars().all())

    async def has_active_for_student_property(
        self, student_id: uuid.UUID, property_id: uuid.UUID
    ) -> bool:
        result = await self.db.execute(
            select(Booking.id).where(
                Booking.student_id == student_id,
                Booking.property_id == property_id,
                Booking.status.in_(ACTIVE_BOOKING_STATUSES),
            )
        )
        return result.first() is not None

    async def has_non_terminal_for_room_type(self, room_type_id: uuid.UUID) -> bool:
        result = await self.db.execute(
            select(Booking.id).where(
                Booking.room_type_id == room_type_id,
                Booking.status.not_in(TERMINAL_BOOKING_STATUSES),
            )
        )
        return result.first() is not None

    async def detach_room_type(self, room_type_id: uuid.UUID):
        """Null the room type on terminal bookings; caller commits."""
        await self.db.execute(
            update(Booking)
            .where(
                Booking.room_type_id == room_type_id,
                Booking.status.in_(TERMINAL_BOOKING_STATUSES),
            )
            .values(room_type_id=None, version=Booking.version + 1)
            .execution_options(synchronize_session=False)
        )

    def add(self, booking: Booking):
        self.db.add(booking)
