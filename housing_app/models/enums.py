from enum import Enum


class ActorRole(str, Enum):
    STUDENT = "student"
    OWNER = "owner"
    ADMIN = "admin"


class BookingStatus(str, Enum):
    PENDING = "Pending"
    CONFIRMED = "Confirmed"
    REJECTED = "Rejected"
    CANCELLED = "Cancelled"
    COMPLETED = "Completed"


class AgreementStatus(str, Enum):
    DRAFT = "draft"
    PENDING_STUDENT = "pending_student"
    PENDING_OWNER = "pending_owner"
    ACTIVE = "active"
    EXPIRED = "expired"
    TERMINATED = "terminated"
    CANCELLED = "cancelled"


class AgreementType(str, Enum):
    RENTAL = "rental"
    PG = "pg"
    HOSTEL = "hostel"
    MESS = "mess"


class RoomKind(str, Enum):
    SINGLE = "single"
    DOUBLE = "double"
    TRIPLE = "triple"
    DORM = "dorm"
    OTHER = "other"


class SignatureParty(str, Enum):
    OWNER = "owner"
    STUDENT = "student"


class SigningOrder(str, Enum):
    ANY = "any"
    OWNER_FIRST = "owner_first"
    STUDENT_FIRST = "student_first"


class CapacityFailurePolicy(str, Enum):
    KEEP_PENDING = "keep_pending"
    AUTO_REJECT = "auto_reject"


class LifecycleEntity(str, Enum):
    ROOM_TYPE = "room_type"
    BOOKING = "booking"
    AGREEMENT = "agreement"


class LifecycleEvent(str, Enum):
    BOOKING_CREATED = "BOOKING_CREATED"
    BOOKING_CONFIRMED = "BOOKING_CONFIRMED"
    BOOKING_REJECTED = "BOOKING_REJECTED"
    BOOKING_CANCELLED = "BOOKING_CANCELLED"
    BOOKING_COMPLETED = "BOOKING_COMPLETED"
    AGREEMENT_OPENED = "AGREEMENT_OPENED"
    AGREEMENT_SIGNED = "AGREEMENT_SIGNED"
    AGREEMENT_AMENDED = "AGREEMENT_AMENDED"
    AGREEMENT_TERMINATED = "AGREEMENT_TERMINATED"
    AGREEMENT_CANCELLED = "AGREEMENT_CANCELLED"
    AGREEMENT_EXPIRED = "AGREEMENT_EXPIRED"
    COMPENSATION_APPLIED = "COMPENSATION_APPLIED"
    INVARIANT_VIOLATION = "INVARIANT_VIOLATION"


TERMINAL_BOOKING_STATUSES = {
    BookingStatus.REJECTED,
    BookingStatus.CANCELLED,
    BookingStatus.COMPLETED,
}
ACTIVE_BOOKING_STATUSES = {
    BookingStatus.PENDING,
    BookingStatus.CONFIRMED,
}
TERMINAL_AGREEMENT_STATUSES = {
    AgreementStatus.EXPIRED,
    AgreementStatus.TERMINATED,
    AgreementStatus.CANCELLED,
}
UNSIGNED_AGREEMENT_STATUSES = {
    AgreementStatus.DRAFT,
    AgreementStatus.PENDING_STUDENT,
    AgreementStatus.PENDING_OWNER,
}
