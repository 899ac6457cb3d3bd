from enum import Enum
from typing import Type, TypeVar

from .lifecycle_errors import BookingValidationError

E = TypeVar("E", bound=Enum)


def validate_enum(
    value: str | Enum,
    enum_cls: Type[E],
    *,
    field: str,
) -> E:
    """Match a query value against an enum's values or names, ignoring case.

    Booking statuses are stored capitalised and agreement statuses in lower
    case, so ``?status=confirmed`` and ``?status=CONFIRMED`` both resolve.
    """
    if isinstance(value, enum_cls):
        return value

    if isinstance(value, str):
        wanted = value.strip().lower()
        for member in enum_cls:
            if wanted in (str(member.value).lower(), member.name.lower()):
                return member

    allowed = ", ".join(str(e.value) for e in enum_cls)
    raise BookingValidationError(f"Invalid {field}: {value}. Allowed values: {allowed}")
