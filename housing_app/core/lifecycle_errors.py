from typing import Optional


class LifecycleError(Exception):
    """Base for every rejected booking, agreement or ledger operation.

    ``message`` is what the caller sees; ``detail`` stays in the logs.
    """

    status_code: int = 400
    default_message: str = "The request could not be completed."

    def __init__(self, message: Optional[str] = None, detail: Optional[str] = None):
        self.message = message or self.default_message
        self.detail = detail or self.message
        super().__init__(self.detail)


class OutOfCapacity(LifecycleError):
    status_code = 409
    default_message = "This room is no longer available"


class InvalidTransition(LifecycleError):
    status_code = 409
    default_message = "This action is not allowed in the current state."


class WrongParty(LifecycleError):
    status_code = 403
    default_message = "You are not a party to this agreement"


class Conflict(LifecycleError):
    status_code = 409
    default_message = "The record was changed by another request. Please retry."


class InvalidRelease(LifecycleError):
    status_code = 500
    default_message = "Something went wrong on our end. Please try again."


class AgreementExpired(LifecycleError):
    status_code = 410
    default_message = "This agreement has expired"


class NotFound(LifecycleError):
    status_code = 404
    default_message = "Not found"


class LockTimeout(LifecycleError):
    status_code = 503
    default_message = "The resource is busy. Please retry shortly."


class BookingValidationError(LifecycleError):
    status_code = 400
    default_message = "Invalid booking request."
