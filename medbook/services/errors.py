"""Error kinds raised by the booking engine.

Routers translate these into ``HTTPException`` using ``status_code``; the
services themselves never import FastAPI.
"""


class BookingError(Exception):
    status_code = 400

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class BookingValidationError(BookingError):
    """Missing or malformed booking fields, rejected before any persistence."""
    status_code = 400


class NotAvailableError(BookingError):
    """The doctor has closed the requested day."""
    status_code = 409


class ConflictError(BookingError):
    """The (doctor, date, time) slot is already held by another appointment."""
    status_code = 409


class PaymentFailedError(BookingError):
    """The payment was declined; the draft appointment stays actionable."""
    status_code = 402


class RefundIneligibleError(BookingError):
    status_code = 400


class NotFoundError(BookingError):
    status_code = 404


class InvalidTransitionError(BookingError):
    status_code = 409


class PermissionDeniedError(BookingError):
    status_code = 403


def first_error_message(exc) -> str:
    """Readable message of the first error in a pydantic ``ValidationError``."""
    return exc.errors()[0]['msg'].removeprefix('Value error, ')
