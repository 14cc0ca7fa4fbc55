from fastapi import HTTPException, status
from sqlalchemy.exc import SQLAlchemyError

from medbook.database import ensure_appointment_schema, ensure_doctor_schema, ensure_payment_schema
from medbook.services.errors import BookingError

DATABASE_UNAVAILABLE_DETAIL = 'Database unavailable. Verify DATABASE_URL and Postgres credentials.'


def database_unavailable() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=DATABASE_UNAVAILABLE_DETAIL,
    )


def ensure_database_ready() -> None:
    try:
        ensure_doctor_schema()
        ensure_appointment_schema()
        ensure_payment_schema()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


def booking_http_error(exc: BookingError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.detail)
