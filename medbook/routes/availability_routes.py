from datetime import date, time
from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from medbook.auth.dependencies import require_role
from medbook.database import get_db
from medbook.models.doctor import Doctor
from medbook.models.user import User
from medbook.routes.common import booking_http_error, database_unavailable, ensure_database_ready
from medbook.services import availability_service
from medbook.services.availability_service import DoctorProfile
from medbook.services.errors import BookingError
from medbook.services.weekly_availability import DayAvailability, weekday_name

router = APIRouter(tags=['availability'])


class IntervalResponse(BaseModel):
    start_time: time
    end_time: time
    available: bool


class DayAvailabilityResponse(BaseModel):
    weekday: str
    is_available: bool
    slots: list[IntervalResponse]


class DoctorResponse(BaseModel):
    id: int
    name: str
    specialization: str | None = None
    hospital: str | None = None
    location: str | None = None
    experience: int | None = None
    consultation_fee: Decimal | None = None
    availability: list[DayAvailabilityResponse]


class UpdateAvailabilityRequest(BaseModel):
    days: list[DayAvailability]


class CreateDoctorRequest(DoctorProfile):
    user_id: int


class BookableSlotsResponse(BaseModel):
    doctor_id: int
    date: date
    weekday: str
    is_available: bool
    message: str | None = None
    slots: list[str]


def to_doctor_response(doctor: Doctor) -> DoctorResponse:
    schedule = doctor.weekly_availability
    return DoctorResponse(
        id=doctor.id,
        name=doctor.name,
        specialization=doctor.specialization,
        hospital=doctor.hospital,
        location=doctor.location,
        experience=doctor.experience,
        consultation_fee=doctor.consultation_fee,
        availability=[
            DayAvailabilityResponse(
                weekday=day.weekday,
                is_available=day.is_available,
                slots=[IntervalResponse(**interval.model_dump()) for interval in day.slots],
            )
            for day in schedule.days
        ],
    )


@router.get('', response_model=list[DoctorResponse])
def list_doctors(
    specialization: str | None = Query(default=None),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return [to_doctor_response(doctor) for doctor in availability_service.list_doctors(db, specialization)]
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post('', response_model=DoctorResponse, status_code=status.HTTP_201_CREATED)
def create_doctor(
    data: CreateDoctorRequest,
    current_user: User = Depends(require_role('doctor', 'admin')),
    db: Session = Depends(get_db),
):
    if current_user.role != 'admin' and data.user_id != current_user.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='Doctors can only create their own profile.',
        )

    ensure_database_ready()

    try:
        doctor = availability_service.create_doctor_profile(db, data.user_id, data)
        return to_doctor_response(doctor)
    except BookingError as exc:
        raise booking_http_error(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('/{doctor_id}', response_model=DoctorResponse)
def get_doctor(doctor_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        return to_doctor_response(availability_service.get_doctor(db, doctor_id))
    except BookingError as exc:
        raise booking_http_error(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.put('/{doctor_id}/availability', response_model=DoctorResponse)
def update_availability(
    doctor_id: int,
    data: UpdateAvailabilityRequest,
    current_user: User = Depends(require_role('doctor', 'admin')),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        doctor = availability_service.get_doctor(db, doctor_id)
        if current_user.role != 'admin' and doctor.user_id != current_user.id:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail='Doctors can only edit their own availability.',
            )

        doctor = availability_service.update_weekly_availability(db, doctor_id, data.days)
        return to_doctor_response(doctor)
    except BookingError as exc:
        raise booking_http_error(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('/{doctor_id}/slots', response_model=BookableSlotsResponse)
def list_bookable_slots(
    doctor_id: int,
    slot_date: date = Query(..., alias='date'),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        is_available = availability_service.is_doctor_available(db, doctor_id, slot_date)
        slots = availability_service.get_bookable_slots(db, doctor_id, slot_date)
    except BookingError as exc:
        raise booking_http_error(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

    return BookableSlotsResponse(
        doctor_id=doctor_id,
        date=slot_date,
        weekday=weekday_name(slot_date),
        is_available=is_available,
        message=None if is_available else f'Doctor is not available on {weekday_name(slot_date)}.',
        slots=slots,
    )
