import logging
from datetime import date
from decimal import Decimal

from pydantic import BaseModel, ValidationError, field_validator
from sqlalchemy.orm import Session

from medbook.models.doctor import Doctor
from medbook.models.user import User
from medbook.services import slot_generator
from medbook.services.errors import (
    BookingValidationError,
    ConflictError,
    NotAvailableError,
    NotFoundError,
    first_error_message,
)
from medbook.services.weekly_availability import DayAvailability, WeeklyAvailability, weekday_name

logger = logging.getLogger(__name__)

DEFAULT_DOCTOR_LOCATION = 'Sri Lanka'


class DoctorProfile(BaseModel):
    name: str
    specialization: str
    hospital: str
    location: str = DEFAULT_DOCTOR_LOCATION
    experience: int = 1
    consultation_fee: Decimal
    availability: list[DayAvailability] | None = None

    @field_validator('name', 'specialization', 'hospital', 'location')
    @classmethod
    def validate_required_text(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Please provide all the doctor fields.')
        return normalized

    @field_validator('experience')
    @classmethod
    def validate_experience(cls, value: int) -> int:
        if value < 0:
            raise ValueError('Experience cannot be negative.')
        return value

    @field_validator('consultation_fee')
    @classmethod
    def validate_fee(cls, value: Decimal) -> Decimal:
        if value < 0:
            raise ValueError('Consultation fee cannot be negative.')
        return value


def get_doctor(db: Session, doctor_id: int) -> Doctor:
    doctor = db.query(Doctor).filter(Doctor.id == doctor_id).first()
    if doctor is None:
        raise NotFoundError('Doctor not found.')
    return doctor


def list_doctors(db: Session, specialization: str | None = None) -> list[Doctor]:
    query = db.query(Doctor)
    if specialization:
        query = query.filter(Doctor.specialization.ilike(f'%{specialization.strip()}%'))
    return query.order_by(Doctor.name.asc()).all()


def get_bookable_slots(db: Session, doctor_id: int, slot_date: date) -> list[str]:
    """Display-formatted slot times for a doctor on a date; empty when the day is closed."""
    doctor = get_doctor(db, doctor_id)
    return [
        slot_generator.format_slot(slot_time)
        for slot_time in slot_generator.generate(doctor.weekly_availability, slot_date)
    ]


def is_doctor_available(db: Session, doctor_id: int, slot_date: date) -> bool:
    return slot_generator.is_day_open(get_doctor(db, doctor_id).weekly_availability, slot_date)


def ensure_doctor_available(db: Session, doctor_id: int, slot_date: date) -> None:
    doctor = get_doctor(db, doctor_id)
    if not slot_generator.is_day_open(doctor.weekly_availability, slot_date):
        raise NotAvailableError(f'Dr. {doctor.name} is not available on {weekday_name(slot_date)}.')


def _edited_schedule(days: list[DayAvailability] | None) -> WeeklyAvailability:
    try:
        return WeeklyAvailability.from_edit(days or [])
    except ValidationError as exc:
        raise BookingValidationError(first_error_message(exc)) from exc


def update_weekly_availability(db: Session, doctor_id: int, days: list[DayAvailability]) -> Doctor:
    doctor = get_doctor(db, doctor_id)
    doctor.weekly_availability = _edited_schedule(days)
    db.commit()
    db.refresh(doctor)

    logger.info('Saved weekly availability for doctor %s', doctor_id)
    return doctor


def create_doctor_profile(db: Session, user_id: int, profile: DoctorProfile) -> Doctor:
    """Attach a doctor profile to an existing user and make the user a doctor.

    Without an explicit schedule the profile starts with the default weekly
    hours, so the doctor is bookable straight after registration.
    """
    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise NotFoundError('User not found.')

    if db.query(Doctor).filter(Doctor.user_id == user_id).first():
        raise ConflictError('Doctor profile already exists.')

    doctor = Doctor(
        user_id=user_id,
        name=profile.name,
        specialization=profile.specialization,
        hospital=profile.hospital,
        location=profile.location,
        experience=profile.experience,
        consultation_fee=profile.consultation_fee,
    )
    doctor.weekly_availability = _edited_schedule(profile.availability)
    if user.role != 'admin':
        user.role = 'doctor'

    db.add(doctor)
    db.commit()
    db.refresh(doctor)

    logger.info('Created doctor profile %s for user %s', doctor.id, user_id)
    return doctor
