"""Appointment state machine and the create-then-pay booking protocol.

An appointment moves on two independent axes::

    status:          pending --accept--> confirmed
                     pending --deny----> cancelled
    payment_status:  pending --success-> completed
                     pending --failure-> failed

The appointment row is always written before any money moves. A payment that
never happens leaves a ``pending/pending`` draft the patient can delete.
"""

import logging
import re
import uuid
from datetime import date, time

from pydantic import BaseModel, ValidationError, field_validator
from sqlalchemy.orm import Session

from medbook.models.appointment import Appointment
from medbook.services import slot_generator
from medbook.services.availability_service import ensure_doctor_available, get_doctor
from medbook.services.errors import (
    BookingValidationError,
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    PermissionDeniedError,
    first_error_message,
)

logger = logging.getLogger(__name__)

MAX_REASON_LENGTH = 600
REFERENCE_PREFIX = 'APT'
EMAIL_PATTERN = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')
MOBILE_PATTERN = re.compile(r'^(0\d{9}|94\d{9})$')
MOBILE_PREFIXES = {'70', '71', '72', '74', '75', '76', '77', '78'}

STATUS_TRANSITIONS = {
    ('pending', 'accept'): 'confirmed',
    ('pending', 'deny'): 'cancelled',
}
PAYMENT_TRANSITIONS = {
    ('pending', True): 'completed',
    ('pending', False): 'failed',
}


def _required(value: str, message: str) -> str:
    normalized = value.strip()
    if not normalized:
        raise ValueError(message)
    return normalized


class BookingRequest(BaseModel):
    doctor_id: int
    date: date
    time: str
    reason: str
    name: str
    email: str
    phone: str
    patient_location: str

    @field_validator('time')
    @classmethod
    def validate_time(cls, value: str) -> str:
        return slot_generator.format_slot(slot_generator.parse_slot(value))

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str) -> str:
        normalized = _required(value, 'Reason is required.')
        if len(normalized) > MAX_REASON_LENGTH:
            raise ValueError(f'Reason must be {MAX_REASON_LENGTH} characters or fewer.')
        return normalized

    @field_validator('name')
    @classmethod
    def validate_name(cls, value: str) -> str:
        return _required(value, 'Name is required.')

    @field_validator('patient_location')
    @classmethod
    def validate_location(cls, value: str) -> str:
        return _required(value, 'Location is required.')

    @field_validator('email')
    @classmethod
    def validate_email(cls, value: str) -> str:
        normalized = value.strip().lower()
        if not EMAIL_PATTERN.match(normalized):
            raise ValueError('A valid email address is required.')
        return normalized

    @field_validator('phone')
    @classmethod
    def validate_phone(cls, value: str) -> str:
        digits = re.sub(r'\D', '', value)
        if not MOBILE_PATTERN.match(digits):
            raise ValueError('Enter a valid mobile number (e.g. 0771234567 or +94771234567).')
        if digits[-9:-7] not in MOBILE_PREFIXES:
            raise ValueError('Enter a valid mobile number prefix.')
        return digits


class AppointmentDraft(BookingRequest):
    patient_id: int


def generate_reference() -> str:
    return f'{REFERENCE_PREFIX}{uuid.uuid4().hex[:10].upper()}'


def next_status(current: str, decision: str) -> str:
    try:
        return STATUS_TRANSITIONS[(current, decision)]
    except KeyError:
        raise InvalidTransitionError(f'Cannot {decision} an appointment that is {current}.') from None


def next_payment_status(current: str, success: bool) -> str:
    try:
        return PAYMENT_TRANSITIONS[(current, success)]
    except KeyError:
        raise InvalidTransitionError(f'Payment is already {current}.') from None


def get_appointment(db: Session, appointment_id: int) -> Appointment:
    appointment = db.query(Appointment).filter(Appointment.id == appointment_id).first()
    if appointment is None:
        raise NotFoundError('Appointment not found.')
    return appointment


def _validated_draft(draft) -> AppointmentDraft:
    if isinstance(draft, AppointmentDraft):
        return draft
    try:
        return AppointmentDraft.model_validate(draft)
    except ValidationError as exc:
        raise BookingValidationError(first_error_message(exc)) from exc


def find_conflicting_appointment(db: Session, doctor_id: int, slot_date: date, slot_time: str) -> Appointment | None:
    return db.query(Appointment).filter(
        Appointment.doctor_id == doctor_id,
        Appointment.date == slot_date,
        Appointment.time == slot_time,
        Appointment.status != 'cancelled',
    ).first()


def create_draft_appointment(db: Session, draft, today: date | None = None) -> Appointment:
    """Write a ``pending/pending`` appointment for a slot the doctor offers.

    Raises before anything is persisted when the draft is malformed, the day
    is closed, the time is not one of the day's slots, or the slot is taken.
    """
    data = _validated_draft(draft)
    today = today or date.today()

    if data.date < today:
        raise BookingValidationError('Appointments cannot be booked in the past.')

    doctor = get_doctor(db, data.doctor_id)
    schedule = doctor.weekly_availability

    ensure_doctor_available(db, data.doctor_id, data.date)

    offered = {slot_generator.format_slot(slot_time) for slot_time in slot_generator.generate(schedule, data.date)}
    if data.time not in offered:
        raise BookingValidationError('The selected time is not one of the doctor\'s available slots.')

    if find_conflicting_appointment(db, data.doctor_id, data.date, data.time):
        raise ConflictError('This time slot is already booked.')

    appointment = Appointment(
        reference=generate_reference(),
        doctor_id=data.doctor_id,
        patient_id=data.patient_id,
        date=data.date,
        time=data.time,
        reason=data.reason,
        name=data.name,
        email=data.email,
        phone=data.phone,
        patient_location=data.patient_location,
        amount=doctor.consultation_fee or 0,
        status='pending',
        payment_status='pending',
    )
    db.add(appointment)
    db.commit()
    db.refresh(appointment)

    logger.info(
        'Created draft appointment %s for doctor %s on %s at %s',
        appointment.reference, data.doctor_id, data.date, data.time,
    )
    return appointment


def record_payment_outcome(db: Session, appointment_id: int, success: bool) -> Appointment:
    """Apply a payment result; ``status`` is never touched here."""
    appointment = get_appointment(db, appointment_id)
    appointment.payment_status = next_payment_status(appointment.payment_status, success)
    db.commit()
    db.refresh(appointment)

    logger.info('Payment for appointment %s is now %s', appointment.reference, appointment.payment_status)
    return appointment


def set_doctor_decision(db: Session, appointment_id: int, decision: str) -> Appointment:
    appointment = get_appointment(db, appointment_id)
    appointment.status = next_status(appointment.status, decision)
    db.commit()
    db.refresh(appointment)

    logger.info('Doctor decision %s on appointment %s', decision, appointment.reference)
    return appointment


def delete_appointment(db: Session, appointment_id: int, patient_id: int | None = None) -> None:
    """Self-service deletion; confirmed appointments are kept."""
    appointment = get_appointment(db, appointment_id)

    if patient_id is not None and appointment.patient_id != patient_id:
        raise PermissionDeniedError('Only the patient who booked this appointment can delete it.')

    if appointment.status == 'confirmed':
        raise PermissionDeniedError('Confirmed appointments cannot be deleted.')

    db.delete(appointment)
    db.commit()
    logger.info('Deleted appointment %s', appointment.reference)


def _slot_sort_key(appointment: Appointment) -> tuple:
    # Stored times are display strings, so "01:00 PM" must not sort before "08:00 AM".
    try:
        return appointment.date, 0, slot_generator.parse_slot(appointment.time)
    except (AttributeError, ValueError):
        logger.warning('Unparseable time %r on appointment %s', appointment.time, appointment.reference)
        return appointment.date, 1, time.max


def _chronological(appointments: list[Appointment]) -> list[Appointment]:
    return sorted(appointments, key=_slot_sort_key)


def list_patient_appointments(db: Session, patient_id: int) -> list[Appointment]:
    return _chronological(db.query(Appointment).filter(Appointment.patient_id == patient_id).all())


def list_doctor_appointments(db: Session, doctor_id: int) -> list[Appointment]:
    return _chronological(db.query(Appointment).filter(Appointment.doctor_id == doctor_id).all())
