from datetime import date, datetime
from decimal import Decimal
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from medbook.auth.dependencies import get_current_user, require_role
from medbook.database import get_db
from medbook.models.appointment import Appointment
from medbook.models.user import User
from medbook.routes.common import booking_http_error, database_unavailable, ensure_database_ready
from medbook.services import appointment_lifecycle, availability_service
from medbook.services.appointment_lifecycle import AppointmentDraft, BookingRequest
from medbook.services.errors import BookingError
from medbook.services.refund_engine import is_refund_eligible

router = APIRouter(tags=['appointments'])


class AppointmentResponse(BaseModel):
    id: int
    reference: str
    doctor_id: int
    patient_id: int
    date: date
    time: str
    reason: str
    name: str
    email: str
    phone: str
    patient_location: str
    amount: Decimal | None = None
    status: str
    payment_status: str
    refund_eligible: bool
    created_at: datetime | None = None


class DoctorDecisionRequest(BaseModel):
    decision: Literal['accept', 'deny']


class PaymentOutcomeRequest(BaseModel):
    success: bool


def to_appointment_response(appointment: Appointment) -> AppointmentResponse:
    return AppointmentResponse(
        id=appointment.id,
        reference=appointment.reference,
        doctor_id=appointment.doctor_id,
        patient_id=appointment.patient_id,
        date=appointment.date,
        time=appointment.time,
        reason=appointment.reason,
        name=appointment.name,
        email=appointment.email,
        phone=appointment.phone,
        patient_location=appointment.patient_location,
        amount=appointment.amount,
        status=appointment.status,
        payment_status=appointment.payment_status,
        refund_eligible=is_refund_eligible(appointment),
        created_at=appointment.created_at,
    )


def ensure_doctor_owns(db: Session, doctor_id: int, current_user: User) -> None:
    if current_user.role == 'admin':
        return

    doctor = availability_service.get_doctor(db, doctor_id)
    if doctor.user_id != current_user.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='Doctors can only manage their own appointments.',
        )


@router.post('', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(
    data: BookingRequest,
    current_user: User = Depends(require_role('patient')),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        draft = AppointmentDraft(**data.model_dump(), patient_id=current_user.id)
        appointment = appointment_lifecycle.create_draft_appointment(db, draft)
        return to_appointment_response(appointment)
    except BookingError as exc:
        raise booking_http_error(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('/patient/{patient_id}', response_model=list[AppointmentResponse])
def list_patient_appointments(
    patient_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if current_user.role != 'admin' and current_user.id != patient_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='Patients can only view their own appointments.',
        )

    ensure_database_ready()

    try:
        appointments = appointment_lifecycle.list_patient_appointments(db, patient_id)
        return [to_appointment_response(appointment) for appointment in appointments]
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/doctor/{doctor_id}', response_model=list[AppointmentResponse])
def list_doctor_appointments(
    doctor_id: int,
    current_user: User = Depends(require_role('doctor', 'admin')),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        ensure_doctor_owns(db, doctor_id, current_user)
        appointments = appointment_lifecycle.list_doctor_appointments(db, doctor_id)
        return [to_appointment_response(appointment) for appointment in appointments]
    except BookingError as exc:
        raise booking_http_error(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.patch('/{appointment_id}/status', response_model=AppointmentResponse)
def set_doctor_decision(
    appointment_id: int,
    data: DoctorDecisionRequest,
    current_user: User = Depends(require_role('doctor', 'admin')),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        appointment = appointment_lifecycle.get_appointment(db, appointment_id)
        ensure_doctor_owns(db, appointment.doctor_id, current_user)
        appointment = appointment_lifecycle.set_doctor_decision(db, appointment_id, data.decision)
        return to_appointment_response(appointment)
    except BookingError as exc:
        raise booking_http_error(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.post('/{appointment_id}/payment-outcome', response_model=AppointmentResponse)
def record_payment_outcome(
    appointment_id: int,
    data: PaymentOutcomeRequest,
    current_user: User = Depends(require_role('admin')),
    db: Session = Depends(get_db),
):
    del current_user
    ensure_database_ready()

    try:
        appointment = appointment_lifecycle.record_payment_outcome(db, appointment_id, data.success)
        return to_appointment_response(appointment)
    except BookingError as exc:
        raise booking_http_error(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.delete('/{appointment_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_appointment(
    appointment_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    patient_id = None if current_user.role == 'admin' else current_user.id

    try:
        appointment_lifecycle.delete_appointment(db, appointment_id, patient_id=patient_id)
    except BookingError as exc:
        raise booking_http_error(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc
