from datetime import date, datetime
from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from medbook.auth.dependencies import get_current_user, require_role
from medbook.database import get_db
from medbook.models.user import User
from medbook.routes.common import booking_http_error, database_unavailable, ensure_database_ready
from medbook.services import payment_service, refund_engine
from medbook.services.errors import BookingError
from medbook.services.payment_service import CardPaymentRequest
from medbook.services.refund_engine import RefundResult

router = APIRouter(tags=['payments'])


class PaymentResponse(BaseModel):
    reference: str
    amount: Decimal
    status: str
    payment_method: str
    card_last_four: str | None = None
    card_type: str | None = None
    created_at: datetime | None = None

    class Config:
        from_attributes = True


class RefundRequest(BaseModel):
    appointment_id: int
    reference: str

    @field_validator('reference')
    @classmethod
    def validate_reference(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Payment reference is required.')
        return normalized


class PaymentHistoryAppointment(BaseModel):
    id: int
    doctor_id: int
    date: date
    time: str
    status: str


class PaymentHistoryEntry(BaseModel):
    payment_id: int
    reference: str
    amount: Decimal
    status: str
    payment_method: str
    card_last_four: str | None = None
    card_type: str | None = None
    created_at: datetime | None = None
    appointment: PaymentHistoryAppointment | None = None


@router.post('/process', response_model=PaymentResponse, status_code=status.HTTP_201_CREATED)
def process_payment(
    data: CardPaymentRequest,
    current_user: User = Depends(require_role('patient')),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return payment_service.process_card_payment(db, data, patient_id=current_user.id)
    except BookingError as exc:
        raise booking_http_error(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.post('/refund', response_model=RefundResult)
def request_refund(
    data: RefundRequest,
    current_user: User = Depends(require_role('patient')),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return refund_engine.request_refund(
            db,
            data.appointment_id,
            data.reference,
            patient_id=current_user.id,
        )
    except BookingError as exc:
        raise booking_http_error(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('/history/{patient_id}', response_model=list[PaymentHistoryEntry])
def get_payment_history(
    patient_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if current_user.role != 'admin' and current_user.id != patient_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='Patients can only view their own payments.',
        )

    ensure_database_ready()

    try:
        history = payment_service.payment_history(db, patient_id)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

    return [
        PaymentHistoryEntry(
            payment_id=payment.id,
            reference=payment.reference,
            amount=payment.amount,
            status=payment.status,
            payment_method=payment.payment_method,
            card_last_four=payment.card_last_four,
            card_type=payment.card_type,
            created_at=payment.created_at,
            appointment=PaymentHistoryAppointment(
                id=appointment.id,
                doctor_id=appointment.doctor_id,
                date=appointment.date,
                time=appointment.time,
                status=appointment.status,
            ) if appointment else None,
        )
        for payment, appointment in history
    ]
