import hashlib
import logging
from datetime import date
from decimal import Decimal
from typing import Callable, Literal

from pydantic import BaseModel, field_validator, model_validator
from sqlalchemy.orm import Session

from medbook.models.appointment import Appointment
from medbook.models.payment import PaymentRecord
from medbook.services.appointment_lifecycle import get_appointment, next_payment_status, record_payment_outcome
from medbook.services.errors import InvalidTransitionError, PaymentFailedError, PermissionDeniedError

logger = logging.getLogger(__name__)

CARD_NUMBER_LENGTH = 16
CARD_TYPES = {
    '4': 'Visa',
    '5': 'MasterCard',
    '3': 'American Express',
    '6': 'Discover',
}


class CardPaymentRequest(BaseModel):
    appointment_id: int
    reference: str
    payment_method: Literal['card', 'paypal'] = 'card'
    card_number: str | None = None
    card_holder: str | None = None
    expiry_month: int | None = None
    expiry_year: int | None = None

    @field_validator('reference')
    @classmethod
    def validate_reference(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Payment reference is required.')
        return normalized

    @field_validator('card_number')
    @classmethod
    def normalize_card_number(cls, value: str | None) -> str | None:
        if value is None:
            return None
        digits = ''.join(value.split())
        if len(digits) != CARD_NUMBER_LENGTH or not digits.isdigit():
            raise ValueError('Invalid card number format.')
        return digits

    @model_validator(mode='after')
    def validate_card_details(self) -> 'CardPaymentRequest':
        if self.payment_method != 'card':
            return self

        if not self.card_number or not (self.card_holder or '').strip():
            raise ValueError('Missing required card information.')
        if self.expiry_month is None or self.expiry_year is None:
            raise ValueError('Missing required card information.')
        if not 1 <= self.expiry_month <= 12:
            raise ValueError('Invalid card expiry month.')

        today = date.today()
        if (self.expiry_year, self.expiry_month) < (today.year, today.month):
            raise ValueError('Card has expired.')

        return self


PaymentGateway = Callable[[CardPaymentRequest, Decimal], bool]


def accept_all_gateway(request: CardPaymentRequest, amount: Decimal) -> bool:
    """Stand-in gateway used until a real processor is configured; approves every charge."""
    return True


def hash_value(value: str) -> str:
    return hashlib.sha256(value.encode('utf-8')).hexdigest()


def detect_card_type(card_number: str) -> str:
    return CARD_TYPES.get(card_number[:1], 'Unknown')


def _build_record(appointment: Appointment, request: CardPaymentRequest, status: str) -> PaymentRecord:
    record = PaymentRecord(
        appointment_id=appointment.id,
        patient_id=appointment.patient_id,
        amount=appointment.amount or 0,
        reference=request.reference,
        status=status,
        payment_method=request.payment_method,
    )
    if request.payment_method == 'card':
        record.card_number_hash = hash_value(request.card_number)
        record.card_holder_hash = hash_value(request.card_holder.strip())
        record.card_last_four = request.card_number[-4:]
        record.card_type = detect_card_type(request.card_number)
    return record


def process_card_payment(
    db: Session,
    request: CardPaymentRequest,
    patient_id: int | None = None,
    gateway: PaymentGateway = accept_all_gateway,
) -> PaymentRecord:
    """Charge an existing draft appointment and record the outcome.

    The appointment must already exist. A declined charge stores a failed
    payment record, leaves the appointment a ``pending/pending`` draft, and
    raises ``PaymentFailedError``.
    """
    appointment = get_appointment(db, request.appointment_id)

    if patient_id is not None and appointment.patient_id != patient_id:
        raise PermissionDeniedError('Only the patient who booked this appointment can pay for it.')

    if appointment.status != 'pending':
        raise InvalidTransitionError(f'Cannot pay for an appointment that is {appointment.status}.')

    # Fails fast when the payment was already settled.
    next_payment_status(appointment.payment_status, True)

    approved = gateway(request, Decimal(appointment.amount or 0))
    record = _build_record(appointment, request, 'completed' if approved else 'failed')
    db.add(record)

    if not approved:
        # The draft stays pending/pending so the patient can retry or delete it.
        db.commit()
        logger.warning('Payment %s declined for appointment %s', request.reference, appointment.reference)
        raise PaymentFailedError('Payment was declined. The appointment is saved and can be paid again or deleted.')

    record_payment_outcome(db, appointment.id, True)
    db.refresh(record)

    logger.info('Payment %s completed for appointment %s', request.reference, appointment.reference)
    return record


def payment_history(db: Session, patient_id: int) -> list[tuple[PaymentRecord, Appointment | None]]:
    payments = db.query(PaymentRecord).filter(
        PaymentRecord.patient_id == patient_id,
    ).order_by(PaymentRecord.created_at.desc(), PaymentRecord.id.desc()).all()

    history = []
    for payment in payments:
        appointment = db.query(Appointment).filter(Appointment.id == payment.appointment_id).first()
        history.append((payment, appointment))
    return history
