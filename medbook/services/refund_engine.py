"""Refunds for paid appointments the doctor never decided on.

The refund is a compensating transaction for the create-then-pay saga:

1. flag the payment record refunded (scoped to appointment id and reference),
2. then delete the appointment.

Step 1 is the authoritative side effect. If step 2 fails the refund still
counts as done and the stale appointment row is only logged.
"""

import logging
from datetime import date

from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from medbook.models.appointment import Appointment
from medbook.models.payment import PaymentRecord
from medbook.services.errors import NotFoundError, PermissionDeniedError, RefundIneligibleError

logger = logging.getLogger(__name__)


class RefundResult(BaseModel):
    appointment_id: int
    reference: str | None = None
    refunded: bool
    already_processed: bool = False
    appointment_removed: bool = False


def is_refund_eligible(appointment: Appointment, today: date | None = None) -> bool:
    today = today or date.today()
    return (
        appointment.date < today
        and appointment.status == 'pending'
        and appointment.payment_status == 'completed'
    )


def flag_payment_refunded(db: Session, appointment_id: int, payment_reference: str) -> PaymentRecord:
    payment = db.query(PaymentRecord).filter(
        PaymentRecord.appointment_id == appointment_id,
        PaymentRecord.reference == payment_reference,
        PaymentRecord.status.in_(('completed', 'refunded')),
    ).first()
    if payment is None:
        raise NotFoundError('Payment record not found for this appointment.')

    payment.status = 'refunded'
    db.commit()
    return payment


def request_refund(
    db: Session,
    appointment_id: int,
    payment_reference: str,
    today: date | None = None,
    patient_id: int | None = None,
) -> RefundResult:
    appointment = db.query(Appointment).filter(Appointment.id == appointment_id).first()
    if appointment is None:
        # Usually a second click on a stale list; the first request already finished.
        logger.info('Refund for appointment %s skipped, appointment no longer exists', appointment_id)
        return RefundResult(appointment_id=appointment_id, refunded=True, already_processed=True)

    if patient_id is not None and appointment.patient_id != patient_id:
        raise PermissionDeniedError('Only the patient who booked this appointment can request a refund.')

    if not is_refund_eligible(appointment, today):
        raise RefundIneligibleError(
            'Only paid appointments that are past their date and still pending can be refunded.'
        )

    reference = appointment.reference
    flag_payment_refunded(db, appointment_id, payment_reference.strip())
    logger.info('Payment %s refunded for appointment %s', payment_reference, reference)

    try:
        db.delete(appointment)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception('Refund for appointment %s succeeded but the appointment could not be deleted', reference)
        return RefundResult(appointment_id=appointment_id, reference=reference, refunded=True)

    return RefundResult(
        appointment_id=appointment_id,
        reference=reference,
        refunded=True,
        appointment_removed=True,
    )
