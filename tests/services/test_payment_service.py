import hashlib

import pytest
from pydantic import ValidationError

from medbook.models.appointment import Appointment
from medbook.models.payment import PaymentRecord
from medbook.services import payment_service
from medbook.services.errors import InvalidTransitionError, PaymentFailedError, PermissionDeniedError
from medbook.services.payment_service import CardPaymentRequest


def card_request(appointment_id: int, **overrides) -> CardPaymentRequest:
    fields = {
        'appointment_id': appointment_id,
        'reference': 'APT0000000001',
        'payment_method': 'card',
        'card_number': '4111 1111 1111 1234',
        'card_holder': 'K Silva',
        'expiry_month': 12,
        'expiry_year': 2099,
    }
    fields.update(overrides)
    return CardPaymentRequest(**fields)


def test_card_payment_request_strips_spaces_from_card_number() -> None:
    assert card_request(1).card_number == '4111111111111234'


@pytest.mark.parametrize(
    'overrides',
    [
        {'card_number': '4111 1111 1111'},
        {'card_number': '4111-1111-1111-1234'},
        {'card_holder': '  '},
        {'expiry_month': None},
        {'expiry_month': 13},
        {'expiry_year': 2001},
        {'reference': '   '},
    ],
)
def test_card_payment_request_rejects_bad_card_details(overrides) -> None:
    with pytest.raises(ValidationError):
        card_request(1, **overrides)


def test_paypal_payment_request_needs_no_card() -> None:
    request = CardPaymentRequest(appointment_id=1, reference='APT1', payment_method='paypal')

    assert request.card_number is None


@pytest.mark.parametrize(
    ('card_number', 'card_type'),
    [
        ('4111111111111111', 'Visa'),
        ('5500000000000004', 'MasterCard'),
        ('3400000000000009', 'American Express'),
        ('6011000000000004', 'Discover'),
        ('9999999999999999', 'Unknown'),
    ],
)
def test_detect_card_type(card_number: str, card_type: str) -> None:
    assert payment_service.detect_card_type(card_number) == card_type


def test_process_card_payment_completes_payment_and_stores_only_hashes(db, appointment_factory, patient) -> None:
    appointment = appointment_factory()

    record = payment_service.process_card_payment(db, card_request(appointment.id), patient_id=patient.id)

    assert record.status == 'completed'
    assert record.amount == 2500
    assert record.card_last_four == '1234'
    assert record.card_type == 'Visa'
    assert record.card_number_hash == hashlib.sha256(b'4111111111111234').hexdigest()
    assert record.card_holder_hash == hashlib.sha256(b'K Silva').hexdigest()

    db.refresh(appointment)
    assert appointment.payment_status == 'completed'
    assert appointment.status == 'pending'


def test_process_card_payment_decline_leaves_actionable_draft(db, appointment_factory) -> None:
    appointment = appointment_factory()

    with pytest.raises(PaymentFailedError):
        payment_service.process_card_payment(
            db,
            card_request(appointment.id),
            gateway=lambda request, amount: False,
        )

    db.refresh(appointment)
    assert appointment.status == 'pending'
    assert appointment.payment_status == 'pending'
    failed = db.query(PaymentRecord).filter(PaymentRecord.appointment_id == appointment.id).one()
    assert failed.status == 'failed'


def test_process_card_payment_can_be_retried_after_decline(db, appointment_factory) -> None:
    appointment = appointment_factory()

    with pytest.raises(PaymentFailedError):
        payment_service.process_card_payment(db, card_request(appointment.id), gateway=lambda request, amount: False)
    record = payment_service.process_card_payment(db, card_request(appointment.id))

    assert record.status == 'completed'
    assert db.query(Appointment).filter(Appointment.id == appointment.id).one().payment_status == 'completed'


def test_process_card_payment_rejects_already_paid_appointment(db, appointment_factory) -> None:
    appointment = appointment_factory(payment_status='completed')

    with pytest.raises(InvalidTransitionError):
        payment_service.process_card_payment(db, card_request(appointment.id))

    assert db.query(PaymentRecord).count() == 0


@pytest.mark.parametrize('status', ['cancelled', 'confirmed'])
def test_process_card_payment_rejects_decided_appointment(db, appointment_factory, status: str) -> None:
    appointment = appointment_factory(status=status)

    with pytest.raises(InvalidTransitionError) as exception_info:
        payment_service.process_card_payment(db, card_request(appointment.id))

    assert exception_info.value.detail == f'Cannot pay for an appointment that is {status}.'
    assert db.query(PaymentRecord).count() == 0
    db.refresh(appointment)
    assert appointment.payment_status == 'pending'


def test_process_card_payment_rejects_other_patient(db, appointment_factory, patient) -> None:
    appointment = appointment_factory()

    with pytest.raises(PermissionDeniedError):
        payment_service.process_card_payment(db, card_request(appointment.id), patient_id=patient.id + 1)


def test_payment_history_keeps_payments_of_deleted_appointments(db, appointment_factory, patient) -> None:
    kept = appointment_factory(reference='APT1')
    db.add(PaymentRecord(appointment_id=kept.id, patient_id=patient.id, amount=2500, reference='APT1'))
    db.add(PaymentRecord(appointment_id=9999, patient_id=patient.id, amount=2500, reference='APT2', status='refunded'))
    db.commit()

    history = payment_service.payment_history(db, patient.id)

    by_reference = {payment.reference: appointment for payment, appointment in history}
    assert by_reference['APT1'].id == kept.id
    assert by_reference['APT2'] is None
