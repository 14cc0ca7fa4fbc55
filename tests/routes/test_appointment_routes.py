from datetime import date, timedelta

import pytest
from fastapi import HTTPException

from medbook.models.appointment import Appointment
from medbook.models.user import User
from medbook.routes.appointment_routes import (
    DoctorDecisionRequest,
    PaymentOutcomeRequest,
    create_appointment,
    delete_appointment,
    list_doctor_appointments,
    list_patient_appointments,
    record_payment_outcome,
    set_doctor_decision,
)
from medbook.services.appointment_lifecycle import BookingRequest


def next_weekday(weekday: int) -> date:
    today = date.today()
    return today + timedelta(days=(weekday - today.weekday() - 1) % 7 + 1)


def booking_request(doctor, **overrides) -> BookingRequest:
    fields = {
        'doctor_id': doctor.id,
        'date': next_weekday(0),
        'time': '09:00 AM',
        'reason': 'Annual check-up',
        'name': 'Kamala Silva',
        'email': 'patient@example.com',
        'phone': '0771234567',
        'patient_location': 'Kandy',
    }
    fields.update(overrides)
    return BookingRequest(**fields)


@pytest.fixture
def admin(db) -> User:
    user = User(email='admin@example.com', hashed_password='', role='admin')
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def test_create_appointment_returns_pending_draft_for_current_patient(db, doctor, patient) -> None:
    response = create_appointment(data=booking_request(doctor), current_user=patient, db=db)

    assert response.patient_id == patient.id
    assert response.status == 'pending'
    assert response.payment_status == 'pending'
    assert response.refund_eligible is False
    assert response.time == '09:00 AM'


def test_create_appointment_reports_closed_day(db, doctor, patient) -> None:
    doctor.availability = [{'day': 'Sunday', 'dayAvailable': False, 'slots': []}]
    db.commit()

    with pytest.raises(HTTPException) as exception_info:
        create_appointment(data=booking_request(doctor, date=next_weekday(6)), current_user=patient, db=db)

    assert exception_info.value.status_code == 409
    assert exception_info.value.detail == 'Dr. Nimal Perera is not available on Sunday.'


def test_create_appointment_reports_double_booking(db, doctor, patient) -> None:
    create_appointment(data=booking_request(doctor), current_user=patient, db=db)

    with pytest.raises(HTTPException) as exception_info:
        create_appointment(data=booking_request(doctor), current_user=patient, db=db)

    assert exception_info.value.status_code == 409
    assert exception_info.value.detail == 'This time slot is already booked.'


def test_list_patient_appointments_rejects_other_patient(db, patient) -> None:
    with pytest.raises(HTTPException) as exception_info:
        list_patient_appointments(patient_id=patient.id + 1, current_user=patient, db=db)

    assert exception_info.value.status_code == 403
    assert exception_info.value.detail == 'Patients can only view their own appointments.'


def test_list_patient_appointments_flags_refund_eligible(db, patient, appointment_factory) -> None:
    appointment_factory(date=date(2020, 1, 6), payment_status='completed')

    response = list_patient_appointments(patient_id=patient.id, current_user=patient, db=db)

    assert [item.refund_eligible for item in response] == [True]


def test_doctor_can_accept_own_appointment(db, doctor_user, appointment_factory) -> None:
    appointment = appointment_factory(payment_status='completed')

    response = set_doctor_decision(
        appointment_id=appointment.id,
        data=DoctorDecisionRequest(decision='accept'),
        current_user=doctor_user,
        db=db,
    )

    assert response.status == 'confirmed'
    assert response.payment_status == 'completed'


def test_doctor_cannot_decide_for_another_doctor(db, appointment_factory) -> None:
    appointment = appointment_factory()
    stranger = User(email='stranger@example.com', hashed_password='', role='doctor')
    db.add(stranger)
    db.commit()
    db.refresh(stranger)

    with pytest.raises(HTTPException) as exception_info:
        set_doctor_decision(
            appointment_id=appointment.id,
            data=DoctorDecisionRequest(decision='deny'),
            current_user=stranger,
            db=db,
        )

    assert exception_info.value.status_code == 403


def test_decision_on_decided_appointment_is_a_conflict(db, doctor_user, appointment_factory) -> None:
    appointment = appointment_factory(status='cancelled')

    with pytest.raises(HTTPException) as exception_info:
        set_doctor_decision(
            appointment_id=appointment.id,
            data=DoctorDecisionRequest(decision='accept'),
            current_user=doctor_user,
            db=db,
        )

    assert exception_info.value.status_code == 409


def test_decision_on_missing_appointment_is_not_found(db, doctor_user) -> None:
    with pytest.raises(HTTPException) as exception_info:
        set_doctor_decision(
            appointment_id=999,
            data=DoctorDecisionRequest(decision='accept'),
            current_user=doctor_user,
            db=db,
        )

    assert exception_info.value.status_code == 404


def test_list_doctor_appointments_for_owner(db, doctor, doctor_user, appointment_factory) -> None:
    appointment_factory()

    response = list_doctor_appointments(doctor_id=doctor.id, current_user=doctor_user, db=db)

    assert len(response) == 1


def test_record_payment_outcome_route(db, admin, appointment_factory) -> None:
    appointment = appointment_factory()

    response = record_payment_outcome(
        appointment_id=appointment.id,
        data=PaymentOutcomeRequest(success=True),
        current_user=admin,
        db=db,
    )

    assert response.payment_status == 'completed'
    assert response.status == 'pending'


def test_delete_confirmed_appointment_is_forbidden(db, patient, appointment_factory) -> None:
    appointment = appointment_factory(status='confirmed', payment_status='completed')

    with pytest.raises(HTTPException) as exception_info:
        delete_appointment(appointment_id=appointment.id, current_user=patient, db=db)

    assert exception_info.value.status_code == 403
    assert exception_info.value.detail == 'Confirmed appointments cannot be deleted.'


def test_delete_draft_appointment(db, patient, appointment_factory) -> None:
    appointment = appointment_factory()

    delete_appointment(appointment_id=appointment.id, current_user=patient, db=db)

    assert db.query(Appointment).filter(Appointment.id == appointment.id).first() is None


def test_delete_missing_appointment_is_not_found(db, patient) -> None:
    with pytest.raises(HTTPException) as exception_info:
        delete_appointment(appointment_id=999, current_user=patient, db=db)

    assert exception_info.value.status_code == 404
    assert exception_info.value.detail == 'Appointment not found.'
