import os
from datetime import date

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')

from medbook.database import Base  # noqa: E402
from medbook.models.appointment import Appointment  # noqa: E402
from medbook.models.doctor import Doctor  # noqa: E402
from medbook.models.payment import PaymentRecord  # noqa: E402
from medbook.models.user import User  # noqa: E402

TABLES = [User.__table__, Doctor.__table__, Appointment.__table__, PaymentRecord.__table__]


@pytest.fixture
def db():
    engine = create_engine('sqlite:///:memory:')
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine, tables=TABLES)

    session = testing_session_local()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine, tables=list(reversed(TABLES)))


@pytest.fixture(autouse=True)
def skip_schema_migrations(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr('medbook.routes.common.ensure_database_ready', lambda: None)
    for module in ('availability_routes', 'appointment_routes', 'payment_routes'):
        monkeypatch.setattr(f'medbook.routes.{module}.ensure_database_ready', lambda: None)


@pytest.fixture
def patient(db) -> User:
    user = User(email='patient@example.com', hashed_password='', role='patient')
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def doctor_user(db) -> User:
    user = User(email='doctor@example.com', hashed_password='', role='doctor')
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def doctor(db, doctor_user) -> Doctor:
    record = Doctor(
        user_id=doctor_user.id,
        name='Nimal Perera',
        specialization='Cardiology',
        hospital='Asiri Central',
        location='Colombo',
        experience=12,
        consultation_fee=2500,
        availability=[],
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    return record


@pytest.fixture
def appointment_factory(db, doctor, patient):
    def build(**overrides) -> Appointment:
        fields = {
            'reference': 'APT0000000001',
            'doctor_id': doctor.id,
            'patient_id': patient.id,
            'date': date(2026, 1, 5),
            'time': '09:00 AM',
            'reason': 'Chest pain follow-up',
            'name': 'Kamala Silva',
            'email': 'patient@example.com',
            'phone': '0771234567',
            'patient_location': 'Kandy',
            'amount': 2500,
            'status': 'pending',
            'payment_status': 'pending',
        }
        fields.update(overrides)
        appointment = Appointment(**fields)
        db.add(appointment)
        db.commit()
        db.refresh(appointment)
        return appointment

    return build
