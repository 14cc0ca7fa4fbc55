from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker

from medbook.core import config


engine = create_engine(config.DATABASE_URL)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_doctor_schema_checked = False
_appointment_schema_checked = False
_payment_schema_checked = False


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _apply_migration_steps(table_name: str, migration_steps, index_statements) -> None:
    inspector = inspect(engine)

    if table_name not in inspector.get_table_names():
        return

    existing_columns = {column['name'] for column in inspector.get_columns(table_name)}

    with engine.begin() as connection:
        for column_name, statement in migration_steps:
            if column_name not in existing_columns:
                connection.execute(text(statement))
        for statement in index_statements:
            connection.execute(text(statement))


def ensure_doctor_schema() -> None:
    global _doctor_schema_checked

    if _doctor_schema_checked:
        return

    with _schema_lock:
        if _doctor_schema_checked:
            return

        _apply_migration_steps(
            'doctors',
            [
                ('availability', 'ALTER TABLE doctors ADD COLUMN availability JSON'),
                ('consultation_fee', 'ALTER TABLE doctors ADD COLUMN consultation_fee NUMERIC(10, 2)'),
            ],
            [],
        )

        _doctor_schema_checked = True


def ensure_appointment_schema() -> None:
    global _appointment_schema_checked

    if _appointment_schema_checked:
        return

    with _schema_lock:
        if _appointment_schema_checked:
            return

        _apply_migration_steps(
            'appointments',
            [
                ('payment_status', "ALTER TABLE appointments ADD COLUMN payment_status VARCHAR DEFAULT 'pending'"),
                ('patient_location', 'ALTER TABLE appointments ADD COLUMN patient_location VARCHAR'),
                ('amount', 'ALTER TABLE appointments ADD COLUMN amount NUMERIC(10, 2)'),
            ],
            [
                'CREATE INDEX IF NOT EXISTS idx_appointments_doctor_slot ON appointments(doctor_id, date, time)',
                'CREATE INDEX IF NOT EXISTS idx_appointments_patient_date ON appointments(patient_id, date)',
            ],
        )

        _appointment_schema_checked = True


def ensure_payment_schema() -> None:
    global _payment_schema_checked

    if _payment_schema_checked:
        return

    with _schema_lock:
        if _payment_schema_checked:
            return

        _apply_migration_steps(
            'payments',
            [
                ('card_type', 'ALTER TABLE payments ADD COLUMN card_type VARCHAR'),
            ],
            [
                'CREATE INDEX IF NOT EXISTS idx_payments_appointment_reference ON payments(appointment_id, reference)',
            ],
        )

        _payment_schema_checked = True
