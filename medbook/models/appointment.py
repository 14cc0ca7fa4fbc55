"""Appointment model definitions."""

from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, Numeric, String, func
from medbook.database import Base

APPOINTMENT_STATUSES = ('pending', 'confirmed', 'cancelled')
PAYMENT_STATUSES = ('pending', 'completed', 'failed')


class Appointment(Base):
    """Represents a reservation of one doctor slot by a patient."""
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True)
    reference = Column(String, unique=True, nullable=False, index=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=False)
    patient_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    date = Column(Date, nullable=False)
    time = Column(String, nullable=False)
    reason = Column(String, nullable=False)
    name = Column(String, nullable=False)
    email = Column(String, nullable=False)
    phone = Column(String, nullable=False)
    patient_location = Column(String, nullable=False)
    amount = Column(Numeric(10, 2), default=0)
    status = Column(String, nullable=False, default='pending')
    payment_status = Column(String, nullable=False, default='pending')
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
