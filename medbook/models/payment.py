"""Payment record model definitions."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String, func
from medbook.database import Base


class PaymentRecord(Base):
    """Money-side record of an appointment payment; refunds are flagged here."""
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True)
    # Kept after the appointment row is deleted by a refund, so no foreign key.
    appointment_id = Column(Integer, nullable=False, index=True)
    patient_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    reference = Column(String, nullable=False, index=True)
    status = Column(String, nullable=False, default='completed')  # completed/failed/refunded
    payment_method = Column(String, nullable=False, default='card')
    card_number_hash = Column(String)
    card_holder_hash = Column(String)
    card_last_four = Column(String)
    card_type = Column(String)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
