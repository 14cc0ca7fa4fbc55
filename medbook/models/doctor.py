"""Doctor model definitions."""

from sqlalchemy import Column, ForeignKey, Integer, JSON, Numeric, String
from medbook.database import Base
from medbook.services.weekly_availability import WeeklyAvailability


class Doctor(Base):
    """Represents a doctor profile and its recurring weekly schedule."""
    __tablename__ = "doctors"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"))
    name = Column(String, nullable=False)
    specialization = Column(String)
    hospital = Column(String)
    location = Column(String)
    experience = Column(Integer, default=0)
    consultation_fee = Column(Numeric(10, 2), default=0)
    availability = Column(JSON, default=list)

    @property
    def weekly_availability(self) -> WeeklyAvailability:
        return WeeklyAvailability.from_records(self.availability)

    @weekly_availability.setter
    def weekly_availability(self, schedule: WeeklyAvailability) -> None:
        # Replaced wholesale so the JSON column is marked dirty.
        self.availability = schedule.to_records()
