"""
Appointments Domain Models

Implements the database model for the clinical encounter:
- Booking and check-in
- Clinical review (vitals, symptoms, lab sample request)
- Completion / cancellation and soft archiving
"""

from sqlalchemy import (
    Column, String, Boolean, DateTime, Integer, Text, Enum
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from hivcare.infrastructure.database import Base
import enum


class AppointmentStatus(str, enum.Enum):
    """Appointment status enumeration"""
    SCHEDULED = "SCHEDULED"
    CHECKED_IN = "CHECKED_IN"
    UNDER_REVIEW = "UNDER_REVIEW"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


TERMINAL_APPOINTMENT_STATUSES = frozenset({
    AppointmentStatus.COMPLETED,
    AppointmentStatus.CANCELLED,
})


class Appointment(Base):
    """Appointment model - one clinical encounter"""
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True, autoincrement=True)

    # Participants (owned by the external identity store)
    patient_id = Column(Integer, nullable=False, index=True)
    doctor_id = Column(Integer, nullable=False, index=True)
    service_id = Column(Integer)

    # Scheduling
    scheduled_at = Column(DateTime, nullable=False, index=True)
    is_online = Column(Boolean, nullable=False, default=False)

    # Status
    status = Column(Enum(AppointmentStatus), nullable=False, default=AppointmentStatus.SCHEDULED, index=True)

    # Check-in tracking
    checked_in = Column(Boolean, nullable=False, default=False)
    checked_in_at = Column(DateTime)
    checked_in_by = Column(Integer)

    # Clinical review
    blood_pressure = Column(String(20))
    symptoms = Column(Text, nullable=False, default="")
    notes = Column(Text, nullable=False, default="")
    request_lab_sample = Column(Boolean, nullable=False, default=False)
    reviewed_at = Column(DateTime)

    # Completion
    completed_at = Column(DateTime)

    # Cancellation
    cancelled_at = Column(DateTime)
    cancelled_by = Column(Integer)
    cancelled_reason = Column(Text)

    # Appointments are never deleted, only archived
    is_archived = Column(Boolean, nullable=False, default=False)

    # Audit
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    # Relationships
    treatment_plan = relationship("TreatmentPlan", back_populates="appointment", uselist=False)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_APPOINTMENT_STATUSES
