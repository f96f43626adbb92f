"""
Treatment Domain Models

Implements the database models for:
- Treatment plans (one per appointment)
- Medication prescriptions inside a plan
- Per-medication dosing schedules
"""

from sqlalchemy import (
    Column, String, Date, DateTime, ForeignKey,
    Integer, Text, Enum, Boolean, CheckConstraint
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from hivcare.infrastructure.database import Base
import enum


class TreatmentPlanStatus(str, enum.Enum):
    """Treatment plan status"""
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    COMPLETED = "COMPLETED"
    DISCONTINUED = "DISCONTINUED"


TERMINAL_PLAN_STATUSES = frozenset({
    TreatmentPlanStatus.COMPLETED,
    TreatmentPlanStatus.DISCONTINUED,
})


class MedicationFrequency(str, enum.Enum):
    """How often a medication is taken"""
    ONCE_DAILY = "ONCE_DAILY"
    TWICE_DAILY = "TWICE_DAILY"
    THREE_TIMES_DAILY = "THREE_TIMES_DAILY"
    FOUR_TIMES_DAILY = "FOUR_TIMES_DAILY"
    EVERY_OTHER_DAY = "EVERY_OTHER_DAY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"


class MedicationStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    STOPPED = "STOPPED"


class DayOfWeek(str, enum.Enum):
    MON = "MON"
    TUE = "TUE"
    WED = "WED"
    THU = "THU"
    FRI = "FRI"
    SAT = "SAT"
    SUN = "SUN"


EVERY_DAY_LABEL = "Every day"


def format_days_of_week(days) -> str:
    """Human readable days. An empty selection means every day."""
    if isinstance(days, str):
        days = [d for d in days.split(",") if d]
    if not days:
        return EVERY_DAY_LABEL
    return ", ".join(days)


class TreatmentPlan(Base):
    """Treatment plan authored by a doctor during clinical review"""
    __tablename__ = "treatment_plans"

    id = Column(Integer, primary_key=True, autoincrement=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=False, unique=True)
    patient_id = Column(Integer, nullable=False, index=True)
    doctor_id = Column(Integer, nullable=False, index=True)

    description = Column(Text, nullable=False, default="")
    start_date = Column(Date, nullable=False)
    end_date = Column(Date)

    status = Column(Enum(TreatmentPlanStatus), nullable=False, default=TreatmentPlanStatus.ACTIVE)
    status_reason = Column(Text)

    # Audit
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    # Relationships
    appointment = relationship("Appointment", back_populates="treatment_plan")
    medications = relationship(
        "MedicationPrescription",
        back_populates="plan",
        cascade="all, delete-orphan",
        order_by="MedicationPrescription.position"
    )

    __table_args__ = (
        CheckConstraint('end_date IS NULL OR end_date >= start_date', name='check_plan_dates'),
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_PLAN_STATUSES


class MedicationPrescription(Base):
    """One medication line inside a treatment plan"""
    __tablename__ = "treatment_medications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    plan_id = Column(Integer, ForeignKey("treatment_plans.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)

    # Reference into the medication catalog (owned elsewhere)
    medication_id = Column(Integer, nullable=False)
    dosage = Column(String(100), nullable=False)
    frequency = Column(Enum(MedicationFrequency), nullable=False, default=MedicationFrequency.ONCE_DAILY)

    start_date = Column(Date)
    end_date = Column(Date)
    prescribed_by = Column(String(200), nullable=False)
    instructions = Column(Text, nullable=False, default="")
    status = Column(Enum(MedicationStatus), nullable=False, default=MedicationStatus.ACTIVE)

    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    # Relationships
    plan = relationship("TreatmentPlan", back_populates="medications")
    schedules = relationship(
        "MedicationSchedule",
        back_populates="medication",
        cascade="all, delete-orphan",
        order_by="MedicationSchedule.id"
    )


class MedicationSchedule(Base):
    """A dosing time for a medication. Empty days_of_week means every day."""
    __tablename__ = "medication_schedules"

    id = Column(Integer, primary_key=True, autoincrement=True)
    medication_id = Column(Integer, ForeignKey("treatment_medications.id", ondelete="CASCADE"), nullable=False, index=True)

    time_of_day = Column(String(5), nullable=False)  # HH:MM
    dosage_amount = Column(String(100), nullable=False)
    days_of_week = Column(String(27), nullable=False, default="")  # "MON,WED,FRI"
    notes = Column(Text, nullable=False, default="")
    is_custom = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    # Relationships
    medication = relationship("MedicationPrescription", back_populates="schedules")

    @property
    def days(self):
        """days_of_week as a list of day codes"""
        if not self.days_of_week:
            return []
        return self.days_of_week.split(",")

    @property
    def days_display(self) -> str:
        return format_days_of_week(self.days)
