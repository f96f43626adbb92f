"""
Treatment Plan API Schemas

Pydantic models for treatment plans, medications and medication schedules.
Field-level rules (dosage present, valid days, HH:MM times) are checked by
the service so every violation is reported together.
"""

from pydantic import BaseModel, Field, validator
from typing import Optional, List
from datetime import datetime, date
from hivcare.domain.treatment.models import (
    TreatmentPlanStatus, MedicationFrequency, MedicationStatus
)


# ==================== Schedule Schemas ====================

class MedicationScheduleCreate(BaseModel):
    """Schema for a dosing time"""
    time_of_day: Optional[str] = Field(None, description="HH:MM")
    dosage_amount: Optional[str] = Field(None, description="e.g. 1 vien")
    days_of_week: List[str] = Field(default_factory=list, description="Empty means every day")
    notes: Optional[str] = None


class MedicationScheduleUpdate(BaseModel):
    time_of_day: Optional[str] = None
    dosage_amount: Optional[str] = None
    days_of_week: Optional[List[str]] = None
    notes: Optional[str] = None


class MedicationScheduleResponse(BaseModel):
    """Schema for schedule response"""
    id: int
    medication_id: int
    time_of_day: str
    dosage_amount: str
    days_of_week: List[str]
    days_display: str
    notes: str = ""
    is_custom: bool

    @validator("days_of_week", pre=True)
    def split_days(cls, v):
        if isinstance(v, str):
            return [d for d in v.split(",") if d]
        return v

    class Config:
        from_attributes = True


# ==================== Medication Schemas ====================

class MedicationCreate(BaseModel):
    """Schema for one medication line of a plan"""
    medication_id: Optional[int] = None
    dosage: Optional[str] = Field(None, max_length=100)
    frequency: Optional[str] = MedicationFrequency.ONCE_DAILY.value
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    prescribed_by: Optional[str] = Field(None, max_length=200)
    instructions: Optional[str] = None
    schedules: Optional[List[MedicationScheduleCreate]] = None


class MedicationBatchCreate(BaseModel):
    medications: List[MedicationCreate]


class MedicationResponse(BaseModel):
    """Schema for medication response"""
    id: int
    position: int
    medication_id: int
    dosage: str
    frequency: MedicationFrequency
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    prescribed_by: str
    instructions: str = ""
    status: MedicationStatus
    schedules: List[MedicationScheduleResponse] = []

    class Config:
        from_attributes = True


# ==================== Plan Schemas ====================

class TreatmentPlanCreate(BaseModel):
    """Schema for creating a treatment plan"""
    description: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    medications: List[MedicationCreate] = Field(default_factory=list)


class TreatmentPlanStatusUpdate(BaseModel):
    status: TreatmentPlanStatus
    reason: Optional[str] = Field(None, max_length=1000)


class TreatmentPlanResponse(BaseModel):
    """Schema for treatment plan response"""
    id: int
    appointment_id: int
    patient_id: int
    doctor_id: int
    description: str = ""
    start_date: date
    end_date: Optional[date] = None
    status: TreatmentPlanStatus
    status_reason: Optional[str] = None
    medications: List[MedicationResponse] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
