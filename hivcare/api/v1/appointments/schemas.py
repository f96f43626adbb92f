"""
Appointments API Schemas

Pydantic models for appointment-related API requests and responses.
"""

from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from hivcare.domain.appointments.models import AppointmentStatus
from hivcare.api.v1.payments.schemas import PaymentTransactionResponse


class AppointmentCreate(BaseModel):
    """Schema for booking an appointment"""
    patient_id: int
    doctor_id: int
    service_id: Optional[int] = None
    scheduled_at: datetime
    is_online: bool = False
    notes: Optional[str] = Field(None, max_length=2000)


class AppointmentReview(BaseModel):
    """Schema for putting an appointment under review"""
    blood_pressure: Optional[str] = Field(None, max_length=20, description="e.g. 120/80")
    symptoms: Optional[str] = None
    notes: Optional[str] = None
    request_lab_sample: bool = False


class AppointmentCancel(BaseModel):
    """Schema for cancelling appointment"""
    reason: Optional[str] = Field(None, max_length=500)


class AppointmentResponse(BaseModel):
    """Schema for appointment response"""
    id: int
    patient_id: int
    doctor_id: int
    service_id: Optional[int] = None
    scheduled_at: datetime
    is_online: bool
    status: AppointmentStatus
    checked_in: bool
    checked_in_at: Optional[datetime] = None
    blood_pressure: Optional[str] = None
    symptoms: str = ""
    notes: str = ""
    request_lab_sample: bool
    reviewed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancelled_reason: Optional[str] = None
    is_archived: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class AppointmentDetailResponse(AppointmentResponse):
    """Appointment with its plan link and payment state"""
    treatment_plan_id: Optional[int] = None
    payment: Optional[PaymentTransactionResponse] = None


class AppointmentListResponse(BaseModel):
    """Schema for appointment list"""
    items: List[AppointmentResponse]
    total: int
    skip: int
    limit: int
