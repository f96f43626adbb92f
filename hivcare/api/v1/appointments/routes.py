"""
Appointments API Routes

API endpoints for the clinical encounter: booking, check-in, review,
treatment planning, completion and cancellation.
"""

from fastapi import APIRouter, Depends, status, Query
from typing import Optional

from hivcare.infrastructure.database import get_db
from hivcare.core.permissions import Permissions
from hivcare.api.deps import actor_with_permissions
from hivcare.domain.appointments.service import AppointmentService
from hivcare.domain.appointments.models import AppointmentStatus
from hivcare.api.v1.appointments.schemas import (
    AppointmentCreate, AppointmentReview, AppointmentCancel,
    AppointmentResponse, AppointmentDetailResponse, AppointmentListResponse
)
from hivcare.api.v1.treatment_plans.schemas import TreatmentPlanCreate, TreatmentPlanResponse
from hivcare.api.v1.payments.schemas import PaymentTransactionResponse

router = APIRouter()


def _detail(service: AppointmentService, appointment) -> AppointmentDetailResponse:
    response = AppointmentDetailResponse.model_validate(appointment)
    response.treatment_plan_id = appointment.treatment_plan.id if appointment.treatment_plan else None
    transaction = service.payment_status(appointment.id)
    if transaction:
        response.payment = PaymentTransactionResponse.model_validate(transaction)
    return response


@router.post("", response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(
    appointment_data: AppointmentCreate,
    db = Depends(get_db),
    actor = Depends(actor_with_permissions([Permissions.APPOINTMENTS_CREATE]))
):
    """Book a new appointment"""
    service = AppointmentService(db)
    return service.create_appointment(
        patient_id=appointment_data.patient_id,
        doctor_id=appointment_data.doctor_id,
        scheduled_at=appointment_data.scheduled_at,
        actor=actor,
        service_id=appointment_data.service_id,
        is_online=appointment_data.is_online,
        notes=appointment_data.notes
    )


@router.get("/status/{appointment_status}", response_model=AppointmentListResponse)
def list_appointments_by_status(
    appointment_status: AppointmentStatus,
    doctor_id: Optional[int] = Query(None),
    include_archived: bool = Query(False),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    db = Depends(get_db),
    actor = Depends(actor_with_permissions([Permissions.APPOINTMENTS_READ]))
):
    """Worklist of appointments in a status"""
    service = AppointmentService(db)
    items = service.list_by_status(
        appointment_status,
        doctor_id=doctor_id,
        include_archived=include_archived,
        skip=skip,
        limit=limit
    )
    total = service.appointment_repo.count(
        status=appointment_status, doctor_id=doctor_id, include_archived=include_archived
    )
    return AppointmentListResponse(items=items, total=total, skip=skip, limit=limit)


@router.get("/{appointment_id}", response_model=AppointmentDetailResponse)
def get_appointment(
    appointment_id: int,
    db = Depends(get_db),
    actor = Depends(actor_with_permissions([Permissions.APPOINTMENTS_READ]))
):
    """Get appointment with treatment plan link and payment state"""
    service = AppointmentService(db)
    return _detail(service, service.get_appointment(appointment_id))


@router.post("/{appointment_id}/check-in", response_model=AppointmentResponse)
def check_in(
    appointment_id: int,
    db = Depends(get_db),
    actor = Depends(actor_with_permissions([Permissions.APPOINTMENTS_CHECK_IN]))
):
    """Check in patient for appointment"""
    service = AppointmentService(db)
    return service.check_in(appointment_id, actor)


@router.put("/{appointment_id}/under-review", response_model=AppointmentResponse)
def put_under_review(
    appointment_id: int,
    review: AppointmentReview,
    db = Depends(get_db),
    actor = Depends(actor_with_permissions([Permissions.APPOINTMENTS_REVIEW]))
):
    """Record vitals and start the clinical review"""
    service = AppointmentService(db)
    return service.put_under_review(
        appointment_id,
        actor,
        notes=review.notes,
        blood_pressure=review.blood_pressure,
        request_lab_sample=review.request_lab_sample,
        symptoms=review.symptoms
    )


@router.post(
    "/{appointment_id}/treatment-plan",
    response_model=TreatmentPlanResponse,
    status_code=status.HTTP_201_CREATED
)
def attach_treatment_plan(
    appointment_id: int,
    plan_data: TreatmentPlanCreate,
    db = Depends(get_db),
    actor = Depends(actor_with_permissions([Permissions.TREATMENT_PLANS_WRITE]))
):
    """Create the treatment plan of an appointment under review"""
    service = AppointmentService(db)
    return service.attach_treatment_plan(appointment_id, plan_data.model_dump(), actor)


@router.put("/{appointment_id}/complete", response_model=AppointmentResponse)
def complete_appointment(
    appointment_id: int,
    db = Depends(get_db),
    actor = Depends(actor_with_permissions([Permissions.APPOINTMENTS_COMPLETE]))
):
    """Complete the encounter"""
    service = AppointmentService(db)
    return service.complete(appointment_id, actor)


@router.post("/{appointment_id}/cancel", response_model=AppointmentResponse)
def cancel_appointment(
    appointment_id: int,
    cancel_data: AppointmentCancel,
    db = Depends(get_db),
    actor = Depends(actor_with_permissions([Permissions.APPOINTMENTS_CANCEL]))
):
    """Cancel an appointment"""
    service = AppointmentService(db)
    return service.cancel(appointment_id, actor, reason=cancel_data.reason)


@router.post("/{appointment_id}/archive", response_model=AppointmentResponse)
def archive_appointment(
    appointment_id: int,
    db = Depends(get_db),
    actor = Depends(actor_with_permissions([Permissions.SYSTEM_ADMIN, Permissions.APPOINTMENTS_CHECK_IN]))
):
    """Soft-archive a completed or cancelled appointment"""
    service = AppointmentService(db)
    return service.archive(appointment_id)
