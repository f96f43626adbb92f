"""
Treatment Plan API Routes

Endpoints for treatment plans and the medication schedules inside them.
"""

from fastapi import APIRouter, Depends, status
from typing import List

from hivcare.infrastructure.database import get_db
from hivcare.core.permissions import Permissions
from hivcare.api.deps import actor_with_permissions
from hivcare.domain.treatment.service import TreatmentPlanService, MedicationScheduleService
from hivcare.api.v1.treatment_plans.schemas import (
    TreatmentPlanResponse, TreatmentPlanStatusUpdate, MedicationBatchCreate,
    MedicationScheduleCreate, MedicationScheduleUpdate, MedicationScheduleResponse
)

router = APIRouter()
schedules_router = APIRouter()


# ==================== Treatment Plan Endpoints ====================

@router.get("/patients/{patient_id}", response_model=List[TreatmentPlanResponse])
def list_patient_plans(
    patient_id: int,
    db = Depends(get_db),
    actor = Depends(actor_with_permissions([Permissions.TREATMENT_PLANS_READ]))
):
    """Treatment history of a patient"""
    service = TreatmentPlanService(db)
    return service.list_patient_plans(patient_id)


@router.get("/{plan_id}", response_model=TreatmentPlanResponse)
def get_plan(
    plan_id: int,
    db = Depends(get_db),
    actor = Depends(actor_with_permissions([Permissions.TREATMENT_PLANS_READ]))
):
    """Get treatment plan with medications and schedules"""
    service = TreatmentPlanService(db)
    return service.get_plan(plan_id)


@router.post("/{plan_id}/medications/batch", response_model=TreatmentPlanResponse)
def add_medications(
    plan_id: int,
    batch: MedicationBatchCreate,
    db = Depends(get_db),
    actor = Depends(actor_with_permissions([Permissions.TREATMENT_PLANS_WRITE]))
):
    """Append several medications to a plan"""
    service = TreatmentPlanService(db)
    medications = [m.model_dump() for m in batch.medications]
    return service.add_medications(plan_id, medications, actor)


@router.patch("/{plan_id}/status", response_model=TreatmentPlanResponse)
def update_plan_status(
    plan_id: int,
    status_update: TreatmentPlanStatusUpdate,
    db = Depends(get_db),
    actor = Depends(actor_with_permissions([Permissions.TREATMENT_PLANS_WRITE]))
):
    """Pause, resume, complete or discontinue a plan"""
    service = TreatmentPlanService(db)
    return service.update_status(plan_id, status_update.status, actor, reason=status_update.reason)


@router.delete("/{plan_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_plan(
    plan_id: int,
    db = Depends(get_db),
    actor = Depends(actor_with_permissions([Permissions.TREATMENT_PLANS_WRITE]))
):
    """Delete a plan of an open encounter"""
    service = TreatmentPlanService(db)
    service.delete_plan(plan_id, actor)


# ==================== Medication Schedule Endpoints ====================

@schedules_router.get("/medication/{medication_id}", response_model=List[MedicationScheduleResponse])
def list_schedules(
    medication_id: int,
    db = Depends(get_db),
    actor = Depends(actor_with_permissions([Permissions.TREATMENT_PLANS_READ]))
):
    """Dosing times of a medication"""
    service = MedicationScheduleService(db)
    return service.list_schedules(medication_id)


@schedules_router.post(
    "/medication/{medication_id}/default",
    response_model=List[MedicationScheduleResponse],
    status_code=status.HTTP_201_CREATED
)
def generate_default_schedules(
    medication_id: int,
    db = Depends(get_db),
    actor = Depends(actor_with_permissions([Permissions.SCHEDULES_WRITE]))
):
    """(Re)generate the default dosing times from the medication frequency"""
    service = MedicationScheduleService(db)
    return service.generate_default_schedules(medication_id, actor)


@schedules_router.post(
    "/medication/{medication_id}/custom",
    response_model=MedicationScheduleResponse,
    status_code=status.HTTP_201_CREATED
)
def create_custom_schedule(
    medication_id: int,
    schedule: MedicationScheduleCreate,
    db = Depends(get_db),
    actor = Depends(actor_with_permissions([Permissions.SCHEDULES_WRITE]))
):
    """Add a custom dosing time"""
    service = MedicationScheduleService(db)
    return service.create_custom_schedule(medication_id, schedule.model_dump(), actor)


@schedules_router.put("/{schedule_id}", response_model=MedicationScheduleResponse)
def update_schedule(
    schedule_id: int,
    patch: MedicationScheduleUpdate,
    db = Depends(get_db),
    actor = Depends(actor_with_permissions([Permissions.SCHEDULES_WRITE]))
):
    """Update a dosing time"""
    service = MedicationScheduleService(db)
    return service.update_schedule(schedule_id, patch.model_dump(exclude_unset=True), actor)


@schedules_router.delete("/{schedule_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_schedule(
    schedule_id: int,
    db = Depends(get_db),
    actor = Depends(actor_with_permissions([Permissions.SCHEDULES_WRITE]))
):
    """Delete a dosing time"""
    service = MedicationScheduleService(db)
    service.delete_schedule(schedule_id, actor)
