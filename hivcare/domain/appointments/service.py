"""
Appointments Service Layer

Business logic for the clinical encounter: booking, check-in, clinical
review, treatment planning, completion and cancellation.
"""

from typing import Optional, List, Dict, Any
from datetime import datetime
import logging

from hivcare.core.exceptions import (
    ValidationError, InvalidTransitionError, PreconditionFailedError,
    NotFoundError, AuthorizationError
)
from hivcare.core.permissions import Actor, Role
from hivcare.domain.appointments.models import (
    Appointment, AppointmentStatus, TERMINAL_APPOINTMENT_STATUSES
)
from hivcare.domain.appointments.repository import AppointmentRepository
from hivcare.domain.payments.service import PaymentService
from hivcare.domain.treatment.models import TreatmentPlan
from hivcare.domain.treatment.service import TreatmentPlanService

logger = logging.getLogger(__name__)

NON_TERMINAL_STATUSES = [
    AppointmentStatus.SCHEDULED,
    AppointmentStatus.CHECKED_IN,
    AppointmentStatus.UNDER_REVIEW,
]


def plan_is_adequate(plan: Optional[TreatmentPlan]) -> bool:
    """A plan may close an encounter once it has a medication with a dosage"""
    if plan is None:
        return False
    return any((m.dosage or "").strip() for m in plan.medications)


class AppointmentService:
    """Service layer for the appointment state machine"""

    def __init__(self, db):
        self.db = db
        self.appointment_repo = AppointmentRepository(db)
        self.plan_service = TreatmentPlanService(db)

    def create_appointment(
        self,
        patient_id: int,
        doctor_id: int,
        scheduled_at: datetime,
        actor: Actor,
        service_id: Optional[int] = None,
        is_online: bool = False,
        notes: Optional[str] = None
    ) -> Appointment:
        """Book a new appointment"""
        if actor.role == Role.CUSTOMER and patient_id != actor.id:
            raise AuthorizationError("Patients can only book appointments for themselves")

        appointment = self.appointment_repo.create({
            "patient_id": patient_id,
            "doctor_id": doctor_id,
            "service_id": service_id,
            "scheduled_at": scheduled_at,
            "is_online": is_online,
            "notes": notes or "",
            "status": AppointmentStatus.SCHEDULED,
        })
        logger.info(f"Appointment {appointment.id} booked for patient {patient_id} by {actor.id}")
        return appointment

    def get_appointment(self, appointment_id: int) -> Appointment:
        """Get appointment by ID"""
        appointment = self.appointment_repo.get_by_id(appointment_id)
        if not appointment:
            raise NotFoundError(f"Appointment {appointment_id} not found")
        return appointment

    def list_by_status(
        self,
        status: AppointmentStatus,
        doctor_id: Optional[int] = None,
        include_archived: bool = False,
        skip: int = 0,
        limit: int = 50
    ) -> List[Appointment]:
        return self.appointment_repo.get_by_status(
            status,
            doctor_id=doctor_id,
            include_archived=include_archived,
            skip=skip,
            limit=limit
        )

    def payment_status(self, appointment_id: int):
        """Latest payment transaction of the appointment, if any"""
        return PaymentService(self.db).get_transaction_for_appointment(appointment_id)

    def _apply(
        self,
        appointment: Appointment,
        from_statuses: List[AppointmentStatus],
        update_data: Dict[str, Any],
        action: str
    ) -> Appointment:
        """Conditionally apply a transition and return the fresh row"""
        applied = self.appointment_repo.transition(appointment.id, from_statuses, update_data)
        fresh = self.get_appointment(appointment.id)
        if not applied:
            raise InvalidTransitionError(
                f"Cannot {action} appointment in status {fresh.status.value}",
                details={"appointment_id": appointment.id, "status": fresh.status.value}
            )
        logger.info(f"Appointment {appointment.id}: {action} -> {fresh.status.value}")
        return fresh

    def check_in(self, appointment_id: int, actor: Actor) -> Appointment:
        """Staff checks the patient in at the front desk"""
        appointment = self.get_appointment(appointment_id)

        if actor.role == Role.DOCTOR:
            raise AuthorizationError("Doctors cannot check patients in")

        if appointment.status != AppointmentStatus.SCHEDULED:
            raise InvalidTransitionError(
                f"Cannot check in appointment in status {appointment.status.value}"
            )

        return self._apply(
            appointment,
            [AppointmentStatus.SCHEDULED],
            {
                "status": AppointmentStatus.CHECKED_IN,
                "checked_in": True,
                "checked_in_at": datetime.utcnow(),
                "checked_in_by": actor.id,
                "updated_at": datetime.utcnow(),
            },
            "check in"
        )

    def put_under_review(
        self,
        appointment_id: int,
        actor: Actor,
        notes: Optional[str] = None,
        blood_pressure: Optional[str] = None,
        request_lab_sample: bool = False,
        symptoms: Optional[str] = None
    ) -> Appointment:
        """Record vitals and start the clinical review.

        Re-entering an appointment that is already under review returns it
        unchanged so the doctor can go straight to treatment planning.
        """
        appointment = self.get_appointment(appointment_id)

        if appointment.status == AppointmentStatus.UNDER_REVIEW:
            return appointment

        allowed = [AppointmentStatus.CHECKED_IN]
        if appointment.is_online:
            allowed.append(AppointmentStatus.SCHEDULED)

        if appointment.status not in allowed:
            raise InvalidTransitionError(
                f"Cannot start review of appointment in status {appointment.status.value}"
            )

        if not blood_pressure or not blood_pressure.strip():
            raise ValidationError(
                "Blood pressure is required to start the review",
                violations={"blood_pressure": ["blood_pressure is required"]}
            )

        update_data = {
            "status": AppointmentStatus.UNDER_REVIEW,
            "blood_pressure": blood_pressure.strip(),
            # Online consults cannot collect samples
            "request_lab_sample": False if appointment.is_online else bool(request_lab_sample),
            "reviewed_at": datetime.utcnow(),
            "updated_at": datetime.utcnow(),
        }
        if symptoms is not None:
            update_data["symptoms"] = symptoms
        if notes is not None:
            update_data["notes"] = notes

        applied = self.appointment_repo.transition(appointment_id, allowed, update_data)
        fresh = self.get_appointment(appointment_id)
        if not applied and fresh.status != AppointmentStatus.UNDER_REVIEW:
            raise InvalidTransitionError(
                f"Cannot start review of appointment in status {fresh.status.value}"
            )
        logger.info(f"Appointment {appointment_id} under review by doctor {actor.id}")
        return fresh

    def attach_treatment_plan(
        self,
        appointment_id: int,
        plan_data: Dict[str, Any],
        actor: Actor
    ) -> TreatmentPlan:
        """Create the treatment plan of an appointment under review"""
        appointment = self.get_appointment(appointment_id)
        if appointment.status != AppointmentStatus.UNDER_REVIEW:
            raise InvalidTransitionError(
                f"Treatment plans can only be attached under review, not {appointment.status.value}"
            )
        return self.plan_service.create_plan(appointment_id, plan_data, actor)

    def complete(self, appointment_id: int, actor: Actor) -> Appointment:
        """Close the encounter once a usable treatment plan is attached"""
        appointment = self.get_appointment(appointment_id)

        if appointment.status != AppointmentStatus.UNDER_REVIEW:
            raise PreconditionFailedError(
                f"Appointment must be under review to complete, is {appointment.status.value}",
                details={"appointment_id": appointment_id, "status": appointment.status.value}
            )

        plan = self.plan_service.get_plan_for_appointment(appointment_id)
        if not plan_is_adequate(plan):
            raise PreconditionFailedError(
                "A treatment plan with at least one dosed medication is required",
                details={"appointment_id": appointment_id},
                error_code="TREATMENT_PLAN_REQUIRED"
            )

        now = datetime.utcnow()
        applied = self.appointment_repo.transition(
            appointment_id,
            [AppointmentStatus.UNDER_REVIEW],
            {"status": AppointmentStatus.COMPLETED, "completed_at": now, "updated_at": now}
        )
        fresh = self.get_appointment(appointment_id)
        if not applied:
            raise PreconditionFailedError(
                f"Appointment must be under review to complete, is {fresh.status.value}"
            )
        logger.info(f"Appointment {appointment_id} completed by {actor.id}")
        return fresh

    def cancel(self, appointment_id: int, actor: Actor, reason: Optional[str] = None) -> Appointment:
        """Cancel an appointment from any non-terminal state"""
        appointment = self.get_appointment(appointment_id)

        if actor.role == Role.CUSTOMER and appointment.patient_id != actor.id:
            raise AuthorizationError("Patients can only cancel their own appointments")

        if appointment.status in TERMINAL_APPOINTMENT_STATUSES:
            raise InvalidTransitionError(
                f"Appointment is already {appointment.status.value}"
            )

        now = datetime.utcnow()
        return self._apply(
            appointment,
            NON_TERMINAL_STATUSES,
            {
                "status": AppointmentStatus.CANCELLED,
                "cancelled_at": now,
                "cancelled_by": actor.id,
                "cancelled_reason": reason,
                "updated_at": now,
            },
            "cancel"
        )

    def archive(self, appointment_id: int) -> Appointment:
        """Soft-archive a finished appointment"""
        appointment = self.get_appointment(appointment_id)
        if not appointment.is_terminal:
            raise InvalidTransitionError("Only completed or cancelled appointments can be archived")
        return self.appointment_repo.update(appointment_id, {"is_archived": True})
