"""
Treatment Service Layer

Business logic for treatment plans, their medication lists and the
per-medication dosing schedules.
"""

from typing import Optional, List, Dict, Any, Iterable
from datetime import date
import logging
import re

from hivcare.core.exceptions import (
    ValidationError, InvalidTransitionError, ConflictError,
    NotFoundError, AuthorizationError
)
from hivcare.core.permissions import Actor, Role, can_edit_plan
from hivcare.domain.appointments.models import AppointmentStatus
from hivcare.domain.appointments.repository import AppointmentRepository
from hivcare.domain.treatment.models import (
    TreatmentPlan, TreatmentPlanStatus,
    MedicationFrequency, MedicationSchedule, DayOfWeek
)
from hivcare.domain.treatment.repository import (
    TreatmentPlanRepository, MedicationScheduleRepository
)

logger = logging.getLogger(__name__)

TIME_OF_DAY_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")

VALID_DAYS = [day.value for day in DayOfWeek]

# frequency -> (time slots, day codes); no day codes means every day
DEFAULT_TIME_SLOTS = {
    MedicationFrequency.ONCE_DAILY: (["08:00"], []),
    MedicationFrequency.TWICE_DAILY: (["08:00", "20:00"], []),
    MedicationFrequency.THREE_TIMES_DAILY: (["08:00", "14:00", "20:00"], []),
    MedicationFrequency.FOUR_TIMES_DAILY: (["06:00", "12:00", "18:00", "00:00"], []),
    MedicationFrequency.EVERY_OTHER_DAY: (["08:00"], ["MON", "WED", "FRI", "SUN"]),
    MedicationFrequency.WEEKLY: (["08:00"], ["MON"]),
    # Consumers resolve the day of month from the medication start date
    MedicationFrequency.MONTHLY: (["08:00"], []),
}

PLAN_TRANSITIONS = {
    TreatmentPlanStatus.ACTIVE: {
        TreatmentPlanStatus.PAUSED,
        TreatmentPlanStatus.COMPLETED,
        TreatmentPlanStatus.DISCONTINUED,
    },
    TreatmentPlanStatus.PAUSED: {
        TreatmentPlanStatus.ACTIVE,
        TreatmentPlanStatus.COMPLETED,
        TreatmentPlanStatus.DISCONTINUED,
    },
    TreatmentPlanStatus.COMPLETED: set(),
    TreatmentPlanStatus.DISCONTINUED: set(),
}


def _add_violation(violations: Dict[str, List[str]], field: str, message: str):
    violations.setdefault(field, []).append(message)


def _normalize_days(days) -> List[str]:
    if days is None:
        return []
    if isinstance(days, str):
        return [d.strip() for d in days.split(",") if d.strip()]
    return [getattr(d, "value", d) for d in days]


def validate_schedule_fields(
    schedule: Dict[str, Any],
    violations: Dict[str, List[str]],
    prefix: str = "",
    partial: bool = False
):
    """Check time_of_day, dosage_amount and days_of_week of a schedule payload.

    With ``partial`` only the keys present in ``schedule`` are checked.
    """
    if not partial or "time_of_day" in schedule:
        time_of_day = schedule.get("time_of_day")
        if not time_of_day:
            _add_violation(violations, f"{prefix}time_of_day", "time_of_day is required")
        elif not TIME_OF_DAY_PATTERN.match(str(time_of_day)):
            _add_violation(violations, f"{prefix}time_of_day", "time_of_day must be HH:MM")

    if not partial or "dosage_amount" in schedule:
        dosage_amount = schedule.get("dosage_amount")
        if not dosage_amount or not str(dosage_amount).strip():
            _add_violation(violations, f"{prefix}dosage_amount", "dosage_amount is required")

    if "days_of_week" in schedule:
        days = _normalize_days(schedule.get("days_of_week"))
        unknown = [d for d in days if d not in VALID_DAYS]
        if unknown:
            _add_violation(
                violations, f"{prefix}days_of_week",
                f"unknown day codes: {', '.join(unknown)}"
            )
        if len(set(days)) != len(days):
            _add_violation(violations, f"{prefix}days_of_week", "duplicate day codes")


def schedule_row(schedule: Dict[str, Any], is_custom: bool) -> Dict[str, Any]:
    """Turn a validated schedule payload into column values"""
    return {
        "time_of_day": schedule["time_of_day"],
        "dosage_amount": str(schedule["dosage_amount"]).strip(),
        "days_of_week": ",".join(_normalize_days(schedule.get("days_of_week"))),
        "notes": schedule.get("notes") or "",
        "is_custom": is_custom,
    }


class MedicationScheduleService:
    """Service layer for medication dosing schedules"""

    def __init__(self, db):
        self.db = db
        self.schedule_repo = MedicationScheduleRepository(db)

    @staticmethod
    def default_time_slots(frequency: MedicationFrequency) -> List[Dict[str, Any]]:
        """Fixed time-of-day slots for a frequency"""
        times, days = DEFAULT_TIME_SLOTS[MedicationFrequency(frequency)]
        return [{"time_of_day": t, "days_of_week": list(days)} for t in times]

    @classmethod
    def default_schedule_rows(cls, frequency: MedicationFrequency, dosage_amount: str) -> List[Dict[str, Any]]:
        return [
            schedule_row({**slot, "dosage_amount": dosage_amount}, is_custom=False)
            for slot in cls.default_time_slots(frequency)
        ]

    def _get_editable_medication(self, medication_id: int, actor: Optional[Actor]):
        medication = self.schedule_repo.get_medication(medication_id)
        if not medication:
            raise NotFoundError(f"Medication {medication_id} not found")
        self._check_plan_editable(medication.plan, actor)
        return medication

    @staticmethod
    def _check_plan_editable(plan: TreatmentPlan, actor: Optional[Actor]):
        if plan.is_terminal:
            raise ConflictError(
                f"Treatment plan is {plan.status.value}; schedules can no longer change"
            )
        if actor is not None and not can_edit_plan(actor, plan.doctor_id):
            raise AuthorizationError("Only the authoring doctor can edit this plan")

    def list_schedules(self, medication_id: int) -> List[MedicationSchedule]:
        """List schedules of a medication"""
        if not self.schedule_repo.get_medication(medication_id):
            raise NotFoundError(f"Medication {medication_id} not found")
        return self.schedule_repo.get_by_medication(medication_id)

    def generate_default_schedules(
        self,
        medication_id: int,
        actor: Optional[Actor] = None
    ) -> List[MedicationSchedule]:
        """Replace generated schedules with the defaults for the medication's frequency.

        Custom rows are left untouched.
        """
        medication = self._get_editable_medication(medication_id, actor)
        rows = self.default_schedule_rows(medication.frequency, medication.dosage)
        logger.info(
            f"Generating {len(rows)} default schedules for medication {medication_id} "
            f"({medication.frequency.value})"
        )
        return self.schedule_repo.replace_generated(medication_id, rows)

    def create_custom_schedule(
        self,
        medication_id: int,
        schedule: Dict[str, Any],
        actor: Optional[Actor] = None
    ) -> MedicationSchedule:
        """Add a hand-picked dosing time to a medication"""
        self._get_editable_medication(medication_id, actor)

        violations: Dict[str, List[str]] = {}
        validate_schedule_fields(schedule, violations)
        if violations:
            raise ValidationError("Invalid medication schedule", violations=violations)

        row = schedule_row(schedule, is_custom=True)
        row["medication_id"] = medication_id
        return self.schedule_repo.create(row)

    def update_schedule(
        self,
        schedule_id: int,
        patch: Dict[str, Any],
        actor: Optional[Actor] = None
    ) -> MedicationSchedule:
        """Partially update a schedule"""
        schedule = self.schedule_repo.get_by_id(schedule_id)
        if not schedule:
            raise NotFoundError(f"Medication schedule {schedule_id} not found")
        self._check_plan_editable(schedule.medication.plan, actor)

        patch = {k: v for k, v in patch.items() if v is not None}
        violations: Dict[str, List[str]] = {}
        validate_schedule_fields(patch, violations, partial=True)
        if violations:
            raise ValidationError("Invalid medication schedule", violations=violations)

        update_data = dict(patch)
        if "days_of_week" in update_data:
            update_data["days_of_week"] = ",".join(_normalize_days(update_data["days_of_week"]))
        if "dosage_amount" in update_data:
            update_data["dosage_amount"] = str(update_data["dosage_amount"]).strip()
        # An edited slot is no longer a generated default
        update_data["is_custom"] = True

        return self.schedule_repo.update(schedule_id, update_data)

    def delete_schedule(self, schedule_id: int, actor: Optional[Actor] = None) -> bool:
        """Delete a schedule"""
        schedule = self.schedule_repo.get_by_id(schedule_id)
        if not schedule:
            raise NotFoundError(f"Medication schedule {schedule_id} not found")
        self._check_plan_editable(schedule.medication.plan, actor)
        return self.schedule_repo.delete(schedule_id)


class TreatmentPlanService:
    """Service layer for treatment plan management"""

    def __init__(self, db):
        self.db = db
        self.plan_repo = TreatmentPlanRepository(db)
        self.appointment_repo = AppointmentRepository(db)

    def _validate_medications(
        self,
        medications: Optional[Iterable[Dict[str, Any]]],
        actor: Actor,
        violations: Dict[str, List[str]]
    ) -> List[Dict[str, Any]]:
        """Validate every medication entry and return column-ready dicts.

        Problems are collected into ``violations`` instead of raised.
        """
        medications = list(medications or [])
        if not medications:
            _add_violation(violations, "medications", "at least one medication required")
            return []

        prepared = []
        for index, medication in enumerate(medications):
            field = f"medications[{index}]"

            medication_id = medication.get("medication_id")
            if not medication_id or int(medication_id) <= 0:
                _add_violation(violations, f"{field}.medication_id", "medication must be selected")

            dosage = (medication.get("dosage") or "").strip()
            if not dosage:
                _add_violation(violations, f"{field}.dosage", "dosage is required")

            frequency = medication.get("frequency") or MedicationFrequency.ONCE_DAILY
            try:
                frequency = MedicationFrequency(frequency)
            except ValueError:
                _add_violation(violations, f"{field}.frequency", f"unknown frequency {frequency}")
                frequency = None

            start_date = medication.get("start_date")
            end_date = medication.get("end_date")
            if start_date and end_date and end_date < start_date:
                _add_violation(violations, f"{field}.end_date", "end_date must not be before start_date")

            schedules = medication.get("schedules")
            for s_index, schedule in enumerate(schedules or []):
                validate_schedule_fields(schedule, violations, prefix=f"{field}.schedules[{s_index}].")

            if violations:
                continue

            if schedules:
                schedule_rows = [schedule_row(s, is_custom=True) for s in schedules]
            else:
                schedule_rows = MedicationScheduleService.default_schedule_rows(frequency, dosage)

            prepared.append({
                "medication_id": int(medication_id),
                "dosage": dosage,
                "frequency": frequency,
                "start_date": start_date,
                "end_date": end_date,
                "prescribed_by": medication.get("prescribed_by") or actor.name,
                "instructions": medication.get("instructions") or "",
                "schedules": schedule_rows,
            })

        return prepared

    def _get_editable_plan(self, plan_id: int, actor: Actor) -> TreatmentPlan:
        plan = self.get_plan(plan_id)
        if not can_edit_plan(actor, plan.doctor_id):
            raise AuthorizationError("Only the authoring doctor can edit this plan")
        return plan

    def create_plan(self, appointment_id: int, plan_data: Dict[str, Any], actor: Actor) -> TreatmentPlan:
        """Validate and persist a treatment plan with its medications"""
        appointment = self.appointment_repo.get_by_id(appointment_id)
        if not appointment:
            raise NotFoundError(f"Appointment {appointment_id} not found")

        if actor.role != Role.DOCTOR and not actor.is_admin:
            raise AuthorizationError("Only doctors can author treatment plans")

        if self.plan_repo.get_by_appointment(appointment_id):
            raise ConflictError(
                f"Appointment {appointment_id} already has a treatment plan",
                error_code="PLAN_EXISTS"
            )

        violations: Dict[str, List[str]] = {}
        start_date: Optional[date] = plan_data.get("start_date")
        end_date: Optional[date] = plan_data.get("end_date")
        if not start_date:
            _add_violation(violations, "start_date", "start_date is required")
        elif end_date and end_date < start_date:
            _add_violation(violations, "end_date", "end_date must not be before start_date")

        medications = self._validate_medications(plan_data.get("medications"), actor, violations)

        if violations:
            raise ValidationError("Invalid treatment plan", violations=violations)

        plan = self.plan_repo.create(
            {
                "appointment_id": appointment_id,
                "patient_id": appointment.patient_id,
                "doctor_id": actor.id if actor.role == Role.DOCTOR else appointment.doctor_id,
                "description": plan_data.get("description") or "",
                "start_date": start_date,
                "end_date": end_date,
                "status": TreatmentPlanStatus.ACTIVE,
            },
            medications
        )
        logger.info(
            f"Treatment plan {plan.id} created for appointment {appointment_id} "
            f"with {len(medications)} medications"
        )
        return plan

    def get_plan(self, plan_id: int) -> TreatmentPlan:
        """Get plan by ID"""
        plan = self.plan_repo.get_by_id(plan_id)
        if not plan:
            raise NotFoundError(f"Treatment plan {plan_id} not found")
        return plan

    def get_plan_for_appointment(self, appointment_id: int) -> Optional[TreatmentPlan]:
        return self.plan_repo.get_by_appointment(appointment_id)

    def list_patient_plans(self, patient_id: int) -> List[TreatmentPlan]:
        return self.plan_repo.get_by_patient(patient_id)

    def list_doctor_plans(
        self,
        doctor_id: int,
        status: Optional[TreatmentPlanStatus] = None
    ) -> List[TreatmentPlan]:
        return self.plan_repo.get_by_doctor(doctor_id, status)

    def add_medications(
        self,
        plan_id: int,
        medications: List[Dict[str, Any]],
        actor: Actor
    ) -> TreatmentPlan:
        """Append a batch of medications to a non-terminal plan"""
        plan = self._get_editable_plan(plan_id, actor)
        if plan.is_terminal:
            raise ConflictError(
                f"Treatment plan is {plan.status.value}; medications can no longer be added"
            )

        violations: Dict[str, List[str]] = {}
        prepared = self._validate_medications(medications, actor, violations)
        if violations:
            raise ValidationError("Invalid medications", violations=violations)

        return self.plan_repo.add_medications(plan_id, prepared)

    def update_status(
        self,
        plan_id: int,
        new_status: TreatmentPlanStatus,
        actor: Actor,
        reason: Optional[str] = None
    ) -> TreatmentPlan:
        """Move a plan along ACTIVE <-> PAUSED -> COMPLETED / DISCONTINUED"""
        plan = self._get_editable_plan(plan_id, actor)
        new_status = TreatmentPlanStatus(new_status)

        if plan.is_terminal:
            raise ConflictError(
                f"Treatment plan is already terminal ({plan.status.value})",
                error_code="PLAN_TERMINAL"
            )

        if new_status == plan.status:
            return plan

        if new_status not in PLAN_TRANSITIONS[plan.status]:
            raise InvalidTransitionError(
                f"Cannot move treatment plan from {plan.status.value} to {new_status.value}"
            )

        logger.info(f"Treatment plan {plan_id}: {plan.status.value} -> {new_status.value}")
        return self.plan_repo.update(plan_id, {"status": new_status, "status_reason": reason})

    def delete_plan(self, plan_id: int, actor: Actor) -> bool:
        """Delete a plan while it is still a draft of an open encounter"""
        plan = self._get_editable_plan(plan_id, actor)
        if plan.is_terminal:
            raise ConflictError(f"Treatment plan is {plan.status.value} and cannot be deleted")
        if plan.appointment and plan.appointment.status == AppointmentStatus.COMPLETED:
            raise ConflictError("Treatment plan of a completed appointment cannot be deleted")

        logger.info(f"Deleting treatment plan {plan_id}")
        return self.plan_repo.delete(plan_id)
