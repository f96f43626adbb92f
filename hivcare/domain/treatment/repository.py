"""
Treatment Repository Layer

Provides data access operations for treatment plans, medications and
medication schedules.
"""

from typing import Optional, List
from sqlalchemy import func
from sqlalchemy.orm import joinedload, selectinload

from hivcare.domain.treatment.models import (
    TreatmentPlan, TreatmentPlanStatus,
    MedicationPrescription, MedicationSchedule
)


class TreatmentPlanRepository:
    """Repository for treatment plan data access operations"""

    def __init__(self, db):
        self.db = db

    def create(self, plan_data: dict, medications: List[dict] = None) -> TreatmentPlan:
        """Create a plan together with its medications and their schedules"""
        plan = TreatmentPlan(**plan_data)
        self.db.add(plan)
        self.db.flush()  # Get the ID

        if medications:
            self._append_medications(plan, medications, start_position=0)

        self.db.commit()
        self.db.expire_all()
        return self.get_by_id(plan.id)

    def _append_medications(self, plan: TreatmentPlan, medications: List[dict], start_position: int):
        for offset, medication_data in enumerate(medications):
            schedules = medication_data.pop("schedules", None) or []
            medication = MedicationPrescription(
                plan_id=plan.id,
                position=start_position + offset,
                **medication_data
            )
            medication.schedules = [MedicationSchedule(**s) for s in schedules]
            self.db.add(medication)
        self.db.flush()

    def add_medications(self, plan_id: int, medications: List[dict]) -> TreatmentPlan:
        """Append medications after the current last position"""
        plan = self.get_by_id(plan_id)
        last_position = self.db.query(func.max(MedicationPrescription.position)).filter(
            MedicationPrescription.plan_id == plan_id
        ).scalar()
        start = 0 if last_position is None else last_position + 1
        self._append_medications(plan, medications, start_position=start)
        self.db.commit()
        self.db.expire_all()
        return self.get_by_id(plan_id)

    def get_by_id(self, plan_id: int) -> Optional[TreatmentPlan]:
        """Get plan by ID with medications and schedules"""
        return self.db.query(TreatmentPlan).options(
            joinedload(TreatmentPlan.appointment),
            selectinload(TreatmentPlan.medications).selectinload(MedicationPrescription.schedules)
        ).filter(TreatmentPlan.id == plan_id).first()

    def get_by_appointment(self, appointment_id: int) -> Optional[TreatmentPlan]:
        """Get the plan attached to an appointment"""
        return self.db.query(TreatmentPlan).options(
            selectinload(TreatmentPlan.medications).selectinload(MedicationPrescription.schedules)
        ).filter(TreatmentPlan.appointment_id == appointment_id).first()

    def get_by_patient(self, patient_id: int) -> List[TreatmentPlan]:
        """Get all plans for a patient, newest first"""
        return self.db.query(TreatmentPlan).options(
            selectinload(TreatmentPlan.medications)
        ).filter(
            TreatmentPlan.patient_id == patient_id
        ).order_by(TreatmentPlan.start_date.desc(), TreatmentPlan.id.desc()).all()

    def get_by_doctor(
        self,
        doctor_id: int,
        status: Optional[TreatmentPlanStatus] = None
    ) -> List[TreatmentPlan]:
        """Get plans authored by a doctor"""
        query = self.db.query(TreatmentPlan).filter(TreatmentPlan.doctor_id == doctor_id)
        if status:
            query = query.filter(TreatmentPlan.status == status)
        return query.order_by(TreatmentPlan.id.desc()).all()

    def update(self, plan_id: int, update_data: dict) -> Optional[TreatmentPlan]:
        """Update plan"""
        plan = self.db.query(TreatmentPlan).filter(TreatmentPlan.id == plan_id).first()
        if plan:
            for key, value in update_data.items():
                if hasattr(plan, key):
                    setattr(plan, key, value)
            self.db.commit()
            self.db.expire_all()
        return self.get_by_id(plan_id)

    def delete(self, plan_id: int) -> bool:
        """Delete a plan and cascade to its medications"""
        plan = self.db.query(TreatmentPlan).filter(TreatmentPlan.id == plan_id).first()
        if not plan:
            return False
        self.db.delete(plan)
        self.db.commit()
        return True


class MedicationScheduleRepository:
    """Repository for medication and schedule data access operations"""

    def __init__(self, db):
        self.db = db

    def get_medication(self, medication_id: int) -> Optional[MedicationPrescription]:
        """Get a medication line with its plan"""
        return self.db.query(MedicationPrescription).options(
            joinedload(MedicationPrescription.plan)
        ).filter(MedicationPrescription.id == medication_id).first()

    def get_by_id(self, schedule_id: int) -> Optional[MedicationSchedule]:
        """Get schedule by ID"""
        return self.db.query(MedicationSchedule).options(
            joinedload(MedicationSchedule.medication).joinedload(MedicationPrescription.plan)
        ).filter(MedicationSchedule.id == schedule_id).first()

    def get_by_medication(self, medication_id: int) -> List[MedicationSchedule]:
        """Get all schedules for a medication"""
        return self.db.query(MedicationSchedule).filter(
            MedicationSchedule.medication_id == medication_id
        ).order_by(MedicationSchedule.id).all()

    def create(self, schedule_data: dict) -> MedicationSchedule:
        """Create a new schedule row"""
        schedule = MedicationSchedule(**schedule_data)
        self.db.add(schedule)
        self.db.commit()
        self.db.refresh(schedule)
        return schedule

    def replace_generated(self, medication_id: int, schedules: List[dict]) -> List[MedicationSchedule]:
        """Drop the generated (non-custom) rows of a medication and insert new ones"""
        self.db.query(MedicationSchedule).filter(
            MedicationSchedule.medication_id == medication_id,
            MedicationSchedule.is_custom == False  # noqa: E712
        ).delete(synchronize_session=False)
        for schedule_data in schedules:
            self.db.add(MedicationSchedule(medication_id=medication_id, **schedule_data))
        self.db.commit()
        self.db.expire_all()
        return self.get_by_medication(medication_id)

    def update(self, schedule_id: int, update_data: dict) -> Optional[MedicationSchedule]:
        """Update schedule"""
        schedule = self.db.query(MedicationSchedule).filter(
            MedicationSchedule.id == schedule_id
        ).first()
        if schedule:
            for key, value in update_data.items():
                if hasattr(schedule, key) and value is not None:
                    setattr(schedule, key, value)
            self.db.commit()
            self.db.refresh(schedule)
        return schedule

    def delete(self, schedule_id: int) -> bool:
        """Delete a schedule"""
        result = self.db.query(MedicationSchedule).filter(
            MedicationSchedule.id == schedule_id
        ).delete()
        self.db.commit()
        return result > 0
