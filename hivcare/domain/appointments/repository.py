"""
Appointments Repository Layer

Provides data access operations for appointments.
"""

from typing import Optional, List
from sqlalchemy import func
from sqlalchemy.orm import joinedload

from hivcare.domain.appointments.models import Appointment, AppointmentStatus


class AppointmentRepository:
    """Repository for appointment data access operations"""

    def __init__(self, db):
        self.db = db

    def create(self, appointment_data: dict) -> Appointment:
        """Create a new appointment"""
        appointment = Appointment(**appointment_data)
        self.db.add(appointment)
        self.db.commit()
        self.db.refresh(appointment)
        return appointment

    def get_by_id(self, appointment_id: int) -> Optional[Appointment]:
        """Get appointment by ID with its treatment plan"""
        return self.db.query(Appointment).options(
            joinedload(Appointment.treatment_plan)
        ).filter(Appointment.id == appointment_id).first()

    def get_by_status(
        self,
        status: AppointmentStatus,
        doctor_id: Optional[int] = None,
        include_archived: bool = False,
        skip: int = 0,
        limit: int = 50
    ) -> List[Appointment]:
        """Get appointments in a given status"""
        query = self.db.query(Appointment).filter(Appointment.status == status)

        if doctor_id is not None:
            query = query.filter(Appointment.doctor_id == doctor_id)
        if not include_archived:
            query = query.filter(Appointment.is_archived == False)  # noqa: E712

        return query.order_by(Appointment.scheduled_at).offset(skip).limit(limit).all()

    def count(
        self,
        status: Optional[AppointmentStatus] = None,
        doctor_id: Optional[int] = None,
        include_archived: bool = False
    ) -> int:
        """Count appointments with filters"""
        query = self.db.query(func.count(Appointment.id))

        if status:
            query = query.filter(Appointment.status == status)
        if doctor_id is not None:
            query = query.filter(Appointment.doctor_id == doctor_id)
        if not include_archived:
            query = query.filter(Appointment.is_archived == False)  # noqa: E712

        return query.scalar()

    def update(self, appointment_id: int, update_data: dict) -> Optional[Appointment]:
        """Update appointment"""
        appointment = self.db.query(Appointment).filter(
            Appointment.id == appointment_id
        ).first()
        if appointment:
            for key, value in update_data.items():
                if hasattr(appointment, key):
                    setattr(appointment, key, value)
            self.db.commit()
            self.db.refresh(appointment)
        return appointment

    def transition(
        self,
        appointment_id: int,
        from_statuses: List[AppointmentStatus],
        update_data: dict
    ) -> bool:
        """Apply update_data only while the row is still in one of from_statuses.

        Returns True when the row was changed.
        """
        result = self.db.query(Appointment).filter(
            Appointment.id == appointment_id,
            Appointment.status.in_(from_statuses)
        ).update(update_data, synchronize_session=False)
        self.db.commit()
        self.db.expire_all()
        return result > 0
