# Appointments domain module
from hivcare.domain.appointments.models import (
    Appointment,
    AppointmentStatus,
    TERMINAL_APPOINTMENT_STATUSES,
)

__all__ = [
    "Appointment",
    "AppointmentStatus",
    "TERMINAL_APPOINTMENT_STATUSES",
]
