# Treatment domain module
from hivcare.domain.treatment.models import (
    TreatmentPlan,
    TreatmentPlanStatus,
    MedicationPrescription,
    MedicationFrequency,
    MedicationStatus,
    MedicationSchedule,
    DayOfWeek,
)

__all__ = [
    "TreatmentPlan",
    "TreatmentPlanStatus",
    "MedicationPrescription",
    "MedicationFrequency",
    "MedicationStatus",
    "MedicationSchedule",
    "DayOfWeek",
]
