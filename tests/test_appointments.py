import pytest

from hivcare.core.exceptions import (
    ValidationError, InvalidTransitionError, PreconditionFailedError,
    AuthorizationError, NotFoundError
)
from hivcare.domain.appointments.models import AppointmentStatus
from hivcare.domain.appointments.service import AppointmentService
from hivcare.domain.treatment.models import MedicationPrescription


@pytest.fixture
def appointment_service(db):
    return AppointmentService(db)


def _reviewed(appointment_service, make_appointment, doctor, staff, **overrides):
    appointment = make_appointment(**overrides)
    appointment_service.check_in(appointment.id, staff)
    return appointment_service.put_under_review(appointment.id, doctor, blood_pressure="120/80")


@pytest.mark.appointments
@pytest.mark.unit
class TestCheckIn:
    """Test front desk check-in"""

    def test_check_in_scheduled(self, appointment_service, make_appointment, staff):
        appointment = make_appointment()

        result = appointment_service.check_in(appointment.id, staff)

        assert result.status == AppointmentStatus.CHECKED_IN
        assert result.checked_in is True
        assert result.checked_in_by == staff.id
        assert result.checked_in_at is not None

    def test_check_in_twice_rejected(self, appointment_service, make_appointment, staff):
        appointment = make_appointment()
        appointment_service.check_in(appointment.id, staff)

        with pytest.raises(InvalidTransitionError):
            appointment_service.check_in(appointment.id, staff)

    def test_doctor_cannot_check_in(self, appointment_service, make_appointment, doctor):
        appointment = make_appointment()

        with pytest.raises(AuthorizationError):
            appointment_service.check_in(appointment.id, doctor)

    def test_missing_appointment(self, appointment_service, staff):
        with pytest.raises(NotFoundError):
            appointment_service.check_in(12345, staff)


@pytest.mark.appointments
@pytest.mark.unit
class TestPutUnderReview:
    """Test the clinical review transition"""

    def test_requires_blood_pressure(self, appointment_service, make_appointment, staff, doctor):
        appointment = make_appointment()
        appointment_service.check_in(appointment.id, staff)

        with pytest.raises(ValidationError) as exc_info:
            appointment_service.put_under_review(appointment.id, doctor, blood_pressure="  ")

        assert "blood_pressure" in exc_info.value.violations
        assert appointment_service.get_appointment(appointment.id).status == AppointmentStatus.CHECKED_IN

    def test_requires_check_in(self, appointment_service, make_appointment, doctor):
        appointment = make_appointment()

        with pytest.raises(InvalidTransitionError):
            appointment_service.put_under_review(appointment.id, doctor, blood_pressure="120/80")

    def test_records_review_fields(self, appointment_service, make_appointment, staff, doctor):
        appointment = make_appointment()
        appointment_service.check_in(appointment.id, staff)

        result = appointment_service.put_under_review(
            appointment.id, doctor,
            notes="Follow-up after 3 months",
            blood_pressure="130/85",
            request_lab_sample=True,
            symptoms="fatigue"
        )

        assert result.status == AppointmentStatus.UNDER_REVIEW
        assert result.blood_pressure == "130/85"
        assert result.symptoms == "fatigue"
        assert result.notes == "Follow-up after 3 months"
        assert result.request_lab_sample is True
        assert result.reviewed_at is not None

    def test_reentry_is_idempotent(self, appointment_service, make_appointment, staff, doctor):
        first = _reviewed(appointment_service, make_appointment, doctor, staff)
        snapshot = (first.status, first.blood_pressure, first.symptoms, first.notes,
                    first.request_lab_sample, first.updated_at)

        # No blood pressure this time, and different inputs
        second = appointment_service.put_under_review(first.id, doctor, notes="changed", symptoms="other")
        third = appointment_service.put_under_review(first.id, doctor)

        for again in (second, third):
            assert (again.status, again.blood_pressure, again.symptoms, again.notes,
                    again.request_lab_sample, again.updated_at) == snapshot

    def test_online_forces_lab_sample_off(self, appointment_service, make_appointment, doctor):
        # Online consult goes straight to review
        appointment = make_appointment(id=101, is_online=True)

        result = appointment_service.put_under_review(
            101, doctor, blood_pressure="110/70", request_lab_sample=True
        )

        assert result.id == 101
        assert result.status == AppointmentStatus.UNDER_REVIEW
        assert result.request_lab_sample is False

    def test_terminal_appointment_rejected(self, appointment_service, make_appointment, doctor):
        appointment = make_appointment(status=AppointmentStatus.CANCELLED)

        with pytest.raises(InvalidTransitionError):
            appointment_service.put_under_review(appointment.id, doctor, blood_pressure="120/80")


@pytest.mark.appointments
@pytest.mark.unit
class TestTreatmentPlanAttachment:

    def test_attach_requires_review(self, appointment_service, make_appointment, doctor, sample_plan_data):
        appointment = make_appointment()

        with pytest.raises(InvalidTransitionError):
            appointment_service.attach_treatment_plan(appointment.id, sample_plan_data, doctor)

    def test_attach_keeps_appointment_under_review(
        self, appointment_service, make_appointment, doctor, staff, sample_plan_data
    ):
        appointment = _reviewed(appointment_service, make_appointment, doctor, staff)

        plan = appointment_service.attach_treatment_plan(appointment.id, sample_plan_data, doctor)

        assert plan.appointment_id == appointment.id
        assert appointment_service.get_appointment(appointment.id).status == AppointmentStatus.UNDER_REVIEW


@pytest.mark.appointments
@pytest.mark.unit
class TestComplete:
    """complete() succeeds only from UNDER_REVIEW with a dosed medication"""

    def test_without_plan(self, appointment_service, make_appointment, doctor, staff):
        appointment = _reviewed(appointment_service, make_appointment, doctor, staff)

        with pytest.raises(PreconditionFailedError):
            appointment_service.complete(appointment.id, doctor)

    @pytest.mark.parametrize("status", [
        AppointmentStatus.SCHEDULED,
        AppointmentStatus.CHECKED_IN,
        AppointmentStatus.COMPLETED,
        AppointmentStatus.CANCELLED,
    ])
    def test_wrong_status(self, appointment_service, make_appointment, doctor, status):
        appointment = make_appointment(status=status)

        with pytest.raises(PreconditionFailedError):
            appointment_service.complete(appointment.id, doctor)

    def test_plan_with_blank_dosage(
        self, db, appointment_service, make_appointment, doctor, staff, sample_plan_data
    ):
        appointment = _reviewed(appointment_service, make_appointment, doctor, staff)
        plan = appointment_service.attach_treatment_plan(appointment.id, sample_plan_data, doctor)
        # Simulate legacy rows with blank dosages
        db.query(MedicationPrescription).filter(
            MedicationPrescription.plan_id == plan.id
        ).update({"dosage": " "}, synchronize_session=False)
        db.commit()
        db.expire_all()

        with pytest.raises(PreconditionFailedError):
            appointment_service.complete(appointment.id, doctor)

    def test_in_person_encounter(self, appointment_service, make_appointment, doctor, staff):
        appointment = make_appointment(id=100, is_online=False)

        checked_in = appointment_service.check_in(100, staff)
        assert checked_in.status == AppointmentStatus.CHECKED_IN

        reviewed = appointment_service.put_under_review(
            100, doctor, blood_pressure="120/80", request_lab_sample=True
        )
        assert reviewed.status == AppointmentStatus.UNDER_REVIEW
        assert reviewed.request_lab_sample is True

        plan = appointment_service.attach_treatment_plan(100, {
            "start_date": reviewed.scheduled_at.date(),
            "medications": [{"medication_id": 3, "dosage": "1 vien", "frequency": "ONCE_DAILY"}],
        }, doctor)
        assert plan.medications[0].prescribed_by == doctor.name

        completed = appointment_service.complete(100, doctor)
        assert completed.status == AppointmentStatus.COMPLETED
        assert completed.completed_at is not None


@pytest.mark.appointments
@pytest.mark.unit
class TestCancelAndArchive:

    @pytest.mark.parametrize("status", [
        AppointmentStatus.SCHEDULED,
        AppointmentStatus.CHECKED_IN,
        AppointmentStatus.UNDER_REVIEW,
    ])
    def test_cancel_from_open_states(self, appointment_service, make_appointment, staff, status):
        appointment = make_appointment(status=status)

        result = appointment_service.cancel(appointment.id, staff, reason="Patient request")

        assert result.status == AppointmentStatus.CANCELLED
        assert result.cancelled_by == staff.id
        assert result.cancelled_reason == "Patient request"

    @pytest.mark.parametrize("status", [AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED])
    def test_cancel_terminal_rejected(self, appointment_service, make_appointment, staff, status):
        appointment = make_appointment(status=status)

        with pytest.raises(InvalidTransitionError):
            appointment_service.cancel(appointment.id, staff)

    def test_patient_cancels_only_own(self, appointment_service, make_appointment, patient):
        own = make_appointment()
        other = make_appointment(patient_id=patient.id + 1)

        assert appointment_service.cancel(own.id, patient).status == AppointmentStatus.CANCELLED
        with pytest.raises(AuthorizationError):
            appointment_service.cancel(other.id, patient)

    def test_archive_only_terminal(self, appointment_service, make_appointment, staff):
        open_appointment = make_appointment()
        with pytest.raises(InvalidTransitionError):
            appointment_service.archive(open_appointment.id)

        appointment_service.cancel(open_appointment.id, staff)
        archived = appointment_service.archive(open_appointment.id)

        assert archived.is_archived is True
        assert appointment_service.list_by_status(AppointmentStatus.CANCELLED) == []
        assert len(appointment_service.list_by_status(AppointmentStatus.CANCELLED, include_archived=True)) == 1


@pytest.mark.appointments
@pytest.mark.unit
def test_booking_and_worklist(appointment_service, doctor, other_doctor, patient):
    from datetime import datetime

    appointment_service.create_appointment(patient.id, doctor.id, datetime(2026, 10, 21, 10), patient)
    appointment_service.create_appointment(patient.id, other_doctor.id, datetime(2026, 10, 21, 9), patient)

    mine = appointment_service.list_by_status(AppointmentStatus.SCHEDULED, doctor_id=doctor.id)
    everyone = appointment_service.list_by_status(AppointmentStatus.SCHEDULED)

    assert [a.doctor_id for a in mine] == [doctor.id]
    assert [a.doctor_id for a in everyone] == [other_doctor.id, doctor.id]

    with pytest.raises(AuthorizationError):
        appointment_service.create_appointment(patient.id + 1, doctor.id, datetime(2026, 10, 22, 9), patient)
