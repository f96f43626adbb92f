from datetime import datetime, timedelta
from decimal import Decimal
import os
import sys

# Add project root to python path
sys.path.append(os.getcwd())

from hivcare.infrastructure.database import SessionLocal, init_db
from hivcare.core.permissions import Actor, Role
from hivcare.domain.appointments.models import Appointment, AppointmentStatus
from hivcare.domain.appointments.service import AppointmentService
from hivcare.domain.payments.models import PaymentMethod, TransactionStatus
from hivcare.domain.payments.service import PaymentService, build_order_id
from hivcare.domain.payments.repository import PaymentTransactionRepository


def run_workflow():
    print("Initializing database...")
    init_db()

    db = SessionLocal()

    doctor = Actor(id=10, name="Dr. Nguyen Van Minh", role=Role.DOCTOR)
    staff = Actor(id=20, name="Le Thu Ha", role=Role.STAFF)

    try:
        print("\n--- 1. Setup Data ---")
        appointment = Appointment(
            patient_id=1,
            doctor_id=doctor.id,
            scheduled_at=datetime.utcnow().replace(second=0, microsecond=0) + timedelta(hours=1),
            is_online=False,
            status=AppointmentStatus.SCHEDULED,
        )
        db.add(appointment)
        db.commit()
        db.refresh(appointment)
        print(f"Created Appointment: {appointment.id}")

        appointments = AppointmentService(db)

        print("\n--- 2. Clinical Encounter ---")
        appointments.check_in(appointment.id, staff)
        print("Patient checked in")

        reviewed = appointments.put_under_review(
            appointment.id, doctor, blood_pressure="120/80", request_lab_sample=True
        )
        print(f"Under review, lab sample requested: {reviewed.request_lab_sample}")

        plan = appointments.attach_treatment_plan(appointment.id, {
            "start_date": reviewed.scheduled_at.date(),
            "medications": [{"medication_id": 3, "dosage": "1 vien", "frequency": "ONCE_DAILY"}],
        }, doctor)
        medication = plan.medications[0]
        print(f"Treatment plan {plan.id}: {medication.dosage} prescribed by {medication.prescribed_by}")
        for schedule in medication.schedules:
            print(f"  {schedule.time_of_day} {schedule.dosage_amount} ({schedule.days_display})")

        completed = appointments.complete(appointment.id, doctor)
        print(f"Appointment status: {completed.status.value}")

        print("\n--- 3. Payment Reconciliation ---")
        payments = PaymentService(db)
        transaction = payments.open_transaction(appointment.id, Decimal("250000"), PaymentMethod.QR)
        order_id = build_order_id(transaction.id)
        PaymentTransactionRepository(db).compare_and_set(transaction.id, {"order_id": order_id})
        print(f"Opened payment {transaction.id} with order {order_id}")

        # Provider result arrives first, staff confirms afterwards
        settled, applied = payments.reconcile_from_provider(order_id, "4088878653", 0)
        print(f"Provider result applied: {applied} -> {settled.transaction_status.value}")

        confirmed, applied = payments.staff_confirm_payment(appointment.id, PaymentMethod.CASH, None, staff)
        print(f"Staff confirmation applied: {applied} -> {confirmed.transaction_status.value}")

        assert confirmed.transaction_status == TransactionStatus.SUCCESS
        print("\nSUCCESS: Clinical workflow verified")

    except Exception as e:
        print(f"\nFAILED: {e}")
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    run_workflow()
