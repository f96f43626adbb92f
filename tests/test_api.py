import pytest

from hivcare.domain.appointments.models import AppointmentStatus
from hivcare.domain.payments.models import TransactionStatus

API = "/api/v1"


def _plan_payload():
    return {
        "description": "First-line ART regimen",
        "start_date": "2026-10-20",
        "medications": [
            {"medication_id": 3, "dosage": "1 vien", "frequency": "ONCE_DAILY"},
        ],
    }


@pytest.fixture
def reviewed_appointment(make_appointment):
    return make_appointment(status=AppointmentStatus.UNDER_REVIEW, checked_in=True, blood_pressure="120/80")


@pytest.mark.integration
class TestAuth:

    def test_missing_token(self, client, make_appointment):
        appointment = make_appointment()

        response = client.get(f"{API}/appointments/{appointment.id}")

        assert response.status_code == 401

    def test_garbage_token(self, client, make_appointment):
        appointment = make_appointment()

        response = client.get(
            f"{API}/appointments/{appointment.id}", headers={"Authorization": "Bearer not-a-token"}
        )

        assert response.status_code == 401

    def test_doctor_cannot_confirm_payment(self, client, doctor_headers, make_appointment):
        appointment = make_appointment()

        response = client.post(
            f"{API}/payments/staff/confirm",
            json={"appointment_id": appointment.id},
            headers=doctor_headers
        )

        assert response.status_code == 403


@pytest.mark.integration
@pytest.mark.appointments
class TestAppointmentEndpoints:

    def test_full_encounter(self, client, make_appointment, staff_headers, doctor_headers):
        appointment = make_appointment()
        base = f"{API}/appointments/{appointment.id}"

        response = client.post(f"{base}/check-in", headers=staff_headers)
        assert response.status_code == 200
        assert response.json()["status"] == "CHECKED_IN"

        response = client.put(f"{base}/under-review", json={"blood_pressure": "120/80"}, headers=doctor_headers)
        assert response.status_code == 200
        assert response.json()["status"] == "UNDER_REVIEW"

        response = client.post(f"{base}/treatment-plan", json=_plan_payload(), headers=doctor_headers)
        assert response.status_code == 201
        plan = response.json()
        assert plan["medications"][0]["prescribed_by"] == "Dr. Nguyen Van Minh"
        assert plan["medications"][0]["schedules"][0]["days_display"] == "Every day"

        response = client.put(f"{base}/complete", headers=doctor_headers)
        assert response.status_code == 200
        assert response.json()["status"] == "COMPLETED"

        detail = client.get(base, headers=staff_headers).json()
        assert detail["treatment_plan_id"] == plan["id"]
        assert detail["payment"] is None

    def test_error_payload(self, client, make_appointment, doctor_headers):
        appointment = make_appointment()

        response = client.put(f"{API}/appointments/{appointment.id}/complete", headers=doctor_headers)

        assert response.status_code == 412
        body = response.json()
        assert body["error_code"] == "PRECONDITION_FAILED"
        assert body["retryable"] is False
        assert body["request_id"]

    def test_plan_violations_reported_together(self, client, reviewed_appointment, doctor_headers):
        payload = _plan_payload()
        payload["medications"] = [{"medication_id": 3, "dosage": ""}, {"dosage": "1 vien"}]

        response = client.post(
            f"{API}/appointments/{reviewed_appointment.id}/treatment-plan", json=payload, headers=doctor_headers
        )

        assert response.status_code == 422
        violations = response.json()["details"]["violations"]
        assert set(violations) == {"medications[0].dosage", "medications[1].medication_id"}

    def test_worklist(self, client, make_appointment, staff_headers):
        make_appointment()
        make_appointment(status=AppointmentStatus.CHECKED_IN)

        response = client.get(f"{API}/appointments/status/SCHEDULED", headers=staff_headers)

        assert response.status_code == 200
        assert response.json()["total"] == 1


@pytest.mark.integration
@pytest.mark.treatment
class TestTreatmentPlanEndpoints:

    def test_status_and_schedules(self, client, reviewed_appointment, doctor_headers, headers_for, other_doctor):
        plan = client.post(
            f"{API}/appointments/{reviewed_appointment.id}/treatment-plan",
            json=_plan_payload(), headers=doctor_headers
        ).json()
        medication_id = plan["medications"][0]["id"]

        response = client.post(
            f"{API}/medication-schedules/medication/{medication_id}/custom",
            json={"time_of_day": "21:00", "dosage_amount": "1 vien", "days_of_week": ["SAT", "SUN"]},
            headers=doctor_headers
        )
        assert response.status_code == 201
        assert response.json()["days_of_week"] == ["SAT", "SUN"]

        response = client.patch(
            f"{API}/treatment-plans/{plan['id']}/status",
            json={"status": "PAUSED"}, headers=headers_for(other_doctor)
        )
        assert response.status_code == 403

        response = client.patch(
            f"{API}/treatment-plans/{plan['id']}/status",
            json={"status": "DISCONTINUED", "reason": "switched regimen"}, headers=doctor_headers
        )
        assert response.status_code == 200

        response = client.post(
            f"{API}/medication-schedules/medication/{medication_id}/default", headers=doctor_headers
        )
        assert response.status_code == 409


@pytest.mark.integration
@pytest.mark.payments
class TestPaymentEndpoints:

    def _open_qr(self, client, appointment_id, headers):
        transaction = client.post(
            f"{API}/payments", json={"appointment_id": appointment_id, "amount": "250000"}, headers=headers
        ).json()
        return client.post(f"{API}/payments/{transaction['id']}/qr", json={}, headers=headers).json()

    def test_qr_then_ipn(self, client, make_appointment, staff_headers, ipn_payload):
        appointment = make_appointment()
        qr = self._open_qr(client, appointment.id, staff_headers)
        order_id = qr["transaction"]["order_id"]
        assert qr["pay_url"].endswith(order_id)

        response = client.post(
            f"{API}/momo-payment/ipn",
            json=ipn_payload(orderId=order_id, resultCode=0)
        )
        assert response.status_code == 204

        payment = client.get(f"{API}/payments/appointment/{appointment.id}", headers=staff_headers).json()
        assert payment["transaction_status"] == TransactionStatus.SUCCESS.value
        assert payment["finalized_via"] == "PROVIDER"

        # Staff confirmation after the provider settled is a no-op
        response = client.post(
            f"{API}/payments/staff/confirm",
            json={"appointment_id": appointment.id, "payment_method": "QR"},
            headers=staff_headers
        )
        assert response.status_code == 200
        assert response.json()["applied"] is False

    def test_ipn_bad_signature(self, client, make_appointment, staff_headers, ipn_payload):
        appointment = make_appointment()
        qr = self._open_qr(client, appointment.id, staff_headers)
        payload = ipn_payload(orderId=qr["transaction"]["order_id"])
        payload["signature"] = "0" * 64

        response = client.post(f"{API}/momo-payment/ipn", json=payload)

        assert response.status_code == 401
        assert response.json()["error_code"] == "INVALID_SIGNATURE"

    def test_unsigned_return_polls_provider(self, client, make_appointment, staff_headers, momo_gateway):
        appointment = make_appointment()
        qr = self._open_qr(client, appointment.id, staff_headers)
        order_id = qr["transaction"]["order_id"]
        momo_gateway.query_result_code = 1006

        # The browser claims success but carries no signature
        response = client.get(f"{API}/momo-payment/return", params={"orderId": order_id, "resultCode": "0"})

        assert response.status_code == 200
        assert response.json()["transaction"]["transaction_status"] == "FAILED"
        assert momo_gateway.requests[-1]["path"].endswith("/query")

    def test_return_without_order(self, client):
        response = client.get(f"{API}/momo-payment/return")

        assert response.status_code == 422

    def test_in_progress_feeds_worklist(self, client, make_appointment, staff_headers, momo_gateway):
        appointment = make_appointment()
        qr = self._open_qr(client, appointment.id, staff_headers)
        momo_gateway.query_result_code = 7000

        response = client.post(
            f"{API}/momo-payment/check-and-update",
            json={"orderId": qr["transaction"]["order_id"]},
            headers=staff_headers
        )
        assert response.json()["applied"] is False

        worklist = client.get(f"{API}/payments/staff/pending-confirmation", headers=staff_headers).json()
        assert worklist["total"] == 1
        assert worklist["items"][0]["needs_staff_confirmation"] is True

    def test_provider_down(self, client, make_appointment, staff_headers, momo_gateway):
        appointment = make_appointment()
        transaction = client.post(
            f"{API}/payments", json={"appointment_id": appointment.id, "amount": "250000"}, headers=staff_headers
        ).json()
        momo_gateway.unavailable = True

        response = client.post(f"{API}/payments/{transaction['id']}/qr", json={}, headers=staff_headers)

        assert response.status_code == 503
        assert response.json()["retryable"] is True

    def test_ipn_for_replaced_order(self, client, make_appointment, staff_headers, ipn_payload):
        appointment = make_appointment()
        qr = self._open_qr(client, appointment.id, staff_headers)
        earlier_order_id = f"ORDER_{qr['transaction']['id']}_1700000000000"
        assert qr["transaction"]["order_id"] != earlier_order_id

        response = client.post(
            f"{API}/momo-payment/ipn",
            json=ipn_payload(orderId=earlier_order_id, resultCode=0)
        )
        assert response.status_code == 204

        payment = client.get(f"{API}/payments/appointment/{appointment.id}", headers=staff_headers).json()
        assert payment["transaction_status"] == TransactionStatus.SUCCESS.value
        assert payment["order_id"] == earlier_order_id


@pytest.mark.integration
def test_error_responses_documented(client):
    schema = client.get(f"{API}/openapi.json").json()

    assert "ErrorResponse" in schema["components"]["schemas"]
    responses = schema["paths"][f"{API}/payments/{{transaction_id}}/qr"]["post"]["responses"]
    assert responses["503"]["content"]["application/json"]["schema"]["$ref"].endswith("/ErrorResponse")
