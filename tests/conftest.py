import json
import pytest
from datetime import datetime, date, timedelta
from typing import Generator, Dict, Any, List

import httpx
from fastapi.testclient import TestClient

from hivcare.main import app
from hivcare.api.deps import get_payment_provider
from hivcare.core.permissions import Actor, Role
from hivcare.core.security import create_actor_token
from hivcare.infrastructure.database import get_db, build_engine, build_session_factory, init_db
from hivcare.domain.appointments.models import Appointment, AppointmentStatus
from hivcare.services.momo import MomoClient, IPN_SIGNATURE_FIELDS


class FakeMomoGateway:
    """In-memory stand-in for the MoMo HTTP API, served through httpx.MockTransport"""

    def __init__(self):
        self.requests: List[Dict[str, Any]] = []
        self.create_result_code = 0
        self.query_result_code = 0
        self.query_trans_id = 4088878653
        self.unavailable = False

    def handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content or b"{}")
        self.requests.append({"path": request.url.path, "body": body})

        if self.unavailable:
            return httpx.Response(502, json={"message": "Bad gateway"})

        if request.url.path.endswith("/create"):
            return httpx.Response(200, json={
                "partnerCode": body["partnerCode"],
                "orderId": body["orderId"],
                "requestId": body["requestId"],
                "amount": int(body["amount"]),
                "resultCode": self.create_result_code,
                "message": "Successful." if self.create_result_code == 0 else "Rejected",
                "payUrl": f"https://test-payment.momo.vn/pay/{body['orderId']}",
                "qrCodeUrl": f"momo://pay/{body['orderId']}",
            })

        return httpx.Response(200, json={
            "partnerCode": body["partnerCode"],
            "orderId": body["orderId"],
            "requestId": body["requestId"],
            "resultCode": self.query_result_code,
            "message": "ok",
            "transId": self.query_trans_id,
        })

    def client(self) -> MomoClient:
        return MomoClient(
            endpoint="https://momo.test",
            partner_code="MOMOTEST",
            access_key="test-access",
            secret_key="test-secret",
            redirect_url="http://localhost:3000/payment/result",
            ipn_url="http://localhost:8000/api/v1/momo-payment/ipn",
            transport=httpx.MockTransport(self.handler),
        )


@pytest.fixture(scope="function")
def engine(tmp_path):
    """Fresh SQLite file database per test"""
    test_engine = build_engine(f"sqlite:///{tmp_path / 'test.db'}")
    init_db(test_engine)
    yield test_engine
    test_engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture(scope="function")
def db(session_factory) -> Generator:
    """Create a fresh database session for each test."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def momo_gateway() -> FakeMomoGateway:
    return FakeMomoGateway()


@pytest.fixture(scope="function")
def momo_client(momo_gateway) -> MomoClient:
    return momo_gateway.client()


@pytest.fixture(scope="function")
def client(session_factory, momo_client) -> Generator[TestClient, None, None]:
    """Create a test client with database and provider overrides."""

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_provider] = lambda: momo_client

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def ipn_payload(momo_client):
    """Build a correctly signed MoMo IPN body"""

    def _build(**overrides) -> Dict[str, Any]:
        payload = {
            "partnerCode": momo_client.partner_code,
            "orderId": "ORDER_55_1700000000000",
            "requestId": "req-1",
            "amount": 250000,
            "orderInfo": "Thanh toan lich hen #1",
            "orderType": "momo_wallet",
            "transId": 4088878653,
            "resultCode": 0,
            "message": "Successful.",
            "payType": "qr",
            "responseTime": 1700000005000,
            "extraData": "",
        }
        payload.update(overrides)
        payload["signature"] = momo_client.sign(
            {**payload, "accessKey": momo_client.access_key}, IPN_SIGNATURE_FIELDS
        )
        return payload

    return _build


@pytest.fixture
def doctor() -> Actor:
    return Actor(id=10, name="Dr. Nguyen Van Minh", role=Role.DOCTOR)


@pytest.fixture
def other_doctor() -> Actor:
    return Actor(id=11, name="Dr. Tran Thi Lan", role=Role.DOCTOR)


@pytest.fixture
def staff() -> Actor:
    return Actor(id=20, name="Le Thu Ha", role=Role.STAFF)


@pytest.fixture
def patient() -> Actor:
    return Actor(id=1, name="Pham Quoc Bao", role=Role.CUSTOMER)


@pytest.fixture
def admin() -> Actor:
    return Actor(id=99, name="Admin", role=Role.ADMIN)


def auth_headers(actor: Actor) -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_actor_token(actor.id, actor.name, actor.role)}"}


@pytest.fixture
def headers_for():
    return auth_headers


@pytest.fixture
def doctor_headers(doctor) -> Dict[str, str]:
    return auth_headers(doctor)


@pytest.fixture
def staff_headers(staff) -> Dict[str, str]:
    return auth_headers(staff)


@pytest.fixture
def patient_headers(patient) -> Dict[str, str]:
    return auth_headers(patient)


@pytest.fixture
def make_appointment(db, doctor, patient):
    """Insert an appointment row directly"""

    def _make(**overrides) -> Appointment:
        data = {
            "patient_id": patient.id,
            "doctor_id": doctor.id,
            "scheduled_at": datetime(2026, 10, 20, 9, 0),
            "is_online": False,
            "status": AppointmentStatus.SCHEDULED,
        }
        data.update(overrides)
        appointment = Appointment(**data)
        db.add(appointment)
        db.commit()
        db.refresh(appointment)
        return appointment

    return _make


@pytest.fixture
def sample_plan_data() -> Dict[str, Any]:
    """Treatment plan with two ARV medications"""
    return {
        "description": "First-line ART regimen",
        "start_date": date(2026, 10, 20),
        "end_date": date(2026, 10, 20) + timedelta(days=180),
        "medications": [
            {
                "medication_id": 3,
                "dosage": "1 vien",
                "frequency": "ONCE_DAILY",
                "instructions": "Take after dinner",
                "schedules": [
                    {"time_of_day": "21:00", "dosage_amount": "1 vien", "days_of_week": []},
                ],
            },
            {
                "medication_id": 7,
                "dosage": "300mg",
                "frequency": "TWICE_DAILY",
                "prescribed_by": "Dr. Visiting",
                "schedules": [
                    {"time_of_day": "07:30", "dosage_amount": "150mg", "days_of_week": ["MON", "WED"]},
                    {"time_of_day": "19:30", "dosage_amount": "150mg", "days_of_week": [], "notes": "with food"},
                ],
            },
        ],
    }


# Pytest configuration
def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )
    config.addinivalue_line(
        "markers", "appointments: mark test as appointment workflow related"
    )
    config.addinivalue_line(
        "markers", "treatment: mark test as treatment plan related"
    )
    config.addinivalue_line(
        "markers", "payments: mark test as payment reconciliation related"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )
