import pytest
from datetime import datetime, timedelta
from decimal import Decimal

from hivcare.core.exceptions import ProviderUnavailableError
from hivcare.domain.payments.models import (
    PaymentTransaction, PaymentMethod, TransactionStatus, FinalizedVia
)
from hivcare.domain.payments.service import PaymentService
from hivcare.workers.celery_app import celery_app
from hivcare.workers.tasks import run_payment_poll, run_expiry


@pytest.fixture
def open_qr_orders(db, make_appointment):
    """Two open QR orders created an hour ago"""
    created = datetime.utcnow() - timedelta(hours=1)
    transactions = []
    for index in range(2):
        transaction = PaymentTransaction(
            appointment_id=make_appointment().id,
            order_id=f"ORDER_{index + 1}_1700000000000",
            amount=Decimal("250000"),
            payment_method=PaymentMethod.QR,
            transaction_status=TransactionStatus.PENDING,
            created_at=created,
            updated_at=created,
        )
        db.add(transaction)
        transactions.append(transaction)
    db.commit()
    return transactions


@pytest.mark.payments
@pytest.mark.slow
class TestPaymentPoll:

    def test_settles_paid_orders(self, session_factory, momo_client, momo_gateway, open_qr_orders, db):
        momo_gateway.query_result_code = 0

        summary = run_payment_poll(session_factory, momo_client)

        assert summary == {"checked": 2, "finalized": 2, "unavailable": 0}
        db.expire_all()
        assert all(t.transaction_status == TransactionStatus.SUCCESS for t in open_qr_orders)
        assert all(t.finalized_via == FinalizedVia.PROVIDER for t in open_qr_orders)

    def test_in_progress_stays_pending(self, session_factory, momo_client, momo_gateway, open_qr_orders, db):
        momo_gateway.query_result_code = 7000

        summary = run_payment_poll(session_factory, momo_client)

        assert summary == {"checked": 2, "finalized": 0, "unavailable": 0}
        db.expire_all()
        assert all(t.transaction_status == TransactionStatus.PENDING for t in open_qr_orders)

    def test_provider_down_is_counted(self, session_factory, momo_client, momo_gateway, open_qr_orders):
        momo_gateway.unavailable = True

        summary = run_payment_poll(session_factory, momo_client)

        assert summary == {"checked": 2, "finalized": 0, "unavailable": 2}

    def test_order_unknown_to_provider_stays_pending(self, session_factory, momo_client, momo_gateway, open_qr_orders, db):
        momo_gateway.query_result_code = 42

        summary = run_payment_poll(session_factory, momo_client)

        assert summary == {"checked": 2, "finalized": 0, "unavailable": 0}
        db.expire_all()
        assert all(t.transaction_status == TransactionStatus.PENDING for t in open_qr_orders)

    def test_rejected_qr_order_can_still_be_confirmed(
        self, session_factory, momo_client, momo_gateway, make_appointment, staff, db
    ):
        appointment = make_appointment()
        service = PaymentService(db, momo_client)
        transaction = service.open_transaction(appointment.id, 250000)
        momo_gateway.create_result_code = 41
        with pytest.raises(ProviderUnavailableError):
            service.create_qr_payment(transaction.id)

        momo_gateway.query_result_code = 42
        summary = run_payment_poll(session_factory, momo_client)

        assert summary["finalized"] == 0
        assert service.get_transaction(transaction.id).transaction_status == TransactionStatus.PENDING

        confirmed, applied = service.staff_confirm_payment(appointment.id, PaymentMethod.CASH, None, staff)

        assert applied is True
        assert confirmed.transaction_status == TransactionStatus.SUCCESS
        assert confirmed.finalized_via == FinalizedVia.STAFF


@pytest.mark.payments
class TestExpiry:

    def test_disabled_by_default(self, session_factory, open_qr_orders):
        assert run_expiry(session_factory) == 0
        assert run_expiry(session_factory, max_age_minutes=0) == 0

    def test_expires_old_orders(self, session_factory, open_qr_orders, db):
        assert run_expiry(session_factory, max_age_minutes=30) == 2

        db.expire_all()
        assert all(t.transaction_status == TransactionStatus.CANCELLED for t in open_qr_orders)
        assert all(t.finalized_via == FinalizedVia.EXPIRY for t in open_qr_orders)


def test_beat_schedule():
    schedule = celery_app.conf.beat_schedule

    assert schedule["poll-pending-payments"]["task"] == "hivcare.workers.tasks.poll_pending_payments"
    assert schedule["expire-stale-payments"]["task"] == "hivcare.workers.tasks.expire_stale_payments"
