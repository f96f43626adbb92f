"""
Background payment reconciliation.

The beat schedule polls MoMo for every open QR order so that a payment the
customer finished without returning to the site still settles. Staff
confirmation and the provider keep racing through the same conditional
update, so a poll that loses simply reads the final state.
"""

from datetime import timedelta
from typing import Dict, Any, Optional

from loguru import logger

from hivcare.core.config import settings
from hivcare.core.exceptions import ProviderUnavailableError
from hivcare.domain.payments.service import PaymentService
from hivcare.infrastructure.database import SessionLocal
from hivcare.services.momo import MomoClient
from hivcare.workers.celery_app import celery_app


def run_payment_poll(session_factory=SessionLocal, provider: Optional[MomoClient] = None, limit: int = 100) -> Dict[str, Any]:
    """Poll the provider for every open QR order once"""
    summary = {"checked": 0, "finalized": 0, "unavailable": 0}
    db = session_factory()
    try:
        service = PaymentService(db, provider)
        for transaction in service.list_pollable(limit=limit):
            summary["checked"] += 1
            try:
                result, applied = service.poll_provider(transaction.order_id)
            except ProviderUnavailableError as exc:
                # Left PENDING; the next beat tries again
                summary["unavailable"] += 1
                logger.warning(f"Could not poll {transaction.order_id}: {exc.message}")
                continue
            if applied:
                summary["finalized"] += 1
                logger.info(f"Poll settled {result.order_id} as {result.transaction_status.value}")
    finally:
        db.close()
    return summary


def run_expiry(session_factory=SessionLocal, max_age_minutes: Optional[int] = None) -> int:
    """Cancel stale open QR payments. A no-op unless an expiry is configured."""
    if max_age_minutes is None:
        max_age_minutes = settings.PAYMENT_PENDING_EXPIRY_MINUTES
    if not max_age_minutes:
        return 0
    db = session_factory()
    try:
        return PaymentService(db).expire_stale(timedelta(minutes=max_age_minutes))
    finally:
        db.close()


@celery_app.task(bind=True, max_retries=3)
def poll_pending_payments(self):
    """Periodic provider poll for open QR payments"""
    summary = run_payment_poll()
    logger.info(f"Payment poll finished: {summary}")
    return summary


@celery_app.task(bind=True)
def expire_stale_payments(self):
    """Periodic expiry of abandoned QR payments"""
    expired = run_expiry()
    if expired:
        logger.info(f"Expired {expired} stale payments")
    return {"expired": expired}
