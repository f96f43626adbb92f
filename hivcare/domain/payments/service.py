"""
Payments Service Layer

Owns the payment transaction lifecycle. Two independent writers race to
finalize a PENDING transaction: the payment provider (redirect, IPN or
status poll) and staff confirming the payment by hand. Both go through a
conditional ``UPDATE ... WHERE transaction_status = 'PENDING'``; whoever
changes the row wins and the other call returns the winner's result with
``applied=False``.
"""

from typing import Optional, List, Tuple, Union
from datetime import datetime, timedelta
from decimal import Decimal
import logging
import re
import time

from sqlalchemy.exc import IntegrityError

from hivcare.core.exceptions import (
    ValidationError, ConflictError, NotFoundError, ProviderUnavailableError,
    handle_integrity_error
)
from hivcare.core.permissions import Actor
from hivcare.domain.appointments.repository import AppointmentRepository
from hivcare.domain.payments.models import (
    PaymentTransaction, PaymentMethod, TransactionStatus, FinalizedVia
)
from hivcare.domain.payments.repository import PaymentTransactionRepository
from hivcare.services.momo import (
    MomoClient, RESULT_SUCCESS, RESULT_IN_PROGRESS, RESULT_ORDER_NOT_FOUND
)

logger = logging.getLogger(__name__)

FinalizationResult = Tuple[PaymentTransaction, bool]

ORDER_ID_PATTERN = re.compile(r"^ORDER_(\d+)_\d+$")


def build_order_id(transaction_id: int, epoch_ms: Optional[int] = None) -> str:
    """External correlation key sent to the provider"""
    if epoch_ms is None:
        epoch_ms = int(time.time() * 1000)
    return f"ORDER_{transaction_id}_{epoch_ms}"


def parse_order_id(order_id: Optional[str]) -> Optional[int]:
    """Transaction id embedded in an order id, or None"""
    match = ORDER_ID_PATTERN.match(order_id or "")
    return int(match.group(1)) if match else None


def parse_result_code(result_code: Union[int, str, None]) -> Optional[int]:
    try:
        return int(result_code)
    except (TypeError, ValueError):
        return None


class PaymentService:
    """Service layer for payment reconciliation"""

    def __init__(self, db, provider: Optional[MomoClient] = None):
        self.db = db
        self.transaction_repo = PaymentTransactionRepository(db)
        self.appointment_repo = AppointmentRepository(db)
        self.provider = provider or MomoClient()

    def _get_transaction(self, transaction_id: int) -> PaymentTransaction:
        transaction = self.transaction_repo.get_by_id(transaction_id)
        if not transaction:
            raise NotFoundError(f"Payment transaction {transaction_id} not found")
        return transaction

    def _compare_and_set(self, transaction_id: int, update_data: dict, operation: str) -> FinalizationResult:
        try:
            applied = self.transaction_repo.compare_and_set(transaction_id, update_data)
        except IntegrityError as e:
            self.db.rollback()
            raise handle_integrity_error(e, operation) from e
        return self._get_transaction(transaction_id), applied

    def _find_by_order_id(self, order_id: str) -> PaymentTransaction:
        """Current order first, then the transaction a replaced order was issued for"""
        transaction = self.transaction_repo.get_by_order_id(order_id)
        if transaction:
            return transaction
        transaction_id = parse_order_id(order_id)
        if transaction_id is not None:
            transaction = self.transaction_repo.get_by_id(transaction_id)
            if transaction:
                return transaction
        raise NotFoundError(f"No payment with order id {order_id}")

    @staticmethod
    def needs_staff_confirmation(transaction: PaymentTransaction) -> bool:
        return transaction.needs_staff_confirmation

    def open_transaction(
        self,
        appointment_id: int,
        amount: Union[int, Decimal],
        payment_method: PaymentMethod = PaymentMethod.CASH
    ) -> PaymentTransaction:
        """Start a payment flow for an appointment"""
        if not self.appointment_repo.get_by_id(appointment_id):
            raise NotFoundError(f"Appointment {appointment_id} not found")

        if amount is None or Decimal(str(amount)) <= 0:
            raise ValidationError(
                "Invalid payment amount",
                violations={"amount": ["amount must be greater than zero"]}
            )

        if self.transaction_repo.get_pending_for_appointment(appointment_id):
            raise ConflictError(
                f"Appointment {appointment_id} already has an open payment",
                error_code="PAYMENT_ALREADY_OPEN"
            )

        now = datetime.utcnow()
        try:
            transaction = self.transaction_repo.create({
                "appointment_id": appointment_id,
                "amount": amount,
                "payment_method": PaymentMethod(payment_method),
                "transaction_status": TransactionStatus.PENDING,
                "created_at": now,
                "updated_at": now,
            })
        except IntegrityError as e:
            self.db.rollback()
            raise handle_integrity_error(e, "open_transaction") from e

        logger.info(f"Opened payment {transaction.id} for appointment {appointment_id}")
        return transaction

    def get_transaction(self, transaction_id: int) -> PaymentTransaction:
        return self._get_transaction(transaction_id)

    def get_transaction_for_appointment(self, appointment_id: int) -> Optional[PaymentTransaction]:
        """The open transaction if there is one, else the most recent"""
        return (
            self.transaction_repo.get_pending_for_appointment(appointment_id)
            or self.transaction_repo.get_latest_for_appointment(appointment_id)
        )

    def create_qr_payment(
        self,
        transaction_id: int,
        amount: Optional[Union[int, Decimal]] = None,
        order_info: Optional[str] = None
    ) -> Tuple[PaymentTransaction, str]:
        """Register a fresh order with the provider and return its pay URL.

        The order id is stored on the PENDING row before the provider is
        called, so a late redirect always finds its transaction. A provider
        failure leaves the transaction PENDING with its previous order.
        """
        transaction = self._get_transaction(transaction_id)
        if transaction.is_terminal:
            raise ConflictError(
                f"Payment {transaction_id} is already {transaction.transaction_status.value}"
            )

        previous = {
            "order_id": transaction.order_id,
            "pay_url": transaction.pay_url,
            "payment_method": transaction.payment_method,
        }
        amount = transaction.amount if amount is None else amount
        order_info = order_info or f"Thanh toan lich hen #{transaction.appointment_id}"
        order_id = build_order_id(transaction_id)

        transaction, applied = self._compare_and_set(
            transaction_id,
            {
                "order_id": order_id,
                "payment_method": PaymentMethod.QR,
                "updated_at": datetime.utcnow(),
            },
            "create_qr_payment"
        )
        if not applied:
            raise ConflictError(
                f"Payment {transaction_id} is already {transaction.transaction_status.value}"
            )

        try:
            payment = self.provider.create_payment(order_id, int(amount), order_info)
        except ProviderUnavailableError:
            previous["updated_at"] = datetime.utcnow()
            self._compare_and_set(transaction_id, previous, "create_qr_payment")
            logger.warning(f"QR order {order_id} not registered, payment {transaction_id} left PENDING")
            raise

        transaction, _ = self._compare_and_set(
            transaction_id,
            {"pay_url": payment.pay_url, "updated_at": datetime.utcnow()},
            "create_qr_payment"
        )
        logger.info(f"QR payment {order_id} created for transaction {transaction_id}")
        return transaction, payment.pay_url

    def reconcile_from_provider(
        self,
        order_id: str,
        provider_transaction_id: Optional[str],
        result_code: Union[int, str, None]
    ) -> FinalizationResult:
        """Apply a provider outcome (redirect, IPN or poll) to the transaction.

        Result code 0 means paid, in-progress codes only record the provider
        transaction id, anything else fails the payment. A transaction that
        is already terminal is returned unchanged.

        An order that was replaced by a newer QR can still settle its
        transaction, but only a success is applied from it.
        """
        transaction = self._find_by_order_id(order_id)

        if transaction.is_terminal:
            return transaction, False

        code = parse_result_code(result_code)
        provider_transaction_id = str(provider_transaction_id) if provider_transaction_id else None
        now = datetime.utcnow()

        if transaction.order_id != order_id:
            if code != RESULT_SUCCESS:
                logger.info(
                    f"Result {code} for replaced order {order_id} ignored, "
                    f"payment {transaction.id} is on {transaction.order_id}"
                )
                return transaction, False
            logger.info(f"Replaced order {order_id} paid for payment {transaction.id}")

        if code in RESULT_IN_PROGRESS:
            if provider_transaction_id and not transaction.provider_transaction_id:
                transaction, _ = self._compare_and_set(
                    transaction.id,
                    {"provider_transaction_id": provider_transaction_id, "updated_at": now},
                    "reconcile_from_provider"
                )
            return transaction, False

        if code == RESULT_SUCCESS:
            update_data = {
                "transaction_status": TransactionStatus.SUCCESS,
                "provider_transaction_id": provider_transaction_id,
                "order_id": order_id,
            }
        else:
            update_data = {"transaction_status": TransactionStatus.FAILED}
            if provider_transaction_id:
                update_data["provider_transaction_id"] = provider_transaction_id

        update_data.update({
            "finalized_via": FinalizedVia.PROVIDER,
            "transaction_time": now,
            "updated_at": now,
        })

        transaction, applied = self._compare_and_set(transaction.id, update_data, "reconcile_from_provider")
        if applied:
            logger.info(
                f"Payment {transaction.id} ({order_id}) finalized by provider: "
                f"{transaction.transaction_status.value}"
            )
        else:
            logger.info(
                f"Provider result for {order_id} ignored, already "
                f"{transaction.transaction_status.value}"
            )
        return transaction, applied

    def staff_confirm_payment(
        self,
        appointment_id: int,
        payment_method: PaymentMethod,
        notes: Optional[str],
        actor: Actor
    ) -> FinalizationResult:
        """Staff marks the appointment's payment as received.

        If the provider already settled it, the existing SUCCESS is returned
        as a no-op.
        """
        transaction = self.get_transaction_for_appointment(appointment_id)
        if not transaction:
            raise NotFoundError(f"No payment for appointment {appointment_id}")

        if transaction.transaction_status == TransactionStatus.SUCCESS:
            return transaction, False
        if transaction.is_terminal:
            raise ConflictError(
                f"Payment {transaction.id} is {transaction.transaction_status.value} "
                f"and cannot be confirmed"
            )

        now = datetime.utcnow()
        transaction, applied = self._compare_and_set(
            transaction.id,
            {
                "transaction_status": TransactionStatus.SUCCESS,
                "payment_method": PaymentMethod(payment_method or transaction.payment_method),
                "notes": notes or "",
                "confirmed_by": actor.id,
                "finalized_via": FinalizedVia.STAFF,
                "transaction_time": now,
                "updated_at": now,
            },
            "staff_confirm_payment"
        )

        if applied:
            logger.info(f"Payment {transaction.id} confirmed by staff {actor.id}")
        elif transaction.transaction_status != TransactionStatus.SUCCESS:
            raise ConflictError(
                f"Payment {transaction.id} was finalized as "
                f"{transaction.transaction_status.value} before confirmation"
            )
        return transaction, applied

    def cancel_transaction(self, transaction_id: int, actor: Actor) -> FinalizationResult:
        """Abandon an open payment"""
        self._get_transaction(transaction_id)
        now = datetime.utcnow()
        transaction, applied = self._compare_and_set(
            transaction_id,
            {
                "transaction_status": TransactionStatus.CANCELLED,
                "confirmed_by": actor.id,
                "finalized_via": FinalizedVia.STAFF,
                "transaction_time": now,
                "updated_at": now,
            },
            "cancel_transaction"
        )
        if applied:
            logger.info(f"Payment {transaction_id} cancelled by {actor.id}")
        return transaction, applied

    def list_needing_confirmation(self) -> List[PaymentTransaction]:
        """Staff worklist. Always read from the database."""
        return self.transaction_repo.list_needing_confirmation()

    def poll_provider(self, order_id: str) -> FinalizationResult:
        """Ask the provider about an order and reconcile with the answer"""
        transaction = self._find_by_order_id(order_id)
        if transaction.is_terminal:
            return transaction, False

        status = self.provider.query_status(order_id)
        if status.result_code in RESULT_ORDER_NOT_FOUND:
            logger.warning(f"Provider has no order {order_id}, payment {transaction.id} left PENDING")
            return transaction, False
        return self.reconcile_from_provider(order_id, status.trans_id, status.result_code)

    def list_pollable(self, limit: int = 100) -> List[PaymentTransaction]:
        return self.transaction_repo.list_pending_qr(limit=limit)

    def expire_stale(self, max_age: timedelta) -> int:
        """Cancel open QR payments older than max_age. Returns how many expired."""
        cutoff = datetime.utcnow() - max_age
        expired = 0
        for transaction in self.transaction_repo.list_pending_qr(created_before=cutoff):
            now = datetime.utcnow()
            _, applied = self._compare_and_set(
                transaction.id,
                {
                    "transaction_status": TransactionStatus.CANCELLED,
                    "finalized_via": FinalizedVia.EXPIRY,
                    "notes": "Expired without provider confirmation",
                    "transaction_time": now,
                    "updated_at": now,
                },
                "expire_stale"
            )
            if applied:
                expired += 1
                logger.info(f"Payment {transaction.id} ({transaction.order_id}) expired")
        return expired
