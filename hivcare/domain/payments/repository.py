"""
Payments Repository Layer

Data access for payment transactions. Every status change goes through
``compare_and_set`` so that concurrent writers cannot both finalize a row.
"""

from typing import Optional, List
from datetime import datetime

from hivcare.domain.payments.models import (
    PaymentTransaction, PaymentMethod, TransactionStatus
)


class PaymentTransactionRepository:
    """Repository for payment transaction data access operations"""

    def __init__(self, db):
        self.db = db

    def create(self, transaction_data: dict) -> PaymentTransaction:
        """Create a new transaction"""
        transaction = PaymentTransaction(**transaction_data)
        self.db.add(transaction)
        self.db.commit()
        self.db.refresh(transaction)
        return transaction

    def get_by_id(self, transaction_id: int) -> Optional[PaymentTransaction]:
        return self.db.query(PaymentTransaction).filter(
            PaymentTransaction.id == transaction_id
        ).first()

    def get_by_order_id(self, order_id: str) -> Optional[PaymentTransaction]:
        return self.db.query(PaymentTransaction).filter(
            PaymentTransaction.order_id == order_id
        ).first()

    def get_pending_for_appointment(self, appointment_id: int) -> Optional[PaymentTransaction]:
        """The open transaction of an appointment, if any"""
        return self.db.query(PaymentTransaction).filter(
            PaymentTransaction.appointment_id == appointment_id,
            PaymentTransaction.transaction_status == TransactionStatus.PENDING
        ).first()

    def get_latest_for_appointment(self, appointment_id: int) -> Optional[PaymentTransaction]:
        return self.db.query(PaymentTransaction).filter(
            PaymentTransaction.appointment_id == appointment_id
        ).order_by(PaymentTransaction.id.desc()).first()

    def list_needing_confirmation(self) -> List[PaymentTransaction]:
        """QR transactions the provider knows about that are still open"""
        return self.db.query(PaymentTransaction).filter(
            PaymentTransaction.payment_method == PaymentMethod.QR,
            PaymentTransaction.provider_transaction_id.isnot(None),
            PaymentTransaction.transaction_status == TransactionStatus.PENDING
        ).order_by(PaymentTransaction.created_at).all()

    def list_pending_qr(
        self,
        created_before: Optional[datetime] = None,
        limit: int = 100
    ) -> List[PaymentTransaction]:
        """Open QR transactions that already carry an order id"""
        query = self.db.query(PaymentTransaction).filter(
            PaymentTransaction.payment_method == PaymentMethod.QR,
            PaymentTransaction.order_id.isnot(None),
            PaymentTransaction.transaction_status == TransactionStatus.PENDING
        )
        if created_before is not None:
            query = query.filter(PaymentTransaction.created_at < created_before)
        return query.order_by(PaymentTransaction.created_at).limit(limit).all()

    def compare_and_set(self, transaction_id: int, update_data: dict) -> bool:
        """UPDATE ... WHERE id = ? AND transaction_status = 'PENDING'.

        Returns True when this call changed the row. The session is expired
        afterwards so the next read sees whatever the winner wrote.
        """
        result = self.db.query(PaymentTransaction).filter(
            PaymentTransaction.id == transaction_id,
            PaymentTransaction.transaction_status == TransactionStatus.PENDING
        ).update(update_data, synchronize_session=False)
        self.db.commit()
        self.db.expire_all()
        return result > 0
