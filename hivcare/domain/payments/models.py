"""
Payments Domain Models

Implements the payment transaction attached to an appointment. A transaction
is finalized exactly once, either by the payment provider or by staff.
"""

from sqlalchemy import (
    Column, String, DateTime, ForeignKey, Integer, Numeric, Text, Enum, Index
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from hivcare.infrastructure.database import Base
import enum


class PaymentMethod(str, enum.Enum):
    CASH = "CASH"
    QR = "QR"


class TransactionStatus(str, enum.Enum):
    """Payment transaction status"""
    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


class FinalizedVia(str, enum.Enum):
    """Which writer moved the transaction out of PENDING"""
    PROVIDER = "PROVIDER"
    STAFF = "STAFF"
    EXPIRY = "EXPIRY"


TERMINAL_TRANSACTION_STATUSES = frozenset({
    TransactionStatus.SUCCESS,
    TransactionStatus.FAILED,
    TransactionStatus.CANCELLED,
})


class PaymentTransaction(Base):
    """Payment transaction model"""
    __tablename__ = "payment_transactions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=False, index=True)

    # External correlation key, ORDER_{id}_{epoch_ms}
    order_id = Column(String(64), unique=True)
    amount = Column(Numeric(12, 2), nullable=False)
    payment_method = Column(Enum(PaymentMethod), nullable=False)
    provider_transaction_id = Column(String(64))
    pay_url = Column(Text)

    transaction_status = Column(
        Enum(TransactionStatus), nullable=False, default=TransactionStatus.PENDING, index=True
    )
    finalized_via = Column(Enum(FinalizedVia))
    confirmed_by = Column(Integer)
    notes = Column(Text, nullable=False, default="")

    # Audit
    created_at = Column(DateTime, nullable=False, default=func.now())
    updated_at = Column(DateTime, nullable=False, default=func.now())
    transaction_time = Column(DateTime)

    # Relationships
    appointment = relationship("Appointment")

    __table_args__ = (
        # At most one open transaction per appointment
        Index(
            "uq_payment_open_per_appointment",
            "appointment_id",
            unique=True,
            sqlite_where=transaction_status == TransactionStatus.PENDING.value,
            postgresql_where=transaction_status == TransactionStatus.PENDING.value,
        ),
    )

    @property
    def is_terminal(self) -> bool:
        return self.transaction_status in TERMINAL_TRANSACTION_STATUSES

    @property
    def needs_staff_confirmation(self) -> bool:
        """QR payment the provider has seen but nobody has finalized"""
        return (
            self.payment_method == PaymentMethod.QR
            and self.provider_transaction_id is not None
            and self.transaction_status == TransactionStatus.PENDING
        )
