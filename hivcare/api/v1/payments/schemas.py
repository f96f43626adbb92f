"""
Payments API Schemas

Pydantic models for payment transactions, staff confirmation and the MoMo
redirect / IPN payloads.
"""

from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from decimal import Decimal
from hivcare.domain.payments.models import PaymentMethod, TransactionStatus, FinalizedVia


class PaymentCreate(BaseModel):
    """Schema for opening a payment"""
    appointment_id: int
    amount: Decimal
    payment_method: PaymentMethod = PaymentMethod.CASH


class QrPaymentRequest(BaseModel):
    amount: Optional[Decimal] = None
    order_info: Optional[str] = Field(None, max_length=255)


class StaffConfirmRequest(BaseModel):
    """Schema for staff confirming a payment by hand"""
    appointment_id: int
    payment_method: PaymentMethod = PaymentMethod.CASH
    notes: Optional[str] = Field(None, max_length=1000)


class PaymentTransactionResponse(BaseModel):
    """Schema for payment transaction response"""
    id: int
    appointment_id: int
    order_id: Optional[str] = None
    amount: Decimal
    payment_method: PaymentMethod
    provider_transaction_id: Optional[str] = None
    pay_url: Optional[str] = None
    transaction_status: TransactionStatus
    finalized_via: Optional[FinalizedVia] = None
    confirmed_by: Optional[int] = None
    notes: str = ""
    needs_staff_confirmation: bool = False
    created_at: datetime
    updated_at: datetime
    transaction_time: Optional[datetime] = None

    class Config:
        from_attributes = True


class QrPaymentResponse(BaseModel):
    transaction: PaymentTransactionResponse
    pay_url: str


class FinalizationResponse(BaseModel):
    """Outcome of a finalization attempt.

    ``applied`` is False when another writer had already finalized the
    transaction; ``transaction`` then carries that earlier result.
    """
    transaction: PaymentTransactionResponse
    applied: bool


class PendingConfirmationResponse(BaseModel):
    items: List[PaymentTransactionResponse]
    total: int


class MomoCheckRequest(BaseModel):
    """Manual "check and update" from the payment result page"""
    orderId: str
    transId: Optional[str] = None


class MomoIpnPayload(BaseModel):
    """Instant payment notification posted by MoMo"""
    partnerCode: str
    orderId: str
    requestId: str
    amount: int
    orderInfo: str = ""
    orderType: str = ""
    transId: Optional[int] = None
    resultCode: int
    message: str = ""
    payType: str = ""
    responseTime: int
    extraData: str = ""
    signature: str
