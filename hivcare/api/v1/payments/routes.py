"""
Payments API Routes

Endpoints for payment transactions, the staff confirmation worklist and the
MoMo redirect / IPN callbacks.
"""

from fastapi import APIRouter, Depends, Request, Response, status
import logging

from hivcare.infrastructure.database import get_db
from hivcare.core.exceptions import AuthenticationError, NotFoundError, ValidationError
from hivcare.core.permissions import Permissions
from hivcare.api.deps import actor_with_permissions, get_payment_provider
from hivcare.domain.payments.service import PaymentService
from hivcare.api.v1.payments.schemas import (
    PaymentCreate, QrPaymentRequest, StaffConfirmRequest,
    PaymentTransactionResponse, QrPaymentResponse, FinalizationResponse,
    PendingConfirmationResponse, MomoCheckRequest, MomoIpnPayload
)

logger = logging.getLogger(__name__)

router = APIRouter()
momo_router = APIRouter()


# ==================== Payment Endpoints ====================

@router.post("", response_model=PaymentTransactionResponse, status_code=status.HTTP_201_CREATED)
def open_payment(
    payment_data: PaymentCreate,
    db = Depends(get_db),
    provider = Depends(get_payment_provider),
    actor = Depends(actor_with_permissions([Permissions.PAYMENTS_CREATE]))
):
    """Open a PENDING payment for an appointment"""
    service = PaymentService(db, provider)
    return service.open_transaction(
        payment_data.appointment_id,
        payment_data.amount,
        payment_data.payment_method
    )


@router.get("/appointment/{appointment_id}", response_model=PaymentTransactionResponse)
def get_appointment_payment(
    appointment_id: int,
    db = Depends(get_db),
    provider = Depends(get_payment_provider),
    actor = Depends(actor_with_permissions([Permissions.PAYMENTS_READ]))
):
    """Open or most recent payment of an appointment"""
    service = PaymentService(db, provider)
    transaction = service.get_transaction_for_appointment(appointment_id)
    if not transaction:
        raise NotFoundError(f"No payment for appointment {appointment_id}")
    return transaction


@router.post("/{transaction_id}/qr", response_model=QrPaymentResponse)
def create_qr_payment(
    transaction_id: int,
    qr_request: QrPaymentRequest,
    db = Depends(get_db),
    provider = Depends(get_payment_provider),
    actor = Depends(actor_with_permissions([Permissions.PAYMENTS_CREATE]))
):
    """Create a MoMo order for the transaction and return the pay URL"""
    service = PaymentService(db, provider)
    transaction, pay_url = service.create_qr_payment(
        transaction_id,
        amount=qr_request.amount,
        order_info=qr_request.order_info
    )
    return QrPaymentResponse(
        transaction=PaymentTransactionResponse.model_validate(transaction),
        pay_url=pay_url
    )


@router.post("/{transaction_id}/cancel", response_model=FinalizationResponse)
def cancel_payment(
    transaction_id: int,
    db = Depends(get_db),
    provider = Depends(get_payment_provider),
    actor = Depends(actor_with_permissions([Permissions.PAYMENTS_CONFIRM]))
):
    """Abandon an open payment"""
    service = PaymentService(db, provider)
    transaction, applied = service.cancel_transaction(transaction_id, actor)
    return FinalizationResponse(
        transaction=PaymentTransactionResponse.model_validate(transaction),
        applied=applied
    )


@router.post("/staff/confirm", response_model=FinalizationResponse)
def staff_confirm_payment(
    confirm_data: StaffConfirmRequest,
    db = Depends(get_db),
    provider = Depends(get_payment_provider),
    actor = Depends(actor_with_permissions([Permissions.PAYMENTS_CONFIRM]))
):
    """Staff confirms a cash payment or a QR payment seen on the patient's phone"""
    service = PaymentService(db, provider)
    transaction, applied = service.staff_confirm_payment(
        confirm_data.appointment_id,
        confirm_data.payment_method,
        confirm_data.notes,
        actor
    )
    return FinalizationResponse(
        transaction=PaymentTransactionResponse.model_validate(transaction),
        applied=applied
    )


@router.get("/staff/pending-confirmation", response_model=PendingConfirmationResponse)
def list_pending_confirmation(
    db = Depends(get_db),
    provider = Depends(get_payment_provider),
    actor = Depends(actor_with_permissions([Permissions.PAYMENTS_CONFIRM]))
):
    """Staff worklist of QR payments awaiting confirmation"""
    service = PaymentService(db, provider)
    items = service.list_needing_confirmation()
    return PendingConfirmationResponse(items=items, total=len(items))


# ==================== MoMo Callback Endpoints ====================

@momo_router.get("/return", response_model=FinalizationResponse)
def momo_return(
    request: Request,
    db = Depends(get_db),
    provider = Depends(get_payment_provider)
):
    """Customer redirect back from MoMo.

    Signed query parameters are applied directly; otherwise the order status
    is fetched from MoMo instead of trusting the browser.
    """
    params = dict(request.query_params)
    order_id = params.get("orderId")
    if not order_id:
        raise ValidationError("Missing orderId", violations={"orderId": ["orderId is required"]})

    service = PaymentService(db, provider)
    if params.get("signature") and provider.verify_signature(params):
        transaction, applied = service.reconcile_from_provider(
            order_id, params.get("transId"), params.get("resultCode")
        )
    else:
        transaction, applied = service.poll_provider(order_id)

    return FinalizationResponse(
        transaction=PaymentTransactionResponse.model_validate(transaction),
        applied=applied
    )


@momo_router.post("/ipn", status_code=status.HTTP_204_NO_CONTENT)
def momo_ipn(
    payload: MomoIpnPayload,
    db = Depends(get_db),
    provider = Depends(get_payment_provider)
):
    """Server-to-server payment notification"""
    if not provider.verify_signature(payload.model_dump()):
        logger.warning(f"Rejected MoMo IPN with bad signature for {payload.orderId}")
        raise AuthenticationError("Invalid payment signature", error_code="INVALID_SIGNATURE")

    service = PaymentService(db, provider)
    service.reconcile_from_provider(payload.orderId, payload.transId, payload.resultCode)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@momo_router.post("/check-and-update", response_model=FinalizationResponse)
def momo_check_and_update(
    check_request: MomoCheckRequest,
    db = Depends(get_db),
    provider = Depends(get_payment_provider),
    actor = Depends(actor_with_permissions([Permissions.PAYMENTS_READ]))
):
    """Ask MoMo for the order status and apply it"""
    service = PaymentService(db, provider)
    transaction, applied = service.poll_provider(check_request.orderId)
    return FinalizationResponse(
        transaction=PaymentTransactionResponse.model_validate(transaction),
        applied=applied
    )
