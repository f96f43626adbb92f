"""
MoMo payment gateway client (v2 API).

Only the two calls the clinic needs are wrapped: creating a captureWallet
payment that yields a pay URL / QR, and querying the status of an order.
Every request is signed with HMAC-SHA256 over the alphabetically ordered
``key=value`` pairs, as the gateway requires.
"""

import hashlib
import hmac
import uuid
from dataclasses import dataclass
from typing import Optional, Dict, Any

import httpx
from loguru import logger

from hivcare.core.config import settings
from hivcare.core.exceptions import handle_provider_error

CREATE_PATH = "/v2/gateway/api/create"
QUERY_PATH = "/v2/gateway/api/query"

CREATE_SIGNATURE_FIELDS = (
    "accessKey", "amount", "extraData", "ipnUrl", "orderId", "orderInfo",
    "partnerCode", "redirectUrl", "requestId", "requestType",
)
QUERY_SIGNATURE_FIELDS = ("accessKey", "orderId", "partnerCode", "requestId")
IPN_SIGNATURE_FIELDS = (
    "accessKey", "amount", "extraData", "message", "orderId", "orderInfo",
    "orderType", "partnerCode", "payType", "requestId", "responseTime",
    "resultCode", "transId",
)

RESULT_SUCCESS = 0
# Codes the gateway returns while the customer has not finished paying
RESULT_IN_PROGRESS = {1000, 7000, 7002}
# Query answer for an order id the gateway never registered
RESULT_ORDER_NOT_FOUND = {42}


@dataclass
class MomoPayment:
    order_id: str
    request_id: str
    pay_url: str
    qr_code_url: Optional[str] = None
    deeplink: Optional[str] = None


@dataclass
class MomoStatus:
    order_id: str
    result_code: int
    message: str = ""
    trans_id: Optional[str] = None

    @property
    def is_final(self) -> bool:
        return self.result_code not in RESULT_IN_PROGRESS


class MomoClient:
    """Synchronous MoMo gateway client"""

    service_name = "momo"

    def __init__(
        self,
        endpoint: Optional[str] = None,
        partner_code: Optional[str] = None,
        access_key: Optional[str] = None,
        secret_key: Optional[str] = None,
        redirect_url: Optional[str] = None,
        ipn_url: Optional[str] = None,
        request_type: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None
    ):
        self.endpoint = (endpoint or settings.MOMO_ENDPOINT).rstrip("/")
        self.partner_code = partner_code or settings.MOMO_PARTNER_CODE
        self.access_key = access_key or settings.MOMO_ACCESS_KEY
        self.secret_key = secret_key or settings.MOMO_SECRET_KEY
        self.redirect_url = redirect_url or settings.MOMO_REDIRECT_URL
        self.ipn_url = ipn_url or settings.MOMO_IPN_URL
        self.request_type = request_type or settings.MOMO_REQUEST_TYPE
        self.timeout = timeout or settings.MOMO_TIMEOUT_SECONDS
        self.transport = transport

    def sign(self, params: Dict[str, Any], fields) -> str:
        """HMAC-SHA256 hex digest of ``k1=v1&k2=v2...`` in field order"""
        raw = "&".join(f"{field}={'' if params.get(field) is None else params.get(field)}" for field in fields)
        return hmac.new(
            self.secret_key.encode("utf-8"),
            raw.encode("utf-8"),
            hashlib.sha256
        ).hexdigest()

    def verify_signature(self, payload: Dict[str, Any]) -> bool:
        """Check the signature of an IPN / redirect payload"""
        signature = payload.get("signature")
        if not signature:
            return False
        params = {**payload, "accessKey": self.access_key}
        expected = self.sign(params, IPN_SIGNATURE_FIELDS)
        return hmac.compare_digest(expected, str(signature))

    def _post(self, path: str, body: Dict[str, Any], operation: str) -> Dict[str, Any]:
        url = f"{self.endpoint}{path}"
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.post(url, json=body)
                response.raise_for_status()
                return response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"MoMo {operation} failed for order {body.get('orderId')}: {e}")
            raise handle_provider_error(e, self.service_name, operation) from e

    def create_payment(
        self,
        order_id: str,
        amount: int,
        order_info: str,
        extra_data: str = ""
    ) -> MomoPayment:
        """Create a captureWallet payment and return its pay URL"""
        request_id = str(uuid.uuid4())
        body = {
            "partnerCode": self.partner_code,
            "accessKey": self.access_key,
            "requestId": request_id,
            "amount": int(amount),
            "orderId": order_id,
            "orderInfo": order_info,
            "redirectUrl": self.redirect_url,
            "ipnUrl": self.ipn_url,
            "extraData": extra_data,
            "requestType": self.request_type,
            "lang": "vi",
        }
        body["signature"] = self.sign(body, CREATE_SIGNATURE_FIELDS)
        del body["accessKey"]

        logger.info(f"Creating MoMo payment {order_id} for {amount}")
        data = self._post(CREATE_PATH, body, "create_payment")

        result_code = int(data.get("resultCode", -1))
        if result_code != RESULT_SUCCESS or not data.get("payUrl"):
            error = RuntimeError(f"resultCode={result_code} message={data.get('message')}")
            logger.warning(f"MoMo rejected payment {order_id}: {error}")
            raise handle_provider_error(error, self.service_name, "create_payment")

        return MomoPayment(
            order_id=order_id,
            request_id=request_id,
            pay_url=data["payUrl"],
            qr_code_url=data.get("qrCodeUrl"),
            deeplink=data.get("deeplink"),
        )

    def query_status(self, order_id: str) -> MomoStatus:
        """Ask the gateway for the current state of an order"""
        request_id = str(uuid.uuid4())
        body = {
            "partnerCode": self.partner_code,
            "accessKey": self.access_key,
            "requestId": request_id,
            "orderId": order_id,
            "lang": "vi",
        }
        body["signature"] = self.sign(body, QUERY_SIGNATURE_FIELDS)
        del body["accessKey"]

        data = self._post(QUERY_PATH, body, "query_status")
        trans_id = data.get("transId")
        return MomoStatus(
            order_id=order_id,
            result_code=int(data.get("resultCode", -1)),
            message=data.get("message") or "",
            trans_id=str(trans_id) if trans_id else None,
        )
