"""
VNPay bank gateway.

Checkout is a signed redirect URL built locally. Status lookups use the
``querydr`` merchant API over httpx. IPN and return callbacks arrive as
query parameters signed with HMAC-SHA512 (``vnp_SecureHash``).
"""
import hashlib
import hmac
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
from urllib.parse import quote_plus, urlencode

import httpx

from moodjournal.core.clock import resolve_now
from moodjournal.core.config import settings
from moodjournal.core.errors import GatewayCommunicationError, PaymentsDisabledError
from moodjournal.features.payments.provider import (
    CheckoutLink,
    GatewayEvent,
    GatewayStatus,
    GatewayWebhookError,
)

logger = logging.getLogger("moodjournal.payments.vnpay")

VERSION = "2.1.0"
SUCCESS_CODE = "00"
# VNPay timestamps are Vietnam local time
VN_TZ = timezone(timedelta(hours=7))
DATE_FORMAT = "%Y%m%d%H%M%S"

# querydr vnp_TransactionStatus
_TRANSACTION_STATUS: Dict[str, GatewayStatus] = {
    "00": "paid",
    "01": "pending",
    "02": "failed",
    "04": "failed",
    "05": "pending",
    "06": "pending",
    "07": "failed",
    "09": "failed",
}
QUERY_NOT_FOUND = "91"


def _vn_time(dt: datetime) -> str:
    return dt.astimezone(VN_TZ).strftime(DATE_FORMAT)


def _hash_data(params: Dict[str, Any]) -> str:
    items = sorted((k, v) for k, v in params.items() if k.startswith("vnp_") and v not in (None, ""))
    return "&".join(f"{k}={quote_plus(str(v))}" for k, v in items)


def sign_params(params: Dict[str, Any], secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), _hash_data(params).encode("utf-8"), hashlib.sha512).hexdigest()


def verify_params(params: Dict[str, Any], secret: str) -> bool:
    received = str(params.get("vnp_SecureHash", ""))
    unsigned = {k: v for k, v in params.items() if k not in ("vnp_SecureHash", "vnp_SecureHashType")}
    return bool(received) and hmac.compare_digest(sign_params(unsigned, secret), received.lower())


class VNPayGateway:
    name = "vnpay"

    def __init__(
        self,
        tmn_code: Optional[str] = None,
        hash_secret: Optional[str] = None,
        *,
        payment_url: Optional[str] = None,
        api_url: Optional[str] = None,
        client: Optional[httpx.Client] = None,
    ):
        self.tmn_code = tmn_code or settings.VNPAY_TMN_CODE
        self.hash_secret = hash_secret or settings.VNPAY_HASH_SECRET
        if not (self.tmn_code and self.hash_secret):
            raise PaymentsDisabledError("VNPay is not configured")
        self.payment_url = payment_url or settings.VNPAY_PAYMENT_URL
        self.api_url = api_url or settings.VNPAY_API_URL
        self._client = client

    def _http(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(timeout=settings.GATEWAY_TIMEOUT_SECONDS)
        return self._client

    def new_order_code(self, now: datetime) -> str:
        return uuid.uuid4().hex[:12].upper()

    def create_checkout(
        self,
        order_code: str,
        amount: int,
        description: str,
        *,
        now: Optional[datetime] = None,
        expires_at: Optional[datetime] = None,
        ip_addr: str = "127.0.0.1",
    ) -> CheckoutLink:
        now = resolve_now(now)
        params: Dict[str, Any] = {
            "vnp_Version": VERSION,
            "vnp_Command": "pay",
            "vnp_TmnCode": self.tmn_code,
            "vnp_Locale": "vn",
            "vnp_CurrCode": "VND",
            "vnp_TxnRef": order_code,
            "vnp_OrderInfo": description,
            "vnp_OrderType": "other",
            "vnp_Amount": amount * 100,
            "vnp_ReturnUrl": settings.VNPAY_RETURN_URL,
            "vnp_IpAddr": ip_addr,
            "vnp_CreateDate": _vn_time(now),
        }
        if expires_at is not None:
            params["vnp_ExpireDate"] = _vn_time(expires_at)
        params["vnp_SecureHash"] = sign_params(params, self.hash_secret)
        url = f"{self.payment_url}?{urlencode(sorted(params.items()))}"
        return CheckoutLink(checkout_url=url, correlation_key=order_code)

    def get_status(self, correlation_key: str, *, created_at: Optional[datetime] = None) -> GatewayStatus:
        now = resolve_now()
        request_id = uuid.uuid4().hex[:32]
        transaction_date = _vn_time(created_at or now)
        create_date = _vn_time(now)
        order_info = f"Query {correlation_key}"
        ip_addr = "127.0.0.1"
        checksum_data = "|".join(
            [request_id, VERSION, "querydr", self.tmn_code, correlation_key, transaction_date, create_date, ip_addr, order_info]
        )
        body = {
            "vnp_RequestId": request_id,
            "vnp_Version": VERSION,
            "vnp_Command": "querydr",
            "vnp_TmnCode": self.tmn_code,
            "vnp_TxnRef": correlation_key,
            "vnp_OrderInfo": order_info,
            "vnp_TransactionDate": transaction_date,
            "vnp_CreateDate": create_date,
            "vnp_IpAddr": ip_addr,
            "vnp_SecureHash": hmac.new(
                self.hash_secret.encode("utf-8"), checksum_data.encode("utf-8"), hashlib.sha512
            ).hexdigest(),
        }
        try:
            response = self._http().post(self.api_url, json=body)
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("[vnpay] querydr failed", extra={"txn_ref": correlation_key, "error": type(e).__name__})
            raise GatewayCommunicationError("Payment gateway unavailable") from e

        response_code = str(payload.get("vnp_ResponseCode", ""))
        if response_code == QUERY_NOT_FOUND:
            # Customer has not reached the bank page yet
            return "pending"
        if response_code != SUCCESS_CODE:
            logger.warning("[vnpay] querydr rejected", extra={"txn_ref": correlation_key, "code": response_code})
            raise GatewayCommunicationError("Payment gateway rejected the status query")
        return _TRANSACTION_STATUS.get(str(payload.get("vnp_TransactionStatus", "")), "failed")

    def verify(self, params: Dict[str, Any]) -> bool:
        return verify_params(params, self.hash_secret)

    def parse_webhook(self, payload: Dict[str, Any]) -> GatewayEvent:
        if not self.verify(payload):
            raise GatewayWebhookError("Invalid signature")
        txn_ref = payload.get("vnp_TxnRef")
        if not txn_ref:
            raise GatewayWebhookError("Callback missing vnp_TxnRef")

        response_code = str(payload.get("vnp_ResponseCode", ""))
        transaction_status = payload.get("vnp_TransactionStatus")
        amount = payload.get("vnp_Amount")
        try:
            amount_vnd = int(amount) // 100 if amount not in (None, "") else None
        except (TypeError, ValueError) as e:
            raise GatewayWebhookError("Invalid vnp_Amount") from e
        return GatewayEvent(
            correlation_key=str(txn_ref),
            succeeded=response_code == SUCCESS_CODE and transaction_status in (None, SUCCESS_CODE),
            amount=amount_vnd,
            raw_status=response_code,
            raw=dict(payload),
        )
