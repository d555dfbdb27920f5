"""
PayOS checkout-link gateway.

REST calls go through httpx. Requests and webhooks are signed with
HMAC-SHA256 over the alphabetically sorted ``key=value`` pairs joined by
``&``, keyed with the merchant checksum key.
"""
import hashlib
import hmac
import json
import logging
import secrets
from datetime import datetime
from typing import Any, Dict, Optional

import httpx

from moodjournal.core.config import settings
from moodjournal.core.errors import GatewayCommunicationError, PaymentsDisabledError
from moodjournal.features.payments.provider import (
    CheckoutLink,
    GatewayEvent,
    GatewayStatus,
    GatewayWebhookError,
)

logger = logging.getLogger("moodjournal.payments.payos")

SUCCESS_CODE = "00"
MAX_DESCRIPTION = 25

_STATUS_MAP: Dict[str, GatewayStatus] = {
    "PAID": "paid",
    "PENDING": "pending",
    "PROCESSING": "pending",
    "UNDERPAID": "pending",
    "CANCELLED": "cancelled",
    "EXPIRED": "expired",
    "FAILED": "failed",
}


def _stringify(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False)
    return str(value)


def sign_data(data: Dict[str, Any], checksum_key: str) -> str:
    """HMAC-SHA256 hex signature of ``data`` in PayOS canonical form."""
    canonical = "&".join(f"{k}={_stringify(data[k])}" for k in sorted(data))
    return hmac.new(checksum_key.encode("utf-8"), canonical.encode("utf-8"), hashlib.sha256).hexdigest()


class PayOSGateway:
    name = "payos"

    def __init__(
        self,
        client_id: Optional[str] = None,
        api_key: Optional[str] = None,
        checksum_key: Optional[str] = None,
        *,
        base_url: Optional[str] = None,
        client: Optional[httpx.Client] = None,
    ):
        self.client_id = client_id or settings.PAYOS_CLIENT_ID
        self.api_key = api_key or settings.PAYOS_API_KEY
        self.checksum_key = checksum_key or settings.PAYOS_CHECKSUM_KEY
        if not (self.client_id and self.api_key and self.checksum_key):
            raise PaymentsDisabledError("PayOS is not configured")
        self.base_url = (base_url or settings.PAYOS_API_URL).rstrip("/")
        self._client = client

    def _http(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(timeout=settings.GATEWAY_TIMEOUT_SECONDS)
        return self._client

    def _request(self, method: str, path: str, body: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        headers = {"x-client-id": self.client_id, "x-api-key": self.api_key}
        try:
            response = self._http().request(method, f"{self.base_url}{path}", json=body, headers=headers)
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("[payos] request failed", extra={"path": path, "error": type(e).__name__})
            raise GatewayCommunicationError("Payment gateway unavailable") from e

        if str(payload.get("code")) != SUCCESS_CODE or not isinstance(payload.get("data"), dict):
            logger.warning("[payos] request rejected", extra={"path": path, "code": payload.get("code")})
            raise GatewayCommunicationError("Payment gateway rejected the request")
        return payload["data"]

    def new_order_code(self, now: datetime) -> str:
        # PayOS requires a positive integer order code
        return f"{int(now.timestamp())}{secrets.randbelow(1000):03d}"

    def create_checkout(
        self,
        order_code: str,
        amount: int,
        description: str,
        *,
        now: Optional[datetime] = None,
        expires_at: Optional[datetime] = None,
    ) -> CheckoutLink:
        body: Dict[str, Any] = {
            "orderCode": int(order_code),
            "amount": amount,
            "description": description[:MAX_DESCRIPTION],
            "cancelUrl": settings.PAYOS_CANCEL_URL,
            "returnUrl": settings.PAYOS_RETURN_URL,
        }
        body["signature"] = sign_data(
            {k: body[k] for k in ("amount", "cancelUrl", "description", "orderCode", "returnUrl")},
            self.checksum_key,
        )
        if expires_at is not None:
            body["expiredAt"] = int(expires_at.timestamp())

        data = self._request("POST", "/v2/payment-requests", body)
        checkout_url = data.get("checkoutUrl")
        if not checkout_url:
            raise GatewayCommunicationError("Payment gateway returned no checkout URL")
        return CheckoutLink(checkout_url=checkout_url, correlation_key=str(data.get("orderCode", order_code)))

    def get_status(self, correlation_key: str, *, created_at: Optional[datetime] = None) -> GatewayStatus:
        data = self._request("GET", f"/v2/payment-requests/{correlation_key}")
        raw = str(data.get("status", "")).upper()
        status = _STATUS_MAP.get(raw)
        if status is None:
            logger.warning("[payos] unknown status", extra={"order_code": correlation_key, "status": raw})
            return "pending"
        return status

    def parse_webhook(self, payload: Dict[str, Any]) -> GatewayEvent:
        data = payload.get("data")
        signature = payload.get("signature")
        if not isinstance(data, dict) or not signature:
            raise GatewayWebhookError("Invalid webhook payload")
        expected = sign_data(data, self.checksum_key)
        if not hmac.compare_digest(expected, str(signature)):
            raise GatewayWebhookError("Invalid webhook signature")
        return event_from_payload(payload)


def event_from_payload(payload: Dict[str, Any]) -> GatewayEvent:
    """Map a (verified) PayOS webhook body to a GatewayEvent.

    Success requires the top-level code and, when present, data.code to be "00".
    """
    data = payload.get("data") or {}
    order_code = data.get("orderCode")
    if order_code in (None, ""):
        raise GatewayWebhookError("Webhook missing orderCode")

    top_code = str(payload.get("code", ""))
    data_code = str(data.get("code", top_code))
    amount = data.get("amount")
    return GatewayEvent(
        correlation_key=str(order_code),
        succeeded=top_code == SUCCESS_CODE and data_code == SUCCESS_CODE,
        amount=int(amount) if amount is not None else None,
        raw_status=data_code,
        raw=payload,
    )
