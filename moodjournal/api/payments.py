"""
Payment API.

User surface:
- POST /v1/payments/premium/checkout: start (or reuse) a premium checkout
- GET  /v1/payments/{payment_id}: poll status (syncs with the gateway)
- POST /v1/payments/{payment_id}/cancel: abandon a pending checkout

Gateway callbacks (no user auth; signature-verified):
- POST /v1/payments/payos/webhook
- GET  /v1/payments/vnpay/ipn
- GET  /v1/payments/vnpay/return
"""
import logging
from datetime import datetime
from typing import Any, Dict, Literal, Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from moodjournal.core.auth import get_current_user
from moodjournal.core.errors import AppError, PaymentsDisabledError
from moodjournal.features.payments.provider import GatewayWebhookError
from moodjournal.features.payments.service import (
    cancel_payment,
    get_gateway,
    reconcile,
    start_premium_checkout,
    sync_payment_status,
)
from moodjournal.models.payment import Payment
from moodjournal.models.user import User

logger = logging.getLogger("moodjournal.payments")

router = APIRouter(prefix="/v1/payments", tags=["payments"])


class CheckoutRequest(BaseModel):
    gateway: Literal["payos", "vnpay"] = "payos"


class PaymentResponse(BaseModel):
    """Payment as seen by its owner. Gateway internals are not exposed."""
    payment_id: str
    gateway: str
    amount: int
    status: str
    checkout_url: Optional[str] = None
    expires_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    created_at: datetime
    reused: bool = False


def _payment_response(payment: Payment, *, reused: bool = False) -> Dict[str, Any]:
    return {
        "payment_id": payment.id,
        "gateway": payment.gateway,
        "amount": payment.amount,
        "status": payment.status,
        "checkout_url": payment.payment_url if payment.status == "pending" else None,
        "expires_at": payment.payment_timeout,
        "paid_at": payment.paid_at,
        "created_at": payment.created_at,
        "reused": reused,
    }


@router.post("/premium/checkout", response_model=PaymentResponse)
def premium_checkout(request: CheckoutRequest, user: User = Depends(get_current_user)):
    """
    Errors:
        503 payments_disabled: gateway not configured
        503 gateway_unavailable: gateway unreachable, retry later
    """
    result = start_premium_checkout(user, request.gateway)
    return _payment_response(result.payment, reused=result.reused)


@router.get("/{payment_id}", response_model=PaymentResponse)
def payment_status(payment_id: str, user: User = Depends(get_current_user)):
    return _payment_response(sync_payment_status(user, payment_id))


@router.post("/{payment_id}/cancel", response_model=PaymentResponse)
def cancel(payment_id: str, user: User = Depends(get_current_user)):
    return _payment_response(cancel_payment(user, payment_id))


@router.post("/payos/webhook")
async def payos_webhook(request: Request):
    """
    PayOS webhook. Responds 200 for every verified event, including unknown
    order codes and redeliveries, so the gateway stops retrying. A bad
    signature is 400; storage failures are 5xx so the gateway retries.
    """
    try:
        payload = await request.json()
    except ValueError:
        raise GatewayWebhookError("Invalid JSON body")
    if not isinstance(payload, dict):
        raise GatewayWebhookError("Invalid webhook payload")

    gateway = get_gateway("payos")
    event = gateway.parse_webhook(payload)
    outcome = reconcile(event)
    return {"success": True, "action": outcome.action}


def _vnpay_event(request: Request):
    gateway = get_gateway("vnpay")
    return gateway.parse_webhook(dict(request.query_params))


_IPN_RESPONSES = {
    "succeeded": ("00", "Confirm Success"),
    "failed": ("00", "Confirm Success"),
    "ignored": ("01", "Order not found"),
    "duplicate": ("02", "Order already confirmed"),
    "amount_mismatch": ("04", "Invalid amount"),
}


@router.get("/vnpay/ipn")
def vnpay_ipn(request: Request):
    """VNPay server-to-server notification. Always 200 with an RspCode body."""
    try:
        event = _vnpay_event(request)
    except GatewayWebhookError:
        return {"RspCode": "97", "Message": "Invalid signature"}
    except PaymentsDisabledError:
        return {"RspCode": "99", "Message": "Unknown error"}

    try:
        outcome = reconcile(event)
    except AppError:
        logger.exception("[payments] vnpay ipn failed", extra={"txn_ref": event.correlation_key})
        return {"RspCode": "99", "Message": "Unknown error"}

    code, message = _IPN_RESPONSES.get(outcome.action, ("99", "Unknown error"))
    return {"RspCode": code, "Message": message}


@router.get("/vnpay/return")
def vnpay_return(request: Request):
    """Browser redirect after the VNPay page. Applies the result if the IPN has not yet."""
    event = _vnpay_event(request)
    outcome = reconcile(event)
    status = outcome.status or ("success" if event.succeeded else "failed")
    return {
        "success": status == "success",
        "status": status,
        "message": "Payment success. Premium activated." if status == "success" else "Payment was not completed.",
    }
