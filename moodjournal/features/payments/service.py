"""
Payment reconciliation service.

Coordinates:
- Premium checkout creation (one live checkout per user)
- Gateway callback reconciliation (idempotent per correlation key)
- Lazy checkout timeout
- Admin listings and revenue stats

Payment status only moves forward: pending -> success | failed | expired.
Every transition is a conditional UPDATE ... WHERE status = 'pending', so a
redelivered or racing callback can apply at most once. The premium upgrade
commits in the same transaction as the payment's success mark; the user's
notification is sent after commit and a failure there never undoes the upgrade.

All gateway-specific code is in payos_provider.py / vnpay_provider.py.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple
from uuid import uuid4

from sqlalchemy import select, insert, update, func

from moodjournal.core.clock import ensure_utc, resolve_now
from moodjournal.core.config import settings
from moodjournal.core.database import get_db_session, payments
from moodjournal.core.errors import (
    PaymentAlreadyTerminalError,
    PaymentNotFoundError,
    PaymentsDisabledError,
    ValidationError,
)
from moodjournal.features.notifications import service as notification_service
from moodjournal.features.payments.provider import GatewayEvent, PaymentGateway
from moodjournal.features.premium.service import apply_upgrade
from moodjournal.models.payment import Payment
from moodjournal.models.user import User

logger = logging.getLogger("moodjournal.payments")

PREMIUM_SUBSCRIPTION = "premium_subscription"
PREMIUM_DESCRIPTION = "Premium subscription 1 month"
GATEWAYS = ("payos", "vnpay")


@dataclass
class ReconcileOutcome:
    """What reconcile() did with an event."""
    action: str  # ignored | duplicate | amount_mismatch | succeeded | failed | expired
    payment_id: Optional[str] = None
    status: Optional[str] = None
    user_id: Optional[str] = None


@dataclass
class CheckoutResult:
    payment: Payment
    reused: bool = False


def payments_enabled(gateway_name: Optional[str] = None) -> bool:
    """Check if a gateway has credentials configured."""
    payos = bool(settings.PAYOS_CLIENT_ID and settings.PAYOS_API_KEY and settings.PAYOS_CHECKSUM_KEY)
    vnpay = bool(settings.VNPAY_TMN_CODE and settings.VNPAY_HASH_SECRET)
    if gateway_name == "payos":
        return payos
    if gateway_name == "vnpay":
        return vnpay
    return payos or vnpay


def get_gateway(name: str) -> PaymentGateway:
    """Build the named gateway from settings.

    Raises:
        ValidationError: unknown gateway name
        PaymentsDisabledError: gateway credentials missing
    """
    if name not in GATEWAYS:
        raise ValidationError(f"Unknown payment gateway: {name}")
    if not payments_enabled(name):
        raise PaymentsDisabledError(f"Payment gateway '{name}' is not configured")
    if name == "payos":
        from moodjournal.features.payments.payos_provider import PayOSGateway
        return PayOSGateway()
    from moodjournal.features.payments.vnpay_provider import VNPayGateway
    return VNPayGateway()


def _from_row(row) -> Payment:
    return Payment(
        id=row.id,
        gateway=row.gateway,
        gateway_order_code=row.gateway_order_code,
        user_id=row.user_id,
        amount=row.amount,
        payment_type=row.payment_type,
        description=row.description,
        status=row.status,
        payment_url=row.payment_url,
        payment_timeout=ensure_utc(row.payment_timeout),
        paid_at=ensure_utc(row.paid_at),
        cancelled_at=ensure_utc(row.cancelled_at),
        created_at=ensure_utc(row.created_at),
        updated_at=ensure_utc(row.updated_at),
    )


def _load(session, payment_id: str) -> Optional[Payment]:
    row = session.execute(select(payments).where(payments.c.id == payment_id)).first()
    return _from_row(row) if row else None


def get_payment(payment_id: str) -> Payment:
    with get_db_session() as session:
        payment = _load(session, payment_id)
    if payment is None:
        raise PaymentNotFoundError("Payment not found")
    return payment


def get_user_payment(user: User, payment_id: str) -> Payment:
    payment = get_payment(payment_id)
    if payment.user_id != user.user_id:
        # Do not reveal other users' payment ids
        raise PaymentNotFoundError("Payment not found")
    return payment


def find_by_correlation_key(correlation_key: str) -> Optional[Payment]:
    with get_db_session() as session:
        row = session.execute(
            select(payments).where(payments.c.gateway_order_code == str(correlation_key))
        ).first()
    return _from_row(row) if row else None


def find_pending_premium(user_id: str) -> Optional[Payment]:
    """Most recent pending premium checkout for the user, if any."""
    with get_db_session() as session:
        row = session.execute(
            select(payments)
            .where(
                payments.c.user_id == user_id,
                payments.c.payment_type == PREMIUM_SUBSCRIPTION,
                payments.c.status == "pending",
            )
            .order_by(payments.c.created_at.desc())
            .limit(1)
        ).first()
    return _from_row(row) if row else None


def _transition(session, payment_id: str, status: str, now: datetime, **stamps) -> bool:
    """Move a pending payment to ``status``. False if it was no longer pending."""
    result = session.execute(
        update(payments)
        .where(payments.c.id == payment_id, payments.c.status == "pending")
        .values(status=status, updated_at=now, **stamps)
    )
    return bool(result.rowcount)


def _notify(user_id: str, notification_type: str, template_data: Dict[str, Any], now: datetime) -> None:
    try:
        notification_service.emit(user_id, notification_type, template_data, now=now)
    except Exception:
        logger.exception(
            "[payments] notification failed after committed transition",
            extra={"user_id": user_id, "type": notification_type},
        )


def _apply_success(payment: Payment, now: datetime) -> ReconcileOutcome:
    upgraded = None
    with get_db_session() as session:
        if not _transition(session, payment.id, "success", now, paid_at=now):
            current = _load(session, payment.id)
            return ReconcileOutcome("duplicate", payment.id, current.status if current else None, payment.user_id)
        if payment.payment_type == PREMIUM_SUBSCRIPTION:
            upgraded = apply_upgrade(payment.user_id, settings.PREMIUM_DURATION_DAYS, now, session=session)

    logger.info(
        "[payments] success",
        extra={"payment_id": payment.id, "user_id": payment.user_id, "amount": payment.amount},
    )
    if upgraded is not None:
        _notify(
            payment.user_id,
            "premium_upgrade",
            {"expires_at": upgraded.premium_expires_at, "payment_amount": payment.amount},
            now,
        )
    else:
        _notify(payment.user_id, "payment_success", {"amount": payment.amount, "payment_id": payment.id}, now)
    return ReconcileOutcome("succeeded", payment.id, "success", payment.user_id)


def _apply_failure(payment: Payment, now: datetime, *, status: str = "failed", notify: bool = False) -> ReconcileOutcome:
    stamps = {"cancelled_at": now} if status == "failed" else {}
    with get_db_session() as session:
        if not _transition(session, payment.id, status, now, **stamps):
            current = _load(session, payment.id)
            return ReconcileOutcome("duplicate", payment.id, current.status if current else None, payment.user_id)

    logger.info(
        "[payments] marked terminal",
        extra={"payment_id": payment.id, "user_id": payment.user_id, "status": status},
    )
    if notify:
        _notify(payment.user_id, "payment_failed", {"payment_id": payment.id}, now)
    return ReconcileOutcome("failed" if status == "failed" else status, payment.id, status, payment.user_id)


def reconcile(event: GatewayEvent, now: Optional[datetime] = None) -> ReconcileOutcome:
    """
    Apply a verified gateway callback.

    1. Unknown correlation key: benign no-op (gateways retry and may send foreign events)
    2. Payment already terminal: return its state unchanged
    3. Amount differs from the payment: leave untouched for manual review
    4. Success: mark success, upgrade premium, notify
    5. Failure/cancel: mark failed, notify; plan state is never touched
    """
    now = resolve_now(now)
    payment = find_by_correlation_key(event.correlation_key)
    if payment is None:
        logger.info("[payments] unknown correlation key ignored", extra={"correlation_key": event.correlation_key})
        return ReconcileOutcome("ignored")

    if payment.is_terminal:
        logger.info(
            "[payments] duplicate event",
            extra={"payment_id": payment.id, "status": payment.status},
        )
        return ReconcileOutcome("duplicate", payment.id, payment.status, payment.user_id)

    if event.amount is not None and event.amount != payment.amount:
        logger.warning(
            "[payments] amount mismatch",
            extra={"payment_id": payment.id, "expected": payment.amount, "received": event.amount},
        )
        return ReconcileOutcome("amount_mismatch", payment.id, payment.status, payment.user_id)

    if event.succeeded:
        return _apply_success(payment, now)
    return _apply_failure(payment, now, status="failed", notify=True)


def expire_if_timed_out(payment: Payment, now: Optional[datetime] = None) -> Payment:
    """Mark a still-pending payment expired once its checkout window has passed."""
    now = resolve_now(now)
    if payment.status != "pending" or not payment.is_payment_expired(now):
        return payment
    _apply_failure(payment, now, status="expired")
    return get_payment(payment.id)


def _resolve_pending(payment: Payment, now: datetime) -> Payment:
    """Bring a pending payment in line with the gateway's view.

    Gateway errors propagate; they never mark the payment terminal.
    """
    gateway = get_gateway(payment.gateway)
    status = gateway.get_status(payment.gateway_order_code, created_at=payment.created_at)
    if status == "paid":
        _apply_success(payment, now)
    elif status == "expired":
        _apply_failure(payment, now, status="expired")
    elif status in ("cancelled", "failed"):
        _apply_failure(payment, now, status="failed")
    else:
        return expire_if_timed_out(payment, now)
    return get_payment(payment.id)


def start_premium_checkout(user: User, gateway_name: str, now: Optional[datetime] = None) -> CheckoutResult:
    """
    Return a live premium checkout for the user.

    An existing pending checkout is resolved first: still live at the gateway
    means its link is returned unchanged; paid means it is reconciled and
    returned; anything else is closed and a fresh checkout is created.

    Raises:
        PaymentsDisabledError: gateway not configured
        GatewayCommunicationError: gateway unreachable (retryable)
    """
    now = resolve_now(now)
    gateway = get_gateway(gateway_name)

    existing = find_pending_premium(user.user_id)
    if existing is not None:
        resolved = _resolve_pending(existing, now)
        if resolved.status in ("pending", "success"):
            logger.info(
                "[payments] reusing checkout",
                extra={"payment_id": resolved.id, "user_id": user.user_id, "status": resolved.status},
            )
            return CheckoutResult(payment=resolved, reused=True)

    amount = settings.PREMIUM_PRICE_VND
    timeout = now + timedelta(minutes=settings.PAYMENT_TIMEOUT_MINUTES)
    order_code = gateway.new_order_code(now)
    link = gateway.create_checkout(order_code, amount, PREMIUM_DESCRIPTION, now=now, expires_at=timeout)

    payment = Payment(
        id=uuid4().hex,
        gateway=gateway.name,
        gateway_order_code=link.correlation_key,
        user_id=user.user_id,
        amount=amount,
        payment_type=PREMIUM_SUBSCRIPTION,
        description=PREMIUM_DESCRIPTION,
        status="pending",
        payment_url=link.checkout_url,
        payment_timeout=timeout,
        created_at=now,
        updated_at=now,
    )
    with get_db_session() as session:
        session.execute(insert(payments).values(**payment.model_dump()))

    logger.info(
        "[payments] checkout created",
        extra={"payment_id": payment.id, "user_id": user.user_id, "gateway": gateway.name},
    )
    return CheckoutResult(payment=payment, reused=False)


def sync_payment_status(user: User, payment_id: str, now: Optional[datetime] = None) -> Payment:
    """Status poll from the client: reconcile a pending payment against the gateway."""
    now = resolve_now(now)
    payment = get_user_payment(user, payment_id)
    if payment.status != "pending":
        return payment
    return _resolve_pending(payment, now)


def cancel_payment(user: User, payment_id: str, now: Optional[datetime] = None) -> Payment:
    """User abandoned the checkout. Closes it so a new one can be started."""
    now = resolve_now(now)
    payment = get_user_payment(user, payment_id)
    if payment.is_terminal:
        raise PaymentAlreadyTerminalError(f"Payment is already {payment.status}")
    outcome = _apply_failure(payment, now, status="failed")
    if outcome.action == "duplicate":
        raise PaymentAlreadyTerminalError(f"Payment is already {outcome.status}")
    return get_payment(payment_id)


def list_payments(
    *,
    status: Optional[str] = None,
    user_id: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
) -> Tuple[List[Payment], int]:
    conditions = []
    if status:
        conditions.append(payments.c.status == status)
    if user_id:
        conditions.append(payments.c.user_id == user_id)

    page = max(page, 1)
    with get_db_session() as session:
        total = session.execute(
            select(func.count()).select_from(payments).where(*conditions)
        ).scalar() or 0
        rows = session.execute(
            select(payments)
            .where(*conditions)
            .order_by(payments.c.created_at.desc(), payments.c.id)
            .offset((page - 1) * limit)
            .limit(limit)
        ).fetchall()
    return [_from_row(r) for r in rows], total


def revenue_stats(now: Optional[datetime] = None) -> Dict[str, Any]:
    """Totals over successful premium payments (VND)."""
    now = resolve_now(now)
    month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    paid = (payments.c.status == "success", payments.c.payment_type == PREMIUM_SUBSCRIPTION)
    with get_db_session() as session:
        count, total = session.execute(
            select(func.count(), func.coalesce(func.sum(payments.c.amount), 0)).where(*paid)
        ).one()
        monthly = session.execute(
            select(func.coalesce(func.sum(payments.c.amount), 0)).where(*paid, payments.c.paid_at >= month_start)
        ).scalar() or 0

    return {
        "successful_payments": count,
        "total_revenue": int(total),
        "monthly_revenue": int(monthly),
        "average_revenue_per_payment": round(total / count, 2) if count else 0.0,
    }
