"""Fixed notification copy per type.

Each builder returns (title, message, data). ``data`` is stored alongside the
record; the sweeper dedupes premium_expiring on ``data["days_left"]``.
"""
from datetime import datetime
from typing import Any, Callable, Dict, Tuple

from moodjournal.core.errors import ValidationError

Rendered = Tuple[str, str, Dict[str, Any]]

URGENT_DAYS = 3


def _date_label(value) -> str:
    if isinstance(value, datetime):
        return value.strftime("%Y-%m-%d")
    return str(value)


def premium_upgrade(expires_at, payment_amount=None, **_) -> Rendered:
    return (
        "Premium Upgrade Successful!",
        "Your premium subscription has been activated successfully. "
        f"Enjoy premium features until {_date_label(expires_at)}.",
        {
            "payment_amount": payment_amount,
            "expires_at": expires_at.isoformat() if isinstance(expires_at, datetime) else expires_at,
        },
    )


def premium_expiring(days_left: int, **_) -> Rendered:
    plural = "s" if days_left > 1 else ""
    return (
        "Premium Expiring Soon",
        f"Your premium subscription will expire in {days_left} day{plural}. "
        "Renew now to continue enjoying premium features.",
        {"days_left": days_left, "urgent": days_left <= URGENT_DAYS},
    )


def premium_expired(**_) -> Rendered:
    return (
        "Premium Subscription Expired",
        "Your premium subscription has expired. Upgrade again to access premium features.",
        {},
    )


def payment_success(amount=None, payment_id=None, **_) -> Rendered:
    return (
        "Payment Successful",
        "We received your payment. Thank you!",
        {"payment_amount": amount, "payment_id": payment_id},
    )


def payment_failed(payment_id=None, **_) -> Rendered:
    return (
        "Payment Failed",
        "Your payment could not be completed. No charge was applied; you can try again any time.",
        {"payment_id": payment_id},
    )


TEMPLATES: Dict[str, Callable[..., Rendered]] = {
    "premium_upgrade": premium_upgrade,
    "premium_expiring": premium_expiring,
    "premium_expired": premium_expired,
    "payment_success": payment_success,
    "payment_failed": payment_failed,
}


def render(notification_type: str, template_data: Dict[str, Any]) -> Rendered:
    builder = TEMPLATES.get(notification_type)
    if builder is None:
        raise ValidationError(f"Unknown notification type: {notification_type}")
    try:
        return builder(**template_data)
    except TypeError as e:
        raise ValidationError(f"Missing template data for {notification_type}: {e}") from e
