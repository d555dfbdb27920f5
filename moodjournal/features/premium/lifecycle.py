"""
Premium lifecycle rules.

Pure functions over a User snapshot: no I/O, no clock reads. Callers pass
``now`` explicitly. Premium is in force iff plan == "premium" and now is
strictly before premium_expires_at; the stored plan label may lag behind
expiry until the sweeper downgrades it.
"""
import math
from datetime import datetime, timedelta

from moodjournal.core.clock import ensure_utc
from moodjournal.models.user import User

EXPIRING_SOON_DAYS = 7
SECONDS_PER_DAY = 86400


def is_premium_active(user: User, now: datetime) -> bool:
    if user.plan != "premium" or user.premium_expires_at is None:
        return False
    return ensure_utc(now) < ensure_utc(user.premium_expires_at)


def days_left(user: User, now: datetime) -> int:
    """Whole days remaining, rounded up. 0 when premium is not active."""
    if not is_premium_active(user, now):
        return 0
    remaining = ensure_utc(user.premium_expires_at) - ensure_utc(now)
    return max(0, math.ceil(remaining.total_seconds() / SECONDS_PER_DAY))


def is_expiring_soon(user: User, now: datetime) -> bool:
    return is_premium_active(user, now) and days_left(user, now) <= EXPIRING_SOON_DAYS


def upgrade(user: User, duration_days: int, now: datetime) -> User:
    """Start a fresh premium period of ``duration_days`` from ``now``.

    The period resets; remaining time from an earlier period is not carried over.
    """
    now = ensure_utc(now)
    return user.model_copy(
        update={
            "plan": "premium",
            "premium_started_at": now,
            "premium_expires_at": now + timedelta(days=duration_days),
        }
    )


def downgrade(user: User) -> User:
    return user.model_copy(
        update={
            "plan": "free",
            "premium_started_at": None,
            "premium_expires_at": None,
        }
    )
