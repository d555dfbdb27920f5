"""
Premium plan persistence and admin override.

Applies lifecycle transitions to app_users and answers the read-side
questions (subscription info, dashboard stats). Notifications for a
transition are emitted only after the transition has been written.
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update, func, and_

from moodjournal.core.admin_auth import AdminActor
from moodjournal.core.clock import resolve_now
from moodjournal.core.config import settings
from moodjournal.core.database import get_db_session, users as app_users
from moodjournal.core.errors import ValidationError
from moodjournal.features.notifications import service as notification_service
from moodjournal.features.premium.lifecycle import (
    EXPIRING_SOON_DAYS,
    days_left,
    downgrade,
    is_expiring_soon,
    is_premium_active,
    upgrade,
)
from moodjournal.features.users.service import require_user, user_from_row
from moodjournal.models.user import User

logger = logging.getLogger("moodjournal.premium")


def persist_plan(user: User, session) -> None:
    """Write the plan columns of ``user`` using the caller's session."""
    session.execute(
        update(app_users)
        .where(app_users.c.user_id == user.user_id)
        .values(
            plan=user.plan,
            premium_started_at=user.premium_started_at,
            premium_expires_at=user.premium_expires_at,
        )
    )


def apply_upgrade(user_id: str, duration_days: int, now: Optional[datetime] = None, *, session=None) -> User:
    now = resolve_now(now)
    if session is not None:
        upgraded = upgrade(require_user(user_id, session=session), duration_days, now)
        persist_plan(upgraded, session)
    else:
        with get_db_session() as s:
            upgraded = upgrade(require_user(user_id, session=s), duration_days, now)
            persist_plan(upgraded, s)
    logger.info(
        "[premium] upgraded",
        extra={"user_id": user_id, "expires_at": upgraded.premium_expires_at.isoformat()},
    )
    return upgraded


def apply_downgrade(user_id: str, *, session=None) -> User:
    if session is not None:
        downgraded = downgrade(require_user(user_id, session=session))
        persist_plan(downgraded, session)
    else:
        with get_db_session() as s:
            downgraded = downgrade(require_user(user_id, session=s))
            persist_plan(downgraded, s)
    logger.info("[premium] downgraded", extra={"user_id": user_id})
    return downgraded


def expire_premium(user_id: str, now: Optional[datetime] = None) -> Optional[User]:
    """Downgrade ``user_id`` only if the stored premium period has ended by ``now``.

    Conditional on the stored row, so a renewal written after the caller read
    the user is left intact. Returns None when nothing was downgraded.
    """
    now = resolve_now(now)
    with get_db_session() as session:
        result = session.execute(
            update(app_users)
            .where(
                app_users.c.user_id == user_id,
                app_users.c.plan == "premium",
                app_users.c.premium_expires_at <= now,
            )
            .values(plan="free", premium_started_at=None, premium_expires_at=None)
        )
        if result.rowcount == 0:
            logger.info("[premium] expiry skipped, plan changed", extra={"user_id": user_id})
            return None
        downgraded = require_user(user_id, session=session)
    logger.info("[premium] expired", extra={"user_id": user_id})
    return downgraded


def subscription_info(user: User, now: Optional[datetime] = None) -> Dict[str, Any]:
    now = resolve_now(now)
    active = is_premium_active(user, now)
    return {
        "plan": user.plan,
        "is_premium_active": active,
        "premium_started_at": user.premium_started_at,
        "premium_expires_at": user.premium_expires_at,
        "days_left": days_left(user, now),
        "is_expiring_soon": is_expiring_soon(user, now),
        "price_vnd": settings.PREMIUM_PRICE_VND,
        "duration_days": settings.PREMIUM_DURATION_DAYS,
    }


def find_premium_expiring_between(start: datetime, end: datetime) -> List[User]:
    """Users with stored plan premium whose expiry lies in [start, end]."""
    with get_db_session() as session:
        rows = session.execute(
            select(app_users)
            .where(
                app_users.c.plan == "premium",
                app_users.c.premium_expires_at.is_not(None),
                app_users.c.premium_expires_at >= start,
                app_users.c.premium_expires_at <= end,
            )
            .order_by(app_users.c.premium_expires_at)
        ).fetchall()
    return [user_from_row(r) for r in rows]


def recent_subscribers(now: Optional[datetime] = None, *, days: int = 30, limit: int = 10) -> List[User]:
    now = resolve_now(now)
    with get_db_session() as session:
        rows = session.execute(
            select(app_users)
            .where(
                app_users.c.plan == "premium",
                app_users.c.premium_started_at >= now - timedelta(days=days),
            )
            .order_by(app_users.c.premium_started_at.desc())
            .limit(limit)
        ).fetchall()
    return [user_from_row(r) for r in rows]


def premium_stats(now: Optional[datetime] = None) -> Dict[str, Any]:
    now = resolve_now(now)
    active_clause = and_(app_users.c.plan == "premium", app_users.c.premium_expires_at > now)
    with get_db_session() as session:
        total = session.execute(select(func.count()).select_from(app_users)).scalar() or 0
        premium = session.execute(
            select(func.count()).select_from(app_users).where(app_users.c.plan == "premium")
        ).scalar() or 0
        active = session.execute(
            select(func.count()).select_from(app_users).where(active_clause)
        ).scalar() or 0
        expiring = session.execute(
            select(func.count()).select_from(app_users).where(
                active_clause,
                app_users.c.premium_expires_at <= now + timedelta(days=EXPIRING_SOON_DAYS),
            )
        ).scalar() or 0

    return {
        "total_users": total,
        "premium_users": premium,
        "active_premium_users": active,
        "expiring_premium_users": expiring,
        "free_users": total - premium,
        "premium_conversion_rate": round(active / total * 100, 2) if total else 0.0,
    }


def admin_grant_premium(
    user_id: str,
    actor: AdminActor,
    *,
    duration_days: Optional[int] = None,
    now: Optional[datetime] = None,
) -> User:
    """Support override: start a fresh premium period and notify the user."""
    now = resolve_now(now)
    duration = duration_days if duration_days is not None else settings.PREMIUM_DURATION_DAYS
    if duration <= 0:
        raise ValidationError("duration_days must be positive")

    upgraded = apply_upgrade(user_id, duration, now)
    logger.info(
        "[premium] admin grant",
        extra={"user_id": user_id, "actor_id": actor.actor_id, "duration_days": duration},
    )
    try:
        notification_service.emit(
            user_id,
            "premium_upgrade",
            {"expires_at": upgraded.premium_expires_at, "payment_amount": 0},
            now=now,
        )
    except Exception:
        logger.exception("[premium] upgrade notification failed", extra={"user_id": user_id})
    return upgraded


def admin_revoke_premium(user_id: str, actor: AdminActor) -> User:
    downgraded = apply_downgrade(user_id)
    logger.info("[premium] admin revoke", extra={"user_id": user_id, "actor_id": actor.actor_id})
    return downgraded
