"""
Admin API routes for premium support operations.

All routes require an admin actor (bearer JWT with role admin, or X-Admin-Key).
"""
import logging
import math
from datetime import timedelta
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, Field

from moodjournal.core.admin_auth import AdminActor, require_admin
from moodjournal.core.clock import resolve_now
from moodjournal.features.payments.service import list_payments, revenue_stats
from moodjournal.features.premium.lifecycle import (
    EXPIRING_SOON_DAYS,
    days_left,
    is_expiring_soon,
    is_premium_active,
)
from moodjournal.features.premium.service import (
    admin_grant_premium,
    admin_revoke_premium,
    find_premium_expiring_between,
    premium_stats,
    recent_subscribers,
)
from moodjournal.features.users.service import list_users
from moodjournal.models.user import User
from moodjournal.workers.expiry_sweeper import ExpirySweeper

logger = logging.getLogger("moodjournal.admin")

router = APIRouter(prefix="/v1/admin", tags=["admin"])


class GrantPremiumRequest(BaseModel):
    duration_days: Optional[int] = Field(default=None, gt=0)


def _user_view(user: User, now) -> Dict[str, Any]:
    view = user.model_dump()
    view.update(
        is_premium_active=is_premium_active(user, now),
        days_left=days_left(user, now),
        is_expiring_soon=is_expiring_soon(user, now),
    )
    return view


def _pagination(page: int, limit: int, total: int) -> Dict[str, int]:
    return {"page": page, "limit": limit, "total": total, "pages": math.ceil(total / limit) if total else 0}


@router.get("/dashboard")
def dashboard(actor: AdminActor = Depends(require_admin)) -> dict:
    now = resolve_now()
    expiring = find_premium_expiring_between(now, now + timedelta(days=EXPIRING_SOON_DAYS))
    return {
        "premium": premium_stats(now),
        "revenue": revenue_stats(now),
        "recent_subscribers": [_user_view(u, now) for u in recent_subscribers(now)],
        "expiring_soon": [_user_view(u, now) for u in expiring],
    }


@router.get("/users")
def users(
    plan: Optional[str] = Query(None, pattern="^(free|premium)$"),
    search: Optional[str] = Query(None, max_length=100),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    actor: AdminActor = Depends(require_admin),
) -> dict:
    now = resolve_now()
    items, total = list_users(plan=plan, search=search, page=page, limit=limit)
    return {
        "users": [_user_view(u, now) for u in items],
        "pagination": _pagination(page, limit, total),
    }


@router.get("/payments")
def payments(
    status: Optional[str] = Query(None, pattern="^(pending|success|failed|expired)$"),
    user_id: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    actor: AdminActor = Depends(require_admin),
) -> dict:
    items, total = list_payments(status=status, user_id=user_id, page=page, limit=limit)
    return {
        "payments": [p.model_dump() for p in items],
        "pagination": _pagination(page, limit, total),
    }


@router.post("/users/{user_id}/premium")
def grant_premium(
    user_id: str,
    body: Optional[GrantPremiumRequest] = None,
    actor: AdminActor = Depends(require_admin),
) -> dict:
    duration = body.duration_days if body is not None else None
    user = admin_grant_premium(user_id, actor, duration_days=duration)
    return {"success": True, "user": _user_view(user, resolve_now())}


@router.post("/users/{user_id}/downgrade")
def downgrade(user_id: str, actor: AdminActor = Depends(require_admin)) -> dict:
    user = admin_revoke_premium(user_id, actor)
    return {"success": True, "user": _user_view(user, resolve_now())}


@router.post("/sweeper/run")
def run_sweeper(request: Request, actor: AdminActor = Depends(require_admin)) -> dict:
    sweeper = getattr(request.app.state, "sweeper", None) or ExpirySweeper(run_on_start=False)
    stats = sweeper.trigger_now()
    logger.info("[sweeper] admin trigger", extra={"actor_id": actor.actor_id, **stats.as_dict()})
    return {"success": True, "stats": stats.as_dict()}
