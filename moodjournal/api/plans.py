"""
Plan API.

- GET /v1/plans/me: stored plan label plus live entitlement
- GET /v1/plans/subscription: premium period details
"""
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from moodjournal.core.auth import get_current_user
from moodjournal.core.clock import resolve_now
from moodjournal.features.premium.lifecycle import is_premium_active
from moodjournal.features.premium.service import subscription_info
from moodjournal.models.user import User

router = APIRouter(prefix="/v1/plans", tags=["plans"])


class PlanResponse(BaseModel):
    user_id: str
    plan: str
    is_premium_active: bool


class SubscriptionResponse(BaseModel):
    plan: str
    is_premium_active: bool
    premium_started_at: Optional[datetime] = None
    premium_expires_at: Optional[datetime] = None
    days_left: int
    is_expiring_soon: bool
    price_vnd: int
    duration_days: int


@router.get("/me", response_model=PlanResponse)
def my_plan(user: User = Depends(get_current_user)):
    return {
        "user_id": user.user_id,
        "plan": user.plan,
        "is_premium_active": is_premium_active(user, resolve_now()),
    }


@router.get("/subscription", response_model=SubscriptionResponse)
def my_subscription(user: User = Depends(get_current_user)):
    return subscription_info(user)
