"""
Usage API.

- GET /v1/usage: today's usage, limits and remaining allowance (display only)
"""
from datetime import datetime
from typing import Dict, Union

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from moodjournal.core.auth import get_current_user
from moodjournal.features.quota.policy import get_quota_status
from moodjournal.models.user import User

router = APIRouter(prefix="/v1/usage", tags=["usage"])

Allowance = Union[int, str]  # "unlimited" for premium


class UsageResponse(BaseModel):
    plan: str
    is_premium_active: bool
    daily_limits: Dict[str, Allowance]
    usage: Dict[str, int]
    remaining: Dict[str, Allowance]
    date: str
    resets_at: datetime


@router.get("", response_model=UsageResponse)
def get_usage(user: User = Depends(get_current_user)):
    return get_quota_status(user)
