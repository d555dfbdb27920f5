"""
Notification API.

- GET    /v1/notifications: list own notifications (newest first)
- GET    /v1/notifications/unread-count
- PUT    /v1/notifications/{notification_id}/read
- PUT    /v1/notifications/mark-all-read
- DELETE /v1/notifications/{notification_id}
- POST   /v1/notifications/trigger-check: run an expiry sweep now (non-production only)
"""
import logging
import math
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel

from moodjournal.core.auth import get_current_user
from moodjournal.core.config import settings
from moodjournal.features.notifications import service as notification_service
from moodjournal.models.notification import Notification
from moodjournal.models.user import User
from moodjournal.workers.expiry_sweeper import ExpirySweeper

logger = logging.getLogger("moodjournal.notifications")

router = APIRouter(prefix="/v1/notifications", tags=["notifications"])


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class NotificationListResponse(BaseModel):
    notifications: List[Notification]
    pagination: Pagination
    unread_count: int


@router.get("", response_model=NotificationListResponse)
def list_own(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    unread_only: bool = Query(False),
    user: User = Depends(get_current_user),
):
    items, total = notification_service.list_notifications(
        user.user_id, unread_only=unread_only, page=page, limit=limit
    )
    return {
        "notifications": items,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": math.ceil(total / limit) if total else 0,
        },
        "unread_count": notification_service.unread_count(user.user_id),
    }


@router.get("/unread-count")
def unread_count(user: User = Depends(get_current_user)):
    return {"unread_count": notification_service.unread_count(user.user_id)}


@router.put("/mark-all-read")
def mark_all_read(user: User = Depends(get_current_user)):
    updated = notification_service.mark_all_read(user.user_id)
    return {"success": True, "updated": updated}


@router.put("/{notification_id}/read", response_model=Notification)
def mark_read(notification_id: str, user: User = Depends(get_current_user)):
    return notification_service.mark_read(user.user_id, notification_id)


@router.delete("/{notification_id}")
def delete(notification_id: str, user: User = Depends(get_current_user)):
    notification_service.delete_notification(user.user_id, notification_id)
    return {"success": True}


@router.post("/trigger-check")
def trigger_check(request: Request, user: User = Depends(get_current_user)) -> Dict[str, Any]:
    """Manual sweep for local testing. Hidden in production."""
    if settings.is_production():
        raise HTTPException(status_code=404, detail="Not Found")

    sweeper = getattr(request.app.state, "sweeper", None) or ExpirySweeper(run_on_start=False)
    stats = sweeper.trigger_now()
    logger.info("[sweeper] manual trigger", extra={"user_id": user.user_id, **stats.as_dict()})
    return {"success": True, "stats": stats.as_dict()}
