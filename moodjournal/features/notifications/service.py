"""
Notification emitter and read surface.

emit() renders a fixed template and appends one record. emit_deduped() is
used by the expiry sweeper: it skips when the same user already received the
same type (and, for premium_expiring, the same days_left) within the trailing
24 hours, so frequent sweeps do not flood the inbox.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple
from uuid import uuid4

from sqlalchemy import select, insert, update, delete, func

from moodjournal.core.clock import ensure_utc, resolve_now
from moodjournal.core.database import get_db_session, notifications
from moodjournal.core.errors import NotFoundError
from moodjournal.features.notifications.templates import render
from moodjournal.models.notification import Notification

logger = logging.getLogger("moodjournal.notifications")

DEDUPE_WINDOW = timedelta(hours=24)

# data key that must also match for a record to count as a duplicate
_DEDUPE_KEYS = {"premium_expiring": "days_left"}


def _from_row(row) -> Notification:
    return Notification(
        id=row.id,
        user_id=row.user_id,
        type=row.type,
        title=row.title,
        message=row.message,
        is_read=bool(row.is_read),
        data=row.data or {},
        created_at=ensure_utc(row.created_at),
        read_at=ensure_utc(row.read_at),
    )


def emit(
    user_id: str,
    notification_type: str,
    template_data: Optional[Dict[str, Any]] = None,
    *,
    now: Optional[datetime] = None,
    session=None,
) -> Notification:
    """Render ``notification_type`` and write one record for ``user_id``."""
    now = resolve_now(now)
    title, message, data = render(notification_type, template_data or {})
    record = Notification(
        id=str(uuid4()),
        user_id=user_id,
        type=notification_type,
        title=title,
        message=message,
        is_read=False,
        data=data,
        created_at=now,
    )
    stmt = insert(notifications).values(
        id=record.id,
        user_id=record.user_id,
        type=record.type,
        title=record.title,
        message=record.message,
        is_read=False,
        data=record.data,
        created_at=record.created_at,
    )
    if session is not None:
        session.execute(stmt)
    else:
        with get_db_session() as s:
            s.execute(stmt)

    logger.info(
        "[notifications] emitted",
        extra={"user_id": user_id, "type": notification_type, "notification_id": record.id},
    )
    return record


def recently_emitted(
    user_id: str,
    notification_type: str,
    *,
    now: Optional[datetime] = None,
    match: Optional[Dict[str, Any]] = None,
) -> bool:
    """True if a matching record exists within the trailing dedupe window."""
    now = resolve_now(now)
    with get_db_session() as session:
        rows = session.execute(
            select(notifications.c.data).where(
                notifications.c.user_id == user_id,
                notifications.c.type == notification_type,
                notifications.c.created_at >= now - DEDUPE_WINDOW,
            )
        ).fetchall()
    if not match:
        return bool(rows)
    for row in rows:
        data = row.data or {}
        if all(data.get(k) == v for k, v in match.items()):
            return True
    return False


def emit_deduped(
    user_id: str,
    notification_type: str,
    template_data: Optional[Dict[str, Any]] = None,
    *,
    now: Optional[datetime] = None,
) -> Optional[Notification]:
    """emit() unless an equivalent record went out in the last 24 hours."""
    now = resolve_now(now)
    template_data = template_data or {}
    key = _DEDUPE_KEYS.get(notification_type)
    match = {key: template_data.get(key)} if key else None
    if recently_emitted(user_id, notification_type, now=now, match=match):
        logger.info(
            "[notifications] duplicate skipped",
            extra={"user_id": user_id, "type": notification_type},
        )
        return None
    return emit(user_id, notification_type, template_data, now=now)


def list_notifications(
    user_id: str,
    *,
    unread_only: bool = False,
    page: int = 1,
    limit: int = 20,
) -> Tuple[List[Notification], int]:
    """Newest first. Returns (page_items, total_matching)."""
    conditions = [notifications.c.user_id == user_id]
    if unread_only:
        conditions.append(notifications.c.is_read == False)  # noqa: E712

    page = max(page, 1)
    with get_db_session() as session:
        total = session.execute(
            select(func.count()).select_from(notifications).where(*conditions)
        ).scalar() or 0
        rows = session.execute(
            select(notifications)
            .where(*conditions)
            .order_by(notifications.c.created_at.desc(), notifications.c.id)
            .offset((page - 1) * limit)
            .limit(limit)
        ).fetchall()
    return [_from_row(r) for r in rows], total


def unread_count(user_id: str) -> int:
    with get_db_session() as session:
        return session.execute(
            select(func.count()).select_from(notifications).where(
                notifications.c.user_id == user_id,
                notifications.c.is_read == False,  # noqa: E712
            )
        ).scalar() or 0


def mark_read(user_id: str, notification_id: str, *, now: Optional[datetime] = None) -> Notification:
    now = resolve_now(now)
    with get_db_session() as session:
        row = session.execute(
            select(notifications).where(
                notifications.c.id == notification_id,
                notifications.c.user_id == user_id,
            )
        ).first()
        if row is None:
            raise NotFoundError("Notification not found")
        if not row.is_read:
            session.execute(
                update(notifications)
                .where(notifications.c.id == notification_id)
                .values(is_read=True, read_at=now)
            )
            row = session.execute(
                select(notifications).where(notifications.c.id == notification_id)
            ).first()
    return _from_row(row)


def mark_all_read(user_id: str, *, now: Optional[datetime] = None) -> int:
    """Mark every unread notification read. Returns how many changed."""
    now = resolve_now(now)
    with get_db_session() as session:
        result = session.execute(
            update(notifications)
            .where(
                notifications.c.user_id == user_id,
                notifications.c.is_read == False,  # noqa: E712
            )
            .values(is_read=True, read_at=now)
        )
        return result.rowcount or 0


def delete_notification(user_id: str, notification_id: str) -> None:
    with get_db_session() as session:
        result = session.execute(
            delete(notifications).where(
                notifications.c.id == notification_id,
                notifications.c.user_id == user_id,
            )
        )
        if not result.rowcount:
            raise NotFoundError("Notification not found")
