"""
User domain service.
- get_or_create_user(user_id)
- get_user(user_id) / require_user(user_id)
- list_users(...) for the admin view
"""

from datetime import datetime
from typing import List, Optional, Tuple
from sqlalchemy import select, insert, func, or_
from sqlalchemy.exc import IntegrityError

from moodjournal.core.clock import ensure_utc, resolve_now
from moodjournal.core.database import get_db_session, users as app_users
from moodjournal.core.errors import NotFoundError
from moodjournal.models.user import User


def normalize_display_name(user_id: str, display_name: Optional[str]) -> str:
    return User.normalized_display_name(user_id, display_name)


def user_from_row(row) -> User:
    return User(
        user_id=row.user_id,
        email=row.email,
        display_name=row.display_name or normalize_display_name(row.user_id, None),
        role=row.role,
        status=row.status,
        plan=row.plan,
        premium_started_at=ensure_utc(row.premium_started_at),
        premium_expires_at=ensure_utc(row.premium_expires_at),
        created_at=ensure_utc(row.created_at),
    )


def get_user(user_id: str, session=None) -> Optional[User]:
    stmt = select(app_users).where(app_users.c.user_id == user_id)
    if session is not None:
        row = session.execute(stmt).first()
    else:
        with get_db_session() as s:
            row = s.execute(stmt).first()
    return user_from_row(row) if row else None


def require_user(user_id: str, session=None) -> User:
    user = get_user(user_id, session=session)
    if user is None:
        raise NotFoundError(f"User not found: {user_id}")
    return user


def get_or_create_user(
    user_id: str,
    *,
    email: Optional[str] = None,
    display_name: Optional[str] = None,
    role: str = "user",
    now: Optional[datetime] = None,
) -> User:
    """Return the user, creating a free-plan account on first contact."""
    existing = get_user(user_id)
    if existing:
        return existing

    created_at = resolve_now(now)
    display = normalize_display_name(user_id, display_name)
    try:
        with get_db_session() as session:
            session.execute(
                insert(app_users).values(
                    user_id=user_id,
                    email=email,
                    display_name=display,
                    role=role,
                    status="active",
                    plan="free",
                    created_at=created_at,
                )
            )
    except Exception as e:
        # Concurrent first request for the same user created the row first
        if not isinstance(e.__cause__, IntegrityError):
            raise
        return require_user(user_id)

    return User(
        user_id=user_id,
        email=email,
        display_name=display,
        role=role,
        status="active",
        plan="free",
        created_at=created_at,
    )


def list_users(
    *,
    plan: Optional[str] = None,
    search: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
) -> Tuple[List[User], int]:
    """Page through users, newest first. Returns (users, total)."""
    conditions = []
    if plan in ("free", "premium"):
        conditions.append(app_users.c.plan == plan)
    if search:
        pattern = f"%{search.lower()}%"
        conditions.append(
            or_(
                func.lower(app_users.c.email).like(pattern),
                func.lower(app_users.c.display_name).like(pattern),
                func.lower(app_users.c.user_id).like(pattern),
            )
        )

    page = max(page, 1)
    with get_db_session() as session:
        total = session.execute(
            select(func.count()).select_from(app_users).where(*conditions)
        ).scalar() or 0
        rows = session.execute(
            select(app_users)
            .where(*conditions)
            .order_by(app_users.c.created_at.desc(), app_users.c.user_id)
            .offset((page - 1) * limit)
            .limit(limit)
        ).fetchall()
    return [user_from_row(r) for r in rows], total
