"""
Journal entries and basic writing suggestions.

Both are free-tier metered actions: each runs inside quota_guard, so the
daily counter moves only when the action itself succeeded.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple
from uuid import uuid4

from sqlalchemy import select, insert, func

from moodjournal.core.clock import ensure_utc, resolve_now, today_bucket
from moodjournal.core.database import get_db_session, journals
from moodjournal.core.errors import ValidationError
from moodjournal.features.journals.prompts import BASIC_SUGGESTION_COUNT, PromptGenerator, default_generator
from moodjournal.features.quota.policy import quota_guard
from moodjournal.models.journal import Journal
from moodjournal.models.usage import QuotaAction
from moodjournal.models.user import User

logger = logging.getLogger("moodjournal.journals")


def _from_row(row) -> Journal:
    return Journal(
        id=row.id,
        user_id=row.user_id,
        title=row.title,
        content=row.content,
        mood=row.mood,
        created_at=ensure_utc(row.created_at),
    )


def create_journal(
    user: User,
    *,
    content: str,
    title: Optional[str] = None,
    mood: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Journal:
    """Write one entry. Raises QuotaExceededError past the free daily limit."""
    if not content or not content.strip():
        raise ValidationError("Journal content is required")

    now = resolve_now(now)
    with quota_guard(user, QuotaAction.JOURNAL_CREATE, now):
        journal = Journal(
            id=uuid4().hex,
            user_id=user.user_id,
            title=title,
            content=content,
            mood=mood,
            created_at=now,
        )
        with get_db_session() as session:
            session.execute(insert(journals).values(**journal.model_dump()))

    logger.info("[journals] created", extra={"user_id": user.user_id, "journal_id": journal.id})
    return journal


def list_journals(user: User, *, page: int = 1, limit: int = 20) -> Tuple[List[Journal], int]:
    page = max(page, 1)
    with get_db_session() as session:
        total = session.execute(
            select(func.count()).select_from(journals).where(journals.c.user_id == user.user_id)
        ).scalar() or 0
        rows = session.execute(
            select(journals)
            .where(journals.c.user_id == user.user_id)
            .order_by(journals.c.created_at.desc(), journals.c.id)
            .offset((page - 1) * limit)
            .limit(limit)
        ).fetchall()
    return [_from_row(r) for r in rows], total


def suggest_basic(
    user: User,
    *,
    mood: Optional[str] = None,
    topic: Optional[str] = None,
    now: Optional[datetime] = None,
    generator: Optional[PromptGenerator] = None,
) -> Dict[str, Any]:
    """Basic writing prompts. Raises QuotaExceededError past the free daily limit."""
    now = resolve_now(now)
    gen = generator or default_generator
    with quota_guard(user, QuotaAction.BASIC_SUGGESTION, now) as decision:
        suggestions = gen.generate(mood, topic, seed=f"{user.user_id}:{today_bucket(now)}", count=BASIC_SUGGESTION_COUNT)

    remaining = None if decision.remaining is None else decision.remaining - 1
    return {
        "suggestions": suggestions,
        "mood": mood,
        "topic": topic,
        "remaining_today": "unlimited" if remaining is None else remaining,
    }
