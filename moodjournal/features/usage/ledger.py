"""
moodjournal/features/usage/ledger.py

Daily usage ledger.

One row per (user_id, calendar date) holding the counters the free-tier
quota is checked against. Rows are created lazily on the first counted
action of the day and never deleted. Increments are a single
INSERT ... ON CONFLICT DO UPDATE so concurrent requests for the same user
and date cannot lose updates.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import select, insert, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError

from moodjournal.core.clock import resolve_now
from moodjournal.core.database import get_db_session, usage_ledger
from moodjournal.core.errors import ValidationError
from moodjournal.models.usage import LEDGER_FIELDS, UsageCounters

logger = logging.getLogger("moodjournal.usage")

COUNTER_FIELDS = frozenset(LEDGER_FIELDS.values())

_RETURNING = (usage_ledger.c.created_journals, usage_ledger.c.basic_suggestions_used)


def _check_field(field: str) -> None:
    if field not in COUNTER_FIELDS:
        raise ValidationError(f"Unknown usage counter: {field}")


def _counters(user_id: str, date: str, row) -> UsageCounters:
    if row is None:
        return UsageCounters(user_id=user_id, date=date)
    return UsageCounters(
        user_id=user_id,
        date=date,
        created_journals=row.created_journals,
        basic_suggestions_used=row.basic_suggestions_used,
    )


def get_counters(user_id: str, date: str) -> UsageCounters:
    """Read-only lookup. Zeros when no row exists yet; never creates one."""
    with get_db_session() as session:
        row = session.execute(
            select(*_RETURNING).where(
                usage_ledger.c.user_id == user_id,
                usage_ledger.c.date == date,
            )
        ).first()
    return _counters(user_id, date, row)


def _upsert_insert(dialect_name: str):
    if dialect_name == "postgresql":
        return postgresql.insert(usage_ledger)
    if dialect_name == "sqlite":
        return sqlite.insert(usage_ledger)
    return None


def get_or_create(user_id: str, date: str, now: Optional[datetime] = None) -> UsageCounters:
    """Return the row for (user, date), inserting a zeroed one if absent."""
    now = resolve_now(now)
    with get_db_session() as session:
        stmt = _upsert_insert(session.get_bind().dialect.name)
        values = dict(user_id=user_id, date=date, created_journals=0, basic_suggestions_used=0, updated_at=now)
        if stmt is not None:
            session.execute(
                stmt.values(**values).on_conflict_do_nothing(index_elements=["user_id", "date"])
            )
        else:
            try:
                with session.begin_nested():
                    session.execute(insert(usage_ledger).values(**values))
            except IntegrityError:
                pass
        row = session.execute(
            select(*_RETURNING).where(
                usage_ledger.c.user_id == user_id,
                usage_ledger.c.date == date,
            )
        ).first()
    return _counters(user_id, date, row)


def _first_row(user_id: str, date: str, field: str, now: datetime) -> dict:
    values = dict(user_id=user_id, date=date, created_journals=0, basic_suggestions_used=0, updated_at=now)
    values[field] = 1
    return values


def increment(user_id: str, date: str, field: str, now: Optional[datetime] = None) -> UsageCounters:
    """Atomically add one to ``field`` for (user, date), creating the row if needed."""
    _check_field(field)
    column = usage_ledger.c[field]
    now = resolve_now(now)

    with get_db_session() as session:
        base = _upsert_insert(session.get_bind().dialect.name)
        if base is not None:
            stmt = (
                base.values(**_first_row(user_id, date, field, now))
                .on_conflict_do_update(
                    index_elements=["user_id", "date"],
                    set_={field: column + 1, "updated_at": now},
                )
                .returning(*_RETURNING)
            )
            row = session.execute(stmt).first()
        else:
            row = _increment_portable(session, user_id, date, field, now)

    counters = _counters(user_id, date, row)
    logger.info(
        "[usage] increment",
        extra={"user_id": user_id, "date": date, "field": field, "value": counters.get(field)},
    )
    return counters


def _increment_portable(session, user_id: str, date: str, field: str, now: datetime):
    """UPDATE-then-INSERT for dialects without ON CONFLICT."""
    column = usage_ledger.c[field]
    where = (usage_ledger.c.user_id == user_id, usage_ledger.c.date == date)
    for _ in range(2):
        result = session.execute(
            update(usage_ledger).where(*where).values({field: column + 1, "updated_at": now})
        )
        if result.rowcount:
            break
        try:
            with session.begin_nested():
                session.execute(
                    insert(usage_ledger).values(**_first_row(user_id, date, field, now))
                )
            break
        except IntegrityError:
            # Lost the insert race; the row now exists, so update it
            continue
    return session.execute(select(*_RETURNING).where(*where)).first()
