"""
Free-tier daily quota policy.

Premium entitlement is decided by ``is_premium_active`` at ``now``; the stored
plan label alone never grants unlimited use. Free users get a fixed number of
journal creations and basic suggestions per calendar date.

The check happens before the protected action and the ledger increment only
after it succeeds. The two are not atomic with the protected write: a crash
in between under-counts by one.
"""

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Dict, Iterator, Optional

from moodjournal.core.clock import next_reset_at, resolve_now, today_bucket
from moodjournal.core.config import settings
from moodjournal.core.errors import QuotaExceededError
from moodjournal.features.premium.lifecycle import is_premium_active
from moodjournal.features.usage import ledger
from moodjournal.models.usage import LEDGER_FIELDS, QuotaAction, QuotaDecision
from moodjournal.models.user import User

logger = logging.getLogger("moodjournal.quota")

_DENIAL_MESSAGES = {
    QuotaAction.JOURNAL_CREATE: "Free plan limit reached: max {limit} journal entries per day",
    QuotaAction.BASIC_SUGGESTION: "Free plan limit reached: max {limit} basic suggestions per day",
}


def daily_limit(action: QuotaAction) -> int:
    if action == QuotaAction.JOURNAL_CREATE:
        return settings.FREE_DAILY_JOURNAL_LIMIT
    return settings.FREE_DAILY_SUGGESTION_LIMIT


def check_and_consume(user: User, action: QuotaAction, now: Optional[datetime] = None) -> QuotaDecision:
    """Decide whether ``user`` may perform ``action`` today.

    Premium-active users are allowed without touching the ledger. Free users
    are denied once the day's counter has reached the limit. Nothing is
    recorded here; call ``record_usage`` after the action succeeds (or use
    ``quota_guard``).
    """
    action = QuotaAction(action)
    now = resolve_now(now)
    date = today_bucket(now)

    if is_premium_active(user, now):
        return QuotaDecision(allowed=True, action=action, date=date, premium=True)

    limit = daily_limit(action)
    used = ledger.get_counters(user.user_id, date).get(LEDGER_FIELDS[action])
    if used >= limit:
        logger.info(
            "[quota] DENIED",
            extra={"user_id": user.user_id, "action": action.value, "used": used, "limit": limit, "date": date},
        )
        return QuotaDecision(
            allowed=False,
            action=action,
            date=date,
            limit=limit,
            used=used,
            remaining=0,
            reason=_DENIAL_MESSAGES[action].format(limit=limit),
            resets_at=next_reset_at(now),
        )

    return QuotaDecision(
        allowed=True,
        action=action,
        date=date,
        limit=limit,
        used=used,
        remaining=limit - used,
    )


def record_usage(user: User, action: QuotaAction, now: Optional[datetime] = None):
    """Count one completed action against today's ledger row.

    Premium users are counted too so the usage display stays accurate.
    """
    action = QuotaAction(action)
    now = resolve_now(now)
    return ledger.increment(user.user_id, today_bucket(now), LEDGER_FIELDS[action], now=now)


def raise_if_denied(decision: QuotaDecision) -> None:
    if decision.allowed:
        return
    raise QuotaExceededError(
        decision.reason or "Free plan limit reached",
        action=decision.action.value,
        limit=decision.limit,
        used=decision.used,
        resets_at=decision.resets_at,
    )


@contextmanager
def quota_guard(user: User, action: QuotaAction, now: Optional[datetime] = None) -> Iterator[QuotaDecision]:
    """Wrap a protected action: deny up front, count only on success.

    Usage:
        with quota_guard(user, QuotaAction.JOURNAL_CREATE):
            create_journal(...)
    """
    now = resolve_now(now)
    decision = check_and_consume(user, action, now)
    raise_if_denied(decision)
    yield decision
    record_usage(user, action, now)


def get_quota_status(user: User, now: Optional[datetime] = None) -> Dict[str, object]:
    """Today's usage and remaining allowance, for display only."""
    now = resolve_now(now)
    date = today_bucket(now)
    counters = ledger.get_counters(user.user_id, date)
    premium = is_premium_active(user, now)

    usage = {
        "journals": counters.created_journals,
        "suggestions": counters.basic_suggestions_used,
    }
    if premium:
        limits = {"journals": "unlimited", "suggestions": "unlimited"}
        remaining = {"journals": "unlimited", "suggestions": "unlimited"}
    else:
        journal_limit = daily_limit(QuotaAction.JOURNAL_CREATE)
        suggestion_limit = daily_limit(QuotaAction.BASIC_SUGGESTION)
        limits = {"journals": journal_limit, "suggestions": suggestion_limit}
        remaining = {
            "journals": max(0, journal_limit - counters.created_journals),
            "suggestions": max(0, suggestion_limit - counters.basic_suggestions_used),
        }

    return {
        "plan": user.plan,
        "is_premium_active": premium,
        "daily_limits": limits,
        "usage": usage,
        "remaining": remaining,
        "date": date,
        "resets_at": next_reset_at(now),
    }
