"""
Premium expiry sweep.

One pass:
1. Premium users expiring within the next 7 days get a premium_expiring
   notice on the 7/5/3/1-days-left checkpoints (deduped over 24h).
2. Premium users whose expiry passed within the lookback window are
   downgraded, then get a premium_expired notice (deduped over 24h). The
   downgrade re-checks the stored expiry, so a renewal that lands mid-pass
   is kept and gets no notice.

Each user is handled independently; a failure is logged and counted and the
pass moves on. The candidate set is recomputed from stored state every run,
so an interrupted or doubled pass is safe to repeat.
"""

import logging
from dataclasses import dataclass, asdict
from datetime import datetime, timedelta
from typing import Dict, Optional

from moodjournal.core.clock import resolve_now
from moodjournal.core.config import settings
from moodjournal.features.notifications.service import emit_deduped
from moodjournal.features.premium.lifecycle import EXPIRING_SOON_DAYS, days_left
from moodjournal.features.premium.service import expire_premium, find_premium_expiring_between

logger = logging.getLogger("moodjournal.sweeper")

EXPIRING_CHECKPOINTS = frozenset({7, 5, 3, 1})


@dataclass
class SweepStats:
    expiring_candidates: int = 0
    expiring_notified: int = 0
    expired_candidates: int = 0
    downgraded: int = 0
    expired_notified: int = 0
    errors: int = 0

    def as_dict(self) -> Dict[str, int]:
        return asdict(self)


def run_sweep(now: Optional[datetime] = None, *, lookback_hours: Optional[int] = None) -> SweepStats:
    now = resolve_now(now)
    lookback = timedelta(hours=lookback_hours if lookback_hours is not None else settings.SWEEPER_EXPIRED_LOOKBACK_HOURS)
    stats = SweepStats()

    expiring = find_premium_expiring_between(now, now + timedelta(days=EXPIRING_SOON_DAYS))
    # expires_at == now is already expired; leave it to the second phase
    expiring = [u for u in expiring if u.premium_expires_at > now]
    stats.expiring_candidates = len(expiring)
    for user in expiring:
        try:
            remaining = days_left(user, now)
            if remaining not in EXPIRING_CHECKPOINTS:
                continue
            if emit_deduped(user.user_id, "premium_expiring", {"days_left": remaining}, now=now):
                stats.expiring_notified += 1
        except Exception:
            stats.errors += 1
            logger.exception("[sweeper] expiring notice failed", extra={"user_id": user.user_id})

    expired = find_premium_expiring_between(now - lookback, now)
    stats.expired_candidates = len(expired)
    for user in expired:
        try:
            if expire_premium(user.user_id, now) is None:
                continue
            stats.downgraded += 1
        except Exception:
            stats.errors += 1
            logger.exception("[sweeper] downgrade failed", extra={"user_id": user.user_id})
            continue
        try:
            if emit_deduped(user.user_id, "premium_expired", now=now):
                stats.expired_notified += 1
        except Exception:
            stats.errors += 1
            logger.exception("[sweeper] expired notice failed", extra={"user_id": user.user_id})

    logger.info("[sweeper] pass complete", extra=stats.as_dict())
    return stats
