"""
Clock and calendar-date helpers.

All stored timestamps are timezone-aware UTC. Daily quota buckets use the
calendar date of the configured quota timezone (server local time when unset).
Services take an optional ``now`` and fall back to the process clock, which
tests replace with a FixedClock.
"""
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Optional, Protocol
from zoneinfo import ZoneInfo

from moodjournal.core.config import settings


class Clock(Protocol):
    def now(self) -> datetime:
        ...


class SystemClock:
    """Wall clock in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock:
    """Manually driven clock for tests and replays."""

    def __init__(self, at: datetime):
        self._at = ensure_utc(at)

    def now(self) -> datetime:
        return self._at

    def set(self, at: datetime) -> None:
        self._at = ensure_utc(at)

    def advance(self, **kwargs) -> datetime:
        self._at = self._at + timedelta(**kwargs)
        return self._at


_clock: Clock = SystemClock()


def get_clock() -> Clock:
    return _clock


def set_clock(clock: Optional[Clock]) -> None:
    """Install a process-wide clock (None restores the system clock)."""
    global _clock
    _clock = clock or SystemClock()


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on read)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def resolve_now(now: Optional[datetime] = None) -> datetime:
    if now is None:
        return ensure_utc(get_clock().now())
    return ensure_utc(now)


def quota_timezone() -> Optional[tzinfo]:
    if settings.QUOTA_TIMEZONE:
        return ZoneInfo(settings.QUOTA_TIMEZONE)
    return None


def _local(now: datetime, tz: Optional[tzinfo]) -> datetime:
    tz = tz if tz is not None else quota_timezone()
    # astimezone(None) converts to the server's local zone
    return ensure_utc(now).astimezone(tz)


def today_bucket(now: Optional[datetime] = None, tz: Optional[tzinfo] = None) -> str:
    """Calendar date key (YYYY-MM-DD) for the daily usage ledger."""
    return _local(resolve_now(now), tz).date().isoformat()


def next_reset_at(now: Optional[datetime] = None, tz: Optional[tzinfo] = None) -> datetime:
    """UTC instant of the next local midnight, when daily counters roll over."""
    local = _local(resolve_now(now), tz)
    midnight = datetime.combine(local.date() + timedelta(days=1), datetime.min.time(), tzinfo=local.tzinfo)
    return midnight.astimezone(timezone.utc)
