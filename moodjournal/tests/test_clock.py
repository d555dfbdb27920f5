"""Tests for the injectable clock and quota date bucketing."""

from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from moodjournal.core.clock import (
    FixedClock,
    ensure_utc,
    get_clock,
    next_reset_at,
    resolve_now,
    set_clock,
    today_bucket,
)

UTC = timezone.utc


def test_fixed_clock_drives_resolve_now():
    at = datetime(2024, 3, 1, 8, 0, tzinfo=UTC)
    clock = FixedClock(at)
    set_clock(clock)
    try:
        assert resolve_now() == at
        clock.advance(minutes=16)
        assert resolve_now() == at + timedelta(minutes=16)
    finally:
        set_clock(None)
    assert not isinstance(get_clock(), FixedClock)


def test_explicit_now_wins_over_clock(clock):
    explicit = datetime(2030, 1, 1, tzinfo=UTC)
    assert resolve_now(explicit) == explicit


def test_ensure_utc_attaches_utc_to_naive():
    naive = datetime(2024, 1, 1, 12, 0)
    assert ensure_utc(naive) == datetime(2024, 1, 1, 12, 0, tzinfo=UTC)
    assert ensure_utc(None) is None


def test_ensure_utc_converts_other_offsets():
    hcm = datetime(2024, 1, 1, 7, 0, tzinfo=ZoneInfo("Asia/Ho_Chi_Minh"))
    assert ensure_utc(hcm) == datetime(2024, 1, 1, 0, 0, tzinfo=UTC)


def test_today_bucket_uses_quota_timezone():
    late_utc = datetime(2024, 1, 1, 23, 30, tzinfo=UTC)
    assert today_bucket(late_utc, tz=UTC) == "2024-01-01"
    assert today_bucket(late_utc, tz=ZoneInfo("Asia/Ho_Chi_Minh")) == "2024-01-02"


def test_today_bucket_reads_setting(test_settings):
    test_settings.QUOTA_TIMEZONE = "Asia/Ho_Chi_Minh"
    assert today_bucket(datetime(2024, 1, 1, 18, 0, tzinfo=UTC)) == "2024-01-02"


def test_next_reset_at_is_next_local_midnight():
    now = datetime(2024, 1, 1, 10, 0, tzinfo=UTC)
    assert next_reset_at(now, tz=UTC) == datetime(2024, 1, 2, 0, 0, tzinfo=UTC)
    # Midnight in UTC+7 is 17:00 UTC the previous day
    assert next_reset_at(now, tz=ZoneInfo("Asia/Ho_Chi_Minh")) == datetime(2024, 1, 1, 17, 0, tzinfo=UTC)
