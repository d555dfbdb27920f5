"""
Tests for the daily usage ledger.

Counters are per (user, date), created lazily, and incremented atomically.
"""
import threading
from datetime import datetime, timezone

import pytest
from sqlalchemy import func, select

from moodjournal.core.clock import ensure_utc
from moodjournal.core.database import get_db_session, usage_ledger
from moodjournal.core.errors import ValidationError
from moodjournal.features.usage import ledger


def _row_count(user_id: str) -> int:
    with get_db_session() as session:
        return session.execute(
            select(func.count()).select_from(usage_ledger).where(usage_ledger.c.user_id == user_id)
        ).scalar()


class TestLedgerReads:
    def test_missing_row_reads_as_zero_without_creating(self, make_user):
        make_user("user_1")
        counters = ledger.get_counters("user_1", "2024-01-01")

        assert counters.created_journals == 0
        assert counters.basic_suggestions_used == 0
        assert _row_count("user_1") == 0

    def test_get_or_create_is_idempotent(self, make_user):
        make_user("user_1")
        first = ledger.get_or_create("user_1", "2024-01-01")
        second = ledger.get_or_create("user_1", "2024-01-01")

        assert first == second
        assert _row_count("user_1") == 1


class TestLedgerIncrement:
    def test_first_increment_creates_row_at_one(self, make_user):
        make_user("user_1")
        counters = ledger.increment("user_1", "2024-01-01", "created_journals")

        assert counters.created_journals == 1
        assert counters.basic_suggestions_used == 0
        assert _row_count("user_1") == 1

    def test_increments_accumulate_per_field(self, make_user):
        make_user("user_1")
        ledger.increment("user_1", "2024-01-01", "created_journals")
        ledger.increment("user_1", "2024-01-01", "created_journals")
        counters = ledger.increment("user_1", "2024-01-01", "basic_suggestions_used")

        assert counters.created_journals == 2
        assert counters.basic_suggestions_used == 1

    def test_dates_are_independent(self, make_user):
        make_user("user_1")
        ledger.increment("user_1", "2024-01-01", "created_journals")
        ledger.increment("user_1", "2024-01-01", "created_journals")

        assert ledger.get_counters("user_1", "2024-01-02").created_journals == 0
        assert ledger.increment("user_1", "2024-01-02", "created_journals").created_journals == 1
        assert _row_count("user_1") == 2

    def test_unknown_field_rejected(self, make_user):
        make_user("user_1")
        with pytest.raises(ValidationError):
            ledger.increment("user_1", "2024-01-01", "premium_suggestions_used")

    def test_updated_at_follows_injected_clock(self, make_user, clock):
        make_user("user_1")
        ledger.increment("user_1", "2024-01-01", "created_journals")

        with get_db_session() as session:
            stamp = session.execute(
                select(usage_ledger.c.updated_at).where(usage_ledger.c.user_id == "user_1")
            ).scalar()
        assert ensure_utc(stamp) == clock.now()

    def test_explicit_now_is_recorded(self, make_user):
        make_user("user_1")
        at = datetime(2024, 3, 5, 8, 30, tzinfo=timezone.utc)
        ledger.increment("user_1", "2024-03-05", "basic_suggestions_used", now=at)

        with get_db_session() as session:
            stamp = session.execute(
                select(usage_ledger.c.updated_at).where(usage_ledger.c.user_id == "user_1")
            ).scalar()
        assert ensure_utc(stamp) == at


class TestLedgerConcurrency:
    def test_parallel_increments_are_not_lost(self, make_user):
        make_user("user_1")
        errors = []

        def worker():
            try:
                for _ in range(10):
                    ledger.increment("user_1", "2024-01-01", "created_journals")
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert ledger.get_counters("user_1", "2024-01-01").created_journals == 80
        assert _row_count("user_1") == 1
