# moodjournal/conftest.py
import os
import tempfile
from datetime import datetime, timezone

import pytest

# Tests run against a throwaway SQLite file unless TEST_DATABASE_URL is given
_TMP_DIR = tempfile.mkdtemp(prefix="moodjournal-tests-")
os.environ.setdefault("TEST_DATABASE_URL", f"sqlite:///{os.path.join(_TMP_DIR, 'test.db')}")

from moodjournal.core.clock import FixedClock, set_clock  # noqa: E402
from moodjournal.core.config import settings  # noqa: E402

TEST_JWT_SECRET = "test-jwt-secret-for-moodjournal-0123456789"
TEST_ADMIN_KEY = "test-admin-key"
T0 = datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc)


@pytest.fixture(scope="session", autouse=True)
def create_tables():
    """Create all tables once per test session."""
    from moodjournal.core.database import create_all_tables, dispose_engine

    dispose_engine()
    create_all_tables()
    yield
    dispose_engine()


@pytest.fixture(autouse=True)
def clean_tables():
    """Delete every row after each test (children before parents)."""
    yield
    from sqlalchemy import delete
    from moodjournal.core.database import get_engine, metadata

    with get_engine().begin() as conn:
        for table in reversed(metadata.sorted_tables):
            conn.execute(delete(table))


@pytest.fixture(autouse=True)
def test_settings(monkeypatch):
    """Deterministic settings: UTC quota days, known secrets, no gateways."""
    monkeypatch.setattr(settings, "QUOTA_TIMEZONE", "UTC")
    monkeypatch.setattr(settings, "JWT_SECRET", TEST_JWT_SECRET)
    monkeypatch.setattr(settings, "ADMIN_KEY", TEST_ADMIN_KEY)
    monkeypatch.setattr(settings, "ADMIN_AUTH_MODE", "hybrid")
    monkeypatch.setattr(settings, "ENVIRONMENT", "test")
    monkeypatch.setattr(settings, "ENV", "test")
    monkeypatch.setattr(settings, "ALLOW_USER_ID_HEADER", True)
    monkeypatch.setattr(settings, "PAYOS_CLIENT_ID", None)
    monkeypatch.setattr(settings, "PAYOS_API_KEY", None)
    monkeypatch.setattr(settings, "PAYOS_CHECKSUM_KEY", None)
    monkeypatch.setattr(settings, "VNPAY_TMN_CODE", None)
    monkeypatch.setattr(settings, "VNPAY_HASH_SECRET", None)
    yield settings


@pytest.fixture
def payos_settings(monkeypatch):
    monkeypatch.setattr(settings, "PAYOS_CLIENT_ID", "client-id")
    monkeypatch.setattr(settings, "PAYOS_API_KEY", "api-key")
    monkeypatch.setattr(settings, "PAYOS_CHECKSUM_KEY", "checksum-key")
    return settings


@pytest.fixture
def vnpay_settings(monkeypatch):
    monkeypatch.setattr(settings, "VNPAY_TMN_CODE", "TESTTMN1")
    monkeypatch.setattr(settings, "VNPAY_HASH_SECRET", "vnpay-hash-secret")
    return settings


@pytest.fixture
def clock():
    """Process-wide fixed clock at 2024-01-01T10:00Z."""
    fixed = FixedClock(T0)
    set_clock(fixed)
    yield fixed
    set_clock(None)


@pytest.fixture
def make_user():
    """Factory: create (or fetch) a user, optionally premium until ``expires_at``."""
    from moodjournal.core.database import get_db_session, users as app_users
    from moodjournal.features.users.service import get_or_create_user, get_user
    from sqlalchemy import update

    def _make(user_id="user_1", *, plan="free", expires_at=None, started_at=None, role="user", email=None):
        get_or_create_user(user_id, email=email, role=role, now=T0)
        if plan != "free" or expires_at is not None:
            with get_db_session() as session:
                session.execute(
                    update(app_users)
                    .where(app_users.c.user_id == user_id)
                    .values(plan=plan, premium_expires_at=expires_at, premium_started_at=started_at)
                )
        return get_user(user_id)

    return _make


@pytest.fixture
def client():
    from fastapi.testclient import TestClient
    from moodjournal.main import app

    return TestClient(app)


@pytest.fixture
def auth_token():
    """Factory for HS256 bearer tokens signed with the test secret."""
    import jwt

    def _token(sub="user_1", **claims):
        return jwt.encode({"sub": sub, **claims}, TEST_JWT_SECRET, algorithm="HS256")

    return _token


@pytest.fixture
def make_payment():
    """Factory: insert a payment row (pending premium checkout by default)."""
    from datetime import timedelta
    from uuid import uuid4
    from sqlalchemy import insert
    from moodjournal.core.database import get_db_session, payments
    from moodjournal.features.payments.service import get_payment

    def _make(user_id="user_1", *, order_code="X", amount=41000, status="pending", gateway="payos", created_at=T0):
        payment_id = uuid4().hex
        with get_db_session() as session:
            session.execute(
                insert(payments).values(
                    id=payment_id,
                    gateway=gateway,
                    gateway_order_code=order_code,
                    user_id=user_id,
                    amount=amount,
                    payment_type="premium_subscription",
                    description="Premium subscription 1 month",
                    status=status,
                    payment_url=f"https://pay.example/{order_code}",
                    payment_timeout=created_at + timedelta(minutes=15),
                    created_at=created_at,
                    updated_at=created_at,
                )
            )
        return get_payment(payment_id)

    return _make
