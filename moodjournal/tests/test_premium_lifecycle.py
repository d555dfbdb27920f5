from datetime import datetime, timedelta, timezone

from moodjournal.features.premium import service as premium_service
from moodjournal.features.premium.lifecycle import (
    days_left,
    downgrade,
    is_expiring_soon,
    is_premium_active,
    upgrade,
)
from moodjournal.features.users.service import get_user
from moodjournal.models.user import User

T0 = datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc)


def _user(plan="free", expires_at=None):
    return User(user_id="u1", created_at=T0, plan=plan, premium_expires_at=expires_at)


def test_free_user_is_not_premium():
    assert is_premium_active(_user(), T0) is False
    assert days_left(_user(), T0) == 0


def test_premium_active_until_expiry_exclusive():
    user = _user("premium", T0 + timedelta(days=1))
    assert is_premium_active(user, T0) is True
    assert is_premium_active(user, T0 + timedelta(days=1)) is False


def test_premium_label_without_expiry_is_inactive():
    assert is_premium_active(_user("premium", None), T0) is False


def test_days_left_rounds_up():
    user = _user("premium", T0 + timedelta(days=2, hours=1))
    assert days_left(user, T0) == 3
    assert days_left(user, T0 + timedelta(days=2)) == 1


def test_expiring_soon_within_seven_days():
    assert is_expiring_soon(_user("premium", T0 + timedelta(days=7)), T0) is True
    assert is_expiring_soon(_user("premium", T0 + timedelta(days=8)), T0) is False
    assert is_expiring_soon(_user("premium", T0 - timedelta(days=1)), T0) is False


def test_upgrade_resets_period_instead_of_stacking():
    user = _user("premium", T0 + timedelta(days=20))
    upgraded = upgrade(user, 30, T0)

    assert upgraded.plan == "premium"
    assert upgraded.premium_started_at == T0
    assert upgraded.premium_expires_at == T0 + timedelta(days=30)
    # Input snapshot untouched
    assert user.premium_expires_at == T0 + timedelta(days=20)


def test_downgrade_clears_premium_fields():
    downgraded = downgrade(_user("premium", T0 + timedelta(days=3)))
    assert downgraded.plan == "free"
    assert downgraded.premium_expires_at is None
    assert downgraded.premium_started_at is None


class TestPersistence:
    def test_apply_upgrade_persists(self, make_user):
        make_user("user_1")
        premium_service.apply_upgrade("user_1", 30, T0)

        stored = get_user("user_1")
        assert stored.plan == "premium"
        assert stored.premium_expires_at == T0 + timedelta(days=30)

    def test_apply_downgrade_persists(self, make_user):
        make_user("user_1", plan="premium", expires_at=T0 + timedelta(days=1))
        premium_service.apply_downgrade("user_1")

        stored = get_user("user_1")
        assert stored.plan == "free"
        assert stored.premium_expires_at is None

    def test_expire_premium_only_when_period_ended(self, make_user):
        make_user("user_1", plan="premium", expires_at=T0 + timedelta(days=1))
        assert premium_service.expire_premium("user_1", T0) is None
        assert get_user("user_1").plan == "premium"

        expired = premium_service.expire_premium("user_1", T0 + timedelta(days=1))
        assert expired.plan == "free"
        assert get_user("user_1").premium_expires_at is None

    def test_subscription_info(self, make_user):
        user = make_user("user_1", plan="premium", expires_at=T0 + timedelta(days=3), started_at=T0 - timedelta(days=27))
        info = premium_service.subscription_info(user, T0)

        assert info["is_premium_active"] is True
        assert info["days_left"] == 3
        assert info["is_expiring_soon"] is True
        assert info["price_vnd"] == 41000
