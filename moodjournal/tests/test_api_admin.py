"""
Admin API tests: auth gate, dashboard and support overrides.
"""
from datetime import timedelta

from moodjournal.features.users.service import get_user

ADMIN = {"X-Admin-Key": "test-admin-key"}


class TestAdminAuth:
    def test_missing_credentials_is_403(self, client, clock):
        resp = client.get("/v1/admin/dashboard")
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "forbidden"

    def test_wrong_key_is_403(self, client, clock):
        resp = client.get("/v1/admin/dashboard", headers={"X-Admin-Key": "nope"})
        assert resp.status_code == 403

    def test_unconfigured_is_503(self, client, clock, monkeypatch, test_settings):
        monkeypatch.setattr(test_settings, "ADMIN_KEY", None)
        monkeypatch.setattr(test_settings, "JWT_SECRET", None)
        assert client.get("/v1/admin/dashboard").status_code == 503

    def test_legacy_key_refused_in_prod_hybrid(self, client, clock, monkeypatch, test_settings):
        monkeypatch.setattr(test_settings, "ENVIRONMENT", "prod")
        assert client.get("/v1/admin/dashboard", headers=ADMIN).status_code == 403

    def test_admin_jwt_accepted(self, client, clock, make_user, auth_token):
        make_user("admin_1", role="admin")
        token = auth_token("admin_1")
        resp = client.get("/v1/admin/dashboard", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 200

    def test_non_admin_jwt_refused(self, client, clock, make_user, auth_token):
        make_user("user_1")
        resp = client.get("/v1/admin/dashboard", headers={"Authorization": f"Bearer {auth_token('user_1')}"})
        assert resp.status_code == 403


class TestDashboard:
    def test_counts(self, client, clock, make_user, make_payment):
        now = clock.now()
        make_user("free_1")
        make_user("prem_1", plan="premium", expires_at=now + timedelta(days=3), started_at=now - timedelta(days=27))
        make_user("prem_2", plan="premium", expires_at=now + timedelta(days=20), started_at=now - timedelta(days=10))
        make_payment("prem_2", order_code="P1", status="success")

        body = client.get("/v1/admin/dashboard", headers=ADMIN).json()

        assert body["premium"]["total_users"] == 3
        assert body["premium"]["active_premium_users"] == 2
        assert body["premium"]["expiring_premium_users"] == 1
        assert body["revenue"]["total_revenue"] == 41000
        assert [u["user_id"] for u in body["expiring_soon"]] == ["prem_1"]
        assert body["expiring_soon"][0]["days_left"] == 3

    def test_user_listing_filters(self, client, clock, make_user):
        make_user("free_1", email="free@example.com")
        make_user("prem_1", plan="premium", expires_at=clock.now() + timedelta(days=5))

        body = client.get("/v1/admin/users", headers=ADMIN, params={"plan": "premium"}).json()
        assert [u["user_id"] for u in body["users"]] == ["prem_1"]
        assert body["users"][0]["is_premium_active"] is True

        body = client.get("/v1/admin/users", headers=ADMIN, params={"search": "free@"}).json()
        assert body["pagination"]["total"] == 1


class TestOverrides:
    def test_grant_premium_notifies(self, client, clock, make_user):
        make_user("user_1")

        resp = client.post("/v1/admin/users/user_1/premium", headers=ADMIN, json={"duration_days": 7})

        assert resp.status_code == 200
        user = get_user("user_1")
        assert user.premium_expires_at == clock.now() + timedelta(days=7)
        notes = client.get("/v1/notifications", headers={"X-User-Id": "user_1"}).json()
        assert notes["notifications"][0]["type"] == "premium_upgrade"

    def test_grant_unknown_user_is_404(self, client, clock):
        resp = client.post("/v1/admin/users/ghost/premium", headers=ADMIN, json={})
        assert resp.status_code == 404

    def test_downgrade(self, client, clock, make_user):
        make_user("user_1", plan="premium", expires_at=clock.now() + timedelta(days=5))

        resp = client.post("/v1/admin/users/user_1/downgrade", headers=ADMIN)

        assert resp.status_code == 200
        assert resp.json()["user"]["plan"] == "free"

    def test_payments_listing(self, client, clock, make_user, make_payment):
        make_user("user_1")
        make_payment("user_1", order_code="A", status="success")
        make_payment("user_1", order_code="B")

        body = client.get("/v1/admin/payments", headers=ADMIN, params={"status": "pending"}).json()
        assert [p["gateway_order_code"] for p in body["payments"]] == ["B"]

    def test_sweeper_run(self, client, clock, make_user):
        make_user("user_1", plan="premium", expires_at=clock.now() - timedelta(hours=1))

        resp = client.post("/v1/admin/sweeper/run", headers=ADMIN)

        assert resp.json()["stats"]["downgraded"] == 1
        assert get_user("user_1").plan == "free"
