from datetime import timedelta

from moodjournal.features.notifications import service as notification_service

H = {"X-User-Id": "user_1"}


def _seed(clock, count=2):
    return [
        notification_service.emit("user_1", "premium_expiring", {"days_left": 7 - i}, now=clock.now() + timedelta(minutes=i))
        for i in range(count)
    ]


def test_list_with_pagination_and_unread_count(client, clock, make_user):
    make_user("user_1")
    _seed(clock, 3)

    body = client.get("/v1/notifications", headers=H, params={"limit": 2}).json()

    assert len(body["notifications"]) == 2
    assert body["pagination"] == {"page": 1, "limit": 2, "total": 3, "pages": 2}
    assert body["unread_count"] == 3


def test_mark_read_flow(client, clock, make_user):
    make_user("user_1")
    records = _seed(clock)

    resp = client.put(f"/v1/notifications/{records[0].id}/read", headers=H)
    assert resp.status_code == 200
    assert resp.json()["is_read"] is True
    assert client.get("/v1/notifications/unread-count", headers=H).json() == {"unread_count": 1}

    resp = client.put("/v1/notifications/mark-all-read", headers=H)
    assert resp.json() == {"success": True, "updated": 1}
    assert client.get("/v1/notifications/unread-count", headers=H).json()["unread_count"] == 0


def test_other_users_notification_is_404(client, clock, make_user):
    make_user("user_1")
    record = _seed(clock, 1)[0]

    resp = client.put(f"/v1/notifications/{record.id}/read", headers={"X-User-Id": "intruder"})
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "not_found"


def test_delete(client, clock, make_user):
    make_user("user_1")
    record = _seed(clock, 1)[0]

    assert client.delete(f"/v1/notifications/{record.id}", headers=H).status_code == 200
    assert client.delete(f"/v1/notifications/{record.id}", headers=H).status_code == 404


def test_trigger_check_runs_sweep(client, clock, make_user):
    make_user("user_1", plan="premium", expires_at=clock.now() + timedelta(days=1))

    resp = client.post("/v1/notifications/trigger-check", headers=H)

    assert resp.status_code == 200
    assert resp.json()["stats"]["expiring_notified"] == 1
    body = client.get("/v1/notifications", headers=H).json()
    assert body["notifications"][0]["type"] == "premium_expiring"
    assert body["notifications"][0]["data"] == {"days_left": 1, "urgent": True}


def test_trigger_check_hidden_in_production(client, clock, monkeypatch, test_settings, auth_token):
    monkeypatch.setattr(test_settings, "ENV", "production")
    token = auth_token("user_1")
    resp = client.post("/v1/notifications/trigger-check", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 404
