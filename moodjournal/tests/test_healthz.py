import moodjournal.api.health as health_api


def test_healthz_always_ok(client):
    resp = client.get("/healthz")
    assert resp.status_code == 200
    assert resp.json().get("status") == "ok"


def test_readyz_ok_with_real_tables(client):
    resp = client.get("/readyz")
    assert resp.status_code == 200
    assert resp.json().get("status") == "ok"


def test_readyz_reports_missing_tables(client, monkeypatch):
    class FakeInspector:
        def has_table(self, name):
            return name != "payments"

    monkeypatch.setattr(health_api, "inspect", lambda engine: FakeInspector())

    resp = client.get("/readyz")
    assert resp.status_code == 503
    assert "payments" in resp.json().get("detail", "")


def test_readyz_handles_db_down(client, monkeypatch):
    def boom():
        raise RuntimeError("db down")

    monkeypatch.setattr(health_api, "get_engine", boom)

    resp = client.get("/readyz")
    body = resp.json()
    assert resp.status_code == 503
    assert body.get("status") == "error"
    assert "database" in body.get("detail", "")


def test_readyz_when_connection_check_fails(client, monkeypatch):
    monkeypatch.setattr(health_api, "check_connection", lambda: False)

    resp = client.get("/readyz")
    assert resp.status_code == 503
    assert resp.json()["detail"] == "database unreachable"
