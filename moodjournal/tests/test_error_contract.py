"""Tests for normalized error responses."""

from moodjournal.core.errors import (
    AppError,
    GatewayCommunicationError,
    PaymentAlreadyTerminalError,
    PaymentNotFoundError,
    QuotaExceededError,
    StorageError,
)


def test_error_taxonomy_status_codes():
    assert QuotaExceededError("x").status_code == 403
    assert PaymentNotFoundError("x").status_code == 404
    assert PaymentAlreadyTerminalError("x").status_code == 409
    assert GatewayCommunicationError("x").status_code == 503
    assert StorageError("x").status_code == 500


def test_only_transient_errors_are_retryable():
    assert GatewayCommunicationError("x").retryable is True
    assert StorageError("x").retryable is True
    assert QuotaExceededError("x").retryable is False
    assert AppError("x").retryable is False


def test_validation_error_has_standard_shape(client):
    resp = client.post("/v1/journals", headers={"X-User-Id": "u1"}, json={"content": "   "})
    assert resp.status_code == 400
    body = resp.json()
    assert body["error"]["code"] == "validation_error"
    assert body["error"]["request_id"] == resp.headers.get("x-request-id")
    assert body["detail"] == body["error"]["message"]


def test_missing_auth_is_401(client):
    resp = client.get("/v1/usage")
    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == "unauthorized"


def test_invalid_token_is_401(client):
    resp = client.get("/v1/usage", headers={"Authorization": "Bearer not-a-jwt"})
    assert resp.status_code == 401


def test_valid_token_authenticates(client, auth_token):
    token = auth_token("jwt_user", email="jwt@example.com")
    resp = client.get("/v1/plans/me", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 200
    assert resp.json()["user_id"] == "jwt_user"


def test_user_id_header_can_be_disabled(client, monkeypatch, test_settings):
    monkeypatch.setattr(test_settings, "ALLOW_USER_ID_HEADER", False)
    resp = client.get("/v1/usage", headers={"X-User-Id": "u1"})
    assert resp.status_code == 401


def test_user_id_header_refused_in_production(client, monkeypatch, test_settings):
    monkeypatch.setattr(test_settings, "ENV", "production")
    monkeypatch.setattr(test_settings, "ENVIRONMENT", "prod")
    resp = client.get("/v1/usage", headers={"X-User-Id": "victim"})
    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == "unauthorized"


def test_bearer_token_still_works_in_production(client, monkeypatch, test_settings, auth_token):
    monkeypatch.setattr(test_settings, "ENV", "production")
    resp = client.get("/v1/usage", headers={"Authorization": f"Bearer {auth_token('jwt_user')}"})
    assert resp.status_code == 200
