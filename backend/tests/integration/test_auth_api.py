"""HTTP flows of the ``/api/v1/auth`` blueprint against the SQL-backed service."""

from __future__ import annotations

import pytest
from tests.factories.user import UserFactory

BASE = "/api/v1/auth"
PASSWORD = "Sup3r-secret"
UA = "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0"


@pytest.fixture
def user(session):
    return UserFactory(email="carol@example.com", raw_password=PASSWORD)


@pytest.fixture
def do_login(client, user):
    def _login(device_id: str = "laptop-1") -> dict:
        resp = client.post(
            f"{BASE}/login",
            json={"email": user.email, "password": PASSWORD, "device_name": "Work laptop"},
            headers={"User-Agent": UA, "X-Device-ID": device_id},
        )
        assert resp.status_code == 200, resp.get_json()
        return resp.get_json()["data"]

    return _login


def _bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


class TestLoginEndpoint:
    def test_login_returns_token_pair(self, do_login):
        data = do_login()
        assert data["token_type"] == "Bearer"
        assert data["access_token"].count(".") == 2
        assert data["refresh_token"].count(".") == 2
        assert 0 < data["expires_in"] <= 3600
        assert data["refresh_expires_at"] > data["access_expires_at"]

    def test_wrong_password(self, client, user):
        resp = client.post(f"{BASE}/login", json={"email": user.email, "password": "nope"})
        assert resp.status_code == 401
        assert resp.mimetype == "application/problem+json"
        body = resp.get_json()
        assert body["code"] == "authentication_failed"
        assert resp.headers["WWW-Authenticate"] == 'Bearer error="authentication_failed"'

    def test_invalid_payload(self, client, db):
        resp = client.post(f"{BASE}/login", json={"email": "not-an-email"})
        assert resp.status_code == 422
        body = resp.get_json()
        assert body["code"] == "validation_error"
        assert set(body["details"]["errors"]) == {"email", "password"}

    def test_response_carries_request_id(self, client, user):
        resp = client.post(
            f"{BASE}/login",
            json={"email": user.email, "password": PASSWORD},
            headers={"X-Request-ID": "req-123"},
        )
        assert resp.headers["X-Request-ID"] == "req-123"


class TestRefreshEndpoint:
    def test_rotation_then_replay(self, client, do_login):
        first = do_login()

        rotated = client.post(f"{BASE}/refresh", json={"refresh_token": first["refresh_token"]})
        assert rotated.status_code == 200
        second = rotated.get_json()["data"]
        assert second["refresh_token"] != first["refresh_token"]

        replay = client.post(f"{BASE}/refresh", json={"refresh_token": first["refresh_token"]})
        assert replay.status_code == 401
        assert replay.get_json()["code"] == "replay_detected"

        # The whole family is gone, including the token issued by the rotation.
        after = client.post(f"{BASE}/refresh", json={"refresh_token": second["refresh_token"]})
        assert after.status_code == 401

    def test_access_token_is_not_a_refresh_token(self, client, do_login):
        pair = do_login()
        resp = client.post(f"{BASE}/refresh", json={"refresh_token": pair["access_token"]})
        assert resp.status_code == 401
        assert resp.get_json()["code"] == "invalid_token"

    def test_garbage_token(self, client, db):
        resp = client.post(f"{BASE}/refresh", json={"refresh_token": "garbage"})
        assert resp.status_code == 401


class TestLogoutEndpoints:
    def test_logout_revokes_session_and_bearer(self, client, do_login):
        pair = do_login()
        resp = client.post(
            f"{BASE}/logout",
            json={"refresh_token": pair["refresh_token"]},
            headers=_bearer(pair["access_token"]),
        )
        assert resp.status_code == 200
        assert resp.get_json() == {"data": {"revoked": 1}}

        me = client.get(f"{BASE}/me", headers=_bearer(pair["access_token"]))
        assert me.status_code == 401
        assert me.get_json()["code"] == "token_revoked"

    def test_logout_all_devices(self, client, do_login):
        do_login("laptop-1")
        pair = do_login("phone-1")
        resp = client.post(
            f"{BASE}/logout", json={"refresh_token": pair["refresh_token"], "all_devices": True}
        )
        assert resp.get_json()["data"]["revoked"] == 2

    def test_logout_others_keeps_current_session(self, client, do_login):
        do_login("laptop-1")
        do_login("tablet-1")
        current = do_login("phone-1")

        resp = client.post(
            f"{BASE}/logout-others",
            json={"refresh_token": current["refresh_token"]},
            headers=_bearer(current["access_token"]),
        )
        assert resp.status_code == 200
        assert resp.get_json()["data"]["revoked"] == 2

        kept = client.post(f"{BASE}/refresh", json={"refresh_token": current["refresh_token"]})
        assert kept.status_code == 200

    def test_logout_others_requires_bearer(self, client, do_login):
        pair = do_login()
        resp = client.post(f"{BASE}/logout-others", json={"refresh_token": pair["refresh_token"]})
        assert resp.status_code == 401
        assert resp.get_json()["code"] == "unauthorized"
        assert resp.headers["WWW-Authenticate"] == 'Bearer error="unauthorized"'


class TestMeEndpoint:
    def test_me_lists_identity_and_sessions(self, client, do_login, user):
        do_login("laptop-1")
        pair = do_login("phone-1")

        resp = client.get(f"{BASE}/me", headers=_bearer(pair["access_token"]))
        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert data["user_id"] == user.id
        assert data["device_id"] == "phone-1"
        assert 0 < data["remaining_seconds"] <= 3600
        assert {s["device_id"] for s in data["sessions"]} == {"laptop-1", "phone-1"}
        assert all(s["device_name"] == "Work laptop" for s in data["sessions"])
        assert data["stats"] == {"total": 2, "active": 2, "expired": 0, "revoked": 0}

    def test_refresh_token_is_rejected_as_bearer(self, client, do_login):
        pair = do_login()
        resp = client.get(f"{BASE}/me", headers=_bearer(pair["refresh_token"]))
        assert resp.status_code == 401
        assert resp.get_json()["code"] == "invalid_token"


def test_health(client):
    resp = client.get("/api/v1/health")
    assert resp.status_code == 200
    assert resp.get_json()["status"] == "ok"
    assert resp.get_json()["db"] == "ok"
    assert resp.get_json()["cache"] == "disabled"


def test_unknown_route_is_problem_json(client):
    resp = client.get("/api/v1/nope")
    assert resp.status_code == 404
    assert resp.get_json()["code"] == "not_found"
