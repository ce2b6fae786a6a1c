"""
tests/test_api_auth.py -- Integration tests for the /api/v1/auth routes.

These tests exercise the full stack: FastAPI routing -> session dependency ->
AuthService -> SQLite -> response serialization and error envelope.

Fixtures used (from conftest.py):
  - api_client: (client, service) -- identity EMAIL / PASSWORD already exists.
  - clocked_api_client + clock: the same, with time under test control.

Most tests authenticate with an Authorization: Bearer header. The client's
cookie jar is cleared after sign-in so a stored cookie (which takes
precedence over the header) never masks what the test is checking.
"""

from __future__ import annotations

from fastapi.testclient import TestClient

from auth.dependencies import SESSION_COOKIE
from auth.service import AuthService
from core.result import ErrorCode
from tests.helpers import EMAIL, PASSWORD, FakeClock

SIGN_IN = "/api/v1/auth/sign-in"
SESSION = "/api/v1/auth/session"


def _sign_in(client: TestClient, email: str = EMAIL, password: str = PASSWORD):
    resp = client.post(SIGN_IN, json={"email": email, "password": password})
    client.cookies.clear()
    return resp


def _bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


class TestSignIn:
    def test_success(self, api_client: tuple[TestClient, AuthService]) -> None:
        client, _service = api_client
        resp = _sign_in(client)
        assert resp.status_code == 200
        data = resp.json()
        assert data["token_type"] == "bearer"
        assert data["identity"]["email"] == EMAIL
        assert "password_digest" not in data["identity"]
        assert data["access_token"] and data["reset_token"] and data["session_id"]
        assert resp.headers["Cache-Control"] == "no-store"

    def test_sets_httponly_cookie(self, api_client: tuple[TestClient, AuthService]) -> None:
        client, _service = api_client
        resp = client.post(SIGN_IN, json={"email": EMAIL, "password": PASSWORD})
        client.cookies.clear()
        set_cookie = resp.headers["set-cookie"].lower()
        assert set_cookie.startswith(f"{SESSION_COOKIE}=")
        assert "httponly" in set_cookie
        assert "samesite=lax" in set_cookie

    def test_bad_credentials_indistinguishable(self, api_client: tuple[TestClient, AuthService]) -> None:
        client, _service = api_client
        wrong = _sign_in(client, password="wrong-password")
        unknown = _sign_in(client, email="nobody@example.com")
        assert wrong.status_code == unknown.status_code == 401
        assert wrong.json() == unknown.json()
        assert wrong.json()["error"]["code"] == ErrorCode.INVALID_CREDENTIALS
        assert "set-cookie" not in wrong.headers

    def test_locked_account(self, api_client: tuple[TestClient, AuthService]) -> None:
        client, _service = api_client
        for _ in range(5):
            _sign_in(client, password="wrong-password")
        resp = _sign_in(client)
        assert resp.status_code == 423
        assert resp.json()["error"]["code"] == ErrorCode.ACCOUNT_LOCKED
        assert resp.headers["Retry-After"] == "900"

    def test_rate_limited(self, api_client: tuple[TestClient, AuthService]) -> None:
        client, service = api_client
        service.rate_limiter.max_requests = 1
        assert _sign_in(client).status_code == 200
        resp = _sign_in(client)
        assert resp.status_code == 429
        assert resp.json()["error"]["code"] == ErrorCode.RATE_LIMITED
        assert int(resp.headers["Retry-After"]) >= 1

    def test_invalid_email(self, api_client: tuple[TestClient, AuthService]) -> None:
        client, _service = api_client
        resp = _sign_in(client, email="not-an-email")
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == ErrorCode.VALIDATION_ERROR

    def test_malformed_body(self, api_client: tuple[TestClient, AuthService]) -> None:
        client, _service = api_client
        resp = client.post(SIGN_IN, json={"email": EMAIL})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == ErrorCode.VALIDATION_ERROR


class TestSession:
    def test_requires_authentication(self, api_client: tuple[TestClient, AuthService]) -> None:
        client, _service = api_client
        resp = client.get(SESSION)
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == ErrorCode.SESSION_NOT_FOUND

    def test_garbage_token(self, api_client: tuple[TestClient, AuthService]) -> None:
        client, _service = api_client
        assert client.get(SESSION, headers=_bearer("garbage")).status_code == 401

    def test_bearer(self, api_client: tuple[TestClient, AuthService]) -> None:
        client, _service = api_client
        token = _sign_in(client).json()
        resp = client.get(SESSION, headers=_bearer(token["access_token"]))
        assert resp.status_code == 200
        assert resp.json()["session_id"] == token["session_id"]
        assert resp.json()["identity"]["email"] == EMAIL

    def test_cookie(self, api_client: tuple[TestClient, AuthService]) -> None:
        client, _service = api_client
        token = _sign_in(client).json()
        client.cookies.set(SESSION_COOKIE, token["access_token"])
        resp = client.get(SESSION)
        client.cookies.clear()
        assert resp.status_code == 200
        assert resp.json()["session_id"] == token["session_id"]


class TestSignOut:
    def test_sign_out_revokes_session(self, api_client: tuple[TestClient, AuthService]) -> None:
        client, _service = api_client
        token = _sign_in(client).json()["access_token"]
        resp = client.post("/api/v1/auth/sign-out", headers=_bearer(token))
        assert resp.status_code == 200
        after = client.get(SESSION, headers=_bearer(token))
        assert after.status_code == 401
        assert after.json()["error"]["code"] == ErrorCode.SESSION_NOT_FOUND


class TestRefresh:
    def test_rotates(self, api_client: tuple[TestClient, AuthService]) -> None:
        client, _service = api_client
        first = _sign_in(client).json()
        resp = client.post(
            "/api/v1/auth/refresh",
            json={"reset_token": first["reset_token"]},
            headers=_bearer(first["access_token"]),
        )
        client.cookies.clear()
        assert resp.status_code == 200
        second = resp.json()
        assert second["session_id"] != first["session_id"]
        assert client.get(SESSION, headers=_bearer(second["access_token"])).status_code == 200
        assert client.get(SESSION, headers=_bearer(first["access_token"])).status_code == 401

    def test_wrong_reset_token(self, api_client: tuple[TestClient, AuthService]) -> None:
        client, _service = api_client
        first = _sign_in(client).json()
        resp = client.post(
            "/api/v1/auth/refresh",
            json={"reset_token": "not-the-reset-token"},
            headers=_bearer(first["access_token"]),
        )
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == ErrorCode.SESSION_INVALID

    def test_requires_session_token(self, api_client: tuple[TestClient, AuthService]) -> None:
        client, _service = api_client
        resp = client.post("/api/v1/auth/refresh", json={"reset_token": "anything"})
        assert resp.status_code == 401

    def test_cookie_outlives_access_token(self, api_client: tuple[TestClient, AuthService]) -> None:
        client, service = api_client
        resp = client.post(SIGN_IN, json={"email": EMAIL, "password": PASSWORD})
        client.cookies.clear()
        set_cookie = resp.headers["set-cookie"].lower()
        assert f"max-age={service.settings.session_max_age_seconds}" in set_cookie

    def test_cookie_refresh_after_access_expiry(
        self, clocked_api_client: tuple[TestClient, AuthService], clock: FakeClock
    ) -> None:
        client, service = clocked_api_client
        first = _sign_in(client).json()
        clock.advance(seconds=service.settings.access_token_max_age + 1)

        client.cookies.set(SESSION_COOKIE, first["access_token"])
        resp = client.post("/api/v1/auth/refresh", json={"reset_token": first["reset_token"]})
        client.cookies.clear()

        assert resp.status_code == 200
        second = resp.json()
        identity_id = first["identity"]["id"]
        assert service.sessions.find_first(identity_id, first["session_id"]) is None
        assert service.sessions.find_first(identity_id, second["session_id"]) is not None


class TestChangePassword:
    def test_change_password(self, api_client: tuple[TestClient, AuthService]) -> None:
        client, _service = api_client
        token = _sign_in(client).json()["access_token"]
        resp = client.post(
            "/api/v1/auth/password",
            json={"current_password": PASSWORD, "new_password": "purple-monkey-dishwasher"},
            headers=_bearer(token),
        )
        client.cookies.clear()
        assert resp.status_code == 200
        assert client.get(SESSION, headers=_bearer(token)).status_code == 401
        assert _sign_in(client, password="purple-monkey-dishwasher").status_code == 200

    def test_wrong_current_password(self, api_client: tuple[TestClient, AuthService]) -> None:
        client, _service = api_client
        token = _sign_in(client).json()["access_token"]
        resp = client.post(
            "/api/v1/auth/password",
            json={"current_password": "nope-nope-nope", "new_password": "purple-monkey-dishwasher"},
            headers=_bearer(token),
        )
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == ErrorCode.INVALID_CREDENTIALS
