"""
tests/test_api_routes.py -- Integration tests for the auth API routes.

These tests exercise the full stack: FastAPI routing -> bearer dependency ->
CredentialVerifier/AccountStore -> exception handlers -> response models.

Coverage:
  - POST /register: 200 message, 400 duplicate_username / duplicate_email, 422 bad fields
  - POST /login: 200 token + identity fields, 401 invalid_credentials (same body for
    unknown user and wrong password), 423 account_locked after the lock trips
  - GET /me: 200 profile without hash, 401 without / with bad token, 404 for a
    token whose subject has no account
  - POST /users/{username}/unlock: 403 for non-admin, 200 for admin, 404 unknown
  - GET /health: public

Fixtures used (from conftest.py):
  - api_client: ApiContext with "testadmin" (ADMIN) and "testuser" (USER) accounts.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from conftest import ApiContext

USER_PASSWORD = "userpass123"


def auth_header(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


class TestRegisterRoute:
    def test_register_success(self, api_client: ApiContext) -> None:
        resp = api_client.client.post(
            "/api/v1/auth/register",
            json={"username": "alice", "email": "alice@example.com", "password": "pw12345"},
        )
        assert resp.status_code == 200, resp.text
        assert resp.json() == {"message": "User registered successfully"}
        assert "pw12345" not in resp.text

    def test_register_duplicate_username(self, api_client: ApiContext) -> None:
        resp = api_client.client.post(
            "/api/v1/auth/register",
            json={"username": "testuser", "email": "fresh@example.com", "password": "pw99999"},
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "duplicate_username"
        assert api_client.store.find_by_email("fresh@example.com") is None

    def test_register_duplicate_email(self, api_client: ApiContext) -> None:
        resp = api_client.client.post(
            "/api/v1/auth/register",
            json={"username": "fresh", "email": "user@example.com", "password": "pw99999"},
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "duplicate_email"

    def test_register_short_username_rejected(self, api_client: ApiContext) -> None:
        resp = api_client.client.post(
            "/api/v1/auth/register",
            json={"username": "ab", "email": "ab@example.com", "password": "pw12345"},
        )
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "validation_error"

    def test_register_bad_email_rejected(self, api_client: ApiContext) -> None:
        resp = api_client.client.post(
            "/api/v1/auth/register",
            json={"username": "carol", "email": "not-an-email", "password": "pw12345"},
        )
        assert resp.status_code == 422


class TestLoginRoute:
    def test_login_success(self, api_client: ApiContext) -> None:
        resp = api_client.client.post(
            "/api/v1/auth/login",
            json={"username": "testuser", "password": USER_PASSWORD},
        )
        assert resp.status_code == 200, resp.text
        data = resp.json()
        assert data["type"] == "Bearer"
        assert data["username"] == "testuser"
        assert data["email"] == "user@example.com"
        assert data["roles"] == ["USER"]
        assert api_client.tokens.verify(data["token"])["sub"] == "testuser"
        assert resp.headers["cache-control"] == "no-store"

    def test_unknown_user_and_wrong_password_identical(self, api_client: ApiContext) -> None:
        client = api_client.client
        unknown = client.post("/api/v1/auth/login", json={"username": "doesNotExist", "password": "whatever"})
        wrong = client.post("/api/v1/auth/login", json={"username": "testadmin", "password": "whatever"})
        assert unknown.status_code == wrong.status_code == 401
        assert unknown.json() == wrong.json()
        assert unknown.json()["error"]["code"] == "invalid_credentials"

    def test_lockout_returns_423(self, api_client: ApiContext) -> None:
        client = api_client.client
        client.post(
            "/api/v1/auth/register",
            json={"username": "victim", "email": "victim@example.com", "password": "rightpass"},
        )
        for _ in range(5):
            resp = client.post("/api/v1/auth/login", json={"username": "victim", "password": "wrongpass"})
            assert resp.status_code == 401

        resp = client.post("/api/v1/auth/login", json={"username": "victim", "password": "rightpass"})
        assert resp.status_code == 423
        assert resp.json()["error"]["code"] == "account_locked"
        assert api_client.store.find_by_username("victim").failed_login_attempts == 5


class TestMeRoute:
    def test_me_requires_token(self, api_client: ApiContext) -> None:
        resp = api_client.client.get("/api/v1/auth/me")
        assert resp.status_code == 401

    def test_me_rejects_garbage_token(self, api_client: ApiContext) -> None:
        resp = api_client.client.get("/api/v1/auth/me", headers=auth_header("not.a.token"))
        assert resp.status_code == 401

    def test_me_returns_profile(self, api_client: ApiContext) -> None:
        resp = api_client.client.get("/api/v1/auth/me", headers=auth_header(api_client.user_token))
        assert resp.status_code == 200, resp.text
        data = resp.json()
        assert data["username"] == "testuser"
        assert data["roles"] == ["USER"]
        assert data["account_non_locked"] is True
        assert data["enabled"] is True
        assert "password" not in resp.text
        assert "$2b$" not in resp.text

    def test_me_unknown_subject_is_404(self, api_client: ApiContext) -> None:
        token = api_client.tokens.issue_for_subject("ghost")
        resp = api_client.client.get("/api/v1/auth/me", headers=auth_header(token))
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "not_found"


class TestUnlockRoute:
    def _lock(self, api_client: ApiContext, username: str) -> None:
        client = api_client.client
        client.post(
            "/api/v1/auth/register",
            json={"username": username, "email": f"{username}@example.com", "password": "rightpass"},
        )
        for _ in range(5):
            client.post("/api/v1/auth/login", json={"username": username, "password": "wrongpass"})

    def test_non_admin_forbidden(self, api_client: ApiContext) -> None:
        self._lock(api_client, "locked1")
        resp = api_client.client.post(
            "/api/v1/auth/users/locked1/unlock", headers=auth_header(api_client.user_token)
        )
        assert resp.status_code == 403
        assert api_client.store.find_by_username("locked1").account_locked

    def test_admin_unlocks(self, api_client: ApiContext) -> None:
        self._lock(api_client, "locked2")
        resp = api_client.client.post(
            "/api/v1/auth/users/locked2/unlock", headers=auth_header(api_client.admin_token)
        )
        assert resp.status_code == 200, resp.text
        assert resp.json()["account_non_locked"] is True
        login = api_client.client.post("/api/v1/auth/login", json={"username": "locked2", "password": "rightpass"})
        assert login.status_code == 200

    def test_unknown_user_404(self, api_client: ApiContext) -> None:
        resp = api_client.client.post(
            "/api/v1/auth/users/nobody/unlock", headers=auth_header(api_client.admin_token)
        )
        assert resp.status_code == 404


class TestHealth:
    def test_health_no_auth_required(self, api_client: ApiContext) -> None:
        resp = api_client.client.get("/api/v1/health", headers={})
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"
