"""
tests/test_api_auth.py -- Integration tests for the session endpoints.

These tests exercise the full stack: FastAPI routing -> guard() dependency ->
RequestGate -> SessionAuthority/CredentialStore -> response models and the
AdminError exception handler.

Coverage:
  - login success and failure (identical failure bodies, no-store, WWW-Authenticate)
  - single session: a second login rejects the first token
  - logout and admin force-logout revoke live tokens
  - profile and login-info reflect the caller
  - 401 for missing/garbage tokens, 403 for insufficient permissions
"""

from __future__ import annotations

from conftest import ADMIN_PASSWORD, BOB_PASSWORD, login


class TestLogin:
    def test_login_success(self, api_client) -> None:
        resp = api_client.post("/api/v1/auth/login", json={"username": "admin", "password": ADMIN_PASSWORD})
        assert resp.status_code == 200, resp.text
        assert resp.headers["Cache-Control"] == "no-store"
        data = resp.json()
        assert data["token_type"] == "bearer"
        assert data["expires_in"] > 0
        assert data["user"]["username"] == "admin"
        assert [r["name"] for r in data["user"]["roles"]] == ["Administrator"]
        assert "hashed_password" not in data["user"]

    def test_bad_credentials_are_indistinguishable(self, api_client) -> None:
        wrong_password = api_client.post("/api/v1/auth/login", json={"username": "admin", "password": "nope"})
        unknown_user = api_client.post("/api/v1/auth/login", json={"username": "ghost", "password": "nope"})
        assert wrong_password.status_code == unknown_user.status_code == 401
        assert wrong_password.json() == unknown_user.json()
        assert wrong_password.json()["error"]["code"] == "bad_credentials"
        assert wrong_password.headers["Cache-Control"] == "no-store"
        assert wrong_password.headers["WWW-Authenticate"] == "Bearer"

    def test_second_login_supersedes_first(self, api_client) -> None:
        first = login(api_client, "bob", BOB_PASSWORD)
        assert api_client.get("/api/v1/auth/profile", headers=first).status_code == 200

        second = login(api_client, "bob", BOB_PASSWORD)

        resp = api_client.get("/api/v1/auth/profile", headers=first)
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "session_superseded"
        assert api_client.get("/api/v1/auth/profile", headers=second).status_code == 200

    def test_login_records_forwarded_origin(self, api_client) -> None:
        resp = api_client.post(
            "/api/v1/auth/login",
            json={"username": "bob", "password": BOB_PASSWORD},
            headers={"X-Forwarded-For": "198.51.100.7, 10.0.0.1"},
        )
        headers = {"Authorization": f"Bearer {resp.json()['access_token']}"}
        info = api_client.get("/api/v1/auth/login-info", headers=headers).json()
        assert info["username"] == "bob"
        assert info["last_login_origin"] == "198.51.100.7"
        assert info["last_login_at"] is not None


class TestAuthFailure:
    def test_missing_token(self, api_client) -> None:
        resp = api_client.get("/api/v1/auth/profile")
        assert resp.status_code == 401
        assert resp.headers["WWW-Authenticate"] == "Bearer"
        assert resp.json()["error"]["code"] == "unauthenticated"

    def test_garbage_token(self, api_client) -> None:
        resp = api_client.get("/api/v1/auth/profile", headers={"Authorization": "Bearer garbage"})
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "token_invalid"

    def test_wrong_scheme(self, api_client) -> None:
        resp = api_client.get("/api/v1/auth/profile", headers={"Authorization": "Basic YWRtaW46YWRtaW4="})
        assert resp.status_code == 401


class TestSessionEndpoints:
    def test_profile(self, api_client, bob_headers) -> None:
        data = api_client.get("/api/v1/auth/profile", headers=bob_headers).json()
        assert data["username"] == "bob"
        assert [r["name"] for r in data["roles"]] == ["Employee"]
        assert {p["code"] for p in data["permissions"]} == {"user:list", "department:list"}

    def test_logout_revokes_token(self, api_client, bob_headers) -> None:
        resp = api_client.post("/api/v1/auth/logout", headers=bob_headers)
        assert resp.status_code == 200
        assert api_client.get("/api/v1/auth/profile", headers=bob_headers).status_code == 401

    def test_force_logout_requires_permission(self, api_client, bob_headers) -> None:
        resp = api_client.post("/api/v1/auth/force-logout/1", headers=bob_headers)
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "forbidden"

    def test_admin_force_logout(self, api_client, admin_headers) -> None:
        bob = login(api_client, "bob", BOB_PASSWORD)
        bob_id = api_client.get("/api/v1/auth/profile", headers=bob).json()["id"]

        resp = api_client.post(f"/api/v1/auth/force-logout/{bob_id}", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json()["user_id"] == bob_id

        assert api_client.get("/api/v1/auth/profile", headers=bob).status_code == 401
        # the admin's own session is unaffected
        assert api_client.get("/api/v1/auth/profile", headers=admin_headers).status_code == 200

    def test_force_logout_unknown_user(self, api_client, admin_headers) -> None:
        resp = api_client.post("/api/v1/auth/force-logout/9999", headers=admin_headers)
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "not_found"


class TestPasswordWhitespace:
    def test_padded_password_is_used_verbatim(self, api_client) -> None:
        api_client.app.state.rbac_admin.create_user("spacey", "  padded-password  ")

        resp = api_client.post("/api/v1/auth/login", json={"username": "spacey", "password": "  padded-password  "})
        assert resp.status_code == 200, resp.text

        resp = api_client.post("/api/v1/auth/login", json={"username": "spacey", "password": "padded-password"})
        assert resp.status_code == 401

    def test_padding_is_not_trimmed_off_a_real_password(self, api_client) -> None:
        resp = api_client.post("/api/v1/auth/login", json={"username": "bob", "password": f"  {BOB_PASSWORD}  "})
        assert resp.status_code == 401

    def test_username_is_trimmed(self, api_client) -> None:
        resp = api_client.post("/api/v1/auth/login", json={"username": "  bob ", "password": BOB_PASSWORD})
        assert resp.status_code == 200
