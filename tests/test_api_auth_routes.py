"""
tests/test_api_auth_routes.py -- Integration tests for /api/v1/auth/* routes.

These tests exercise the full stack: FastAPI routing -> auth dependency
injection -> AuthService -> AccountStore/SessionStore -> response model
serialization.

Coverage:
  - register: 201 + cookie + token, 409 conflict, 400 weak/mismatch, 422 missing
  - login: 200 + cookie, identical 401 body for unknown email and wrong password
  - session transport: cookie and Authorization: Bearer both work
  - logout: always 200, token no longer accepted
  - protected routes: 401 without a session; /me, /profile, /password, /stats
  - /docs requires a session

Fixtures used (from conftest.py):
  - client: module-scoped TestClient with the cookie jar cleared per test
"""

from __future__ import annotations

import uuid

from fastapi.testclient import TestClient

from auth.dependencies import SESSION_COOKIE

PASSWORD = "Passw0rd"


def unique_identity() -> tuple[str, str]:
    suffix = uuid.uuid4().hex[:10]
    return f"user_{suffix}@example.com", f"user_{suffix}"


def register(client: TestClient, email: str | None = None, username: str | None = None, **overrides):
    default_email, default_username = unique_identity()
    body = {
        "full_name": "Test User",
        "email": email or default_email,
        "username": username or default_username,
        "password": PASSWORD,
        "confirm_password": PASSWORD,
    }
    body.update(overrides)
    return client.post("/api/v1/auth/register", json=body)


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


class TestRegisterRoute:
    def test_register_returns_201_with_token_and_cookie(self, client: TestClient) -> None:
        email, username = unique_identity()
        resp = register(client, email=email, username=username)
        assert resp.status_code == 201
        data = resp.json()
        assert data["token_type"] == "bearer"
        assert data["expires_in"] == 86400
        assert data["account"]["email"] == email
        assert data["account"]["username"] == username
        assert data["account"]["last_login_at"] is not None
        assert "password_hash" not in data["account"]
        assert resp.cookies.get(SESSION_COOKIE) == data["access_token"]
        assert resp.headers["cache-control"] == "no-store"

    def test_duplicate_email_is_409(self, client: TestClient) -> None:
        email, _ = unique_identity()
        assert register(client, email=email).status_code == 201
        client.cookies.clear()
        resp = register(client, email=email.upper())
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "conflict"
        assert resp.json()["error"]["detail"] == "email"

    def test_weak_password_is_400(self, client: TestClient) -> None:
        resp = register(client, password="password", confirm_password="password")
        assert resp.status_code == 400
        error = resp.json()["error"]
        assert error["code"] == "weak_password"
        assert "uppercase" in error["detail"]

    def test_password_mismatch_is_400(self, client: TestClient) -> None:
        resp = register(client, confirm_password="Passw0rd2")
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "password_mismatch"

    def test_missing_fields_is_422(self, client: TestClient) -> None:
        resp = client.post("/api/v1/auth/register", json={"email": "a@x.com"})
        assert resp.status_code == 422
        error = resp.json()["error"]
        assert error["code"] == "invalid_input"
        assert "full_name" in error["detail"]


class TestLoginRoute:
    def test_login_success(self, client: TestClient) -> None:
        email, _ = unique_identity()
        account_id = register(client, email=email).json()["account"]["id"]
        client.cookies.clear()

        resp = client.post("/api/v1/auth/login", json={"email": email, "password": PASSWORD})
        assert resp.status_code == 200
        assert resp.json()["account"]["id"] == account_id
        assert resp.cookies.get(SESSION_COOKIE) == resp.json()["access_token"]

    def test_unknown_email_and_wrong_password_look_identical(self, client: TestClient) -> None:
        email, _ = unique_identity()
        register(client, email=email)
        client.cookies.clear()

        unknown = client.post("/api/v1/auth/login", json={"email": "nobody@example.com", "password": PASSWORD})
        wrong = client.post("/api/v1/auth/login", json={"email": email, "password": "WrongPassw0rd"})
        assert unknown.status_code == wrong.status_code == 401
        assert unknown.json() == wrong.json()
        assert unknown.json()["error"]["code"] == "invalid_credentials"
        assert SESSION_COOKIE not in wrong.cookies

    def test_login_body_is_validated(self, client: TestClient) -> None:
        resp = client.post("/api/v1/auth/login", json={"email": "a@x.com"})
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "validation_error"


class TestSessionTransport:
    def test_cookie_authenticates(self, client: TestClient) -> None:
        email, _ = unique_identity()
        register(client, email=email)
        resp = client.get("/api/v1/auth/me")
        assert resp.status_code == 200
        assert resp.json()["email"] == email

    def test_bearer_authenticates(self, client: TestClient) -> None:
        token = register(client).json()["access_token"]
        client.cookies.clear()
        assert client.get("/api/v1/auth/me", headers=bearer(token)).status_code == 200

    def test_session_state_reports_restore_result(self, client: TestClient) -> None:
        anonymous = client.get("/api/v1/auth/session")
        assert anonymous.status_code == 200
        assert anonymous.json() == {"authenticated": False, "account": None}

        token = register(client).json()["access_token"]
        client.cookies.clear()
        state = client.get("/api/v1/auth/session", headers=bearer(token)).json()
        assert state["authenticated"] is True
        assert state["account"]["profile"]["skills"] == []

    def test_forged_token_is_anonymous(self, client: TestClient) -> None:
        resp = client.get("/api/v1/auth/session", headers=bearer("forged"))
        assert resp.json()["authenticated"] is False


class TestLogoutRoute:
    def test_logout_invalidates_token(self, client: TestClient) -> None:
        token = register(client).json()["access_token"]
        client.cookies.clear()

        resp = client.post("/api/v1/auth/logout", headers=bearer(token))
        assert resp.status_code == 200
        assert resp.json() == {"message": "Logged out."}
        assert client.get("/api/v1/auth/me", headers=bearer(token)).status_code == 401

    def test_logout_without_session_is_200(self, client: TestClient) -> None:
        assert client.post("/api/v1/auth/logout").status_code == 200
        assert client.post("/api/v1/auth/logout").status_code == 200

    def test_logout_clears_cookie(self, client: TestClient) -> None:
        register(client)
        assert client.cookies.get(SESSION_COOKIE)
        client.post("/api/v1/auth/logout")
        assert client.get("/api/v1/auth/me").status_code == 401


class TestProtectedRoutes:
    def test_unauthenticated_requests_get_401(self, client: TestClient) -> None:
        for method, path, body in (
            ("GET", "/api/v1/auth/me", None),
            ("GET", "/api/v1/auth/stats", None),
            ("PATCH", "/api/v1/auth/profile", {"bio": "x"}),
            ("POST", "/api/v1/auth/password", {"current_password": PASSWORD, "new_password": "N3wPassword"}),
        ):
            resp = client.request(method, path, json=body)
            assert resp.status_code == 401, path
            assert resp.json()["error"]["code"] == "unauthenticated"

    def test_profile_patch_merges(self, client: TestClient) -> None:
        token = register(client).json()["access_token"]
        client.cookies.clear()
        headers = bearer(token)

        client.patch("/api/v1/auth/profile", json={"bio": "Backend dev", "skills": ["Python"]}, headers=headers)
        resp = client.patch("/api/v1/auth/profile", json={"location": "Berlin"}, headers=headers)
        assert resp.status_code == 200
        assert resp.json() == {"avatar": None, "bio": "Backend dev", "skills": ["Python"], "location": "Berlin"}
        assert client.get("/api/v1/auth/me", headers=headers).json()["profile"]["location"] == "Berlin"

    def test_profile_patch_rejects_unknown_fields(self, client: TestClient) -> None:
        token = register(client).json()["access_token"]
        client.cookies.clear()
        resp = client.patch("/api/v1/auth/profile", json={"nickname": "x"}, headers=bearer(token))
        assert resp.status_code == 422

    def test_change_password(self, client: TestClient) -> None:
        email, _ = unique_identity()
        token = register(client, email=email).json()["access_token"]
        client.cookies.clear()

        weak = client.post(
            "/api/v1/auth/password",
            json={"current_password": PASSWORD, "new_password": "short"},
            headers=bearer(token),
        )
        assert weak.status_code == 400
        assert weak.json()["error"]["code"] == "weak_password"

        wrong = client.post(
            "/api/v1/auth/password",
            json={"current_password": "WrongPassw0rd", "new_password": "N3wPassword"},
            headers=bearer(token),
        )
        assert wrong.status_code == 401

        ok = client.post(
            "/api/v1/auth/password",
            json={"current_password": PASSWORD, "new_password": "N3wPassword"},
            headers=bearer(token),
        )
        assert ok.status_code == 200
        # The session that changed the password stays live.
        assert client.get("/api/v1/auth/me", headers=bearer(token)).status_code == 200

        client.cookies.clear()
        login = client.post("/api/v1/auth/login", json={"email": email, "password": "N3wPassword"})
        assert login.status_code == 200

    def test_stats(self, client: TestClient) -> None:
        token = register(client).json()["access_token"]
        client.cookies.clear()
        resp = client.get("/api/v1/auth/stats", headers=bearer(token))
        assert resp.status_code == 200
        data = resp.json()
        assert data["total_accounts"] >= 1
        assert data["days_since_registration"] == 0
        assert data["last_login_days"] == 0


class TestDocs:
    def test_docs_require_session(self, client: TestClient) -> None:
        assert client.get("/docs").status_code == 401

    def test_docs_with_session(self, client: TestClient) -> None:
        token = register(client).json()["access_token"]
        client.cookies.clear()
        assert client.get("/docs", headers=bearer(token)).status_code == 200
