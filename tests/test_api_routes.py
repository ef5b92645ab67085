"""
tests/test_api_routes.py -- Integration tests for the /api/v1/users routes.

These tests exercise the full stack: FastAPI routing -> auth dependency
injection -> SessionManager -> UserStore -> envelope serialization. Unit
testing individual route functions would miss the exception handlers, the
cookie plumbing, and the camelCase wire format.

Coverage:
  - End-to-end: register -> login -> /me -> logout -> /me rejected
  - Login failures: wrong password 400 (session untouched), missing fields 401
  - Refresh: via cookie, via body, access token rejected, replay revokes
  - Change password and profile update, including conflicts
  - Envelope shape for success, domain errors, validation errors, and 404s

Fixtures used (from conftest.py):
  - client:          TestClient with an isolated store and an empty cookie jar
  - registered_user: alice@x.com / Secret123 registered through the API
"""

from __future__ import annotations

from fastapi.testclient import TestClient

USERS = "/api/v1/users"
ALICE_LOGIN = {"email": "alice@x.com", "password": "Secret123"}


def _login(client: TestClient, body: dict | None = None) -> dict:
    resp = client.post(f"{USERS}/login", json=body or ALICE_LOGIN)
    assert resp.status_code == 200, resp.text
    return resp.json()["data"]


def _assert_error(resp, status_code: int, message: str | None = None) -> dict:
    assert resp.status_code == status_code, resp.text
    body = resp.json()
    assert set(body) == {"statusCode", "data", "message", "errors", "success"}
    assert body["statusCode"] == status_code
    assert body["data"] is None
    assert body["success"] is False
    if message is not None:
        assert body["message"] == message
    return body


class TestEndToEnd:
    def test_register_login_me_logout(self, client: TestClient) -> None:
        """The full session lifecycle through cookies only."""
        body = {"fullName": "Alice", "email": "alice@x.com", "password": "Secret123"}
        resp = client.post(f"{USERS}/register", json=body)
        assert resp.status_code == 201
        assert resp.json()["message"] == "User registered successfully"
        assert "accessToken" not in client.cookies

        data = _login(client)
        assert data["accessToken"] and data["refreshToken"]
        assert data["user"]["email"] == "alice@x.com"

        me = client.get(f"{USERS}/me")
        assert me.status_code == 200
        assert me.json()["data"]["email"] == "alice@x.com"

        out = client.post(f"{USERS}/logout")
        assert out.status_code == 200
        assert out.json()["data"] == {}
        assert "accessToken" not in client.cookies
        assert "refreshToken" not in client.cookies

        _assert_error(client.get(f"{USERS}/me"), 401, "Unauthorized request")

    def test_logout_revokes_refresh_token(self, client: TestClient, registered_user: dict) -> None:
        refresh = _login(client)["refreshToken"]
        client.post(f"{USERS}/logout")
        _assert_error(client.post(f"{USERS}/refresh-token", json={"refreshToken": refresh}), 401)


class TestRegister:
    def test_response_is_sanitized(self, client: TestClient) -> None:
        payload = {"fullName": "Alice", "email": "Alice@X.com", "password": "Secret123"}
        resp = client.post(f"{USERS}/register", json=payload)
        body = resp.json()
        assert body["statusCode"] == 201
        assert body["success"] is True
        user = body["data"]
        assert user["email"] == "alice@x.com"
        assert user["avatarUrl"].startswith("https://api.dicebear.com/")
        assert not {"password", "passwordHash", "refreshToken", "refreshTokenHash"} & set(user)

    def test_missing_fields(self, client: TestClient) -> None:
        _assert_error(client.post(f"{USERS}/register", json={"email": "a@x.com"}), 400, "All fields are required")

    def test_duplicate_email(self, client: TestClient, registered_user: dict) -> None:
        resp = client.post(f"{USERS}/register", json={"fullName": "A2", "email": "alice@x.com", "password": "x"})
        _assert_error(resp, 409, "Email address already registered")

    def test_overlong_password_is_validation_error(self, client: TestClient) -> None:
        resp = client.post(f"{USERS}/register", json={"fullName": "A", "email": "a@x.com", "password": "p" * 73})
        body = _assert_error(resp, 400, "Request validation failed")
        assert body["errors"][0]["field"] == "password"

    def test_multibyte_password_over_72_bytes_is_validation_error(self, client: TestClient) -> None:
        """72 accented characters fit a character cap but are 144 bytes."""
        resp = client.post(f"{USERS}/register", json={"fullName": "A", "email": "a@x.com", "password": "\u00e9" * 72})
        body = _assert_error(resp, 400, "Request validation failed")
        assert body["errors"][0]["field"] == "password"

    def test_multibyte_password_at_72_bytes_registers_and_logs_in(self, client: TestClient) -> None:
        password = "\u00e9" * 36
        resp = client.post(f"{USERS}/register", json={"fullName": "A", "email": "a@x.com", "password": password})
        assert resp.status_code == 201, resp.text
        _login(client, {"email": "a@x.com", "password": password})


class TestLogin:
    def test_sets_hardened_cookies(self, client: TestClient, registered_user: dict) -> None:
        resp = client.post(f"{USERS}/login", json=ALICE_LOGIN)
        assert resp.headers["cache-control"] == "no-store"
        cookies = [c.lower() for c in resp.headers.get_list("set-cookie")]
        assert len(cookies) == 2
        for cookie in cookies:
            assert "httponly" in cookie
            assert "samesite=strict" in cookie

    def test_wrong_password(self, client: TestClient, registered_user: dict) -> None:
        _login(client)
        store = client.app.state.user_store
        before = store.get_by_email("alice@x.com").refresh_token_hash

        resp = client.post(f"{USERS}/login", json={"email": "alice@x.com", "password": "wrong"})
        _assert_error(resp, 400, "Invalid email or password")
        assert store.get_by_email("alice@x.com").refresh_token_hash == before

    def test_unknown_email_matches_wrong_password(self, client: TestClient, registered_user: dict) -> None:
        unknown = client.post(f"{USERS}/login", json={"email": "bob@x.com", "password": "Secret123"})
        wrong = client.post(f"{USERS}/login", json={"email": "alice@x.com", "password": "wrong"})
        assert unknown.status_code == wrong.status_code == 400
        assert unknown.json() == wrong.json()

    def test_missing_password(self, client: TestClient, registered_user: dict) -> None:
        _assert_error(client.post(f"{USERS}/login", json={"email": "alice@x.com"}), 401)


class TestBearerAuth:
    def test_bearer_header_authenticates(self, client: TestClient, registered_user: dict) -> None:
        access = _login(client)["accessToken"]
        client.cookies.clear()
        resp = client.get(f"{USERS}/me", headers={"Authorization": f"Bearer {access}"})
        assert resp.status_code == 200
        assert resp.json()["data"]["id"] == registered_user["id"]

    def test_refresh_token_as_bearer_rejected(self, client: TestClient, registered_user: dict) -> None:
        refresh = _login(client)["refreshToken"]
        client.cookies.clear()
        resp = client.get(f"{USERS}/me", headers={"Authorization": f"Bearer {refresh}"})
        _assert_error(resp, 401, "Invalid access token")


class TestRefresh:
    def test_via_cookie(self, client: TestClient, registered_user: dict) -> None:
        old = _login(client)["refreshToken"]
        resp = client.post(f"{USERS}/refresh-token")
        assert resp.status_code == 200, resp.text
        assert resp.headers["cache-control"] == "no-store"
        data = resp.json()["data"]
        assert data["refreshToken"] != old
        assert client.cookies["refreshToken"] == data["refreshToken"]

    def test_via_body(self, client: TestClient, registered_user: dict) -> None:
        old = _login(client)["refreshToken"]
        client.cookies.clear()
        resp = client.post(f"{USERS}/refresh-token", json={"refreshToken": old})
        assert resp.status_code == 200, resp.text
        assert resp.json()["message"] == "Access token refreshed"

    def test_access_token_rejected(self, client: TestClient, registered_user: dict) -> None:
        access = _login(client)["accessToken"]
        client.cookies.clear()
        resp = client.post(f"{USERS}/refresh-token", json={"refreshToken": access})
        _assert_error(resp, 401, "Invalid refresh token")

    def test_missing_token(self, client: TestClient) -> None:
        _assert_error(client.post(f"{USERS}/refresh-token"), 401, "Refresh token is required")

    def test_replay_revokes_session(self, client: TestClient, registered_user: dict) -> None:
        r1 = _login(client)["refreshToken"]
        client.cookies.clear()
        r2 = client.post(f"{USERS}/refresh-token", json={"refreshToken": r1}).json()["data"]["refreshToken"]
        client.cookies.clear()

        _assert_error(client.post(f"{USERS}/refresh-token", json={"refreshToken": r1}), 401)
        _assert_error(client.post(f"{USERS}/refresh-token", json={"refreshToken": r2}), 401)


class TestChangePassword:
    def test_change_revokes_and_new_password_works(self, client: TestClient, registered_user: dict) -> None:
        _login(client)
        body = {"oldPassword": "Secret123", "newPassword": "NewPass456", "confirmPassword": "NewPass456"}
        resp = client.post(f"{USERS}/change-password", json=body)
        assert resp.status_code == 200, resp.text
        assert "accessToken" not in client.cookies

        _assert_error(client.post(f"{USERS}/login", json=ALICE_LOGIN), 400)
        _login(client, {"email": "alice@x.com", "password": "NewPass456"})

    def test_wrong_old_password(self, client: TestClient, registered_user: dict) -> None:
        _login(client)
        body = {"oldPassword": "nope", "newPassword": "NewPass456", "confirmPassword": "NewPass456"}
        _assert_error(client.post(f"{USERS}/change-password", json=body), 400, "Old password is incorrect")

    def test_multibyte_new_password_over_72_bytes(self, client: TestClient, registered_user: dict) -> None:
        _login(client)
        long_password = "\u00e9" * 72
        body = {"oldPassword": "Secret123", "newPassword": long_password, "confirmPassword": long_password}
        _assert_error(client.post(f"{USERS}/change-password", json=body), 400, "Request validation failed")
        assert client.get(f"{USERS}/me").status_code == 200

    def test_requires_auth(self, client: TestClient) -> None:
        body = {"oldPassword": "a", "newPassword": "b", "confirmPassword": "b"}
        _assert_error(client.post(f"{USERS}/change-password", json=body), 401)


class TestUpdateProfile:
    def test_partial_update(self, client: TestClient, registered_user: dict) -> None:
        _login(client)
        resp = client.patch(f"{USERS}/me", json={"fullName": "Alice Smith"})
        assert resp.status_code == 200, resp.text
        data = resp.json()["data"]
        assert data["fullName"] == "Alice Smith"
        assert data["email"] == "alice@x.com"
        assert client.get(f"{USERS}/me").json()["data"]["fullName"] == "Alice Smith"

    def test_email_conflict(self, client: TestClient, registered_user: dict) -> None:
        client.post(f"{USERS}/register", json={"fullName": "Bob", "email": "bob@x.com", "password": "Secret123"})
        _login(client)
        _assert_error(client.patch(f"{USERS}/me", json={"email": "bob@x.com"}), 409)

    def test_empty_patch(self, client: TestClient, registered_user: dict) -> None:
        _login(client)
        _assert_error(client.patch(f"{USERS}/me", json={}), 400)


class TestErrorEnvelope:
    def test_unknown_route_uses_envelope(self, client: TestClient) -> None:
        _assert_error(client.get("/api/v1/nope"), 404)

    def test_malformed_json_is_validation_error(self, client: TestClient) -> None:
        resp = client.post(f"{USERS}/login", content=b"{not json", headers={"Content-Type": "application/json"})
        _assert_error(resp, 400, "Request validation failed")
