"""Integration tests for the /api auth routes.

Covers:
  - register: 201 with userId, duplicate 409, password policy 422
  - login: session cookie, no-store, credentials never echoed; same 401 body
    for unknown user and wrong password
  - GET /api/user requires a session
  - logout destroys the session, drops the stored GitHub token, redirects
  - GitHub handshake: redirect, callback success, failure redirects
"""

from __future__ import annotations

from unittest.mock import AsyncMock

from authlib.integrations.starlette_client import OAuthError
from conftest import CLIENT_HOST, GITHUB_PROFILE, FakeGitHubClient, register_and_login

from auth.models import User
from auth.oauth import GitHubOAuth

_SECRET_KEYS = ("password", "hashed_password", "access_token", "access_token_iv")


def _assert_no_secrets(payload: dict) -> None:
    for key in _SECRET_KEYS:
        assert key not in payload


# ---------------------------------------------------------------------------
# Register / login
# ---------------------------------------------------------------------------


def test_register_returns_user_id(client):
    resp = client.post("/api/register", json={"email": "ada@example.com", "password": "correct-horse-battery"})
    assert resp.status_code == 201
    body = resp.json()
    assert body["message"] == "User registered successfully"
    assert isinstance(body["userId"], int)


def test_register_duplicate_is_conflict(client):
    payload = {"email": "ada@example.com", "password": "correct-horse-battery"}
    assert client.post("/api/register", json=payload).status_code == 201
    resp = client.post("/api/register", json=payload)
    assert resp.status_code == 409
    assert resp.json()["error"]["code"] == "conflict"


def test_register_short_password_rejected(client):
    resp = client.post("/api/register", json={"email": "ada@example.com", "password": "short"})
    assert resp.status_code == 422
    assert resp.json()["error"]["code"] == "validation_error"


def test_register_password_over_72_bytes_rejected(client):
    # 25 three-byte characters: 25 chars, 75 bytes
    resp = client.post("/api/register", json={"email": "ada@example.com", "password": "€" * 25})
    assert resp.status_code == 422


def test_register_invalid_email_rejected(client):
    resp = client.post("/api/register", json={"email": "not-an-email", "password": "correct-horse-battery"})
    assert resp.status_code == 422


def test_login_sets_session_cookie(client, settings):
    client.post("/api/register", json={"email": "ada@example.com", "password": "correct-horse-battery"})
    resp = client.post("/api/login", json={"username": "ada@example.com", "password": "correct-horse-battery"})

    assert resp.status_code == 200
    assert resp.headers["Cache-Control"] == "no-store"
    assert settings.session_cookie_name in resp.cookies
    body = resp.json()
    assert body["message"] == "Login successful"
    assert body["user"]["username"] == "ada@example.com"
    _assert_no_secrets(body["user"])
    assert "correct-horse-battery" not in resp.text


def test_login_wrong_password_and_unknown_user_look_the_same(client):
    client.post("/api/register", json={"email": "ada@example.com", "password": "correct-horse-battery"})
    wrong = client.post("/api/login", json={"username": "ada@example.com", "password": "wrong-password"})
    unknown = client.post("/api/login", json={"username": "nobody@example.com", "password": "wrong-password"})

    assert wrong.status_code == unknown.status_code == 401
    assert wrong.json() == unknown.json()
    assert wrong.json()["error"]["code"] == "bad_credentials"


def test_login_short_password_is_401_not_422(client):
    resp = client.post("/api/login", json={"username": "ada@example.com", "password": "x"})
    assert resp.status_code == 401


def test_login_replaces_existing_session(client, settings):
    register_and_login(client, "ada@example.com")
    first = client.cookies.get(settings.session_cookie_name)
    client.post("/api/login", json={"username": "ada@example.com", "password": "correct-horse-battery"})
    second = client.cookies.get(settings.session_cookie_name)

    assert first != second
    assert client.app.state.auth.sessions.resolve(first) is None


# ---------------------------------------------------------------------------
# Current user / logout
# ---------------------------------------------------------------------------


def test_current_user_requires_session(client):
    resp = client.get("/api/user")
    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == "unauthorized"


def test_current_user_with_session(client):
    user_id = register_and_login(client, "ada@example.com")
    resp = client.get("/api/user")
    assert resp.status_code == 200
    body = resp.json()
    assert body["id"] == user_id
    assert body["followers"] == [] and body["following"] == []
    _assert_no_secrets(body)


def test_garbage_session_cookie_is_401(client, settings):
    client.cookies.set(settings.session_cookie_name, "not-a-real-session")
    assert client.get("/api/user").status_code == 401


def test_logout_destroys_session_and_redirects(client, settings):
    register_and_login(client, "ada@example.com")
    session_id = client.cookies.get(settings.session_cookie_name)

    resp = client.get("/api/logout")

    assert resp.status_code == 302
    assert resp.headers["location"] == f"{CLIENT_HOST}/login"
    assert client.app.state.auth.sessions.resolve(session_id) is None
    assert client.get("/api/user").status_code == 401


def test_logout_without_session_still_redirects(client):
    resp = client.get("/api/logout")
    assert resp.status_code == 302
    assert resp.headers["location"] == f"{CLIENT_HOST}/login"


# ---------------------------------------------------------------------------
# GitHub OAuth handshake
# ---------------------------------------------------------------------------


def test_github_login_redirects_to_consent(client):
    resp = client.get("/api/auth/github")
    assert resp.status_code == 302
    assert resp.headers["location"].startswith("https://github.com/login/oauth/authorize")
    assert "/api/auth/github/callback" in resp.headers["location"]


def test_github_disabled_redirects_with_code(client):
    client.app.state.auth.github = None
    resp = client.get("/api/auth/github")
    assert resp.headers["location"] == f"{CLIENT_HOST}/login?error=github_disabled"


def test_github_callback_success(client, settings):
    resp = client.get("/api/auth/github/callback?code=abc&state=xyz")

    assert resp.status_code == 302
    assert resp.headers["location"] == f"{CLIENT_HOST}/login-success"
    assert settings.session_cookie_name in resp.cookies
    user_id = int(resp.cookies[settings.identity_cookie_name])

    me = client.get("/api/user").json()
    assert me["id"] == user_id
    assert me["username"] == "octocat"
    assert me["github_id"] == "583231"
    _assert_no_secrets(me)

    stored = client.app.state.auth.users.get_by_id(user_id)
    assert stored.access_token and stored.access_token != "gho_test_token"


def test_github_logout_drops_stored_token(client):
    client.get("/api/auth/github/callback?code=abc")
    user_id = client.get("/api/user").json()["id"]

    client.get("/api/logout")

    stored = client.app.state.auth.users.get_by_id(user_id)
    assert stored.access_token is None
    assert stored.access_token_iv is None


def test_github_callback_token_failure_redirects(client, settings):
    fake = FakeGitHubClient()
    fake.authorize_access_token = AsyncMock(side_effect=OAuthError(error="bad_verification_code"))
    client.app.state.auth.github = GitHubOAuth(settings, client=fake)

    resp = client.get("/api/auth/github/callback?code=bad")

    assert resp.status_code == 302
    assert resp.headers["location"] == f"{CLIENT_HOST}/login?error=token_exchange_failed"
    assert settings.session_cookie_name not in resp.cookies


def test_github_callback_username_taken(client):
    client.app.state.auth.users.create_user(User(username="octocat", hashed_password="x"))
    resp = client.get("/api/auth/github/callback?code=abc")
    assert resp.headers["location"] == f"{CLIENT_HOST}/login?error=username_taken"


def test_github_repeat_login_refreshes_profile_only(client, settings):
    client.get("/api/auth/github/callback?code=abc")
    first = client.get("/api/user").json()

    changed = FakeGitHubClient(
        profile={**GITHUB_PROFILE, "bio": "Updated bio", "followers": 9001, "node_id": "CHANGED"},
        token={"access_token": "gho_second"},
    )
    client.app.state.auth.github = GitHubOAuth(settings, client=changed)
    client.get("/api/auth/github/callback?code=def")
    second = client.get("/api/user").json()

    assert second["id"] == first["id"]
    assert second["bio"] == "Updated bio"
    assert second["followers_count"] == 9001
    assert second["node_id"] == first["node_id"]
    assert second["github_created_at"] == first["github_created_at"]
