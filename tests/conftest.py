"""
tests/conftest.py -- Shared test fixtures for CommitStreams tests.

This module provides:
  - memory_url(): a fresh named shared-memory SQLite URL
  - make_settings(): Settings for tests (no env, insecure cookies, no rate limit)
  - FakeGitHubClient: stand-in for the authlib client used by GitHubOAuth
  - client: TestClient around create_app(), lifespan included
  - register_and_login(): create a local user through the API and sign in

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker
thread. The named URI format (file:name?mode=memory&cache=shared&uri=true)
shares one in-memory instance across all connections in the same process.
Each URL carries a uuid so tests never see each other's rows.

Cookies: secure_cookies=False because TestClient talks plain http to
http://testserver, and httpx will not send a Secure cookie over http.
"""

from __future__ import annotations

import uuid
from collections.abc import Generator
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.responses import RedirectResponse
from fastapi.testclient import TestClient

from api.main import create_app
from auth.oauth import GitHubOAuth
from core.config import Settings

TEST_SECRET = "test-secret-key-0123456789abcdef-not-for-production"
CLIENT_HOST = "http://frontend.test"

GITHUB_PROFILE: dict[str, Any] = {
    "id": 583231,
    "login": "octocat",
    "node_id": "MDQ6VXNlcjU4MzIzMQ==",
    "html_url": "https://github.com/octocat",
    "url": "https://api.github.com/users/octocat",
    "name": "The Octocat",
    "avatar_url": "https://avatars.githubusercontent.com/u/583231?v=4",
    "company": "@github",
    "blog": "https://github.blog",
    "location": "San Francisco",
    "email": None,
    "hireable": None,
    "bio": None,
    "public_repos": 8,
    "public_gists": 8,
    "followers": 9000,
    "following": 9,
    "created_at": "2011-01-25T18:44:36Z",
    "updated_at": "2024-01-22T12:00:00Z",
}


def memory_url(name: str = "db") -> str:
    return f"sqlite:///file:test_{name}_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"


def make_settings(**overrides: Any) -> Settings:
    values: dict[str, Any] = {
        "secret_key": TEST_SECRET,
        "database_url": memory_url("app"),
        "client_host": CLIENT_HOST,
        "secure_cookies": False,
        "rate_limit_enabled": False,
        "github_client_id": "test-client-id",
        "github_client_secret": "test-client-secret",
        "session_purge_interval_seconds": 3600,
    }
    values.update(overrides)
    return Settings(**values)


class FakeGitHubClient:
    """Duck-typed authlib StarletteOAuth2App.

    profile is what GET /user returns; set token to {} or profile to {} to
    drive the failure branches.
    """

    def __init__(self, profile: dict[str, Any] | None = None, token: dict[str, Any] | None = None) -> None:
        self.profile = dict(GITHUB_PROFILE) if profile is None else profile
        self.token = {"access_token": "gho_test_token", "token_type": "bearer"} if token is None else token
        self.authorize_redirect = AsyncMock(
            side_effect=lambda request, redirect_uri: RedirectResponse(
                f"https://github.com/login/oauth/authorize?redirect_uri={redirect_uri}", status_code=302
            )
        )
        self.authorize_access_token = AsyncMock(side_effect=lambda request: self.token)
        self.get = AsyncMock(side_effect=self._get)

    async def _get(self, path: str, token: dict[str, Any] | None = None):
        resp = MagicMock()
        resp.raise_for_status.return_value = None
        resp.json.return_value = self.profile
        return resp


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def client(settings: Settings) -> Generator[TestClient, None, None]:
    """TestClient around a fresh app; redirects are not followed so tests can
    assert on Location headers.
    """
    app = create_app(settings)
    with TestClient(app, follow_redirects=False, raise_server_exceptions=True) as c:
        c.app.state.auth.github = GitHubOAuth(settings, client=FakeGitHubClient())
        yield c


def register_and_login(client: TestClient, email: str, password: str = "correct-horse-battery") -> int:
    """Register a local account and log in; the session cookie stays on client."""
    resp = client.post("/api/register", json={"email": email, "password": password})
    assert resp.status_code == 201, resp.text
    user_id = resp.json()["userId"]
    resp = client.post("/api/login", json={"username": email, "password": password})
    assert resp.status_code == 200, resp.text
    return user_id


def promote_to_admin(client: TestClient, user_id: int) -> None:
    client.app.state.auth.users.update_user(user_id, is_admin=True)
