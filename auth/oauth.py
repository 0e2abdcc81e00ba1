"""
auth/oauth.py -- GitHub OAuth strategy as an explicit three-phase handshake.

  Phase REDIRECT  begin()     -- send the browser to GitHub's consent page.
  Phase CALLBACK  complete()  -- exchange the code for a token, fetch the
                                 profile, return a typed GitHubProfile.
  Phase SESSION   (api/routes/v1/auth.py) -- upsert_github_user() then create
                                 a server-side session and set cookies.

Each phase either returns its typed result or raises ProviderError whose
code is opaque and safe to put in a redirect query string. The route turns
any failure into {client_host}/login?error=<code>; exception text is logged
server-side only.

Security notes:
  OAuth state (CSRF protection) is handled by authlib via Starlette
  SessionMiddleware. The state is stored in the signed session cookie between
  the redirect and the callback.

  The access token is encrypted with the TokenCodec before it reaches the
  store. It is never logged; log lines carry only the GitHub login and id.

  Every provider call runs under asyncio.wait_for with
  Settings.oauth_timeout_seconds. If the client disconnects, Starlette
  cancels the request task and the pending provider call with it.

The authlib registry is built per GitHubOAuth instance (one per app, held in
AuthContext) rather than at module import.

Layer rule: no imports from api/ or domains/.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

import httpx
from authlib.integrations.starlette_client import OAuth, OAuthError
from sqlalchemy.exc import IntegrityError

from auth.models import User
from core.errors import AuthenticationError, NotFoundError, ProviderError

if TYPE_CHECKING:
    from auth.crypto import TokenCodec
    from auth.store import UserStore
    from core.config import Settings

logger = logging.getLogger("commitstreams.auth.oauth")

GITHUB_AUTHORIZE_URL = "https://github.com/login/oauth/authorize"
GITHUB_ACCESS_TOKEN_URL = "https://github.com/login/oauth/access_token"  # noqa: S105 -- URL, not a password
GITHUB_API_BASE = "https://api.github.com/"


class HandshakePhase(str, enum.Enum):
    REDIRECT = "redirect"
    CALLBACK = "callback"
    SESSION = "session"


@dataclass
class GitHubProfile:
    """Result of the CALLBACK phase.

    access_token is plaintext and lives only in memory for the rest of the
    request. repr=False keeps it out of any accidental log of the object.
    """

    github_id: str
    login: str
    access_token: str = field(repr=False)
    raw: dict[str, Any] = field(default_factory=dict, repr=False)


@dataclass
class UpsertResult:
    """Result of the SESSION phase's store write."""

    user: User
    created: bool


class GitHubOAuth:
    """GitHub OAuth client wrapper.

    Usage:
        github = GitHubOAuth(settings)
        await github.begin(request, redirect_uri)     # RedirectResponse
        profile = await github.complete(request)       # GitHubProfile
        result = upsert_github_user(user_store, codec, profile)
    """

    def __init__(self, settings: Settings, client: Any = None) -> None:
        self.timeout = settings.oauth_timeout_seconds
        if client is not None:
            self.client = client
            return
        registry = OAuth()
        registry.register(
            name="github",
            client_id=settings.github_client_id,
            client_secret=settings.github_client_secret,
            access_token_url=GITHUB_ACCESS_TOKEN_URL,
            authorize_url=GITHUB_AUTHORIZE_URL,
            api_base_url=GITHUB_API_BASE,
            client_kwargs={"scope": settings.github_scope, "timeout": settings.oauth_timeout_seconds},
        )
        self.client = registry.create_client("github")
        logger.info("GitHub OAuth provider registered")

    async def begin(self, request, redirect_uri: str):
        """Phase REDIRECT: return authlib's redirect to the consent page."""
        try:
            return await asyncio.wait_for(self.client.authorize_redirect(request, redirect_uri), self.timeout)
        except asyncio.TimeoutError as exc:
            raise ProviderError("Timed out preparing GitHub redirect", code="timeout") from exc

    async def complete(self, request) -> GitHubProfile:
        """Phase CALLBACK: code -> token -> profile."""
        try:
            token = await asyncio.wait_for(self.client.authorize_access_token(request), self.timeout)
        except asyncio.TimeoutError as exc:
            raise ProviderError("GitHub token exchange timed out", code="timeout") from exc
        except (OAuthError, httpx.HTTPError) as exc:
            raise ProviderError(f"GitHub token exchange failed: {exc}", code="token_exchange_failed") from exc

        access_token = (token or {}).get("access_token")
        if not access_token:
            raise ProviderError("GitHub token response had no access_token", code="token_exchange_failed")

        try:
            resp = await asyncio.wait_for(self.client.get("user", token=token), self.timeout)
            resp.raise_for_status()
            profile = resp.json()
        except asyncio.TimeoutError as exc:
            raise ProviderError("GitHub profile fetch timed out", code="timeout") from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise ProviderError(f"GitHub profile fetch failed: {exc}", code="profile_fetch_failed") from exc

        if not isinstance(profile, dict) or not profile.get("id") or not profile.get("login"):
            raise ProviderError("GitHub profile is missing id or login", code="profile_incomplete")

        return GitHubProfile(github_id=str(profile["id"]), login=profile["login"], access_token=access_token, raw=profile)


# ---------------------------------------------------------------------------
# Profile mapping
# ---------------------------------------------------------------------------


def _refresh_fields(raw: dict[str, Any]) -> dict[str, Any]:
    """Description and stats -- the fields a repeat login overwrites (GITHUB_REFRESH_FIELDS)."""
    return {
        "display_name": raw.get("name"),
        "avatar_url": raw.get("avatar_url"),
        "company": raw.get("company"),
        "blog": raw.get("blog"),
        "location": raw.get("location"),
        "email": raw.get("email"),
        "hireable": raw.get("hireable"),
        "bio": raw.get("bio"),
        "public_repos": raw.get("public_repos"),
        "public_gists": raw.get("public_gists"),
        "followers_count": raw.get("followers"),
        "following_count": raw.get("following"),
        "github_updated_at": raw.get("updated_at"),
    }


def user_from_profile(profile: GitHubProfile) -> User:
    """Build a brand-new User from a GitHub profile (first login)."""
    raw = profile.raw
    return User(
        username=profile.login,
        github_id=profile.github_id,
        node_id=raw.get("node_id"),
        profile_url=raw.get("html_url"),
        api_url=raw.get("url"),
        github_created_at=raw.get("created_at"),
        is_verified=True,
        **_refresh_fields(raw),
    )


def upsert_github_user(store: UserStore, codec: TokenCodec, profile: GitHubProfile) -> UpsertResult:
    """Create or refresh the User for a GitHub profile.

    Existing user (matched by github_id): only the description/stats fields,
    the encrypted token, and last_login change. username, github_id, node_id,
    profile_url, api_url, github_created_at and every flag stay as they are.

    New user: username is the GitHub login. If a local account already holds
    that username the login is refused with ProviderError("username_taken").
    """
    ciphertext, iv = codec.encrypt(profile.access_token)
    now = datetime.now(timezone.utc).isoformat()

    existing = store.get_by_github_id(profile.github_id)
    if existing is None:
        new_user = user_from_profile(profile)
        new_user.access_token = ciphertext
        new_user.access_token_iv = iv
        new_user.last_login = now
        try:
            user_id = store.create_user(new_user)
        except IntegrityError as exc:
            # Either a concurrent first login for the same account won the
            # race, or a local user owns this username.
            existing = store.get_by_github_id(profile.github_id)
            if existing is None:
                raise ProviderError(
                    f"Username {profile.login!r} already belongs to a local account", code="username_taken"
                ) from exc
        else:
            created = store.get_by_id(user_id)
            if created is None:
                raise NotFoundError(f"GitHub user {profile.login!r} was removed during login", code="account_missing")
            logger.info("Created GitHub user login=%s github_id=%s", profile.login, profile.github_id)
            return UpsertResult(user=created, created=True)

    if existing.is_deactivated:
        raise AuthenticationError("Account is deactivated", code="account_disabled")

    store.update_user(
        existing.id,
        **_refresh_fields(profile.raw),
        access_token=ciphertext,
        access_token_iv=iv,
        last_login=now,
    )
    refreshed = store.get_by_id(existing.id)
    if refreshed is None:
        raise NotFoundError(f"GitHub user {existing.username!r} was removed during login", code="account_missing")
    logger.info("Refreshed GitHub user login=%s github_id=%s", existing.username, profile.github_id)
    return UpsertResult(user=refreshed, created=False)
