"""
api/routes/v1/auth.py -- Authentication endpoints (mounted under /api).

Routes:
  GET  /api/auth/github            -- OAuth phase REDIRECT
  GET  /api/auth/github/callback   -- OAuth phases CALLBACK + SESSION
  POST /api/register               -- local account; 201 {message, userId}
  POST /api/login                  -- password login; sets session cookie
  GET  /api/logout                 -- destroys session, clears cookies, redirects
  GET  /api/user                   -- current user (requires auth)

Security:
  POST /login is rate-limited per client address (api.limiter).
  authenticate_user() provides timing equalization -- use it, never inline.
  Cache-Control: no-store on login responses.
  OAuth failures never reach the client as text: the browser is redirected to
  {client_host}/login?error=<code>, and the exception detail is logged here.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy.exc import SQLAlchemyError

from api.limiter import LOGIN_RATE_LIMIT, limiter
from api.models import LoginRequest, LoginResponse, RegisterRequest, RegisterResponse, UserPublic
from auth.context import AuthContext
from auth.credentials import (
    authenticate_user,
    clear_auth_cookies,
    register_user,
    set_identity_cookie,
    set_session_cookie,
)
from auth.dependencies import get_auth, get_current_user, get_session_id
from auth.models import User
from auth.oauth import HandshakePhase, upsert_github_user
from core.config import Settings
from core.errors import AppError, NotFoundError

logger = logging.getLogger("commitstreams.api.auth")

# Auth policy:
# - GET  /api/auth/github[/callback]: public -- the handshake establishes identity
# - POST /api/register, /api/login:   public
# - GET  /api/logout:                 public -- a missing session is not an error
# - GET  /api/user:                   requires auth (get_current_user)
router = APIRouter()


def _login_error_redirect(settings: Settings, code: str) -> RedirectResponse:
    return RedirectResponse(f"{settings.client_host}/login?error={code}", status_code=302)


# ---------------------------------------------------------------------------
# GitHub OAuth
# ---------------------------------------------------------------------------


@router.get("/auth/github")
async def github_login(request: Request, auth: AuthContext = Depends(get_auth)):
    """Phase REDIRECT: send the browser to GitHub's consent page."""
    if auth.github is None:
        return _login_error_redirect(auth.settings, "github_disabled")
    redirect_uri = str(request.url_for("github_callback"))
    try:
        return await auth.github.begin(request, redirect_uri)
    except AppError as exc:
        logger.warning("GitHub OAuth %s failed: code=%s %s", HandshakePhase.REDIRECT.value, exc.code, exc.message)
        return _login_error_redirect(auth.settings, exc.code)


@router.get("/auth/github/callback", name="github_callback")
async def github_callback(request: Request, auth: AuthContext = Depends(get_auth)):
    """Phases CALLBACK and SESSION.

    Every failure path ends in a redirect to the login page with an opaque
    error code. The plaintext token lives only inside GitHubProfile for the
    duration of this request.
    """
    settings = auth.settings
    if auth.github is None:
        return _login_error_redirect(settings, "github_disabled")

    phase = HandshakePhase.CALLBACK
    try:
        profile = await auth.github.complete(request)
        phase = HandshakePhase.SESSION
        result = await run_in_threadpool(upsert_github_user, auth.users, auth.codec, profile)
        session_id = await run_in_threadpool(auth.sessions.create, result.user.id)
    except AppError as exc:
        logger.warning("GitHub OAuth %s failed: code=%s %s", phase.value, exc.code, exc.message)
        return _login_error_redirect(settings, exc.code)
    except SQLAlchemyError:
        logger.exception("GitHub OAuth %s failed: store error", phase.value)
        return _login_error_redirect(settings, "internal_error")

    logger.info(
        "GitHub login user_id=%s login=%s created=%s", result.user.id, result.user.username, result.created
    )
    resp = RedirectResponse(f"{settings.client_host}/login-success", status_code=302)
    set_session_cookie(resp, settings, session_id)
    set_identity_cookie(resp, settings, result.user.id)
    return resp


# ---------------------------------------------------------------------------
# Local strategy
# ---------------------------------------------------------------------------


@router.post("/register", response_model=RegisterResponse, status_code=201)
def register(body: RegisterRequest, auth: AuthContext = Depends(get_auth)) -> RegisterResponse:
    """Create a local account. The email doubles as the username."""
    user = register_user(auth.users, body.email, body.password)
    return RegisterResponse(message="User registered successfully", user_id=user.id)


@limiter.limit(LOGIN_RATE_LIMIT)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with username and password; set the session cookie.

    Uses authenticate_user() which includes timing equalization. Unknown user
    and wrong password produce the same 401 body.

    Any session the browser already carries is destroyed first, so a session
    id planted before login never becomes authenticated.
    """
    auth: AuthContext = request.app.state.auth
    user = authenticate_user(auth.users, body.username, body.password)

    auth.sessions.destroy(get_session_id(request))
    session_id = auth.sessions.create(user.id)
    full = auth.users.get_with_relations(user.id) or user

    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(message="Login successful", user=UserPublic.from_user(full)).model_dump(),
    )
    set_session_cookie(resp, auth.settings, session_id)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.get("/logout")
def logout(request: Request, auth: AuthContext = Depends(get_auth)) -> RedirectResponse:
    """End the session and drop the stored GitHub token, then go to the login page."""
    session_id = get_session_id(request)
    user_id = auth.sessions.resolve(session_id)
    if user_id is not None:
        auth.users.clear_auth_info(user_id)
        logger.info("Logout user_id=%s", user_id)
    auth.sessions.destroy(session_id)

    resp = RedirectResponse(f"{auth.settings.client_host}/login", status_code=302)
    clear_auth_cookies(resp, auth.settings)
    return resp


@router.get("/user", response_model=UserPublic)
def current_user(
    auth: AuthContext = Depends(get_auth),
    user: User = Depends(get_current_user),
) -> UserPublic:
    """Return the signed-in user with follower/following lists."""
    full = auth.users.get_with_relations(user.id)
    if full is None:
        raise NotFoundError("User not found")
    return UserPublic.from_user(full)
