"""
auth/credentials.py -- Password hashing, the local login strategy, and auth cookies.

Security design decisions:
  Passwords: bcrypt directly (no passlib wrapper). bcrypt salts every hash and
       checkpw compares in constant time. The _DUMMY_HASH constant enables
       timing equalization in authenticate_user() so response time does not
       reveal whether a username exists.

  Login errors: unknown user, OAuth-only user, wrong password and deactivated
       account all raise the same AuthenticationError message. Callers must not
       add detail that distinguishes them.

  Cookies: the session cookie and the identity cookie are both httpOnly,
       samesite=lax, and secure when SECURE_COOKIES is true (the default).

Layer rule: no imports from api/ or domains/.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import bcrypt
from sqlalchemy.exc import IntegrityError

from auth.models import User
from core.errors import AuthenticationError, ConflictError, NotFoundError

if TYPE_CHECKING:
    from auth.store import UserStore
    from core.config import Settings

logger = logging.getLogger("commitstreams.auth")

_BAD_CREDENTIALS = "Invalid username or password."

# bcrypt ignores input past 72 bytes (bcrypt 5 raises ValueError instead).
PASSWORD_MAX_BYTES = 72

# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    Callers keep plain within PASSWORD_MAX_BYTES when UTF-8 encoded;
    RegisterRequest and UserCreate enforce that at the API boundary.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones.
_DUMMY_HASH: str = hash_password("commitstreams_timing_dummy")


# ---------------------------------------------------------------------------
# Local strategy
# ---------------------------------------------------------------------------


def authenticate_user(store: UserStore, username: str, password: str) -> User:
    """Authenticate a username/password login with timing equalization.

    Always runs bcrypt exactly once whether or not the user exists:
    - Unknown username or OAuth-only user: bcrypt runs against _DUMMY_HASH
    - Otherwise: bcrypt runs against the real hash

    Returns the User on success. Raises AuthenticationError otherwise.
    """
    user = store.get_by_username(username)
    if user is None or user.hashed_password is None:
        verify_password(password, _DUMMY_HASH)
        raise AuthenticationError(_BAD_CREDENTIALS, code="bad_credentials")
    if not verify_password(password, user.hashed_password):
        raise AuthenticationError(_BAD_CREDENTIALS, code="bad_credentials")
    if user.is_deactivated:
        raise AuthenticationError(_BAD_CREDENTIALS, code="bad_credentials")
    store.update_last_login(user.id)
    return user


def register_user(store: UserStore, email: str, password: str) -> User:
    """Create a local account. The email doubles as the username.

    Raises ConflictError when the username is taken. The IntegrityError path
    also covers two concurrent registrations for the same email.
    """
    new_user = User(username=email, email=email, hashed_password=hash_password(password))
    try:
        user_id = store.create_user(new_user)
    except IntegrityError as exc:
        raise ConflictError("A user with that username already exists.") from exc
    logger.info("Registered local user id=%s", user_id)
    created = store.get_by_id(user_id)
    if created is None:
        raise NotFoundError("User was removed while it was being registered")
    return created


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_session_cookie(response, settings: Settings, session_id: str) -> None:
    """Write the opaque session id as an httpOnly cookie.

    max_age matches the server-side session TTL so both expire together.
    """
    response.set_cookie(
        settings.session_cookie_name,
        value=session_id,
        httponly=True,
        samesite="lax",
        secure=settings.secure_cookies,
        max_age=settings.session_ttl_seconds,
    )


def set_identity_cookie(response, settings: Settings, user_id: int) -> None:
    """Write the userId identity cookie the frontend reads after OAuth login."""
    response.set_cookie(
        settings.identity_cookie_name,
        value=str(user_id),
        httponly=True,
        samesite="lax",
        secure=settings.secure_cookies,
        max_age=settings.session_ttl_seconds,
    )


def clear_auth_cookies(response, settings: Settings) -> None:
    """Expire both cookies. Attributes must match the ones they were set with."""
    for name in (settings.session_cookie_name, settings.identity_cookie_name):
        response.delete_cookie(name, httponly=True, samesite="lax", secure=settings.secure_cookies)
