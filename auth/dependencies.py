"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication and authorization.

Identity comes from exactly one place: the server-side session named by the
session cookie. The session store maps it to a user id; the user store turns
that into a User. Deactivated users resolve to None.

try_get_current_user() is the soft variant (returns None on failure).
get_current_user() wraps it and raises AuthenticationError (401).
require_permission(resource, action) is the Authorization Gate: 401 without a
session, 403 (AuthorizationError) when the caller's role lacks the flag.

Layer rule: no imports from api/ or domains/.
  auth/dependencies.py may import from fastapi (for Depends/Request)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from collections.abc import Callable

from fastapi import Depends, Request

from auth.context import AuthContext
from auth.models import User
from auth.permissions import check_permission, permission_key
from core.errors import AuthenticationError


def get_auth(request: Request) -> AuthContext:
    """Return the AuthContext built by the app lifespan."""
    return request.app.state.auth


def get_session_id(request: Request) -> str | None:
    auth: AuthContext = request.app.state.auth
    return request.cookies.get(auth.settings.session_cookie_name)


def try_get_current_user(request: Request) -> User | None:
    """Resolve the session cookie to an active User, or None.

    Never raises for a missing, unknown, or expired session -- callers that
    need a hard 401 should use get_current_user().
    """
    auth: AuthContext = request.app.state.auth
    user_id = auth.sessions.resolve(get_session_id(request))
    if user_id is None:
        return None
    user = auth.users.get_by_id(user_id)
    if user is None or user.is_deactivated:
        return None
    return user


def get_current_user(request: Request) -> User:
    """Require authentication. Raises AuthenticationError (401) otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(user: User = Depends(get_current_user)): ...
    """
    user = try_get_current_user(request)
    if user is None:
        raise AuthenticationError()
    return user


def require_permission(resource: str, action: str) -> Callable[..., User]:
    """Build a dependency that enforces "<resource>:<action>" for the caller.

    The key is validated once, when the route module is imported, so a typo
    in a route declaration fails at startup rather than denying at runtime.

        @router.post("/", dependencies=[Depends(require_permission("role", "create"))])
    """
    key = permission_key(resource, action)

    def dependency(request: Request, user: User = Depends(get_current_user)) -> User:
        auth: AuthContext = request.app.state.auth
        role = auth.roles.get_role(user.role_id)
        check_permission(user, role, key)
        return user

    dependency.__name__ = f"require_{resource}_{action}"
    return dependency
