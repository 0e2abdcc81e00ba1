"""
api/routes/v1/users.py -- User resource endpoints (mounted under /api/v1).

Routes:
  GET    /api/v1/user/search        -- keyword search (requires auth)
  GET    /api/v1/user/count         -- keyword count (requires auth)
  GET    /api/v1/user/{id}          -- one user with follow lists (requires auth)
  POST   /api/v1/user               -- create (user:create)
  PUT    /api/v1/user/{id}          -- self (profile fields) or user:update
  DELETE /api/v1/user/{id}          -- delete (user:delete); 204
  GET    /api/v1/user/{id}/follow   -- caller follows user (requires auth)
  DELETE /api/v1/user/{id}/follow   -- caller unfollows user (requires auth)
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Response

from api.models import CountResponse, FollowResponse, UserCreate, UserPublic, UserUpdate
from auth.context import AuthContext
from auth.dependencies import get_auth, get_current_user, require_permission
from auth.models import User
from auth.permissions import is_allowed, permission_key
from core.errors import AuthorizationError
from domains import users as service

router = APIRouter(prefix="/user")

_USER_UPDATE = permission_key("user", "update")


@router.get("/search", response_model=list[UserPublic])
def search_users(
    keyword: Optional[str] = Query(default=None, max_length=100),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    auth: AuthContext = Depends(get_auth),
    _caller: User = Depends(get_current_user),
) -> list[UserPublic]:
    return [UserPublic.from_user(u) for u in service.search_users(auth.users, keyword, limit, offset)]


@router.get("/count", response_model=CountResponse)
def count_users(
    keyword: Optional[str] = Query(default=None, max_length=100),
    auth: AuthContext = Depends(get_auth),
    _caller: User = Depends(get_current_user),
) -> CountResponse:
    return CountResponse(total=service.count_users(auth.users, keyword))


@router.get("/{user_id}", response_model=UserPublic)
def get_user(
    user_id: int,
    auth: AuthContext = Depends(get_auth),
    _caller: User = Depends(get_current_user),
) -> UserPublic:
    return UserPublic.from_user(service.get_user(auth.users, user_id, with_relations=True))


@router.post("", response_model=UserPublic, status_code=201)
def create_user(
    body: UserCreate,
    auth: AuthContext = Depends(get_auth),
    _caller: User = Depends(require_permission("user", "create")),
) -> UserPublic:
    return UserPublic.from_user(service.create_user(auth.users, body.model_dump()))


@router.put("/{user_id}", response_model=UserPublic)
def update_user(
    user_id: int,
    body: UserUpdate,
    auth: AuthContext = Depends(get_auth),
    caller: User = Depends(get_current_user),
) -> UserPublic:
    """Update a profile.

    Callers may edit their own profile fields. Editing someone else, or any
    flag or role_id, needs user:update.
    """
    privileged = is_allowed(caller, auth.roles.get_role(caller.role_id), _USER_UPDATE)
    if not privileged and caller.id != user_id:
        raise AuthorizationError(f"Missing permission {_USER_UPDATE}")
    fields = body.model_dump(exclude_unset=True)
    return UserPublic.from_user(service.update_user(auth.users, user_id, fields, privileged=privileged))


@router.delete("/{user_id}", status_code=204)
def delete_user(
    user_id: int,
    auth: AuthContext = Depends(get_auth),
    _caller: User = Depends(require_permission("user", "delete")),
) -> Response:
    service.delete_user(auth.users, auth.sessions, user_id)
    return Response(status_code=204)


@router.get("/{user_id}/follow", response_model=FollowResponse)
def follow_user(
    user_id: int,
    auth: AuthContext = Depends(get_auth),
    caller: User = Depends(get_current_user),
) -> FollowResponse:
    result = service.follow_user(auth.users, caller.id, user_id)
    message = "User followed" if result.created else "Already following"
    return FollowResponse(message=message, created=result.created)


@router.delete("/{user_id}/follow", response_model=FollowResponse)
def unfollow_user(
    user_id: int,
    auth: AuthContext = Depends(get_auth),
    caller: User = Depends(get_current_user),
) -> FollowResponse:
    result = service.unfollow_user(auth.users, caller.id, user_id)
    message = "User unfollowed" if result.created else "Not following"
    return FollowResponse(message=message, created=result.created)
