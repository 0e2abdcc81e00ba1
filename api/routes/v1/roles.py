"""
api/routes/v1/roles.py -- Role resource endpoints (mounted under /api/v1).

Every route here goes through the Authorization Gate: reads need role:read,
writes need the matching role:<action> flag.

Routes:
  GET    /api/v1/role/search
  GET    /api/v1/role/count
  GET    /api/v1/role/{id}
  POST   /api/v1/role
  PUT    /api/v1/role/{id}
  DELETE /api/v1/role/{id}                -- 204
  GET    /api/v1/role/{id}/permissions    -- {roleId, roleName, resourcesByType, permissions}
  PUT    /api/v1/role/{id}/permissions    -- merge {permissions: {key: bool}}
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Response

from api.models import (
    CountResponse,
    PermissionsResponse,
    PermissionsUpdate,
    RoleCreate,
    RoleResponse,
    RoleUpdate,
)
from auth.context import AuthContext
from auth.dependencies import get_auth, require_permission
from domains import roles as service

router = APIRouter(prefix="/role")

_can_read = require_permission("role", "read")
_can_create = require_permission("role", "create")
_can_update = require_permission("role", "update")
_can_delete = require_permission("role", "delete")


@router.get("/search", response_model=list[RoleResponse], dependencies=[Depends(_can_read)])
def search_roles(
    keyword: Optional[str] = Query(default=None, max_length=100),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    auth: AuthContext = Depends(get_auth),
) -> list[RoleResponse]:
    return [RoleResponse.from_role(r) for r in service.search_roles(auth.roles, keyword, limit, offset)]


@router.get("/count", response_model=CountResponse, dependencies=[Depends(_can_read)])
def count_roles(
    keyword: Optional[str] = Query(default=None, max_length=100),
    auth: AuthContext = Depends(get_auth),
) -> CountResponse:
    return CountResponse(total=service.count_roles(auth.roles, keyword))


@router.get("/{role_id}", response_model=RoleResponse, dependencies=[Depends(_can_read)])
def get_role(role_id: int, auth: AuthContext = Depends(get_auth)) -> RoleResponse:
    return RoleResponse.from_role(service.get_role(auth.roles, role_id))


@router.post("", response_model=RoleResponse, status_code=201, dependencies=[Depends(_can_create)])
def create_role(body: RoleCreate, auth: AuthContext = Depends(get_auth)) -> RoleResponse:
    role = service.create_role(auth.roles, body.name, body.description, body.permissions)
    return RoleResponse.from_role(role)


@router.put("/{role_id}", response_model=RoleResponse, dependencies=[Depends(_can_update)])
def update_role(role_id: int, body: RoleUpdate, auth: AuthContext = Depends(get_auth)) -> RoleResponse:
    return RoleResponse.from_role(service.update_role(auth.roles, role_id, body.model_dump(exclude_unset=True)))


@router.delete("/{role_id}", status_code=204, dependencies=[Depends(_can_delete)])
def delete_role(role_id: int, auth: AuthContext = Depends(get_auth)) -> Response:
    service.delete_role(auth.roles, role_id)
    return Response(status_code=204)


@router.get("/{role_id}/permissions", response_model=PermissionsResponse, dependencies=[Depends(_can_read)])
def get_role_permissions(role_id: int, auth: AuthContext = Depends(get_auth)) -> PermissionsResponse:
    return PermissionsResponse.model_validate(service.permissions_view(auth.roles, role_id))


@router.put("/{role_id}/permissions", response_model=PermissionsResponse, dependencies=[Depends(_can_update)])
def update_role_permissions(
    role_id: int, body: PermissionsUpdate, auth: AuthContext = Depends(get_auth)
) -> PermissionsResponse:
    service.update_role_permissions(auth.roles, role_id, body.permissions)
    return PermissionsResponse.model_validate(service.permissions_view(auth.roles, role_id))
