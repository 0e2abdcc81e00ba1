"""
domains/roles.py -- Role resource service and permission updates.

update_role_permissions() merges: keys present in the request are written,
keys absent from the request keep whatever value is stored, and keys absent
from both stay absent (which the gate reads as deny). There is no way to
delete a key through this call; set it to false instead.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.exc import IntegrityError

from auth.models import Role
from auth.permissions import resources_by_type, validate_permission_map
from auth.roles import RoleStore
from core.errors import ConflictError, NotFoundError, ValidationError
from domains.common import store_guard

logger = logging.getLogger("commitstreams.domains.roles")


def search_roles(roles: RoleStore, keyword: str | None, limit: int, offset: int) -> list[Role]:
    with store_guard("search roles"):
        return roles.search(keyword, limit=limit, offset=offset)


def count_roles(roles: RoleStore, keyword: str | None) -> int:
    with store_guard("count roles"):
        return roles.count(keyword)


def get_role(roles: RoleStore, role_id: int) -> Role:
    with store_guard("get role"):
        role = roles.get_role(role_id)
    if role is None:
        raise NotFoundError("Role not found")
    return role


def create_role(roles: RoleStore, name: str, description: str | None, permissions: dict[str, bool]) -> Role:
    validate_permission_map(permissions)
    with store_guard("create role"):
        try:
            role_id = roles.create_role(Role(name=name, description=description, permissions=permissions))
        except IntegrityError as exc:
            raise ConflictError("A role with that name already exists.") from exc
        created = roles.get_role(role_id)
    if created is None:
        raise NotFoundError("Role was removed while it was being created")
    logger.info("create_role(): role created id=%s name=%s", role_id, name)
    return created


def update_role(roles: RoleStore, role_id: int, fields: dict[str, Any]) -> Role:
    """Update name/description. Permissions go through update_role_permissions()."""
    if not fields:
        raise ValidationError("No fields to update.")
    with store_guard("update role"):
        try:
            found = roles.update_role(role_id, **fields)
        except IntegrityError as exc:
            raise ConflictError("A role with that name already exists.") from exc
        if not found:
            raise NotFoundError("Role not found")
        updated = roles.get_role(role_id)
    if updated is None:
        raise NotFoundError("Role not found")
    logger.info("update_role(): role updated id=%s", role_id)
    return updated


def delete_role(roles: RoleStore, role_id: int) -> None:
    with store_guard("delete role"):
        if not roles.delete_role(role_id):
            raise NotFoundError("Role not found")
    logger.info("delete_role(): role deleted id=%s", role_id)


def update_role_permissions(roles: RoleStore, role_id: int, permission_map: dict[str, bool]) -> Role:
    validate_permission_map(permission_map)
    with store_guard("update role permissions"):
        if not roles.merge_permissions(role_id, permission_map):
            raise NotFoundError("Role not found")
        updated = roles.get_role(role_id)
    if updated is None:
        raise NotFoundError("Role not found")
    logger.info("update_role_permissions(): role id=%s keys=%s", role_id, sorted(permission_map))
    return updated


def permissions_view(roles: RoleStore, role_id: int) -> dict[str, Any]:
    """Role permissions next to every grantable key, for the admin editor."""
    role = get_role(roles, role_id)
    return {
        "roleId": role.id,
        "roleName": role.name,
        "resourcesByType": resources_by_type(),
        "permissions": dict(role.permissions),
    }
