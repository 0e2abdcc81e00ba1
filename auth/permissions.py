"""
auth/permissions.py -- Permission keys and the Authorization Gate decision.

Permission keys are "<resource>:<action>", for example "role:update". The
resource part must be one of RESOURCE_TYPES and the action one of ACTIONS;
anything else is rejected before it reaches the store, so a typo in an admin
request cannot create a flag that nothing will ever read.

The decision is fail-closed:
  deactivated caller        -> deny
  caller.is_admin           -> allow
  caller has no role        -> deny
  flag missing from role    -> deny
  flag present              -> its value (only a literal True allows)

Layer rule: no imports from api/ or domains/.
"""

from __future__ import annotations

from auth.models import Role, User
from core.errors import AuthorizationError, ValidationError

RESOURCE_TYPES: tuple[str, ...] = ("user", "role", "repository")
ACTIONS: tuple[str, ...] = ("create", "read", "update", "delete")


def permission_key(resource: str, action: str) -> str:
    """Build and validate a permission key."""
    if resource not in RESOURCE_TYPES:
        raise ValueError(f"Unknown resource type: {resource!r}")
    if action not in ACTIONS:
        raise ValueError(f"Unknown action: {action!r}")
    return f"{resource}:{action}"


def is_known_key(key: str) -> bool:
    resource, sep, action = key.partition(":")
    return bool(sep) and resource in RESOURCE_TYPES and action in ACTIONS


def validate_permission_map(permissions: dict[str, bool]) -> dict[str, bool]:
    """Reject unknown keys and non-boolean values. Returns the map unchanged."""
    unknown = sorted(k for k in permissions if not is_known_key(k))
    if unknown:
        raise ValidationError(f"Unknown permission keys: {', '.join(unknown)}")
    bad = sorted(k for k, v in permissions.items() if not isinstance(v, bool))
    if bad:
        raise ValidationError(f"Permission values must be booleans: {', '.join(bad)}")
    return permissions


def resources_by_type() -> dict[str, list[str]]:
    """Every permission key grouped by resource type, in a stable order."""
    return {resource: [f"{resource}:{action}" for action in ACTIONS] for resource in RESOURCE_TYPES}


def is_allowed(user: User, role: Role | None, key: str) -> bool:
    if user.is_deactivated:
        return False
    if user.is_admin:
        return True
    if role is None:
        return False
    return role.permissions.get(key) is True


def check_permission(user: User, role: Role | None, key: str) -> None:
    """Raise AuthorizationError unless is_allowed()."""
    if not is_allowed(user, role, key):
        raise AuthorizationError(f"Missing permission {key}")
