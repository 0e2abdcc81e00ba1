"""
domains/users.py -- User resource service: CRUD plus follow/unfollow.

Follow semantics:
  follow_user() is idempotent. The follow relation is one edge row per
  (follower, followed) pair guarded by a UNIQUE constraint; the follower's
  "following" list and the target's "followers" list are both read from that
  edge. A second call finds the edge already present and reports
  created=False instead of appending a duplicate.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy.exc import IntegrityError

from auth.credentials import hash_password
from auth.models import PRIVILEGED_FIELDS, PROFILE_FIELDS, User
from auth.sessions import SessionStore
from auth.store import UserStore
from core.errors import ConflictError, NotFoundError, ValidationError
from domains.common import store_guard

logger = logging.getLogger("commitstreams.domains.users")

# Boolean flags are NOT NULL columns; role_id may be cleared with None.
_NOT_NULL_FIELDS = PRIVILEGED_FIELDS - {"role_id"}


@dataclass
class FollowResult:
    follower_id: int
    followed_id: int
    created: bool  # False when the edge already existed (or, for unfollow, was already gone)


def search_users(users: UserStore, keyword: str | None, limit: int, offset: int) -> list[User]:
    with store_guard("search users"):
        return users.search(keyword, limit=limit, offset=offset)


def count_users(users: UserStore, keyword: str | None) -> int:
    with store_guard("count users"):
        return users.count(keyword)


def get_user(users: UserStore, user_id: int, with_relations: bool = False) -> User:
    with store_guard("get user"):
        user = users.get_with_relations(user_id) if with_relations else users.get_by_id(user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


def create_user(users: UserStore, data: dict[str, Any]) -> User:
    """Create a user from an admin request. password, if present, is hashed here."""
    fields = dict(data)
    password = fields.pop("password", None)
    user = User(**fields)
    if password:
        user.hashed_password = hash_password(password)
    with store_guard("create user"):
        try:
            user_id = users.create_user(user)
        except IntegrityError as exc:
            raise ConflictError("A user with that username already exists.") from exc
        created = users.get_with_relations(user_id)
    if created is None:
        raise NotFoundError("User was removed while it was being created")
    logger.info("create_user(): user created id=%s", user_id)
    return created


def update_user(users: UserStore, user_id: int, fields: dict[str, Any], privileged: bool) -> User:
    """Apply a profile update.

    Without privileged access only PROFILE_FIELDS may change; the flags and
    role_id need user:update. username is never writable.
    """
    allowed = PROFILE_FIELDS | PRIVILEGED_FIELDS if privileged else PROFILE_FIELDS
    rejected = sorted(set(fields) - allowed)
    if rejected:
        raise ValidationError(f"Fields not updatable: {', '.join(rejected)}")
    if not fields:
        raise ValidationError("No fields to update.")
    nulled = sorted(k for k in _NOT_NULL_FIELDS if k in fields and fields[k] is None)
    if nulled:
        raise ValidationError(f"Fields may not be null: {', '.join(nulled)}")
    with store_guard("update user"):
        if not users.update_user(user_id, **fields):
            raise NotFoundError("User not found")
        updated = users.get_with_relations(user_id)
    if updated is None:
        raise NotFoundError("User not found")
    logger.info("update_user(): user updated id=%s fields=%s", user_id, sorted(fields))
    return updated


def delete_user(users: UserStore, sessions: SessionStore, user_id: int) -> None:
    with store_guard("delete user"):
        if not users.delete_user(user_id):
            raise NotFoundError("User not found")
        sessions.destroy_for_user(user_id)
    logger.info("delete_user(): user deleted id=%s", user_id)


def follow_user(users: UserStore, caller_id: int, target_id: int) -> FollowResult:
    if caller_id == target_id:
        raise ValidationError("Cannot follow yourself")
    with store_guard("follow user"):
        if users.get_by_id(target_id) is None:
            raise NotFoundError("User not found")
        created = users.add_follow(caller_id, target_id)
    logger.info("follow_user(): %s -> %s created=%s", caller_id, target_id, created)
    return FollowResult(follower_id=caller_id, followed_id=target_id, created=created)


def unfollow_user(users: UserStore, caller_id: int, target_id: int) -> FollowResult:
    if caller_id == target_id:
        raise ValidationError("Cannot unfollow yourself")
    with store_guard("unfollow user"):
        if users.get_by_id(target_id) is None:
            raise NotFoundError("User not found")
        removed = users.remove_follow(caller_id, target_id)
    return FollowResult(follower_id=caller_id, followed_id=target_id, created=removed)
