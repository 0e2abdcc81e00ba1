"""
auth/roles.py -- SQLAlchemy Core persistence for roles and their permission flags.

Permissions are stored one row per (role_id, key) with UNIQUE(role_id, key)
rather than as a serialized map on the role row. That makes a permission
update a set of per-key upserts inside one transaction: concurrent updates
touching different keys both land, and nobody has to read the whole map,
modify it in Python, and write it back.

Layer rule: no imports from api/ or domains/.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import (
    Boolean,
    Column,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    func,
    or_,
    select,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.models import Role
from auth.store import make_engine

_metadata = MetaData()

_roles = Table(
    "roles",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(100), nullable=False, unique=True),
    Column("description", Text),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_role_permissions = Table(
    "role_permissions",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("role_id", Integer, nullable=False, index=True),
    Column("key", String(64), nullable=False),
    Column("allowed", Boolean, nullable=False),
    UniqueConstraint("role_id", "key", name="uq_role_permission"),
)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class RoleStore:
    """Repository for Role entities.

    Usage:
        roles = RoleStore("sqlite:///commitstreams.db")
        rid = roles.create_role(Role(name="maintainer", permissions={"repository:create": True}))
        roles.merge_permissions(rid, {"repository:delete": False})
        roles.get_role(rid).permissions
        # {"repository:create": True, "repository:delete": False}
    """

    def __init__(self, db_url: str) -> None:
        self.engine: Engine = make_engine(db_url)
        _metadata.create_all(self.engine)

    def create_role(self, role: Role) -> int:
        """Insert a role and its initial permission rows in one transaction.

        Raises sqlalchemy.exc.IntegrityError if the name is taken.
        """
        now = _now_iso()
        with self.engine.begin() as conn:
            result = conn.execute(
                _roles.insert().values(name=role.name, description=role.description, created_at=now, updated_at=now)
            )
            role_id = result.inserted_primary_key[0]
            if role.permissions:
                conn.execute(
                    _role_permissions.insert(),
                    [{"role_id": role_id, "key": k, "allowed": v} for k, v in role.permissions.items()],
                )
        return role_id

    def get_role(self, role_id: int | None) -> Role | None:
        if role_id is None:
            return None
        with self.engine.connect() as conn:
            row = conn.execute(_roles.select().where(_roles.c.id == role_id)).fetchone()
            if row is None:
                return None
            perms = conn.execute(
                select(_role_permissions.c.key, _role_permissions.c.allowed).where(
                    _role_permissions.c.role_id == role_id
                )
            ).fetchall()
        return _row_to_role(row, {k: bool(v) for k, v in perms})

    def search(self, keyword: str | None = None, limit: int = 50, offset: int = 0) -> list[Role]:
        with self.engine.connect() as conn:
            rows = conn.execute(
                _roles.select().where(_search_clause(keyword)).order_by(_roles.c.name).limit(limit).offset(offset)
            ).fetchall()
            ids = [r.id for r in rows]
            perm_rows = (
                conn.execute(
                    select(_role_permissions.c.role_id, _role_permissions.c.key, _role_permissions.c.allowed).where(
                        _role_permissions.c.role_id.in_(ids)
                    )
                ).fetchall()
                if ids
                else []
            )
        perms: dict[int, dict[str, bool]] = {rid: {} for rid in ids}
        for rid, key, allowed in perm_rows:
            perms[rid][key] = bool(allowed)
        return [_row_to_role(r, perms[r.id]) for r in rows]

    def count(self, keyword: str | None = None) -> int:
        with self.engine.connect() as conn:
            return conn.execute(select(func.count()).select_from(_roles).where(_search_clause(keyword))).scalar() or 0

    def update_role(self, role_id: int, **fields: Any) -> bool:
        """Update name and/or description. Returns False if role_id was not found."""
        unknown = set(fields) - {"name", "description"}
        if unknown:
            raise ValueError(f"Unknown role fields: {sorted(unknown)!r}")
        with self.engine.begin() as conn:
            result = conn.execute(_roles.update().where(_roles.c.id == role_id).values(**fields, updated_at=_now_iso()))
        return result.rowcount > 0

    def delete_role(self, role_id: int) -> bool:
        """Delete a role and its permission rows together.

        Users still pointing at the role keep the dangling role_id; the gate
        finds no role for them and denies, which is the fail-closed outcome.
        """
        with self.engine.begin() as conn:
            conn.execute(_role_permissions.delete().where(_role_permissions.c.role_id == role_id))
            result = conn.execute(_roles.delete().where(_roles.c.id == role_id))
        return result.rowcount > 0

    def merge_permissions(self, role_id: int, permissions: dict[str, bool]) -> bool:
        """Upsert the given keys; keys not mentioned keep their stored value.

        Returns False if the role does not exist. One transaction: either
        every key in the map is written or none is. If a concurrent writer
        inserts the same new key first, the unique constraint fires and the
        merge is retried once -- the retry takes the update path for that key.
        """
        try:
            return self._merge_once(role_id, permissions)
        except IntegrityError:
            return self._merge_once(role_id, permissions)

    def _merge_once(self, role_id: int, permissions: dict[str, bool]) -> bool:
        with self.engine.begin() as conn:
            exists = conn.execute(select(_roles.c.id).where(_roles.c.id == role_id)).fetchone()
            if exists is None:
                return False
            for key, allowed in permissions.items():
                result = conn.execute(
                    _role_permissions.update()
                    .where((_role_permissions.c.role_id == role_id) & (_role_permissions.c.key == key))
                    .values(allowed=allowed)
                )
                if result.rowcount == 0:
                    conn.execute(_role_permissions.insert().values(role_id=role_id, key=key, allowed=allowed))
            conn.execute(_roles.update().where(_roles.c.id == role_id).values(updated_at=_now_iso()))
        return True

    def close(self) -> None:
        self.engine.dispose()


def _search_clause(keyword: str | None):
    if not keyword:
        return _roles.c.id.isnot(None)
    pattern = f"%{keyword}%"
    return or_(_roles.c.name.ilike(pattern), _roles.c.description.ilike(pattern))


def _row_to_role(row, permissions: dict[str, bool]) -> Role:
    return Role(
        id=row.id,
        name=row.name,
        description=row.description,
        permissions=permissions,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
