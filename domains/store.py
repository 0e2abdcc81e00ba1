"""
domains/store.py -- SQLAlchemy-backed persistence for cached GitHub repositories.

Uses SQLAlchemy Core (not ORM) so the dataclasses in domains/models.py remain
the authoritative domain representation. Swapping SQLite for PostgreSQL is a
connection string change, not a rewrite.

Pattern: Repository + Data Mapper. RepositoryStore is the repository;
_row_to_repository is the mapper. Route handlers never touch SQL directly.

Security: all queries use bound parameters. No f-strings in SQL.

Usage:
    store = RepositoryStore("sqlite:///commitstreams.db")
    repo_id = store.create_repository(repo)
    store.find_by_full_name("octocat/Hello-World")
    store.update_repository(repo_id, description="new")
    store.close()
"""

import json
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import (
    Boolean,
    Column,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    func,
    or_,
    select,
)
from sqlalchemy.engine import Engine

from auth.store import make_engine
from domains.models import Repository

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_repositories = Table(
    "repositories",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("github_id", Integer, unique=True),
    Column("node_id", String(64)),
    Column("name", String(255), nullable=False),
    Column("full_name", String(255), nullable=False, unique=True),
    Column("private", Boolean, nullable=False, default=False),
    Column("owner_login", String(255)),
    Column("owner_id", Integer),
    Column("owner_avatar_url", Text),
    Column("owner_type", String(30)),
    Column("html_url", Text),
    Column("description", Text),
    Column("fork", Boolean, nullable=False, default=False),
    Column("url", Text),
    Column("created_at", String(32)),
    Column("updated_at", String(32)),
    Column("pushed_at", String(32)),
    Column("homepage", Text),
    Column("size", Integer),
    Column("stargazers_count", Integer),
    Column("watchers_count", Integer),
    Column("language", String(100)),
    Column("languages", Text),  # JSON object serialized as text
    Column("forks_count", Integer),
    Column("archived", Boolean, nullable=False, default=False),
    Column("disabled", Boolean, nullable=False, default=False),
    Column("open_issues_count", Integer),
    Column("license_key", String(64)),
    Column("license_name", String(255)),
    Column("license_spdx_id", String(64)),
    Column("license_url", Text),
    Column("license_node_id", String(64)),
    Column("topics", Text),  # JSON array serialized as text
    Column("visibility", String(30)),
    Column("default_branch", String(255)),
    Column("created_by", Integer),
    Column("synced_at", String(32), nullable=False),
)

_JSON_COLUMNS = ("languages", "topics")
_WRITABLE = frozenset(c.name for c in _repositories.columns) - {"id", "synced_at"}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _encode(fields: dict[str, Any]) -> dict[str, Any]:
    """Serialize JSON columns. Other values pass through unchanged."""
    out = dict(fields)
    for col in _JSON_COLUMNS:
        if col in out and out[col] is not None:
            out[col] = json.dumps(out[col])
    return out


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class RepositoryStore:
    """Persistence for Repository records."""

    def __init__(self, db_url: str) -> None:
        self.engine: Engine = make_engine(db_url)
        metadata.create_all(self.engine)

    def create_repository(self, repo: Repository) -> int:
        """Insert a repository and return its local id.

        Raises sqlalchemy.exc.IntegrityError if github_id or full_name is
        already present.
        """
        values = {k: v for k, v in _repository_values(repo).items() if k in _WRITABLE}
        with self.engine.begin() as conn:
            result = conn.execute(_repositories.insert().values(**_encode(values), synced_at=_now_iso()))
            return result.inserted_primary_key[0]

    def get_repository(self, repo_id: int) -> Optional[Repository]:
        with self.engine.connect() as conn:
            row = conn.execute(_repositories.select().where(_repositories.c.id == repo_id)).fetchone()
        return _row_to_repository(row) if row is not None else None

    def find_by_github_id(self, github_id: int) -> Optional[Repository]:
        with self.engine.connect() as conn:
            row = conn.execute(_repositories.select().where(_repositories.c.github_id == github_id)).fetchone()
        return _row_to_repository(row) if row is not None else None

    def find_by_full_name(self, full_name: str) -> Optional[Repository]:
        with self.engine.connect() as conn:
            row = conn.execute(_repositories.select().where(_repositories.c.full_name == full_name)).fetchone()
        return _row_to_repository(row) if row is not None else None

    def search(self, keyword: Optional[str] = None, limit: int = 50, offset: int = 0) -> list[Repository]:
        with self.engine.connect() as conn:
            rows = conn.execute(
                _repositories.select()
                .where(_search_clause(keyword))
                .order_by(_repositories.c.full_name)
                .limit(limit)
                .offset(offset)
            ).fetchall()
        return [_row_to_repository(r) for r in rows]

    def count(self, keyword: Optional[str] = None) -> int:
        with self.engine.connect() as conn:
            return (
                conn.execute(select(func.count()).select_from(_repositories).where(_search_clause(keyword))).scalar()
                or 0
            )

    def update_repository(self, repo_id: int, **fields: Any) -> bool:
        """Overwrite the given fields in one statement and stamp synced_at.

        Returns False if repo_id was not found.
        """
        unknown = set(fields) - _WRITABLE
        if unknown:
            raise ValueError(f"Unknown repository fields: {sorted(unknown)!r}")
        with self.engine.begin() as conn:
            result = conn.execute(
                _repositories.update()
                .where(_repositories.c.id == repo_id)
                .values(**_encode(fields), synced_at=_now_iso())
            )
        return result.rowcount > 0

    def delete_repository(self, repo_id: int) -> bool:
        with self.engine.begin() as conn:
            result = conn.execute(_repositories.delete().where(_repositories.c.id == repo_id))
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _search_clause(keyword: Optional[str]):
    if not keyword:
        return _repositories.c.id.isnot(None)
    pattern = f"%{keyword}%"
    return or_(_repositories.c.full_name.ilike(pattern), _repositories.c.description.ilike(pattern))


def _repository_values(repo: Repository) -> dict[str, Any]:
    return {c: getattr(repo, c) for c in _WRITABLE}


def _row_to_repository(row) -> Repository:
    m = dict(row._mapping)
    m["languages"] = json.loads(m["languages"]) if m["languages"] else {}
    m["topics"] = json.loads(m["topics"]) if m["topics"] else []
    for col in ("private", "fork", "archived", "disabled"):
        m[col] = bool(m[col])
    return Repository(**m)
