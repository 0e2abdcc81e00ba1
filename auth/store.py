"""
auth/store.py -- SQLAlchemy Core persistence layer for users (the Credential Store).

Pattern: Repository + Data Mapper (same as domains/store.py).
UserStore is the repository; _row_to_user / _row_to_edge are the mappers.
Route and service code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

Concurrency:
  Every mutation is one statement or one transaction. Follow edges rely on
  UNIQUE(follower_id, followed_id): a repeat follow hits the constraint and is
  reported as "already following" instead of appending a duplicate, so two
  concurrent follow requests still leave exactly one edge.

  UNIQUE(github_id) lets every local user keep github_id NULL (NULLs are
  distinct under UNIQUE) while two concurrent first logins for the same
  GitHub account cannot create two rows: the loser gets IntegrityError and
  the OAuth upsert retries as an update.

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
    create_engine,
    event,
    func,
    or_,
    select,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.models import FollowEdge, User

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(255), nullable=False, unique=True),
    Column("hashed_password", Text),  # NULL for OAuth-only users
    # GitHub identity
    Column("github_id", String(64), unique=True),
    Column("node_id", String(64)),
    Column("display_name", String(255)),
    Column("profile_url", Text),
    Column("api_url", Text),
    # GitHub profile
    Column("avatar_url", Text),
    Column("company", String(255)),
    Column("blog", Text),
    Column("location", String(255)),
    Column("email", String(255)),
    Column("hireable", Boolean),
    Column("bio", Text),
    Column("public_repos", Integer),
    Column("public_gists", Integer),
    Column("followers_count", Integer),
    Column("following_count", Integer),
    Column("github_created_at", String(32)),
    Column("github_updated_at", String(32)),
    # Credentials and access
    Column("access_token", Text),  # AES-GCM ciphertext, hex
    Column("access_token_iv", String(64)),  # nonce, hex
    Column("role_id", Integer),
    Column("is_admin", Boolean, nullable=False, default=False),
    Column("is_verified", Boolean, nullable=False, default=False),
    Column("is_deactivated", Boolean, nullable=False, default=False),
    Column("is_demo", Boolean, nullable=False, default=False),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    Column("last_login", String(32)),
)

_user_follows = Table(
    "user_follows",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("follower_id", Integer, nullable=False, index=True),
    Column("followed_id", Integer, nullable=False, index=True),
    Column("created_at", String(32), nullable=False),
    UniqueConstraint("follower_id", "followed_id", name="uq_user_follow"),
)

_repository_follows = Table(
    "repository_follows",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, nullable=False, index=True),
    Column("repository_id", Integer, nullable=False, index=True),
    Column("created_at", String(32), nullable=False),
    UniqueConstraint("user_id", "repository_id", name="uq_repository_follow"),
)

# Columns a caller may write through create_user / update_user.
_WRITABLE = frozenset(c.name for c in _users.columns) - {"id", "created_at", "updated_at"}


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def make_engine(db_url: str) -> Engine:
    """Create an engine with the SQLite tweaks every store needs."""
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite") and ":memory:" not in db_url and "mode=memory" not in db_url:
        event.listen(engine, "connect", _set_wal_mode)
    return engine


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User entities and their follow edges.

    Usage:
        store = UserStore("sqlite:///commitstreams.db")
        uid = store.create_user(User(username="alice", hashed_password=hash_password("secret")))
        user = store.get_by_username("alice")
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        self.engine: Engine = make_engine(db_url)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # User queries
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if the username already exists.
        Callers turn that into ConflictError.
        """
        now = _now_iso()
        values = {k: v for k, v in _user_values(user).items() if k in _WRITABLE}
        with self.engine.begin() as conn:
            result = conn.execute(_users.insert().values(**values, created_at=now, updated_at=now))
            return result.inserted_primary_key[0]

    def get_by_id(self, user_id: int) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_username(self, username: str) -> User | None:
        """Look up a user by exact username (case-sensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.username == username)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_github_id(self, github_id: str) -> User | None:
        """Look up a user by GitHub numeric id (stored as text)."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.github_id == github_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_with_relations(self, user_id: int) -> User | None:
        """Like get_by_id(), plus followers, following and followed repositories."""
        user = self.get_by_id(user_id)
        if user is None:
            return None
        with self.engine.connect() as conn:
            followers = conn.execute(
                select(_user_follows.c.follower_id, _user_follows.c.created_at)
                .where(_user_follows.c.followed_id == user_id)
                .order_by(_user_follows.c.created_at)
            ).fetchall()
            following = conn.execute(
                select(_user_follows.c.followed_id, _user_follows.c.created_at)
                .where(_user_follows.c.follower_id == user_id)
                .order_by(_user_follows.c.created_at)
            ).fetchall()
            repos = conn.execute(
                select(_repository_follows.c.repository_id, _repository_follows.c.created_at)
                .where(_repository_follows.c.user_id == user_id)
                .order_by(_repository_follows.c.created_at)
            ).fetchall()
        user.followers = [_row_to_edge(r) for r in followers]
        user.following = [_row_to_edge(r) for r in following]
        user.following_repositories = [_row_to_edge(r) for r in repos]
        return user

    def search(self, keyword: str | None = None, limit: int = 50, offset: int = 0) -> list[User]:
        """Return users whose username or display name contains keyword, ordered by username."""
        stmt = _users.select().where(_search_clause(keyword)).order_by(_users.c.username).limit(limit).offset(offset)
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return [_row_to_user(r) for r in rows]

    def count(self, keyword: str | None = None) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_users).where(_search_clause(keyword))).scalar()
        return result or 0

    def update_user(self, user_id: int, **fields: Any) -> bool:
        """Update fields on an existing user in one statement.

        Unknown field names raise ValueError -- column names never come from
        raw user input, but a typo in a caller should fail loudly.

        Returns True if a row was updated, False if user_id was not found.
        """
        unknown = set(fields) - _WRITABLE
        if unknown:
            raise ValueError(f"Unknown user fields: {sorted(unknown)!r}")
        if "username" in fields:
            raise ValueError("username is immutable")
        with self.engine.begin() as conn:
            result = conn.execute(
                _users.update().where(_users.c.id == user_id).values(**fields, updated_at=_now_iso())
            )
        return result.rowcount > 0

    def update_last_login(self, user_id: int) -> None:
        """Stamp the current UTC timestamp as last_login for the given user."""
        with self.engine.begin() as conn:
            conn.execute(_users.update().where(_users.c.id == user_id).values(last_login=_now_iso()))

    def clear_auth_info(self, user_id: int) -> None:
        """Drop the stored OAuth token. Called on logout."""
        with self.engine.begin() as conn:
            conn.execute(
                _users.update()
                .where(_users.c.id == user_id)
                .values(access_token=None, access_token_iv=None, updated_at=_now_iso())
            )

    def delete_user(self, user_id: int) -> bool:
        """Permanently delete a user and every follow edge touching it.

        One transaction: the edges and the user row disappear together, so no
        reader ever sees an edge pointing at a deleted user.
        """
        with self.engine.begin() as conn:
            conn.execute(
                _user_follows.delete().where(
                    or_(_user_follows.c.follower_id == user_id, _user_follows.c.followed_id == user_id)
                )
            )
            conn.execute(_repository_follows.delete().where(_repository_follows.c.user_id == user_id))
            result = conn.execute(_users.delete().where(_users.c.id == user_id))
        return result.rowcount > 0

    def count_users(self) -> int:
        with self.engine.connect() as conn:
            return conn.execute(select(func.count()).select_from(_users)).scalar() or 0

    # ------------------------------------------------------------------
    # Follow edges
    # ------------------------------------------------------------------

    def add_follow(self, follower_id: int, followed_id: int) -> bool:
        """Insert a follow edge. Returns False if it already existed."""
        try:
            with self.engine.begin() as conn:
                conn.execute(
                    _user_follows.insert().values(
                        follower_id=follower_id, followed_id=followed_id, created_at=_now_iso()
                    )
                )
        except IntegrityError:
            return False
        return True

    def remove_follow(self, follower_id: int, followed_id: int) -> bool:
        with self.engine.begin() as conn:
            result = conn.execute(
                _user_follows.delete().where(
                    (_user_follows.c.follower_id == follower_id) & (_user_follows.c.followed_id == followed_id)
                )
            )
        return result.rowcount > 0

    def count_follow_edges(self, follower_id: int, followed_id: int) -> int:
        with self.engine.connect() as conn:
            return (
                conn.execute(
                    select(func.count())
                    .select_from(_user_follows)
                    .where((_user_follows.c.follower_id == follower_id) & (_user_follows.c.followed_id == followed_id))
                ).scalar()
                or 0
            )

    def add_repository_follow(self, user_id: int, repository_id: int) -> bool:
        """Insert a repository follow edge. Returns False if it already existed."""
        try:
            with self.engine.begin() as conn:
                conn.execute(
                    _repository_follows.insert().values(
                        user_id=user_id, repository_id=repository_id, created_at=_now_iso()
                    )
                )
        except IntegrityError:
            return False
        return True

    def remove_repository_follow(self, user_id: int, repository_id: int) -> bool:
        with self.engine.begin() as conn:
            result = conn.execute(
                _repository_follows.delete().where(
                    (_repository_follows.c.user_id == user_id) & (_repository_follows.c.repository_id == repository_id)
                )
            )
        return result.rowcount > 0

    def remove_repository_follows(self, repository_id: int) -> int:
        """Drop every follow edge pointing at a repository (used when it is deleted)."""
        with self.engine.begin() as conn:
            result = conn.execute(_repository_follows.delete().where(_repository_follows.c.repository_id == repository_id))
        return result.rowcount

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _search_clause(keyword: str | None):
    if not keyword:
        return _users.c.id.isnot(None)
    pattern = f"%{keyword}%"
    return or_(_users.c.username.ilike(pattern), _users.c.display_name.ilike(pattern))


def _user_values(user: User) -> dict[str, Any]:
    return {
        "username": user.username,
        "hashed_password": user.hashed_password,
        "github_id": user.github_id,
        "node_id": user.node_id,
        "display_name": user.display_name,
        "profile_url": user.profile_url,
        "api_url": user.api_url,
        "avatar_url": user.avatar_url,
        "company": user.company,
        "blog": user.blog,
        "location": user.location,
        "email": user.email,
        "hireable": user.hireable,
        "bio": user.bio,
        "public_repos": user.public_repos,
        "public_gists": user.public_gists,
        "followers_count": user.followers_count,
        "following_count": user.following_count,
        "github_created_at": user.github_created_at,
        "github_updated_at": user.github_updated_at,
        "access_token": user.access_token,
        "access_token_iv": user.access_token_iv,
        "role_id": user.role_id,
        "is_admin": user.is_admin,
        "is_verified": user.is_verified,
        "is_deactivated": user.is_deactivated,
        "is_demo": user.is_demo,
        "last_login": user.last_login,
    }


def _row_to_user(row) -> User:
    m = row._mapping
    return User(
        id=m["id"],
        username=m["username"],
        hashed_password=m["hashed_password"],
        github_id=m["github_id"],
        node_id=m["node_id"],
        display_name=m["display_name"],
        profile_url=m["profile_url"],
        api_url=m["api_url"],
        avatar_url=m["avatar_url"],
        company=m["company"],
        blog=m["blog"],
        location=m["location"],
        email=m["email"],
        hireable=m["hireable"],
        bio=m["bio"],
        public_repos=m["public_repos"],
        public_gists=m["public_gists"],
        followers_count=m["followers_count"],
        following_count=m["following_count"],
        github_created_at=m["github_created_at"],
        github_updated_at=m["github_updated_at"],
        access_token=m["access_token"],
        access_token_iv=m["access_token_iv"],
        role_id=m["role_id"],
        is_admin=bool(m["is_admin"]),
        is_verified=bool(m["is_verified"]),
        is_deactivated=bool(m["is_deactivated"]),
        is_demo=bool(m["is_demo"]),
        created_at=m["created_at"],
        updated_at=m["updated_at"],
        last_login=m["last_login"],
    )


def _row_to_edge(row) -> FollowEdge:
    return FollowEdge(id=row[0], date=row[1])
