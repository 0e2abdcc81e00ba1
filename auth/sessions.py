"""
auth/sessions.py -- Server-side session store (the Session Manager).

A session is a row keyed by an opaque 256-bit id. The id travels in an
httpOnly cookie; the row maps it to a user id until expires_at. Because rows
live in the shared database, sessions survive process restarts and are valid
on every instance pointing at the same DATABASE_URL.

Semantics:
  resolve() never raises for a missing, empty, or expired id -- it returns
  None and the caller treats the request as anonymous. Expired rows are left
  for purge_expired(); a lookup does not need to delete them to be correct.

  Every mutation is a single statement, so concurrent requests on the same
  session see the last committed write.

Layer rule: no imports from api/ or domains/.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, select
from sqlalchemy.engine import Engine

from auth.models import Session
from auth.store import make_engine

logger = logging.getLogger("commitstreams.auth.sessions")

_metadata = MetaData()

_sessions = Table(
    "sessions",
    _metadata,
    Column("id", String(64), primary_key=True),
    Column("user_id", Integer, nullable=False, index=True),
    Column("created_at", String(32), nullable=False),
    Column("expires_at", String(32), nullable=False, index=True),
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class SessionStore:
    """Create, resolve, and destroy login sessions.

    Usage:
        sessions = SessionStore("sqlite:///commitstreams.db", ttl_seconds=3600)
        sid = sessions.create(user_id=1)
        sessions.resolve(sid)   # -> 1
        sessions.destroy(sid)
        sessions.resolve(sid)   # -> None
    """

    def __init__(self, db_url: str, ttl_seconds: int = 7 * 24 * 3600) -> None:
        self.engine: Engine = make_engine(db_url)
        self.ttl_seconds = ttl_seconds
        _metadata.create_all(self.engine)

    def create(self, user_id: int) -> str:
        """Start a session for user_id and return its id."""
        session_id = secrets.token_urlsafe(32)
        now = _now()
        with self.engine.begin() as conn:
            conn.execute(
                _sessions.insert().values(
                    id=session_id,
                    user_id=user_id,
                    created_at=now.isoformat(),
                    expires_at=(now + timedelta(seconds=self.ttl_seconds)).isoformat(),
                )
            )
        return session_id

    def get(self, session_id: str | None) -> Session | None:
        """Return the live Session for session_id, or None if unknown or expired."""
        if not session_id:
            return None
        with self.engine.connect() as conn:
            row = conn.execute(_sessions.select().where(_sessions.c.id == session_id)).fetchone()
        if row is None:
            return None
        if _parse(row.expires_at) <= _now():
            return None
        return Session(id=row.id, user_id=row.user_id, created_at=row.created_at, expires_at=row.expires_at)

    def resolve(self, session_id: str | None) -> int | None:
        """Return the user id bound to session_id, or None."""
        session = self.get(session_id)
        return session.user_id if session is not None else None

    def destroy(self, session_id: str | None) -> bool:
        """Delete one session. Returns True if a row was removed."""
        if not session_id:
            return False
        with self.engine.begin() as conn:
            result = conn.execute(_sessions.delete().where(_sessions.c.id == session_id))
        return result.rowcount > 0

    def destroy_for_user(self, user_id: int) -> int:
        """Delete every session of a user (deactivation, deletion)."""
        with self.engine.begin() as conn:
            result = conn.execute(_sessions.delete().where(_sessions.c.user_id == user_id))
        return result.rowcount

    def purge_expired(self) -> int:
        """Delete expired rows and return how many were removed.

        ISO 8601 UTC strings with the same offset sort lexicographically in
        time order, so the comparison can run in SQL.
        """
        with self.engine.begin() as conn:
            result = conn.execute(_sessions.delete().where(_sessions.c.expires_at <= _now().isoformat()))
        if result.rowcount:
            logger.info("Purged %d expired sessions", result.rowcount)
        return result.rowcount

    def count_for_user(self, user_id: int) -> int:
        with self.engine.connect() as conn:
            rows = conn.execute(select(_sessions.c.id).where(_sessions.c.user_id == user_id)).fetchall()
        return len(rows)

    def close(self) -> None:
        self.engine.dispose()


def _parse(value: str) -> datetime:
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        # Naive timestamp -- assume UTC
        dt = dt.replace(tzinfo=timezone.utc)
    return dt
