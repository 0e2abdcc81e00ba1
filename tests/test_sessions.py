"""Unit tests for auth/sessions.py -- SessionStore.

Covers:
- create/resolve/destroy lifecycle
- unknown, empty and expired ids resolve to None without raising
- purge_expired() removes only expired rows
- destroy_for_user() ends every session of one user
- sessions are visible through a second store on the same database
"""

from datetime import datetime, timedelta, timezone

import pytest
from conftest import memory_url

from auth.sessions import SessionStore, _sessions


@pytest.fixture
def db_url() -> str:
    return memory_url("sessions")


@pytest.fixture
def sessions(db_url):
    s = SessionStore(db_url, ttl_seconds=3600)
    yield s
    s.close()


def _expire(store: SessionStore, session_id: str) -> None:
    past = (datetime.now(timezone.utc) - timedelta(seconds=5)).isoformat()
    with store.engine.begin() as conn:
        conn.execute(_sessions.update().where(_sessions.c.id == session_id).values(expires_at=past))


def test_create_and_resolve(sessions):
    sid = sessions.create(42)
    assert len(sid) >= 40
    assert sessions.resolve(sid) == 42


def test_ids_are_unique(sessions):
    assert sessions.create(1) != sessions.create(1)


def test_destroy(sessions):
    sid = sessions.create(7)
    assert sessions.destroy(sid) is True
    assert sessions.resolve(sid) is None
    assert sessions.destroy(sid) is False


@pytest.mark.parametrize("session_id", [None, "", "no-such-session", "x" * 500])
def test_unknown_ids_resolve_to_none(sessions, session_id):
    assert sessions.resolve(session_id) is None


def test_expired_session_resolves_to_none(sessions):
    sid = sessions.create(9)
    _expire(sessions, sid)
    assert sessions.resolve(sid) is None
    assert sessions.get(sid) is None


def test_purge_expired_keeps_live_sessions(sessions):
    live = sessions.create(1)
    dead = sessions.create(2)
    _expire(sessions, dead)
    assert sessions.purge_expired() == 1
    assert sessions.resolve(live) == 1
    assert sessions.count_for_user(2) == 0


def test_destroy_for_user(sessions):
    sessions.create(5)
    sessions.create(5)
    other = sessions.create(6)
    assert sessions.destroy_for_user(5) == 2
    assert sessions.count_for_user(5) == 0
    assert sessions.resolve(other) == 6


def test_shared_store_across_instances(db_url, sessions):
    sid = sessions.create(11)
    second = SessionStore(db_url, ttl_seconds=3600)
    try:
        assert second.resolve(sid) == 11
        second.destroy(sid)
        assert sessions.resolve(sid) is None
    finally:
        second.close()


def test_expiry_follows_ttl(db_url):
    store = SessionStore(db_url, ttl_seconds=120)
    try:
        session = store.get(store.create(3))
        created = datetime.fromisoformat(session.created_at)
        expires = datetime.fromisoformat(session.expires_at)
        assert expires - created == timedelta(seconds=120)
    finally:
        store.close()
