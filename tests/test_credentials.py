"""Unit tests for auth/credentials.py -- local strategy and password hashing.

Covers:
- register then authenticate round trip; no secrets on the result path
- unknown user, wrong password, OAuth-only and deactivated users get the same error
- duplicate registration raises ConflictError
- successful login stamps last_login
"""

from unittest.mock import patch

import pytest
from conftest import memory_url

from auth.credentials import authenticate_user, hash_password, register_user, verify_password
from auth.models import User
from auth.store import UserStore
from core.errors import AuthenticationError, ConflictError, NotFoundError


@pytest.fixture
def store():
    s = UserStore(memory_url("credentials"))
    yield s
    s.close()


def test_hash_and_verify():
    hashed = hash_password("correct-horse")
    assert hashed != "correct-horse"
    assert verify_password("correct-horse", hashed) is True
    assert verify_password("wrong-horse", hashed) is False


def test_verify_malformed_hash_is_false():
    assert verify_password("anything", "not-a-bcrypt-hash") is False


def test_register_uses_email_as_username(store):
    user = register_user(store, "alice@example.com", "alice-password")
    assert user.username == "alice@example.com"
    assert user.email == "alice@example.com"
    assert user.hashed_password and user.hashed_password != "alice-password"


def test_register_duplicate_conflicts(store):
    register_user(store, "alice@example.com", "alice-password")
    with pytest.raises(ConflictError):
        register_user(store, "alice@example.com", "another-password")


def test_authenticate_success_stamps_last_login(store):
    created = register_user(store, "alice@example.com", "alice-password")
    assert created.last_login is None
    user = authenticate_user(store, "alice@example.com", "alice-password")
    assert user.id == created.id
    assert store.get_by_id(created.id).last_login is not None


def _message(store, username, password) -> tuple[str, str]:
    with pytest.raises(AuthenticationError) as excinfo:
        authenticate_user(store, username, password)
    return excinfo.value.code, excinfo.value.message


def test_failures_are_indistinguishable(store):
    register_user(store, "alice@example.com", "alice-password")
    oauth_only = store.create_user(User(username="octocat", github_id="1"))
    disabled = register_user(store, "bob@example.com", "bob-password")
    store.update_user(disabled.id, is_deactivated=True)

    outcomes = {
        _message(store, "alice@example.com", "wrong-password"),
        _message(store, "nobody@example.com", "alice-password"),
        _message(store, "octocat", "whatever-password"),
        _message(store, "bob@example.com", "bob-password"),
    }
    assert oauth_only
    assert outcomes == {("bad_credentials", "Invalid username or password.")}


def test_register_reports_user_removed_before_reread(store):
    with patch.object(store, "get_by_id", return_value=None):
        with pytest.raises(NotFoundError):
            register_user(store, "alice@example.com", "alice-password")
