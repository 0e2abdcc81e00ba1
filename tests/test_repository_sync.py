"""Tests for domains/sync.py and domains/repositories.py -- GitHub repository sync.

Covers:
- map_full() copies identity + stats; map_selected() only the mutable subset
- first sync inserts, second sync overwrites the selected subset only
- caller without a token / with an undecryptable token
- GitHub 404 -> NotFoundError, other failures -> ProviderError
- a hand-entered row without github_id is adopted by the first sync
- dot-only path segments and null required columns are rejected
- repository follow edges

fetch_repo_details is patched where domains.repositories looks it up, so no
network traffic happens.
"""

from unittest.mock import patch

import pytest
from conftest import memory_url

from auth.crypto import TokenCodec
from auth.models import User
from auth.store import UserStore
from core.errors import AuthenticationError, DecryptionError, NotFoundError, ProviderError, ValidationError
from core.github import GitHubAPIError
from domains import repositories as service
from domains.store import RepositoryStore
from domains.sync import SELECTED_FIELDS, IncompletePayload, map_full, map_selected

PAYLOAD = {
    "id": 1296269,
    "node_id": "MDEwOlJlcG9zaXRvcnkxMjk2MjY5",
    "name": "Hello-World",
    "full_name": "octocat/Hello-World",
    "private": False,
    "owner": {"login": "octocat", "id": 1, "avatar_url": "https://github.com/images/error/octocat_happy.gif", "type": "User"},
    "html_url": "https://github.com/octocat/Hello-World",
    "description": "This your first repo!",
    "fork": False,
    "url": "https://api.github.com/repos/octocat/Hello-World",
    "created_at": "2011-01-26T19:01:12Z",
    "updated_at": "2011-01-26T19:14:43Z",
    "pushed_at": "2011-01-26T19:06:43Z",
    "homepage": "https://github.com",
    "size": 108,
    "stargazers_count": 80,
    "watchers_count": 80,
    "language": "C",
    "languages": {"C": 78769, "Makefile": 1200},
    "forks_count": 9,
    "archived": False,
    "disabled": False,
    "open_issues_count": 0,
    "license": {
        "key": "mit",
        "name": "MIT License",
        "spdx_id": "MIT",
        "url": "https://api.github.com/licenses/mit",
        "node_id": "MDc6TGljZW5zZW1pdA==",
    },
    "topics": ["octocat", "atom"],
    "visibility": "public",
    "default_branch": "master",
}


@pytest.fixture
def db_url() -> str:
    return memory_url("repository_sync")


@pytest.fixture
def repos(db_url):
    s = RepositoryStore(db_url)
    yield s
    s.close()


@pytest.fixture
def users(db_url):
    s = UserStore(db_url)
    yield s
    s.close()


@pytest.fixture
def codec() -> TokenCodec:
    return TokenCodec.from_secret("repository-sync-test-secret-0123456789")


@pytest.fixture
def caller(users, codec) -> User:
    ciphertext, iv = codec.encrypt("gho_caller_token")
    user_id = users.create_user(User(username="octocat", github_id="1", access_token=ciphertext, access_token_iv=iv))
    return users.get_by_id(user_id)


class TestMapping:
    def test_map_full(self):
        repo = map_full(PAYLOAD, created_by=7)
        assert repo.github_id == 1296269
        assert repo.full_name == "octocat/Hello-World"
        assert repo.owner_login == "octocat"
        assert repo.license_spdx_id == "MIT"
        assert repo.languages == {"C": 78769, "Makefile": 1200}
        assert repo.created_by == 7

    def test_map_selected_has_only_mutable_fields(self):
        selected = map_selected(PAYLOAD)
        assert tuple(selected) == SELECTED_FIELDS
        for identity in ("github_id", "name", "full_name", "created_at", "owner_login", "license_key"):
            assert identity not in selected

    def test_missing_optional_keys_map_to_defaults(self):
        repo = map_full({"id": 1, "name": "x", "full_name": "a/x"})
        assert repo.description is None
        assert repo.topics == []
        assert repo.languages == {}
        assert repo.archived is False

    @pytest.mark.parametrize("key", ["id", "name", "full_name"])
    def test_incomplete_payload(self, key):
        payload = dict(PAYLOAD)
        del payload[key]
        with pytest.raises(IncompletePayload):
            map_full(payload)


class TestSync:
    def test_first_sync_creates(self, repos, codec, caller):
        with patch("domains.repositories.fetch_repo_details", return_value=dict(PAYLOAD)) as fetch:
            repo, created = service.sync_github_repository(repos, codec, caller, "octocat", "Hello-World", timeout=3)
        assert created is True
        assert repo.id is not None
        assert repo.created_by == caller.id
        fetch.assert_called_once_with("octocat", "Hello-World", "gho_caller_token", timeout=3)

    def test_second_sync_updates_selected_subset_only(self, repos, codec, caller):
        with patch("domains.repositories.fetch_repo_details", return_value=dict(PAYLOAD)):
            first, _ = service.sync_github_repository(repos, codec, caller, "octocat", "Hello-World")

        changed = dict(PAYLOAD)
        changed.update(
            {
                "description": "Renamed and starred",
                "stargazers_count": 81,
                "topics": ["octocat"],
                # identity fields GitHub reports differently must not leak in
                "created_at": "2020-01-01T00:00:00Z",
                "default_branch": "main",
                "license": {"key": "apache-2.0"},
            }
        )
        with patch("domains.repositories.fetch_repo_details", return_value=changed):
            second, created = service.sync_github_repository(repos, codec, caller, "octocat", "Hello-World")

        assert created is False
        assert second.id == first.id
        assert second.description == "Renamed and starred"
        assert second.stargazers_count == 81
        assert second.topics == ["octocat"]
        assert second.created_at == "2011-01-26T19:01:12Z"
        assert second.default_branch == "master"
        assert second.license_key == "mit"
        assert repos.count(None) == 1

    def test_caller_without_token(self, repos, codec, users):
        user = users.get_by_id(users.create_user(User(username="local@example.com")))
        with pytest.raises(AuthenticationError):
            service.sync_github_repository(repos, codec, user, "octocat", "Hello-World")

    def test_undecryptable_token(self, repos, caller):
        other = TokenCodec.from_secret("rotated-secret-that-does-not-match-0000")
        with pytest.raises(DecryptionError):
            service.sync_github_repository(repos, other, caller, "octocat", "Hello-World")

    def test_github_404(self, repos, codec, caller):
        with patch("domains.repositories.fetch_repo_details", side_effect=GitHubAPIError("gone", status=404)):
            with pytest.raises(NotFoundError):
                service.sync_github_repository(repos, codec, caller, "octocat", "missing")

    def test_github_failure(self, repos, codec, caller):
        with patch("domains.repositories.fetch_repo_details", side_effect=GitHubAPIError("boom", status=503)):
            with pytest.raises(ProviderError) as excinfo:
                service.sync_github_repository(repos, codec, caller, "octocat", "Hello-World")
        assert excinfo.value.code == "github_fetch_failed"
        assert "boom" not in excinfo.value.client_message

    def test_sync_adopts_hand_entered_row(self, repos, codec, caller):
        manual = service.create_repository(repos, {"full_name": "octocat/Hello-World", "name": "Hello-World"}, None)
        assert manual.github_id is None

        with patch("domains.repositories.fetch_repo_details", return_value=dict(PAYLOAD)):
            repo, created = service.sync_github_repository(repos, codec, caller, "octocat", "Hello-World")

        assert created is False
        assert repo.id == manual.id
        assert repo.github_id == 1296269
        assert repo.license_key == "mit"
        assert repo.stargazers_count == 80
        assert repos.count(None) == 1

    @pytest.mark.parametrize("owner, name", [("..", "Hello-World"), ("octocat", "."), ("", "Hello-World")])
    def test_path_segments_validated_before_fetch(self, repos, codec, caller, owner, name):
        with patch("domains.repositories.fetch_repo_details") as fetch:
            with pytest.raises(ValidationError):
                service.sync_github_repository(repos, codec, caller, owner, name)
        fetch.assert_not_called()


class TestRepositoryService:
    def test_search_requires_both_parts(self, repos):
        with pytest.raises(ValidationError):
            service.search_repository(repos, "octocat", None)

    def test_search_by_full_name(self, repos):
        service.create_repository(repos, {"full_name": "octocat/Spoon-Knife", "name": "Spoon-Knife"}, created_by=None)
        assert service.search_repository(repos, "octocat", "Spoon-Knife").name == "Spoon-Knife"
        with pytest.raises(NotFoundError):
            service.search_repository(repos, "octocat", "nope")

    def test_follow_repository_idempotent(self, repos, users, caller):
        repo = service.create_repository(repos, {"full_name": "octocat/Spoon-Knife", "name": "Spoon-Knife"}, None)
        assert service.follow_repository(repos, users, caller.id, repo.id).created is True
        assert service.follow_repository(repos, users, caller.id, repo.id).created is False
        assert [e.id for e in users.get_with_relations(caller.id).following_repositories] == [repo.id]
        assert service.unfollow_repository(repos, users, caller.id, repo.id).created is True

    @pytest.mark.parametrize("field", ["archived", "disabled", "name"])
    def test_update_rejects_null_for_required_column(self, repos, field):
        repo = service.create_repository(repos, {"full_name": "octocat/Spoon-Knife", "name": "Spoon-Knife"}, None)
        with pytest.raises(ValidationError):
            service.update_repository(repos, repo.id, {field: None})
        assert repos.get_repository(repo.id).archived is False

    def test_create_reports_row_removed_before_reread(self, repos):
        with patch.object(repos, "get_repository", return_value=None):
            with pytest.raises(NotFoundError):
                service.create_repository(repos, {"full_name": "octocat/Spoon-Knife", "name": "Spoon-Knife"}, None)

    def test_delete_repository_drops_follows(self, repos, users, caller):
        repo = service.create_repository(repos, {"full_name": "octocat/Spoon-Knife", "name": "Spoon-Knife"}, None)
        service.follow_repository(repos, users, caller.id, repo.id)
        service.delete_repository(repos, users, repo.id)
        assert users.get_with_relations(caller.id).following_repositories == []
        with pytest.raises(NotFoundError):
            service.follow_repository(repos, users, caller.id, repo.id)
