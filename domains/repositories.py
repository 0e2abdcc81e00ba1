"""
domains/repositories.py -- Repository resource service and GitHub sync.

sync_github_repository() is the fetch, map, upsert flow:
  1. decrypt the caller's stored GitHub token (TokenCodec)
  2. fetch repository details + languages (core/github.py)
  3. match on github_id: present -> overwrite map_selected() only, so
     identity fields never drift
  4. otherwise match on full_name: a hand-entered row without github_id is
     adopted and filled from map_full(); no row at all -> insert map_full()

The cache is never authoritative; deleting a row and syncing again
re-derives it.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from sqlalchemy.exc import IntegrityError

from auth.crypto import TokenCodec
from auth.models import User
from auth.store import UserStore
from core.errors import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    ProviderError,
    ValidationError,
)
from core.github import GitHubAPIError, fetch_repo_details
from domains.common import store_guard
from domains.models import Repository
from domains.store import RepositoryStore
from domains.sync import IncompletePayload, map_full, map_selected
from domains.users import FollowResult

logger = logging.getLogger("commitstreams.domains.repositories")

# NOT NULL columns a caller could try to null out. With these checked up
# front, the only IntegrityError left on a write is a UNIQUE key.
_NOT_NULL_FIELDS = frozenset({"name", "full_name", "private", "fork", "archived", "disabled"})

# Fields written when a sync adopts a row that has no github_id yet.
_ADOPT_EXCLUDED = frozenset({"id", "created_by", "synced_at"})


def _check_not_null(fields: dict[str, Any]) -> None:
    nulled = sorted(k for k in _NOT_NULL_FIELDS if k in fields and fields[k] is None)
    if nulled:
        raise ValidationError(f"Fields may not be null: {', '.join(nulled)}")


def search_repository(repos: RepositoryStore, username: Optional[str], repository: Optional[str]) -> Repository:
    """Look up a cached repository by "username/repository"."""
    if not username or not repository:
        raise ValidationError("Both username and repository are required.")
    full_name = f"{username}/{repository}"
    with store_guard("search repository"):
        repo = repos.find_by_full_name(full_name)
    if repo is None:
        raise NotFoundError(f"Repository {full_name} not found")
    return repo


def list_repositories(repos: RepositoryStore, keyword: Optional[str], limit: int, offset: int) -> list[Repository]:
    with store_guard("list repositories"):
        return repos.search(keyword, limit=limit, offset=offset)


def count_repositories(repos: RepositoryStore, keyword: Optional[str]) -> int:
    with store_guard("count repositories"):
        return repos.count(keyword)


def get_repository(repos: RepositoryStore, repo_id: int) -> Repository:
    with store_guard("get repository"):
        repo = repos.get_repository(repo_id)
    if repo is None:
        raise NotFoundError("Repository not found")
    return repo


def create_repository(repos: RepositoryStore, data: dict[str, Any], created_by: Optional[int]) -> Repository:
    repo = Repository(**data, created_by=created_by)
    with store_guard("create repository"):
        try:
            repo_id = repos.create_repository(repo)
        except IntegrityError as exc:
            raise ConflictError("Repository already exists.") from exc
        created = repos.get_repository(repo_id)
    if created is None:
        raise NotFoundError("Repository was removed while it was being created")
    logger.info("create_repository(): %s id=%s", repo.full_name, repo_id)
    return created


def update_repository(repos: RepositoryStore, repo_id: int, fields: dict[str, Any]) -> Repository:
    if not fields:
        raise ValidationError("No fields to update.")
    _check_not_null(fields)
    with store_guard("update repository"):
        try:
            found = repos.update_repository(repo_id, **fields)
        except IntegrityError as exc:
            raise ConflictError("Repository already exists.") from exc
        if not found:
            raise NotFoundError("Repository not found")
        updated = repos.get_repository(repo_id)
    if updated is None:
        raise NotFoundError("Repository not found")
    return updated


def delete_repository(repos: RepositoryStore, users: UserStore, repo_id: int) -> None:
    with store_guard("delete repository"):
        if not repos.delete_repository(repo_id):
            raise NotFoundError("Repository not found")
        users.remove_repository_follows(repo_id)
    logger.info("delete_repository(): id=%s", repo_id)


def follow_repository(repos: RepositoryStore, users: UserStore, caller_id: int, repo_id: int) -> FollowResult:
    with store_guard("follow repository"):
        if repos.get_repository(repo_id) is None:
            raise NotFoundError("Repository not found")
        created = users.add_repository_follow(caller_id, repo_id)
    return FollowResult(follower_id=caller_id, followed_id=repo_id, created=created)


def unfollow_repository(repos: RepositoryStore, users: UserStore, caller_id: int, repo_id: int) -> FollowResult:
    with store_guard("unfollow repository"):
        if repos.get_repository(repo_id) is None:
            raise NotFoundError("Repository not found")
        removed = users.remove_repository_follow(caller_id, repo_id)
    return FollowResult(follower_id=caller_id, followed_id=repo_id, created=removed)


def sync_github_repository(
    repos: RepositoryStore,
    codec: TokenCodec,
    caller: User,
    owner: str,
    repo: str,
    timeout: float = 10.0,
) -> tuple[Repository, bool]:
    """Fetch owner/repo from GitHub and upsert it. Returns (repository, created).

    Raises AuthenticationError when the caller has no stored GitHub token,
    DecryptionError when the stored token cannot be decrypted, NotFoundError
    when GitHub reports 404, ProviderError for any other GitHub failure.
    """
    for segment in (owner, repo):
        if not segment or set(segment) == {"."}:
            raise ValidationError("owner and repo must be repository path segments, not dots.")
    if not caller.access_token:
        raise AuthenticationError("Sign in with GitHub to sync repositories.", code="github_token_missing")
    token = codec.decrypt(caller.access_token, caller.access_token_iv)

    try:
        payload = fetch_repo_details(owner, repo, token, timeout=timeout)
    except GitHubAPIError as exc:
        if exc.status == 404:
            raise NotFoundError(f"GitHub repository {owner}/{repo} not found") from exc
        logger.warning("GitHub fetch failed for %s/%s: %s", owner, repo, exc)
        raise ProviderError(str(exc), code="github_fetch_failed", is_trusted=False) from exc

    try:
        record = map_full(payload, created_by=caller.id)
    except IncompletePayload as exc:
        raise ProviderError(str(exc), code="github_payload_incomplete", is_trusted=False) from exc

    with store_guard("sync repository"):
        existing = repos.find_by_github_id(record.github_id)
        if existing is not None:
            repos.update_repository(existing.id, **map_selected(payload))
            repo_id, created = existing.id, False
        else:
            manual = repos.find_by_full_name(record.full_name)
            if manual is not None and manual.github_id is None:
                # Entered by hand before the first sync: take it over and
                # fill in everything GitHub knows, github_id included.
                adopted = {k: v for k, v in vars(record).items() if k not in _ADOPT_EXCLUDED}
                repos.update_repository(manual.id, **adopted)
                repo_id, created = manual.id, False
            else:
                try:
                    repo_id = repos.create_repository(record)
                except IntegrityError as exc:
                    # Lost a race with a concurrent first sync, or full_name now
                    # belongs to a renamed repository with another github_id.
                    raise ConflictError(f"Repository {record.full_name} already exists.") from exc
                created = True
        synced = repos.get_repository(repo_id)
    if synced is None:
        raise NotFoundError(f"Repository {record.full_name} was removed during sync")
    logger.info("sync_github_repository(): %s/%s created=%s", owner, repo, created)
    return synced, created
