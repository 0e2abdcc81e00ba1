"""
api/routes/v1/repositories.py -- Cached GitHub repository endpoints (mounted under /api/v1).

Routes:
  GET    /api/v1/repository/search?username=&repository=  -- lookup by owner/name (requires auth)
  GET    /api/v1/repository/count                         -- keyword count (requires auth)
  GET    /api/v1/repository/{id}                          -- one record (requires auth)
  POST   /api/v1/repository                               -- manual entry (repository:create)
  POST   /api/v1/repository/fetch-from-github             -- sync from GitHub (repository:create)
  PUT    /api/v1/repository/{id}                          -- edit (repository:update)
  DELETE /api/v1/repository/{id}                          -- delete (repository:delete); 204
  GET    /api/v1/repository/{id}/follow                   -- caller follows (requires auth)
  DELETE /api/v1/repository/{id}/follow                   -- caller unfollows (requires auth)

fetch-from-github calls GitHub with the caller's own stored token, so the
caller must have signed in with GitHub at least once since their last logout.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response

from api.models import (
    CountResponse,
    FetchRepositoryRequest,
    FollowResponse,
    RepositoryCreate,
    RepositoryResponse,
    RepositoryUpdate,
    SyncResponse,
)
from auth.context import AuthContext
from auth.dependencies import get_auth, get_current_user, require_permission
from auth.models import User
from domains import repositories as service
from domains.store import RepositoryStore

router = APIRouter(prefix="/repository")


def get_repositories(request: Request) -> RepositoryStore:
    """Return the RepositoryStore built by the app lifespan."""
    return request.app.state.repositories


@router.get("/search", response_model=RepositoryResponse)
def search_repository(
    username: Optional[str] = Query(default=None, max_length=100),
    repository: Optional[str] = Query(default=None, max_length=100),
    repos: RepositoryStore = Depends(get_repositories),
    _caller: User = Depends(get_current_user),
) -> RepositoryResponse:
    return RepositoryResponse.from_repository(service.search_repository(repos, username, repository))


@router.get("/count", response_model=CountResponse)
def count_repositories(
    keyword: Optional[str] = Query(default=None, max_length=100),
    repos: RepositoryStore = Depends(get_repositories),
    _caller: User = Depends(get_current_user),
) -> CountResponse:
    return CountResponse(total=service.count_repositories(repos, keyword))


@router.get("/{repo_id}", response_model=RepositoryResponse)
def get_repository(
    repo_id: int,
    repos: RepositoryStore = Depends(get_repositories),
    _caller: User = Depends(get_current_user),
) -> RepositoryResponse:
    return RepositoryResponse.from_repository(service.get_repository(repos, repo_id))


@router.post("", response_model=RepositoryResponse, status_code=201)
def create_repository(
    body: RepositoryCreate,
    repos: RepositoryStore = Depends(get_repositories),
    caller: User = Depends(require_permission("repository", "create")),
) -> RepositoryResponse:
    repo = service.create_repository(repos, body.model_dump(), created_by=caller.id)
    return RepositoryResponse.from_repository(repo)


@router.post("/fetch-from-github", response_model=SyncResponse)
def fetch_from_github(
    body: FetchRepositoryRequest,
    response: Response,
    auth: AuthContext = Depends(get_auth),
    repos: RepositoryStore = Depends(get_repositories),
    caller: User = Depends(require_permission("repository", "create")),
) -> SyncResponse:
    """Fetch owner/repo from GitHub and insert or refresh the cached record.

    201 when the repository was new, 200 when an existing record was refreshed.
    """
    repo, created = service.sync_github_repository(
        repos,
        auth.codec,
        caller,
        body.owner,
        body.repo,
        timeout=auth.settings.github_api_timeout_seconds,
    )
    response.status_code = 201 if created else 200
    return SyncResponse(created=created, repository=RepositoryResponse.from_repository(repo))


@router.put("/{repo_id}", response_model=RepositoryResponse)
def update_repository(
    repo_id: int,
    body: RepositoryUpdate,
    repos: RepositoryStore = Depends(get_repositories),
    _caller: User = Depends(require_permission("repository", "update")),
) -> RepositoryResponse:
    repo = service.update_repository(repos, repo_id, body.model_dump(exclude_unset=True))
    return RepositoryResponse.from_repository(repo)


@router.delete("/{repo_id}", status_code=204)
def delete_repository(
    repo_id: int,
    auth: AuthContext = Depends(get_auth),
    repos: RepositoryStore = Depends(get_repositories),
    _caller: User = Depends(require_permission("repository", "delete")),
) -> Response:
    service.delete_repository(repos, auth.users, repo_id)
    return Response(status_code=204)


@router.get("/{repo_id}/follow", response_model=FollowResponse)
def follow_repository(
    repo_id: int,
    auth: AuthContext = Depends(get_auth),
    repos: RepositoryStore = Depends(get_repositories),
    caller: User = Depends(get_current_user),
) -> FollowResponse:
    result = service.follow_repository(repos, auth.users, caller.id, repo_id)
    message = "Repository followed" if result.created else "Already following"
    return FollowResponse(message=message, created=result.created)


@router.delete("/{repo_id}/follow", response_model=FollowResponse)
def unfollow_repository(
    repo_id: int,
    auth: AuthContext = Depends(get_auth),
    repos: RepositoryStore = Depends(get_repositories),
    caller: User = Depends(get_current_user),
) -> FollowResponse:
    result = service.unfollow_repository(repos, auth.users, caller.id, repo_id)
    message = "Repository unfollowed" if result.created else "Not following"
    return FollowResponse(message=message, created=result.created)
