"""
API request and response models for CommitStreams REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
domains/models.py, which own the internal domain representation. Route
handlers map between the two.

Secret fields (hashed_password, access_token, access_token_iv) exist only on
the dataclasses. No response model declares them, so they cannot leak through
serialization.

Separation of concerns: dataclasses = domain truth; api/ models = API contract.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from auth.credentials import PASSWORD_MAX_BYTES
from auth.models import FollowEdge, Role, User
from domains.models import Repository


def _check_password_bytes(value: str) -> str:
    """Reject rather than let bcrypt silently ignore the tail."""
    if len(value.encode("utf-8")) > PASSWORD_MAX_BYTES:
        raise ValueError(f"password must be at most {PASSWORD_MAX_BYTES} bytes when UTF-8 encoded")
    return value


def _reject_null(value, field_name: str):
    """Optional in the body means "may be omitted", not "may be null"."""
    if value is None:
        raise ValueError(f"{field_name} may be omitted but not null")
    return value


def _check_path_segment(value: str) -> str:
    if set(value) == {"."}:
        raise ValueError("must not consist of dots only")
    return value


# ---------------------------------------------------------------------------
# Auth -- request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/register. The email becomes the username."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")
    password: str = Field(min_length=8, max_length=PASSWORD_MAX_BYTES)

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, value: str) -> str:
        return _check_password_bytes(value)


class LoginRequest(BaseModel):
    """Request body for POST /api/login.

    No length rules beyond non-empty: a login attempt with a short password
    must fail as bad credentials, not as a validation error that reveals the
    password policy.
    """

    username: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=1024)


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class FollowEdgeOut(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    date: str

    @classmethod
    def from_edge(cls, edge: FollowEdge) -> "FollowEdgeOut":
        return cls(id=edge.id, date=edge.date)


class UserPublic(BaseModel):
    """A user as clients see it. Credential material is never included."""

    model_config = ConfigDict(frozen=True)

    id: int
    username: str
    github_id: Optional[str] = None
    node_id: Optional[str] = None
    display_name: Optional[str] = None
    profile_url: Optional[str] = None
    api_url: Optional[str] = None
    avatar_url: Optional[str] = None
    company: Optional[str] = None
    blog: Optional[str] = None
    location: Optional[str] = None
    email: Optional[str] = None
    hireable: Optional[bool] = None
    bio: Optional[str] = None
    public_repos: Optional[int] = None
    public_gists: Optional[int] = None
    followers_count: Optional[int] = None
    following_count: Optional[int] = None
    github_created_at: Optional[str] = None
    github_updated_at: Optional[str] = None
    role_id: Optional[int] = None
    is_admin: bool = False
    is_verified: bool = False
    is_deactivated: bool = False
    is_demo: bool = False
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    last_login: Optional[str] = None
    followers: list[FollowEdgeOut] = Field(default_factory=list)
    following: list[FollowEdgeOut] = Field(default_factory=list)
    following_repositories: list[FollowEdgeOut] = Field(default_factory=list)

    @classmethod
    def from_user(cls, user: User) -> "UserPublic":
        """Factory Method: copy public fields only, never credential material."""
        return cls(
            id=user.id,
            username=user.username,
            github_id=user.github_id,
            node_id=user.node_id,
            display_name=user.display_name,
            profile_url=user.profile_url,
            api_url=user.api_url,
            avatar_url=user.avatar_url,
            company=user.company,
            blog=user.blog,
            location=user.location,
            email=user.email,
            hireable=user.hireable,
            bio=user.bio,
            public_repos=user.public_repos,
            public_gists=user.public_gists,
            followers_count=user.followers_count,
            following_count=user.following_count,
            github_created_at=user.github_created_at,
            github_updated_at=user.github_updated_at,
            role_id=user.role_id,
            is_admin=user.is_admin,
            is_verified=user.is_verified,
            is_deactivated=user.is_deactivated,
            is_demo=user.is_demo,
            created_at=user.created_at,
            updated_at=user.updated_at,
            last_login=user.last_login,
            followers=[FollowEdgeOut.from_edge(e) for e in user.followers],
            following=[FollowEdgeOut.from_edge(e) for e in user.following],
            following_repositories=[FollowEdgeOut.from_edge(e) for e in user.following_repositories],
        )


class RegisterResponse(BaseModel):
    """Response for POST /api/register."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    message: str
    user_id: int = Field(alias="userId")


class LoginResponse(BaseModel):
    """Response for POST /api/login."""

    model_config = ConfigDict(frozen=True)

    message: str
    user: UserPublic


class UserCreate(BaseModel):
    """Request body for POST /api/v1/user (requires user:create)."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    username: str = Field(min_length=1, max_length=255)
    password: Optional[str] = Field(default=None, min_length=8, max_length=PASSWORD_MAX_BYTES)
    email: Optional[str] = Field(default=None, max_length=255)
    display_name: Optional[str] = Field(default=None, max_length=255)
    role_id: Optional[int] = None
    is_admin: bool = False
    is_verified: bool = False
    is_demo: bool = False

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, value: Optional[str]) -> Optional[str]:
        return _check_password_bytes(value) if value is not None else value


class UserUpdate(BaseModel):
    """Request body for PUT /api/v1/user/{id}.

    username is not a field: it is immutable after creation, and extra="forbid"
    turns an attempt to send it into a 422. The flag and role fields are only
    honored for callers holding user:update; the service rejects them otherwise.
    """

    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    display_name: Optional[str] = Field(default=None, max_length=255)
    avatar_url: Optional[str] = Field(default=None, max_length=2048)
    company: Optional[str] = Field(default=None, max_length=255)
    blog: Optional[str] = Field(default=None, max_length=2048)
    location: Optional[str] = Field(default=None, max_length=255)
    email: Optional[str] = Field(default=None, max_length=255)
    hireable: Optional[bool] = None
    bio: Optional[str] = Field(default=None, max_length=2000)
    role_id: Optional[int] = None
    is_admin: Optional[bool] = None
    is_verified: Optional[bool] = None
    is_deactivated: Optional[bool] = None
    is_demo: Optional[bool] = None

    @field_validator("is_admin", "is_verified", "is_deactivated", "is_demo")
    @classmethod
    def flags_not_null(cls, value: Optional[bool], info: ValidationInfo) -> bool:
        return _reject_null(value, info.field_name)


class FollowResponse(BaseModel):
    """Response for GET/DELETE .../{id}/follow. created=False means nothing changed."""

    model_config = ConfigDict(frozen=True)

    message: str
    created: bool


class CountResponse(BaseModel):
    """Response for GET ./count: {total}."""

    model_config = ConfigDict(frozen=True)

    total: int


# ---------------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------------


class RoleCreate(BaseModel):
    """Request body for POST /api/v1/role."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=1000)
    permissions: dict[str, bool] = Field(default_factory=dict)


class RoleUpdate(BaseModel):
    """Request body for PUT /api/v1/role/{id}. Permissions have their own route."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=1000)


class RoleResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    description: Optional[str] = None
    permissions: dict[str, bool]
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_role(cls, role: Role) -> "RoleResponse":
        return cls(
            id=role.id,
            name=role.name,
            description=role.description,
            permissions=dict(role.permissions),
            created_at=role.created_at,
            updated_at=role.updated_at,
        )


class PermissionsUpdate(BaseModel):
    """Request body for PUT /api/v1/role/{id}/permissions.

    Keys are "<resource>:<action>". Keys present are written; keys absent keep
    their stored value.
    """

    model_config = ConfigDict(extra="forbid")

    permissions: dict[str, bool] = Field(min_length=1)


class PermissionsResponse(BaseModel):
    """Response for GET|PUT /api/v1/role/{id}/permissions."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    role_id: int = Field(alias="roleId")
    role_name: str = Field(alias="roleName")
    resources_by_type: dict[str, list[str]] = Field(alias="resourcesByType")
    permissions: dict[str, bool]


# ---------------------------------------------------------------------------
# Repositories
# ---------------------------------------------------------------------------


class RepositoryCreate(BaseModel):
    """Request body for POST /api/v1/repository (manual cache entry)."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    full_name: str = Field(min_length=3, max_length=255, pattern=r"^[^/\s]+/[^/\s]+$")
    name: str = Field(min_length=1, max_length=255)
    github_id: Optional[int] = None
    description: Optional[str] = Field(default=None, max_length=2000)
    html_url: Optional[str] = Field(default=None, max_length=2048)
    homepage: Optional[str] = Field(default=None, max_length=2048)
    language: Optional[str] = Field(default=None, max_length=100)
    private: bool = False
    fork: bool = False
    topics: list[str] = Field(default_factory=list, max_length=50)


class RepositoryUpdate(BaseModel):
    """Request body for PUT /api/v1/repository/{id}. Identity fields are not editable."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    description: Optional[str] = Field(default=None, max_length=2000)
    homepage: Optional[str] = Field(default=None, max_length=2048)
    language: Optional[str] = Field(default=None, max_length=100)
    archived: Optional[bool] = None
    disabled: Optional[bool] = None
    topics: Optional[list[str]] = Field(default=None, max_length=50)

    @field_validator("archived", "disabled", "topics")
    @classmethod
    def not_null(cls, value, info: ValidationInfo):
        return _reject_null(value, info.field_name)


class FetchRepositoryRequest(BaseModel):
    """Request body for POST /api/v1/repository/fetch-from-github."""

    model_config = ConfigDict(str_strip_whitespace=True)

    owner: str = Field(min_length=1, max_length=100, pattern=r"^[A-Za-z0-9_.-]+$")
    repo: str = Field(min_length=1, max_length=100, pattern=r"^[A-Za-z0-9_.-]+$")

    @field_validator("owner", "repo")
    @classmethod
    def not_dots_only(cls, value: str) -> str:
        return _check_path_segment(value)


class RepositoryResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    github_id: Optional[int] = None
    node_id: Optional[str] = None
    name: str
    full_name: str
    private: bool
    owner_login: Optional[str] = None
    owner_id: Optional[int] = None
    owner_avatar_url: Optional[str] = None
    owner_type: Optional[str] = None
    html_url: Optional[str] = None
    description: Optional[str] = None
    fork: bool
    url: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    pushed_at: Optional[str] = None
    homepage: Optional[str] = None
    size: Optional[int] = None
    stargazers_count: Optional[int] = None
    watchers_count: Optional[int] = None
    language: Optional[str] = None
    languages: dict[str, int] = Field(default_factory=dict)
    forks_count: Optional[int] = None
    archived: bool
    disabled: bool
    open_issues_count: Optional[int] = None
    license_key: Optional[str] = None
    license_name: Optional[str] = None
    license_spdx_id: Optional[str] = None
    license_url: Optional[str] = None
    license_node_id: Optional[str] = None
    topics: list[str] = Field(default_factory=list)
    visibility: Optional[str] = None
    default_branch: Optional[str] = None
    created_by: Optional[int] = None
    synced_at: Optional[str] = None

    @classmethod
    def from_repository(cls, repo: Repository) -> "RepositoryResponse":
        return cls.model_validate(repo, from_attributes=True)


class SyncResponse(BaseModel):
    """Response for POST /api/v1/repository/fetch-from-github."""

    model_config = ConfigDict(frozen=True)

    created: bool
    repository: RepositoryResponse


# ---------------------------------------------------------------------------
# Errors and health
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str


class UptimeResponse(BaseModel):
    """Response for GET /health (load balancer health check)."""

    model_config = ConfigDict(frozen=True)

    uptime: float
    message: str = "OK"
    timestamp: float
