"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Mirrors the approach
in domains/models.py -- dataclasses own domain shape; stores and routes do
the work.

Layer rule: no imports from api/ or domains/.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class FollowEdge:
    """One entry in a follower/following list: the other party and when the edge was made."""

    id: int
    date: str


@dataclass
class User:
    """Represents an identity in CommitStreams.

    Local users have hashed_password set. GitHub users have github_id set and
    carry their OAuth access token encrypted: access_token is AES-GCM
    ciphertext (hex) and access_token_iv its per-encryption nonce (hex). The
    plaintext token is never stored.

    username is immutable after creation. For local registrations it is the
    email address; for GitHub users it is the GitHub login.

    followers / following are only populated by UserStore.get_with_relations();
    plain lookups leave them empty to avoid two extra queries per request.
    """

    username: str
    id: int | None = None
    hashed_password: str | None = None  # None = OAuth-only user

    # GitHub identity
    github_id: str | None = None
    node_id: str | None = None
    display_name: str | None = None
    profile_url: str | None = None
    api_url: str | None = None

    # GitHub profile -- description and stats, refreshed on every OAuth login
    avatar_url: str | None = None
    company: str | None = None
    blog: str | None = None
    location: str | None = None
    email: str | None = None
    hireable: bool | None = None
    bio: str | None = None
    public_repos: int | None = None
    public_gists: int | None = None
    followers_count: int | None = None
    following_count: int | None = None
    github_created_at: str | None = None
    github_updated_at: str | None = None

    # Credentials and access
    access_token: str | None = None  # ciphertext, hex
    access_token_iv: str | None = None  # nonce, hex
    role_id: int | None = None
    is_admin: bool = False
    is_verified: bool = False
    is_deactivated: bool = False
    is_demo: bool = False

    created_at: str | None = None
    updated_at: str | None = None
    last_login: str | None = None

    followers: list[FollowEdge] = field(default_factory=list)
    following: list[FollowEdge] = field(default_factory=list)
    following_repositories: list[FollowEdge] = field(default_factory=list)

    @property
    def is_active(self) -> bool:
        return not self.is_deactivated


# Fields a user (or an admin acting on a user) may change through PUT.
# username and credential material are excluded: username is immutable and
# tokens/passwords only change through the auth flows.
PROFILE_FIELDS: frozenset[str] = frozenset(
    {
        "display_name",
        "avatar_url",
        "company",
        "blog",
        "location",
        "email",
        "hireable",
        "bio",
    }
)

# Fields only a caller holding user:update may change.
PRIVILEGED_FIELDS: frozenset[str] = frozenset({"role_id", "is_admin", "is_verified", "is_deactivated", "is_demo"})

# Fields an OAuth login refreshes on an existing user. Identity fields
# (username, github_id, node_id, github_created_at) are never touched.
GITHUB_REFRESH_FIELDS: frozenset[str] = frozenset(
    {
        "display_name",
        "avatar_url",
        "company",
        "blog",
        "location",
        "email",
        "hireable",
        "bio",
        "public_repos",
        "public_gists",
        "followers_count",
        "following_count",
        "github_updated_at",
    }
)


@dataclass
class Session:
    """A server-side login session. id is the opaque value carried in the session cookie."""

    id: str
    user_id: int
    created_at: str
    expires_at: str


@dataclass
class Role:
    """A named permission set.

    permissions maps "<resource>:<action>" keys (see auth/permissions.py) to
    booleans. A key missing from the map means deny -- the gate never treats
    absence as permission.
    """

    name: str
    id: int | None = None
    description: str | None = None
    permissions: dict[str, bool] = field(default_factory=dict)
    created_at: str | None = None
    updated_at: str | None = None
