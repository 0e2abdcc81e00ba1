"""
domains/models.py -- Domain dataclasses for cached GitHub repositories.

Pure data containers with zero logic. Mapping from the GitHub payload lives
in domains/sync.py; persistence in domains/store.py.

A Repository is never authoritative: every field except id, created_by and
synced_at can be re-derived from GitHub at any time.
"""

from dataclasses import dataclass, field
from typing import Optional


@dataclass
class Repository:
    """Locally cached metadata for one GitHub repository.

    id is the local primary key (None before insert). github_id is GitHub's
    numeric repository id; full_name is "owner/name". Both are unique.

    created_by is an audit reference to the User who first synced or created
    the record. It is not an ownership relation.
    """

    full_name: str
    name: str
    id: Optional[int] = None
    github_id: Optional[int] = None
    node_id: Optional[str] = None
    private: bool = False

    owner_login: Optional[str] = None
    owner_id: Optional[int] = None
    owner_avatar_url: Optional[str] = None
    owner_type: Optional[str] = None

    html_url: Optional[str] = None
    description: Optional[str] = None
    fork: bool = False
    url: Optional[str] = None
    created_at: Optional[str] = None  # GitHub timestamps, ISO 8601
    updated_at: Optional[str] = None
    pushed_at: Optional[str] = None
    homepage: Optional[str] = None
    size: Optional[int] = None
    stargazers_count: Optional[int] = None
    watchers_count: Optional[int] = None
    language: Optional[str] = None
    languages: dict[str, int] = field(default_factory=dict)
    forks_count: Optional[int] = None
    archived: bool = False
    disabled: bool = False
    open_issues_count: Optional[int] = None

    license_key: Optional[str] = None
    license_name: Optional[str] = None
    license_spdx_id: Optional[str] = None
    license_url: Optional[str] = None
    license_node_id: Optional[str] = None

    topics: list[str] = field(default_factory=list)
    visibility: Optional[str] = None
    default_branch: Optional[str] = None

    created_by: Optional[int] = None
    synced_at: Optional[str] = None  # set by store on every insert/update
