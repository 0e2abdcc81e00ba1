"""
domains/sync.py -- Map GitHub repository payloads onto Repository records.

Two mappings, matching the two sync outcomes:
  map_full()     -- first sync. Every mirrored field, identity included.
  map_selected() -- later syncs. Only fields that change over a repository's
                    life; identity (github_id, node_id, name, full_name,
                    owner, created_at, license, visibility, default_branch,
                    html_url, url, private, fork) is left alone.

Both are pure functions over the GitHub JSON dict. Missing keys map to None
rather than raising -- GitHub omits some keys for disabled or empty repos --
except "id", "name" and "full_name", without which there is no record.
"""

from typing import Any, Optional

from domains.models import Repository

# Fields map_selected() returns, in the order GitHub documents them.
SELECTED_FIELDS: tuple[str, ...] = (
    "description",
    "updated_at",
    "pushed_at",
    "homepage",
    "size",
    "stargazers_count",
    "watchers_count",
    "language",
    "languages",
    "forks_count",
    "archived",
    "disabled",
    "open_issues_count",
    "topics",
)


class IncompletePayload(ValueError):
    """GitHub payload lacks a field the record cannot exist without."""


def map_full(payload: dict[str, Any], created_by: Optional[int] = None) -> Repository:
    for key in ("id", "name", "full_name"):
        if payload.get(key) in (None, ""):
            raise IncompletePayload(f"GitHub repository payload missing {key!r}")
    owner = payload.get("owner") or {}
    license_ = payload.get("license") or {}
    return Repository(
        github_id=payload["id"],
        node_id=payload.get("node_id"),
        name=payload["name"],
        full_name=payload["full_name"],
        private=bool(payload.get("private", False)),
        owner_login=owner.get("login"),
        owner_id=owner.get("id"),
        owner_avatar_url=owner.get("avatar_url"),
        owner_type=owner.get("type"),
        html_url=payload.get("html_url"),
        fork=bool(payload.get("fork", False)),
        url=payload.get("url"),
        created_at=payload.get("created_at"),
        license_key=license_.get("key"),
        license_name=license_.get("name"),
        license_spdx_id=license_.get("spdx_id"),
        license_url=license_.get("url"),
        license_node_id=license_.get("node_id"),
        visibility=payload.get("visibility"),
        default_branch=payload.get("default_branch"),
        created_by=created_by,
        **map_selected(payload),
    )


def map_selected(payload: dict[str, Any]) -> dict[str, Any]:
    return {
        "description": payload.get("description"),
        "updated_at": payload.get("updated_at"),
        "pushed_at": payload.get("pushed_at"),
        "homepage": payload.get("homepage"),
        "size": payload.get("size"),
        "stargazers_count": payload.get("stargazers_count"),
        "watchers_count": payload.get("watchers_count"),
        "language": payload.get("language"),
        "languages": payload.get("languages") or {},
        "forks_count": payload.get("forks_count"),
        "archived": bool(payload.get("archived", False)),
        "disabled": bool(payload.get("disabled", False)),
        "open_issues_count": payload.get("open_issues_count"),
        "topics": payload.get("topics") or [],
    }
