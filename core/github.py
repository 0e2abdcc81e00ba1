"""
github.py -- GitHub REST metadata client.

Used by the repository sync flow, which calls GitHub with the requesting
user's own (decrypted) OAuth token. Every call carries an explicit timeout;
GitHub hangs must not hold a worker thread indefinitely.

Unlike a best-effort enrichment fetch, a failed repository lookup is an
error the caller must see, so failures raise GitHubAPIError instead of
returning None.
"""

import logging
from typing import Any, Optional

import requests

logger = logging.getLogger("commitstreams.github")

GITHUB_API = "https://api.github.com"
_ACCEPT = "application/vnd.github+json"
_API_VERSION = "2022-11-28"

# Module-level session shared across calls for connection pooling.
# max_redirects=3 replaces the requests default of 30 -- GitHub only redirects
# renamed repositories, and then only once.
_session = requests.Session()
_session.max_redirects = 3


class GitHubAPIError(Exception):
    """A GitHub API call failed. status is the HTTP status, or None for transport errors."""

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


def _headers(token: Optional[str]) -> dict[str, str]:
    headers = {"Accept": _ACCEPT, "X-GitHub-Api-Version": _API_VERSION}
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return headers


def _get_json(path: str, token: Optional[str], timeout: float) -> Any:
    url = f"{GITHUB_API}/{path.lstrip('/')}"
    try:
        resp = _session.get(url, headers=_headers(token), timeout=timeout)
    except requests.RequestException as e:
        raise GitHubAPIError(f"GitHub request to {path} failed: {e}") from e
    if resp.status_code >= 400:
        raise GitHubAPIError(f"GitHub returned {resp.status_code} for {path}", status=resp.status_code)
    try:
        return resp.json()
    except ValueError as e:
        raise GitHubAPIError(f"GitHub returned invalid JSON for {path}") from e


def fetch_repo_details(owner: str, repo: str, token: Optional[str], timeout: float = 10.0) -> dict[str, Any]:
    """Fetch a repository and its language breakdown.

    Two calls: GET /repos/{owner}/{repo} and GET /repos/{owner}/{repo}/languages.
    The languages map is merged into the repository payload under "languages"
    so the mapper sees one dict. A failed languages call degrades to {} --
    the repository record is still useful without it.
    """
    details = _get_json(f"repos/{owner}/{repo}", token, timeout)
    try:
        details["languages"] = _get_json(f"repos/{owner}/{repo}/languages", token, timeout)
    except GitHubAPIError as e:
        logger.warning("Languages fetch failed for %s/%s: %s", owner, repo, e)
        details["languages"] = {}
    return details
