"""Tests for core/github.py -- the GitHub REST metadata client.

The shared requests session is patched, so no network traffic happens.
"""

from unittest.mock import MagicMock, patch

import pytest
import requests

from core import github
from core.github import GitHubAPIError, fetch_repo_details


def _response(status: int, payload=None, bad_json: bool = False) -> MagicMock:
    resp = MagicMock()
    resp.status_code = status
    if bad_json:
        resp.json.side_effect = ValueError("not json")
    else:
        resp.json.return_value = payload
    return resp


def test_fetch_merges_languages():
    responses = [
        _response(200, {"id": 1, "name": "Hello-World", "full_name": "octocat/Hello-World"}),
        _response(200, {"C": 100}),
    ]
    with patch.object(github._session, "get", side_effect=responses) as get:
        details = fetch_repo_details("octocat", "Hello-World", "gho_x", timeout=5)

    assert details["languages"] == {"C": 100}
    first_url = get.call_args_list[0].args[0]
    second_url = get.call_args_list[1].args[0]
    assert first_url == "https://api.github.com/repos/octocat/Hello-World"
    assert second_url == "https://api.github.com/repos/octocat/Hello-World/languages"
    headers = get.call_args_list[0].kwargs["headers"]
    assert headers["Authorization"] == "Bearer gho_x"
    assert get.call_args_list[0].kwargs["timeout"] == 5


def test_no_token_sends_no_authorization_header():
    responses = [_response(200, {"id": 1}), _response(200, {})]
    with patch.object(github._session, "get", side_effect=responses) as get:
        fetch_repo_details("octocat", "Hello-World", None)
    assert "Authorization" not in get.call_args_list[0].kwargs["headers"]


def test_languages_failure_degrades_to_empty():
    responses = [_response(200, {"id": 1}), _response(500)]
    with patch.object(github._session, "get", side_effect=responses):
        details = fetch_repo_details("octocat", "Hello-World", "gho_x")
    assert details["languages"] == {}


def test_http_error_carries_status():
    with patch.object(github._session, "get", return_value=_response(404)):
        with pytest.raises(GitHubAPIError) as excinfo:
            fetch_repo_details("octocat", "missing", "gho_x")
    assert excinfo.value.status == 404


def test_transport_error_has_no_status():
    with patch.object(github._session, "get", side_effect=requests.ConnectionError("refused")):
        with pytest.raises(GitHubAPIError) as excinfo:
            fetch_repo_details("octocat", "Hello-World", "gho_x")
    assert excinfo.value.status is None


def test_invalid_json():
    with patch.object(github._session, "get", return_value=_response(200, bad_json=True)):
        with pytest.raises(GitHubAPIError):
            fetch_repo_details("octocat", "Hello-World", "gho_x")


def test_session_limits_redirects():
    assert github._session.max_redirects == 3
