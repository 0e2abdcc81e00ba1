"""
tests/test_health.py -- Integration tests for the health endpoints.

Covers:
  - GET /health returns uptime, message and timestamp without authentication
  - GET /api/v1/health returns status and version without authentication
"""

from __future__ import annotations

from api.main import API_VERSION


def test_uptime_check(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["message"] == "OK"
    assert data["uptime"] >= 0
    assert data["timestamp"] > 0


def test_versioned_health(client):
    resp = client.get("/api/v1/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok", "version": API_VERSION}


def test_docs_require_session(client):
    assert client.get("/docs").status_code == 401
