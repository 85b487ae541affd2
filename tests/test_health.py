"""
tests/test_health.py -- Integration tests for GET /api/v1/health.

Covers:
  - 200 response with status and version fields
  - No session cookies required
  - Unknown Host headers are rejected by TrustedHostMiddleware
"""

from __future__ import annotations

from api.main import __version__


def test_health_returns_200_with_version(client):
    """Health endpoint returns 200 with status and version."""
    resp = client.get("/api/v1/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "healthy"
    assert data["version"] == __version__


def test_health_no_session_required(client):
    """Health endpoint is accessible without any cookies."""
    client.cookies.clear()
    resp = client.get("/api/v1/health")
    assert resp.status_code == 200
    assert "set-cookie" not in resp.headers


def test_unknown_host_rejected(client):
    resp = client.get("/api/v1/health", headers={"Host": "evil.example.com"})
    assert resp.status_code == 400
