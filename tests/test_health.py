"""
tests/test_health.py -- GET /api/v1/health and the background purge step.

Covers:
  - 200 response with status, version, and components fields
  - components.database reports 'ok' while the store is reachable
  - 503 'degraded' when the database probe fails
  - No authentication required
  - the hourly purge step runs off the event loop and logs failures
"""

from __future__ import annotations

import asyncio
import logging
import threading

import pytest

from api.main import _purge_once, app


def test_health_returns_200_with_components(api_client):
    """Health endpoint returns 200 with status, version, and components."""
    client, _ = api_client
    resp = client.get("/api/v1/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "healthy"
    assert data["version"]
    assert data["components"]["database"] == "ok"


def test_health_no_auth_required(api_client):
    """Health endpoint is accessible without any authentication headers."""
    client, _ = api_client
    resp = client.get("/api/v1/health", headers={})
    assert resp.status_code == 200


def test_health_reports_database_failure(api_client, monkeypatch: pytest.MonkeyPatch):
    client, service = api_client

    def boom():
        raise RuntimeError("unable to open database file")

    monkeypatch.setattr(service.identities, "ping", boom)
    resp = client.get("/api/v1/health")
    assert resp.status_code == 503
    assert resp.json()["status"] == "degraded"
    assert resp.json()["components"]["database"] == "unavailable"


def test_purge_step_runs_service_purge(api_client, monkeypatch: pytest.MonkeyPatch):
    _client, service = api_client
    calls = []
    monkeypatch.setattr(service, "purge_expired_sessions", lambda: calls.append(threading.get_ident()) or 0)
    asyncio.run(_purge_once(app))
    assert len(calls) == 1
    assert calls[0] != threading.get_ident()


def test_purge_failure_is_logged_and_survived(api_client, monkeypatch: pytest.MonkeyPatch, caplog):
    _client, service = api_client

    def boom():
        raise RuntimeError("database is locked")

    monkeypatch.setattr(service, "purge_expired_sessions", boom)
    with caplog.at_level(logging.ERROR, logger="sessionguard.api"):
        asyncio.run(_purge_once(app))
    assert "Session purge failed" in caplog.text
