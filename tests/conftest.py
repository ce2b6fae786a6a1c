"""
tests/conftest.py -- Shared test fixtures for SessionGuard.

This module provides:
  - clock: a FakeClock (tests/helpers.py) injected into every component
  - settings: fast, deterministic Settings (bcrypt cost 4, fixed SECRET_KEY)
  - engine / service: an AuthService on an isolated in-memory database
  - identity: a pre-created identity with a known password
  - api_client: TestClient with a patched lifespan wired to the test service
  - clocked_api_client: the same, with the FakeClock driving the core

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
Each fixture instance gets a uuid-suffixed name so tests never share state.

DEBUG and API_RATE_LIMIT must be set before any api/core import:
get_settings() is cached, and the slowapi limiter reads it per request.
"""

from __future__ import annotations

import os
from collections.abc import Generator, Iterator
from contextlib import asynccontextmanager, contextmanager

# CRITICAL: set before any auth/core import so get_settings() can
# auto-generate SECRET_KEY in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("API_RATE_LIMIT", "10000/minute")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.lockout import MemoryLoginAttemptStore
from auth.models import Identity
from auth.service import AuthService
from auth.store import create_auth_engine
from core.clock import Clock, utcnow
from core.config import Settings
from tests.helpers import EMAIL, NAME, PASSWORD, FakeClock, make_settings, memory_db_url


# ---------------------------------------------------------------------------
# Core fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def engine():
    eng = create_auth_engine(memory_db_url())
    yield eng
    eng.dispose()


@pytest.fixture
def service(settings: Settings, engine, clock: FakeClock) -> AuthService:
    return AuthService(settings, engine, clock=clock)


@pytest.fixture
def identity(service: AuthService) -> Identity:
    """An identity signed up with EMAIL / PASSWORD."""
    result = service.create_identity(EMAIL, NAME, PASSWORD)
    assert result.ok, result
    return result.data


@pytest.fixture
def identity_factory():
    """For tests that build their own AuthService: sign up EMAIL / PASSWORD on it."""

    def _create(service: AuthService) -> Identity:
        result = service.create_identity(EMAIL, NAME, PASSWORD)
        assert result.ok, result
        return result.data

    return _create


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(service: AuthService):
    """Return a lifespan that installs the test AuthService on app.state."""

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.auth = service
        yield

    return test_lifespan


@contextmanager
def _serve(clock: Clock = utcnow) -> Iterator[tuple[TestClient, AuthService]]:
    """Run the app against a fresh AuthService with EMAIL / PASSWORD signed up.

    Lockout state lives in memory so each test starts unlocked regardless of
    what earlier tests did.
    """
    service = AuthService(
        make_settings(),
        create_auth_engine(memory_db_url("api")),
        clock=clock,
        attempt_store=MemoryLoginAttemptStore(),
    )
    assert service.create_identity(EMAIL, NAME, PASSWORD).ok

    app.router.lifespan_context = _patch_lifespan(service)

    # base_url must pass TrustedHostMiddleware; the default "testserver" does not.
    with TestClient(app, base_url="http://localhost", raise_server_exceptions=False) as client:
        yield client, service

    service.close()


@pytest.fixture
def api_client() -> Generator[tuple[TestClient, AuthService], None, None]:
    """Yield (client, service) on the wall clock."""
    with _serve() as served:
        yield served


@pytest.fixture
def clocked_api_client(clock: FakeClock) -> Generator[tuple[TestClient, AuthService], None, None]:
    """Like api_client, but every core component reads the FakeClock.

    JWT exp claims are stamped from the FakeClock too, so only routes that
    decode without verifying exp (refresh) accept the tokens this issues.
    """
    with _serve(clock) as served:
        yield served
