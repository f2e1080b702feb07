"""
tests/conftest.py -- Shared test fixtures for AuthKeeper.

This module provides:
  - FakeClock / clock: controllable time source for expiry tests
  - engine / accounts / sessions / client_state / service: isolated stores
  - api_client / client: TestClient over the real app with a patched lifespan

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker
thread. Each fixture gets a unique name so tests never share rows.

The environment must be set before any auth/core import: DEBUG lets
get_settings() auto-generate SECRET_KEY, BCRYPT_ROUNDS=4 keeps hashing fast,
and the rate limit is raised so the suite never trips it.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

# CRITICAL: Set before any auth/core import -- get_settings() is cached.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost"]')

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.engine import Engine

from api.main import app
from auth.schema import make_engine
from auth.service import AuthService
from auth.sessions import ClientStateStore, SessionStore
from auth.store import AccountStore


class FakeClock:
    """Callable clock returning a fixed, manually advanced UTC time."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def memory_db_url(prefix: str = "test_auth") -> str:
    return f"sqlite:///file:{prefix}_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"


# ---------------------------------------------------------------------------
# Store fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def engine() -> Generator[Engine, None, None]:
    eng = make_engine(memory_db_url())
    yield eng
    eng.dispose()


@pytest.fixture
def accounts(engine: Engine) -> AccountStore:
    return AccountStore(engine)


@pytest.fixture
def sessions(engine: Engine, accounts: AccountStore, clock: FakeClock) -> SessionStore:
    return SessionStore(engine, accounts, clock=clock)


@pytest.fixture
def client_state(engine: Engine) -> ClientStateStore:
    return ClientStateStore(engine)


@pytest.fixture
def service(
    accounts: AccountStore, sessions: SessionStore, client_state: ClientStateStore
) -> Generator[AuthService, None, None]:
    """One persisted client context ("test") over the shared stores."""
    svc = AuthService(accounts, sessions, client_state, client_id="test")
    yield svc
    svc.close()


# ---------------------------------------------------------------------------
# HTTP fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(engine: Engine, accounts: AccountStore, sessions: SessionStore):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-created test stores into app.state so TestClient routes see an
    isolated test DB rather than the configured database. No purge task is
    started -- expiry is covered by the store tests.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.engine = engine
        app.state.accounts = accounts
        app.state.sessions = sessions
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client() -> Generator[TestClient, None, None]:
    """TestClient over the real FastAPI app with an isolated in-memory store.

    Module-scoped for speed; use the `client` fixture in tests so the cookie
    jar starts empty.
    """
    engine = make_engine(memory_db_url("test_api"))
    accounts = AccountStore(engine)
    sessions = SessionStore(engine, accounts)

    app.router.lifespan_context = _patch_lifespan(engine, accounts, sessions)

    with TestClient(app, raise_server_exceptions=True) as test_client:
        yield test_client

    engine.dispose()


@pytest.fixture
def client(api_client: TestClient) -> TestClient:
    api_client.cookies.clear()
    return api_client
