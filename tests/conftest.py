"""
tests/conftest.py -- Shared test fixtures for HealthTrack.

This module provides:
  - FakeClock / clock: a controllable UTC clock injected into the services
  - db_url: a per-test SQLite file under tmp_path
  - accounts / session_store / issuer / verifier / records: wired core objects
  - _patch_lifespan(): wires test stores into app.state, bypassing real startup
  - api_client: TestClient plus a signed-in test account for API tests

Design: SQLite *files* (not :memory:) back every fixture. SQLAlchemy gives
each thread its own connection for :memory: URLs, which would hand each
TestClient worker thread -- and each thread of the lockout burst test -- a
blank database.

Environment variables must be set before any application import so
get_settings() auto-generates SECRET_KEY (DEBUG=true), uses cheap bcrypt
rounds, disables rate limiting, and accepts the TestClient Host header.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

# CRITICAL: Set before any auth/core import -- settings are read at import time.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost"]')

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.credentials import CredentialVerifier
from auth.sessions import SessionIssuer
from auth.store import AccountStore, SessionStore
from records.store import HealthRecordStore

TEST_EMAIL = "testuser@example.com"
TEST_PASSWORD = "testpass123"


class FakeClock:
    """Callable clock that only moves when a test says so."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


# ---------------------------------------------------------------------------
# Core fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def db_url(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'healthtrack_test.db'}"


@pytest.fixture
def accounts(db_url) -> Generator[AccountStore, None, None]:
    store = AccountStore(db_url)
    yield store
    store.close()


@pytest.fixture
def session_store(db_url) -> Generator[SessionStore, None, None]:
    store = SessionStore(db_url)
    yield store
    store.close()


@pytest.fixture
def issuer(session_store, clock) -> SessionIssuer:
    return SessionIssuer(
        session_store,
        short_ttl=timedelta(minutes=30),
        long_ttl=timedelta(days=30),
        clock=clock,
    )


@pytest.fixture
def verifier(accounts, issuer, clock) -> CredentialVerifier:
    return CredentialVerifier(
        accounts,
        issuer,
        max_attempts=5,
        lockout_window=timedelta(minutes=15),
        revoke_sessions_on_lockout=True,
        clock=clock,
    )


@pytest.fixture
def records(db_url, clock) -> Generator[HealthRecordStore, None, None]:
    store = HealthRecordStore(db_url, clock=clock)
    yield store
    store.close()


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(accounts: AccountStore, sessions: SessionIssuer, records: HealthRecordStore):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-created test stores into app.state so TestClient routes see
    isolated test DBs rather than the configured database.

    The purge_task is a long-sleeping coroutine that keeps asyncio happy
    (a real asyncio.Task is required; MagicMock would fail on .cancel()).
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.accounts = accounts
        app.state.sessions = sessions
        app.state.verifier = CredentialVerifier(accounts, sessions)
        app.state.records = records
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()

    return test_lifespan


@pytest.fixture(scope="module")
def api_client(tmp_path_factory) -> Generator[tuple[TestClient, str, int], None, None]:
    """Yield (client, token, account_id) for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so
    tests hit real route handlers but use an isolated database. The test
    account is created before the client starts and a session token is
    issued for use in Authorization headers.
    """
    url = f"sqlite:///{tmp_path_factory.mktemp('api') / 'api.db'}"
    accounts = AccountStore(url)
    session_store = SessionStore(url)
    sessions = SessionIssuer(session_store)
    records = HealthRecordStore(url)

    account_id = CredentialVerifier(accounts, sessions).create_account(TEST_EMAIL, TEST_PASSWORD)
    token = sessions.issue(account_id)

    app.router.lifespan_context = _patch_lifespan(accounts, sessions, records)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, token, account_id

    records.close()
    session_store.close()
    accounts.close()
