"""
tests/conftest.py -- Shared test fixtures for identity-core.

This module provides:
  - FakeClock: a controllable UTC clock injected into TokenCodec
  - directory / revocations / codec / service: isolated unit-test wiring
    on in-memory SQLite, seeded with an ADMIN and a USER principal
  - api_client: TestClient over the real FastAPI app with a patched lifespan

Design: the API fixture uses named shared-memory SQLite URIs (not plain
:memory:) because TestClient runs sync route handlers in a thread pool. Plain
:memory: DBs are per-connection and would present a blank schema to each
worker thread. The named URI format shares one in-memory instance across all
connections in the same process.

The DEBUG env var must be set before any api/ or core/ import so
get_settings() auto-generates SECRET_KEY in dev mode rather than raising.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

# CRITICAL: Set env before any core/api import so get_settings() can
# auto-generate SECRET_KEY and the login limit does not trip during tests.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.directory import PrincipalDirectory
from auth.passwords import hash_password
from auth.revocation import RevocationStore
from auth.service import AuthService
from auth.tokens import TokenCodec

TEST_KEY = "test-signing-key-0123456789abcdef0123456789abcdef"

# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)

    def set(self, moment: datetime) -> None:
        self.current = moment


# ---------------------------------------------------------------------------
# Seed data
# ---------------------------------------------------------------------------


def seed_directory(directory: PrincipalDirectory) -> None:
    """Permissions, an ADMIN and a USER role, and one principal for each.

    Passwords: admin/adminpass123, alice/alicepass123.
    """
    directory.create_permission("USER_READ", "Read user records")
    directory.create_permission("USER_DELETE", "Delete user records")
    directory.create_role("ADMIN", "Administrator", permissions=["USER_READ", "USER_DELETE"])
    directory.create_role("USER", "Regular user", permissions=["USER_READ"])
    directory.create_principal("admin", hash_password("adminpass123"), roles=["ADMIN"])
    directory.create_principal("alice", hash_password("alicepass123"), roles=["USER"])


# ---------------------------------------------------------------------------
# Unit-test fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def directory() -> Generator[PrincipalDirectory, None, None]:
    d = PrincipalDirectory("sqlite:///:memory:")
    seed_directory(d)
    yield d
    d.close()


@pytest.fixture
def revocations() -> Generator[RevocationStore, None, None]:
    s = RevocationStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture
def codec(clock: FakeClock) -> TokenCodec:
    return TokenCodec(TEST_KEY, issuer="identity-test", clock=clock)


@pytest.fixture
def service(codec: TokenCodec, revocations: RevocationStore, directory: PrincipalDirectory) -> AuthService:
    return AuthService(
        codec,
        revocations,
        directory,
        token_ttl=timedelta(hours=1),
        refresh_grace=timedelta(days=7),
    )


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(service: AuthService):
    """Return an async context manager that replaces the real lifespan.

    Wires the pre-built test service and its stores into app.state so routes
    see isolated test DBs. The purge_task is a long-sleeping coroutine (a real
    asyncio.Task is required; MagicMock would fail on .cancel()).
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.auth_service = service
        app.state.directory = service.directory
        app.state.revocations = service.revocations
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()

    return test_lifespan


@pytest.fixture(scope="module")
def api_client(request) -> Generator[tuple[TestClient, FakeClock], None, None]:
    """Yield (client, clock) for API integration tests.

    Each test module gets its own named in-memory database, seeded with the
    admin and alice principals. The clock starts at real "now" so tokens look
    current, and tests may advance it to simulate expiry.
    """
    db_url = f"sqlite:///file:test_identity_{request.module.__name__}?mode=memory&cache=shared&uri=true"
    directory = PrincipalDirectory(db_url)
    revocations = RevocationStore(db_url)
    seed_directory(directory)
    clock = FakeClock(datetime.now(timezone.utc))
    codec = TokenCodec(TEST_KEY, issuer="identity-test", clock=clock)
    service = AuthService(codec, revocations, directory)

    app.router.lifespan_context = _patch_lifespan(service)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, clock

    revocations.close()
    directory.close()


@pytest.fixture
def login():
    """Return a helper that logs in through the API and returns the token."""

    def _login(client: TestClient, username: str, password: str) -> str:
        resp = client.post("/api/v1/auth/token", json={"username": username, "password": password})
        assert resp.status_code == 200, resp.text
        return resp.json()["token"]

    return _login
