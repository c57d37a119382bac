"""
tests/conftest.py -- Shared test fixtures for the auth service tests.

This module provides:
  - make_test_store(): creates an isolated in-memory user store
  - make_user(): inserts a user with a known password, any role
  - _patch_lifespan(): wires a test store and services into app.state
  - api_client: TestClient with an admin access token for API integration tests

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process.

The environment must be prepared before any auth/core/api import:
  - DEBUG so get_settings() auto-generates SECRET_KEY instead of raising
  - ALLOWED_HOSTS so TrustedHostMiddleware accepts TestClient's "testserver"
  - rate limits high enough that a whole test module never trips them
"""

from __future__ import annotations

import itertools
import os
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: Set before any auth/core import -- settings are read at module load.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("ALLOWED_HOSTS", '["localhost", "testserver"]')
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")
os.environ.setdefault("REGISTER_RATE_LIMIT", "1000/minute")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.models import UserAccount
from auth.passwords import hash_password
from auth.permissions import Role
from auth.service import AuthService
from auth.store import UserStore
from auth.tokens import create_access_token
from auth.users import UserService

ADMIN_USERNAME = "testadmin"
ADMIN_PASSWORD = "testpass123"

_phone_numbers = itertools.count(1)

# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def make_test_store(db_suffix: str) -> UserStore:
    """Create an isolated named shared-memory SQLite store.

    Args:
        db_suffix: Unique string appended to the DB name so test modules
                   don't share state (e.g. 'api', 'users').
    """
    return UserStore(db_url=f"sqlite:///file:test_auth_{db_suffix}?mode=memory&cache=shared&uri=true")


def make_user(
    store: UserStore,
    username: str,
    password: str = "secret123",
    *,
    phone: str | None = None,
    role: Role = Role.CUSTOMER,
    is_active: bool = True,
    email: str | None = None,
) -> UserAccount:
    """Insert a user directly through the store and return the stored record.

    Phone defaults to the next unused 10-digit number so callers rarely
    need to pick one.
    """
    user = UserAccount(
        username=username,
        phone=phone or f"09{next(_phone_numbers):08d}",
        full_name=username.title(),
        role=role,
        email=email,
        hashed_password=hash_password(password),
        is_active=is_active,
    )
    uid = store.create_user(user)
    return store.get_by_id(uid)


def auth_headers(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def _patch_lifespan(user_store: UserStore):
    """Return an async context manager that replaces the real lifespan.

    Wires the pre-created test store and services into app.state so TestClient
    routes see an isolated test DB rather than the configured database, and
    skips bootstrap-admin seeding.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = user_store
        app.state.auth_service = AuthService(user_store)
        app.state.user_service = UserService(user_store)
        yield

    return test_lifespan


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> Generator[UserStore, None, None]:
    """Fresh private in-memory store per test for unit tests."""
    s = UserStore(db_url="sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture(scope="module")
def api_client(request) -> Generator[tuple[TestClient, str, int], None, None]:
    """Yield (client, token, user_id) for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so tests
    hit real route handlers and middleware but use an isolated in-memory
    store per test module. The admin user is created before the client
    starts and its access token is issued directly.
    """
    user_store = make_test_store(request.module.__name__.rsplit(".", 1)[-1])
    admin = make_user(user_store, ADMIN_USERNAME, ADMIN_PASSWORD, phone="0900000000", role=Role.ADMIN)
    token = create_access_token(admin)

    app.router.lifespan_context = _patch_lifespan(user_store)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, token, admin.id

    user_store.close()
