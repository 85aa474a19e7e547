"""
tests/conftest.py -- Shared test fixtures for Keystone.

This module provides:
  - hasher / store / tokens / auth_service: fresh components per test, backed
    by a private in-memory SQLite database
  - _patch_lifespan(): wires test components into app.state, bypassing real startup
  - api_client: TestClient plus admin and regular-user tokens for API tests

Design: the API fixture uses a named shared-memory SQLite URI (not plain
:memory:) because TestClient runs sync route handlers in a thread pool.
Plain :memory: DBs are per-connection and would present a blank schema to
each worker thread.

DEBUG must be set before any api/ import so get_settings() auto-generates
SECRET_KEY instead of raising ValueError. BCRYPT_ROUNDS=4 keeps hashing fast.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass

# CRITICAL: set before any core/auth/api import reads Settings.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.hashing import CredentialHasher
from auth.models import Role
from auth.service import AuthService
from auth.store import UserStore
from auth.tokens import TokenService

TEST_SECRET = "test-secret-key-0123456789abcdef0123456789abcdef"
ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "password"
USER_EMAIL = "user@example.com"
USER_PASSWORD = "userpass123"


# ---------------------------------------------------------------------------
# Component fixtures -- one fresh set per test
# ---------------------------------------------------------------------------


@pytest.fixture
def hasher() -> CredentialHasher:
    return CredentialHasher(rounds=4)


@pytest.fixture
def store(hasher: CredentialHasher) -> Generator[UserStore, None, None]:
    s = UserStore("sqlite:///:memory:", hasher)
    yield s
    s.close()


@pytest.fixture
def tokens() -> TokenService:
    return TokenService(TEST_SECRET, expire_seconds=3600)


@pytest.fixture
def auth_service(store: UserStore, hasher: CredentialHasher, tokens: TokenService) -> AuthService:
    return AuthService(store, hasher, tokens)


# ---------------------------------------------------------------------------
# API fixture
# ---------------------------------------------------------------------------


@dataclass
class ApiContext:
    client: TestClient
    store: UserStore
    admin_token: str
    user_token: str
    admin_id: int
    user_id: int

    def auth(self, token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {token}"}


def _patch_lifespan(store: UserStore, auth_service: AuthService):
    """Return an async context manager that replaces the real lifespan."""

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = store
        app.state.auth_service = auth_service
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client(request) -> Generator[ApiContext, None, None]:
    """Yield an ApiContext for API integration tests.

    One isolated store per test module. An admin and a regular user exist
    before the client starts; their tokens come from a real login.
    """
    db_name = request.module.__name__.replace(".", "_")
    hasher = CredentialHasher(rounds=4)
    user_store = UserStore(f"sqlite:///file:{db_name}?mode=memory&cache=shared&uri=true", hasher)
    auth_service = AuthService(user_store, hasher, TokenService(TEST_SECRET, expire_seconds=3600))

    admin = user_store.create("Admin User", ADMIN_EMAIL, ADMIN_PASSWORD, Role.admin)
    regular = user_store.create("Regular User", USER_EMAIL, USER_PASSWORD)
    admin_token = auth_service.login(ADMIN_EMAIL, ADMIN_PASSWORD).token
    user_token = auth_service.login(USER_EMAIL, USER_PASSWORD).token

    app.router.lifespan_context = _patch_lifespan(user_store, auth_service)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield ApiContext(
            client=client,
            store=user_store,
            admin_token=admin_token,
            user_token=user_token,
            admin_id=admin.id,
            user_id=regular.id,
        )

    user_store.close()
