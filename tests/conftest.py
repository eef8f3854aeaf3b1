"""
tests/conftest.py -- Shared test fixtures for Lockgate.

This module provides:
  - store / tokens / hasher / verifier: isolated in-memory components for
    unit tests of the verifier, token service and account store
  - api_client: TestClient wired to an isolated shared-memory store with an
    ADMIN account and a USER account pre-created

Design: Named shared-memory SQLite URIs (not plain :memory:) are required for
the API client because TestClient runs sync route handlers in a thread pool.
Plain :memory: DBs are per-connection and would present a blank schema to each
worker thread. Unit-test fixtures run on one thread and use plain :memory:.

DEBUG must be set before any auth/core import so get_settings() auto-generates
SECRET_KEY instead of raising ValueError. The login rate limit is raised so the
lockout tests (several logins per module) never hit 429.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass

# CRITICAL: Set DEBUG before any auth/core import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.models import Account
from auth.passwords import BcryptHasher
from auth.service import CredentialVerifier
from auth.store import AccountStore
from auth.tokens import TokenService
from core.config import get_settings

TEST_SECRET = "f7f61f7547b5ef811b77d6cf30d27dcfb0ab52bc0e8f74a876643c07fcb94d71"

ADMIN_PASSWORD = "adminpass123"
USER_PASSWORD = "userpass123"


# ---------------------------------------------------------------------------
# Unit-test fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def hasher() -> BcryptHasher:
    """bcrypt at the minimum cost factor -- same algorithm, fast enough for tests."""
    return BcryptHasher(rounds=4)


@pytest.fixture
def store() -> Generator[AccountStore, None, None]:
    s = AccountStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture
def tokens() -> TokenService:
    return TokenService(TEST_SECRET, lifetime_ms=3_600_000)


@pytest.fixture
def verifier(store: AccountStore, tokens: TokenService, hasher: BcryptHasher) -> CredentialVerifier:
    return CredentialVerifier(store, tokens, hasher=hasher, max_failed_attempts=5)


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


@dataclass
class ApiContext:
    client: TestClient
    store: AccountStore
    tokens: TokenService
    admin_token: str
    user_token: str


def _patch_lifespan(store: AccountStore, tokens: TokenService, verifier: CredentialVerifier):
    """Return a lifespan that wires pre-built test components into app.state."""

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.account_store = store
        app.state.token_service = tokens
        app.state.verifier = verifier
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client(request: pytest.FixtureRequest) -> Generator[ApiContext, None, None]:
    """Yield an ApiContext for API integration tests.

    Accounts created up front:
      - "testadmin" / ADMIN_PASSWORD with roles {USER, ADMIN}
      - "testuser"  / USER_PASSWORD  with roles {USER}

    Each test module gets its own named in-memory database.
    """
    db_name = request.module.__name__.replace(".", "_")
    store = AccountStore(f"sqlite:///file:{db_name}?mode=memory&cache=shared&uri=true")
    tokens = TokenService.from_settings(get_settings())
    hasher = BcryptHasher(rounds=4)
    verifier = CredentialVerifier(store, tokens, hasher=hasher, max_failed_attempts=5)

    store.save(
        Account(
            username="testadmin",
            email="admin@example.com",
            password_hash=hasher.hash(ADMIN_PASSWORD),
            roles=frozenset({"USER", "ADMIN"}),
        )
    )
    store.save(
        Account(
            username="testuser",
            email="user@example.com",
            password_hash=hasher.hash(USER_PASSWORD),
        )
    )
    admin_token = tokens.issue({"sub": "testadmin", "roles": ["ADMIN", "USER"]})
    user_token = tokens.issue({"sub": "testuser", "roles": ["USER"]})

    app.router.lifespan_context = _patch_lifespan(store, tokens, verifier)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield ApiContext(client, store, tokens, admin_token, user_token)

    store.close()
