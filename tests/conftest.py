"""
tests/conftest.py -- Shared test fixtures for Tokengate.

This module provides:
  - unit fixtures: store (plain in-memory SQLite), hasher, signer, manager
  - _make_test_store(): isolated named shared-memory DB for integration tests
  - _patch_lifespan(): wires a test store into app.state, bypassing real startup
  - client: TestClient against the real FastAPI app
  - registered_user: registers alice@x.com through the API

Design: Named shared-memory SQLite URIs (not plain :memory:) are required for
the TestClient because it runs sync route handlers in a thread pool. Plain
:memory: DBs are per-connection and would present a blank schema to each
worker thread. The named URI shares one in-memory instance per process.

Environment must be set before any api/ import so get_settings() fills dev
defaults (DEBUG), cookies come back over plain http (SECURE_COOKIES), and
bcrypt stays fast (BCRYPT_ROUNDS).
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: set before any api/ or core/ import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("SECURE_COOKIES", "false")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest
from fastapi.testclient import TestClient

from api.main import app, build_components
from auth.passwords import PasswordHasher
from auth.session import SessionManager
from auth.store import UserStore
from auth.tokens import TokenSigner

ACCESS_SECRET = "a" * 32 + "-access-secret-for-tests"
REFRESH_SECRET = "r" * 32 + "-refresh-secret-for-tests"

ALICE = {"fullName": "Alice", "email": "alice@x.com", "password": "Secret123"}


# ---------------------------------------------------------------------------
# Unit fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> Generator[UserStore, None, None]:
    s = UserStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture(scope="session")
def hasher() -> PasswordHasher:
    return PasswordHasher(rounds=4)


@pytest.fixture
def signer() -> TokenSigner:
    return TokenSigner(ACCESS_SECRET, 900, REFRESH_SECRET, 864000)


@pytest.fixture
def manager(store: UserStore, hasher: PasswordHasher, signer: TokenSigner) -> SessionManager:
    return SessionManager(store, hasher, signer)


# ---------------------------------------------------------------------------
# Integration helpers
# ---------------------------------------------------------------------------


def _make_test_store(db_suffix: str) -> UserStore:
    """Create an isolated named shared-memory SQLite store.

    Args:
        db_suffix: Unique string appended to the DB name so tests never share state.
    """
    return UserStore(f"sqlite:///file:test_auth_{db_suffix}?mode=memory&cache=shared&uri=true")


def _patch_lifespan(user_store: UserStore):
    """Return an async context manager that replaces the real lifespan."""

    @asynccontextmanager
    async def test_lifespan(app):
        build_components(app, user_store)
        yield

    return test_lifespan


@pytest.fixture
def client() -> Generator[TestClient, None, None]:
    """Yield a TestClient with its own empty store.

    Function-scoped: the client keeps a cookie jar, and login/logout tests
    depend on starting without cookies.
    """
    user_store = _make_test_store(uuid.uuid4().hex)
    app.router.lifespan_context = _patch_lifespan(user_store)

    with TestClient(app, raise_server_exceptions=True) as c:
        yield c

    user_store.close()


@pytest.fixture
def registered_user(client: TestClient) -> dict:
    """Register Alice and return the sanitized user from the response envelope."""
    resp = client.post("/api/v1/users/register", json=ALICE)
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]
