"""
tests/conftest.py -- Shared test fixtures for OfficeAdmin tests.

This module provides:
  - store / site_config: fresh in-memory stores for unit tests
  - seeded_store: store with default permissions/roles, admin and bob (Employee)
  - codec: TokenCodec with a fixed test key
  - _make_test_stores(): isolated named shared-memory DBs for the HTTP tests
  - _patch_lifespan(): wires test stores into app.state, bypassing real startup
  - api_client: TestClient over a seeded database, one per test module
  - login(): helper returning Authorization headers for a fresh session

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
for the HTTP tests because TestClient runs route handlers in a thread pool.
Plain :memory: DBs are per-connection and would present a blank schema to
each worker thread. The named URI format
(file:name?mode=memory&cache=shared&uri=true) shares one in-memory instance
across all connections in the same process.

The DEBUG env var must be set before any auth/api import so get_settings()
auto-generates SECRET_KEY in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: Set DEBUG before any auth/core import so get_settings() can
# auto-generate SECRET_KEY in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from api.main import app, wire_services
from auth.admin import RbacAdmin
from auth.seed import seed_defaults
from auth.store import CredentialStore
from auth.tokens import TokenCodec
from siteconfig.models import SiteConfig
from siteconfig.store import SiteConfigStore

ADMIN_PASSWORD = "admin-pass-123"
BOB_PASSWORD = "bob-pass-123"
TEST_SECRET = "test-secret-key-that-is-at-least-32-chars"

# ---------------------------------------------------------------------------
# Unit-test fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> Generator[CredentialStore, None, None]:
    s = CredentialStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture
def seeded_store(store: CredentialStore) -> CredentialStore:
    """Default permissions and roles, "admin" (Administrator) and "bob" (Employee)."""
    _seed_users(store)
    return store


@pytest.fixture
def site_config() -> Generator[SiteConfigStore, None, None]:
    s = SiteConfigStore("sqlite:///:memory:", private_prefixes=["secret", "private", "credential"])
    yield s
    s.close()


@pytest.fixture
def codec() -> TokenCodec:
    return TokenCodec(TEST_SECRET, default_ttl=3600)


def _seed_users(store: CredentialStore) -> None:
    seed_defaults(store, admin_password=ADMIN_PASSWORD)
    employee = store.get_role_by_name("Employee")
    RbacAdmin(store).create_user("bob", BOB_PASSWORD, display_name="Bob", role_ids=[employee.id])


# ---------------------------------------------------------------------------
# HTTP fixtures
# ---------------------------------------------------------------------------


def _make_test_stores(db_suffix: str) -> tuple[CredentialStore, SiteConfigStore]:
    """Create isolated named shared-memory SQLite stores for test isolation.

    Args:
        db_suffix: Unique string appended to the DB name so test modules
                   don't share state.
    """
    auth_url = f"sqlite:///file:test_auth_{db_suffix}?mode=memory&cache=shared&uri=true"
    config_url = f"sqlite:///file:test_config_{db_suffix}?mode=memory&cache=shared&uri=true"
    return CredentialStore(db_url=auth_url), SiteConfigStore(db_url=config_url)


def _patch_lifespan(store: CredentialStore, site_config: SiteConfigStore):
    """Return an async context manager that replaces the real lifespan.

    Runs the same service wiring as production on top of the test stores.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        wire_services(app, store, site_config)
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client(request) -> Generator[TestClient, None, None]:
    """Yield a TestClient over a seeded database private to the test module.

    The TestClient uses the real FastAPI app with a patched lifespan so tests
    hit real route handlers, the real guard dependency and real exception
    handlers, but use isolated in-memory stores.
    """
    suffix = request.module.__name__.rsplit(".", 1)[-1]
    store, site_config = _make_test_stores(suffix)
    _seed_users(store)
    site_config.seed_defaults()
    site_config.create(SiteConfig(key="smtpPassword", value="hunter2", group="secret_mail"))

    app.router.lifespan_context = _patch_lifespan(store, site_config)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client

    site_config.close()
    store.close()


def login(client: TestClient, username: str, password: str) -> dict[str, str]:
    """Log in and return Authorization headers for the new session."""
    resp = client.post("/api/v1/auth/login", json={"username": username, "password": password})
    assert resp.status_code == 200, resp.text
    return {"Authorization": f"Bearer {resp.json()['access_token']}"}


@pytest.fixture
def admin_headers(api_client: TestClient) -> dict[str, str]:
    return login(api_client, "admin", ADMIN_PASSWORD)


@pytest.fixture
def bob_headers(api_client: TestClient) -> dict[str, str]:
    return login(api_client, "bob", BOB_PASSWORD)
