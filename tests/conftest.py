"""
tests/conftest.py -- Shared test fixtures for content gateway integration tests.

This module provides:
  - FakeStrapi (tests/helpers.py) as the upstream
  - _make_test_stores(): creates isolated in-memory DBs for users + audit
  - _patch_lifespan(): wires test collaborators into app.state, bypassing
    the real startup (no requests.Session, no upstream login)
  - api_client: TestClient plus the stores, the fake upstream and one bearer
    token per role

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process.

The DEBUG env var must be set before any auth/core import so get_settings()
auto-generates SECRET_KEY in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import asyncio
import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: Set DEBUG before any auth/core import so get_settings() can
# auto-generate SECRET_KEY in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.platform import PlatformHeaderStrategy
from auth.sessions import SessionRegistry
from auth.store import UserStore
from auth.strategies import IdentityResolver, SessionTokenStrategy
from cache.store import MemoryStore
from content.audit import AuditStore
from content.service import ContentService
from proxy.content_types import ContentTypeResolver
from tests.helpers import ApiContext, FakeStrapi, bearer, make_user

# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def _make_test_stores(db_suffix: str) -> tuple[UserStore, AuditStore]:
    """Create isolated named shared-memory SQLite stores for test isolation.

    Args:
        db_suffix: Unique string appended to the DB name so test modules
                   don't share state (e.g. 'auth', 'content').
    """
    users_url = f"sqlite:///file:test_users_{db_suffix}?mode=memory&cache=shared&uri=true"
    audit_url = f"sqlite:///file:test_audit_{db_suffix}?mode=memory&cache=shared&uri=true"
    return UserStore(db_url=users_url), AuditStore(db_url=audit_url)


def _patch_lifespan(user_store: UserStore, audit_store: AuditStore, upstream: FakeStrapi):
    """Return an async context manager that replaces the real lifespan.

    The sweep_task is a long-sleeping coroutine that keeps asyncio happy
    (a real asyncio.Task is required; MagicMock would fail on .cancel()).
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = user_store
        app.state.audit_store = audit_store
        app.state.forwarder = upstream
        app.state.token_store = MemoryStore()
        app.state.content_type_cache = MemoryStore()
        app.state.content_type_resolver = ContentTypeResolver(upstream, app.state.content_type_cache)
        app.state.content_service = ContentService(upstream, app.state.content_type_resolver)
        app.state.sessions = SessionRegistry(user_store)
        app.state.identity_resolver = IdentityResolver(
            [PlatformHeaderStrategy(user_store), SessionTokenStrategy(user_store)],
            app.state.sessions,
        )
        app.state.sweep_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.sweep_task.cancel()

    return test_lifespan


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def api_client() -> Generator[ApiContext, None, None]:
    """Yield an ApiContext with one user and bearer header per role.

    Users: admin1, editor1, author1, author2, viewer1. Each test gets fresh
    stores, so audit history and sessions never leak between tests.
    """
    user_store, audit_store = _make_test_stores(uuid.uuid4().hex)
    upstream = FakeStrapi()

    user_ids: dict[str, str] = {}
    headers: dict[str, dict[str, str]] = {}
    for username, role in (
        ("admin1", "admin"),
        ("editor1", "editor"),
        ("author1", "author"),
        ("author2", "author"),
        ("viewer1", "viewer"),
    ):
        uid = make_user(user_store, username, role)
        user_ids[username] = uid
        headers[username] = bearer(uid, username, role)

    app.router.lifespan_context = _patch_lifespan(user_store, audit_store, upstream)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield ApiContext(client, user_store, audit_store, upstream, user_ids, headers)

    audit_store.close()
    user_store.close()
