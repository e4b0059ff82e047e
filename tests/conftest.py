"""
tests/conftest.py -- Shared test fixtures for Roo Ranking integration tests.

This module provides:
  - _make_test_stores(): creates isolated in-memory DBs for auth + festival
  - _patch_lifespan(): wires test stores into app.state, bypassing real startup
  - api_client: TestClient plus an admin session token for API integration tests

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process.

Environment must be set before any api/auth/core import: get_settings() is
cached on first call, and api.main reads allowed hosts and rate limits at
import time.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: set before any project import (see module docstring).
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost"]')
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")
os.environ.setdefault("REGISTER_RATE_LIMIT", "1000/minute")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.accounts import create_admin
from auth.sessions import SessionManager
from auth.store import UserStore
from festival.store import FestivalStore

ADMIN_USERNAME = "testadmin"
ADMIN_PASSWORD = "testpass123"

# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def _make_test_stores(db_suffix: str) -> tuple[UserStore, FestivalStore]:
    """Create isolated named shared-memory SQLite stores for test isolation.

    Args:
        db_suffix: Unique string appended to the DB name so test modules
                   don't share state (e.g. 'api_users', 'api_festival').
    """
    auth_url = f"sqlite:///file:test_auth_{db_suffix}?mode=memory&cache=shared&uri=true"
    festival_url = f"sqlite:///file:test_festival_{db_suffix}?mode=memory&cache=shared&uri=true"
    return UserStore(db_url=auth_url), FestivalStore(db_url=festival_url)


def _patch_lifespan(user_store: UserStore, festival: FestivalStore, sessions: SessionManager):
    """Return an async context manager that replaces the real lifespan.

    The purge_task is a long-sleeping coroutine so shutdown can cancel a
    real asyncio.Task, as it does in production.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = user_store
        app.state.festival = festival
        app.state.sessions = sessions
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()

    return test_lifespan


# ---------------------------------------------------------------------------
# Module-scoped fixtures -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def api_client(request) -> Generator[tuple[TestClient, str, int], None, None]:
    """Yield (client, admin_token, admin_id) for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so
    tests hit real route handlers but use isolated in-memory stores. The
    admin is seeded the same way the CLI does it, and the token comes from a
    real SessionManager.login() so it is a genuine session row.
    """
    suffix = request.module.__name__.rsplit(".", 1)[-1]
    user_store, festival = _make_test_stores(suffix)
    sessions = SessionManager(user_store)

    admin, _ = create_admin(user_store, ADMIN_USERNAME, ADMIN_PASSWORD)
    token, _ = sessions.login(ADMIN_USERNAME, ADMIN_PASSWORD)

    app.router.lifespan_context = _patch_lifespan(user_store, festival, sessions)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, token, admin.id

    user_store.close()
    festival.close()
