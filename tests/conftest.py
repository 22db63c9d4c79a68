"""
tests/conftest.py -- Shared test fixtures for TeamDesk integration tests.

This module provides:
  - _make_test_stores(): isolated shared-memory DBs for users, tracker and audit
  - _patch_lifespan(): wires test stores into app.state, bypassing real startup
  - api_env: TestClient plus ADMIN / MEMBER / GUEST accounts and their JWTs

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker thread.

The DEBUG env var must be set before any auth/core import so get_settings()
auto-generates SECRET_KEY in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from typing import NamedTuple

# CRITICAL: Set DEBUG before any auth/core import so get_settings() can
# auto-generate SECRET_KEY in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from access.resolver import AccessResolver
from api.limiter import limiter
from api.main import app
from audit.store import AuditStore
from auth.models import User
from auth.roles import Role
from auth.store import UserStore
from auth.tokens import create_access_token, hash_password
from tracker.store import TrackerStore

ADMIN_PASSWORD = "adminpass123"
MEMBER_PASSWORD = "memberpass123"
GUEST_PASSWORD = "guestpass123"


class ApiEnv(NamedTuple):
    client: TestClient
    user_store: UserStore
    tracker: TrackerStore
    audit: AuditStore
    admin_id: str
    admin_token: str
    member_id: str
    member_token: str
    guest_id: str
    guest_token: str


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def _make_test_stores(db_suffix: str) -> tuple[UserStore, TrackerStore, AuditStore]:
    """Create isolated named shared-memory SQLite stores.

    Args:
        db_suffix: Appended to each DB name so test modules never share state.
    """

    def url(kind: str) -> str:
        return f"sqlite:///file:test_{kind}_{db_suffix}?mode=memory&cache=shared&uri=true"

    return UserStore(db_url=url("users")), TrackerStore(db_url=url("tracker")), AuditStore(db_url=url("audit"))


def _patch_lifespan(user_store: UserStore, tracker: TrackerStore, audit: AuditStore):
    """Return an async context manager that replaces the real lifespan."""

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = user_store
        app.state.tracker = tracker
        app.state.audit = audit
        app.state.resolver = AccessResolver(user_store, tracker)
        app.state.setup_required = False
        yield

    return test_lifespan


def _create_user(store: UserStore, email: str, name: str, role: Role, password: str) -> tuple[str, str]:
    uid = store.create_user(User(email=email, name=name, role=role, hashed_password=hash_password(password)))
    return uid, create_access_token(user_id=uid, email=email, role=role, expire_seconds=3600)


# ---------------------------------------------------------------------------
# Module-scoped fixture -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def api_env() -> Generator[ApiEnv, None, None]:
    """Yield an ApiEnv for API integration tests.

    Each module gets fresh databases and a fresh rate-limit counter, so
    login tests in one module cannot exhaust the budget of another.
    """
    user_store, tracker, audit = _make_test_stores(uuid.uuid4().hex[:8])

    admin_id, admin_token = _create_user(user_store, "admin@example.com", "Ada Admin", Role.ADMIN, ADMIN_PASSWORD)
    member_id, member_token = _create_user(
        user_store, "member@example.com", "Mel Member", Role.MEMBER, MEMBER_PASSWORD
    )
    guest_id, guest_token = _create_user(user_store, "guest@example.com", "Gus Guest", Role.GUEST, GUEST_PASSWORD)

    app.router.lifespan_context = _patch_lifespan(user_store, tracker, audit)
    limiter.reset()

    with TestClient(app, raise_server_exceptions=True) as client:
        yield ApiEnv(
            client=client,
            user_store=user_store,
            tracker=tracker,
            audit=audit,
            admin_id=admin_id,
            admin_token=admin_token,
            member_id=member_id,
            member_token=member_token,
            guest_id=guest_id,
            guest_token=guest_token,
        )

    user_store.close()
    tracker.close()
    audit.close()
