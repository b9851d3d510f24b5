"""
tests/conftest.py -- Shared test fixtures for TaskTrack unit and integration tests.

This module provides:
  - _make_test_stores(): creates isolated in-memory DBs for users + tasks
  - _patch_lifespan(): wires test stores and services into app.state,
    bypassing real startup
  - user_store / task_store / token_service: direct handles for unit tests
  - auth_service / user_service / task_service: services over those stores
  - client: TestClient over the real app, sharing the stores above
  - signup: fixture that registers through the API and returns a Caller

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process. Each
test gets a fresh uuid-named database, so the admin bootstrap starts
unclaimed in every test.

Environment must be set before any auth/core import: get_settings() and the
module-level limiter read it exactly once.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass

# CRITICAL: set before any auth/core import. DEBUG auto-generates token
# secrets; BCRYPT_ROUNDS=4 keeps hashing fast; rate limits would trip on the
# number of logins the suite performs; TestClient sends Host: testserver.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost"]')

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.service import AuthService
from auth.store import UserStore
from auth.tokens import TokenService
from auth.users import UserService
from tasks.service import TaskService
from tasks.store import TaskStore

ACCESS_SECRET = "a" * 40
REFRESH_SECRET = "r" * 40
PASSWORD = "correct-horse-battery"

# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def _make_test_stores() -> tuple[UserStore, TaskStore]:
    """Create an isolated named shared-memory SQLite database for one test.

    Both stores point at the same database, as they do in production.
    """
    url = f"sqlite:///file:test_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"
    return UserStore(db_url=url), TaskStore(db_url=url)


def _patch_lifespan(user_store: UserStore, task_store: TaskStore, tokens: TokenService):
    """Return an async context manager that replaces the real lifespan."""

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = user_store
        app.state.task_store = task_store
        app.state.token_service = tokens
        app.state.auth_service = AuthService(user_store, tokens)
        app.state.user_service = UserService(user_store)
        app.state.task_service = TaskService(task_store, user_store)
        yield

    return test_lifespan


# ---------------------------------------------------------------------------
# Unit fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def stores() -> Generator[tuple[UserStore, TaskStore], None, None]:
    user_store, task_store = _make_test_stores()
    yield user_store, task_store
    task_store.close()
    user_store.close()


@pytest.fixture
def user_store(stores) -> UserStore:
    return stores[0]


@pytest.fixture
def task_store(stores) -> TaskStore:
    return stores[1]


@pytest.fixture
def token_service() -> TokenService:
    return TokenService(access_secret=ACCESS_SECRET, refresh_secret=REFRESH_SECRET)


@pytest.fixture
def auth_service(user_store, token_service) -> AuthService:
    return AuthService(user_store, token_service)


@pytest.fixture
def user_service(user_store) -> UserService:
    return UserService(user_store)


@pytest.fixture
def task_service(task_store, user_store) -> TaskService:
    return TaskService(task_store, user_store)


# ---------------------------------------------------------------------------
# Integration fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def client(user_store, task_store, token_service) -> Generator[TestClient, None, None]:
    """TestClient over the real app with isolated stores.

    The app shares the unit fixtures' stores, so a test can arrange data via
    user_store/task_store and assert on it via HTTP (or the other way round).
    """
    app.router.lifespan_context = _patch_lifespan(user_store, task_store, token_service)
    with TestClient(app, raise_server_exceptions=False) as c:
        yield c


@dataclass
class Caller:
    """A registered user as seen by an integration test."""

    id: int
    username: str
    email: str
    role: str
    access_token: str

    @property
    def headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.access_token}"}


def register(client: TestClient, username: str, password: str = PASSWORD) -> Caller:
    """Register through the API and return the new caller."""
    resp = client.post(
        "/api/v1/auth/register",
        json={"username": username, "email": f"{username}@example.com", "password": password},
    )
    assert resp.status_code == 201, resp.text
    data = resp.json()["data"]
    return Caller(
        id=data["user"]["id"],
        username=data["user"]["username"],
        email=data["user"]["email"],
        role=data["user"]["role"],
        access_token=data["accessToken"],
    )


@pytest.fixture
def signup(client):
    """Return register() bound to the test client: signup("alice") -> Caller."""

    def _signup(username: str, password: str = PASSWORD) -> Caller:
        return register(client, username, password)

    return _signup
