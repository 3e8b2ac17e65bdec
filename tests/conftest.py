"""
tests/conftest.py -- Shared test fixtures for Gatehouse.

This module provides:
  - db_engine: a fresh in-memory SQLite engine with the schema created
  - clock: a FakeClock injected into SessionStore so expiry tests never sleep
  - stack: every store wired on one engine, plus a seeded client and group
  - engine: an AuthEngine for the seeded client
  - alice: a registered user (password "secretpw") in the default group

The DEBUG and BCRYPT_ROUNDS env vars must be set before any project import
so get_settings() auto-generates SECRET_KEY and bcrypt stays fast.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest

from auth.engine import AuthEngine
from auth.permissions import PermissionStore
from auth.sessions import SessionStore
from core.config import get_settings
from core.db import create_db_engine, init_schema
from core.models import Client
from directory.clients import ClientDirectory
from directory.groups import GroupStore
from directory.users import UserDirectory, UserProfile


class FakeClock:
    """Deterministic stand-in for time.time()."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@dataclass
class Stack:
    clients: ClientDirectory
    groups: GroupStore
    users: UserDirectory
    sessions: SessionStore
    permissions: PermissionStore
    client: Client
    default_group_id: int


@pytest.fixture
def db_engine():
    engine = create_db_engine("sqlite:///:memory:")
    init_schema(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def stack(db_engine, clock) -> Stack:
    """All stores on one engine, with client "Project Foo" (timeout 2s) seeded."""
    clients = ClientDirectory(db_engine)
    groups = GroupStore(db_engine)
    client = Client(name="Project Foo", domain="foo.example.org", timeout_seconds=2, cookie_name="foo_session")
    clients.register(client)
    default_group = groups.create_group(client.id, "users")
    clients.update(client.id, default_group_id=default_group.id)
    client.default_group_id = default_group.id
    return Stack(
        clients=clients,
        groups=groups,
        users=UserDirectory(db_engine, groups),
        sessions=SessionStore(db_engine, clock=clock, sleep=lambda _: None),
        permissions=PermissionStore(db_engine, groups),
        client=client,
        default_group_id=default_group.id,
    )


@pytest.fixture
def engine(stack: Stack) -> AuthEngine:
    return AuthEngine(
        stack.client,
        directory=stack.clients,
        users=stack.users,
        sessions=stack.sessions,
        permissions=stack.permissions,
    )


@pytest.fixture
def alice(stack: Stack) -> UserProfile:
    return stack.users.register(stack.client, "alice", "secretpw", "a@x.com", first_name="Alice")


@pytest.fixture(autouse=True)
def _fresh_settings():
    """Drop the cached Settings so env changes in one test don't leak."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
