"""
tests/conftest.py -- Shared test fixtures for KeyShelf tests.

This module provides:
  - make_stores(): isolated in-memory DBs for auth, vault records and secrets
  - make_user(): creates a principal and returns it with Bearer headers
  - _patch_lifespan(): wires test stores into app.state, bypassing real startup
  - vault_env: the vault services over plain in-memory stores (no HTTP)
  - api_client: TestClient plus an administrator, a member and a principal
    with no role, for API integration tests

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process.

The DEBUG env var must be set before any auth/core import so get_settings()
auto-generates SECRET_KEY and VAULT_MASTER_KEY in dev mode rather than
raising ValueError.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass

# CRITICAL: Set DEBUG before any auth/core import.
os.environ.setdefault("DEBUG", "true")

import pytest
from cryptography.fernet import Fernet
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app, wire_services
from auth.models import Role, User
from auth.store import UserStore
from auth.tokens import create_access_token, hash_password
from vault.access import VaultService
from vault.catalog import CatalogService
from vault.roles import RoleService
from vault.secret_store import FernetSecretStore
from vault.sharing import SharingService
from vault.store import VaultStore

TEST_PASSWORD = "testpass123"
# Hashed once; bcrypt per principal per test would dominate the run time.
_TEST_HASH = hash_password(TEST_PASSWORD)

# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def make_stores(db_suffix: str) -> tuple[UserStore, VaultStore, FernetSecretStore]:
    """Create isolated named shared-memory SQLite stores.

    Args:
        db_suffix: Unique string appended to each DB name so test modules
                   don't share state.
    """
    auth_url = f"sqlite:///file:test_auth_{db_suffix}?mode=memory&cache=shared&uri=true"
    vault_url = f"sqlite:///file:test_vault_{db_suffix}?mode=memory&cache=shared&uri=true"
    secrets_url = f"sqlite:///file:test_secrets_{db_suffix}?mode=memory&cache=shared&uri=true"
    return (
        UserStore(db_url=auth_url),
        VaultStore(db_url=vault_url),
        FernetSecretStore(db_url=secrets_url, master_key=Fernet.generate_key()),
    )


def make_user(user_store: UserStore, email: str) -> tuple[User, dict[str, str]]:
    """Create a principal and return (user, Authorization headers)."""
    uid = user_store.create_user(User(email=email, hashed_password=_TEST_HASH))
    user = user_store.get_by_id(uid)
    token = create_access_token(user_id=uid, email=email, expire_seconds=3600)
    return user, {"Authorization": f"Bearer {token}"}


def _patch_lifespan(user_store: UserStore, vault_store: VaultStore, secret_store: FernetSecretStore):
    """Return an async context manager that replaces the real lifespan."""

    @asynccontextmanager
    async def test_lifespan(app):
        wire_services(app, user_store, vault_store, secret_store)
        yield

    return test_lifespan


# ---------------------------------------------------------------------------
# Module-scoped API fixture -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


@dataclass
class ApiContext:
    client: TestClient
    user_store: UserStore
    vault_store: VaultStore
    secret_store: FernetSecretStore
    admin: User
    admin_headers: dict[str, str]
    member: User
    member_headers: dict[str, str]
    outsider: User
    outsider_headers: dict[str, str]


@pytest.fixture(scope="module")
def api_client(request) -> Generator[ApiContext, None, None]:
    """Yield an ApiContext for API integration tests.

    Principals:
      admin     -- admin@example.com, tenant administrator
      member    -- member@example.com, Role.MEMBER
      outsider  -- outsider@example.com, no role
    All share the password TEST_PASSWORD.
    """
    user_store, vault_store, secret_store = make_stores(request.module.__name__.rsplit(".", 1)[-1])

    admin, admin_headers = make_user(user_store, "admin@example.com")
    member, member_headers = make_user(user_store, "member@example.com")
    outsider, outsider_headers = make_user(user_store, "outsider@example.com")
    user_store.bootstrap_administrator(admin.id)
    user_store.create_role_assignment(member.id, Role.MEMBER)

    app.router.lifespan_context = _patch_lifespan(user_store, vault_store, secret_store)
    limiter.reset()

    with TestClient(app, base_url="http://localhost", raise_server_exceptions=True) as client:
        yield ApiContext(
            client=client,
            user_store=user_store,
            vault_store=vault_store,
            secret_store=secret_store,
            admin=admin,
            admin_headers=admin_headers,
            member=member,
            member_headers=member_headers,
            outsider=outsider,
            outsider_headers=outsider_headers,
        )

    secret_store.close()
    vault_store.close()
    user_store.close()


# ---------------------------------------------------------------------------
# Function-scoped service fixture -- plain :memory: stores, no HTTP
# ---------------------------------------------------------------------------


@dataclass
class VaultEnv:
    user_store: UserStore
    vault_store: VaultStore
    secret_store: FernetSecretStore
    vault: VaultService
    roles: RoleService
    sharing: SharingService
    catalog: CatalogService
    admin: User
    member: User
    outsider: User


@pytest.fixture
def vault_env() -> Generator[VaultEnv, None, None]:
    """Services over fresh in-memory stores with an administrator, a member
    and a principal holding no role. Single-threaded, so plain :memory: works.
    """
    user_store = UserStore("sqlite:///:memory:")
    vault_store = VaultStore("sqlite:///:memory:")
    secret_store = FernetSecretStore("sqlite:///:memory:", Fernet.generate_key())

    admin, _ = make_user(user_store, "admin@example.com")
    member, _ = make_user(user_store, "member@example.com")
    outsider, _ = make_user(user_store, "outsider@example.com")
    user_store.bootstrap_administrator(admin.id)
    user_store.create_role_assignment(member.id, Role.MEMBER)

    yield VaultEnv(
        user_store=user_store,
        vault_store=vault_store,
        secret_store=secret_store,
        vault=VaultService(user_store, vault_store, secret_store),
        roles=RoleService(user_store, vault_store),
        sharing=SharingService(user_store, vault_store),
        catalog=CatalogService(user_store, vault_store),
        admin=admin,
        member=member,
        outsider=outsider,
    )

    secret_store.close()
    vault_store.close()
    user_store.close()
