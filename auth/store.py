"""
auth/store.py -- SQLAlchemy Core persistence layer for principals and roles.

Pattern: Repository + Data Mapper (same as vault/store.py).
UserStore is the repository; _row_to_user / _row_to_role are the mappers.
Service and dependency code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

Role bootstrap:
  tenant_bootstrap is a single-row table (id = 1 enforced by a CHECK
  constraint and the primary key). bootstrap_administrator() inserts that row
  and the administrator role in ONE transaction, so when two requests race to
  become the first administrator the loser hits the primary key and rolls
  back. No in-process flag or lock is involved; the guard works across any
  number of server instances sharing the database.

user_roles.user_id is UNIQUE: a principal holds at most one role. A
principal with no row holds Role.NONE.

DB path: auth/keyshelf_auth.db by default (see core.config).

Layer rule: no imports from api/ or vault/.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    CheckConstraint,
    Column,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    event,
    func,
    select,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.models import Role, RoleAssignment, User
from core.config import get_settings

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("hashed_password", Text),
    Column("created_at", String(32), nullable=False),
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("last_login", Text),  # ISO 8601 timestamp of last successful auth
)

_user_roles = Table(
    "user_roles",
    _metadata,
    Column("id", String(36), primary_key=True),
    Column("user_id", Integer, nullable=False, unique=True),
    Column("role", String(30), nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_tenant_bootstrap = Table(
    "tenant_bootstrap",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=False),
    Column("administrator_id", Integer, nullable=False),
    Column("created_at", String(32), nullable=False),
    CheckConstraint("id = 1", name="ck_tenant_bootstrap_single_row"),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    WAL (Write-Ahead Logging) allows readers to proceed without blocking
    during writes. Set per-connection because SQLite PRAGMAs are not
    inherited by new connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User and RoleAssignment entities.

    Usage:
        store = UserStore()
        uid = store.create_user(User(email="admin@example.com", hashed_password=hash_password("secret")))
        store.bootstrap_administrator(uid)
        store.get_role(uid)            # Role.ADMINISTRATOR
        store.close()
    """

    def __init__(self, db_url: str | None = None) -> None:
        db_url = db_url or get_settings().auth_db_url
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # User queries
    # ------------------------------------------------------------------

    def has_users(self) -> bool:
        """Return True if at least one user record exists."""
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_users)).scalar()
        return (result or 0) > 0

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        Callers (e.g. POST /auth/register) catch IntegrityError and report a
        conflict.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    email=user.email,
                    hashed_password=user.hashed_password,
                    created_at=_now_iso(),
                    is_active=1 if user.is_active else 0,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by exact email (case-sensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: int) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def update_user(self, user_id: int, **fields) -> bool:
        """Update mutable fields on an existing user.

        Accepted fields: is_active, hashed_password.
        is_active must be passed as bool; this method converts to int for SQLite.

        Returns True if a row was updated, False if user_id was not found.
        """
        if "is_active" in fields:
            fields["is_active"] = 1 if fields["is_active"] else 0
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def update_last_login(self, user_id: int) -> None:
        """Stamp the current UTC timestamp as last_login for the given user."""
        with self.engine.connect() as conn:
            conn.execute(_users.update().where(_users.c.id == user_id).values(last_login=_now_iso()))
            conn.commit()

    # ------------------------------------------------------------------
    # Role queries
    # ------------------------------------------------------------------

    def get_role(self, user_id: int) -> Role:
        """Return the user's role, Role.NONE when no assignment exists."""
        with self.engine.connect() as conn:
            value = conn.execute(select(_user_roles.c.role).where(_user_roles.c.user_id == user_id)).scalar()
        return Role(value) if value is not None else Role.NONE

    def get_role_assignment(self, role_id: str) -> RoleAssignment | None:
        """Look up a role assignment by its id. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_user_roles.select().where(_user_roles.c.id == role_id)).fetchone()
        return _row_to_role(row) if row is not None else None

    def list_role_assignments(self, role: Role | None = None) -> list[RoleAssignment]:
        """Return role assignments joined with user email, oldest first.

        Pass role to restrict the result to one role (e.g. Role.MEMBER for the
        sharing grantee picker).
        """
        stmt = (
            select(
                _user_roles.c.id,
                _user_roles.c.user_id,
                _user_roles.c.role,
                _user_roles.c.created_at,
                _user_roles.c.updated_at,
                _users.c.email,
            )
            .select_from(_user_roles.outerjoin(_users, _user_roles.c.user_id == _users.c.id))
            .order_by(_user_roles.c.created_at, _user_roles.c.id)
        )
        if role is not None:
            stmt = stmt.where(_user_roles.c.role == role.value)
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return [_row_to_role(r) for r in rows]

    def count_role_assignments(self) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_user_roles)).scalar()
        return result or 0

    def bootstrap_administrator(self, user_id: int) -> str | None:
        """Make user_id the tenant administrator if no role exists yet.

        The existence check, the guard-row insert and the role insert run in
        one transaction. Returns the new role id, or None when roles were
        already initialized -- including when a concurrent caller won the
        race and the guard row's primary key rejected this insert.
        """
        now = _now_iso()
        role_id = str(uuid.uuid4())
        try:
            with self.engine.begin() as conn:
                existing = conn.execute(select(func.count()).select_from(_user_roles)).scalar()
                if existing:
                    return None
                conn.execute(_tenant_bootstrap.insert().values(id=1, administrator_id=user_id, created_at=now))
                conn.execute(
                    _user_roles.insert().values(
                        id=role_id,
                        user_id=user_id,
                        role=Role.ADMINISTRATOR.value,
                        created_at=now,
                        updated_at=now,
                    )
                )
        except IntegrityError:
            return None
        return role_id

    def create_role_assignment(self, user_id: int, role: Role) -> str:
        """Insert a role row and return its id.

        Raises sqlalchemy.exc.IntegrityError if the user already holds a role
        (UNIQUE user_id). Role.NONE and Role.ADMINISTRATOR are rejected:
        NONE is never stored and ADMINISTRATOR is only granted through
        bootstrap_administrator().
        """
        if role is not Role.MEMBER:
            raise ValueError(f"create_role_assignment only assigns member, got {role.value!r}")
        now = _now_iso()
        role_id = str(uuid.uuid4())
        with self.engine.connect() as conn:
            conn.execute(
                _user_roles.insert().values(
                    id=role_id,
                    user_id=user_id,
                    role=role.value,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
        return role_id

    def delete_role_assignment(self, role_id: str) -> bool:
        """Delete a role row. Returns True if deleted, False if not found.

        Callers must enforce the no-self-removal rule before calling.
        """
        with self.engine.connect() as conn:
            result = conn.execute(_user_roles.delete().where(_user_roles.c.id == role_id))
            conn.commit()
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        hashed_password=row.hashed_password,
        created_at=row.created_at,
        is_active=bool(row.is_active),
        last_login=row.last_login,
    )


def _row_to_role(row) -> RoleAssignment:
    return RoleAssignment(
        id=row.id,
        user_id=row.user_id,
        role=Role(row.role),
        created_at=row.created_at,
        updated_at=row.updated_at,
        email=getattr(row, "email", None),
    )
