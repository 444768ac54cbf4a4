"""
vault/store.py -- SQLAlchemy-backed persistence layer for the KeyShelf vault.

Uses SQLAlchemy Core (not ORM) so the domain dataclasses in vault/models.py
remain the authoritative domain representation. Swapping SQLite for
PostgreSQL is a connection string change, not a rewrite.

Pattern: Repository + Data Mapper. VaultStore is the repository; the _row_to_*
functions are the mappers. Services never touch SQL directly.

Soft-delete boundary:
  providers.deleted_at and api_keys.deleted_at are the only deletion markers.
  The "is this row live" predicate for each entity is defined exactly once,
  in _provider_is_live() / _secret_is_live() / _grant_is_live() below, and
  every read in this module routes through them. A read that bypasses them
  could re-expose a deleted key's metadata, so new queries must use them too.

  Soft-delete is monotonic: the soft_delete_* methods only touch rows whose
  deleted_at is still NULL, and nothing in this module clears deleted_at.

  A grant is live while its secret record is live. Provider-scoped listings
  (list_secrets, list_shared_with) additionally require a live provider.

Uniqueness constraints double as concurrency guards:
  uq_share_key_grantee  -- one grant per (api_key_id, shared_with_user_id);
                           a racing duplicate insert raises IntegrityError.
  uq_tier_owner_name    -- one tier name per owner.

Security: all queries use bound parameters. No f-strings in SQL.

Usage:
    store = VaultStore()                               # settings default
    store = VaultStore("postgresql://user:pw@host/db") # PostgreSQL
    provider_id = store.create_provider(provider)
    secret_id = store.create_secret(record)
    store.create_grant(ShareGrant(secret_id, member_id, admin_id))
    store.close()
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    Column,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    and_,
    create_engine,
    event,
    func,
    select,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from core.config import get_settings
from vault.models import Provider, SecretRecord, SharedSecretSummary, ShareGrant, Tier

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_tiers = Table(
    "tiers",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("owner_id", Integer, nullable=False),
    Column("name", String(100), nullable=False),
    Column("label", String(100), nullable=False),
    Column("description", Text),
    Column("color", String(100), nullable=False, server_default="bg-zinc-500 text-white"),
    Column("sort_order", Integer, nullable=False, server_default="0"),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    UniqueConstraint("owner_id", "name", name="uq_tier_owner_name"),
)

_providers = Table(
    "providers",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("owner_id", Integer, nullable=False),
    Column("name", String(255), nullable=False),
    Column("website_url", Text),
    Column("main_thread_url", Text),
    Column("recharge_url", Text),
    Column("recharge_url_2", Text),
    # Optional and deliberately not a FOREIGN KEY: tier deletion is guarded
    # in delete_tier(), not cascaded.
    Column("tier_id", String(36)),
    Column("remarks", Text),
    Column("requires_daily_login", Integer, nullable=False, server_default="0"),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    Column("deleted_at", String(32)),
)

_api_keys = Table(
    "api_keys",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("owner_id", Integer, nullable=False),
    Column("provider_id", String(36), nullable=False),
    Column("label", String(255), nullable=False),
    Column("secret_handle", String(255), nullable=False),  # opaque secret store reference
    Column("key_prefix", String(32), nullable=False),  # display only
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    Column("deleted_at", String(32)),
)

_shared_api_keys = Table(
    "shared_api_keys",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("api_key_id", String(36), nullable=False),
    Column("shared_with_user_id", Integer, nullable=False),
    Column("shared_by_user_id", Integer, nullable=False),
    Column("created_at", String(32), nullable=False),
    UniqueConstraint("api_key_id", "shared_with_user_id", name="uq_share_key_grantee"),
)

# Provider fields callers may change through update_provider().
_PROVIDER_MUTABLE = {
    "name",
    "website_url",
    "main_thread_url",
    "recharge_url",
    "recharge_url_2",
    "tier_id",
    "remarks",
    "requires_daily_login",
}

_TIER_MUTABLE = {"name", "label", "description", "color", "sort_order"}


# ---------------------------------------------------------------------------
# Soft-delete predicates -- the single definition per entity
# ---------------------------------------------------------------------------


def _provider_is_live():
    return _providers.c.deleted_at.is_(None)


def _secret_is_live():
    return _api_keys.c.deleted_at.is_(None)


def _grant_is_live():
    """Grants carry no deletion marker of their own; they live and die with the key.

    Queries using this predicate must join api_keys on the grant's api_key_id.
    """
    return _secret_is_live()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _new_id() -> str:
    return str(uuid.uuid4())


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# Column sets reused by joined selects. Tier columns are labelled so they do
# not collide with provider columns of the same name.
_TIER_COLUMNS = (
    _tiers.c.id.label("tier_ref_id"),
    _tiers.c.owner_id.label("tier_owner_id"),
    _tiers.c.name.label("tier_name"),
    _tiers.c.label.label("tier_label"),
    _tiers.c.description.label("tier_description"),
    _tiers.c.color.label("tier_color"),
    _tiers.c.sort_order.label("tier_sort_order"),
    _tiers.c.created_at.label("tier_created_at"),
    _tiers.c.updated_at.label("tier_updated_at"),
)


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class VaultStore:
    def __init__(self, db_url: str | None = None) -> None:
        db_url = db_url or get_settings().vault_db_url
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            # SQLite requires check_same_thread=False when used from FastAPI's
            # thread pool, where one pooled connection may serve several threads.
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Tiers
    # ------------------------------------------------------------------

    def create_tier(self, tier: Tier) -> str:
        """Insert a tier and return its id.

        Raises sqlalchemy.exc.IntegrityError if the owner already has a tier
        with the same name (uq_tier_owner_name).
        """
        tier_id = _new_id()
        now = _now_iso()
        with self.engine.connect() as conn:
            conn.execute(
                _tiers.insert().values(
                    id=tier_id,
                    owner_id=tier.owner_id,
                    name=tier.name,
                    label=tier.label,
                    description=tier.description,
                    color=tier.color,
                    sort_order=tier.sort_order,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
        return tier_id

    def create_tiers(self, tiers: list[Tier]) -> list[str]:
        """Insert several tiers in one transaction (all or nothing)."""
        now = _now_iso()
        ids = [_new_id() for _ in tiers]
        with self.engine.begin() as conn:
            for tier_id, tier in zip(ids, tiers):
                conn.execute(
                    _tiers.insert().values(
                        id=tier_id,
                        owner_id=tier.owner_id,
                        name=tier.name,
                        label=tier.label,
                        description=tier.description,
                        color=tier.color,
                        sort_order=tier.sort_order,
                        created_at=now,
                        updated_at=now,
                    )
                )
        return ids

    def get_tier(self, tier_id: str) -> Optional[Tier]:
        with self.engine.connect() as conn:
            row = conn.execute(_tiers.select().where(_tiers.c.id == tier_id)).fetchone()
        return _row_to_tier(row) if row is not None else None

    def get_tier_by_name(self, owner_id: int, name: str) -> Optional[Tier]:
        with self.engine.connect() as conn:
            row = conn.execute(
                _tiers.select().where((_tiers.c.owner_id == owner_id) & (_tiers.c.name == name))
            ).fetchone()
        return _row_to_tier(row) if row is not None else None

    def list_tiers(self) -> list[Tier]:
        """Return all tiers ordered by sort_order, then name."""
        with self.engine.connect() as conn:
            rows = conn.execute(_tiers.select().order_by(_tiers.c.sort_order, _tiers.c.name)).fetchall()
        return [_row_to_tier(r) for r in rows]

    def count_tiers(self, owner_id: int) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                select(func.count()).select_from(_tiers).where(_tiers.c.owner_id == owner_id)
            ).scalar()
        return result or 0

    def update_tier(self, tier_id: str, **fields) -> bool:
        """Update mutable tier fields. Returns False if tier_id was not found.

        Raises sqlalchemy.exc.IntegrityError on a duplicate name.
        """
        unknown = set(fields) - _TIER_MUTABLE
        if unknown:
            raise ValueError(f"Unknown tier fields: {unknown!r}")
        with self.engine.connect() as conn:
            result = conn.execute(
                _tiers.update().where(_tiers.c.id == tier_id).values(updated_at=_now_iso(), **fields)
            )
            conn.commit()
        return result.rowcount > 0

    def delete_tier(self, tier_id: str) -> tuple[bool, int]:
        """Delete a tier unless a live provider still references it.

        The reference count and the delete run in one transaction.
        Returns (deleted, live_references): (False, n) with n > 0 when the
        tier is in use, (False, 0) when tier_id was not found.
        Providers that were soft-deleted do not count as references.
        """
        with self.engine.begin() as conn:
            in_use = conn.execute(
                select(func.count())
                .select_from(_providers)
                .where((_providers.c.tier_id == tier_id) & _provider_is_live())
            ).scalar()
            if in_use:
                return False, in_use
            result = conn.execute(_tiers.delete().where(_tiers.c.id == tier_id))
        return result.rowcount > 0, 0

    # ------------------------------------------------------------------
    # Providers
    # ------------------------------------------------------------------

    def create_provider(self, provider: Provider) -> str:
        provider_id = _new_id()
        now = _now_iso()
        with self.engine.connect() as conn:
            conn.execute(
                _providers.insert().values(
                    id=provider_id,
                    owner_id=provider.owner_id,
                    name=provider.name,
                    website_url=provider.website_url,
                    main_thread_url=provider.main_thread_url,
                    recharge_url=provider.recharge_url,
                    recharge_url_2=provider.recharge_url_2,
                    tier_id=provider.tier_id,
                    remarks=provider.remarks,
                    requires_daily_login=1 if provider.requires_daily_login else 0,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
        return provider_id

    def get_provider(self, provider_id: str) -> Optional[Provider]:
        """Fetch a live provider (with its tier). None if missing or soft-deleted."""
        stmt = self._live_providers().where(_providers.c.id == provider_id)
        with self.engine.connect() as conn:
            row = conn.execute(stmt).fetchone()
        return _row_to_provider(row) if row is not None else None

    def list_providers(self, owner_id: int) -> list[Provider]:
        """Return the owner's live providers ordered by name."""
        stmt = self._live_providers().where(_providers.c.owner_id == owner_id).order_by(_providers.c.name)
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return [_row_to_provider(r) for r in rows]

    def update_provider(self, provider_id: str, **fields) -> bool:
        """Update mutable fields on a live provider. Returns False if none matched."""
        unknown = set(fields) - _PROVIDER_MUTABLE
        if unknown:
            raise ValueError(f"Unknown provider fields: {unknown!r}")
        if "requires_daily_login" in fields:
            fields["requires_daily_login"] = 1 if fields["requires_daily_login"] else 0
        with self.engine.connect() as conn:
            result = conn.execute(
                _providers.update()
                .where((_providers.c.id == provider_id) & _provider_is_live())
                .values(updated_at=_now_iso(), **fields)
            )
            conn.commit()
        return result.rowcount > 0

    def soft_delete_provider(self, provider_id: str, owner_id: int) -> bool:
        """Stamp deleted_at on a live provider owned by owner_id.

        Secret records under the provider are left untouched; they drop out
        of provider-scoped listings through the live-provider join.
        """
        now = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _providers.update()
                .where((_providers.c.id == provider_id) & (_providers.c.owner_id == owner_id) & _provider_is_live())
                .values(deleted_at=now, updated_at=now)
            )
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Secret records (api_keys)
    # ------------------------------------------------------------------

    def create_secret(self, record: SecretRecord) -> str:
        secret_id = _new_id()
        now = _now_iso()
        with self.engine.connect() as conn:
            conn.execute(
                _api_keys.insert().values(
                    id=secret_id,
                    owner_id=record.owner_id,
                    provider_id=record.provider_id,
                    label=record.label,
                    secret_handle=record.secret_handle,
                    key_prefix=record.key_prefix,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
        return secret_id

    def get_secret(self, secret_id: str) -> Optional[SecretRecord]:
        """Fetch a live secret record. None if missing or soft-deleted.

        Record-level liveness only: a record under a soft-deleted provider is
        still returned (provider deletion does not cascade to reveal rules).
        """
        with self.engine.connect() as conn:
            row = conn.execute(_api_keys.select().where((_api_keys.c.id == secret_id) & _secret_is_live())).fetchone()
        return _row_to_secret(row) if row is not None else None

    def list_secrets(self, owner_id: int, provider_id: Optional[str] = None) -> list[SecretRecord]:
        """Return the owner's live secrets under live providers, newest first."""
        stmt = (
            select(_api_keys, _providers.c.name.label("provider_name"))
            .select_from(_api_keys.join(_providers, _api_keys.c.provider_id == _providers.c.id))
            .where((_api_keys.c.owner_id == owner_id) & _secret_is_live() & _provider_is_live())
            .order_by(_api_keys.c.created_at.desc(), _api_keys.c.id)
        )
        if provider_id is not None:
            stmt = stmt.where(_api_keys.c.provider_id == provider_id)
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return [_row_to_secret(r) for r in rows]

    def soft_delete_secret(self, secret_id: str, owner_id: int) -> bool:
        """Stamp deleted_at on a live record owned by owner_id.

        Returns False when the record is missing, already deleted, or owned
        by someone else -- the caller cannot and should not tell these apart.
        Grants are left in place; they stop resolving through _grant_is_live().
        """
        now = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _api_keys.update()
                .where((_api_keys.c.id == secret_id) & (_api_keys.c.owner_id == owner_id) & _secret_is_live())
                .values(deleted_at=now, updated_at=now)
            )
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Share grants
    # ------------------------------------------------------------------

    def create_grant(self, grant: ShareGrant) -> str:
        """Insert a share grant and return its id.

        Raises sqlalchemy.exc.IntegrityError if the (api_key_id, grantee)
        pair already exists -- the loser of a concurrent duplicate share
        lands here.
        """
        grant_id = _new_id()
        with self.engine.connect() as conn:
            conn.execute(
                _shared_api_keys.insert().values(
                    id=grant_id,
                    api_key_id=grant.api_key_id,
                    shared_with_user_id=grant.shared_with_user_id,
                    shared_by_user_id=grant.shared_by_user_id,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
        return grant_id

    def get_grant(self, api_key_id: str, grantee_id: int) -> Optional[ShareGrant]:
        """Return the live grant for (api_key_id, grantee_id), or None."""
        stmt = (
            select(_shared_api_keys)
            .select_from(_shared_api_keys.join(_api_keys, _shared_api_keys.c.api_key_id == _api_keys.c.id))
            .where(
                (_shared_api_keys.c.api_key_id == api_key_id)
                & (_shared_api_keys.c.shared_with_user_id == grantee_id)
                & _grant_is_live()
            )
        )
        with self.engine.connect() as conn:
            row = conn.execute(stmt).fetchone()
        return _row_to_grant(row) if row is not None else None

    def list_grants_by_granter(self, granter_id: int) -> list[ShareGrant]:
        """Return live grants made by granter_id, oldest first."""
        stmt = (
            select(_shared_api_keys)
            .select_from(_shared_api_keys.join(_api_keys, _shared_api_keys.c.api_key_id == _api_keys.c.id))
            .where((_shared_api_keys.c.shared_by_user_id == granter_id) & _grant_is_live())
            .order_by(_shared_api_keys.c.created_at, _shared_api_keys.c.id)
        )
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return [_row_to_grant(r) for r in rows]

    def delete_grant(self, api_key_id: str, grantee_id: int, granter_id: int) -> bool:
        """Delete the grant made by granter_id. Returns False if no row matched."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _shared_api_keys.delete().where(
                    (_shared_api_keys.c.api_key_id == api_key_id)
                    & (_shared_api_keys.c.shared_with_user_id == grantee_id)
                    & (_shared_api_keys.c.shared_by_user_id == granter_id)
                )
            )
            conn.commit()
        return result.rowcount > 0

    def delete_grants_for_grantee(self, grantee_id: int) -> int:
        """Delete every grant naming grantee_id. Returns the number removed."""
        with self.engine.connect() as conn:
            result = conn.execute(_shared_api_keys.delete().where(_shared_api_keys.c.shared_with_user_id == grantee_id))
            conn.commit()
        return result.rowcount

    def list_shared_with(self, grantee_id: int) -> list[SharedSecretSummary]:
        """Return live secrets shared with grantee_id, joined with provider and tier.

        Ordered by tier sort_order with untiered providers last, then newest
        grant first. Never includes the secret handle.
        """
        stmt = (
            select(
                _api_keys.c.id.label("api_key_id"),
                _api_keys.c.label.label("api_key_label"),
                _api_keys.c.key_prefix,
                _api_keys.c.created_at.label("key_created_at"),
                _providers.c.id.label("provider_id"),
                _providers.c.name.label("provider_name"),
                _providers.c.website_url,
                _providers.c.remarks.label("provider_remarks"),
                _providers.c.tier_id,
                _tiers.c.name.label("tier_name"),
                _tiers.c.label.label("tier_label"),
                _tiers.c.color.label("tier_color"),
                _tiers.c.sort_order.label("tier_sort_order"),
                _shared_api_keys.c.shared_by_user_id,
                _shared_api_keys.c.created_at.label("shared_at"),
            )
            .select_from(
                _shared_api_keys.join(_api_keys, _shared_api_keys.c.api_key_id == _api_keys.c.id)
                .join(_providers, _api_keys.c.provider_id == _providers.c.id)
                .outerjoin(_tiers, _providers.c.tier_id == _tiers.c.id)
            )
            .where((_shared_api_keys.c.shared_with_user_id == grantee_id) & _grant_is_live() & _provider_is_live())
            .order_by(
                _tiers.c.sort_order.is_(None),
                _tiers.c.sort_order,
                _shared_api_keys.c.created_at.desc(),
            )
        )
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return [_row_to_shared_summary(r) for r in rows]

    # ------------------------------------------------------------------
    # Query builders
    # ------------------------------------------------------------------

    @staticmethod
    def _live_providers():
        """SELECT live providers LEFT JOIN tiers. The base of every provider read."""
        return (
            select(_providers, *_TIER_COLUMNS)
            .select_from(_providers.outerjoin(_tiers, and_(_providers.c.tier_id == _tiers.c.id)))
            .where(_provider_is_live())
        )

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        try:
            with self.engine.connect() as conn:
                conn.execute(select(1))
        except SQLAlchemyError:
            return False
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern -- DB row -> domain dataclass)
# ---------------------------------------------------------------------------


def _row_to_tier(row) -> Tier:
    return Tier(
        id=row.id,
        owner_id=row.owner_id,
        name=row.name,
        label=row.label,
        description=row.description,
        color=row.color,
        sort_order=row.sort_order,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_provider(row) -> Provider:
    tier = None
    if getattr(row, "tier_ref_id", None) is not None:
        tier = Tier(
            id=row.tier_ref_id,
            owner_id=row.tier_owner_id,
            name=row.tier_name,
            label=row.tier_label,
            description=row.tier_description,
            color=row.tier_color,
            sort_order=row.tier_sort_order,
            created_at=row.tier_created_at,
            updated_at=row.tier_updated_at,
        )
    return Provider(
        id=row.id,
        owner_id=row.owner_id,
        name=row.name,
        website_url=row.website_url,
        main_thread_url=row.main_thread_url,
        recharge_url=row.recharge_url,
        recharge_url_2=row.recharge_url_2,
        tier_id=row.tier_id,
        remarks=row.remarks,
        requires_daily_login=bool(row.requires_daily_login),
        created_at=row.created_at,
        updated_at=row.updated_at,
        deleted_at=row.deleted_at,
        tier=tier,
    )


def _row_to_secret(row) -> SecretRecord:
    return SecretRecord(
        id=row.id,
        owner_id=row.owner_id,
        provider_id=row.provider_id,
        label=row.label,
        secret_handle=row.secret_handle,
        key_prefix=row.key_prefix,
        created_at=row.created_at,
        updated_at=row.updated_at,
        deleted_at=row.deleted_at,
        provider_name=getattr(row, "provider_name", None),
    )


def _row_to_grant(row) -> ShareGrant:
    return ShareGrant(
        id=row.id,
        api_key_id=row.api_key_id,
        shared_with_user_id=row.shared_with_user_id,
        shared_by_user_id=row.shared_by_user_id,
        created_at=row.created_at,
    )


def _row_to_shared_summary(row) -> SharedSecretSummary:
    return SharedSecretSummary(
        api_key_id=row.api_key_id,
        api_key_label=row.api_key_label,
        key_prefix=row.key_prefix,
        key_created_at=row.key_created_at,
        provider_id=row.provider_id,
        provider_name=row.provider_name,
        website_url=row.website_url,
        provider_remarks=row.provider_remarks,
        tier_id=row.tier_id,
        tier_name=row.tier_name,
        tier_label=row.tier_label,
        tier_color=row.tier_color,
        tier_sort_order=row.tier_sort_order,
        shared_by_user_id=row.shared_by_user_id,
        shared_at=row.shared_at,
    )
