"""Unit tests for vault/store.py -- VaultStore query methods.

Covers:
- soft-deleted providers and secrets disappear from every read
- soft-delete is monotonic (second delete is a no-op, timestamp unchanged)
- list_secrets() requires a live provider; get_secret() does not
- grants stop resolving when their secret is soft-deleted
- duplicate grants and duplicate tier names hit the unique constraints
- delete_tier() is refused while a live provider references the tier
- list_shared_with() orders by tier sort_order with untiered providers last
"""

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from vault.models import Provider, SecretRecord, ShareGrant, Tier
from vault.store import VaultStore, _api_keys

OWNER = 1
GRANTEE = 2

# ---------------------------------------------------------------------------
# Shared fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store():
    s = VaultStore("sqlite:///:memory:")
    yield s
    s.close()


def _provider(store: VaultStore, name: str = "OpenAI", tier_id: str | None = None) -> str:
    return store.create_provider(Provider(owner_id=OWNER, name=name, tier_id=tier_id))


def _secret(store: VaultStore, provider_id: str, label: str = "prod-key") -> str:
    return store.create_secret(
        SecretRecord(
            owner_id=OWNER,
            provider_id=provider_id,
            label=label,
            secret_handle=f"handle-{label}",
            key_prefix="sk-abc1",
        )
    )


# ---------------------------------------------------------------------------
# Providers
# ---------------------------------------------------------------------------


def test_get_provider_includes_tier(store):
    tier_id = store.create_tier(Tier(owner_id=OWNER, name="S", label="S Tier", sort_order=0))
    pid = _provider(store, tier_id=tier_id)
    provider = store.get_provider(pid)
    assert provider.tier is not None
    assert provider.tier.name == "S"


def test_soft_deleted_provider_is_invisible(store):
    pid = _provider(store)
    assert store.soft_delete_provider(pid, OWNER) is True
    assert store.get_provider(pid) is None
    assert store.list_providers(OWNER) == []


def test_soft_delete_provider_requires_owner(store):
    pid = _provider(store)
    assert store.soft_delete_provider(pid, OWNER + 1) is False
    assert store.get_provider(pid) is not None


def test_update_provider_rejects_unknown_field(store):
    pid = _provider(store)
    with pytest.raises(ValueError):
        store.update_provider(pid, owner_id=99)


def test_list_providers_sorted_by_name(store):
    _provider(store, "Zeta")
    _provider(store, "Alpha")
    assert [p.name for p in store.list_providers(OWNER)] == ["Alpha", "Zeta"]


# ---------------------------------------------------------------------------
# Secrets
# ---------------------------------------------------------------------------


def test_soft_delete_secret_is_monotonic(store):
    sid = _secret(store, _provider(store))
    assert store.soft_delete_secret(sid, OWNER) is True
    with store.engine.connect() as conn:
        first = conn.execute(select(_api_keys.c.deleted_at).where(_api_keys.c.id == sid)).scalar()
    assert store.soft_delete_secret(sid, OWNER) is False
    with store.engine.connect() as conn:
        second = conn.execute(select(_api_keys.c.deleted_at).where(_api_keys.c.id == sid)).scalar()
    assert first is not None
    assert first == second


def test_soft_deleted_secret_is_invisible(store):
    pid = _provider(store)
    sid = _secret(store, pid)
    store.soft_delete_secret(sid, OWNER)
    assert store.get_secret(sid) is None
    assert store.list_secrets(OWNER) == []


def test_list_secrets_hides_secrets_of_deleted_provider(store):
    pid = _provider(store)
    sid = _secret(store, pid)
    store.soft_delete_provider(pid, OWNER)
    assert store.list_secrets(OWNER) == []
    # Record-level read is unaffected by provider deletion.
    assert store.get_secret(sid) is not None


def test_list_secrets_scoped_by_provider(store):
    p1 = _provider(store, "One")
    p2 = _provider(store, "Two")
    _secret(store, p1, "a")
    _secret(store, p2, "b")
    records = store.list_secrets(OWNER, provider_id=p2)
    assert [r.label for r in records] == ["b"]
    assert records[0].provider_name == "Two"


# ---------------------------------------------------------------------------
# Grants
# ---------------------------------------------------------------------------


def test_duplicate_grant_hits_unique_constraint(store):
    sid = _secret(store, _provider(store))
    store.create_grant(ShareGrant(api_key_id=sid, shared_with_user_id=GRANTEE, shared_by_user_id=OWNER))
    with pytest.raises(IntegrityError):
        store.create_grant(ShareGrant(api_key_id=sid, shared_with_user_id=GRANTEE, shared_by_user_id=OWNER))


def test_grant_inert_after_secret_soft_delete(store):
    sid = _secret(store, _provider(store))
    store.create_grant(ShareGrant(api_key_id=sid, shared_with_user_id=GRANTEE, shared_by_user_id=OWNER))
    assert store.get_grant(sid, GRANTEE) is not None
    store.soft_delete_secret(sid, OWNER)
    assert store.get_grant(sid, GRANTEE) is None
    assert store.list_shared_with(GRANTEE) == []
    assert store.list_grants_by_granter(OWNER) == []


def test_delete_grant_scoped_by_granter(store):
    sid = _secret(store, _provider(store))
    store.create_grant(ShareGrant(api_key_id=sid, shared_with_user_id=GRANTEE, shared_by_user_id=OWNER))
    assert store.delete_grant(sid, GRANTEE, granter_id=OWNER + 5) is False
    assert store.delete_grant(sid, GRANTEE, granter_id=OWNER) is True
    assert store.delete_grant(sid, GRANTEE, granter_id=OWNER) is False


def test_delete_grants_for_grantee(store):
    pid = _provider(store)
    for label in ("a", "b"):
        sid = _secret(store, pid, label)
        store.create_grant(ShareGrant(api_key_id=sid, shared_with_user_id=GRANTEE, shared_by_user_id=OWNER))
    assert store.delete_grants_for_grantee(GRANTEE) == 2
    assert store.list_shared_with(GRANTEE) == []


def test_list_shared_with_orders_untiered_last(store):
    tier_b = store.create_tier(Tier(owner_id=OWNER, name="B", label="B Tier", sort_order=2))
    tier_s = store.create_tier(Tier(owner_id=OWNER, name="S", label="S Tier", sort_order=0))
    for name, tier_id in (("Untiered", None), ("Bravo", tier_b), ("Sierra", tier_s)):
        sid = _secret(store, _provider(store, name, tier_id), f"key-{name}")
        store.create_grant(ShareGrant(api_key_id=sid, shared_with_user_id=GRANTEE, shared_by_user_id=OWNER))

    rows = store.list_shared_with(GRANTEE)
    assert [r.provider_name for r in rows] == ["Sierra", "Bravo", "Untiered"]
    assert rows[0].tier_label == "S Tier"
    assert rows[2].tier_id is None
    assert not hasattr(rows[0], "secret_handle")


def test_list_shared_with_skips_deleted_provider(store):
    pid = _provider(store)
    sid = _secret(store, pid)
    store.create_grant(ShareGrant(api_key_id=sid, shared_with_user_id=GRANTEE, shared_by_user_id=OWNER))
    store.soft_delete_provider(pid, OWNER)
    assert store.list_shared_with(GRANTEE) == []


# ---------------------------------------------------------------------------
# Tiers
# ---------------------------------------------------------------------------


def test_duplicate_tier_name_for_owner(store):
    store.create_tier(Tier(owner_id=OWNER, name="S", label="S Tier"))
    with pytest.raises(IntegrityError):
        store.create_tier(Tier(owner_id=OWNER, name="S", label="Other"))
    # Another owner may reuse the name.
    store.create_tier(Tier(owner_id=OWNER + 1, name="S", label="S Tier"))


def test_delete_tier_refused_while_live_provider_references_it(store):
    tier_id = store.create_tier(Tier(owner_id=OWNER, name="S", label="S Tier"))
    _provider(store, tier_id=tier_id)
    assert store.delete_tier(tier_id) == (False, 1)
    assert store.get_tier(tier_id) is not None


def test_delete_tier_allowed_when_only_deleted_providers_reference_it(store):
    tier_id = store.create_tier(Tier(owner_id=OWNER, name="S", label="S Tier"))
    pid = _provider(store, tier_id=tier_id)
    store.soft_delete_provider(pid, OWNER)
    assert store.delete_tier(tier_id) == (True, 0)
    assert store.get_tier(tier_id) is None


def test_delete_unknown_tier(store):
    assert store.delete_tier("missing") == (False, 0)


def test_ping(store):
    assert store.ping() is True
