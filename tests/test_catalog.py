"""Tests for vault/catalog.py -- providers and tiers.

Covers:
- provider create/update/delete: administrator writes, owner-only changes
- optional provider fields trimmed, blanks stored as None
- tier create: required fields, default color, DuplicateName
- tier delete guarded by live providers (ReferentialConflict)
- seed_default_tiers(): S/A/B/C/D once, then DuplicateName
"""

import pytest

from vault.catalog import DEFAULT_TIER_COLOR
from vault.errors import DuplicateName, InvalidInput, NotAuthorized, NotFound, ReferentialConflict

# ---------------------------------------------------------------------------
# Providers
# ---------------------------------------------------------------------------


def test_create_provider_trims_fields(vault_env):
    provider = vault_env.catalog.create_provider(
        vault_env.admin,
        {"name": "  OpenAI ", "website_url": " https://openai.com ", "remarks": "   ", "requires_daily_login": True},
    )
    assert provider.name == "OpenAI"
    assert provider.website_url == "https://openai.com"
    assert provider.remarks is None
    assert provider.requires_daily_login is True
    assert provider.owner_id == vault_env.admin.id


def test_create_provider_requires_name(vault_env):
    with pytest.raises(InvalidInput):
        vault_env.catalog.create_provider(vault_env.admin, {"name": "  "})


def test_create_provider_requires_administrator(vault_env):
    with pytest.raises(NotAuthorized):
        vault_env.catalog.create_provider(vault_env.member, {"name": "OpenAI"})


def test_create_provider_with_unknown_tier(vault_env):
    with pytest.raises(InvalidInput):
        vault_env.catalog.create_provider(vault_env.admin, {"name": "OpenAI", "tier_id": "missing"})


def test_update_provider_partial(vault_env):
    tier = vault_env.catalog.create_tier(vault_env.admin, {"name": "S", "label": "S Tier"})
    provider = vault_env.catalog.create_provider(vault_env.admin, {"name": "OpenAI", "remarks": "keep"})
    updated = vault_env.catalog.update_provider(vault_env.admin, provider.id, {"tier_id": tier.id})
    assert updated.tier is not None
    assert updated.tier.name == "S"
    assert updated.remarks == "keep"
    assert updated.name == "OpenAI"


def test_update_provider_other_owner_is_not_found(vault_env):
    provider = vault_env.catalog.create_provider(vault_env.admin, {"name": "OpenAI"})
    with pytest.raises(NotFound):
        vault_env.catalog.update_provider(vault_env.member, provider.id, {"name": "Hijack"})


def test_delete_provider_soft_deletes(vault_env):
    provider = vault_env.catalog.create_provider(vault_env.admin, {"name": "OpenAI"})
    vault_env.catalog.delete_provider(vault_env.admin, provider.id)
    assert vault_env.catalog.list_providers(vault_env.admin) == []
    with pytest.raises(NotFound):
        vault_env.catalog.get_provider(vault_env.admin, provider.id)
    with pytest.raises(NotFound):
        vault_env.catalog.delete_provider(vault_env.admin, provider.id)


# ---------------------------------------------------------------------------
# Tiers
# ---------------------------------------------------------------------------


def test_create_tier_defaults(vault_env):
    tier = vault_env.catalog.create_tier(vault_env.admin, {"name": "S", "label": "S Tier"})
    assert tier.color == DEFAULT_TIER_COLOR
    assert tier.sort_order == 0


@pytest.mark.parametrize("data", [{"name": "", "label": "x"}, {"name": "x", "label": " "}])
def test_create_tier_requires_name_and_label(vault_env, data):
    with pytest.raises(InvalidInput):
        vault_env.catalog.create_tier(vault_env.admin, data)


def test_create_tier_duplicate_name(vault_env):
    vault_env.catalog.create_tier(vault_env.admin, {"name": "S", "label": "S Tier"})
    with pytest.raises(DuplicateName):
        vault_env.catalog.create_tier(vault_env.admin, {"name": "S", "label": "Again"})


def test_update_tier_to_taken_name(vault_env):
    vault_env.catalog.create_tier(vault_env.admin, {"name": "S", "label": "S Tier"})
    a = vault_env.catalog.create_tier(vault_env.admin, {"name": "A", "label": "A Tier"})
    with pytest.raises(DuplicateName):
        vault_env.catalog.update_tier(vault_env.admin, a.id, {"name": "S", "label": "A Tier"})
    renamed = vault_env.catalog.update_tier(vault_env.admin, a.id, {"name": "A", "label": "Alpha", "sort_order": 3})
    assert renamed.label == "Alpha"
    assert renamed.sort_order == 3


def test_delete_tier_in_use(vault_env):
    tier = vault_env.catalog.create_tier(vault_env.admin, {"name": "S", "label": "S Tier"})
    provider = vault_env.catalog.create_provider(vault_env.admin, {"name": "OpenAI", "tier_id": tier.id})
    with pytest.raises(ReferentialConflict) as excinfo:
        vault_env.catalog.delete_tier(vault_env.admin, tier.id)
    assert "used by providers" in excinfo.value.message

    vault_env.catalog.delete_provider(vault_env.admin, provider.id)
    vault_env.catalog.delete_tier(vault_env.admin, tier.id)
    with pytest.raises(NotFound):
        vault_env.catalog.get_tier(vault_env.admin, tier.id)


def test_seed_default_tiers(vault_env):
    tiers = vault_env.catalog.seed_default_tiers(vault_env.admin)
    assert [t.name for t in tiers] == ["S", "A", "B", "C", "D"]
    assert [t.sort_order for t in tiers] == [0, 1, 2, 3, 4]
    with pytest.raises(DuplicateName):
        vault_env.catalog.seed_default_tiers(vault_env.admin)


def test_seed_requires_administrator(vault_env):
    with pytest.raises(NotAuthorized):
        vault_env.catalog.seed_default_tiers(vault_env.member)
