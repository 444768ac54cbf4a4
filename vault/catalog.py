"""
vault/catalog.py -- Providers and tiers.

Plain ownership glue around VaultStore: providers are the accounts API keys
belong to, tiers rank providers. Nothing here touches secret material.

Writes need Role.ADMINISTRATOR; updates and deletes additionally need
ownership of the row. Tier deletion is refused while a live provider still
points at the tier.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.exc import IntegrityError

from auth.models import User
from auth.store import UserStore
from vault.errors import DuplicateName, InvalidInput, NotAuthenticated, NotFound, ReferentialConflict
from vault.models import Provider, Tier
from vault.roles import require_administrator
from vault.store import VaultStore

logger = logging.getLogger("keyshelf.vault.catalog")

DEFAULT_TIER_COLOR = "bg-zinc-500 text-white"

DEFAULT_TIERS = (
    ("S", "S Tier", "SOTA models, reliable source, excellent latency, premium quality", "bg-amber-500 text-white"),
    ("A", "A Tier", "Great models, easy credits, source may vary", "bg-purple-500 text-white"),
    ("B", "B Tier", "Good models, may lack SOTA or recharge options", "bg-blue-500 text-white"),
    ("C", "C Tier", "Basic functionality, limited model selection", "bg-zinc-500 text-white"),
    ("D", "D Tier", "Minimal features, use as backup only", "bg-zinc-400 text-white"),
)

_PROVIDER_TEXT_FIELDS = ("website_url", "main_thread_url", "recharge_url", "recharge_url_2", "remarks")


def _clean(value: Any) -> str | None:
    """Trim a form value; empty becomes None."""
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _caller_id(caller: User | None) -> int:
    if caller is None or caller.id is None:
        raise NotAuthenticated()
    return caller.id


class CatalogService:
    def __init__(self, user_store: UserStore, vault_store: VaultStore) -> None:
        self._users = user_store
        self._store = vault_store

    # ------------------------------------------------------------------
    # Providers
    # ------------------------------------------------------------------

    def create_provider(self, caller: User | None, data: dict) -> Provider:
        require_administrator(self._users, caller)
        fields = self._provider_fields(data, require_name=True)
        provider = Provider(owner_id=caller.id, **fields)
        provider.id = self._store.create_provider(provider)
        logger.info("Provider created id=%s owner=%s", provider.id, caller.id)
        return self._store.get_provider(provider.id)

    def get_provider(self, caller: User | None, provider_id: str) -> Provider:
        caller_id = _caller_id(caller)
        provider = self._store.get_provider(provider_id)
        if provider is None or provider.owner_id != caller_id:
            raise NotFound("Provider not found.")
        return provider

    def list_providers(self, caller: User | None) -> list[Provider]:
        return self._store.list_providers(_caller_id(caller))

    def update_provider(self, caller: User | None, provider_id: str, data: dict) -> Provider:
        self.get_provider(caller, provider_id)
        fields = self._provider_fields(data, require_name="name" in data)
        fields = {k: v for k, v in fields.items() if k in data}
        if fields and not self._store.update_provider(provider_id, **fields):
            raise NotFound("Provider not found.")
        logger.info("Provider updated id=%s owner=%s", provider_id, caller.id)
        return self._store.get_provider(provider_id)

    def delete_provider(self, caller: User | None, provider_id: str) -> None:
        """Soft-delete. The provider's secret records stay untouched."""
        caller_id = _caller_id(caller)
        if not self._store.soft_delete_provider(provider_id, caller_id):
            raise NotFound("Provider not found.")
        logger.info("Provider soft-deleted id=%s owner=%s", provider_id, caller_id)

    def _provider_fields(self, data: dict, require_name: bool) -> dict:
        fields: dict = {}
        name = _clean(data.get("name"))
        if require_name and not name:
            raise InvalidInput("Provider name is required.")
        if name:
            fields["name"] = name
        for key in _PROVIDER_TEXT_FIELDS:
            fields[key] = _clean(data.get(key))
        tier_id = _clean(data.get("tier_id"))
        if tier_id is not None and self._store.get_tier(tier_id) is None:
            raise InvalidInput("Tier not found.")
        fields["tier_id"] = tier_id
        fields["requires_daily_login"] = bool(data.get("requires_daily_login", False))
        return fields

    # ------------------------------------------------------------------
    # Tiers
    # ------------------------------------------------------------------

    def list_tiers(self, caller: User | None) -> list[Tier]:
        _caller_id(caller)
        return self._store.list_tiers()

    def get_tier(self, caller: User | None, tier_id: str) -> Tier:
        _caller_id(caller)
        tier = self._store.get_tier(tier_id)
        if tier is None:
            raise NotFound("Tier not found.")
        return tier

    def create_tier(self, caller: User | None, data: dict) -> Tier:
        require_administrator(self._users, caller)
        name, label = self._tier_names(data)
        if self._store.get_tier_by_name(caller.id, name) is not None:
            raise DuplicateName("A tier with this name already exists.")
        tier = Tier(
            owner_id=caller.id,
            name=name,
            label=label,
            description=_clean(data.get("description")),
            color=_clean(data.get("color")) or DEFAULT_TIER_COLOR,
            sort_order=int(data.get("sort_order") or 0),
        )
        try:
            tier.id = self._store.create_tier(tier)
        except IntegrityError as exc:
            raise DuplicateName("A tier with this name already exists.") from exc
        logger.info("Tier created id=%s owner=%s", tier.id, caller.id)
        return self._store.get_tier(tier.id)

    def update_tier(self, caller: User | None, tier_id: str, data: dict) -> Tier:
        require_administrator(self._users, caller)
        tier = self.get_tier(caller, tier_id)
        if tier.owner_id != caller.id:
            raise NotFound("Tier not found.")
        name, label = self._tier_names(data)
        existing = self._store.get_tier_by_name(caller.id, name)
        if existing is not None and existing.id != tier_id:
            raise DuplicateName("A tier with this name already exists.")
        try:
            self._store.update_tier(
                tier_id,
                name=name,
                label=label,
                description=_clean(data.get("description")),
                color=_clean(data.get("color")) or DEFAULT_TIER_COLOR,
                sort_order=int(data.get("sort_order") or 0),
            )
        except IntegrityError as exc:
            raise DuplicateName("A tier with this name already exists.") from exc
        logger.info("Tier updated id=%s owner=%s", tier_id, caller.id)
        return self._store.get_tier(tier_id)

    def delete_tier(self, caller: User | None, tier_id: str) -> None:
        tier = self.get_tier(caller, tier_id)
        if tier.owner_id != caller.id:
            raise NotFound("Tier not found.")
        deleted, references = self._store.delete_tier(tier_id)
        if references:
            raise ReferentialConflict(
                "Cannot delete tier: it is being used by providers.",
                detail=f"{references} provider(s) reference this tier",
            )
        if not deleted:
            raise NotFound("Tier not found.")
        logger.info("Tier deleted id=%s owner=%s", tier_id, caller.id)

    def seed_default_tiers(self, caller: User | None) -> list[Tier]:
        """Create the S/A/B/C/D tiers for an administrator who has none yet."""
        require_administrator(self._users, caller)
        if self._store.count_tiers(caller.id):
            raise DuplicateName("Tiers already exist.")
        tiers = [
            Tier(owner_id=caller.id, name=name, label=label, description=description, color=color, sort_order=i)
            for i, (name, label, description, color) in enumerate(DEFAULT_TIERS)
        ]
        try:
            self._store.create_tiers(tiers)
        except IntegrityError as exc:
            raise DuplicateName("Tiers already exist.") from exc
        logger.info("Default tiers seeded owner=%s", caller.id)
        return [t for t in self._store.list_tiers() if t.owner_id == caller.id]

    @staticmethod
    def _tier_names(data: dict) -> tuple[str, str]:
        name = _clean(data.get("name"))
        label = _clean(data.get("label"))
        if not name:
            raise InvalidInput("Tier name is required.")
        if not label:
            raise InvalidInput("Tier label is required.")
        return name, label
