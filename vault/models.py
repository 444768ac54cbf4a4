"""
vault/models.py -- Domain dataclasses for the KeyShelf vault.

These are pure data containers with zero logic. Authorization and integrity
rules live in the services (vault/access.py, vault/sharing.py,
vault/roles.py, vault/catalog.py); SQL lives in vault/store.py.

Plaintext secret material never appears in these types except in
RevealedSecret, which exists only for the duration of one reveal response
and keeps the value out of its repr.

id is None before the record is written to the database.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from auth.models import RoleAssignment


@dataclass
class Tier:
    """A ranking label for providers (S, A, B, ...). Lower sort_order first."""

    owner_id: int
    name: str
    label: str
    id: Optional[str] = None
    description: Optional[str] = None
    color: str = "bg-zinc-500 text-white"
    sort_order: int = 0
    created_at: str = ""
    updated_at: str = ""


@dataclass
class Provider:
    """An external account descriptor that API keys belong to.

    tier is populated by reads that join the tiers table; it is None when
    tier_id is unset or points at a tier that no longer exists.
    """

    owner_id: int
    name: str
    id: Optional[str] = None
    website_url: Optional[str] = None
    main_thread_url: Optional[str] = None
    recharge_url: Optional[str] = None
    recharge_url_2: Optional[str] = None
    tier_id: Optional[str] = None
    remarks: Optional[str] = None
    requires_daily_login: bool = False
    created_at: str = ""
    updated_at: str = ""
    deleted_at: Optional[str] = None
    tier: Optional[Tier] = None


@dataclass
class SecretRecord:
    """An API key entry: the label, the display prefix and the store handle.

    secret_handle is an opaque reference into the secret store. key_prefix is
    the only fragment of the plaintext kept outside the store.
    """

    owner_id: int
    provider_id: str
    label: str
    secret_handle: str
    key_prefix: str
    id: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""
    deleted_at: Optional[str] = None
    provider_name: Optional[str] = None


@dataclass
class ShareGrant:
    """An access edge from a secret record to a member principal."""

    api_key_id: str
    shared_with_user_id: int
    shared_by_user_id: int
    id: Optional[str] = None
    created_at: str = ""


@dataclass
class SharedSecretSummary:
    """One row of a member's "shared with me" listing. Prefix only."""

    api_key_id: str
    api_key_label: str
    key_prefix: str
    key_created_at: str
    provider_id: str
    provider_name: str
    shared_by_user_id: int
    shared_at: str
    website_url: Optional[str] = None
    provider_remarks: Optional[str] = None
    tier_id: Optional[str] = None
    tier_name: Optional[str] = None
    tier_label: Optional[str] = None
    tier_color: Optional[str] = None
    tier_sort_order: Optional[int] = None


@dataclass
class RevealedSecret:
    """Decrypted key material for a single reveal response.

    display_seconds is how long the client may keep the value visible
    before it must drop it.
    """

    secret_id: str
    plaintext: str = field(repr=False)
    display_seconds: int = 30


@dataclass
class SharingEntry:
    """An administrator's secret and the grantees it is currently shared with."""

    record: SecretRecord
    shared_with: list[int] = field(default_factory=list)


@dataclass
class SharingProvider:
    id: str
    name: str
    secrets: list[SharingEntry] = field(default_factory=list)


@dataclass
class SharingOverview:
    """The administrator sharing page: providers with keys, plus members."""

    providers: list[SharingProvider] = field(default_factory=list)
    members: list[RoleAssignment] = field(default_factory=list)
