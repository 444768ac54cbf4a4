"""
vault/sharing.py -- The sharing graph between secret records and members.

A grant is an edge (api_key_id -> shared_with_user_id) recorded with the
administrator who made it. Only the administrator who owns a live record may
add edges to it, and only towards principals currently holding Role.MEMBER.

Duplicate edges are refused twice over: an explicit lookup first, then the
uq_share_key_grantee constraint for the case where two requests pass the
lookup at the same moment. Both paths raise AlreadyShared.

Revocation is idempotent: unsharing an edge that is not there succeeds.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError

from auth.models import Role, User
from auth.store import UserStore
from vault.errors import AlreadyShared, InvalidInput, NotAuthorized
from vault.models import (
    SharedSecretSummary,
    ShareGrant,
    SharingEntry,
    SharingOverview,
    SharingProvider,
)
from vault.roles import require_administrator, require_member
from vault.store import VaultStore

logger = logging.getLogger("keyshelf.vault.sharing")


class SharingService:
    def __init__(self, user_store: UserStore, vault_store: VaultStore) -> None:
        self._users = user_store
        self._store = vault_store

    def share_secret(self, caller: User | None, secret_id: str, grantee_id: int) -> ShareGrant:
        """Grant grantee_id reveal access to one of the caller's secrets.

        Raises:
            NotAuthorized: caller is not the administrator, or does not own the
                           live record (same error whether or not it exists).
            InvalidInput:  grantee does not currently hold Role.MEMBER.
            AlreadyShared: the grant already exists.
        """
        require_administrator(self._users, caller)
        record = self._store.get_secret(secret_id)
        if record is None or record.owner_id != caller.id:
            logger.warning("Share denied secret=%s principal=%s", secret_id, caller.id)
            raise NotAuthorized()
        if self._users.get_role(grantee_id) is not Role.MEMBER:
            raise InvalidInput("API keys can only be shared with members.")
        if self._store.get_grant(record.id, grantee_id) is not None:
            raise AlreadyShared()

        grant = ShareGrant(api_key_id=record.id, shared_with_user_id=grantee_id, shared_by_user_id=caller.id)
        try:
            grant.id = self._store.create_grant(grant)
        except IntegrityError as exc:
            raise AlreadyShared() from exc
        logger.info("Secret shared id=%s grantee=%s by=%s", record.id, grantee_id, caller.id)
        return grant

    def unshare_secret(self, caller: User | None, secret_id: str, grantee_id: int) -> None:
        """Remove the caller's grant for (secret_id, grantee_id). Missing grant is success."""
        require_administrator(self._users, caller)
        removed = self._store.delete_grant(secret_id, grantee_id, caller.id)
        logger.info("Secret unshared id=%s grantee=%s by=%s removed=%s", secret_id, grantee_id, caller.id, removed)

    def list_shared_with(self, caller: User | None) -> list[SharedSecretSummary]:
        """Secrets shared with the calling member. Prefixes only."""
        require_member(self._users, caller)
        return self._store.list_shared_with(caller.id)

    def sharing_overview(self, caller: User | None) -> SharingOverview:
        """The administrator's providers with live secrets, each with current grantees."""
        require_administrator(self._users, caller)

        grantees: dict[str, list[int]] = {}
        for grant in self._store.list_grants_by_granter(caller.id):
            grantees.setdefault(grant.api_key_id, []).append(grant.shared_with_user_id)

        by_provider: dict[str, list[SharingEntry]] = {}
        for record in self._store.list_secrets(caller.id):
            entry = SharingEntry(record=record, shared_with=grantees.get(record.id, []))
            by_provider.setdefault(record.provider_id, []).append(entry)

        providers = [
            SharingProvider(id=p.id, name=p.name, secrets=by_provider[p.id])
            for p in self._store.list_providers(caller.id)
            if p.id in by_provider
        ]
        return SharingOverview(providers=providers, members=self._users.list_role_assignments(Role.MEMBER))
