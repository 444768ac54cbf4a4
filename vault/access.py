"""
vault/access.py -- The only path between callers and secret plaintext.

VaultService wraps the secret store. It creates secrets (plaintext in,
handle + display prefix out), maps them to SecretRecord rows, and checks
"owner, or a current member holding a live share grant" before every
decrypt.

Authorization outcome on reveal/delete is deliberately uniform: a missing
record, a soft-deleted record and a record the caller may not touch all raise
the same NotAuthorized with the same message, so the response does not leak
whether an id exists.

Logging carries record ids, provider ids and principal ids. Never the
plaintext or the prefix. A handle is logged only when a failed record insert
orphans it.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError

from auth.models import Role, User
from auth.store import UserStore
from core.config import get_settings
from vault.errors import InvalidInput, NotAuthenticated, NotAuthorized, VaultReadFailed, VaultWriteFailed
from vault.models import RevealedSecret, SecretRecord
from vault.secret_store import CallerContext, SecretStore, SecretStoreError
from vault.store import VaultStore

logger = logging.getLogger("keyshelf.vault")

# At least this many characters of the secret stay out of the prefix.
_MIN_HIDDEN_CHARS = 2


def derive_key_prefix(plaintext: str, length: int) -> str:
    """Return the display prefix kept alongside the record.

    The first `length` characters when at least two characters remain hidden
    after them, otherwise the first half of the secret:

        derive_key_prefix("sk-abc123", 7)  -> "sk-abc1"
        derive_key_prefix("abcdef", 7)     -> "abc"
    """
    if len(plaintext) - length >= _MIN_HIDDEN_CHARS:
        return plaintext[:length]
    return plaintext[: len(plaintext) // 2]


class VaultService:
    """Create, reveal, list and soft-delete secret records."""

    def __init__(self, user_store: UserStore, vault_store: VaultStore, secret_store: SecretStore) -> None:
        self._users = user_store
        self._store = vault_store
        self._secrets = secret_store
        settings = get_settings()
        self._prefix_length = settings.key_prefix_length
        self._display_seconds = settings.reveal_display_seconds

    def create_secret(self, caller: User | None, provider_id: str, label: str, plaintext: str) -> SecretRecord:
        """Store plaintext in the secret store and persist a record pointing at it.

        Raises:
            NotAuthenticated: caller is None.
            InvalidInput:     empty label or plaintext, unknown or deleted provider.
            VaultWriteFailed: the secret store or the record insert failed.
        """
        if caller is None or caller.id is None:
            raise NotAuthenticated()
        label = (label or "").strip()
        plaintext = (plaintext or "").strip()
        if not label:
            raise InvalidInput("Label is required.")
        if not plaintext:
            raise InvalidInput("API key is required.")
        provider = self._store.get_provider(provider_id)
        if provider is None:
            raise InvalidInput("Provider not found.")

        try:
            handle = self._secrets.put(plaintext)
        except SecretStoreError as exc:
            logger.error("Secret store write failed provider=%s owner=%s", provider_id, caller.id, exc_info=exc)
            raise VaultWriteFailed() from exc

        record = SecretRecord(
            owner_id=caller.id,
            provider_id=provider.id,
            label=label,
            secret_handle=handle,
            key_prefix=derive_key_prefix(plaintext, self._prefix_length),
            provider_name=provider.name,
        )
        try:
            record.id = self._store.create_secret(record)
        except SQLAlchemyError as exc:
            # The stored ciphertext is orphaned; its handle is the only way back to it.
            logger.error(
                "Secret record insert failed provider=%s owner=%s handle=%s", provider.id, caller.id, handle, exc_info=exc
            )
            raise VaultWriteFailed() from exc
        logger.info("Secret created id=%s provider=%s owner=%s", record.id, provider.id, caller.id)
        return record

    def reveal_secret(self, caller: User | None, secret_id: str) -> RevealedSecret:
        """Return the plaintext if caller owns the live record or holds a grant for it.

        Raises:
            NotAuthorized:   in every denial case, existing record or not.
            VaultReadFailed: authorized, but the secret store failed.
        """
        if caller is None or caller.id is None:
            raise NotAuthorized()
        record = self._store.get_secret(secret_id)
        if record is None or not self._may_reveal(caller, record):
            logger.warning("Reveal denied secret=%s principal=%s", secret_id, caller.id)
            raise NotAuthorized()

        try:
            plaintext = self._secrets.get(
                record.secret_handle,
                CallerContext(principal_id=caller.id, secret_id=record.id),
            )
        except SecretStoreError as exc:
            logger.error("Secret store read failed secret=%s principal=%s", record.id, caller.id, exc_info=exc)
            raise VaultReadFailed() from exc

        logger.info("Secret revealed id=%s principal=%s", record.id, caller.id)
        return RevealedSecret(secret_id=record.id, plaintext=plaintext, display_seconds=self._display_seconds)

    def delete_secret(self, caller: User | None, secret_id: str) -> None:
        """Soft-delete a record owned by caller. Store entry and grants stay in place."""
        if caller is None or caller.id is None:
            raise NotAuthorized()
        if not self._store.soft_delete_secret(secret_id, caller.id):
            logger.warning("Delete denied secret=%s principal=%s", secret_id, caller.id)
            raise NotAuthorized()
        logger.info("Secret soft-deleted id=%s owner=%s", secret_id, caller.id)

    def list_secrets(self, caller: User | None, provider_id: str | None = None) -> list[SecretRecord]:
        """The caller's live secrets under live providers, newest first."""
        if caller is None or caller.id is None:
            raise NotAuthenticated()
        return self._store.list_secrets(caller.id, provider_id=provider_id)

    def _may_reveal(self, caller: User, record: SecretRecord) -> bool:
        if record.owner_id == caller.id:
            return True
        # A grant only counts while its holder is still a member.
        if self._store.get_grant(record.id, caller.id) is None:
            return False
        return self._users.get_role(caller.id) is Role.MEMBER
