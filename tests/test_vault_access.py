"""Unit tests for vault/access.py -- create, reveal, list, delete.

Covers:
- derive_key_prefix() rule (fixed length vs. half for short secrets)
- create_secret() validation, trimming and prefix derivation
- reveal_secret() succeeds for owner and grantee only; denial is uniform
- a grant stops working once its holder is no longer a member
- delete_secret() is owner-only and makes the secret unrevealable
- secret store failures map to the retryable VaultWriteFailed/VaultReadFailed
- plaintext never reaches the log
"""

import logging

import pytest
from sqlalchemy.exc import SQLAlchemyError

from auth.models import Role
from vault.access import VaultService, derive_key_prefix
from vault.errors import InvalidInput, NotAuthenticated, NotAuthorized, VaultReadFailed, VaultWriteFailed
from vault.models import Provider
from vault.secret_store import SecretStoreError


class _BrokenStore:
    """SecretStore double whose every call fails."""

    def put(self, plaintext):
        raise SecretStoreError("disk full")

    def get(self, handle, context):
        raise SecretStoreError("backend unreachable")


def _provider(env, name="OpenAI") -> str:
    return env.vault_store.create_provider(Provider(owner_id=env.admin.id, name=name))


# ---------------------------------------------------------------------------
# Prefix
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "plaintext, expected",
    [
        ("sk-abc123", "sk-abc1"),
        ("sk-live-0123456789", "sk-live"),
        ("abcdefgh", "abcd"),
        ("abc", "a"),
        ("x", ""),
    ],
)
def test_derive_key_prefix(plaintext, expected):
    assert derive_key_prefix(plaintext, 7) == expected


# ---------------------------------------------------------------------------
# create_secret
# ---------------------------------------------------------------------------


def test_create_secret_stores_prefix_and_handle(vault_env):
    pid = _provider(vault_env)
    record = vault_env.vault.create_secret(vault_env.admin, pid, "  prod-key ", "  sk-abc123  ")
    assert record.id
    assert record.label == "prod-key"
    assert record.key_prefix == "sk-abc1"
    assert record.owner_id == vault_env.admin.id
    assert record.provider_name == "OpenAI"
    assert "sk-abc123" not in record.secret_handle


@pytest.mark.parametrize("label, key", [("", "sk-abc123"), ("   ", "sk-abc123"), ("label", ""), ("label", "  ")])
def test_create_secret_rejects_blank_fields(vault_env, label, key):
    pid = _provider(vault_env)
    with pytest.raises(InvalidInput):
        vault_env.vault.create_secret(vault_env.admin, pid, label, key)


def test_create_secret_rejects_deleted_provider(vault_env):
    pid = _provider(vault_env)
    vault_env.vault_store.soft_delete_provider(pid, vault_env.admin.id)
    with pytest.raises(InvalidInput):
        vault_env.vault.create_secret(vault_env.admin, pid, "prod-key", "sk-abc123")


def test_create_secret_requires_caller(vault_env):
    with pytest.raises(NotAuthenticated):
        vault_env.vault.create_secret(None, _provider(vault_env), "prod-key", "sk-abc123")


def test_create_secret_store_failure_is_retryable(vault_env):
    service = VaultService(vault_env.user_store, vault_env.vault_store, _BrokenStore())
    with pytest.raises(VaultWriteFailed) as excinfo:
        service.create_secret(vault_env.admin, _provider(vault_env), "prod-key", "sk-abc123")
    assert excinfo.value.retryable is True
    assert vault_env.vault_store.list_secrets(vault_env.admin.id) == []


def test_create_secret_record_insert_failure_is_retryable(vault_env, monkeypatch, caplog):
    def fail_insert(record):
        raise SQLAlchemyError("database is locked")

    monkeypatch.setattr(vault_env.vault_store, "create_secret", fail_insert)
    with caplog.at_level(logging.ERROR, logger="keyshelf.vault"):
        with pytest.raises(VaultWriteFailed) as excinfo:
            vault_env.vault.create_secret(vault_env.admin, _provider(vault_env), "prod-key", "sk-abc123")
    assert excinfo.value.retryable is True
    assert "handle=" in caplog.text
    assert "sk-abc123" not in caplog.text


# ---------------------------------------------------------------------------
# reveal_secret
# ---------------------------------------------------------------------------


def test_owner_reveals_plaintext(vault_env):
    record = vault_env.vault.create_secret(vault_env.admin, _provider(vault_env), "prod-key", "sk-abc123")
    revealed = vault_env.vault.reveal_secret(vault_env.admin, record.id)
    assert revealed.plaintext == "sk-abc123"
    assert revealed.display_seconds == 30
    assert "sk-abc123" not in repr(revealed)


def test_grantee_reveals_plaintext(vault_env):
    record = vault_env.vault.create_secret(vault_env.admin, _provider(vault_env), "prod-key", "sk-abc123")
    vault_env.sharing.share_secret(vault_env.admin, record.id, vault_env.member.id)
    assert vault_env.vault.reveal_secret(vault_env.member, record.id).plaintext == "sk-abc123"


def _member_role_id(env) -> str:
    return env.user_store.list_role_assignments(Role.MEMBER)[0].id


def test_surviving_grant_of_removed_member_is_denied(vault_env):
    record = vault_env.vault.create_secret(vault_env.admin, _provider(vault_env), "prod-key", "sk-abc123")
    vault_env.sharing.share_secret(vault_env.admin, record.id, vault_env.member.id)
    # Drop the role without pruning, as if the grant cleanup never ran.
    vault_env.user_store.delete_role_assignment(_member_role_id(vault_env))
    assert vault_env.vault_store.get_grant(record.id, vault_env.member.id) is not None
    with pytest.raises(NotAuthorized):
        vault_env.vault.reveal_secret(vault_env.member, record.id)


def test_member_removed_while_share_in_flight_cannot_reveal(vault_env, monkeypatch):
    record = vault_env.vault.create_secret(vault_env.admin, _provider(vault_env), "prod-key", "sk-abc123")
    insert_grant = vault_env.vault_store.create_grant

    def remove_then_insert(grant):
        vault_env.roles.remove_member(vault_env.admin, _member_role_id(vault_env))
        return insert_grant(grant)

    monkeypatch.setattr(vault_env.vault_store, "create_grant", remove_then_insert)
    vault_env.sharing.share_secret(vault_env.admin, record.id, vault_env.member.id)
    assert vault_env.user_store.get_role(vault_env.member.id) is Role.NONE
    with pytest.raises(NotAuthorized):
        vault_env.vault.reveal_secret(vault_env.member, record.id)


def test_denial_is_identical_for_missing_and_foreign_secret(vault_env):
    record = vault_env.vault.create_secret(vault_env.admin, _provider(vault_env), "prod-key", "sk-abc123")
    with pytest.raises(NotAuthorized) as foreign:
        vault_env.vault.reveal_secret(vault_env.member, record.id)
    with pytest.raises(NotAuthorized) as missing:
        vault_env.vault.reveal_secret(vault_env.member, "00000000-0000-0000-0000-000000000000")
    assert foreign.value.message == missing.value.message
    assert foreign.value.detail == missing.value.detail is None


def test_reveal_after_delete_fails_for_owner_and_grantee(vault_env):
    record = vault_env.vault.create_secret(vault_env.admin, _provider(vault_env), "prod-key", "sk-abc123")
    vault_env.sharing.share_secret(vault_env.admin, record.id, vault_env.member.id)
    vault_env.vault.delete_secret(vault_env.admin, record.id)
    for caller in (vault_env.admin, vault_env.member):
        with pytest.raises(NotAuthorized):
            vault_env.vault.reveal_secret(caller, record.id)


def test_reveal_survives_provider_soft_delete_for_owner(vault_env):
    pid = _provider(vault_env)
    record = vault_env.vault.create_secret(vault_env.admin, pid, "prod-key", "sk-abc123")
    vault_env.catalog.delete_provider(vault_env.admin, pid)
    assert vault_env.vault.reveal_secret(vault_env.admin, record.id).plaintext == "sk-abc123"
    assert vault_env.vault.list_secrets(vault_env.admin) == []


def test_reveal_store_failure_is_retryable(vault_env):
    record = vault_env.vault.create_secret(vault_env.admin, _provider(vault_env), "prod-key", "sk-abc123")
    service = VaultService(vault_env.user_store, vault_env.vault_store, _BrokenStore())
    with pytest.raises(VaultReadFailed) as excinfo:
        service.reveal_secret(vault_env.admin, record.id)
    assert excinfo.value.retryable is True


def test_reveal_unauthorized_does_not_touch_store(vault_env):
    record = vault_env.vault.create_secret(vault_env.admin, _provider(vault_env), "prod-key", "sk-abc123")
    service = VaultService(vault_env.user_store, vault_env.vault_store, _BrokenStore())
    # A broken store would raise VaultReadFailed; denial must come first.
    with pytest.raises(NotAuthorized):
        service.reveal_secret(vault_env.outsider, record.id)


# ---------------------------------------------------------------------------
# delete_secret / list_secrets
# ---------------------------------------------------------------------------


def test_only_owner_deletes(vault_env):
    record = vault_env.vault.create_secret(vault_env.admin, _provider(vault_env), "prod-key", "sk-abc123")
    vault_env.sharing.share_secret(vault_env.admin, record.id, vault_env.member.id)
    with pytest.raises(NotAuthorized):
        vault_env.vault.delete_secret(vault_env.member, record.id)
    vault_env.vault.delete_secret(vault_env.admin, record.id)
    with pytest.raises(NotAuthorized):
        vault_env.vault.delete_secret(vault_env.admin, record.id)


def test_list_secrets_newest_first_and_scoped(vault_env):
    p1 = _provider(vault_env, "One")
    p2 = _provider(vault_env, "Two")
    first = vault_env.vault.create_secret(vault_env.admin, p1, "first", "sk-first-000")
    second = vault_env.vault.create_secret(vault_env.admin, p2, "second", "sk-second-000")
    assert [r.id for r in vault_env.vault.list_secrets(vault_env.admin)] == [second.id, first.id]
    assert [r.id for r in vault_env.vault.list_secrets(vault_env.admin, provider_id=p1)] == [first.id]
    assert vault_env.vault.list_secrets(vault_env.member) == []


def test_plaintext_never_logged(vault_env, caplog):
    with caplog.at_level(logging.DEBUG, logger="keyshelf"):
        record = vault_env.vault.create_secret(vault_env.admin, _provider(vault_env), "prod-key", "sk-abc123")
        vault_env.vault.reveal_secret(vault_env.admin, record.id)
    assert "sk-abc123" not in caplog.text
    assert "sk-abc1" not in caplog.text
    assert record.id in caplog.text
