"""
vault/secret_store.py -- The encrypted key-value store behind the vault.

The rest of the application treats the secret store as a trusted black box
reached through two calls:

    put(plaintext) -> handle
    get(handle, context) -> plaintext

SecretStore is that capability interface. Anything implementing it (a cloud
KMS-backed store, HashiCorp Vault, a database extension) can replace
FernetSecretStore without touching vault/access.py.

FernetSecretStore is the shipped backend. It keeps ciphertext in its own
database (SECRET_STORE_DB_URL) so the application database only ever holds
handles. Values are encrypted with cryptography's Fernet (AES-128-CBC +
HMAC-SHA256, authenticated) under VAULT_MASTER_KEY.

Security:
  Never log plaintext or ciphertext. Log lines carry handles and ids only.
  Every failure surfaces as SecretStoreError with a generic message; the
  original exception is chained for server-side logs.

Layer rule: no imports from api/ or auth/.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Protocol

from cryptography.fernet import Fernet, InvalidToken
from sqlalchemy import Column, MetaData, String, Table, Text, create_engine, event, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from core.config import get_settings

logger = logging.getLogger("keyshelf.vault.store")

# ---------------------------------------------------------------------------
# Interface
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CallerContext:
    """Who is asking the store for plaintext, and for which record.

    The vault access layer builds this only after its own authorization
    check passed. The store refuses a context without a principal.
    """

    principal_id: Optional[int]
    secret_id: Optional[str] = None


class SecretStoreError(Exception):
    """Any failure inside the secret store (I/O, unknown handle, bad token)."""


class SecretStore(Protocol):
    def put(self, plaintext: str) -> str:
        """Encrypt and persist plaintext; return an opaque handle."""
        ...

    def get(self, handle: str, context: CallerContext) -> str:
        """Return the plaintext for handle or raise SecretStoreError."""
        ...


# ---------------------------------------------------------------------------
# Fernet-backed implementation
# ---------------------------------------------------------------------------

_metadata = MetaData()

_vault_secrets = Table(
    "vault_secrets",
    _metadata,
    Column("handle", String(36), primary_key=True),
    Column("ciphertext", Text, nullable=False),
    Column("created_at", String(32), nullable=False),
)


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode (per connection; PRAGMAs are not pooled)."""
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


class FernetSecretStore:
    """SecretStore backed by a SQL table of Fernet tokens.

    Usage:
        store = FernetSecretStore()                        # settings defaults
        store = FernetSecretStore("sqlite:///:memory:", Fernet.generate_key())
        handle = store.put("sk-live-123")
        store.get(handle, CallerContext(principal_id=1))
        store.close()
    """

    def __init__(self, db_url: str | None = None, master_key: str | bytes | None = None) -> None:
        settings = get_settings()
        db_url = db_url or settings.secret_store_db_url
        key = master_key or settings.vault_master_key
        if isinstance(key, str):
            key = key.encode("ascii")
        self._fernet = Fernet(key)
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    def put(self, plaintext: str) -> str:
        handle = str(uuid.uuid4())
        token = self._fernet.encrypt(plaintext.encode("utf-8")).decode("ascii")
        try:
            with self.engine.begin() as conn:
                conn.execute(
                    _vault_secrets.insert().values(
                        handle=handle,
                        ciphertext=token,
                        created_at=datetime.now(timezone.utc).isoformat(),
                    )
                )
        except SQLAlchemyError as exc:
            raise SecretStoreError("secret store write failed") from exc
        logger.debug("Stored secret handle=%s", handle)
        return handle

    def get(self, handle: str, context: CallerContext) -> str:
        if context.principal_id is None:
            raise SecretStoreError("caller context has no principal")
        try:
            with self.engine.connect() as conn:
                token = conn.execute(
                    select(_vault_secrets.c.ciphertext).where(_vault_secrets.c.handle == handle)
                ).scalar()
        except SQLAlchemyError as exc:
            raise SecretStoreError("secret store read failed") from exc
        if token is None:
            raise SecretStoreError("unknown secret handle")
        try:
            plaintext = self._fernet.decrypt(token.encode("ascii")).decode("utf-8")
        except InvalidToken as exc:
            raise SecretStoreError("secret could not be decrypted") from exc
        logger.debug(
            "Released secret handle=%s secret_id=%s principal=%s",
            handle,
            context.secret_id,
            context.principal_id,
        )
        return plaintext

    def close(self) -> None:
        self.engine.dispose()
