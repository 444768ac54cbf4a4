"""
vault/errors.py -- Typed error kinds raised by the vault services.

Every failure a vault operation can report is one of these classes. The API
layer turns any VaultError into the shared ErrorResponse envelope, so the
HTTP client only ever sees {"error": {"code", "message", "detail"}} with the
status_code declared here -- never a stack trace or a store internal.

Only the Secret Store failures are retryable. Everything else is terminal for
the request.

Layer rule: no imports from api/ or auth/.
"""

from __future__ import annotations


class VaultError(Exception):
    """Base class. Subclasses override code, status_code, message."""

    code: str = "vault_error"
    status_code: int = 400
    message: str = "The request could not be completed."
    retryable: bool = False

    def __init__(self, message: str | None = None, detail: str | None = None) -> None:
        self.message = message or self.message
        self.detail = detail
        super().__init__(self.message)


class InvalidInput(VaultError):
    code = "invalid_input"
    status_code = 400
    message = "Invalid input."


class NotAuthenticated(VaultError):
    code = "unauthorized"
    status_code = 401
    message = "Authentication required."


class NotAuthorized(VaultError):
    """Authenticated but lacking ownership, grant, or role.

    For secret operations the message is always the default one, so a caller
    cannot tell "does not exist" from "exists but is not yours".
    """

    code = "not_authorized"
    status_code = 403
    message = "You are not authorized to perform this action."


class NotFound(VaultError):
    """Unknown provider, tier, or role assignment. Never used for secrets."""

    code = "not_found"
    status_code = 404
    message = "Not found."


class AlreadyShared(VaultError):
    code = "already_shared"
    status_code = 409
    message = "API key already shared with this member."


class AlreadyInitialized(VaultError):
    code = "already_initialized"
    status_code = 409
    message = "Roles already initialized."


class DuplicateName(VaultError):
    code = "duplicate_name"
    status_code = 409
    message = "A record with this name already exists."


class RoleConflict(VaultError):
    code = "role_conflict"
    status_code = 409
    message = "User already has a role assigned."


class ReferentialConflict(VaultError):
    code = "referential_conflict"
    status_code = 409
    message = "The record is still referenced."


class VaultWriteFailed(VaultError):
    code = "vault_write_failed"
    status_code = 503
    message = "The secret could not be stored. Please retry."
    retryable = True


class VaultReadFailed(VaultError):
    code = "vault_read_failed"
    status_code = 503
    message = "The secret could not be read. Please retry."
    retryable = True
