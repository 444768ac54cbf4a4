"""
vault/roles.py -- Ownership & role model.

Role transitions:
  none -> administrator   initialize_administrator(), only while no role
                          row exists anywhere in the tenant
  none -> member          add_member(), by the administrator
  member -> none          remove_member(), by the administrator

There is no promotion, demotion or role change beyond these. The role is read
from the store on every call; nothing caches it (a JWT carries no role).

require_administrator() and require_member() are the authorization gates the
other services share. Each branches over every Role member explicitly so a
new member added to the enum has to be decided here before it is usable.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError

from auth.models import Role, RoleAssignment, User
from auth.store import UserStore
from vault.errors import (
    AlreadyInitialized,
    InvalidInput,
    NotAuthenticated,
    NotAuthorized,
    NotFound,
    RoleConflict,
)
from vault.store import VaultStore

logger = logging.getLogger("keyshelf.vault.roles")


def require_administrator(users: UserStore, caller: User | None) -> Role:
    if caller is None or caller.id is None:
        raise NotAuthenticated()
    role = users.get_role(caller.id)
    if role is Role.ADMINISTRATOR:
        return role
    elif role is Role.MEMBER:
        raise NotAuthorized()
    elif role is Role.NONE:
        raise NotAuthorized()
    else:
        raise NotAuthorized(detail=f"unhandled role {role.value!r}")


def require_member(users: UserStore, caller: User | None) -> Role:
    if caller is None or caller.id is None:
        raise NotAuthenticated()
    role = users.get_role(caller.id)
    if role is Role.MEMBER:
        return role
    elif role is Role.ADMINISTRATOR:
        raise NotAuthorized()
    elif role is Role.NONE:
        raise NotAuthorized()
    else:
        raise NotAuthorized(detail=f"unhandled role {role.value!r}")


class RoleService:
    def __init__(self, user_store: UserStore, vault_store: VaultStore) -> None:
        self._users = user_store
        self._vault = vault_store

    def initialize_administrator(self, caller: User | None) -> RoleAssignment:
        """Make caller the tenant administrator. Only the first role ever assigned.

        Concurrent first calls are serialized by the tenant_bootstrap guard
        row; every loser gets AlreadyInitialized.
        """
        if caller is None or caller.id is None:
            raise NotAuthenticated()
        role_id = self._users.bootstrap_administrator(caller.id)
        if role_id is None:
            logger.info("Administrator bootstrap refused user=%s (already initialized)", caller.id)
            raise AlreadyInitialized()
        logger.info("Administrator initialized user=%s", caller.id)
        return self._users.get_role_assignment(role_id)

    def add_member(self, caller: User | None, target_email: str) -> RoleAssignment:
        require_administrator(self._users, caller)
        email = (target_email or "").strip().lower()
        if not email:
            raise InvalidInput("Email is required.")
        target = self._users.get_by_email(email)
        if target is None:
            raise InvalidInput("User not found.")
        if self._users.get_role(target.id) is not Role.NONE:
            raise RoleConflict()
        try:
            role_id = self._users.create_role_assignment(target.id, Role.MEMBER)
        except IntegrityError as exc:
            # Lost a race against another assignment for the same user.
            raise RoleConflict() from exc
        logger.info("Member added user=%s by=%s", target.id, caller.id)
        return self._users.get_role_assignment(role_id)

    def remove_member(self, caller: User | None, role_id: str) -> None:
        """Remove a role assignment and prune the principal's incoming share grants."""
        require_administrator(self._users, caller)
        assignment = self._users.get_role_assignment(role_id)
        if assignment is None:
            raise NotFound("Role assignment not found.")
        if assignment.user_id == caller.id:
            raise InvalidInput("You cannot remove your own role.")
        if not self._users.delete_role_assignment(role_id):
            raise NotFound("Role assignment not found.")
        pruned = self._vault.delete_grants_for_grantee(assignment.user_id)
        logger.info("Member removed user=%s by=%s grants_pruned=%d", assignment.user_id, caller.id, pruned)

    def get_role(self, caller: User | None) -> Role:
        if caller is None or caller.id is None:
            raise NotAuthenticated()
        return self._users.get_role(caller.id)

    def list_members(self, caller: User | None) -> list[RoleAssignment]:
        """All role assignments with e-mails, oldest first. Administrator only."""
        require_administrator(self._users, caller)
        return self._users.list_role_assignments()
