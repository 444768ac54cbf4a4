"""
auth/models.py -- Domain types for principals and role assignments.

Pattern: Data class (pure data container, zero logic). Mirrors the approach
in vault/models.py -- dataclasses own domain shape; stores and services do
the work.

Layer rule: no imports from api/ or vault/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    """Closed set of tenant roles.

    NONE is never stored -- it is what a principal without a user_roles row
    holds. Every authorization site compares against these members, never
    against raw strings.
    """

    NONE = "none"
    MEMBER = "member"
    ADMINISTRATOR = "administrator"


@dataclass
class User:
    """A principal: one authenticated identity in KeyShelf.

    email is the login name and the handle administrators use to add members.
    hashed_password is the bcrypt hash; the raw password is never stored.
    """

    email: str
    id: int | None = None
    hashed_password: str | None = None
    created_at: str | None = None
    is_active: bool = True
    last_login: str | None = None


@dataclass
class RoleAssignment:
    """A user_roles row. At most one per user (UNIQUE user_id).

    email is filled in by joined reads for the member management view;
    it is not a column of user_roles.
    """

    user_id: int
    role: Role
    id: str | None = None
    created_at: str | None = None
    updated_at: str | None = None
    email: str | None = None
