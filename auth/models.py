"""
auth/models.py -- Domain dataclasses for authentication and RBAC entities.

Pattern: Data class (pure data container, zero logic). Dataclasses own domain
shape; the store, the services, and the routes do the work.

Layer rule: no imports from api/ or siteconfig/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass
class User:
    """An account that can log in.

    token_version is the single-session counter: it starts at 0 and is bumped
    on every login and every forced logout. Only tokens minted with the current
    value are accepted.

    id is None before the record is written to the database.
    """

    username: str
    hashed_password: str
    id: int | None = None
    display_name: str = ""
    email: str | None = None
    phone: str | None = None
    avatar: str | None = None
    token_version: int = 0
    last_login_at: str | None = None  # ISO 8601
    last_login_origin: str | None = None  # client IP as seen by the API
    created_at: str | None = None


@dataclass
class Permission:
    """An atomic capability, identified by a namespaced code (e.g. "user:delete").

    role_count and roles are only filled by the store queries that join them.
    """

    name: str
    code: str
    id: int | None = None
    created_at: str | None = None
    role_count: int | None = None
    roles: list[Role] = field(default_factory=list)


@dataclass
class Role:
    """A named bundle of permissions held by zero or more users.

    permissions, user_count and users are only filled by the store queries
    that join them.
    """

    name: str
    id: int | None = None
    description: str | None = None
    created_at: str | None = None
    permissions: list[Permission] = field(default_factory=list)
    user_count: int | None = None
    users: list[User] = field(default_factory=list)


@dataclass(frozen=True)
class TokenClaims:
    """Signed session payload. Never trusted on its own -- see auth/gate.py."""

    user_id: int
    username: str
    roles: tuple[str, ...]
    token_version: int
    expires_at: datetime | None = None


@dataclass(frozen=True)
class RoleRef:
    id: int
    name: str
    description: str | None


@dataclass(frozen=True)
class PermissionRef:
    id: int
    name: str
    code: str


@dataclass(frozen=True)
class Identity:
    """A user's effective roles and permissions, resolved fresh from the store.

    permissions is the union over all assigned roles, deduplicated by id.
    permission_codes and role_names are precomputed lookup sets.
    """

    user_id: int
    username: str
    display_name: str
    roles: tuple[RoleRef, ...]
    permissions: tuple[PermissionRef, ...]
    permission_codes: frozenset[str]
    role_names: frozenset[str]


@dataclass(frozen=True)
class UserSummary:
    """Public projection of a User returned by login (no password hash)."""

    id: int
    username: str
    display_name: str
    roles: tuple[RoleRef, ...]
    last_login_at: str | None


@dataclass(frozen=True)
class LoginResult:
    access_token: str
    expires_in: int
    user: UserSummary


@dataclass(frozen=True)
class LoginInfo:
    id: int
    username: str
    display_name: str
    last_login_at: str | None
    last_login_origin: str | None
