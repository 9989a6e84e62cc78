"""
auth/rbac.py -- Effective permission resolution and access decisions.

Policy is any-of: an endpoint that lists several permission codes (or role
names) admits a caller holding at least one of them. An empty requirement
means the endpoint is unguarded.

Identities are always resolved fresh from the store. The role names signed
into a token are a snapshot for clients only and are never used here, so a
role change takes effect on the user's next request.

Layer rule: no imports from api/ or siteconfig/.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from auth.models import Identity, PermissionRef, RoleRef
from auth.store import CredentialStore
from core.errors import NotFound

logger = logging.getLogger("officeadmin.rbac")

UNAUTHENTICATED = "unauthenticated"
FORBIDDEN = "forbidden"


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: str | None = None  # UNAUTHENTICATED | FORBIDDEN when denied


ALLOW = Decision(allowed=True)


def grants_any(held: Iterable[str], required: Iterable[str]) -> bool:
    """True if required is empty or shares at least one element with held."""
    required = set(required)
    if not required:
        return True
    return not required.isdisjoint(held)


class AuthorizationEngine:
    """Resolves identities and evaluates permission/role requirements."""

    def __init__(self, store: CredentialStore) -> None:
        self._store = store

    def resolve_user(self, user_id: int) -> Identity:
        """Join the user's roles and the union of their permissions.

        Raises NotFound if the user does not exist.
        """
        user = self._store.get_by_id(user_id)
        if user is None:
            raise NotFound(f"User {user_id} not found.")
        roles = self._store.list_roles_for_user(user_id)
        # dict keyed by id keeps the first occurrence and drops duplicates
        merged = {p.id: p for p in self._store.list_permissions_for_roles(r.id for r in roles)}
        permissions = tuple(PermissionRef(id=p.id, name=p.name, code=p.code) for p in merged.values())
        return Identity(
            user_id=user.id,
            username=user.username,
            display_name=user.display_name,
            roles=tuple(RoleRef(id=r.id, name=r.name, description=r.description) for r in roles),
            permissions=permissions,
            permission_codes=frozenset(p.code for p in permissions),
            role_names=frozenset(r.name for r in roles),
        )

    def has_permission(self, user_id: int, code: str) -> bool:
        return code in self.resolve_user(user_id).permission_codes

    def has_role(self, user_id: int, role_name: str) -> bool:
        return role_name in self.resolve_user(user_id).role_names

    def authorize(self, user_id: int | None, required_codes: Iterable[str] | None) -> Decision:
        """Any-of permission check for a user id (None = no identity on the call)."""
        required = frozenset(required_codes or ())
        if not required:
            return ALLOW
        identity = self._resolve_or_none(user_id)
        if identity is None:
            return Decision(allowed=False, reason=UNAUTHENTICATED)
        return self.check(identity, required)

    def authorize_roles(self, user_id: int | None, required_roles: Iterable[str] | None) -> Decision:
        """Any-of role check, same rules as authorize()."""
        required = frozenset(required_roles or ())
        if not required:
            return ALLOW
        identity = self._resolve_or_none(user_id)
        if identity is None:
            return Decision(allowed=False, reason=UNAUTHENTICATED)
        return self.check(identity, (), required)

    @staticmethod
    def check(
        identity: Identity,
        required_codes: Iterable[str] = (),
        required_roles: Iterable[str] = (),
    ) -> Decision:
        """Evaluate requirements against an already-resolved identity. No I/O."""
        if not grants_any(identity.permission_codes, required_codes):
            return Decision(allowed=False, reason=FORBIDDEN)
        if not grants_any(identity.role_names, required_roles):
            return Decision(allowed=False, reason=FORBIDDEN)
        return ALLOW

    def _resolve_or_none(self, user_id: int | None) -> Identity | None:
        if user_id is None:
            return None
        try:
            return self.resolve_user(user_id)
        except NotFound:
            logger.info("Authorization requested for missing user_id=%d", user_id)
            return None
