"""
auth/seed.py -- Idempotent bootstrap of the default permissions, roles and admin.

Running seed_defaults() any number of times converges on the same state:
  - every DEFAULT_PERMISSIONS code exists (existing names are left alone),
  - the three built-in roles exist and hold exactly their listed permissions
    (Administrator holds every permission in the store),
  - an "admin" user exists and holds exactly the Administrator role.

The admin password is only set when the account is created. Re-seeding never
resets a password an operator has changed.

Layer rule: no imports from api/ or siteconfig/.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from auth.models import Permission, Role, User
from auth.store import CredentialStore
from auth.tokens import hash_password

logger = logging.getLogger("officeadmin.rbac")

ADMIN_USERNAME = "admin"
ADMIN_ROLE = "Administrator"

DEFAULT_PERMISSIONS: list[tuple[str, str]] = [
    # (name, code)
    ("List users", "user:list"),
    ("Create user", "user:create"),
    ("Update user", "user:update"),
    ("Delete user", "user:delete"),
    ("Force user logout", "user:force-logout"),
    ("List roles", "role:list"),
    ("Create role", "role:create"),
    ("Update role", "role:update"),
    ("Delete role", "role:delete"),
    ("Assign role permissions", "role:assign-permissions"),
    ("List permissions", "permission:list"),
    ("Create permission", "permission:create"),
    ("Update permission", "permission:update"),
    ("Delete permission", "permission:delete"),
    ("List departments", "department:list"),
    ("Create department", "department:create"),
    ("Update department", "department:update"),
    ("Delete department", "department:delete"),
    ("List configuration (including private)", "config:list"),
    ("Create configuration", "config:create"),
    ("Update configuration", "config:update"),
    ("Delete configuration", "config:delete"),
]

# role name -> (description, permission codes); None means "every permission"
DEFAULT_ROLES: dict[str, tuple[str, list[str] | None]] = {
    ADMIN_ROLE: ("Full access to every operation", None),
    "Employee": ("Regular employee with read access", ["user:list", "department:list"]),
    "Manager": (
        "Department manager",
        ["user:list", "user:create", "user:update", "department:list", "role:list"],
    ),
}


@dataclass(frozen=True)
class SeedReport:
    permissions_created: int
    roles_created: int
    admin_created: bool


def seed_defaults(store: CredentialStore, admin_password: str = "admin") -> SeedReport:
    """Create or reconcile the built-in permissions, roles and admin account."""
    permissions_created = store.create_permissions(Permission(name=name, code=code) for name, code in DEFAULT_PERMISSIONS)

    all_permissions = store.list_permissions()
    ids_by_code = {p.code: p.id for p in all_permissions}

    roles_created = 0
    admin_role_id: int | None = None
    for name, (description, codes) in DEFAULT_ROLES.items():
        if codes is None:
            permission_ids = [p.id for p in all_permissions]
        else:
            permission_ids = [ids_by_code[c] for c in codes if c in ids_by_code]
        existing = store.get_role_by_name(name)
        if existing is None:
            role_id = store.create_role(Role(name=name, description=description), permission_ids)
            roles_created += 1
        else:
            role_id = existing.id
            store.update_role(role_id, description=description)
            store.set_role_permissions(role_id, permission_ids)
        if name == ADMIN_ROLE:
            admin_role_id = role_id

    admin = store.get_by_username(ADMIN_USERNAME)
    admin_created = admin is None
    if admin is None:
        store.create_user(
            User(
                username=ADMIN_USERNAME,
                hashed_password=hash_password(admin_password),
                display_name="Administrator",
            ),
            [admin_role_id],
        )
    else:
        store.set_user_roles(admin.id, [admin_role_id])

    logger.info(
        "Seed complete: %d permission(s) and %d role(s) created, admin %s",
        permissions_created,
        roles_created,
        "created" if admin_created else "already present",
    )
    return SeedReport(
        permissions_created=permissions_created,
        roles_created=roles_created,
        admin_created=admin_created,
    )
