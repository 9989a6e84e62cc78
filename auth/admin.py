"""
auth/admin.py -- RBAC and user administration.

RbacAdmin wraps CredentialStore with the checks administrators rely on:
  - NotFound for unknown role/permission/user ids, including ids inside the
    lists passed to assignment calls (nothing is linked if any id is unknown).
  - Conflict for duplicate role names, permission names/codes and usernames,
    with a specific message. The store's own IntegrityError -> Conflict
    translation still covers the race where two requests create the same
    name at once.
  - A role held by users is only deleted when the caller says force=True.

Layer rule: no imports from api/ or siteconfig/.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from auth.models import Permission, Role, User
from auth.store import CredentialStore
from auth.tokens import hash_password
from core.errors import Conflict, NotFound

logger = logging.getLogger("officeadmin.rbac")


class RbacAdmin:
    """Administrative operations over roles, permissions and users."""

    def __init__(self, store: CredentialStore) -> None:
        self._store = store

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    def create_role(self, name: str, description: str | None = None, permission_ids: Iterable[int] | None = None) -> Role:
        if self._store.get_role_by_name(name) is not None:
            raise Conflict(f'Role name "{name}" already exists.')
        ids = list(permission_ids or ())
        self._require_permissions(ids)
        role_id = self._store.create_role(Role(name=name, description=description), ids)
        logger.info("Role created: id=%d name=%s", role_id, name)
        return self.get_role(role_id)

    def list_roles(self) -> list[Role]:
        return self._store.list_roles()

    def get_role(self, role_id: int) -> Role:
        role = self._store.get_role(role_id)
        if role is None:
            raise NotFound(f"Role {role_id} not found.")
        return role

    def update_role(
        self,
        role_id: int,
        name: str | None = None,
        description: str | None = None,
        permission_ids: Iterable[int] | None = None,
    ) -> Role:
        """Update fields that are not None. permission_ids replaces the whole set."""
        self.get_role(role_id)
        fields: dict = {}
        if name is not None:
            existing = self._store.get_role_by_name(name)
            if existing is not None and existing.id != role_id:
                raise Conflict(f'Role name "{name}" already exists.')
            fields["name"] = name
        if description is not None:
            fields["description"] = description
        if fields:
            self._store.update_role(role_id, **fields)
        if permission_ids is not None:
            ids = list(permission_ids)
            self._require_permissions(ids)
            self._store.set_role_permissions(role_id, ids)
        logger.info("Role updated: id=%d", role_id)
        return self.get_role(role_id)

    def delete_role(self, role_id: int, force: bool = False) -> None:
        """Delete a role. Refuses with Conflict while users hold it, unless force."""
        self.get_role(role_id)
        holders = self._store.count_role_users(role_id)
        if holders and not force:
            raise Conflict(f"Role is assigned to {holders} user(s); remove it from them first or delete with force.")
        self._store.delete_role(role_id)
        logger.info("Role deleted: id=%d (detached from %d user(s))", role_id, holders)

    def assign_permissions(self, role_id: int, permission_ids: Iterable[int]) -> Role:
        """Replace the role's permissions with exactly permission_ids."""
        self.get_role(role_id)
        ids = list(permission_ids)
        self._require_permissions(ids)
        self._store.set_role_permissions(role_id, ids)
        logger.info("Role %d permissions replaced (%d permission(s))", role_id, len(set(ids)))
        return self.get_role(role_id)

    def add_permissions(self, role_id: int, permission_ids: Iterable[int]) -> Role:
        self.get_role(role_id)
        ids = list(permission_ids)
        self._require_permissions(ids)
        self._store.add_role_permissions(role_id, ids)
        return self.get_role(role_id)

    # ------------------------------------------------------------------
    # Permissions
    # ------------------------------------------------------------------

    def create_permission(self, name: str, code: str) -> Permission:
        if self._store.find_conflicting_permission(name, code) is not None:
            raise Conflict(f'Permission name "{name}" or code "{code}" already exists.')
        permission_id = self._store.create_permission(Permission(name=name, code=code))
        logger.info("Permission created: id=%d code=%s", permission_id, code)
        return self.get_permission(permission_id)

    def create_permissions_batch(self, items: Iterable[tuple[str, str]]) -> int:
        """Create (name, code) pairs, skipping duplicates. Returns how many were created."""
        created = self._store.create_permissions(Permission(name=name, code=code) for name, code in items)
        logger.info("Permission batch created %d permission(s)", created)
        return created

    def list_permissions(self) -> list[Permission]:
        return self._store.list_permissions()

    def get_permission(self, permission_id: int) -> Permission:
        permission = self._store.get_permission(permission_id)
        if permission is None:
            raise NotFound(f"Permission {permission_id} not found.")
        return permission

    def update_permission(self, permission_id: int, name: str | None = None, code: str | None = None) -> Permission:
        self.get_permission(permission_id)
        if self._store.find_conflicting_permission(name, code, exclude_id=permission_id) is not None:
            raise Conflict("Permission name or code already exists.")
        fields = {k: v for k, v in (("name", name), ("code", code)) if v is not None}
        if fields:
            self._store.update_permission(permission_id, **fields)
        return self.get_permission(permission_id)

    def delete_permission(self, permission_id: int) -> None:
        """Delete a permission; every role holding it loses it."""
        self.get_permission(permission_id)
        self._store.delete_permission(permission_id)
        logger.info("Permission deleted: id=%d", permission_id)

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def create_user(
        self,
        username: str,
        password: str,
        display_name: str = "",
        email: str | None = None,
        phone: str | None = None,
        avatar: str | None = None,
        role_ids: Iterable[int] | None = None,
    ) -> User:
        if self._store.get_by_username(username) is not None:
            raise Conflict(f'Username "{username}" already exists.')
        ids = list(role_ids or ())
        self._require_roles(ids)
        user = User(
            username=username,
            hashed_password=hash_password(password),
            display_name=display_name,
            email=email,
            phone=phone,
            avatar=avatar,
        )
        user_id = self._store.create_user(user, ids)
        logger.info("User created: id=%d", user_id)
        return self.get_user(user_id)

    def list_users(self) -> list[User]:
        return self._store.list_users()

    def get_user(self, user_id: int) -> User:
        user = self._store.get_by_id(user_id)
        if user is None:
            raise NotFound(f"User {user_id} not found.")
        return user

    def update_user(self, user_id: int, password: str | None = None, **fields) -> User:
        """Update profile fields; a new password is hashed before storage.

        Changing the password does not end existing sessions. Callers that
        want that call SessionAuthority.force_logout() as well.
        """
        self.get_user(user_id)
        updates = {k: v for k, v in fields.items() if v is not None}
        if password is not None:
            updates["hashed_password"] = hash_password(password)
        self._store.update_user(user_id, **updates)
        return self.get_user(user_id)

    def delete_user(self, user_id: int) -> None:
        if not self._store.delete_user(user_id):
            raise NotFound(f"User {user_id} not found.")
        logger.info("User deleted: id=%d", user_id)

    def assign_roles(self, user_id: int, role_ids: Iterable[int]) -> list[Role]:
        """Replace the user's roles with exactly role_ids."""
        self.get_user(user_id)
        ids = list(role_ids)
        self._require_roles(ids)
        self._store.set_user_roles(user_id, ids)
        logger.info("User %d roles replaced (%d role(s))", user_id, len(set(ids)))
        return self._store.list_roles_for_user(user_id)

    def add_roles(self, user_id: int, role_ids: Iterable[int]) -> list[Role]:
        self.get_user(user_id)
        ids = list(role_ids)
        self._require_roles(ids)
        self._store.add_user_roles(user_id, ids)
        return self._store.list_roles_for_user(user_id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_permissions(self, ids: list[int]) -> None:
        missing = set(ids) - self._store.find_permission_ids(ids)
        if missing:
            raise NotFound(f"Permission(s) not found: {sorted(missing)}")

    def _require_roles(self, ids: list[int]) -> None:
        missing = set(ids) - self._store.find_role_ids(ids)
        if missing:
            raise NotFound(f"Role(s) not found: {sorted(missing)}")
