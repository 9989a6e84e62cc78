"""
auth/store.py -- SQLAlchemy Core persistence layer for users, roles and permissions.

Pattern: Repository + Data Mapper.
CredentialStore is the repository; _row_to_user / _row_to_role / _row_to_permission
are the mappers. Services and routes never touch SQL directly.

Schema:
  users             -- accounts, including the token_version session counter
  roles             -- UNIQUE(name)
  permissions       -- UNIQUE(name), UNIQUE(code)
  user_roles        -- join table, PK(user_id, role_id)
  role_permissions  -- join table, PK(role_id, permission_id)

  Join rows are removed explicitly inside the same transaction as the parent
  delete. SQLite only honours ON DELETE CASCADE with PRAGMA foreign_keys=ON,
  and doing it in code keeps the behaviour identical on every backend.

Concurrency:
  increment_token_version() is a single UPDATE ... SET token_version =
  token_version + 1, followed by a read of the new value inside the same
  transaction. The row stays write-locked until commit, so two concurrent
  logins can never both observe the same version.

Errors:
  Every operation runs inside _connect() / _begin(), which re-raise
  IntegrityError as core.errors.Conflict and connection-level failures
  (OperationalError, InterfaceError) as core.errors.Unavailable.

Security:
  All queries use bound parameters. No f-strings in SQL.

Many-to-many updates expose only "replace all" (set_*) and "add" (add_*)
operations. Diffing is never done by callers.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    event,
    func,
    select,
)
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError

from auth.models import Permission, Role, User
from core.config import get_settings
from core.errors import Conflict, Unavailable

logger = logging.getLogger("officeadmin.store")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(255), nullable=False, unique=True),
    Column("hashed_password", Text, nullable=False),
    Column("display_name", String(255), nullable=False, server_default=""),
    Column("email", String(255)),
    Column("phone", String(32)),
    Column("avatar", String(500)),
    Column("token_version", Integer, nullable=False, server_default="0"),
    Column("last_login_at", String(32)),  # ISO 8601
    Column("last_login_origin", String(64)),
    Column("created_at", String(32), nullable=False),
)

_roles = Table(
    "roles",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(100), nullable=False, unique=True),
    Column("description", Text),
    Column("created_at", String(32), nullable=False),
)

_permissions = Table(
    "permissions",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(100), nullable=False, unique=True),
    Column("code", String(100), nullable=False, unique=True),
    Column("created_at", String(32), nullable=False),
)

_user_roles = Table(
    "user_roles",
    _metadata,
    Column("user_id", Integer, ForeignKey("users.id"), primary_key=True),
    Column("role_id", Integer, ForeignKey("roles.id"), primary_key=True),
)

_role_permissions = Table(
    "role_permissions",
    _metadata,
    Column("role_id", Integer, ForeignKey("roles.id"), primary_key=True),
    Column("permission_id", Integer, ForeignKey("permissions.id"), primary_key=True),
)

# Fields an administrator may change through update_user(). token_version and
# last-login metadata have dedicated methods; id/username/created_at are immutable.
_USER_UPDATABLE = {"display_name", "email", "phone", "avatar", "hashed_password"}


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def make_engine(db_url: str) -> Engine:
    """Create an engine with the SQLite tweaks every OfficeAdmin store needs."""
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args, pool_pre_ping=not db_url.startswith("sqlite"))
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_wal_mode)
    return engine


@contextmanager
def translate_errors() -> Iterator[None]:
    """Re-raise driver errors as domain errors. Never swallows anything."""
    try:
        yield
    except IntegrityError as exc:
        raise Conflict("The record conflicts with an existing entry.") from exc
    except (OperationalError, InterfaceError) as exc:
        logger.error("Credential store unavailable: %s", exc.__class__.__name__)
        raise Unavailable() from exc


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class CredentialStore:
    """Repository for User, Role and Permission entities and their relations.

    Usage:
        store = CredentialStore("sqlite:///:memory:")
        uid = store.create_user(User(username="admin", hashed_password=hash_password("secret")))
        new_version = store.increment_token_version(uid)
        store.close()
    """

    def __init__(self, db_url: str | None = None) -> None:
        self.engine: Engine = make_engine(db_url or get_settings().database_url)
        with translate_errors():
            _metadata.create_all(self.engine)

    @contextmanager
    def _connect(self) -> Iterator[Connection]:
        with translate_errors(), self.engine.connect() as conn:
            yield conn

    @contextmanager
    def _begin(self) -> Iterator[Connection]:
        """Connection inside a transaction that commits on success, rolls back on error."""
        with translate_errors(), self.engine.begin() as conn:
            yield conn

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def has_users(self) -> bool:
        with self._connect() as conn:
            result = conn.execute(select(func.count()).select_from(_users)).scalar()
        return (result or 0) > 0

    def create_user(self, user: User, role_ids: Iterable[int] = ()) -> int:
        """Insert a new user (and optional role links) and return its ID.

        Raises Conflict if the username already exists.
        """
        with self._begin() as conn:
            result = conn.execute(
                _users.insert().values(
                    username=user.username,
                    hashed_password=user.hashed_password,
                    display_name=user.display_name,
                    email=user.email,
                    phone=user.phone,
                    avatar=user.avatar,
                    token_version=user.token_version,
                    created_at=_now_iso(),
                )
            )
            user_id = result.inserted_primary_key[0]
            _insert_links(conn, _user_roles, "user_id", user_id, "role_id", role_ids)
        return user_id

    def get_by_username(self, username: str) -> User | None:
        """Look up a user by exact username (case-sensitive). Returns None if not found."""
        with self._connect() as conn:
            row = conn.execute(_users.select().where(_users.c.username == username)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: int) -> User | None:
        with self._connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def list_users(self) -> list[User]:
        with self._connect() as conn:
            rows = conn.execute(_users.select().order_by(_users.c.username)).fetchall()
        return [_row_to_user(r) for r in rows]

    def update_user(self, user_id: int, **fields) -> bool:
        """Update mutable profile fields on an existing user.

        Accepted fields: display_name, email, phone, avatar, hashed_password.
        Unknown fields raise ValueError rather than being silently ignored.

        Returns True if a row was updated, False if user_id was not found.
        """
        unknown = set(fields) - _USER_UPDATABLE
        if unknown:
            raise ValueError(f"Unknown user fields: {unknown!r}")
        if not fields:
            return self.get_by_id(user_id) is not None
        with self._begin() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(**fields))
        return result.rowcount > 0

    def delete_user(self, user_id: int) -> bool:
        """Delete a user and its role links. Returns False if not found."""
        with self._begin() as conn:
            conn.execute(_user_roles.delete().where(_user_roles.c.user_id == user_id))
            result = conn.execute(_users.delete().where(_users.c.id == user_id))
        return result.rowcount > 0

    def get_token_version(self, user_id: int) -> int | None:
        """Return the stored token_version, or None if the user does not exist."""
        with self._connect() as conn:
            return conn.execute(select(_users.c.token_version).where(_users.c.id == user_id)).scalar()

    def increment_token_version(self, user_id: int) -> int | None:
        """Atomically bump token_version by 1 and return the new value.

        Returns None if the user does not exist. See the module docstring for
        why the read-back inside the same transaction is race-free.
        """
        with self._begin() as conn:
            result = conn.execute(
                _users.update()
                .where(_users.c.id == user_id)
                .values(token_version=_users.c.token_version + 1)
            )
            if result.rowcount == 0:
                return None
            return conn.execute(select(_users.c.token_version).where(_users.c.id == user_id)).scalar()

    def update_login_metadata(self, user_id: int, timestamp: datetime, origin: str | None) -> bool:
        """Record when and from where the user last logged in."""
        with self._begin() as conn:
            result = conn.execute(
                _users.update()
                .where(_users.c.id == user_id)
                .values(last_login_at=timestamp.isoformat(), last_login_origin=origin)
            )
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    def create_role(self, role: Role, permission_ids: Iterable[int] = ()) -> int:
        """Insert a role (and optional permission links). Raises Conflict on duplicate name."""
        with self._begin() as conn:
            result = conn.execute(
                _roles.insert().values(name=role.name, description=role.description, created_at=_now_iso())
            )
            role_id = result.inserted_primary_key[0]
            _insert_links(conn, _role_permissions, "role_id", role_id, "permission_id", permission_ids)
        return role_id

    def get_role(self, role_id: int) -> Role | None:
        """Return the role with its permissions and holders, or None."""
        with self._connect() as conn:
            row = conn.execute(_roles.select().where(_roles.c.id == role_id)).fetchone()
            if row is None:
                return None
            role = _row_to_role(row)
            role.permissions = _permissions_for_roles(conn, [role_id])
            users = conn.execute(
                _users.select()
                .join(_user_roles, _user_roles.c.user_id == _users.c.id)
                .where(_user_roles.c.role_id == role_id)
                .order_by(_users.c.username)
            ).fetchall()
        role.users = [_row_to_user(u) for u in users]
        role.user_count = len(role.users)
        return role

    def get_role_by_name(self, name: str) -> Role | None:
        with self._connect() as conn:
            row = conn.execute(_roles.select().where(_roles.c.name == name)).fetchone()
        return _row_to_role(row) if row is not None else None

    def list_roles(self) -> list[Role]:
        """Return all roles ordered by name, with permissions and user counts."""
        with self._connect() as conn:
            rows = conn.execute(_roles.select().order_by(_roles.c.name)).fetchall()
            links = conn.execute(
                select(_role_permissions.c.role_id, _permissions)
                .join(_permissions, _permissions.c.id == _role_permissions.c.permission_id)
                .order_by(_permissions.c.code)
            ).fetchall()
            counts = dict(
                conn.execute(
                    select(_user_roles.c.role_id, func.count()).group_by(_user_roles.c.role_id)
                ).fetchall()
            )
        by_role: dict[int, list[Permission]] = {}
        for link in links:
            by_role.setdefault(link.role_id, []).append(_row_to_permission(link))
        roles = []
        for row in rows:
            role = _row_to_role(row)
            role.permissions = by_role.get(role.id, [])
            role.user_count = counts.get(role.id, 0)
            roles.append(role)
        return roles

    def find_role_ids(self, role_ids: Iterable[int]) -> set[int]:
        """Return the subset of role_ids that exist."""
        ids = set(role_ids)
        if not ids:
            return set()
        with self._connect() as conn:
            rows = conn.execute(select(_roles.c.id).where(_roles.c.id.in_(ids))).fetchall()
        return {r[0] for r in rows}

    def update_role(self, role_id: int, **fields) -> bool:
        """Update name and/or description. Raises Conflict on duplicate name."""
        unknown = set(fields) - {"name", "description"}
        if unknown:
            raise ValueError(f"Unknown role fields: {unknown!r}")
        if not fields:
            return self.role_exists(role_id)
        with self._begin() as conn:
            result = conn.execute(_roles.update().where(_roles.c.id == role_id).values(**fields))
        return result.rowcount > 0

    def role_exists(self, role_id: int) -> bool:
        return bool(self.find_role_ids([role_id]))

    def count_role_users(self, role_id: int) -> int:
        with self._connect() as conn:
            result = conn.execute(
                select(func.count()).select_from(_user_roles).where(_user_roles.c.role_id == role_id)
            ).scalar()
        return result or 0

    def delete_role(self, role_id: int) -> bool:
        """Delete a role together with all of its join rows.

        Callers decide whether deleting a role that is still held by users is
        allowed (see RbacAdmin.delete_role); the store just does it.
        """
        with self._begin() as conn:
            conn.execute(_role_permissions.delete().where(_role_permissions.c.role_id == role_id))
            conn.execute(_user_roles.delete().where(_user_roles.c.role_id == role_id))
            result = conn.execute(_roles.delete().where(_roles.c.id == role_id))
        return result.rowcount > 0

    def set_role_permissions(self, role_id: int, permission_ids: Iterable[int]) -> None:
        """Replace the role's permission set with exactly permission_ids."""
        with self._begin() as conn:
            conn.execute(_role_permissions.delete().where(_role_permissions.c.role_id == role_id))
            _insert_links(conn, _role_permissions, "role_id", role_id, "permission_id", permission_ids)

    def add_role_permissions(self, role_id: int, permission_ids: Iterable[int]) -> None:
        """Add permission_ids to the role, keeping those it already has."""
        with self._begin() as conn:
            held = {
                r[0]
                for r in conn.execute(
                    select(_role_permissions.c.permission_id).where(_role_permissions.c.role_id == role_id)
                ).fetchall()
            }
            new_ids = [pid for pid in permission_ids if pid not in held]
            _insert_links(conn, _role_permissions, "role_id", role_id, "permission_id", new_ids)

    # ------------------------------------------------------------------
    # Permissions
    # ------------------------------------------------------------------

    def create_permission(self, permission: Permission) -> int:
        """Insert a permission. Raises Conflict on duplicate name or code."""
        with self._begin() as conn:
            result = conn.execute(
                _permissions.insert().values(name=permission.name, code=permission.code, created_at=_now_iso())
            )
        return result.inserted_primary_key[0]

    def create_permissions(self, permissions: Iterable[Permission]) -> int:
        """Insert many permissions, skipping any whose name or code already exists.

        Duplicates inside the batch itself are skipped too. Returns the number
        of rows actually inserted.
        """
        created = 0
        with self._begin() as conn:
            existing = conn.execute(select(_permissions.c.name, _permissions.c.code)).fetchall()
            names = {r.name for r in existing}
            codes = {r.code for r in existing}
            now = _now_iso()
            for p in permissions:
                if p.name in names or p.code in codes:
                    continue
                conn.execute(_permissions.insert().values(name=p.name, code=p.code, created_at=now))
                names.add(p.name)
                codes.add(p.code)
                created += 1
        return created

    def get_permission(self, permission_id: int) -> Permission | None:
        """Return the permission with the roles that hold it, or None."""
        with self._connect() as conn:
            row = conn.execute(_permissions.select().where(_permissions.c.id == permission_id)).fetchone()
            if row is None:
                return None
            permission = _row_to_permission(row)
            roles = conn.execute(
                _roles.select()
                .join(_role_permissions, _role_permissions.c.role_id == _roles.c.id)
                .where(_role_permissions.c.permission_id == permission_id)
                .order_by(_roles.c.name)
            ).fetchall()
        permission.roles = [_row_to_role(r) for r in roles]
        permission.role_count = len(permission.roles)
        return permission

    def get_permission_by_code(self, code: str) -> Permission | None:
        with self._connect() as conn:
            row = conn.execute(_permissions.select().where(_permissions.c.code == code)).fetchone()
        return _row_to_permission(row) if row is not None else None

    def find_conflicting_permission(
        self, name: str | None, code: str | None, exclude_id: int | None = None
    ) -> Permission | None:
        """Return a permission (other than exclude_id) sharing name or code, if any."""
        clauses = []
        if name:
            clauses.append(_permissions.c.name == name)
        if code:
            clauses.append(_permissions.c.code == code)
        if not clauses:
            return None
        condition = clauses[0] if len(clauses) == 1 else (clauses[0] | clauses[1])
        query = _permissions.select().where(condition)
        if exclude_id is not None:
            query = query.where(_permissions.c.id != exclude_id)
        with self._connect() as conn:
            row = conn.execute(query).fetchone()
        return _row_to_permission(row) if row is not None else None

    def list_permissions(self) -> list[Permission]:
        """Return all permissions ordered by code, with role counts."""
        with self._connect() as conn:
            rows = conn.execute(_permissions.select().order_by(_permissions.c.code)).fetchall()
            counts = dict(
                conn.execute(
                    select(_role_permissions.c.permission_id, func.count()).group_by(
                        _role_permissions.c.permission_id
                    )
                ).fetchall()
            )
        permissions = []
        for row in rows:
            permission = _row_to_permission(row)
            permission.role_count = counts.get(permission.id, 0)
            permissions.append(permission)
        return permissions

    def find_permission_ids(self, permission_ids: Iterable[int]) -> set[int]:
        """Return the subset of permission_ids that exist."""
        ids = set(permission_ids)
        if not ids:
            return set()
        with self._connect() as conn:
            rows = conn.execute(select(_permissions.c.id).where(_permissions.c.id.in_(ids))).fetchall()
        return {r[0] for r in rows}

    def update_permission(self, permission_id: int, **fields) -> bool:
        unknown = set(fields) - {"name", "code"}
        if unknown:
            raise ValueError(f"Unknown permission fields: {unknown!r}")
        if not fields:
            return bool(self.find_permission_ids([permission_id]))
        with self._begin() as conn:
            result = conn.execute(_permissions.update().where(_permissions.c.id == permission_id).values(**fields))
        return result.rowcount > 0

    def delete_permission(self, permission_id: int) -> bool:
        """Delete a permission and detach it from every role that held it."""
        with self._begin() as conn:
            conn.execute(_role_permissions.delete().where(_role_permissions.c.permission_id == permission_id))
            result = conn.execute(_permissions.delete().where(_permissions.c.id == permission_id))
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # User <-> Role
    # ------------------------------------------------------------------

    def set_user_roles(self, user_id: int, role_ids: Iterable[int]) -> None:
        """Replace the user's role set with exactly role_ids."""
        with self._begin() as conn:
            conn.execute(_user_roles.delete().where(_user_roles.c.user_id == user_id))
            _insert_links(conn, _user_roles, "user_id", user_id, "role_id", role_ids)

    def add_user_roles(self, user_id: int, role_ids: Iterable[int]) -> None:
        with self._begin() as conn:
            held = {
                r[0]
                for r in conn.execute(
                    select(_user_roles.c.role_id).where(_user_roles.c.user_id == user_id)
                ).fetchall()
            }
            new_ids = [rid for rid in role_ids if rid not in held]
            _insert_links(conn, _user_roles, "user_id", user_id, "role_id", new_ids)

    def list_roles_for_user(self, user_id: int) -> list[Role]:
        """Return the roles currently assigned to user_id, ordered by id."""
        with self._connect() as conn:
            rows = conn.execute(
                _roles.select()
                .join(_user_roles, _user_roles.c.role_id == _roles.c.id)
                .where(_user_roles.c.user_id == user_id)
                .order_by(_roles.c.id)
            ).fetchall()
        return [_row_to_role(r) for r in rows]

    def list_permissions_for_roles(self, role_ids: Iterable[int]) -> list[Permission]:
        """Return the distinct permissions held by any of role_ids, ordered by id."""
        ids = list(set(role_ids))
        if not ids:
            return []
        with self._connect() as conn:
            return _permissions_for_roles(conn, ids)

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Query helpers
# ---------------------------------------------------------------------------


def _insert_links(conn: Connection, table: Table, owner_col: str, owner_id: int, target_col: str, target_ids) -> None:
    rows = [{owner_col: owner_id, target_col: tid} for tid in dict.fromkeys(target_ids)]
    if rows:
        conn.execute(table.insert(), rows)


def _permissions_for_roles(conn: Connection, role_ids: list[int]) -> list[Permission]:
    rows = conn.execute(
        _permissions.select()
        .where(
            _permissions.c.id.in_(
                select(_role_permissions.c.permission_id).where(_role_permissions.c.role_id.in_(role_ids))
            )
        )
        .order_by(_permissions.c.id)
    ).fetchall()
    return [_row_to_permission(r) for r in rows]


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        username=row.username,
        hashed_password=row.hashed_password,
        display_name=row.display_name or "",
        email=row.email,
        phone=row.phone,
        avatar=row.avatar,
        token_version=row.token_version,
        last_login_at=row.last_login_at,
        last_login_origin=row.last_login_origin,
        created_at=row.created_at,
    )


def _row_to_role(row) -> Role:
    return Role(
        id=row.id,
        name=row.name,
        description=row.description,
        created_at=row.created_at,
    )


def _row_to_permission(row) -> Permission:
    return Permission(
        id=row.id,
        name=row.name,
        code=row.code,
        created_at=row.created_at,
    )
