"""
siteconfig/store.py -- SQLAlchemy Core persistence for site configuration.

Pattern: Repository + Data Mapper, same as auth/store.py.

Privacy:
  A group is private when its lower-cased name starts with any configured
  prefix ("secret", "private", "credential" by default). Read methods take
  include_private; public routes pass False, permission-gated routes pass
  True. Single-entry reads of a private key with include_private=False raise
  Forbidden rather than NotFound so the front-end can tell the key exists
  but is restricted.

Writes never check privacy -- they are permission-gated at the API layer.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, select
from sqlalchemy.engine import Connection, Engine

from auth.store import make_engine, translate_errors
from core.config import get_settings
from core.errors import Conflict, Forbidden, NotFound
from siteconfig.models import SiteConfig

logger = logging.getLogger("officeadmin.siteconfig")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_site_configs = Table(
    "site_configs",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("key", String(100), nullable=False, unique=True),
    Column("value", Text, nullable=False),
    Column("description", String(255)),
    Column("group", String(50), nullable=False, server_default="general"),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_UPDATABLE = {"value", "description", "group"}

DEFAULT_SITE_CONFIGS = [
    SiteConfig(key="siteTitle", value="Office Management System", description="Site title"),
    SiteConfig(key="siteDescription", value="Enterprise office management platform", description="Site description"),
    SiteConfig(key="siteLogo", value="/logo.png", description="Logo URL", group="appearance"),
    SiteConfig(key="siteFavicon", value="/favicon.ico", description="Favicon URL", group="appearance"),
    SiteConfig(key="copyright", value="All rights reserved.", description="Copyright notice"),
    SiteConfig(key="icpNumber", value="", description="ICP registration number"),
]


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class SiteConfigStore:
    """Repository for SiteConfig entries.

    Usage:
        store = SiteConfigStore("sqlite:///:memory:")
        store.set_value("siteTitle", "Acme Office")
        store.as_map()  # {"siteTitle": "Acme Office"}
    """

    def __init__(self, db_url: str | None = None, private_prefixes: Iterable[str] | None = None) -> None:
        settings = get_settings()
        self.engine: Engine = make_engine(db_url or settings.database_url)
        prefixes = private_prefixes if private_prefixes is not None else settings.private_config_prefixes
        self._private_prefixes = tuple(p.lower() for p in prefixes)
        with translate_errors():
            _metadata.create_all(self.engine)

    @contextmanager
    def _connect(self) -> Iterator[Connection]:
        with translate_errors(), self.engine.connect() as conn:
            yield conn

    @contextmanager
    def _begin(self) -> Iterator[Connection]:
        with translate_errors(), self.engine.begin() as conn:
            yield conn

    def is_private_group(self, group: str) -> bool:
        return group.lower().startswith(self._private_prefixes)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_configs(self, group: str | None = None, include_private: bool = False) -> list[SiteConfig]:
        """Return entries ordered by key, optionally restricted to one group."""
        if group and not include_private and self.is_private_group(group):
            return []
        query = _site_configs.select().order_by(_site_configs.c.key)
        if group:
            query = query.where(_site_configs.c.group == group)
        with self._connect() as conn:
            rows = conn.execute(query).fetchall()
        configs = [_row_to_config(r) for r in rows]
        if include_private:
            return configs
        return [c for c in configs if not self.is_private_group(c.group)]

    def as_map(self, group: str | None = None, include_private: bool = False) -> dict[str, str]:
        return {c.key: c.value for c in self.list_configs(group, include_private)}

    def groups(self, include_private: bool = False) -> list[str]:
        with self._connect() as conn:
            rows = conn.execute(
                select(_site_configs.c.group).distinct().order_by(_site_configs.c.group)
            ).fetchall()
        names = [r[0] for r in rows]
        if include_private:
            return names
        return [g for g in names if not self.is_private_group(g)]

    def get_by_key(self, key: str, include_private: bool = False) -> SiteConfig:
        with self._connect() as conn:
            row = conn.execute(_site_configs.select().where(_site_configs.c.key == key)).fetchone()
        if row is None:
            raise NotFound(f'Config "{key}" not found.')
        return self._visible(_row_to_config(row), include_private)

    def get_by_id(self, config_id: int, include_private: bool = False) -> SiteConfig:
        with self._connect() as conn:
            row = conn.execute(_site_configs.select().where(_site_configs.c.id == config_id)).fetchone()
        if row is None:
            raise NotFound(f"Config {config_id} not found.")
        return self._visible(_row_to_config(row), include_private)

    def get_value(self, key: str, default: str = "") -> str:
        with self._connect() as conn:
            value = conn.execute(select(_site_configs.c.value).where(_site_configs.c.key == key)).scalar()
        return value if value is not None else default

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(self, config: SiteConfig) -> SiteConfig:
        """Insert a new entry. Raises Conflict if the key exists."""
        with self._connect() as conn:
            exists = conn.execute(select(_site_configs.c.id).where(_site_configs.c.key == config.key)).scalar()
        if exists is not None:
            raise Conflict(f'Config "{config.key}" already exists.')
        now = _now_iso()
        with self._begin() as conn:
            result = conn.execute(
                _site_configs.insert().values(
                    key=config.key,
                    value=config.value,
                    description=config.description,
                    group=config.group or "general",
                    created_at=now,
                    updated_at=now,
                )
            )
        logger.info("Config created: %s", config.key)
        return self.get_by_id(result.inserted_primary_key[0], include_private=True)

    def update(self, config_id: int, **fields) -> SiteConfig:
        self.get_by_id(config_id, include_private=True)
        self._apply(_site_configs.c.id == config_id, fields)
        return self.get_by_id(config_id, include_private=True)

    def update_by_key(self, key: str, **fields) -> SiteConfig:
        self.get_by_key(key, include_private=True)
        self._apply(_site_configs.c.key == key, fields)
        return self.get_by_key(key, include_private=True)

    def set_value(self, key: str, value: str, description: str | None = None, group: str | None = None) -> SiteConfig:
        """Upsert by key. Existing entries only get their value replaced."""
        with self._begin() as conn:
            _upsert(conn, key, value, description, group)
        return self.get_by_key(key, include_private=True)

    def batch_set(self, items: Iterable[tuple[str, str]]) -> list[SiteConfig]:
        """Upsert many (key, value) pairs in one transaction."""
        keys = []
        with self._begin() as conn:
            for key, value in items:
                _upsert(conn, key, value, None, None)
                keys.append(key)
        logger.info("Config batch update: %d key(s)", len(keys))
        return [self.get_by_key(k, include_private=True) for k in keys]

    def delete(self, config_id: int) -> None:
        self.get_by_id(config_id, include_private=True)
        with self._begin() as conn:
            conn.execute(_site_configs.delete().where(_site_configs.c.id == config_id))

    def delete_by_key(self, key: str) -> None:
        self.get_by_key(key, include_private=True)
        with self._begin() as conn:
            conn.execute(_site_configs.delete().where(_site_configs.c.key == key))

    def seed_defaults(self) -> int:
        """Insert DEFAULT_SITE_CONFIGS entries that are missing. Existing values are kept."""
        created = 0
        with self._begin() as conn:
            existing = {r[0] for r in conn.execute(select(_site_configs.c.key)).fetchall()}
            now = _now_iso()
            for c in DEFAULT_SITE_CONFIGS:
                if c.key in existing:
                    continue
                conn.execute(
                    _site_configs.insert().values(
                        key=c.key, value=c.value, description=c.description, group=c.group, created_at=now, updated_at=now
                    )
                )
                created += 1
        return created

    def close(self) -> None:
        self.engine.dispose()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _visible(self, config: SiteConfig, include_private: bool) -> SiteConfig:
        if not include_private and self.is_private_group(config.group):
            raise Forbidden("You do not have access to this configuration entry.")
        return config

    def _apply(self, condition, fields: dict) -> None:
        unknown = set(fields) - _UPDATABLE
        if unknown:
            raise ValueError(f"Unknown config fields: {unknown!r}")
        updates = {k: v for k, v in fields.items() if v is not None}
        if not updates:
            return
        updates["updated_at"] = _now_iso()
        with self._begin() as conn:
            conn.execute(_site_configs.update().where(condition).values(**updates))


def _upsert(conn: Connection, key: str, value: str, description: str | None, group: str | None) -> None:
    now = _now_iso()
    result = conn.execute(
        _site_configs.update().where(_site_configs.c.key == key).values(value=value, updated_at=now)
    )
    if result.rowcount == 0:
        conn.execute(
            _site_configs.insert().values(
                key=key,
                value=value,
                description=description,
                group=group or "general",
                created_at=now,
                updated_at=now,
            )
        )


def _row_to_config(row) -> SiteConfig:
    return SiteConfig(
        id=row.id,
        key=row.key,
        value=row.value,
        description=row.description,
        group=row.group,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
