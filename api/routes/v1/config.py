"""
api/routes/v1/config.py -- Site configuration endpoints.

Routes:
  GET    /api/v1/config?group=        -- public entries as a list
  GET    /api/v1/config/map?group=    -- public entries as {key: value}
  GET    /api/v1/config/groups        -- public group names
  GET    /api/v1/config/all?group=    -- every entry, private groups included
  GET    /api/v1/config/key/{key}     -- one public entry by key
  GET    /api/v1/config/{id}          -- one public entry by id
  POST   /api/v1/config               -- create entry
  POST   /api/v1/config/batch         -- upsert many {key, value} pairs
  PATCH  /api/v1/config/{id}          -- update entry by id
  PATCH  /api/v1/config/key/{key}     -- update entry by key
  DELETE /api/v1/config/{id}          -- delete entry by id
  DELETE /api/v1/config/key/{key}     -- delete entry by key

Public reads never return entries from private groups. A public single-entry
read of a private key answers 403 rather than 404.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Request, Response

from api.models import ConfigBatchUpdate, ConfigCreate, ConfigResponse, ConfigUpdate
from auth.dependencies import guard
from auth.gate import PUBLIC, requires
from siteconfig.models import SiteConfig
from siteconfig.store import SiteConfigStore

# Auth policy:
# - GET    list/map/groups/key/{key}/{id}: public -- the front-end reads these before login
# - GET    /api/v1/config/all:             config:list (includes private groups)
# - POST   /api/v1/config:                 config:create
# - POST   /api/v1/config/batch:           config:update
# - PATCH  /api/v1/config/{id}, key/{key}: config:update
# - DELETE /api/v1/config/{id}, key/{key}: config:delete
CONFIG_PUBLIC = PUBLIC
CONFIG_LIST = requires("config:list")
CONFIG_CREATE = requires("config:create")
CONFIG_UPDATE = requires("config:update")
CONFIG_DELETE = requires("config:delete")

router = APIRouter(prefix="/config")


def _store(request: Request) -> SiteConfigStore:
    return request.app.state.site_config


# ---------------------------------------------------------------------------
# Public reads
# ---------------------------------------------------------------------------


@router.get("", response_model=list[ConfigResponse], dependencies=[Depends(guard(CONFIG_PUBLIC))])
def list_configs(request: Request, group: Optional[str] = None) -> list[ConfigResponse]:
    return [ConfigResponse.from_config(c) for c in _store(request).list_configs(group)]


@router.get("/map", response_model=dict[str, str], dependencies=[Depends(guard(CONFIG_PUBLIC))])
def config_map(request: Request, group: Optional[str] = None) -> dict[str, str]:
    return _store(request).as_map(group)


@router.get("/groups", response_model=list[str], dependencies=[Depends(guard(CONFIG_PUBLIC))])
def config_groups(request: Request) -> list[str]:
    return _store(request).groups()


@router.get("/all", response_model=list[ConfigResponse], dependencies=[Depends(guard(CONFIG_LIST))])
def list_all_configs(request: Request, group: Optional[str] = None) -> list[ConfigResponse]:
    return [ConfigResponse.from_config(c) for c in _store(request).list_configs(group, include_private=True)]


@router.get("/key/{key}", response_model=ConfigResponse, dependencies=[Depends(guard(CONFIG_PUBLIC))])
def get_config_by_key(request: Request, key: str) -> ConfigResponse:
    return ConfigResponse.from_config(_store(request).get_by_key(key))


@router.get("/{config_id}", response_model=ConfigResponse, dependencies=[Depends(guard(CONFIG_PUBLIC))])
def get_config(request: Request, config_id: int) -> ConfigResponse:
    return ConfigResponse.from_config(_store(request).get_by_id(config_id))


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------


@router.post("", response_model=ConfigResponse, status_code=201, dependencies=[Depends(guard(CONFIG_CREATE))])
def create_config(request: Request, body: ConfigCreate) -> ConfigResponse:
    config = _store(request).create(
        SiteConfig(key=body.key, value=body.value, description=body.description, group=body.group)
    )
    return ConfigResponse.from_config(config)


@router.post("/batch", response_model=list[ConfigResponse], dependencies=[Depends(guard(CONFIG_UPDATE))])
def batch_update(request: Request, body: ConfigBatchUpdate) -> list[ConfigResponse]:
    configs = _store(request).batch_set((item.key, item.value) for item in body.configs)
    return [ConfigResponse.from_config(c) for c in configs]


@router.patch("/key/{key}", response_model=ConfigResponse, dependencies=[Depends(guard(CONFIG_UPDATE))])
def update_config_by_key(request: Request, key: str, body: ConfigUpdate) -> ConfigResponse:
    config = _store(request).update_by_key(key, **body.model_dump(exclude_none=True))
    return ConfigResponse.from_config(config)


@router.patch("/{config_id}", response_model=ConfigResponse, dependencies=[Depends(guard(CONFIG_UPDATE))])
def update_config(request: Request, config_id: int, body: ConfigUpdate) -> ConfigResponse:
    config = _store(request).update(config_id, **body.model_dump(exclude_none=True))
    return ConfigResponse.from_config(config)


@router.delete("/key/{key}", status_code=204, dependencies=[Depends(guard(CONFIG_DELETE))])
def delete_config_by_key(request: Request, key: str) -> Response:
    _store(request).delete_by_key(key)
    return Response(status_code=204)


@router.delete("/{config_id}", status_code=204, dependencies=[Depends(guard(CONFIG_DELETE))])
def delete_config(request: Request, config_id: int) -> Response:
    _store(request).delete(config_id)
    return Response(status_code=204)
