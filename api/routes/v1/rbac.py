"""
api/routes/v1/rbac.py -- Role, permission and user-role administration endpoints.

Routes:
  POST   /api/v1/rbac/roles                                  -- create role
  GET    /api/v1/rbac/roles                                  -- list roles with permissions
  GET    /api/v1/rbac/roles/{id}                             -- role with permissions and holders
  PATCH  /api/v1/rbac/roles/{id}                             -- rename / redescribe / replace permissions
  DELETE /api/v1/rbac/roles/{id}?force=                      -- delete role
  POST   /api/v1/rbac/roles/{id}/permissions                 -- replace or add permissions
  POST   /api/v1/rbac/permissions                            -- create permission
  POST   /api/v1/rbac/permissions/batch                      -- create many, skipping duplicates
  GET    /api/v1/rbac/permissions                            -- list permissions with role counts
  GET    /api/v1/rbac/permissions/{id}                       -- permission with holding roles
  PATCH  /api/v1/rbac/permissions/{id}                       -- rename / recode
  DELETE /api/v1/rbac/permissions/{id}                       -- delete permission
  POST   /api/v1/rbac/users/{user_id}/roles                  -- replace or add roles
  GET    /api/v1/rbac/users/{user_id}/permissions            -- roles and effective permissions
  GET    /api/v1/rbac/users/{user_id}/check-permission/{code}
  GET    /api/v1/rbac/users/{user_id}/check-role/{name}

Role and permission changes take effect on the affected users' next request;
identities are resolved fresh on every call.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from api.models import (
    BatchCreateResponse,
    CheckResponse,
    PermissionAssign,
    PermissionBatchCreate,
    PermissionCreate,
    PermissionResponse,
    PermissionUpdate,
    RoleAssign,
    RoleCreate,
    RoleRefResponse,
    RoleResponse,
    RoleUpdate,
    UserAccessResponse,
)
from auth.admin import RbacAdmin
from auth.dependencies import guard
from auth.gate import requires
from auth.rbac import AuthorizationEngine

# Auth policy:
# - roles:        list/get -> role:list, create -> role:create, update -> role:update,
#                 delete -> role:delete, permissions -> role:assign-permissions
# - permissions:  list/get -> permission:list, create/batch -> permission:create,
#                 update -> permission:update, delete -> permission:delete
# - users/{id}/roles:        user:update
# - users/{id}/permissions:  user:list
# - users/{id}/check-*:      user:list
ROLE_LIST = requires("role:list")
ROLE_CREATE = requires("role:create")
ROLE_UPDATE = requires("role:update")
ROLE_DELETE = requires("role:delete")
ROLE_ASSIGN_PERMISSIONS = requires("role:assign-permissions")
PERMISSION_LIST = requires("permission:list")
PERMISSION_CREATE = requires("permission:create")
PERMISSION_UPDATE = requires("permission:update")
PERMISSION_DELETE = requires("permission:delete")
USER_ROLE_ASSIGN = requires("user:update")
USER_ACCESS_READ = requires("user:list")

router = APIRouter(prefix="/rbac")


def _admin(request: Request) -> RbacAdmin:
    return request.app.state.rbac_admin


def _engine(request: Request) -> AuthorizationEngine:
    return request.app.state.authz


# ---------------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------------


@router.post("/roles", response_model=RoleResponse, status_code=201, dependencies=[Depends(guard(ROLE_CREATE))])
def create_role(request: Request, body: RoleCreate) -> RoleResponse:
    role = _admin(request).create_role(body.name, body.description, body.permission_ids)
    return RoleResponse.from_role(role)


@router.get("/roles", response_model=list[RoleResponse], dependencies=[Depends(guard(ROLE_LIST))])
def list_roles(request: Request) -> list[RoleResponse]:
    return [RoleResponse.from_role(r) for r in _admin(request).list_roles()]


@router.get("/roles/{role_id}", response_model=RoleResponse, dependencies=[Depends(guard(ROLE_LIST))])
def get_role(request: Request, role_id: int) -> RoleResponse:
    return RoleResponse.from_role(_admin(request).get_role(role_id))


@router.patch("/roles/{role_id}", response_model=RoleResponse, dependencies=[Depends(guard(ROLE_UPDATE))])
def update_role(request: Request, role_id: int, body: RoleUpdate) -> RoleResponse:
    role = _admin(request).update_role(role_id, body.name, body.description, body.permission_ids)
    return RoleResponse.from_role(role)


@router.delete("/roles/{role_id}", status_code=204, dependencies=[Depends(guard(ROLE_DELETE))])
def delete_role(request: Request, role_id: int, force: bool = False) -> Response:
    """Delete a role. 409 while users still hold it unless ?force=true."""
    _admin(request).delete_role(role_id, force=force)
    return Response(status_code=204)


@router.post(
    "/roles/{role_id}/permissions",
    response_model=RoleResponse,
    dependencies=[Depends(guard(ROLE_ASSIGN_PERMISSIONS))],
)
def assign_permissions(request: Request, role_id: int, body: PermissionAssign) -> RoleResponse:
    admin = _admin(request)
    if body.mode == "add":
        role = admin.add_permissions(role_id, body.permission_ids)
    else:
        role = admin.assign_permissions(role_id, body.permission_ids)
    return RoleResponse.from_role(role)


# ---------------------------------------------------------------------------
# Permissions
# ---------------------------------------------------------------------------


@router.post(
    "/permissions",
    response_model=PermissionResponse,
    status_code=201,
    dependencies=[Depends(guard(PERMISSION_CREATE))],
)
def create_permission(request: Request, body: PermissionCreate) -> PermissionResponse:
    return PermissionResponse.from_permission(_admin(request).create_permission(body.name, body.code))


@router.post(
    "/permissions/batch",
    response_model=BatchCreateResponse,
    status_code=201,
    dependencies=[Depends(guard(PERMISSION_CREATE))],
)
def create_permissions_batch(request: Request, body: PermissionBatchCreate) -> BatchCreateResponse:
    created = _admin(request).create_permissions_batch((p.name, p.code) for p in body.permissions)
    return BatchCreateResponse(created=created)


@router.get("/permissions", response_model=list[PermissionResponse], dependencies=[Depends(guard(PERMISSION_LIST))])
def list_permissions(request: Request) -> list[PermissionResponse]:
    return [PermissionResponse.from_permission(p) for p in _admin(request).list_permissions()]


@router.get(
    "/permissions/{permission_id}",
    response_model=PermissionResponse,
    dependencies=[Depends(guard(PERMISSION_LIST))],
)
def get_permission(request: Request, permission_id: int) -> PermissionResponse:
    return PermissionResponse.from_permission(_admin(request).get_permission(permission_id))


@router.patch(
    "/permissions/{permission_id}",
    response_model=PermissionResponse,
    dependencies=[Depends(guard(PERMISSION_UPDATE))],
)
def update_permission(request: Request, permission_id: int, body: PermissionUpdate) -> PermissionResponse:
    permission = _admin(request).update_permission(permission_id, body.name, body.code)
    return PermissionResponse.from_permission(permission)


@router.delete("/permissions/{permission_id}", status_code=204, dependencies=[Depends(guard(PERMISSION_DELETE))])
def delete_permission(request: Request, permission_id: int) -> Response:
    _admin(request).delete_permission(permission_id)
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# User <-> Role
# ---------------------------------------------------------------------------


@router.post(
    "/users/{user_id}/roles",
    response_model=list[RoleRefResponse],
    dependencies=[Depends(guard(USER_ROLE_ASSIGN))],
)
def assign_roles(request: Request, user_id: int, body: RoleAssign) -> list[RoleRefResponse]:
    admin = _admin(request)
    if body.mode == "add":
        roles = admin.add_roles(user_id, body.role_ids)
    else:
        roles = admin.assign_roles(user_id, body.role_ids)
    return [RoleRefResponse(id=r.id, name=r.name, description=r.description) for r in roles]


@router.get(
    "/users/{user_id}/permissions",
    response_model=UserAccessResponse,
    dependencies=[Depends(guard(USER_ACCESS_READ))],
)
def user_permissions(request: Request, user_id: int) -> UserAccessResponse:
    return UserAccessResponse.from_identity(_engine(request).resolve_user(user_id))


@router.get(
    "/users/{user_id}/check-permission/{code}",
    response_model=CheckResponse,
    dependencies=[Depends(guard(USER_ACCESS_READ))],
)
def check_permission(request: Request, user_id: int, code: str) -> CheckResponse:
    return CheckResponse(user_id=user_id, allowed=_engine(request).has_permission(user_id, code))


@router.get(
    "/users/{user_id}/check-role/{name}",
    response_model=CheckResponse,
    dependencies=[Depends(guard(USER_ACCESS_READ))],
)
def check_role(request: Request, user_id: int, name: str) -> CheckResponse:
    return CheckResponse(user_id=user_id, allowed=_engine(request).has_role(user_id, name))
