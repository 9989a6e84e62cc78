"""
api/routes/v1/users.py -- User account management endpoints.

Routes:
  POST   /api/v1/users        -- create user (optionally with role_ids)
  GET    /api/v1/users        -- list users
  GET    /api/v1/users/{id}   -- user detail
  PATCH  /api/v1/users/{id}   -- update profile fields and/or password
  DELETE /api/v1/users/{id}   -- delete user

Changing a password does not end the user's live sessions. Call
POST /api/v1/auth/force-logout/{id} as well when that is wanted.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from api.models import UserCreate, UserResponse, UserUpdate
from auth.admin import RbacAdmin
from auth.dependencies import guard
from auth.gate import requires

# Auth policy:
# - GET    /api/v1/users, /users/{id}: user:list
# - POST   /api/v1/users:              user:create
# - PATCH  /api/v1/users/{id}:         user:update
# - DELETE /api/v1/users/{id}:         user:delete
USER_LIST = requires("user:list")
USER_CREATE = requires("user:create")
USER_UPDATE = requires("user:update")
USER_DELETE = requires("user:delete")

router = APIRouter(prefix="/users")


@router.post("", response_model=UserResponse, status_code=201, dependencies=[Depends(guard(USER_CREATE))])
def create_user(request: Request, body: UserCreate) -> UserResponse:
    """Create an account. 409 if the username is taken, 404 if a role id is unknown."""
    admin: RbacAdmin = request.app.state.rbac_admin
    user = admin.create_user(
        username=body.username,
        password=body.password,
        display_name=body.display_name,
        email=body.email,
        phone=body.phone,
        avatar=body.avatar,
        role_ids=body.role_ids,
    )
    return UserResponse.from_user(user)


@router.get("", response_model=list[UserResponse], dependencies=[Depends(guard(USER_LIST))])
def list_users(request: Request) -> list[UserResponse]:
    admin: RbacAdmin = request.app.state.rbac_admin
    return [UserResponse.from_user(u) for u in admin.list_users()]


@router.get("/{user_id}", response_model=UserResponse, dependencies=[Depends(guard(USER_LIST))])
def get_user(request: Request, user_id: int) -> UserResponse:
    admin: RbacAdmin = request.app.state.rbac_admin
    return UserResponse.from_user(admin.get_user(user_id))


@router.patch("/{user_id}", response_model=UserResponse, dependencies=[Depends(guard(USER_UPDATE))])
def update_user(request: Request, user_id: int, body: UserUpdate) -> UserResponse:
    admin: RbacAdmin = request.app.state.rbac_admin
    user = admin.update_user(
        user_id,
        password=body.password,
        display_name=body.display_name,
        email=body.email,
        phone=body.phone,
        avatar=body.avatar,
    )
    return UserResponse.from_user(user)


@router.delete("/{user_id}", status_code=204, dependencies=[Depends(guard(USER_DELETE))])
def delete_user(request: Request, user_id: int) -> Response:
    admin: RbacAdmin = request.app.state.rbac_admin
    admin.delete_user(user_id)
    return Response(status_code=204)
