"""
api/routes/v1/auth.py -- Session REST endpoints.

Routes:
  POST /api/v1/auth/login                   -- password login; returns a bearer token
  POST /api/v1/auth/logout                  -- ends every session of the caller
  GET  /api/v1/auth/profile                 -- caller's roles and effective permissions
  GET  /api/v1/auth/login-info              -- caller's last login time and origin
  POST /api/v1/auth/force-logout/{user_id}  -- ends every session of another user

Security:
  Login timing equalization lives in SessionAuthority.login(). Do NOT inline
  get_by_username() + verify_password() here.
  Cache-Control: no-store on login responses, success and failure alike.
  The client origin recorded at login is the first X-Forwarded-For entry when
  present, else the socket peer. Deploy behind a proxy that overwrites the header.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from api.models import (
    ForceLogoutResponse,
    IdentityResponse,
    LoginInfoResponse,
    LoginRequest,
    LoginResponse,
    MessageResponse,
)
from auth.dependencies import guard
from auth.gate import AUTHENTICATED, PUBLIC, requires
from auth.models import Identity
from auth.session import SessionAuthority

# Auth policy:
# - POST /api/v1/auth/login:                  public -- login endpoint must be unauthenticated
# - POST /api/v1/auth/logout:                 requires auth -- revokes the caller's own sessions
# - GET  /api/v1/auth/profile:                requires auth
# - GET  /api/v1/auth/login-info:             requires auth
# - POST /api/v1/auth/force-logout/{user_id}: requires user:force-logout
LOGIN_POLICY = PUBLIC
SELF_POLICY = AUTHENTICATED
FORCE_LOGOUT_POLICY = requires("user:force-logout")

router = APIRouter()


def client_origin(request: Request) -> str | None:
    forwarded = request.headers.get("X-Forwarded-For", "")
    first = forwarded.split(",")[0].strip()
    if first:
        return first
    return request.client.host if request.client else None


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/login", response_model=LoginResponse, dependencies=[Depends(guard(LOGIN_POLICY))])
def login(request: Request, response: Response, body: LoginRequest) -> LoginResponse:
    """Authenticate with username and password and start a new session.

    Any session the user already had elsewhere stops working immediately.
    Wrong username and wrong password produce the same 401 "bad_credentials".
    """
    sessions: SessionAuthority = request.app.state.sessions
    result = sessions.login(body.username, body.password, client_origin(request))
    response.headers["Cache-Control"] = "no-store"
    return LoginResponse.from_result(result)


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/logout", response_model=MessageResponse)
def logout(request: Request, identity: Identity = Depends(guard(SELF_POLICY))) -> MessageResponse:
    """Invalidate every token of the caller, including the one used for this call."""
    sessions: SessionAuthority = request.app.state.sessions
    sessions.force_logout(identity.user_id)
    return MessageResponse(message="Logged out.")


@router.get("/auth/profile", response_model=IdentityResponse)
def profile(identity: Identity = Depends(guard(SELF_POLICY))) -> IdentityResponse:
    return IdentityResponse.from_identity(identity)


@router.get("/auth/login-info", response_model=LoginInfoResponse)
def login_info(request: Request, identity: Identity = Depends(guard(SELF_POLICY))) -> LoginInfoResponse:
    sessions: SessionAuthority = request.app.state.sessions
    return LoginInfoResponse.from_info(sessions.get_login_info(identity.user_id))


@router.post("/auth/force-logout/{user_id}", response_model=ForceLogoutResponse)
def force_logout(
    request: Request,
    user_id: int,
    identity: Identity = Depends(guard(FORCE_LOGOUT_POLICY)),
) -> ForceLogoutResponse:
    """Invalidate every live session of user_id. 404 if the user does not exist."""
    sessions: SessionAuthority = request.app.state.sessions
    version = sessions.force_logout(user_id)
    return ForceLogoutResponse(user_id=user_id, token_version=version)
