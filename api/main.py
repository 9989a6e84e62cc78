"""
api/main.py -- FastAPI application entry point for OfficeAdmin.

Exposes session management, RBAC administration, user management and site
configuration over HTTP.

Run with:  uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. CORSMiddleware -- adds CORS headers for the configured browser origins
  2. log_requests   -- one log line per request with status and latency

Lifespan builds the object graph once and hangs it on app.state:
  store -> codec -> sessions -> authz -> gate -> rbac_admin, plus site_config.
Route handlers and the guard() dependency only ever read from app.state.

Error mapping: every core.errors.AdminError is turned into the ErrorResponse
envelope with the status code from _STATUS_BY_ERROR. 401 responses carry
WWW-Authenticate: Bearer.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.config import router as config_router
from api.routes.v1.rbac import router as rbac_router
from api.routes.v1.users import router as users_router
from auth.admin import RbacAdmin
from auth.gate import RequestGate
from auth.rbac import AuthorizationEngine
from auth.session import SessionAuthority
from auth.store import CredentialStore
from auth.tokens import TokenCodec
from core.config import get_settings
from core.errors import (
    AdminError,
    Conflict,
    Forbidden,
    InvalidCredentials,
    NotFound,
    Unauthenticated,
    Unavailable,
)
from siteconfig.store import SiteConfigStore

VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=get_settings().log_level,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("officeadmin.api")

# Checked in order; subclasses must come before their bases.
_STATUS_BY_ERROR: list[tuple[type[AdminError], int]] = [
    (InvalidCredentials, 401),
    (Unauthenticated, 401),
    (Forbidden, 403),
    (NotFound, 404),
    (Conflict, 409),
    (Unavailable, 503),
]


def status_for(exc: AdminError) -> int:
    for error_type, status in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status
    return 400


# ---------------------------------------------------------------------------
# Lifespan -- modern startup / shutdown pattern (replaces @app.on_event)
# ---------------------------------------------------------------------------


def wire_services(app: FastAPI, store: CredentialStore, site_config: SiteConfigStore) -> None:
    """Build the service graph on top of the given stores and attach it to app.state.

    Shared by the real lifespan and the test fixtures so both run the same wiring.
    """
    settings = get_settings()
    codec = TokenCodec(
        settings.secret_key,
        algorithm=settings.token_algorithm,
        default_ttl=settings.token_expire_seconds,
    )
    sessions = SessionAuthority(store, codec)
    authz = AuthorizationEngine(store)
    app.state.store = store
    app.state.site_config = site_config
    app.state.codec = codec
    app.state.sessions = sessions
    app.state.authz = authz
    app.state.gate = RequestGate(codec, sessions, authz)
    app.state.rbac_admin = RbacAdmin(store)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime.

    Everything before yield runs on startup; everything after yield runs on
    shutdown. Stores are created first because every service depends on them.
    """
    logger.info("OfficeAdmin API starting up")
    store = CredentialStore()
    site_config = SiteConfigStore()
    wire_services(app, store, site_config)
    if not store.has_users():
        logger.warning("No users exist yet -- run `python main.py seed` to create the admin account")
    logger.info("Stores initialized")

    yield

    site_config.close()
    store.close()
    logger.info("OfficeAdmin API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="OfficeAdmin API",
    description="Authentication, role-based access control and site configuration for the office back-end.",
    version=VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
# ---------------------------------------------------------------------------

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_methods=["GET", "POST", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)


# ---------------------------------------------------------------------------
# Request logging middleware
#
# Every request passes through this coroutine before reaching any route
# handler. Latency is measured around call_next. Headers are never logged so
# bearer tokens stay out of the logs.
# ---------------------------------------------------------------------------


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(rbac_router, prefix="/api/v1", tags=["RBAC"])
app.include_router(users_router, prefix="/api/v1", tags=["Users"])
app.include_router(config_router, prefix="/api/v1", tags=["Site Config"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


@app.exception_handler(AdminError)
async def admin_error_handler(request: Request, exc: AdminError) -> JSONResponse:
    """Map a domain error to its status code and the standard envelope."""
    status = status_for(exc)
    headers: dict[str, str] = {}
    if status == 401:
        headers["WWW-Authenticate"] = "Bearer"
    if isinstance(exc, InvalidCredentials):
        headers["Cache-Control"] = "no-store"
    if status >= 500:
        logger.error("%s on %s %s", exc.code, request.method, request.url.path)
    return JSONResponse(
        status_code=status,
        content=ErrorResponse(error=ErrorDetail(code=exc.code, message=exc.message)).model_dump(exclude_none=True),
        headers=headers,
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with structured error when request body or query params fail validation."""
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(
            error=ErrorDetail(
                code="validation_error",
                message="Request validation failed.",
                detail=str(exc.errors()),
            )
        ).model_dump(),
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Return a structured error for FastAPI/Starlette HTTP exceptions (404 routes, 405 methods)."""
    if isinstance(exc.detail, dict):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
        )
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=ErrorDetail(
                code=f"http_{exc.status_code}",
                message=str(exc.detail),
            )
        ).model_dump(exclude_none=True),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception goes to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error=ErrorDetail(
                code="internal_error",
                message="An unexpected error occurred.",
            )
        ).model_dump(exclude_none=True),
    )


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py (not in a router) so it is always reachable
# regardless of router registration state.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", include_in_schema=True, tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return API liveness, version and whether the database answers."""
    database = "ok"
    try:
        request.app.state.store.has_users()
    except Unavailable:
        database = "error"
    return HealthResponse(version=VERSION, database=database)
