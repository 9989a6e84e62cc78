"""
API request and response models for OfficeAdmin REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
siteconfig/models.py, which own the internal domain representation. Route
handlers map between the two, usually through the from_* factory methods
colocated with each response model.

Separation of concerns: domain dataclasses = domain truth; api/ models = API contract.
"""

from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, Field, StringConstraints, field_validator

from auth.models import Identity, LoginInfo, LoginResult, Permission, Role, User
from siteconfig.models import SiteConfig

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

PERMISSION_CODE_PATTERN = r"^[a-z][a-z0-9_-]*(:[a-z][a-z0-9_-]*)+$"
PHONE_PATTERN = r"^\+?[0-9][0-9 -]{5,19}$"

_PositiveId = Annotated[int, Field(gt=0)]

# Password fields stay plain str: login compares the exact bytes the user typed.
_Trimmed = Annotated[str, StringConstraints(strip_whitespace=True)]


def _dedupe(values: list) -> list:
    """Drop duplicates while keeping first-seen order."""
    return list(dict.fromkeys(values))


# ---------------------------------------------------------------------------
# Common
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
    database: str = "ok"


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login.

    Passwords are capped at 128 characters; bcrypt only reads 72 bytes and an
    unbounded field would let clients make the server hash megabytes.
    """

    username: _Trimmed = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=128)


class RoleRefResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    description: Optional[str] = None


class PermissionRefResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    code: str


class LoginUserResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    username: str
    display_name: str
    roles: list[RoleRefResponse]
    last_login_at: Optional[str] = None


class LoginResponse(BaseModel):
    """Response body for a successful login. The token is sent as a Bearer header afterwards."""

    model_config = ConfigDict(frozen=True)

    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: LoginUserResponse

    @classmethod
    def from_result(cls, result: LoginResult) -> "LoginResponse":
        return cls(
            access_token=result.access_token,
            expires_in=result.expires_in,
            user=LoginUserResponse(
                id=result.user.id,
                username=result.user.username,
                display_name=result.user.display_name,
                roles=[RoleRefResponse(id=r.id, name=r.name, description=r.description) for r in result.user.roles],
                last_login_at=result.user.last_login_at,
            ),
        )


class IdentityResponse(BaseModel):
    """The caller's resolved roles and effective permissions (GET /auth/profile)."""

    model_config = ConfigDict(frozen=True)

    id: int
    username: str
    display_name: str
    roles: list[RoleRefResponse]
    permissions: list[PermissionRefResponse]

    @classmethod
    def from_identity(cls, identity: Identity) -> "IdentityResponse":
        return cls(
            id=identity.user_id,
            username=identity.username,
            display_name=identity.display_name,
            roles=[RoleRefResponse(id=r.id, name=r.name, description=r.description) for r in identity.roles],
            permissions=[PermissionRefResponse(id=p.id, name=p.name, code=p.code) for p in identity.permissions],
        )


class LoginInfoResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    username: str
    display_name: str
    last_login_at: Optional[str] = None
    last_login_origin: Optional[str] = None

    @classmethod
    def from_info(cls, info: LoginInfo) -> "LoginInfoResponse":
        return cls(
            id=info.id,
            username=info.username,
            display_name=info.display_name,
            last_login_at=info.last_login_at,
            last_login_origin=info.last_login_origin,
        )


class ForceLogoutResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: int
    token_version: int


# ---------------------------------------------------------------------------
# Permissions
# ---------------------------------------------------------------------------


class PermissionCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=100)
    code: str = Field(min_length=3, max_length=100, pattern=PERMISSION_CODE_PATTERN)


class PermissionUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    code: Optional[str] = Field(default=None, min_length=3, max_length=100, pattern=PERMISSION_CODE_PATTERN)


class PermissionBatchCreate(BaseModel):
    """Request body for POST /api/v1/rbac/permissions/batch. Existing names/codes are skipped."""

    permissions: list[PermissionCreate] = Field(min_length=1, max_length=200)


class BatchCreateResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    created: int


class RoleSummaryResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    description: Optional[str] = None


class PermissionResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    code: str
    created_at: Optional[str] = None
    role_count: Optional[int] = None
    roles: list[RoleSummaryResponse] = Field(default_factory=list)

    @classmethod
    def from_permission(cls, permission: Permission) -> "PermissionResponse":
        return cls(
            id=permission.id,
            name=permission.name,
            code=permission.code,
            created_at=permission.created_at,
            role_count=permission.role_count,
            roles=[RoleSummaryResponse(id=r.id, name=r.name, description=r.description) for r in permission.roles],
        )


# ---------------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------------


class RoleCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    permission_ids: list[_PositiveId] = Field(default_factory=list, max_length=500)

    @field_validator("permission_ids")
    @classmethod
    def dedupe_ids(cls, values: list[int]) -> list[int]:
        return _dedupe(values)


class RoleUpdate(BaseModel):
    """PATCH body. permission_ids, when present, replaces the whole permission set."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    permission_ids: Optional[list[_PositiveId]] = Field(default=None, max_length=500)


class PermissionAssign(BaseModel):
    """Request body for POST /api/v1/rbac/roles/{id}/permissions.

    mode="replace" sets exactly permission_ids; mode="add" keeps existing ones.
    """

    permission_ids: list[_PositiveId] = Field(max_length=500)
    mode: str = Field(default="replace", pattern=r"^(replace|add)$")


class UserSummaryResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    username: str
    display_name: str


class RoleResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    description: Optional[str] = None
    created_at: Optional[str] = None
    permissions: list[PermissionRefResponse] = Field(default_factory=list)
    user_count: Optional[int] = None
    users: list[UserSummaryResponse] = Field(default_factory=list)

    @classmethod
    def from_role(cls, role: Role) -> "RoleResponse":
        return cls(
            id=role.id,
            name=role.name,
            description=role.description,
            created_at=role.created_at,
            permissions=[PermissionRefResponse(id=p.id, name=p.name, code=p.code) for p in role.permissions],
            user_count=role.user_count,
            users=[UserSummaryResponse(id=u.id, username=u.username, display_name=u.display_name) for u in role.users],
        )


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class UserCreate(BaseModel):
    username: _Trimmed = Field(min_length=1, max_length=255)
    password: str = Field(min_length=8, max_length=128)
    display_name: _Trimmed = Field(default="", max_length=255)
    email: Optional[_Trimmed] = Field(default=None, max_length=255, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    phone: Optional[_Trimmed] = Field(default=None, pattern=PHONE_PATTERN)
    avatar: Optional[_Trimmed] = Field(default=None, max_length=500)
    role_ids: list[_PositiveId] = Field(default_factory=list, max_length=50)


class UserUpdate(BaseModel):
    """PATCH body. Omitted fields are left unchanged. Username is immutable."""

    password: Optional[str] = Field(default=None, min_length=8, max_length=128)
    display_name: Optional[_Trimmed] = Field(default=None, max_length=255)
    email: Optional[_Trimmed] = Field(default=None, max_length=255, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    phone: Optional[_Trimmed] = Field(default=None, pattern=PHONE_PATTERN)
    avatar: Optional[_Trimmed] = Field(default=None, max_length=500)


class RoleAssign(BaseModel):
    """Request body for POST /api/v1/rbac/users/{user_id}/roles."""

    role_ids: list[_PositiveId] = Field(max_length=50)
    mode: str = Field(default="replace", pattern=r"^(replace|add)$")


class UserResponse(BaseModel):
    """A user account. The password hash and token_version are never serialized."""

    model_config = ConfigDict(frozen=True)

    id: int
    username: str
    display_name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    avatar: Optional[str] = None
    last_login_at: Optional[str] = None
    created_at: Optional[str] = None

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            username=user.username,
            display_name=user.display_name,
            email=user.email,
            phone=user.phone,
            avatar=user.avatar,
            last_login_at=user.last_login_at,
            created_at=user.created_at,
        )


class UserAccessResponse(BaseModel):
    """A user's roles and effective permissions (GET /rbac/users/{id}/permissions)."""

    model_config = ConfigDict(frozen=True)

    user_id: int
    roles: list[RoleRefResponse]
    permissions: list[PermissionRefResponse]

    @classmethod
    def from_identity(cls, identity: Identity) -> "UserAccessResponse":
        return cls(
            user_id=identity.user_id,
            roles=[RoleRefResponse(id=r.id, name=r.name, description=r.description) for r in identity.roles],
            permissions=[PermissionRefResponse(id=p.id, name=p.name, code=p.code) for p in identity.permissions],
        )


class CheckResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: int
    allowed: bool


# ---------------------------------------------------------------------------
# Site configuration
# ---------------------------------------------------------------------------


class ConfigCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    key: str = Field(min_length=1, max_length=100)
    value: str = Field(max_length=10000)
    description: Optional[str] = Field(default=None, max_length=255)
    group: str = Field(default="general", min_length=1, max_length=50)


class ConfigUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    value: Optional[str] = Field(default=None, max_length=10000)
    description: Optional[str] = Field(default=None, max_length=255)
    group: Optional[str] = Field(default=None, min_length=1, max_length=50)


class ConfigItem(BaseModel):
    key: str = Field(min_length=1, max_length=100)
    value: str = Field(max_length=10000)


class ConfigBatchUpdate(BaseModel):
    """Request body for POST /api/v1/config/batch. Missing keys are created in the general group."""

    configs: list[ConfigItem] = Field(min_length=1, max_length=200)


class ConfigResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    key: str
    value: str
    description: Optional[str] = None
    group: str
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_config(cls, config: SiteConfig) -> "ConfigResponse":
        return cls(
            id=config.id,
            key=config.key,
            value=config.value,
            description=config.description,
            group=config.group,
            created_at=config.created_at,
            updated_at=config.updated_at,
        )
