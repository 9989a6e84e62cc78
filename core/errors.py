"""
core/errors.py -- Exception taxonomy shared by every OfficeAdmin layer.

Each error carries a machine-readable `code` and a user-facing `message`. The
HTTP layer (api/main.py) maps error classes to status codes; nothing below
api/ knows about HTTP.

Messages are deliberately generic where detail would help an attacker:
  - InvalidCredentials never says which of username/password was wrong.
  - Forbidden never lists the permission codes the caller was missing.

Layer rule: core/ is the kernel. This module imports only the stdlib.
"""

from __future__ import annotations


class AdminError(Exception):
    """Base exception for OfficeAdmin domain failures."""

    code = "error"
    default_message = "An error occurred."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidCredentials(AdminError):
    """Username/password login failed. Identical for unknown user and bad password."""

    code = "bad_credentials"
    default_message = "Invalid username or password."


class Unauthenticated(AdminError):
    """No usable identity is attached to the call."""

    code = "unauthenticated"
    default_message = "Authentication required."


class TokenExpired(Unauthenticated):
    code = "token_expired"
    default_message = "Session expired, please re-authenticate."


class TokenInvalid(Unauthenticated):
    """Bad signature, unparseable structure, or missing/ill-typed claims."""

    code = "token_invalid"
    default_message = "Invalid credentials."


class SessionSuperseded(Unauthenticated):
    """Token is cryptographically valid but its token_version is stale."""

    code = "session_superseded"
    default_message = "Session superseded, please re-authenticate."


class Forbidden(AdminError):
    code = "forbidden"
    default_message = "You do not have permission to access this resource."


class NotFound(AdminError):
    code = "not_found"
    default_message = "Resource not found."


class Conflict(AdminError):
    """Uniqueness violation (role name, permission name/code, username, config key)."""

    code = "conflict"
    default_message = "Resource already exists."


class Unavailable(AdminError):
    """The credential store could not be reached. Retried by the caller, never here."""

    code = "unavailable"
    default_message = "Service temporarily unavailable."
