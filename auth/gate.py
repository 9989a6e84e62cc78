"""
auth/gate.py -- Per-call authentication and authorization pipeline.

Every endpoint carries an explicit Policy. RequestGate.check() walks it:

  1. public policy                     -> allow, no identity
  2. no/garbled bearer header          -> Unauthenticated
  3. TokenCodec.verify                 -> TokenExpired | TokenInvalid
  4. token_version no longer current   -> SessionSuperseded
  5. resolve identity (user vanished)  -> Unauthenticated
  6. required permissions/roles, any-of -> Forbidden
  7. return the Identity

Step 4 is what makes a second login elsewhere reject the first session's
token even though it is correctly signed and unexpired.

Layer rule: no imports from api/ or siteconfig/. Framework-free -- the
FastAPI adapter lives in auth/dependencies.py.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from auth.models import Identity
from auth.rbac import AuthorizationEngine
from auth.session import SessionAuthority
from auth.tokens import TokenCodec
from core.errors import Forbidden, NotFound, SessionSuperseded, Unauthenticated

logger = logging.getLogger("officeadmin.auth")


@dataclass(frozen=True)
class Policy:
    """Access requirements of one operation.

    required_permissions and required_roles are each any-of. When both are
    set the caller must satisfy both lists.
    """

    public: bool = False
    required_permissions: frozenset[str] = frozenset()
    required_roles: frozenset[str] = frozenset()


PUBLIC = Policy(public=True)
AUTHENTICATED = Policy()


def requires(*codes: str) -> Policy:
    """Policy admitting callers holding any one of codes."""
    return Policy(required_permissions=frozenset(codes))


def requires_role(*names: str) -> Policy:
    """Policy admitting callers holding any one of the named roles."""
    return Policy(required_roles=frozenset(names))


def extract_bearer(authorization: str | None) -> str | None:
    """Return the token from an "Authorization: Bearer <token>" header value, else None."""
    if not authorization:
        return None
    scheme, _, token = authorization.strip().partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token or " " in token:
        return None
    return token


class RequestGate:
    """Composes TokenCodec, SessionAuthority and AuthorizationEngine per request."""

    def __init__(self, codec: TokenCodec, sessions: SessionAuthority, engine: AuthorizationEngine) -> None:
        self._codec = codec
        self._sessions = sessions
        self._engine = engine

    def check(self, policy: Policy, authorization: str | None) -> Identity | None:
        """Run the full pipeline for a raw Authorization header value.

        Returns None for public policies, the caller's Identity otherwise.
        """
        if policy.public:
            return None
        token = extract_bearer(authorization)
        if token is None:
            raise Unauthenticated()
        return self.verify_and_authorize(token, policy.required_permissions, policy.required_roles)

    def verify_and_authorize(
        self,
        token: str,
        required_codes: Iterable[str] = (),
        required_roles: Iterable[str] = (),
    ) -> Identity:
        claims = self._codec.verify(token)

        if not self._sessions.validate_version(claims.user_id, claims.token_version):
            logger.info("Rejected superseded session for user_id=%d", claims.user_id)
            raise SessionSuperseded()

        try:
            identity = self._engine.resolve_user(claims.user_id)
        except NotFound as exc:
            raise Unauthenticated() from exc

        decision = self._engine.check(identity, required_codes, required_roles)
        if not decision.allowed:
            logger.info("Forbidden: user_id=%d lacks required permission", identity.user_id)
            raise Forbidden()
        return identity
