"""
auth/session.py -- Login, logout and session liveness.

Single-session model:
  Every user row carries token_version. Login bumps it and signs the new value
  into the token; every authenticated request compares the token's value with
  the stored one. A second login elsewhere therefore invalidates every token
  minted before it, without the server tracking tokens at all. Forced logout
  is the same bump with no token issued.

  token_version only ever goes up. There is no terminal state.

Layer rule: no imports from api/ or siteconfig/.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from auth.models import LoginInfo, LoginResult, RoleRef, TokenClaims, UserSummary
from auth.store import CredentialStore
from auth.tokens import DUMMY_HASH, TokenCodec, verify_password
from core.errors import InvalidCredentials, NotFound

logger = logging.getLogger("officeadmin.auth")


class SessionAuthority:
    """Issues tokens and owns the per-user token_version counter."""

    def __init__(self, store: CredentialStore, codec: TokenCodec) -> None:
        self._store = store
        self._codec = codec

    def login(self, username: str, password: str, client_origin: str | None = None) -> LoginResult:
        """Authenticate and start a new session, ending any previous one.

        Unknown username and wrong password raise the same InvalidCredentials
        and both run exactly one bcrypt comparison.
        """
        user = self._store.get_by_username(username)
        if user is None:
            verify_password(password, DUMMY_HASH)
            logger.info("Login failed: bad credentials")
            raise InvalidCredentials()
        if not verify_password(password, user.hashed_password):
            logger.info("Login failed: bad credentials")
            raise InvalidCredentials()

        new_version = self._store.increment_token_version(user.id)
        if new_version is None:
            # Deleted between lookup and bump.
            raise InvalidCredentials()
        now = datetime.now(timezone.utc)
        self._store.update_login_metadata(user.id, now, client_origin)

        roles = self._store.list_roles_for_user(user.id)
        claims = TokenClaims(
            user_id=user.id,
            username=user.username,
            roles=tuple(r.name for r in roles),
            token_version=new_version,
        )
        token = self._codec.issue(claims)
        logger.info("Login succeeded for user_id=%d (token_version=%d)", user.id, new_version)

        return LoginResult(
            access_token=token,
            expires_in=self._codec.default_ttl,
            user=UserSummary(
                id=user.id,
                username=user.username,
                display_name=user.display_name,
                roles=tuple(RoleRef(id=r.id, name=r.name, description=r.description) for r in roles),
                last_login_at=now.isoformat(),
            ),
        )

    def validate_version(self, user_id: int, presented_version: int) -> bool:
        """True iff the user exists and its stored token_version equals presented_version."""
        stored = self._store.get_token_version(user_id)
        return stored is not None and stored == presented_version

    def force_logout(self, user_id: int) -> int:
        """Invalidate every live session of user_id. Returns the new token_version.

        Serves both "log me out" and an administrator kicking another user out.
        """
        new_version = self._store.increment_token_version(user_id)
        if new_version is None:
            raise NotFound(f"User {user_id} not found.")
        logger.info("Sessions revoked for user_id=%d (token_version=%d)", user_id, new_version)
        return new_version

    def get_login_info(self, user_id: int) -> LoginInfo:
        user = self._store.get_by_id(user_id)
        if user is None:
            raise NotFound(f"User {user_id} not found.")
        return LoginInfo(
            id=user.id,
            username=user.username,
            display_name=user.display_name,
            last_login_at=user.last_login_at,
            last_login_origin=user.last_login_origin,
        )
