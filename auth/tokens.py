"""
auth/tokens.py -- Token codec (JWT) and password hashing.

Security design decisions:
  JWT: python-jose with HS256 (configurable HS384/HS512). Tokens carry the
       user id (as the string "sub" claim, which JOSE requires to be a string),
       username, a snapshot of role names, and the token_version current at
       issue time. The codec is stateless: it only proves that the server
       signed the claims and that they have not expired. Whether the session
       is still live is decided by SessionAuthority.validate_version().

       verify() distinguishes two failure modes because the user sees
       different messages for them:
         - TokenExpired: signature fine, exp in the past.
         - TokenInvalid: bad signature, garbage input, missing/ill-typed claims.

  Passwords: bcrypt directly (no passlib wrapper). checkpw() compares in
       constant time. _DUMMY_HASH lets the login path run bcrypt even when the
       username does not exist, so response time does not reveal which
       usernames are registered.

Layer rule: no imports from api/ or siteconfig/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

import bcrypt
from jose import ExpiredSignatureError, JWTError, jwt

from auth.models import TokenClaims
from core.errors import TokenExpired, TokenInvalid

logger = logging.getLogger("officeadmin.auth")

# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt only looks at the first 72 bytes. The API caps passwords at 128
    characters (Pydantic field) and we truncate explicitly so bcrypt 4.x does
    not raise on long multibyte input.
    """
    return bcrypt.hashpw(plain.encode("utf-8")[:72], bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8")[:72], hashed.encode("utf-8"))
    except (ValueError, TypeError):
        return False


# Timing equalization dummy hash.
# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones.
DUMMY_HASH: str = hash_password("officeadmin_timing_dummy")


# ---------------------------------------------------------------------------
# Token codec
# ---------------------------------------------------------------------------


class TokenCodec:
    """Sign and verify compact JWTs carrying TokenClaims.

    Usage:
        codec = TokenCodec(secret_key="...32+ chars...", default_ttl=86400)
        token = codec.issue(TokenClaims(user_id=1, username="admin", roles=("Administrator",), token_version=3))
        claims = codec.verify(token)
    """

    def __init__(self, secret_key: str, algorithm: str = "HS256", default_ttl: int = 86400) -> None:
        self._secret_key = secret_key
        self._algorithm = algorithm
        self.default_ttl = default_ttl

    def issue(self, claims: TokenClaims, ttl: int | None = None) -> str:
        """Encode and sign claims. ttl is in seconds; None uses default_ttl."""
        now = datetime.now(timezone.utc)
        duration = ttl if ttl is not None else self.default_ttl
        payload = {
            "sub": str(claims.user_id),
            "username": claims.username,
            "roles": list(claims.roles),
            "token_version": claims.token_version,
            "iat": now,
            "exp": now + timedelta(seconds=duration),
        }
        return jwt.encode(payload, self._secret_key, algorithm=self._algorithm)

    def verify(self, token: str) -> TokenClaims:
        """Check signature and expiry and return the claims.

        Raises TokenExpired or TokenInvalid. Never returns partial claims.
        """
        try:
            payload = jwt.decode(
                token,
                self._secret_key,
                algorithms=[self._algorithm],
                options={"require_exp": True, "require_sub": True},
            )
        except ExpiredSignatureError as exc:
            raise TokenExpired() from exc
        except JWTError as exc:
            raise TokenInvalid() from exc

        try:
            roles = payload.get("roles", [])
            if not isinstance(roles, list) or not all(isinstance(r, str) for r in roles):
                raise TypeError("roles claim must be a list of strings")
            version = payload["token_version"]
            # bool is an int subclass; a JSON true must not pass as version 1
            if not isinstance(version, int) or isinstance(version, bool):
                raise TypeError("token_version claim must be an integer")
            username = payload["username"]
            if not isinstance(username, str):
                raise TypeError("username claim must be a string")
            return TokenClaims(
                user_id=int(payload["sub"]),
                username=username,
                roles=tuple(roles),
                token_version=version,
                expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
            )
        except (KeyError, TypeError, ValueError) as exc:
            logger.debug("Rejected token with malformed claims: %s", exc)
            raise TokenInvalid() from exc
