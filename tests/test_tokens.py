"""Unit tests for auth/tokens.py -- password hashing and the JWT codec.

Covers:
- hash_password / verify_password round trip, wrong password, garbage hash
- issue() then verify() returns the same claims
- expired, tampered, wrong-key, garbage and ill-typed tokens are rejected
  with the right error subclass
"""

from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt

from auth.models import TokenClaims
from auth.tokens import DUMMY_HASH, TokenCodec, hash_password, verify_password
from core.errors import TokenExpired, TokenInvalid, Unauthenticated

SECRET = "test-secret-key-that-is-at-least-32-chars"

CLAIMS = TokenClaims(user_id=7, username="admin", roles=("Administrator",), token_version=3)


# ---------------------------------------------------------------------------
# Passwords
# ---------------------------------------------------------------------------


def test_hash_and_verify_password():
    hashed = hash_password("correct horse")
    assert hashed != "correct horse"
    assert verify_password("correct horse", hashed)
    assert not verify_password("wrong horse", hashed)


def test_verify_password_rejects_malformed_hash():
    assert verify_password("anything", "not-a-bcrypt-hash") is False


def test_dummy_hash_never_matches_real_passwords():
    assert not verify_password("admin", DUMMY_HASH)


# ---------------------------------------------------------------------------
# Codec
# ---------------------------------------------------------------------------


def test_issue_then_verify_returns_claims(codec):
    claims = codec.verify(codec.issue(CLAIMS))
    assert claims.user_id == 7
    assert claims.username == "admin"
    assert claims.roles == ("Administrator",)
    assert claims.token_version == 3
    assert claims.expires_at > datetime.now(timezone.utc)


def test_token_is_compact_jws(codec):
    assert codec.issue(CLAIMS).count(".") == 2


def test_expired_token_raises_token_expired(codec):
    token = codec.issue(CLAIMS, ttl=-10)
    with pytest.raises(TokenExpired):
        codec.verify(token)


def test_wrong_key_raises_token_invalid(codec):
    other = TokenCodec("another-secret-key-that-is-32-chars-long")
    with pytest.raises(TokenInvalid):
        codec.verify(other.issue(CLAIMS))


def test_tampered_token_raises_token_invalid(codec):
    header, payload, signature = codec.issue(CLAIMS).split(".")
    flipped = "A" if signature[0] != "A" else "B"
    with pytest.raises(TokenInvalid):
        codec.verify(f"{header}.{payload}.{flipped}{signature[1:]}")


@pytest.mark.parametrize("garbage", ["", "not-a-token", "a.b.c", "...."])
def test_garbage_raises_token_invalid(codec, garbage):
    with pytest.raises(TokenInvalid):
        codec.verify(garbage)


def test_token_errors_are_unauthenticated(codec):
    """Both failure kinds are Unauthenticated so callers can catch one type."""
    assert issubclass(TokenExpired, Unauthenticated)
    assert issubclass(TokenInvalid, Unauthenticated)


def _signed(payload: dict) -> str:
    return jwt.encode(payload, SECRET, algorithm="HS256")


def _exp() -> datetime:
    return datetime.now(timezone.utc) + timedelta(minutes=5)


@pytest.mark.parametrize(
    "payload",
    [
        # missing token_version
        {"sub": "7", "username": "admin", "roles": []},
        # token_version of the wrong type
        {"sub": "7", "username": "admin", "roles": [], "token_version": "3"},
        {"sub": "7", "username": "admin", "roles": [], "token_version": True},
        # roles not a list of strings
        {"sub": "7", "username": "admin", "roles": "Administrator", "token_version": 1},
        # non-numeric subject
        {"sub": "admin", "username": "admin", "roles": [], "token_version": 1},
        # missing username
        {"sub": "7", "roles": [], "token_version": 1},
    ],
)
def test_ill_typed_claims_raise_token_invalid(codec, payload):
    with pytest.raises(TokenInvalid):
        codec.verify(_signed({**payload, "exp": _exp()}))


def test_token_without_exp_is_rejected(codec):
    with pytest.raises(TokenInvalid):
        codec.verify(_signed({"sub": "7", "username": "admin", "roles": [], "token_version": 1}))
