"""Unit tests for auth/gate.py -- the per-call verify/authorize pipeline.

Covers:
- public policies skip authentication entirely
- missing or malformed Authorization headers are Unauthenticated
- expired / invalid / superseded tokens are rejected with their own subclass
- a deleted user's still-valid token is Unauthenticated
- permission and role policies produce Forbidden when unmet
"""

import pytest
from conftest import ADMIN_PASSWORD, BOB_PASSWORD

from auth.admin import RbacAdmin
from auth.gate import AUTHENTICATED, PUBLIC, Policy, RequestGate, extract_bearer, requires, requires_role
from auth.models import TokenClaims
from auth.rbac import AuthorizationEngine
from auth.session import SessionAuthority
from core.errors import Forbidden, SessionSuperseded, TokenExpired, TokenInvalid, Unauthenticated


@pytest.fixture
def sessions(seeded_store, codec) -> SessionAuthority:
    return SessionAuthority(seeded_store, codec)


@pytest.fixture
def gate(seeded_store, codec, sessions) -> RequestGate:
    return RequestGate(codec, sessions, AuthorizationEngine(seeded_store))


def _bearer(token: str) -> str:
    return f"Bearer {token}"


@pytest.mark.parametrize(
    "header, expected",
    [
        ("Bearer abc.def.ghi", "abc.def.ghi"),
        ("bearer abc", "abc"),
        ("  Bearer   abc  ", "abc"),
        (None, None),
        ("", None),
        ("Bearer", None),
        ("Basic dXNlcjpwYXNz", None),
        ("Bearer a b", None),
    ],
)
def test_extract_bearer(header, expected):
    assert extract_bearer(header) == expected


def test_policy_helpers():
    assert PUBLIC.public
    assert not AUTHENTICATED.public and not AUTHENTICATED.required_permissions
    assert requires("a:b", "c:d").required_permissions == frozenset({"a:b", "c:d"})
    assert requires_role("Manager").required_roles == frozenset({"Manager"})


def test_public_policy_needs_no_token(gate):
    assert gate.check(PUBLIC, None) is None
    assert gate.check(PUBLIC, "Bearer garbage") is None


@pytest.mark.parametrize("header", [None, "", "Token abc", "Bearer"])
def test_missing_or_malformed_header(gate, header):
    with pytest.raises(Unauthenticated):
        gate.check(AUTHENTICATED, header)


def test_valid_token_returns_identity(gate, sessions):
    token = sessions.login("bob", BOB_PASSWORD).access_token
    identity = gate.check(AUTHENTICATED, _bearer(token))
    assert identity.username == "bob"
    assert "user:list" in identity.permission_codes


def test_garbage_token(gate):
    with pytest.raises(TokenInvalid):
        gate.check(AUTHENTICATED, "Bearer not-a-jwt")


def test_expired_token(gate, codec, seeded_store):
    bob = seeded_store.get_by_username("bob")
    token = codec.issue(
        TokenClaims(user_id=bob.id, username="bob", roles=(), token_version=bob.token_version),
        ttl=-5,
    )
    with pytest.raises(TokenExpired):
        gate.check(AUTHENTICATED, _bearer(token))


def test_superseded_by_second_login(gate, sessions):
    first = sessions.login("admin", ADMIN_PASSWORD).access_token
    second = sessions.login("admin", ADMIN_PASSWORD).access_token

    with pytest.raises(SessionSuperseded):
        gate.check(AUTHENTICATED, _bearer(first))
    assert gate.check(AUTHENTICATED, _bearer(second)).username == "admin"


def test_superseded_by_force_logout(gate, sessions, seeded_store):
    token = sessions.login("bob", BOB_PASSWORD).access_token
    sessions.force_logout(seeded_store.get_by_username("bob").id)
    with pytest.raises(SessionSuperseded):
        gate.check(AUTHENTICATED, _bearer(token))


def test_deleted_user_token_is_rejected(gate, sessions, seeded_store):
    token = sessions.login("bob", BOB_PASSWORD).access_token
    RbacAdmin(seeded_store).delete_user(seeded_store.get_by_username("bob").id)
    with pytest.raises(Unauthenticated):
        gate.check(AUTHENTICATED, _bearer(token))


def test_permission_policy(gate, sessions):
    token = sessions.login("bob", BOB_PASSWORD).access_token
    with pytest.raises(Forbidden):
        gate.check(requires("user:delete"), _bearer(token))
    assert gate.check(requires("user:list", "user:delete"), _bearer(token)) is not None


def test_role_policy(gate, sessions):
    token = sessions.login("bob", BOB_PASSWORD).access_token
    with pytest.raises(Forbidden):
        gate.check(requires_role("Administrator"), _bearer(token))
    assert gate.check(requires_role("Employee", "Manager"), _bearer(token)).username == "bob"


def test_combined_policy_requires_both(gate, sessions):
    token = sessions.login("bob", BOB_PASSWORD).access_token
    policy = Policy(required_permissions=frozenset({"user:list"}), required_roles=frozenset({"Manager"}))
    with pytest.raises(Forbidden):
        gate.check(policy, _bearer(token))


def test_verify_and_authorize_directly(gate, sessions):
    token = sessions.login("admin", ADMIN_PASSWORD).access_token
    identity = gate.verify_and_authorize(token, ["config:delete"])
    assert identity.username == "admin"
