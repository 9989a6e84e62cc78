"""Unit tests for auth/session.py -- login, single-session enforcement, forced logout.

Covers:
- login bumps token_version by exactly one and signs it into the token
- a second login supersedes the first token; force_logout supersedes the second
- wrong password and unknown username fail identically
- login metadata (time, origin) is recorded and readable via get_login_info
- force_logout / get_login_info on unknown users raise NotFound
- concurrent logins against a file database each bump the version exactly once
"""

from concurrent.futures import ThreadPoolExecutor

import pytest
from conftest import ADMIN_PASSWORD

from auth.admin import RbacAdmin
from auth.session import SessionAuthority
from auth.store import CredentialStore
from core.errors import InvalidCredentials, NotFound


@pytest.fixture
def sessions(seeded_store, codec) -> SessionAuthority:
    return SessionAuthority(seeded_store, codec)


def _admin_id(store) -> int:
    return store.get_by_username("admin").id


def test_login_increments_version_by_one(sessions, seeded_store, codec):
    uid = _admin_id(seeded_store)
    before = seeded_store.get_token_version(uid)

    result = sessions.login("admin", ADMIN_PASSWORD)

    assert seeded_store.get_token_version(uid) == before + 1
    assert codec.verify(result.access_token).token_version == before + 1


def test_login_result_carries_user_summary(sessions, codec):
    result = sessions.login("admin", ADMIN_PASSWORD)
    assert result.user.username == "admin"
    assert [r.name for r in result.user.roles] == ["Administrator"]
    assert result.user.last_login_at is not None
    assert result.expires_in == codec.default_ttl
    assert codec.verify(result.access_token).roles == ("Administrator",)


def test_single_session_scenario(sessions, seeded_store, codec):
    """Token A dies at the second login; token B dies at force_logout."""
    uid = _admin_id(seeded_store)

    token_a = sessions.login("admin", ADMIN_PASSWORD).access_token
    claims_a = codec.verify(token_a)
    assert claims_a.token_version == 1
    assert sessions.validate_version(uid, claims_a.token_version)

    token_b = sessions.login("admin", ADMIN_PASSWORD).access_token
    claims_b = codec.verify(token_b)
    assert claims_b.token_version == 2
    assert not sessions.validate_version(uid, claims_a.token_version)
    assert sessions.validate_version(uid, claims_b.token_version)

    assert sessions.force_logout(uid) == 3
    assert not sessions.validate_version(uid, claims_b.token_version)


def test_wrong_password_and_unknown_user_fail_identically(sessions):
    with pytest.raises(InvalidCredentials) as wrong_password:
        sessions.login("admin", "not-the-password")
    with pytest.raises(InvalidCredentials) as unknown_user:
        sessions.login("nobody", "whatever")
    assert wrong_password.value.message == unknown_user.value.message
    assert wrong_password.value.code == unknown_user.value.code == "bad_credentials"


def test_failed_login_does_not_touch_version(sessions, seeded_store):
    uid = _admin_id(seeded_store)
    with pytest.raises(InvalidCredentials):
        sessions.login("admin", "not-the-password")
    assert seeded_store.get_token_version(uid) == 0


def test_login_records_origin(sessions, seeded_store):
    uid = _admin_id(seeded_store)
    sessions.login("admin", ADMIN_PASSWORD, client_origin="203.0.113.9")

    info = sessions.get_login_info(uid)
    assert info.username == "admin"
    assert info.last_login_origin == "203.0.113.9"
    assert info.last_login_at is not None


def test_validate_version_unknown_user(sessions):
    assert sessions.validate_version(9999, 0) is False


def test_force_logout_unknown_user(sessions):
    with pytest.raises(NotFound):
        sessions.force_logout(9999)


def test_get_login_info_unknown_user(sessions):
    with pytest.raises(NotFound):
        sessions.get_login_info(9999)


@pytest.fixture
def file_store(tmp_path):
    s = CredentialStore(f"sqlite:///{tmp_path / 'auth.db'}")
    yield s
    s.close()


def test_concurrent_increments_are_atomic(file_store):
    uid = RbacAdmin(file_store).create_user("racer", "racer-pass-123").id
    n = 30

    with ThreadPoolExecutor(max_workers=10) as pool:
        versions = list(pool.map(lambda _: file_store.increment_token_version(uid), range(n)))

    assert sorted(versions) == list(range(1, n + 1))
    assert file_store.get_token_version(uid) == n


def test_concurrent_logins_each_bump_once(file_store, codec):
    uid = RbacAdmin(file_store).create_user("racer", "racer-pass-123").id
    sessions = SessionAuthority(file_store, codec)
    n = 6

    with ThreadPoolExecutor(max_workers=n) as pool:
        results = list(pool.map(lambda _: sessions.login("racer", "racer-pass-123"), range(n)))

    versions = [codec.verify(r.access_token).token_version for r in results]
    assert sorted(versions) == list(range(1, n + 1))
    assert file_store.get_token_version(uid) == n
    # only the newest token is still live
    live = [v for v in versions if sessions.validate_version(uid, v)]
    assert live == [n]
