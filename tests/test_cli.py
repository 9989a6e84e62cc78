"""Tests for main.py -- the seed and create-user administration commands.

Each test points DATABASE_URL at a fresh SQLite file under tmp_path and
drives main() through sys.argv, the same way the shell would.
"""

import sys

import pytest

import main as cli
from auth.store import CredentialStore
from auth.tokens import verify_password
from core.config import get_settings
from siteconfig.store import SiteConfigStore


@pytest.fixture
def db_url(tmp_path, monkeypatch):
    url = f"sqlite:///{tmp_path / 'cli.db'}"
    monkeypatch.setenv("DATABASE_URL", url)
    get_settings.cache_clear()
    yield url
    # Runs before monkeypatch restores the environment, so the next caller
    # rebuilds Settings from the original values.
    get_settings.cache_clear()


def _run(monkeypatch, *args: str) -> int:
    monkeypatch.setattr(sys, "argv", ["main.py", *args])
    return cli.main()


def test_seed_creates_defaults(db_url, monkeypatch, capsys):
    assert _run(monkeypatch, "seed", "--admin-password", "first-admin-pass") == 0
    assert "Admin account 'admin' created" in capsys.readouterr().out

    store = CredentialStore(db_url)
    try:
        admin = store.get_by_username("admin")
        assert verify_password("first-admin-pass", admin.hashed_password)
        assert store.get_role_by_name("Employee") is not None
    finally:
        store.close()

    site_config = SiteConfigStore(db_url)
    try:
        assert site_config.get_value("siteTitle") == "Office Management System"
    finally:
        site_config.close()


def test_seed_twice_keeps_admin_password(db_url, monkeypatch, capsys):
    _run(monkeypatch, "seed", "--admin-password", "first-admin-pass")
    assert _run(monkeypatch, "seed", "--admin-password", "other-admin-pass") == 0
    assert "already existed" in capsys.readouterr().out

    store = CredentialStore(db_url)
    try:
        assert verify_password("first-admin-pass", store.get_by_username("admin").hashed_password)
    finally:
        store.close()


def test_create_user_with_roles(db_url, monkeypatch, capsys):
    _run(monkeypatch, "seed")
    code = _run(monkeypatch, "create-user", "alice", "alice-pass-123", "--role", "Employee", "--role", "Manager")
    assert code == 0
    assert "Created user 'alice'" in capsys.readouterr().out

    store = CredentialStore(db_url)
    try:
        alice = store.get_by_username("alice")
        assert alice.display_name == "alice"
        assert {r.name for r in store.list_roles_for_user(alice.id)} == {"Employee", "Manager"}
    finally:
        store.close()


def test_create_user_unknown_role(db_url, monkeypatch, capsys):
    _run(monkeypatch, "seed")
    assert _run(monkeypatch, "create-user", "alice", "alice-pass-123", "--role", "Wizard") == 1
    assert "Role 'Wizard' does not exist" in capsys.readouterr().err

    store = CredentialStore(db_url)
    try:
        assert store.get_by_username("alice") is None
    finally:
        store.close()


def test_create_user_short_password(db_url, monkeypatch, capsys):
    assert _run(monkeypatch, "create-user", "alice", "short") == 1
    assert "8-128 characters" in capsys.readouterr().err


def test_create_user_duplicate(db_url, monkeypatch, capsys):
    _run(monkeypatch, "seed")
    assert _run(monkeypatch, "create-user", "admin", "another-pass-123") == 1
    assert "already exists" in capsys.readouterr().err
