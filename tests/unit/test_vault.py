"""Unit tests for the Vault facade."""

import base64

import pytest

from psiquevault.config import VaultConfig
from psiquevault.core.exceptions import (
    AccessDeniedError,
    AuthenticationError,
    InvalidCredentialsError,
    SessionLockedError,
    StorageError,
    StorageUnavailableError,
    UnknownAccountError,
)
from psiquevault.core.models import ABSENT, EntityKind, Role
from psiquevault.core.vault import LoadedCollections, Vault
from psiquevault.database.connection import DatabaseConnection


# ==============================================================================
# Fixtures
# ==============================================================================

@pytest.fixture
def config(tmp_path):
    return VaultConfig(db_path=tmp_path / "vault.db", kdf_iterations=1000, allow_weak_kdf=True)


@pytest.fixture
def vault(config):
    v = Vault(config)
    yield v
    v.close()


@pytest.fixture
def alice(vault):
    vault.register("alice@example.com", "password1")
    vault.login("alice@example.com", "password1")
    return vault


# ==============================================================================
# Tests: Session
# ==============================================================================

def test_salt_created_once(config):
    with Vault(config) as first:
        salt = first.salt
    with Vault(config) as second:
        assert second.salt == salt


def test_login_new_account_gives_empty_collections(alice):
    loaded = alice.load_all()
    assert loaded == LoadedCollections()
    assert alice.current_account.email == "alice@example.com"
    assert alice.is_unlocked


def test_login_uses_seed_only_when_absent(vault):
    vault.register("alice@example.com", "password1")
    seed = {"patients": [{"id": "demo"}]}
    loaded = vault.login("alice@example.com", "password1", seed=seed)
    assert loaded.patients == [{"id": "demo"}]

    vault.save(EntityKind.PATIENTS, [])
    loaded = vault.login("alice@example.com", "password1", seed=seed)
    assert loaded.patients == []


def test_login_wrong_password(vault):
    vault.register("alice@example.com", "password1")
    with pytest.raises(InvalidCredentialsError):
        vault.login("alice@example.com", "password2")
    assert not vault.is_unlocked


def test_login_unknown(vault):
    with pytest.raises(UnknownAccountError):
        vault.login("ghost@example.com", "password1")


def test_login_corrupted_data_is_not_empty(alice):
    alice.save("invoices", [{"id": "i1"}])
    slot = alice.blobs.slot("alice@example.com", "invoices")
    raw = bytearray(base64.b64decode(alice.kv.get(slot)))
    raw[15] ^= 0x01
    alice.kv.set(slot, base64.b64encode(bytes(raw)).decode())
    alice.logout()

    with pytest.raises(AuthenticationError):
        alice.login("alice@example.com", "password1")
    assert not alice.is_unlocked
    # the corrupted envelope is still there, not overwritten with an empty list
    assert alice.kv.get(slot) is not None


def test_login_storage_failure_locks_session(vault, monkeypatch):
    vault.register("alice@example.com", "password1")

    def unavailable(*args, **kwargs):
        raise StorageUnavailableError("disk went away")

    monkeypatch.setattr(vault.blobs, "load", unavailable)
    with pytest.raises(StorageUnavailableError):
        vault.login("alice@example.com", "password1")
    assert not vault.is_unlocked
    with pytest.raises(SessionLockedError):
        vault.save("patients", [])


def test_login_with_padded_email(vault):
    vault.register(" bob@example.com ", "password1")
    vault.login(" bob@example.com ", "password1")
    assert vault.current_account.email == "bob@example.com"
    vault.delete_account(" bob@example.com ")
    assert not vault.is_unlocked


def test_corrupted_salt_closes_connection(config, monkeypatch):
    with Vault(config) as first:
        first.kv.set("salt", "not base64!!")

    closed = []
    original_close = DatabaseConnection.close

    def tracking_close(self):
        closed.append(self.db_path)
        original_close(self)

    monkeypatch.setattr(DatabaseConnection, "close", tracking_close)
    with pytest.raises(StorageError):
        Vault(config)
    assert len(closed) == 1


def test_operations_need_session(vault):
    with pytest.raises(SessionLockedError):
        vault.save("patients", [])
    with pytest.raises(SessionLockedError):
        vault.load("patients")
    with pytest.raises(SessionLockedError):
        vault.delete_account()


def test_logout_locks(alice):
    alice.logout()
    assert not alice.is_unlocked
    with pytest.raises(SessionLockedError):
        alice.load("patients")


# ==============================================================================
# Tests: Collections
# ==============================================================================

def test_save_and_load(alice):
    alice.save("patients", [{"id": "p1", "name": "Ana"}])
    assert alice.load(EntityKind.PATIENTS) == [{"id": "p1", "name": "Ana"}]
    assert alice.load("appointments") is ABSENT


def test_loaded_collections_get(alice):
    alice.save("appointments", [{"id": "a1"}])
    loaded = alice.load_all()
    assert loaded.get("appointments") == [{"id": "a1"}]
    assert loaded.get(EntityKind.INVOICES) == []


# ==============================================================================
# Tests: Account settings
# ==============================================================================

def test_change_password_reencrypts_and_swaps_key(alice):
    alice.save("patients", [{"id": "p1"}])
    old_key = alice.session.get_key()

    alice.change_password("password1", "password2")

    assert alice.session.get_key() != old_key
    assert alice.load("patients") == [{"id": "p1"}]
    alice.logout()
    with pytest.raises(InvalidCredentialsError):
        alice.login("alice@example.com", "password1")
    assert alice.login("alice@example.com", "password2").patients == [{"id": "p1"}]


def test_change_password_checks_current(alice):
    with pytest.raises(InvalidCredentialsError):
        alice.change_password("wrong-password", "password2")
    alice.logout()
    alice.login("alice@example.com", "password1")


def test_update_email(alice):
    alice.save("patients", [{"id": "p1"}])
    renamed = alice.update_email("ana.therapist@example.com")
    assert renamed.email == "ana.therapist@example.com"
    assert alice.current_account.email == "ana.therapist@example.com"
    assert alice.load("patients") == [{"id": "p1"}]
    alice.logout()
    assert alice.login("ana.therapist@example.com", "password1").patients == [{"id": "p1"}]


def test_delete_own_account_ends_session(alice):
    alice.save("patients", [{"id": "p1"}])
    alice.delete_account()
    assert not alice.is_unlocked
    assert alice.registry.list_accounts() == []
    assert alice.kv.keys("psiqueManager_") == []


def test_admin_deletes_other_account(vault):
    vault.register("admin@example.com", "password1")
    vault.register("user@example.com", "password1")
    vault.login("user@example.com", "password1")
    vault.save("patients", [{"id": "u"}])
    with pytest.raises(AccessDeniedError):
        vault.delete_account("admin@example.com")

    vault.login("admin@example.com", "password1")
    assert vault.current_account.role is Role.ADMIN
    vault.delete_account("user@example.com")
    assert vault.is_unlocked
    assert [a.email for a in vault.registry.list_accounts()] == ["admin@example.com"]
    assert vault.kv.keys("psiqueManager_") == []
