"""Unit tests for the password-change re-encryption protocol."""

import base64

import pytest

from psiquevault.core.accounts import AccountRegistry
from psiquevault.core.blob_store import NamespacedBlobStore
from psiquevault.core.exceptions import (
    AuthenticationError,
    InvalidCredentialsError,
    InvalidPasswordError,
    StorageUnavailableError,
)
from psiquevault.core.models import ABSENT, EntityKind
from psiquevault.core.rekey import RekeyCoordinator
from psiquevault.database.connection import DatabaseConnection
from psiquevault.database.kvstore import KeyValueStore
from psiquevault.security.kdf import derive_key

ITER = 1000
SALT = b"\x07" * 16
EMAIL = "alice@example.com"

DATA = {
    EntityKind.PATIENTS: [{"id": "p1", "name": "Ana"}],
    EntityKind.INVOICES: [{"id": "i1", "invoiceNumber": "2024-001", "items": []}],
    EntityKind.APPOINTMENTS: [{"id": "a1", "patientId": "p1", "title": "Sesión"}],
}


# ==============================================================================
# Fixtures
# ==============================================================================

def _dump(kv):
    return {k: kv.get(k) for k in kv.keys()}


@pytest.fixture
def env(tmp_path):
    db = DatabaseConnection(tmp_path / "vault.db")
    kv = KeyValueStore(db)
    blobs = NamespacedBlobStore(kv)
    registry = AccountRegistry(kv, blobs)
    coordinator = RekeyCoordinator(registry, blobs, SALT, iterations=ITER)
    yield kv, blobs, registry, coordinator
    db.close()


@pytest.fixture
def populated(env):
    kv, blobs, registry, coordinator = env
    account = registry.register(EMAIL, "password1")
    old_key = derive_key("password1", SALT, iterations=ITER)
    for kind, payload in DATA.items():
        blobs.save(EMAIL, kind, payload, old_key)
    return account, old_key


# ==============================================================================
# Tests
# ==============================================================================

def test_rekey_preserves_plaintext(env, populated):
    kv, blobs, registry, coordinator = env
    account, old_key = populated

    new_key = coordinator.rekey(account, "password2", old_key)

    assert new_key == derive_key("password2", SALT, iterations=ITER)
    assert new_key != old_key
    for kind, payload in DATA.items():
        assert blobs.load(EMAIL, kind, new_key) == payload
        with pytest.raises(AuthenticationError):
            blobs.load(EMAIL, kind, old_key)


def test_rekey_updates_password_hash(env, populated):
    kv, blobs, registry, coordinator = env
    account, old_key = populated

    coordinator.rekey(account, "password2", old_key)

    registry.authenticate(EMAIL, "password2")
    with pytest.raises(InvalidCredentialsError):
        registry.authenticate(EMAIL, "password1")


def test_rekey_keeps_absent_kinds_absent(env):
    kv, blobs, registry, coordinator = env
    account = registry.register(EMAIL, "password1")
    old_key = derive_key("password1", SALT, iterations=ITER)
    blobs.save(EMAIL, EntityKind.PATIENTS, DATA[EntityKind.PATIENTS], old_key)

    new_key = coordinator.rekey(account, "password2", old_key)

    assert blobs.load(EMAIL, EntityKind.PATIENTS, new_key) == DATA[EntityKind.PATIENTS]
    assert blobs.load(EMAIL, EntityKind.INVOICES, new_key) is ABSENT
    assert blobs.load(EMAIL, EntityKind.APPOINTMENTS, new_key) is ABSENT


def test_rekey_aborts_on_corrupted_kind(env, populated):
    """One unreadable collection means nothing is re-encrypted and the hash stays."""
    kv, blobs, registry, coordinator = env
    account, old_key = populated
    slot = blobs.slot(EMAIL, EntityKind.APPOINTMENTS)
    raw = bytearray(base64.b64decode(kv.get(slot)))
    raw[20] ^= 0x80
    kv.set(slot, base64.b64encode(bytes(raw)).decode())
    before = _dump(kv)

    with pytest.raises(AuthenticationError):
        coordinator.rekey(account, "password2", old_key)

    assert _dump(kv) == before
    registry.authenticate(EMAIL, "password1")
    assert blobs.load(EMAIL, EntityKind.PATIENTS, old_key) == DATA[EntityKind.PATIENTS]


def test_rekey_with_wrong_current_key(env, populated):
    kv, blobs, registry, coordinator = env
    account, _ = populated
    before = _dump(kv)
    with pytest.raises(AuthenticationError):
        coordinator.rekey(account, "password2", b"\x00" * 32)
    assert _dump(kv) == before


def test_rekey_commit_failure_changes_nothing(env, populated):
    kv, blobs, registry, coordinator = env
    account, old_key = populated
    before = _dump(kv)
    # fail on the last write of the batch (the account record)
    for event in ("INSERT", "UPDATE"):
        kv.db.execute(
            f"""
            CREATE TRIGGER reject_accounts_{event.lower()} BEFORE {event} ON kv_store
            WHEN NEW.key = 'accounts'
            BEGIN SELECT RAISE(ABORT, 'io error'); END
            """
        )

    with pytest.raises(StorageUnavailableError):
        coordinator.rekey(account, "password2", old_key)

    assert _dump(kv) == before
    registry.authenticate(EMAIL, "password1")
    for kind, payload in DATA.items():
        assert blobs.load(EMAIL, kind, old_key) == payload


def test_rekey_rejects_weak_password_before_work(env, populated):
    kv, blobs, registry, coordinator = env
    account, old_key = populated
    before = _dump(kv)
    with pytest.raises(InvalidPasswordError):
        coordinator.rekey(account, "123", old_key)
    assert _dump(kv) == before


def test_rekey_leaves_other_accounts_alone(env, populated):
    kv, blobs, registry, coordinator = env
    account, old_key = populated
    registry.register("bob@example.com", "bobpassword")
    bob_key = derive_key("bobpassword", SALT, iterations=ITER)
    blobs.save("bob@example.com", EntityKind.PATIENTS, [{"id": "b"}], bob_key)
    bob_envelope = blobs.read_raw("bob@example.com", EntityKind.PATIENTS)

    coordinator.rekey(account, "password2", old_key)

    assert blobs.read_raw("bob@example.com", EntityKind.PATIENTS) == bob_envelope
    registry.authenticate("bob@example.com", "bobpassword")
