"""Facade the UI layer talks to: accounts, session key and encrypted collections."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Any, Dict, List, Mapping, Optional

from .accounts import AccountRegistry
from .blob_store import NamespacedBlobStore
from .exceptions import PsiqueVaultError, SessionLockedError
from .models import ABSENT, Account, EntityKind
from .rekey import RekeyCoordinator
from ..config import VaultConfig
from ..database.connection import DatabaseConnection
from ..database.kvstore import KeyValueStore
from ..security.kdf import derive_key
from ..security.salt import SaltStore
from ..security.session import SessionManager

logger = logging.getLogger(__name__)


@dataclass
class LoadedCollections:
    """The three collections a freshly logged-in UI populates itself from."""

    patients: List[Any] = field(default_factory=list)
    invoices: List[Any] = field(default_factory=list)
    appointments: List[Any] = field(default_factory=list)

    def get(self, kind: EntityKind | str) -> List[Any]:
        return getattr(self, EntityKind.parse(kind).value)


class Vault:
    """
    Wires the storage medium, salt, registry, blob store and session together.

    The salt is read (or created) once here and handed to key derivation and
    to the rekey coordinator; nothing else reads it.
    """

    def __init__(self, config: Optional[VaultConfig] = None, db: Optional[DatabaseConnection] = None):
        self.config = config or VaultConfig.from_env()
        self.db = db or DatabaseConnection(self.config.db_path)
        try:
            self.kv = KeyValueStore(self.db)
            self.salt = SaltStore(self.kv).get_or_create_salt()
        except PsiqueVaultError:
            if db is None:
                self.db.close()
            raise
        self.blobs = NamespacedBlobStore(self.kv, dataset=self.config.dataset)
        self.registry = AccountRegistry(self.kv, self.blobs)
        self.rekeyer = RekeyCoordinator(
            self.registry, self.blobs, self.salt, iterations=self.config.kdf_iterations
        )
        self.session = SessionManager(ttl_seconds=self.config.session_ttl_seconds)

    def __enter__(self) -> "Vault":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def close(self) -> None:
        self.session.lock()
        self.db.close()

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    def derive_key(self, password: str) -> bytes:
        return derive_key(password, self.salt, iterations=self.config.kdf_iterations)

    @property
    def is_unlocked(self) -> bool:
        return self.session.is_unlocked

    @property
    def current_account(self) -> Account:
        return self.session.account

    def register(self, email: str, password: str) -> Account:
        return self.registry.register(email, password)

    def login(
        self,
        email: str,
        password: str,
        seed: Optional[Mapping[EntityKind | str, List[Any]]] = None,
    ) -> LoadedCollections:
        """
        Authenticate, derive the session key and load every collection.

        A kind with nothing stored comes back as ``seed[kind]`` (or an empty
        list). If any kind fails to load (AuthenticationError for one that
        does not open, a storage error otherwise) the session is locked again
        before the error propagates.
        """
        account = self.registry.authenticate(email, password)
        key = self.derive_key(password)
        self.session.unlock(account, key)
        try:
            return self.load_all(seed=seed)
        except Exception:
            self.session.lock()
            raise

    def logout(self) -> None:
        self.session.lock()

    # ------------------------------------------------------------------
    # Collections
    # ------------------------------------------------------------------

    def load(self, kind: EntityKind | str) -> Any:
        """Return the collection for ``kind`` or ABSENT."""
        return self.blobs.load(self.current_account.email, kind, self.session.get_key())

    def load_all(self, seed: Optional[Mapping[EntityKind | str, List[Any]]] = None) -> LoadedCollections:
        seeds: Dict[EntityKind, List[Any]] = {
            EntityKind.parse(k): list(v) for k, v in (seed or {}).items()
        }
        loaded = LoadedCollections()
        for kind in EntityKind:
            payload = self.load(kind)
            if payload is ABSENT:
                payload = seeds.get(kind, [])
            setattr(loaded, kind.value, payload)
        return loaded

    def save(self, kind: EntityKind | str, collection: List[Any]) -> None:
        """Persist one collection; call after every mutation of it."""
        self.blobs.save(self.current_account.email, kind, collection, self.session.get_key())

    # ------------------------------------------------------------------
    # Account settings
    # ------------------------------------------------------------------

    def rekey(self, new_password: str) -> None:
        """Re-encrypt the active account under ``new_password`` and swap the session key."""
        account = self.current_account
        new_key = self.rekeyer.rekey(account, new_password, self.session.get_key())
        self.session.replace_key(new_key, account=self.registry.get(account.email))

    def change_password(self, current_password: str, new_password: str) -> None:
        """Settings-screen flow: confirm the current password, then rekey."""
        account = self.current_account
        self.registry.authenticate(account.email, current_password)
        self.rekey(new_password)

    def update_email(self, new_email: str) -> Account:
        account = self.current_account
        renamed = self.registry.update_email(account.email, new_email)
        self.session.update_account(renamed)
        return renamed

    def delete_account(self, email: Optional[str] = None) -> None:
        """
        Delete ``email`` (default: the active account) and all of its data.

        Deleting another account needs an admin session. Deleting the active
        account also ends the session.
        """
        if not self.is_unlocked:
            raise SessionLockedError("Session is locked")
        me = self.current_account.email
        target = email or me
        self.registry.delete_account(target, requested_by=me)
        if not self.registry.exists(me):
            self.session.lock()
