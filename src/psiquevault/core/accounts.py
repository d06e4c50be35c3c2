"""Account registry: credentials stored as one JSON list in the shared medium."""

from __future__ import annotations

import json
import logging
from typing import List, Optional

from .blob_store import NamespacedBlobStore
from .exceptions import (
    AccessDeniedError,
    DuplicateAccountError,
    InvalidCredentialsError,
    StorageError,
    UnknownAccountError,
)
from .models import Account, Role
from ..database.kvstore import KeyValueStore
from ..security.passwords import hash_password, needs_rehash, validate_password, verify_password

logger = logging.getLogger(__name__)

ACCOUNTS_KEY = "accounts"


def _clean_email(email: str) -> str:
    # Every entry point goes through here: case is kept, surrounding whitespace is not.
    if not isinstance(email, str) or not email.strip():
        raise ValueError("email must be a non-empty string")
    return email.strip()


class AccountRegistry:
    """Register, authenticate, rename and delete accounts."""

    def __init__(self, kv: KeyValueStore, blobs: NamespacedBlobStore, key: str = ACCOUNTS_KEY):
        self.kv = kv
        self.blobs = blobs
        self.key = key

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _read(self) -> List[Account]:
        raw = self.kv.get(self.key)
        if raw is None:
            return []
        try:
            return [Account.from_dict(item) for item in json.loads(raw)]
        except (ValueError, TypeError, KeyError) as e:
            raise StorageError(f"account list under {self.key!r} is corrupted") from e

    def _serialize(self, accounts: List[Account]) -> str:
        return json.dumps([a.to_dict() for a in accounts], ensure_ascii=False)

    def _write(self, accounts: List[Account]) -> None:
        self.kv.set(self.key, self._serialize(accounts))

    @staticmethod
    def _index(accounts: List[Account], email: str) -> int:
        for i, account in enumerate(accounts):
            if account.email == email:
                return i
        return -1

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list_accounts(self) -> List[Account]:
        return self._read()

    def get(self, email: str) -> Account:
        email = _clean_email(email)
        accounts = self._read()
        i = self._index(accounts, email)
        if i < 0:
            raise UnknownAccountError(f"no account for {email}")
        return accounts[i]

    def exists(self, email: str) -> bool:
        return self._index(self._read(), _clean_email(email)) >= 0

    def is_admin(self, email: str) -> bool:
        return self.get(email).is_admin

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def register(self, email: str, password: str) -> Account:
        """Create an account; the first account of an empty registry becomes admin."""
        email = _clean_email(email)
        validate_password(password)
        accounts = self._read()
        if self._index(accounts, email) >= 0:
            raise DuplicateAccountError(f"an account for {email} already exists")

        role = Role.ADMIN if not accounts else Role.USER
        account = Account(email=email, password_hash=hash_password(password), role=role)
        accounts.append(account)
        self._write(accounts)
        logger.info("registered account %s (role=%s)", email, role.value)
        return account

    def authenticate(self, email: str, password: str) -> Account:
        """Verify credentials. Never touches any envelope."""
        email = _clean_email(email)
        accounts = self._read()
        i = self._index(accounts, email)
        if i < 0:
            raise UnknownAccountError(f"no account for {email}")

        account = accounts[i]
        if not verify_password(account.password_hash, password):
            logger.info("failed login for %s", email)
            raise InvalidCredentialsError("incorrect email or password")

        if needs_rehash(account.password_hash):
            account = Account(
                email=account.email,
                password_hash=hash_password(password),
                role=account.role,
                created_at=account.created_at,
            )
            accounts[i] = account
            self._write(accounts)
            logger.info("upgraded password hash parameters for %s", email)
        return account

    def build_password_update(self, email: str, new_password: str) -> tuple[Account, str]:
        """
        Prepare (updated account, serialized account list) with a new hash.

        Nothing is written; the rekey coordinator commits it together with
        the re-encrypted envelopes.
        """
        email = _clean_email(email)
        validate_password(new_password)
        accounts = self._read()
        i = self._index(accounts, email)
        if i < 0:
            raise UnknownAccountError(f"no account for {email}")
        old = accounts[i]
        updated = Account(
            email=old.email,
            password_hash=hash_password(new_password),
            role=old.role,
            created_at=old.created_at,
        )
        accounts[i] = updated
        return updated, self._serialize(accounts)

    def update_email(self, old_email: str, new_email: str) -> Account:
        """
        Rename an account and move all its slots.

        The renamed record, the copied slots and the removal of the old
        slots are committed in one batch.
        """
        old_email = _clean_email(old_email)
        new_email = _clean_email(new_email)
        if new_email == old_email:
            raise ValueError("the new email is the same as the current one")

        accounts = self._read()
        i = self._index(accounts, old_email)
        if i < 0:
            raise UnknownAccountError(f"no account for {old_email}")
        if self._index(accounts, new_email) >= 0:
            raise DuplicateAccountError(f"an account for {new_email} already exists")

        old = accounts[i]
        renamed = Account(
            email=new_email,
            password_hash=old.password_hash,
            role=old.role,
            created_at=old.created_at,
        )
        accounts[i] = renamed

        puts, deletes = self.blobs.staged_move(old_email, new_email)
        puts[self.key] = self._serialize(accounts)
        self.kv.write_batch(puts=puts, deletes=deletes)
        logger.info("renamed account %s -> %s (%d slots moved)", old_email, new_email, len(deletes))
        return renamed

    def delete_account(self, email: str, requested_by: Optional[str] = None) -> None:
        """
        Remove the account and every slot it owns.

        Deleting someone else's account requires ``requested_by`` to be an admin.
        """
        email = _clean_email(email)
        if requested_by is not None:
            requested_by = _clean_email(requested_by)
        accounts = self._read()
        i = self._index(accounts, email)
        if i < 0:
            raise UnknownAccountError(f"no account for {email}")

        if requested_by is not None and requested_by != email:
            j = self._index(accounts, requested_by)
            if j < 0 or not accounts[j].is_admin:
                raise AccessDeniedError("only an administrator can delete other accounts")

        del accounts[i]
        slots = list(self.blobs.slots_for(email).values())
        self.kv.write_batch(puts={self.key: self._serialize(accounts)}, deletes=slots)
        logger.info("deleted account %s", email)

