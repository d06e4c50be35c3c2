"""Password change: re-encrypt every collection of an account under a new key."""

from __future__ import annotations

import logging
from typing import Any, Dict

from .accounts import AccountRegistry
from .blob_store import NamespacedBlobStore
from .models import ABSENT, Account, EntityKind
from ..security.kdf import DEFAULT_ITERATIONS, derive_key
from ..security.passwords import validate_password

logger = logging.getLogger(__name__)


class RekeyCoordinator:
    """
    Runs the password-change protocol for one account.

    Steps:
    - derive the new key from the new password and the installation salt
    - open every stored collection with the current key
    - seal each one again under the new key (in memory only)
    - hash the new password
    - commit the new envelopes and the account record in one storage batch

    Any failure before the commit leaves storage untouched, so the old
    password keeps opening everything. Kinds that were never saved stay
    absent.
    """

    def __init__(
        self,
        registry: AccountRegistry,
        blobs: NamespacedBlobStore,
        salt: bytes,
        iterations: int = DEFAULT_ITERATIONS,
    ):
        self.registry = registry
        self.blobs = blobs
        self.salt = salt
        self.iterations = iterations

    def rekey(self, account: Account, new_password: str, current_key: bytes) -> bytes:
        """Return the new session key once everything is committed."""
        validate_password(new_password)
        email = account.email
        new_key = derive_key(new_password, self.salt, iterations=self.iterations)

        # Phase 1: decrypt everything with the current key. AuthenticationError aborts here.
        plaintexts: Dict[EntityKind, Any] = {}
        for kind in EntityKind:
            payload = self.blobs.load(email, kind, current_key)
            if payload is ABSENT:
                continue
            plaintexts[kind] = payload

        # Phase 2: stage new envelopes and the new hash, still nothing written.
        puts = self.blobs.staged_envelopes(email, plaintexts, new_key)
        _, accounts_blob = self.registry.build_password_update(email, new_password)
        puts[self.registry.key] = accounts_blob

        # Phase 3: single atomic commit.
        self.registry.kv.write_batch(puts=puts)
        logger.info("re-encrypted %d collections for %s under a new key", len(plaintexts), email)
        return new_key
