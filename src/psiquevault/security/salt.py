"""Installation-wide KDF salt kept in the shared storage medium.

The salt is not secret. It is created once, stored base64-encoded under a
fixed key and never rotated: every session key ever derived depends on it.
"""

from __future__ import annotations

import base64
import binascii
import logging

from ..core.exceptions import StorageError
from ..database.kvstore import KeyValueStore
from .kdf import SALT_LEN, generate_salt

logger = logging.getLogger(__name__)

SALT_KEY = "salt"


class SaltStore:
    def __init__(self, kv: KeyValueStore, key: str = SALT_KEY):
        self.kv = kv
        self.key = key

    def get_or_create_salt(self) -> bytes:
        """Return the stored salt, creating and persisting it on first use."""
        stored = self.kv.get(self.key)
        if stored is not None:
            return self._decode(stored)

        salt = generate_salt(SALT_LEN)
        self.kv.set(self.key, base64.b64encode(salt).decode("ascii"))
        logger.info("generated new installation salt")
        return salt

    def _decode(self, stored: str) -> bytes:
        # A damaged salt makes every key underivable; do not paper over it.
        try:
            salt = base64.b64decode(stored, validate=True)
        except (binascii.Error, ValueError) as e:
            raise StorageError(f"stored salt under {self.key!r} is not valid base64") from e
        if len(salt) != SALT_LEN:
            raise StorageError(
                f"stored salt under {self.key!r} has {len(salt)} bytes, expected {SALT_LEN}"
            )
        return salt
