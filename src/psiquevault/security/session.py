"""In-memory holder for the active account and its session key.

The session key is derived from the password at login and never persisted.
It lives in a ``bytearray`` so that lock() can overwrite it in place before
dropping the reference. An optional TTL auto-locks an idle session; every
successful get_key() counts as activity.
"""
from __future__ import annotations

import logging
import time
from typing import Optional

from ..core.exceptions import SessionLockedError
from ..core.models import Account

logger = logging.getLogger(__name__)


class SessionManager:
    def __init__(self, ttl_seconds: Optional[float] = None):
        self.ttl_seconds = ttl_seconds
        self._key: Optional[bytearray] = None
        self._account: Optional[Account] = None
        self._expires_at: Optional[float] = None

    def unlock(self, account: Account, key: bytes) -> None:
        """Start (or replace) the session for ``account`` with ``key``."""
        self._wipe()
        self._key = bytearray(key)
        self._account = account
        self._touch()
        logger.debug("session unlocked for %s", account.email)

    def replace_key(self, key: bytes, account: Optional[Account] = None) -> None:
        """Swap in a new key (after rekey) and optionally a refreshed account record."""
        if self._key is None:
            raise SessionLockedError("Session is locked")
        current = account or self._account
        self._wipe()
        self._key = bytearray(key)
        self._account = current
        self._touch()

    def update_account(self, account: Account) -> None:
        if self._key is None:
            raise SessionLockedError("Session is locked")
        self._account = account

    @property
    def is_unlocked(self) -> bool:
        return self._key is not None and not self._expired()

    @property
    def account(self) -> Account:
        self._check()
        return self._account

    def get_key(self) -> bytes:
        """Return the unlocked session key or raise if locked/expired."""
        self._check()
        self._touch()
        return bytes(self._key)

    def extend(self, extra_seconds: float) -> None:
        """Extend session TTL by extra_seconds if unlocked."""
        self._check()
        if self._expires_at is not None:
            self._expires_at += float(extra_seconds)

    def lock(self) -> None:
        """Zero the key and forget the account."""
        if self._account is not None:
            logger.debug("session locked for %s", self._account.email)
        self._wipe()
        self._account = None
        self._expires_at = None

    def _check(self) -> None:
        if self._key is None:
            raise SessionLockedError("Session is locked")
        if self._expired():
            # auto-lock on expiry
            self.lock()
            raise SessionLockedError("Session expired and was locked")

    def _expired(self) -> bool:
        return self._expires_at is not None and time.monotonic() > self._expires_at

    def _touch(self) -> None:
        if self.ttl_seconds is not None:
            self._expires_at = time.monotonic() + float(self.ttl_seconds)

    def _wipe(self) -> None:
        if self._key is not None:
            for i in range(len(self._key)):
                self._key[i] = 0
        self._key = None
