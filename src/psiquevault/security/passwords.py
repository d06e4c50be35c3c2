"""Login password hashing, kept separate from encryption key derivation.

The stored hash only answers "is this the right password?". It is an
Argon2id hash with its own random salt, so it shares nothing with the
PBKDF2 session key derived from the same password.
"""

from __future__ import annotations

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError

from ..core.exceptions import InvalidPasswordError

MIN_PASSWORD_LENGTH = 6

_hasher = PasswordHasher()


def validate_password(password: str) -> None:
    """Raise InvalidPasswordError unless ``password`` meets the policy."""
    if not isinstance(password, str):
        raise InvalidPasswordError("password must be a string")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise InvalidPasswordError(
            f"password must be at least {MIN_PASSWORD_LENGTH} characters long"
        )


def hash_password(password: str) -> str:
    return _hasher.hash(password)


def verify_password(password_hash: str, password: str) -> bool:
    """Return True if ``password`` matches ``password_hash``."""
    try:
        return _hasher.verify(password_hash, password)
    except VerifyMismatchError:
        return False
    except (VerificationError, InvalidHashError):
        # a malformed stored hash can never match
        return False


def needs_rehash(password_hash: str) -> bool:
    """True when the hash was produced with outdated Argon2 parameters."""
    try:
        return _hasher.check_needs_rehash(password_hash)
    except InvalidHashError:
        return False
