"""Security helpers: KDF, AEAD envelopes, password hashing and the session key.

This package provides:
- PBKDF2-HMAC-SHA256 session key derivation from the installation salt
- AES-256-GCM envelopes with a fresh nonce per seal
- Argon2id login password hashing, independent of the session key
- An in-memory session manager that zeroes the key on lock
"""

from .kdf import generate_salt, derive_key, derive_key_in_background
from .cipher import seal, open_envelope, seal_bytes, open_bytes
from .passwords import hash_password, verify_password, validate_password
from .salt import SaltStore
from .session import SessionManager

__all__ = [
    "generate_salt",
    "derive_key",
    "derive_key_in_background",
    "seal",
    "open_envelope",
    "seal_bytes",
    "open_bytes",
    "hash_password",
    "verify_password",
    "validate_password",
    "SaltStore",
    "SessionManager",
]
