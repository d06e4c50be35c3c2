"""
AES-256-GCM envelopes for PsiqueVault.

Envelope layout (before base64):

- 12 bytes: random nonce (IV), fresh for every seal
- N bytes: ciphertext
- 16 bytes: GCM authentication tag

The stored form is the standard base64 encoding of those bytes. Any failure
to open an envelope (wrong key, flipped bits, truncation, undecodable text)
raises :class:`AuthenticationError`; the cases are indistinguishable on purpose.
"""

from __future__ import annotations

import base64
import binascii
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..core.exceptions import AuthenticationError

IV_LEN = 12
TAG_LEN = 16
KEY_LEN = 32


def _aead(key: bytes | bytearray) -> AESGCM:
    if len(key) != KEY_LEN:
        raise ValueError(f"session key must be {KEY_LEN} bytes, got {len(key)}")
    return AESGCM(bytes(key))


def seal_bytes(plaintext: bytes, key: bytes | bytearray) -> bytes:
    """Encrypt ``plaintext`` and return ``nonce || ciphertext || tag``."""
    aead = _aead(key)
    nonce = os.urandom(IV_LEN)
    return nonce + aead.encrypt(nonce, plaintext, None)


def open_bytes(blob: bytes, key: bytes | bytearray) -> bytes:
    """Verify and decrypt a raw envelope produced by :func:`seal_bytes`."""
    aead = _aead(key)
    if len(blob) < IV_LEN + TAG_LEN:
        raise AuthenticationError("envelope too short to contain nonce and tag")
    nonce, ct = blob[:IV_LEN], blob[IV_LEN:]
    try:
        return aead.decrypt(nonce, ct, None)
    except InvalidTag:
        raise AuthenticationError("wrong password or corrupted data") from None


def seal(plaintext: bytes, key: bytes | bytearray) -> str:
    """Encrypt ``plaintext`` into a base64 envelope string for storage."""
    return base64.b64encode(seal_bytes(plaintext, key)).decode("ascii")


def open_envelope(envelope: str, key: bytes | bytearray) -> bytes:
    """Decode a stored envelope and return the verified plaintext."""
    try:
        blob = base64.b64decode(envelope, validate=True)
    except (binascii.Error, ValueError):
        raise AuthenticationError("envelope is not valid base64") from None
    # b64decode ignores the unused low bits of the last quantum
    if base64.b64encode(blob).decode("ascii") != envelope:
        raise AuthenticationError("envelope is not canonical base64")
    return open_bytes(blob, key)
