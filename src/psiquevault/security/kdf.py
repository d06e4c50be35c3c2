from __future__ import annotations

from concurrent.futures import Executor, Future, ThreadPoolExecutor
import os
from typing import Dict, Optional

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

DEFAULT_ITERATIONS = 100_000
MIN_ITERATIONS = 100_000
KEY_LEN = 32
SALT_LEN = 16

# one worker is enough: derivations are serialized per session anyway
_background = ThreadPoolExecutor(max_workers=1, thread_name_prefix="psiquevault-kdf")


def generate_salt(length: int = SALT_LEN) -> bytes:
    """Return a cryptographically secure random salt."""
    return os.urandom(length)


def derive_key(
    password: bytes | str,
    salt: bytes,
    iterations: int = DEFAULT_ITERATIONS,
    key_len: int = KEY_LEN,
) -> bytes:
    """
    Derive a symmetric key from a password using PBKDF2-HMAC-SHA256.
    Deterministic for the same (password, salt, iterations); returns raw key bytes.
    """
    if iterations < 1:
        raise ValueError("iterations must be positive")
    if isinstance(password, str):
        password = password.encode("utf-8")

    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=key_len,
        salt=salt,
        iterations=iterations,
    )
    return kdf.derive(password)


def derive_key_in_background(
    password: bytes | str,
    salt: bytes,
    iterations: int = DEFAULT_ITERATIONS,
    executor: Optional[Executor] = None,
) -> "Future[bytes]":
    """
    Run derive_key on a worker thread and return its Future.

    The derivation itself cannot be interrupted; a caller that no longer
    wants the key simply drops the Future.
    """
    pool = executor or _background
    return pool.submit(derive_key, password, salt, iterations)


def kdf_params_to_dict(salt: bytes, iterations: int) -> Dict:
    return {
        "algo": "pbkdf2-sha256",
        "salt": salt.hex(),
        "iterations": iterations,
        "length": KEY_LEN,
    }
