"""Runtime configuration for a PsiqueVault installation.

Values come from keyword arguments or, through :meth:`VaultConfig.from_env`,
from ``PSIQUEVAULT_*`` environment variables:

- ``PSIQUEVAULT_DB_PATH``: SQLite file backing the storage medium
- ``PSIQUEVAULT_DATASET``: prefix of every encrypted slot name
- ``PSIQUEVAULT_KDF_ITERATIONS``: PBKDF2 iterations (at least 100,000)
- ``PSIQUEVAULT_SESSION_TTL``: idle seconds before the session auto-locks
- ``PSIQUEVAULT_LOG_LEVEL``: logging level name for the CLI
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional
import os

from .core.blob_store import DEFAULT_DATASET
from .security.kdf import DEFAULT_ITERATIONS, MIN_ITERATIONS


@dataclass
class VaultConfig:
    db_path: Path = Path.home() / ".psiquevault" / "psiquevault.db"
    dataset: str = DEFAULT_DATASET
    kdf_iterations: int = DEFAULT_ITERATIONS
    session_ttl_seconds: Optional[float] = None
    log_level: str = "INFO"
    allow_weak_kdf: bool = False

    def __post_init__(self):
        self.db_path = Path(self.db_path).expanduser()
        if not self.dataset:
            raise ValueError("dataset name must not be empty")
        if self.kdf_iterations < 1:
            raise ValueError("kdf_iterations must be positive")
        if self.kdf_iterations < MIN_ITERATIONS and not self.allow_weak_kdf:
            raise ValueError(
                f"kdf_iterations must be at least {MIN_ITERATIONS} (got {self.kdf_iterations})"
            )
        if self.session_ttl_seconds is not None and self.session_ttl_seconds <= 0:
            raise ValueError("session_ttl_seconds must be positive when set")

    @classmethod
    def from_env(cls, **overrides) -> "VaultConfig":
        """Build a config from PSIQUEVAULT_* variables; keyword overrides win."""
        values = {}
        db_path = os.getenv("PSIQUEVAULT_DB_PATH")
        if db_path:
            values["db_path"] = Path(db_path)
        dataset = os.getenv("PSIQUEVAULT_DATASET")
        if dataset:
            values["dataset"] = dataset
        iterations = os.getenv("PSIQUEVAULT_KDF_ITERATIONS")
        if iterations:
            values["kdf_iterations"] = int(iterations)
        ttl = os.getenv("PSIQUEVAULT_SESSION_TTL")
        if ttl:
            values["session_ttl_seconds"] = float(ttl)
        log_level = os.getenv("PSIQUEVAULT_LOG_LEVEL")
        if log_level:
            values["log_level"] = log_level
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
