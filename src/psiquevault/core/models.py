"""
Data models shared by the registry, the blob store and the vault facade
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict


class EntityKind(Enum):
    # Each kind is persisted as its own envelope per account
    PATIENTS = "patients"
    INVOICES = "invoices"
    APPOINTMENTS = "appointments"

    @classmethod
    def parse(cls, value: "EntityKind | str") -> "EntityKind":
        """Accept either an EntityKind or its string value."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            valid = ", ".join(k.value for k in cls)
            raise ValueError(f"Unknown entity kind {value!r} (expected one of: {valid})") from None


class Role(Enum):
    ADMIN = "admin"
    USER = "user"


class _Absent:
    """Marker for "no envelope stored at this slot yet"."""

    __slots__ = ()

    def __repr__(self) -> str:
        return "ABSENT"

    def __bool__(self) -> bool:
        return False


ABSENT = _Absent()


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class Account:
    """A registered login. Never carries the session key."""

    email: str
    password_hash: str
    role: Role = Role.USER
    created_at: str = field(default_factory=_utcnow_iso)

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN

    def to_dict(self) -> Dict[str, Any]:
        return {
            "email": self.email,
            "passwordHash": self.password_hash,
            "role": self.role.value,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Account":
        # Records written before roles existed default to a plain user.
        return cls(
            email=data["email"],
            password_hash=data["passwordHash"],
            role=Role(data.get("role", Role.USER.value)),
            created_at=data.get("createdAt") or _utcnow_iso(),
        )
