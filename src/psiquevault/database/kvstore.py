"""Key-value view over the SQLite database.

This is the "shared storage medium" every account writes into. It knows
nothing about encryption: values are opaque strings and anyone with access
to the database file can read or rewrite them.
"""

from __future__ import annotations

from typing import Iterable, List, Mapping, Optional

from .connection import DatabaseConnection


class KeyValueStore:
    """String keys to string values, with an atomic multi-key batch."""

    __slots__ = ("db",)

    def __init__(self, db: DatabaseConnection):
        self.db = db
        self.db.initialize()

    def get(self, key: str) -> Optional[str]:
        row = self.db.fetch_one("SELECT value FROM kv_store WHERE key = ?", (key,))
        return row["value"] if row else None

    def set(self, key: str, value: str) -> None:
        self.db.execute(
            """
            INSERT INTO kv_store (key, value) VALUES (?, ?)
            ON CONFLICT(key) DO UPDATE SET value = excluded.value
            """,
            (key, value),
        )

    def delete(self, key: str) -> bool:
        """Remove key; returns True if something was deleted."""
        with self.db.get_cursor_context() as cursor:
            cursor.execute("DELETE FROM kv_store WHERE key = ?", (key,))
            return cursor.rowcount > 0

    def contains(self, key: str) -> bool:
        return self.db.fetch_one("SELECT 1 AS hit FROM kv_store WHERE key = ?", (key,)) is not None

    def keys(self, prefix: str = "") -> List[str]:
        """List keys, optionally restricted to those starting with ``prefix``."""
        rows = self.db.fetch_all("SELECT key FROM kv_store ORDER BY key")
        return [row["key"] for row in rows if row["key"].startswith(prefix)]

    def write_batch(
        self,
        puts: Optional[Mapping[str, str]] = None,
        deletes: Optional[Iterable[str]] = None,
    ) -> None:
        """
        Apply ``puts`` then ``deletes`` in a single transaction.

        Either every write lands or none does; this is what rekey and email
        migration rely on for their all-or-nothing guarantee.
        """
        puts = dict(puts or {})
        deletes = [k for k in (deletes or []) if k not in puts]
        with self.db.get_transaction_context() as cursor:
            for key, value in puts.items():
                cursor.execute(
                    """
                    INSERT INTO kv_store (key, value) VALUES (?, ?)
                    ON CONFLICT(key) DO UPDATE SET value = excluded.value
                    """,
                    (key, value),
                )
            for key in deletes:
                cursor.execute("DELETE FROM kv_store WHERE key = ?", (key,))
