"""SQLite connection and initialization utilities."""

import sqlite3
from pathlib import Path
import threading

from .schema import SCHEMA_VERSION, get_init_schema
from ..core.exceptions import StorageError, StorageUnavailableError


class DatabaseConnection:
    """Manage SQLite connections and schema init."""

    __slots__ = ("db_path", "_local", "_lock", "_initialized")

    def __init__(self, db_path="./psiquevault.db"):
        """Initialize connection state."""
        self.db_path = Path(db_path)
        self._local = threading.local()
        self._lock = threading.Lock()
        self._initialized = False

    def initialize(self):
        """Initialize schema if not already initialized."""
        if self._initialized:
            return

        with self._lock:
            if self._initialized:
                return

            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)

                conn = self._get_connection()

                for statement in get_init_schema():
                    conn.execute(statement)

                conn.commit()

            except (sqlite3.Error, OSError) as e:
                raise StorageUnavailableError(f"Failed to initialize database: {e}") from e

            version = self.get_version()
            if version > SCHEMA_VERSION:
                raise StorageError(
                    f"{self.db_path} has schema version {version}; this build understands up to {SCHEMA_VERSION}"
                )
            self._initialized = True

    def _get_connection(self):
        """Get or create a thread-local SQLite connection."""
        if not hasattr(self._local, "connection") or self._local.connection is None:
            try:
                self._local.connection = sqlite3.connect(
                    str(self.db_path), check_same_thread=False, isolation_level=None
                )
            except sqlite3.Error as e:
                raise StorageUnavailableError(f"Cannot open database {self.db_path}: {e}") from e
            self._local.connection.row_factory = sqlite3.Row

        return self._local.connection

    def get_cursor_context(self):
        """Return a context manager for a SQLite cursor."""
        return CursorContext(self._get_connection())

    def get_transaction_context(self):
        """Return a transaction context manager (BEGIN/COMMIT/ROLLBACK)."""
        return TransactionContext(self._get_connection())

    def execute(self, query, params=None):
        """Execute a single SQL statement and return the cursor."""
        with self.get_cursor_context() as cursor:
            if params:
                cursor.execute(query, params)
            else:
                cursor.execute(query)
            return cursor

    def fetch_one(self, query, params=None):
        """Fetch a single row as a dict or None."""
        with self.get_cursor_context() as cursor:
            if params:
                cursor.execute(query, params)
            else:
                cursor.execute(query)

            row = cursor.fetchone()
            return dict(row) if row else None

    def fetch_all(self, query, params=None):
        """Fetch all rows as a list of dicts."""
        with self.get_cursor_context() as cursor:
            if params:
                cursor.execute(query, params)
            else:
                cursor.execute(query)

            rows = cursor.fetchall()
            return [dict(row) for row in rows]

    def get_version(self):
        """Return the highest schema version recorded in the file, 0 if none."""
        result = self.fetch_one("SELECT MAX(version) AS version FROM schema_version")
        return result["version"] if result and result["version"] else 0

    def close(self):
        """Close the thread-local connection if open."""
        if hasattr(self._local, "connection") and self._local.connection:
            self._local.connection.close()
            self._local.connection = None


class CursorContext:
    """Context manager for SQLite cursor."""

    __slots__ = ("connection", "cursor")

    def __init__(self, connection):
        """Initialize with a SQLite connection."""
        self.connection = connection
        self.cursor = None

    def __enter__(self):
        """Create and return a cursor."""
        self.cursor = self.connection.cursor()
        return self.cursor

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Close the cursor; surface sqlite failures as StorageUnavailableError."""
        if self.cursor:
            self.cursor.close()
        if exc_type is not None and issubclass(exc_type, sqlite3.Error):
            raise StorageUnavailableError(f"Storage operation failed: {exc_val}") from exc_val
        return False


class TransactionContext:
    """Context manager for transactions (BEGIN/COMMIT/ROLLBACK)."""

    __slots__ = ("connection", "cursor")

    def __init__(self, connection):
        """Initialize with a SQLite connection."""
        self.connection = connection
        self.cursor = None

    def __enter__(self):
        """Begin a transaction and return a cursor."""
        self.cursor = self.connection.cursor()
        try:
            self.cursor.execute("BEGIN IMMEDIATE")
        except sqlite3.Error as e:
            self.cursor.close()
            raise StorageUnavailableError(f"Cannot begin transaction: {e}") from e
        return self.cursor

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Commit on success, rollback on error, then close cursor."""
        try:
            if exc_type is None:
                self.connection.commit()
            else:
                self.connection.rollback()
        except sqlite3.Error as e:
            raise StorageUnavailableError(f"Transaction failed: {e}") from e
        finally:
            if self.cursor:
                self.cursor.close()
        if exc_type is not None and issubclass(exc_type, sqlite3.Error):
            raise StorageUnavailableError(f"Transaction failed: {exc_val}") from exc_val
        return False
