"""SQLite schema definitions for the PsiqueVault storage medium."""

# SQL schema definitions
SCHEMA_VERSION = 1

CREATE_TABLES = [
    # Key-value table - the shared, untrusted medium every account writes into.
    # Values are opaque strings: base64 salt, JSON account list, base64 envelopes.
    """
    CREATE TABLE IF NOT EXISTS kv_store (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    # Schema version table
    """
    CREATE TABLE IF NOT EXISTS schema_version (
        version INTEGER PRIMARY KEY,
        applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
]

# Triggers for automatic timestamp updates
CREATE_TRIGGERS = [
    """
    CREATE TRIGGER IF NOT EXISTS update_kv_store_timestamp
    AFTER UPDATE OF value ON kv_store
    FOR EACH ROW
    BEGIN
        UPDATE kv_store SET updated_at = CURRENT_TIMESTAMP
        WHERE key = NEW.key;
    END
    """,
]


def get_init_schema():
    """
    Get complete schema initialization SQL

    Returns:
        List of SQL statements to execute
    """
    statements = []
    statements.extend(CREATE_TABLES)
    statements.extend(CREATE_TRIGGERS)
    statements.append(
        f"INSERT OR IGNORE INTO schema_version (version) VALUES ({SCHEMA_VERSION})"
    )
    return statements
