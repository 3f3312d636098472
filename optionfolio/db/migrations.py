"""Database schema migrations."""

import logging
import sqlite3

from optionfolio.db.schema import SCHEMA_VERSION

logger = logging.getLogger(__name__)


def get_current_version(conn: sqlite3.Connection) -> int:
    """Get the current schema version from the database."""
    try:
        cursor = conn.execute("SELECT MAX(version) FROM schema_version")
        row = cursor.fetchone()
        return row[0] if row and row[0] else 0
    except sqlite3.OperationalError:
        return 0


def _columns(conn: sqlite3.Connection, table: str) -> set[str]:
    return {row[1] for row in conn.execute(f"PRAGMA table_info({table})")}


def migrate(conn: sqlite3.Connection) -> None:
    """Run any pending migrations."""
    current = get_current_version(conn)
    if current >= SCHEMA_VERSION:
        return

    if current == 0:
        # Fresh database: SCHEMA_SQL already has the latest layout.
        conn.execute(
            "INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,)
        )
        return

    if current < 2:
        if "updated_at" not in _columns(conn, "sale_transactions"):
            # SQLite refuses non-constant defaults in ADD COLUMN.
            conn.execute("ALTER TABLE sale_transactions ADD COLUMN updated_at TEXT")
            conn.execute("UPDATE sale_transactions SET updated_at = created_at")
        conn.execute("INSERT INTO schema_version (version) VALUES (2)")
        logger.info("Migrated schema from version %d to 2", current)
