"""SQLite database schema definition."""

import sqlite3
from pathlib import Path

SCHEMA_VERSION = 2

DEFAULT_SETTINGS: dict[str, str] = {
    "tax_auto_rate": "30",
    "target_percentage": "65",
    "unit_cost": "10",
    "currency_symbol": "€",
}

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS grants (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    grant_date TEXT NOT NULL,
    fund_name TEXT,
    exercise_reference TEXT NOT NULL,
    quantity INTEGER NOT NULL CHECK (quantity >= 0),
    amount_granted TEXT NOT NULL,
    current_value TEXT NOT NULL DEFAULT '0',
    tax_amount TEXT,
    tax_auto_calculated TEXT NOT NULL DEFAULT '0',
    total_sold_quantity INTEGER NOT NULL DEFAULT 0
        CHECK (total_sold_quantity >= 0 AND total_sold_quantity <= quantity),
    created_at TEXT NOT NULL DEFAULT (datetime('now')),
    updated_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS sale_transactions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    grant_id INTEGER NOT NULL REFERENCES grants(id) ON DELETE CASCADE,
    sale_date TEXT NOT NULL,
    quantity_sold INTEGER NOT NULL CHECK (quantity_sold > 0),
    sale_price TEXT NOT NULL,
    total_sale_value TEXT NOT NULL,
    tax_deducted TEXT NOT NULL DEFAULT '0',
    realized_gain_loss TEXT NOT NULL,
    notes TEXT,
    created_at TEXT NOT NULL DEFAULT (datetime('now')),
    updated_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS price_observations (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    fund_name TEXT,
    exercise_reference TEXT NOT NULL,
    grant_date TEXT NOT NULL,
    price_date TEXT NOT NULL,
    value TEXT NOT NULL,
    source TEXT NOT NULL DEFAULT 'feed',
    scraped_at TEXT NOT NULL DEFAULT (datetime('now')),
    UNIQUE (exercise_reference, grant_date, price_date)
);

CREATE TABLE IF NOT EXISTS evolution_snapshots (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    snapshot_date TEXT NOT NULL UNIQUE,
    total_portfolio_value TEXT NOT NULL DEFAULT '0',
    total_unrealized_gain TEXT NOT NULL DEFAULT '0',
    total_realized_gain TEXT NOT NULL DEFAULT '0',
    total_options_count INTEGER NOT NULL DEFAULT 0,
    active_options_count INTEGER NOT NULL DEFAULT 0,
    notes TEXT,
    created_at TEXT NOT NULL DEFAULT (datetime('now')),
    updated_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS settings (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE INDEX IF NOT EXISTS idx_grants_identity
    ON grants (exercise_reference, grant_date);
CREATE INDEX IF NOT EXISTS idx_sales_grant
    ON sale_transactions (grant_id, sale_date);
CREATE INDEX IF NOT EXISTS idx_prices_identity
    ON price_observations (exercise_reference, grant_date, price_date);
"""


def connect(db_path: Path) -> sqlite3.Connection:
    """Open a connection in autocommit mode; writes group through transactions."""
    conn = sqlite3.connect(str(db_path), isolation_level=None, check_same_thread=False)
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    return conn


def create_schema(db_path: Path) -> sqlite3.Connection:
    """Create the database schema and seed default settings. Returns the connection."""
    from optionfolio.db.migrations import migrate

    conn = connect(db_path)
    conn.executescript(SCHEMA_SQL)
    conn.executemany(
        "INSERT OR IGNORE INTO settings (key, value) VALUES (?, ?)",
        list(DEFAULT_SETTINGS.items()),
    )
    migrate(conn)
    return conn
