"""
Database utilities for SQLite operations.

Provides connection management and schema initialization for the record store.
Timestamps are stored as fixed-width UTC text (see utils.dates.to_db_timestamp)
so that string comparison and ordering match chronological order.
"""

import logging
import sqlite3
from pathlib import Path
from typing import Optional

from utils.config import settings

logger = logging.getLogger(__name__)


def _unicode_lower(value: Optional[str]) -> Optional[str]:
    return value.lower() if isinstance(value, str) else value


def get_conn(db_path: Optional[str] = None) -> sqlite3.Connection:
    """
    Get SQLite database connection with dict-friendly row factory.

    Registers UNICODE_LOWER(text); the built-in LOWER() only folds ASCII.

    Args:
        db_path: Database file path, defaults to settings.SQLITE_PATH

    Returns:
        SQLite connection with row_factory set to sqlite3.Row

    Raises:
        sqlite3.Error: If connection fails
    """
    path = db_path or settings.SQLITE_PATH

    # Ensure database directory exists
    if path != ":memory:":
        Path(path).parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(path)
    conn.row_factory = sqlite3.Row
    conn.create_function("UNICODE_LOWER", 1, _unicode_lower, deterministic=True)
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def init_schema(db_path: Optional[str] = None) -> None:
    """
    Initialize database schema by creating required tables if they don't exist.

    Creates:
    - products: catalog records
    - users / user_permissions: accounts and their extra permissions
    - audit_logs: one row per auditable operation

    Raises:
        sqlite3.Error: If schema creation fails
    """
    conn = get_conn(db_path)
    try:
        with conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS products (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    description TEXT,
                    sku TEXT NOT NULL UNIQUE,
                    price REAL NOT NULL CHECK (price >= 0.01),
                    quantity INTEGER NOT NULL CHECK (quantity >= 0),
                    active INTEGER NOT NULL DEFAULT 1,
                    category TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    created_by TEXT,
                    updated_by TEXT
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_product_name ON products (name)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_product_category ON products (category)")

            conn.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    username TEXT NOT NULL UNIQUE,
                    first_name TEXT NOT NULL,
                    last_name TEXT NOT NULL,
                    email TEXT NOT NULL UNIQUE,
                    phone TEXT,
                    role TEXT NOT NULL CHECK (role IN ('ADMIN', 'USER', 'GUEST')),
                    is_active INTEGER NOT NULL DEFAULT 1,
                    last_login_date TEXT,
                    deleted_at TEXT,
                    deleted_by TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    created_by TEXT,
                    updated_by TEXT
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_user_active ON users (is_active)")

            conn.execute("""
                CREATE TABLE IF NOT EXISTS user_permissions (
                    user_id INTEGER NOT NULL REFERENCES users (id) ON DELETE CASCADE,
                    permission TEXT NOT NULL,
                    PRIMARY KEY (user_id, permission)
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS audit_logs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    username TEXT NOT NULL,
                    operation TEXT NOT NULL,
                    entity_type TEXT NOT NULL,
                    entity_id INTEGER,
                    description TEXT,
                    ip_address TEXT,
                    request_uri TEXT,
                    http_method TEXT,
                    changes TEXT,
                    metadata TEXT,
                    success INTEGER NOT NULL,
                    error_message TEXT,
                    created_at TEXT NOT NULL
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_audit_entity ON audit_logs (entity_type, entity_id)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_audit_user ON audit_logs (username)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_audit_created_at ON audit_logs (created_at)")
    finally:
        conn.close()

    logger.info("DB schema ready")
