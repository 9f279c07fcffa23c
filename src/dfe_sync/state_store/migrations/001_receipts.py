"""
Migration 001: Create receipts table.

Mirror of the receipts owned by the capture pipeline. The engine reads the
extracted access key to link fiscal notes; it never creates or deletes rows
here on its own (the capture pipeline calls record_receipt/delete_receipt).
"""

import sqlite3

VERSION = 1
NAME = "receipts"


def upgrade(conn: sqlite3.Connection) -> None:
    """Create the receipts table."""
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS receipts (
            id TEXT PRIMARY KEY,
            location TEXT NOT NULL,
            extracted_access_key TEXT,  -- 44 digits or NULL
            establishment TEXT,
            total_amount TEXT,  -- Decimal as string
            issue_date TEXT,
            created_at TEXT NOT NULL
        )
        """
    )

    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_receipts_location_key "
        "ON receipts(location, extracted_access_key)"
    )


def downgrade(conn: sqlite3.Connection) -> None:
    """Remove the receipts table."""
    conn.execute("DROP INDEX IF EXISTS idx_receipts_location_key")
    conn.execute("DROP TABLE IF EXISTS receipts")
