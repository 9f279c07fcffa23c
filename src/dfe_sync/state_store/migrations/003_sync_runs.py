"""
Migration 003: Create sync_runs table.

One row per sync attempt (successful or not), so every trigger leaves a
visible trace: no new documents, counts, or the rejection reason.
"""

import sqlite3

VERSION = 3
NAME = "sync_runs"


def upgrade(conn: sqlite3.Connection) -> None:
    """Create the sync_runs table."""
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS sync_runs (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            location TEXT NOT NULL,
            trigger TEXT NOT NULL,  -- MANUAL, SCHEDULED, LOOKUP_NSU, LOOKUP_KEY
            outcome TEXT NOT NULL,  -- SYNCED, NO_NEW_DOCUMENTS, REJECTED, FAILED
            start_nsu TEXT,
            ult_nsu TEXT,
            max_nsu TEXT,
            status_code TEXT,
            status_text TEXT,
            batches INTEGER NOT NULL DEFAULT 0,
            stored INTEGER NOT NULL DEFAULT 0,
            failed INTEGER NOT NULL DEFAULT 0,
            skipped INTEGER NOT NULL DEFAULT 0,
            parse_failures INTEGER NOT NULL DEFAULT 0,
            unrecognized INTEGER NOT NULL DEFAULT 0,
            linked INTEGER NOT NULL DEFAULT 0,
            error_message TEXT,
            duration_ms INTEGER NOT NULL DEFAULT 0,
            run_at TEXT NOT NULL
        )
        """
    )

    conn.execute("CREATE INDEX IF NOT EXISTS idx_sync_runs_location ON sync_runs(location, id)")


def downgrade(conn: sqlite3.Connection) -> None:
    """Remove the sync_runs table."""
    conn.execute("DROP INDEX IF EXISTS idx_sync_runs_location")
    conn.execute("DROP TABLE IF EXISTS sync_runs")
