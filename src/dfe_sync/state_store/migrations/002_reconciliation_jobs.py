"""
Migration 002: Add reconciliation job queue.

Single-shot reconciliation is handed off as a job once a receipt is durably
stored, so a lookup failure can never block or roll back the receipt write.

Status: PENDING, PROCESSING, COMPLETED, FAILED.
Only one PENDING/PROCESSING job per receipt (enforced by the store).
"""

import sqlite3

VERSION = 2
NAME = "reconciliation_jobs"


def upgrade(conn: sqlite3.Connection) -> None:
    """Create the reconciliation_jobs table."""
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS reconciliation_jobs (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            location TEXT NOT NULL,
            receipt_id TEXT NOT NULL,
            access_key TEXT NOT NULL,

            status TEXT NOT NULL DEFAULT 'PENDING',

            scheduled_at TEXT NOT NULL,
            started_at TEXT,
            completed_at TEXT,

            outcome TEXT,  -- LINKED, FETCHED_AND_LINKED, NOT_FOUND, ...
            error_message TEXT,

            retry_count INTEGER NOT NULL DEFAULT 0,
            max_retries INTEGER NOT NULL DEFAULT 3
        )
        """
    )

    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_reconciliation_jobs_pending "
        "ON reconciliation_jobs(status, scheduled_at)"
    )
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_reconciliation_jobs_receipt "
        "ON reconciliation_jobs(receipt_id)"
    )


def downgrade(conn: sqlite3.Connection) -> None:
    """Remove the reconciliation_jobs table."""
    conn.execute("DROP INDEX IF EXISTS idx_reconciliation_jobs_receipt")
    conn.execute("DROP INDEX IF EXISTS idx_reconciliation_jobs_pending")
    conn.execute("DROP TABLE IF EXISTS reconciliation_jobs")
