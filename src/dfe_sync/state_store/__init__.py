"""
State Store (SQLite-based).

Lightweight persistent DB for tracking:
- Distribution cursors per location
- Fiscal notes (unique per location + access key)
- Unrecognized document stubs
- Receipt mirror, reconciliation jobs and sync runs

Enforces uniqueness on (location, access_key) and (location, nsu).
"""

from .sqlite_store import (
    JobStatus,
    ReceiptRecord,
    StateStore,
    SyncCursor,
)

__all__ = [
    "JobStatus",
    "ReceiptRecord",
    "StateStore",
    "SyncCursor",
]
