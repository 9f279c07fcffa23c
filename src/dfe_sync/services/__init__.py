"""Services: sync, ingestion and reconciliation."""

from dfe_sync.services.context import LocationContext
from dfe_sync.services.ingest import DocumentIngestor
from dfe_sync.services.locks import LocationLocks
from dfe_sync.services.reconciliation import (
    LinkOutcome,
    ReceiptReconciliationResult,
    ReconciliationResult,
    ReconciliationService,
)
from dfe_sync.services.reconciliation_queue import QueueRunResult, ReconciliationQueue
from dfe_sync.services.sync import SyncOutcome, SyncResult, SyncService, SyncTrigger

__all__ = [
    "DocumentIngestor",
    "LinkOutcome",
    "LocationContext",
    "LocationLocks",
    "QueueRunResult",
    "ReceiptReconciliationResult",
    "ReconciliationQueue",
    "ReconciliationResult",
    "ReconciliationService",
    "SyncOutcome",
    "SyncResult",
    "SyncService",
    "SyncTrigger",
]
