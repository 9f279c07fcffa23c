"""Distribution sync service.

Drives one location through the distribution stream:

1. Read the cursor (last consumed NSU)
2. Fetch the next batch from the distribution service
3. Classify, categorize and persist every document of the batch
4. Advance the cursor to the batch's ultNSU once every document reached
   a terminal outcome
5. Repeat while the service reports ultNSU < maxNSU, up to a batch bound
6. Run the batch reconciliation pass

A failed fetch (transport error, service rejection) leaves the cursor
untouched; the range is fetched again on the next trigger and the
idempotent upsert absorbs the repetition.
"""

from __future__ import annotations

import logging
import sqlite3
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from dfe_sync.distribution_client import BatchOutcome, BatchResult
from dfe_sync.errors import DFeSyncError, ServiceRejected
from dfe_sync.schemas.access_key import nsu_as_int
from dfe_sync.schemas.documents import BatchSummary
from dfe_sync.services.context import LocationContext
from dfe_sync.services.ingest import DocumentIngestor
from dfe_sync.services.locks import LocationLocks

if TYPE_CHECKING:
    from dfe_sync.categorization import KeywordTable
    from dfe_sync.config import Config
    from dfe_sync.distribution_client import DistributionClient
    from dfe_sync.services.reconciliation import ReconciliationService
    from dfe_sync.state_store import StateStore

logger = logging.getLogger(__name__)


class SyncOutcome(str, Enum):
    """How a sync trigger ended."""

    SYNCED = "SYNCED"  # At least one batch with documents
    NO_NEW_DOCUMENTS = "NO_NEW_DOCUMENTS"
    REJECTED = "REJECTED"  # Service answered with an unexpected status
    FAILED = "FAILED"  # Transport or configuration failure


class SyncTrigger(str, Enum):
    """What started a sync run (recorded in the audit trail)."""

    MANUAL = "MANUAL"
    SCHEDULED = "SCHEDULED"
    LOOKUP_NSU = "LOOKUP_NSU"
    LOOKUP_KEY = "LOOKUP_KEY"


@dataclass
class SyncResult:
    """Result of a sync run for one location."""

    location: str
    outcome: SyncOutcome
    batches: int = 0
    stored: int = 0
    failed: int = 0
    skipped: int = 0
    parse_failures: int = 0
    unrecognized: int = 0
    linked: int = 0
    start_nsu: str | None = None
    ult_nsu: str | None = None
    max_nsu: str | None = None
    status_code: str | None = None
    status_text: str | None = None
    duration_ms: int = 0
    errors: list[str] = field(default_factory=list)

    def add_batch(self, summary: BatchSummary) -> None:
        self.stored += summary.stored
        self.failed += summary.failed
        self.skipped += summary.skipped
        self.parse_failures += summary.parse_failures
        self.unrecognized += summary.unrecognized
        self.errors.extend(summary.errors)

    @property
    def message(self) -> str:
        """One-line summary for the operator."""
        if self.outcome == SyncOutcome.NO_NEW_DOCUMENTS:
            return "No new documents"
        if self.outcome in (SyncOutcome.REJECTED, SyncOutcome.FAILED):
            detail = self.errors[-1] if self.errors else self.status_text or ""
            return f"Sync failed: {detail}"
        parts = [f"{self.stored} stored"]
        if self.skipped:
            parts.append(f"{self.skipped} events skipped")
        if self.unrecognized:
            parts.append(f"{self.unrecognized} unrecognized")
        if self.parse_failures:
            parts.append(f"{self.parse_failures} parse failures")
        if self.failed:
            parts.append(f"{self.failed} failed")
        if self.linked:
            parts.append(f"{self.linked} linked")
        return ", ".join(parts)


class SyncService:
    """
    Pulls distribution batches for a location and persists them.

    Usage:
        service = SyncService(client, state_store, config)
        result = service.sync_location("Caratinga")
    """

    def __init__(
        self,
        client: DistributionClient,
        state_store: StateStore,
        config: Config,
        keyword_table: KeywordTable | None = None,
        locks: LocationLocks | None = None,
        reconciliation: ReconciliationService | None = None,
    ) -> None:
        """
        Initialize the sync service.

        Args:
            client: Distribution service client
            state_store: Cursor and fiscal note persistence
            config: Application configuration
            keyword_table: Category keyword table (built-in table if None)
            locks: Per-location locks, shared with the reconciliation service
            reconciliation: Batch reconciliation run after each sync (optional)
        """
        self.client = client
        self.store = state_store
        self.config = config
        self.locks = locks or LocationLocks()
        if keyword_table is None:
            self.ingestor = DocumentIngestor(state_store)
        else:
            self.ingestor = DocumentIngestor(state_store, keyword_table)
        self.reconciliation = reconciliation

    def sync_location(
        self,
        location: str | None = None,
        trigger: SyncTrigger = SyncTrigger.MANUAL,
        max_batches: int | None = None,
    ) -> SyncResult:
        """
        Drain new documents for a location.

        Args:
            location: Location name (configured default if None)
            trigger: Recorded in the sync_runs audit trail
            max_batches: Override of distribution.max_batches_per_sync

        Returns:
            SyncResult with per-batch counts summed

        Raises:
            ConfigurationError: Unknown location or unusable channel
            SyncInProgressError: Another operation holds the location
            TransportError: Network/TLS/timeout failure (cursor untouched)
            ServiceRejected: Unexpected status code (cursor untouched)
        """
        ctx = LocationContext.for_location(self.config, location, self.store)
        limit = max_batches or self.config.distribution.max_batches_per_sync

        with self.locks.hold(ctx.name):
            start_time = time.time()
            since = ctx.read_cursor()
            result = SyncResult(location=ctx.name, outcome=SyncOutcome.NO_NEW_DOCUMENTS, start_nsu=since)
            logger.info(f"[{ctx.name}] sync started from NSU {since}")

            try:
                while result.batches < limit:
                    batch = self.client.fetch_since(ctx, since)
                    result.status_code = batch.status_code
                    result.status_text = batch.status_text
                    if batch.max_nsu:
                        result.max_nsu = batch.max_nsu

                    if batch.outcome == BatchOutcome.NO_NEW_DOCUMENTS:
                        logger.info(f"[{ctx.name}] no new documents ({batch.status_code})")
                        break

                    result.outcome = SyncOutcome.SYNCED
                    result.batches += 1
                    result.add_batch(self.ingestor.ingest(ctx.name, batch.documents))

                    # Every document reached a terminal outcome: safe to move on
                    next_nsu = batch.ult_nsu or since
                    cursor = ctx.advance_cursor(next_nsu, batch.max_nsu)
                    result.ult_nsu = cursor.last_nsu

                    if not self._more_pending(batch, since):
                        break
                    since = cursor.last_nsu

            except ServiceRejected as e:
                result.outcome = SyncOutcome.REJECTED
                result.status_code = e.code
                result.status_text = e.reason
                result.errors.append(str(e))
                self._finish(result, trigger, start_time)
                raise
            except DFeSyncError as e:
                result.outcome = SyncOutcome.FAILED
                result.errors.append(str(e))
                self._finish(result, trigger, start_time)
                raise

            if self.reconciliation is not None:
                reconciliation = self.reconciliation.reconcile_location(ctx.name)
                result.linked = reconciliation.linked
                result.errors.extend(reconciliation.errors)

            self._finish(result, trigger, start_time)

        logger.info(f"[{ctx.name}] sync finished: {result.message}")
        return result

    def fetch_nsu(self, location: str | None, nsu: str) -> SyncResult:
        """
        Point lookup of one NSU; the document is persisted like a sync would.

        The cursor is not moved: a point lookup says nothing about the
        documents before it.
        """
        ctx = LocationContext.for_location(self.config, location, self.store)
        with self.locks.hold(ctx.name):
            return self._lookup(ctx, SyncTrigger.LOOKUP_NSU, lambda: self.client.fetch_by_nsu(ctx, nsu))

    def import_by_access_key(self, location: str | None, access_key: str) -> SyncResult:
        """Point lookup by access key. The cursor is not moved."""
        ctx = LocationContext.for_location(self.config, location, self.store)
        with self.locks.hold(ctx.name):
            return self._lookup(
                ctx, SyncTrigger.LOOKUP_KEY, lambda: self.client.fetch_by_access_key(ctx, access_key)
            )

    def _lookup(self, ctx: LocationContext, trigger: SyncTrigger, fetch) -> SyncResult:
        start_time = time.time()
        result = SyncResult(location=ctx.name, outcome=SyncOutcome.NO_NEW_DOCUMENTS)
        try:
            batch: BatchResult = fetch()
        except ServiceRejected as e:
            result.outcome = SyncOutcome.REJECTED
            result.status_code = e.code
            result.status_text = e.reason
            result.errors.append(str(e))
            self._finish(result, trigger, start_time)
            raise
        except DFeSyncError as e:
            result.outcome = SyncOutcome.FAILED
            result.errors.append(str(e))
            self._finish(result, trigger, start_time)
            raise

        result.status_code = batch.status_code
        result.status_text = batch.status_text
        if batch.outcome == BatchOutcome.SUCCESS:
            result.outcome = SyncOutcome.SYNCED
            result.batches = 1
            result.add_batch(self.ingestor.ingest(ctx.name, batch.documents))

        self._finish(result, trigger, start_time)
        logger.info(f"[{ctx.name}] {trigger.value.lower()}: {result.message}")
        return result

    @staticmethod
    def _more_pending(batch: BatchResult, since: str) -> bool:
        """True when the service reports documents beyond this batch."""
        if not batch.ult_nsu or not batch.max_nsu:
            return False
        # No progress means the service would hand back the same batch
        if nsu_as_int(batch.ult_nsu) <= nsu_as_int(since):
            return False
        return nsu_as_int(batch.ult_nsu) < nsu_as_int(batch.max_nsu)

    def _finish(self, result: SyncResult, trigger: SyncTrigger, start_time: float) -> None:
        """Record the run in the audit trail."""
        result.duration_ms = int((time.time() - start_time) * 1000)
        try:
            self.store.record_sync_run(
                location=result.location,
                trigger=trigger.value,
                outcome=result.outcome.value,
                start_nsu=result.start_nsu,
                ult_nsu=result.ult_nsu,
                max_nsu=result.max_nsu,
                status_code=result.status_code,
                status_text=result.status_text,
                batches=result.batches,
                stored=result.stored,
                failed=result.failed,
                skipped=result.skipped,
                parse_failures=result.parse_failures,
                unrecognized=result.unrecognized,
                linked=result.linked,
                error_message="; ".join(result.errors) or None,
                duration_ms=result.duration_ms,
            )
        except (DFeSyncError, sqlite3.Error) as e:
            logger.warning(f"[{result.location}] sync run not recorded: {e}")
