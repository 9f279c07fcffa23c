"""Fiscal note ↔ receipt reconciliation service.

Links a fiscal note to the receipt a human captured for the same purchase,
using the 44-digit access key as the only matching criterion.

Entry points:
- reconcile_location: batch pass after a sync; links every unlinked note
  whose key equals a receipt's extracted key, and drops links to receipts
  that no longer exist
- reconcile_receipt: single-shot pass for one freshly captured receipt;
  looks the note up on the distribution service when it is not known yet
- handle_receipt_deleted: clears links to a deleted receipt

Both reconciliation passes are idempotent: already-linked notes are skipped.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from dfe_sync.distribution_client import BatchOutcome
from dfe_sync.errors import DFeSyncError, ReconciliationWarning
from dfe_sync.schemas.access_key import normalize_access_key
from dfe_sync.services.context import LocationContext
from dfe_sync.services.locks import LocationLocks

if TYPE_CHECKING:
    from dfe_sync.config import Config
    from dfe_sync.distribution_client import DistributionClient
    from dfe_sync.services.ingest import DocumentIngestor
    from dfe_sync.state_store import StateStore

logger = logging.getLogger(__name__)


class LinkOutcome(str, Enum):
    """Outcome of a single-shot reconciliation."""

    LINKED = "LINKED"  # Note was already stored locally
    FETCHED_AND_LINKED = "FETCHED_AND_LINKED"  # Note came from a point lookup
    ALREADY_LINKED = "ALREADY_LINKED"
    LINKED_ELSEWHERE = "LINKED_ELSEWHERE"  # Note or receipt already paired with another
    NOT_FOUND = "NOT_FOUND"
    FAILED = "FAILED"


@dataclass
class ReconciliationResult:
    """Result of a batch reconciliation pass."""

    location: str
    linked: int = 0
    stale_links_cleared: int = 0
    duration_ms: int = 0
    errors: list[str] = field(default_factory=list)


@dataclass
class ReceiptReconciliationResult:
    """Result of a single-shot reconciliation for one receipt."""

    receipt_id: str
    access_key: str | None
    outcome: LinkOutcome
    warning: ReconciliationWarning | None = None

    @property
    def linked(self) -> bool:
        """Return True if the receipt ends up linked to its note."""
        return self.outcome in (
            LinkOutcome.LINKED,
            LinkOutcome.FETCHED_AND_LINKED,
            LinkOutcome.ALREADY_LINKED,
        )


class ReconciliationService:
    """Links fiscal notes and receipts by access key.

    Usage:
        service = ReconciliationService(state_store, config, client, ingestor, locks)
        result = service.reconcile_location("Caratinga")
    """

    def __init__(
        self,
        state_store: StateStore,
        config: Config,
        client: DistributionClient | None = None,
        ingestor: DocumentIngestor | None = None,
        locks: LocationLocks | None = None,
    ) -> None:
        """Initialize the reconciliation service.

        Args:
            state_store: Store holding notes and the receipt mirror.
            config: Application configuration (location channels).
            client: Distribution client for point lookups. Without one,
                    single-shot reconciliation only links locally known notes.
            ingestor: Persists documents returned by point lookups.
            locks: Per-location locks shared with the sync service.
        """
        self.store = state_store
        self.config = config
        self.client = client
        self.ingestor = ingestor
        self.locks = locks or LocationLocks()

    def reconcile_location(self, location: str) -> ReconciliationResult:
        """Link every unlinked note of a location to its receipt.

        Running it twice in a row links nothing the second time.
        """
        start_time = time.time()
        result = ReconciliationResult(location=location)

        result.stale_links_cleared = self.store.clear_dangling_links(location)
        if result.stale_links_cleared:
            logger.info(f"[{location}] cleared {result.stale_links_cleared} links to deleted receipts")

        linked_receipts: set[str] = set()
        for access_key, receipt_id in self.store.find_linkable_pairs(location):
            # Two notes can never claim the same receipt in one pass
            if receipt_id in linked_receipts:
                continue
            try:
                if self.store.link_note_to_receipt(location, access_key, receipt_id):
                    linked_receipts.add(receipt_id)
                    result.linked += 1
                    logger.debug(f"[{location}] linked note {access_key} to receipt {receipt_id}")
            except Exception as e:
                logger.warning(f"[{location}] failed to link note {access_key}: {e}")
                result.errors.append(f"Note {access_key}: {e}")

        result.duration_ms = int((time.time() - start_time) * 1000)
        logger.info(f"[{location}] reconciliation: {result.linked} newly linked")
        return result

    def reconcile_receipt(
        self,
        location: str,
        receipt_id: str,
        access_key: str | None,
    ) -> ReceiptReconciliationResult:
        """Best-effort link of one receipt to its fiscal note.

        Never raises: every failure comes back as a ReconciliationWarning on
        the result, so the receipt's own creation is never affected.
        """
        key = normalize_access_key(access_key)
        if key is None:
            return self._warn(receipt_id, None, LinkOutcome.FAILED, "receipt has no valid access key")

        location = location or self.config.default_location
        if not location:
            return self._warn(receipt_id, key, LinkOutcome.FAILED, "no location given and no default configured")

        try:
            # One note per receipt
            current = self.store.get_note_for_receipt(receipt_id)
            if current is not None:
                if current.access_key == key:
                    return ReceiptReconciliationResult(receipt_id, key, LinkOutcome.ALREADY_LINKED)
                return self._warn(
                    receipt_id,
                    key,
                    LinkOutcome.LINKED_ELSEWHERE,
                    f"receipt is already linked to note {current.access_key}",
                )

            note = self.store.get_fiscal_note(location, key)
            outcome = LinkOutcome.LINKED

            if note is None:
                note = self._lookup_and_store(location, key)
                outcome = LinkOutcome.FETCHED_AND_LINKED
                if note is None:
                    return self._warn(
                        receipt_id, key, LinkOutcome.NOT_FOUND, "access key not found on the distribution service"
                    )

            if note.linked_receipt_id is not None:
                return self._warn(
                    receipt_id,
                    key,
                    LinkOutcome.LINKED_ELSEWHERE,
                    f"note is already linked to receipt {note.linked_receipt_id}",
                )

            if not self.store.link_note_to_receipt(location, key, receipt_id):
                return self._warn(receipt_id, key, LinkOutcome.FAILED, "note could not be linked")

        except DFeSyncError as e:
            return self._warn(receipt_id, key, LinkOutcome.FAILED, str(e), cause=e)
        except Exception as e:
            logger.exception(f"Unexpected failure reconciling receipt {receipt_id}")
            return self._warn(receipt_id, key, LinkOutcome.FAILED, f"unexpected error: {e}", cause=e)

        logger.info(f"[{location}] receipt {receipt_id} linked to note {key} ({outcome.value})")
        return ReceiptReconciliationResult(receipt_id, key, outcome)

    def handle_receipt_deleted(self, receipt_id: str) -> int:
        """Clear links to a receipt deleted upstream. Returns notes updated."""
        cleared = self.store.clear_links_for_receipt(receipt_id)
        if cleared:
            logger.info(f"Cleared {cleared} link(s) to deleted receipt {receipt_id}")
        return cleared

    def _lookup_and_store(self, location: str, access_key: str):
        """Point lookup by key on the location's channel, then persist."""
        if self.client is None or self.ingestor is None:
            return None

        ctx = LocationContext.for_location(self.config, location, self.store)
        with self.locks.hold(ctx.name):
            batch = self.client.fetch_by_access_key(ctx, access_key)
            if batch.outcome != BatchOutcome.SUCCESS:
                return None
            self.ingestor.ingest(ctx.name, batch.documents)

        return self.store.get_fiscal_note(ctx.name, access_key)

    def _warn(
        self,
        receipt_id: str,
        access_key: str | None,
        outcome: LinkOutcome,
        message: str,
        cause: Exception | None = None,
    ) -> ReceiptReconciliationResult:
        warning = ReconciliationWarning(receipt_id, message, cause)
        logger.warning(str(warning))
        return ReceiptReconciliationResult(receipt_id, access_key, outcome, warning)
