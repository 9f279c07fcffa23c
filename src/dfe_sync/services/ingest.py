"""Document ingestion: classify, categorize, persist.

Each document of a batch is handled in delivery order and reaches exactly
one terminal outcome (stored, skipped, stub, parse failure or failed).
A failure on one document never stops the next one.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from dfe_sync.categorization import DEFAULT_KEYWORD_TABLE, KeywordTable, categorize
from dfe_sync.errors import InvalidArgument, ParseError, PersistenceError
from dfe_sync.parsers import classify
from dfe_sync.schemas.documents import (
    BatchSummary,
    EventRecord,
    FiscalNote,
    FullRecord,
    RawDocument,
    SummaryRecord,
    Unrecognized,
)

if TYPE_CHECKING:
    from dfe_sync.state_store import StateStore

logger = logging.getLogger(__name__)


class DocumentIngestor:
    """Turns raw distribution documents into stored fiscal notes."""

    def __init__(
        self,
        state_store: StateStore,
        keyword_table: KeywordTable = DEFAULT_KEYWORD_TABLE,
    ) -> None:
        self.store = state_store
        self.keyword_table = keyword_table

    def ingest(self, location: str, documents: list[RawDocument]) -> BatchSummary:
        """Persist a batch, one independent outcome per document."""
        summary = BatchSummary()
        for raw in documents:
            self._ingest_one(location, raw, summary)

        logger.info(
            f"[{location}] batch: {summary.stored} stored, {summary.skipped} skipped, "
            f"{summary.unrecognized} unrecognized, {summary.parse_failures} parse failures, "
            f"{summary.failed} failed"
        )
        return summary

    def _ingest_one(self, location: str, raw: RawDocument, summary: BatchSummary) -> None:
        try:
            record = classify(raw)
        except ParseError as e:
            logger.warning(f"[{location}] {e}")
            summary.parse_failures += 1
            summary.errors.append(str(e))
            self._store_stub(location, raw.nsu, raw.schema_hint, raw.raw_text(), str(e), summary)
            return

        if isinstance(record, EventRecord):
            logger.debug(
                f"[{location}] NSU {record.nsu}: skipping event {record.event_type} for key {record.access_key}"
            )
            summary.skipped += 1
        elif isinstance(record, Unrecognized):
            if self._store_stub(location, record.nsu, record.schema_hint, record.raw, record.reason, summary):
                summary.unrecognized += 1
        elif isinstance(record, (SummaryRecord, FullRecord)):
            self._store_note(location, record, summary)
        else:
            raise TypeError(f"Unhandled document record: {type(record).__name__}")

    def _store_note(
        self,
        location: str,
        record: SummaryRecord | FullRecord,
        summary: BatchSummary,
    ) -> None:
        category = categorize(record.issuer_name, self.keyword_table)
        note = FiscalNote.from_record(record, location, category_id=category)
        try:
            self.store.upsert_fiscal_note(note)
        except (InvalidArgument, PersistenceError) as e:
            logger.warning(f"[{location}] NSU {record.nsu} not stored: {e}")
            summary.failed += 1
            summary.errors.append(str(e))
            return
        summary.stored += 1

    def _store_stub(
        self,
        location: str,
        nsu: str,
        schema_hint: str | None,
        raw_text: str,
        reason: str | None,
        summary: BatchSummary,
    ) -> bool:
        try:
            self.store.upsert_unrecognized_document(location, nsu, schema_hint, raw_text, reason)
        except (InvalidArgument, PersistenceError) as e:
            logger.warning(f"[{location}] NSU {nsu or '(none)'} stub not stored: {e}")
            summary.failed += 1
            summary.errors.append(str(e))
            return False
        return True
