"""Tests for state store."""

from decimal import Decimal

import pytest

from dfe_sync.errors import InvalidArgument
from dfe_sync.schemas import ZERO_NSU, FiscalNote, NoteStatus
from dfe_sync.state_store import JobStatus, StateStore
from fixtures import KEY_GAS_STATION, KEY_PHARMACY, KEY_SUPERMARKET, LOCATION


def make_note(access_key: str = KEY_SUPERMARKET, nsu: str = "1", **overrides) -> FiscalNote:
    fields = dict(
        location=LOCATION,
        access_key=access_key,
        nsu=nsu,
        status=NoteStatus.ACTIVE,
        issuer_name="Supermercado Bretas Caratinga",
        issuer_cnpj="12345678000190",
        issue_date="2025-01-15T10:30:00-03:00",
        total_value=Decimal("125.90"),
        raw_document="{}",
    )
    fields.update(overrides)
    return FiscalNote(**fields)


class TestStateStore:
    """Tests for SQLite state store."""

    def test_init_creates_db(self, temp_db):
        """Initializing creates database file."""
        StateStore(temp_db)
        assert temp_db.exists()

    def test_init_creates_tables(self, store):
        """All required tables are created."""
        conn = store._get_connection()
        try:
            tables = conn.execute("SELECT name FROM sqlite_master WHERE type='table'").fetchall()
            table_names = [t[0] for t in tables]

            assert "sync_cursors" in table_names
            assert "fiscal_notes" in table_names
            assert "unrecognized_documents" in table_names
            assert "receipts" in table_names
            assert "reconciliation_jobs" in table_names
            assert "sync_runs" in table_names
        finally:
            conn.close()

    def test_reopen_keeps_data(self, temp_db):
        StateStore(temp_db).advance_cursor(LOCATION, "5")
        assert StateStore(temp_db).get_last_nsu(LOCATION) == "000000000000005"


class TestCursor:
    """Tests for distribution cursor operations."""

    def test_missing_cursor_reads_zero(self, store):
        assert store.get_cursor(LOCATION) is None
        assert store.get_last_nsu(LOCATION) == ZERO_NSU

    def test_created_lazily(self, store):
        cursor = store.advance_cursor(LOCATION, "12", "000000000000040")

        assert cursor.last_nsu == "000000000000012"
        assert cursor.max_nsu == "000000000000040"
        assert store.get_cursor(LOCATION).last_nsu == "000000000000012"

    def test_never_moves_backwards(self, store):
        store.advance_cursor(LOCATION, "20")
        cursor = store.advance_cursor(LOCATION, "10")

        assert cursor.last_nsu == "000000000000020"
        assert store.get_last_nsu(LOCATION) == "000000000000020"

    def test_max_nsu_kept_when_not_given(self, store):
        store.advance_cursor(LOCATION, "20", "000000000000050")
        cursor = store.advance_cursor(LOCATION, "30")
        assert cursor.max_nsu == "000000000000050"

    def test_locations_independent(self, store):
        store.advance_cursor(LOCATION, "20")
        store.advance_cursor("Ponte Nova", "3")

        assert store.get_last_nsu(LOCATION) == "000000000000020"
        assert store.get_last_nsu("Ponte Nova") == "000000000000003"


class TestFiscalNotes:
    """Tests for fiscal note upsert and queries."""

    def test_insert_and_get(self, store):
        store.upsert_fiscal_note(make_note())

        note = store.get_fiscal_note(LOCATION, KEY_SUPERMARKET)
        assert note is not None
        assert note.nsu == "000000000000001"
        assert note.total_value == Decimal("125.90")
        assert note.status == NoteStatus.ACTIVE

    def test_upsert_idempotent(self, store):
        store.upsert_fiscal_note(make_note())
        store.upsert_fiscal_note(make_note())

        assert len(store.list_fiscal_notes(LOCATION)) == 1

    def test_later_delivery_merges(self, store):
        """Summary then full document: later fields win, absent ones are kept."""
        store.upsert_fiscal_note(make_note(nsu="1", category_id="Alimentação"))
        store.upsert_fiscal_note(
            make_note(
                nsu="9",
                status=NoteStatus.CANCELLED,
                issuer_name="SUPERMERCADO BRETAS LTDA",
                issue_date=None,
                total_value=None,
                note_number="1234",
                category_id=None,
                raw_document="<nfeProc/>",
            )
        )

        note = store.get_fiscal_note(LOCATION, KEY_SUPERMARKET)
        assert note.nsu == "000000000000009"
        assert note.status == NoteStatus.CANCELLED
        assert note.issuer_name == "SUPERMERCADO BRETAS LTDA"
        assert note.issue_date == "2025-01-15T10:30:00-03:00"
        assert note.total_value == Decimal("125.90")
        assert note.note_number == "1234"
        assert note.category_id == "Alimentação"
        assert note.raw_document == "<nfeProc/>"

    def test_redelivery_keeps_link(self, store):
        store.upsert_fiscal_note(make_note())
        store.link_note_to_receipt(LOCATION, KEY_SUPERMARKET, "rcpt-1")
        store.upsert_fiscal_note(make_note(nsu="2"))

        assert store.get_fiscal_note(LOCATION, KEY_SUPERMARKET).linked_receipt_id == "rcpt-1"

    @pytest.mark.parametrize("key", ["", "123", KEY_SUPERMARKET + "9"])
    def test_invalid_key_rejected(self, store, key):
        with pytest.raises(InvalidArgument):
            store.upsert_fiscal_note(make_note(access_key=key))
        assert store.list_fiscal_notes(LOCATION) == []

    def test_same_key_different_locations(self, store):
        store.upsert_fiscal_note(make_note())
        store.upsert_fiscal_note(make_note(location="Ponte Nova"))

        assert len(store.list_fiscal_notes(LOCATION)) == 1
        assert len(store.list_fiscal_notes("Ponte Nova")) == 1

    def test_list_search_and_dates(self, store):
        store.upsert_fiscal_note(make_note())
        store.upsert_fiscal_note(
            make_note(
                access_key=KEY_GAS_STATION,
                issuer_name="Auto Posto Shell",
                issue_date="2025-02-03T08:00:00-03:00",
            )
        )

        assert [n.access_key for n in store.list_fiscal_notes(LOCATION, search="posto")] == [KEY_GAS_STATION]
        assert [n.access_key for n in store.list_fiscal_notes(LOCATION, date_to="2025-01-31")] == [KEY_SUPERMARKET]
        newest_first = store.list_fiscal_notes(LOCATION, date_from="2025-01-01")
        assert [n.access_key for n in newest_first] == [KEY_GAS_STATION, KEY_SUPERMARKET]


class TestUnrecognizedDocuments:
    """Tests for unrecognized stubs."""

    def test_stub_keyed_by_nsu(self, store):
        store.upsert_unrecognized_document(LOCATION, "7", "resCTe_v1.00.xsd", "<resCTe/>", "unknown schema")
        store.upsert_unrecognized_document(LOCATION, "000000000000007", "resCTe_v1.00.xsd", "<resCTe/>", "again")

        stubs = store.list_unrecognized_documents(LOCATION)
        assert len(stubs) == 1
        assert stubs[0]["nsu"] == "000000000000007"
        assert stubs[0]["status"] == "unknown"
        assert stubs[0]["reason"] == "again"

    def test_stub_never_becomes_note(self, store):
        store.upsert_unrecognized_document(LOCATION, "7", "", "{}", "empty payload")
        assert store.list_fiscal_notes(LOCATION) == []


class TestLinks:
    """Tests for note <-> receipt links."""

    def test_record_receipt_normalizes_key(self, store):
        spaced = " ".join(KEY_SUPERMARKET[i : i + 4] for i in range(0, 44, 4))
        receipt = store.record_receipt("rcpt-1", LOCATION, spaced, establishment="Bretas", total_amount="125.90")

        assert receipt.extracted_access_key == KEY_SUPERMARKET
        assert receipt.total_amount == Decimal("125.90")

    def test_record_receipt_drops_invalid_key(self, store):
        receipt = store.record_receipt("rcpt-1", LOCATION, "12345")
        assert receipt.extracted_access_key is None

    def test_link_only_if_unlinked(self, store):
        store.upsert_fiscal_note(make_note())

        assert store.link_note_to_receipt(LOCATION, KEY_SUPERMARKET, "rcpt-1") is True
        assert store.link_note_to_receipt(LOCATION, KEY_SUPERMARKET, "rcpt-2") is False
        assert store.get_note_for_receipt("rcpt-1").access_key == KEY_SUPERMARKET

    def test_clear_links_for_receipt(self, store):
        store.upsert_fiscal_note(make_note())
        store.link_note_to_receipt(LOCATION, KEY_SUPERMARKET, "rcpt-1")

        assert store.clear_links_for_receipt("rcpt-1") == 1
        assert store.get_fiscal_note(LOCATION, KEY_SUPERMARKET).linked_receipt_id is None

    def test_clear_dangling_links(self, store):
        store.upsert_fiscal_note(make_note())
        store.upsert_fiscal_note(make_note(access_key=KEY_GAS_STATION))
        store.record_receipt("rcpt-live", LOCATION, KEY_GAS_STATION)
        store.link_note_to_receipt(LOCATION, KEY_SUPERMARKET, "rcpt-gone")
        store.link_note_to_receipt(LOCATION, KEY_GAS_STATION, "rcpt-live")

        assert store.clear_dangling_links(LOCATION) == 1
        assert store.get_fiscal_note(LOCATION, KEY_SUPERMARKET).linked_receipt_id is None
        assert store.get_fiscal_note(LOCATION, KEY_GAS_STATION).linked_receipt_id == "rcpt-live"

    def test_find_linkable_pairs(self, store):
        store.upsert_fiscal_note(make_note())
        store.upsert_fiscal_note(make_note(access_key=KEY_GAS_STATION))
        store.upsert_fiscal_note(make_note(access_key=KEY_PHARMACY))
        store.record_receipt("rcpt-1", LOCATION, KEY_SUPERMARKET)
        store.record_receipt("rcpt-2", LOCATION, KEY_GAS_STATION)
        store.record_receipt("rcpt-other", "Ponte Nova", KEY_PHARMACY)
        store.link_note_to_receipt(LOCATION, KEY_GAS_STATION, "rcpt-2")

        assert store.find_linkable_pairs(LOCATION) == [(KEY_SUPERMARKET, "rcpt-1")]


class TestReconciliationJobs:
    """Tests for the reconciliation job queue tables."""

    def test_one_active_job_per_receipt(self, store):
        first = store.enqueue_reconciliation_job(LOCATION, "rcpt-1", KEY_SUPERMARKET)
        second = store.enqueue_reconciliation_job(LOCATION, "rcpt-1", KEY_SUPERMARKET)

        assert first is not None
        assert second is None

    def test_job_lifecycle(self, store):
        job_id = store.enqueue_reconciliation_job(LOCATION, "rcpt-1", KEY_SUPERMARKET)

        assert store.start_reconciliation_job(job_id) is True
        assert store.start_reconciliation_job(job_id) is False
        store.complete_reconciliation_job(job_id, "LINKED")

        job = store.get_reconciliation_job(job_id)
        assert job["status"] == JobStatus.COMPLETED
        assert job["outcome"] == "LINKED"
        assert store.get_pending_reconciliation_jobs() == []

    def test_retries_then_fails(self, store):
        job_id = store.enqueue_reconciliation_job(LOCATION, "rcpt-1", KEY_SUPERMARKET, max_retries=2)

        assert store.fail_reconciliation_job(job_id, "not found") == JobStatus.PENDING
        assert store.fail_reconciliation_job(job_id, "not found") == JobStatus.FAILED
        assert store.get_reconciliation_job(job_id)["retry_count"] == 2


class TestSyncRunsAndStats:
    """Tests for the sync audit trail and status counters."""

    def test_record_and_get_last_run(self, store):
        store.record_sync_run(LOCATION, "MANUAL", "NO_NEW_DOCUMENTS", status_code="137")
        store.record_sync_run(LOCATION, "MANUAL", "SYNCED", stored=3, status_code="138")

        last = store.get_last_sync_run(LOCATION)
        assert last["outcome"] == "SYNCED"
        assert last["stored"] == 3

    def test_stats(self, store):
        store.advance_cursor(LOCATION, "15", "000000000000020")
        store.upsert_fiscal_note(make_note(category_id="Alimentação"))
        store.upsert_fiscal_note(make_note(access_key=KEY_GAS_STATION, status=NoteStatus.CANCELLED))
        store.link_note_to_receipt(LOCATION, KEY_SUPERMARKET, "rcpt-1")
        store.upsert_unrecognized_document(LOCATION, "9", "", "{}", "empty payload")

        stats = store.get_stats(LOCATION)

        assert stats["last_nsu"] == "000000000000015"
        assert stats["notes_total"] == 2
        assert stats["notes_linked"] == 1
        assert stats["notes_uncategorized"] == 1
        assert stats["notes_by_status"] == {"active": 1, "cancelled": 1}
        assert stats["unrecognized_documents"] == 1
