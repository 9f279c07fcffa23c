"""Tests for the distribution sync service."""

from unittest.mock import MagicMock

import pytest

from dfe_sync.config import LocationConfig
from dfe_sync.distribution_client import BatchOutcome, BatchResult
from dfe_sync.errors import ConfigurationError, ServiceRejected, SyncInProgressError, TransportError
from dfe_sync.parsers import decode_document
from dfe_sync.schemas import NoteStatus
from dfe_sync.services import ReconciliationService, SyncOutcome, SyncService, SyncTrigger
from fixtures import (
    GATEWAY_URL,
    KEY_SUPERMARKET,
    LOCATION,
    broken_summary_doc,
    event_doc,
    make_key,
    summary_doc,
)


def batch(docs, ult_nsu, max_nsu) -> BatchResult:
    return BatchResult(
        outcome=BatchOutcome.SUCCESS,
        status_code="138",
        status_text="Documento(s) localizado(s)",
        ult_nsu=ult_nsu,
        max_nsu=max_nsu,
        documents=[decode_document(doc) for doc in docs],
    )


def no_documents() -> BatchResult:
    return BatchResult(
        outcome=BatchOutcome.NO_NEW_DOCUMENTS,
        status_code="137",
        status_text="Nenhum documento localizado",
    )


@pytest.fixture
def client():
    return MagicMock()


@pytest.fixture
def service(client, store, config):
    return SyncService(client, store, config)


class TestSyncLocation:
    """Tests for the drain loop and cursor handling."""

    def test_no_new_documents_leaves_cursor(self, service, client, store):
        store.advance_cursor(LOCATION, "10")
        client.fetch_since.return_value = no_documents()

        result = service.sync_location(LOCATION)

        assert result.outcome == SyncOutcome.NO_NEW_DOCUMENTS
        assert result.message == "No new documents"
        assert store.get_last_nsu(LOCATION) == "000000000000010"

    def test_first_sync_starts_from_zero(self, service, client):
        client.fetch_since.return_value = no_documents()

        service.sync_location(LOCATION)

        ctx, since = client.fetch_since.call_args[0]
        assert ctx.name == LOCATION
        assert since == "000000000000000"

    def test_batch_advances_cursor_to_ult_nsu(self, service, client, store):
        client.fetch_since.return_value = batch(
            [summary_doc("000000000000001")], "000000000000001", "000000000000001"
        )

        result = service.sync_location(LOCATION)

        assert result.outcome == SyncOutcome.SYNCED
        assert result.stored == 1
        assert result.batches == 1
        assert store.get_last_nsu(LOCATION) == "000000000000001"
        assert store.get_cursor(LOCATION).max_nsu == "000000000000001"

    def test_partial_failure_isolated(self, service, client, store):
        """Five documents, the third fails to parse: four stored, cursor advanced."""
        docs = [summary_doc(f"00000000000000{i}", access_key=make_key(i)) for i in range(1, 6)]
        docs[2] = broken_summary_doc("000000000000003")
        client.fetch_since.return_value = batch(docs, "000000000000005", "000000000000005")

        result = service.sync_location(LOCATION)

        assert result.stored == 4
        assert result.parse_failures == 1
        assert result.failed == 0
        assert len(store.list_fiscal_notes(LOCATION)) == 4
        assert store.get_last_nsu(LOCATION) == "000000000000005"

    def test_null_entry_does_not_abort_batch(self, service, client, store):
        client.fetch_since.return_value = batch(
            [None, summary_doc("000000000000002")], "000000000000002", "000000000000002"
        )

        result = service.sync_location(LOCATION)

        assert result.outcome == SyncOutcome.SYNCED
        assert result.stored == 1
        assert result.failed == 1
        assert store.get_last_nsu(LOCATION) == "000000000000002"
        assert store.get_last_sync_run(LOCATION)["failed"] == 1

    def test_transport_error_leaves_cursor(self, service, client, store):
        store.advance_cursor(LOCATION, "10")
        client.fetch_since.side_effect = TransportError("timed out")

        with pytest.raises(TransportError):
            service.sync_location(LOCATION)

        assert store.get_last_nsu(LOCATION) == "000000000000010"
        run = store.get_last_sync_run(LOCATION)
        assert run["outcome"] == SyncOutcome.FAILED.value
        assert "timed out" in run["error_message"]

    def test_service_rejection_leaves_cursor(self, service, client, store):
        store.advance_cursor(LOCATION, "10")
        client.fetch_since.side_effect = ServiceRejected("589", "NSU superior ao maior NSU")

        with pytest.raises(ServiceRejected):
            service.sync_location(LOCATION)

        assert store.get_last_nsu(LOCATION) == "000000000000010"
        run = store.get_last_sync_run(LOCATION)
        assert run["outcome"] == SyncOutcome.REJECTED.value
        assert run["status_code"] == "589"

    def test_failure_in_second_batch_keeps_first(self, service, client, store):
        client.fetch_since.side_effect = [
            batch([summary_doc("000000000000001")], "000000000000001", "000000000000009"),
            TransportError("connection reset"),
        ]

        with pytest.raises(TransportError):
            service.sync_location(LOCATION)

        assert store.get_last_nsu(LOCATION) == "000000000000001"
        assert store.get_fiscal_note(LOCATION, KEY_SUPERMARKET) is not None

    def test_drains_while_behind_max_nsu(self, service, client, store):
        client.fetch_since.side_effect = [
            batch([summary_doc("000000000000001", access_key=make_key(1))], "000000000000002", "000000000000004"),
            batch([summary_doc("000000000000003", access_key=make_key(3))], "000000000000004", "000000000000004"),
        ]

        result = service.sync_location(LOCATION)

        assert result.batches == 2
        assert result.stored == 2
        assert [c[0][1] for c in client.fetch_since.call_args_list] == ["000000000000000", "000000000000002"]
        assert store.get_last_nsu(LOCATION) == "000000000000004"

    def test_batch_limit(self, service, client, store):
        client.fetch_since.side_effect = [
            batch([summary_doc(f"00000000000000{i}", access_key=make_key(i))], f"00000000000000{i}", "000000000000099")
            for i in range(1, 4)
        ]

        result = service.sync_location(LOCATION, max_batches=2)

        assert result.batches == 2
        assert client.fetch_since.call_count == 2
        assert store.get_last_nsu(LOCATION) == "000000000000002"

    def test_stalled_ult_nsu_stops_loop(self, service, client):
        client.fetch_since.return_value = batch([], "000000000000000", "000000000000050")

        result = service.sync_location(LOCATION)

        assert client.fetch_since.call_count == 1
        assert result.batches == 1

    def test_run_recorded(self, service, client, store):
        client.fetch_since.return_value = batch(
            [summary_doc("000000000000001"), event_doc("000000000000002")], "000000000000002", "000000000000002"
        )

        service.sync_location(LOCATION, trigger=SyncTrigger.SCHEDULED)

        run = store.get_last_sync_run(LOCATION)
        assert run["trigger"] == "SCHEDULED"
        assert run["outcome"] == "SYNCED"
        assert run["stored"] == 1
        assert run["skipped"] == 1
        assert run["ult_nsu"] == "000000000000002"

    def test_default_location_used(self, service, client):
        client.fetch_since.return_value = no_documents()

        result = service.sync_location()

        assert result.location == LOCATION

    def test_unknown_location(self, service, client):
        with pytest.raises(ConfigurationError):
            service.sync_location("Manhuaçu")
        client.fetch_since.assert_not_called()

    def test_unusable_channel(self, service, client, config):
        config.locations[LOCATION].gateway_url = ""

        with pytest.raises(ConfigurationError):
            service.sync_location(LOCATION)
        client.fetch_since.assert_not_called()

    def test_missing_certificate_rejected_before_fetch(self, service, client, config, store):
        config.locations[LOCATION].cert_path = None

        with pytest.raises(ConfigurationError, match="cert_path"):
            service.sync_location(LOCATION)
        client.fetch_since.assert_not_called()
        assert store.get_cursor(LOCATION) is None

    def test_concurrent_trigger_rejected(self, service, client, caplog):
        with service.locks.hold(LOCATION):
            with pytest.raises(SyncInProgressError):
                service.sync_location(LOCATION)
        client.fetch_since.assert_not_called()
        assert f"Rejected concurrent operation for location {LOCATION}" in caplog.text

    def test_other_location_runs_while_one_is_busy(self, service, client, store, config, cert_path):
        config.locations["Ponte Nova"] = LocationConfig(
            name="Ponte Nova", cnpj="99888777000166", gateway_url=GATEWAY_URL, cert_path=str(cert_path)
        )
        held_during_fetch = {}

        def fetch(ctx, since):
            held_during_fetch[ctx.name] = service.locks.is_busy(ctx.name)
            return batch([summary_doc("000000000000001")], "000000000000001", "000000000000001")

        client.fetch_since.side_effect = fetch

        with service.locks.hold(LOCATION):
            result = service.sync_location("Ponte Nova")
            assert service.locks.is_busy(LOCATION)

        assert result.outcome == SyncOutcome.SYNCED
        assert held_during_fetch == {"Ponte Nova": True}
        assert not service.locks.is_busy("Ponte Nova")
        assert store.get_last_nsu("Ponte Nova") == "000000000000001"
        assert store.get_last_nsu(LOCATION) == "000000000000000"
        assert store.get_fiscal_note("Ponte Nova", KEY_SUPERMARKET) is not None


class TestPointLookups:
    """Tests for NSU and access key lookups."""

    def test_fetch_nsu_does_not_move_cursor(self, service, client, store):
        store.advance_cursor(LOCATION, "3")
        client.fetch_by_nsu.return_value = batch([summary_doc("000000000000050")], "000000000000050", "000000000000060")

        result = service.fetch_nsu(LOCATION, "50")

        assert result.stored == 1
        assert store.get_last_nsu(LOCATION) == "000000000000003"
        assert store.get_last_sync_run(LOCATION)["trigger"] == "LOOKUP_NSU"

    def test_import_by_access_key(self, service, client, store):
        client.fetch_by_access_key.return_value = batch([summary_doc("000000000000050")], None, None)

        result = service.import_by_access_key(LOCATION, KEY_SUPERMARKET)

        assert result.outcome == SyncOutcome.SYNCED
        assert store.get_fiscal_note(LOCATION, KEY_SUPERMARKET) is not None
        assert store.get_cursor(LOCATION) is None

    def test_lookup_not_found(self, service, client):
        client.fetch_by_access_key.return_value = no_documents()

        result = service.import_by_access_key(LOCATION, KEY_SUPERMARKET)

        assert result.outcome == SyncOutcome.NO_NEW_DOCUMENTS
        assert result.stored == 0


class TestEndToEnd:
    """Summary plus event, then batch reconciliation."""

    def test_summary_and_event_then_linked(self, client, store, config):
        store.record_receipt("rcpt-1", LOCATION, KEY_SUPERMARKET, establishment="Bretas")
        reconciliation = ReconciliationService(store, config)
        service = SyncService(client, store, config, reconciliation=reconciliation)
        client.fetch_since.return_value = batch(
            [summary_doc("000000000000001"), event_doc("000000000000002")], "000000000000002", "000000000000002"
        )

        result = service.sync_location(LOCATION)

        notes = store.list_fiscal_notes(LOCATION)
        assert len(notes) == 1
        assert notes[0].status == NoteStatus.ACTIVE
        assert notes[0].category_id == "Alimentação"
        assert notes[0].linked_receipt_id == "rcpt-1"
        assert result.skipped == 1
        assert result.linked == 1
        assert store.get_last_nsu(LOCATION) == "000000000000002"
