"""
CLI main entry point.
"""

import argparse
import logging
import sys
from pathlib import Path

from ..categorization import load_keyword_table
from ..config import Config, create_default_config, load_config
from ..distribution_client import DistributionClient
from ..errors import DFeSyncError
from ..services import (
    DocumentIngestor,
    LocationLocks,
    ReconciliationQueue,
    ReconciliationService,
    SyncResult,
    SyncService,
)
from ..state_store import StateStore

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def create_cli() -> argparse.ArgumentParser:
    """Create CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="dfe-sync",
        description="Pull fiscal notes from SEFAZ Distribuição DF-e and link them to receipts",
    )

    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=Path("config.yaml"),
        help="Path to config file (default: config.yaml)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    subparsers.add_parser("init-config", help="Write a commented config template")

    # sync command
    sync_parser = subparsers.add_parser("sync", help="Fetch new documents for a location")
    sync_parser.add_argument(
        "--location",
        type=str,
        help="Location name (default: default_location from config)",
    )
    sync_parser.add_argument(
        "--max-batches",
        type=int,
        help="Maximum batches to fetch (default: distribution.max_batches_per_sync)",
    )

    # point lookups
    key_parser = subparsers.add_parser("lookup-key", help="Fetch one note by access key")
    key_parser.add_argument("access_key", type=str, help="44-digit access key")
    key_parser.add_argument("--location", type=str, help="Location name")

    nsu_parser = subparsers.add_parser("lookup-nsu", help="Fetch one document by NSU")
    nsu_parser.add_argument("nsu", type=str, help="NSU to fetch")
    nsu_parser.add_argument("--location", type=str, help="Location name")

    # reconcile command
    reconcile_parser = subparsers.add_parser(
        "reconcile", help="Link stored fiscal notes to receipts by access key"
    )
    reconcile_parser.add_argument(
        "--location",
        type=str,
        help="Location name (default: every configured location)",
    )

    # link-receipt command
    link_parser = subparsers.add_parser(
        "link-receipt", help="Record a receipt and reconcile it with its fiscal note"
    )
    link_parser.add_argument("--receipt-id", required=True, help="Receipt ID")
    link_parser.add_argument("--access-key", required=True, help="Access key read from the receipt")
    link_parser.add_argument("--location", type=str, help="Location name")
    link_parser.add_argument(
        "--queue",
        action="store_true",
        help="Queue the reconciliation instead of running it now",
    )

    # process-queue command
    queue_parser = subparsers.add_parser("process-queue", help="Run pending reconciliation jobs")
    queue_parser.add_argument(
        "--limit",
        type=int,
        help="Maximum jobs to process (default: reconciliation.queue_batch_size)",
    )

    status_parser = subparsers.add_parser("status", help="Show cursor and note statistics")
    status_parser.add_argument("--location", type=str, help="Location name (default: all)")

    return parser


class Services:
    """Wires the store, client and services from one config."""

    def __init__(self, config: Config):
        self.config = config
        self.store = StateStore(config.state_db_path)
        self.client = DistributionClient(
            timeout=config.distribution.timeout_seconds,
            max_retries=config.distribution.max_retries,
            backoff_factor=config.distribution.backoff_factor,
        )
        keyword_table = load_keyword_table(config.categorization.keyword_table_path)
        self.locks = LocationLocks()
        self.ingestor = DocumentIngestor(self.store, keyword_table)
        self.reconciliation = ReconciliationService(
            self.store, config, self.client, self.ingestor, self.locks
        )
        self.sync = SyncService(
            self.client,
            self.store,
            config,
            keyword_table=keyword_table,
            locks=self.locks,
            reconciliation=self.reconciliation,
        )
        self.queue = ReconciliationQueue(self.store, self.reconciliation, config)


def _resolve_location(config: Config, location: str | None) -> str | None:
    return location or config.default_location


def _print_sync_result(result: SyncResult) -> None:
    print()
    print(f"📊 Sync Results ({result.location})")
    print("=" * 40)
    print(f"  Outcome:          {result.outcome.value}")
    print(f"  Status:           {result.status_code or '-'} {result.status_text or ''}")
    print(f"  Batches:          {result.batches}")
    print(f"  Stored:           {result.stored}")
    print(f"  Events skipped:   {result.skipped}")
    print(f"  Unrecognized:     {result.unrecognized}")
    print(f"  Parse failures:   {result.parse_failures}")
    print(f"  Failed:           {result.failed}")
    print(f"  Linked:           {result.linked}")
    if result.ult_nsu:
        print(f"  Cursor:           {result.ult_nsu} (max {result.max_nsu or '?'})")
    print(f"  Duration:         {result.duration_ms}ms")
    print()

    if result.errors:
        print("⚠️  Errors encountered:")
        for error in result.errors:
            print(f"   - {error}")


def cmd_init_config(config_path: Path) -> int:
    """Write a config template."""
    if config_path.exists():
        print(f"❌ Config already exists: {config_path}")
        return 1
    create_default_config(config_path)
    print(f"✓ Wrote config template to {config_path}")
    return 0


def cmd_sync(services: Services, location: str | None, max_batches: int | None) -> int:
    """Drain new documents for a location."""
    name = _resolve_location(services.config, location)
    print(f"🔄 Syncing location {name}...")

    try:
        result = services.sync.sync_location(name, max_batches=max_batches)
    except DFeSyncError as e:
        print(f"❌ Sync failed: {e}")
        return 1

    _print_sync_result(result)
    print(f"✓ {result.message}")
    return 0


def cmd_lookup_key(services: Services, location: str | None, access_key: str) -> int:
    """Fetch and store one note by access key."""
    name = _resolve_location(services.config, location)
    print(f"🔎 Looking up access key {access_key}...")
    try:
        result = services.sync.import_by_access_key(name, access_key)
    except DFeSyncError as e:
        print(f"❌ Lookup failed: {e}")
        return 1

    print(f"✓ {result.message}")
    return 0


def cmd_lookup_nsu(services: Services, location: str | None, nsu: str) -> int:
    """Fetch and store one document by NSU."""
    name = _resolve_location(services.config, location)
    print(f"🔎 Looking up NSU {nsu}...")
    try:
        result = services.sync.fetch_nsu(name, nsu)
    except DFeSyncError as e:
        print(f"❌ Lookup failed: {e}")
        return 1

    print(f"✓ {result.message}")
    return 0


def cmd_reconcile(services: Services, location: str | None) -> int:
    """Run the batch reconciliation pass."""
    locations = [location] if location else list(services.config.locations)
    if not locations:
        print("❌ No locations configured")
        return 1

    exit_code = 0
    for name in locations:
        print(f"🔗 Reconciling {name}...")
        result = services.reconciliation.reconcile_location(name)
        print(f"  Newly linked:        {result.linked}")
        print(f"  Stale links cleared: {result.stale_links_cleared}")
        if result.errors:
            exit_code = 1
            print("⚠️  Errors encountered:")
            for error in result.errors:
                print(f"   - {error}")
    return exit_code


def cmd_link_receipt(
    services: Services,
    location: str | None,
    receipt_id: str,
    access_key: str,
    queue: bool = False,
) -> int:
    """Record a receipt, then reconcile it now or queue it."""
    name = _resolve_location(services.config, location)
    if not name:
        print("❌ No location given and no default_location configured")
        return 1

    services.store.record_receipt(receipt_id, name, extracted_access_key=access_key)

    if queue:
        job_id = services.queue.enqueue(name, receipt_id, access_key)
        if job_id is None:
            print("⚠️  Nothing queued (invalid key or job already active)")
        else:
            print(f"✓ Queued reconciliation job #{job_id}")
        return 0

    result = services.reconciliation.reconcile_receipt(name, receipt_id, access_key)
    if result.warning:
        print(f"⚠️  {result.outcome.value}: {result.warning}")
        return 0 if result.linked else 1

    print(f"✓ {result.outcome.value}: receipt {receipt_id} ↔ note {result.access_key}")
    return 0


def cmd_process_queue(services: Services, limit: int | None) -> int:
    """Drain pending reconciliation jobs."""
    print("⏳ Processing reconciliation queue...")
    run = services.queue.process_pending(limit)
    print(f"  Processed:  {run.processed}")
    print(f"  Completed:  {run.completed}")
    print(f"  To retry:   {run.retried}")
    print(f"  Failed:     {run.failed}")
    return 1 if run.failed else 0


def cmd_status(services: Services, location: str | None) -> int:
    """Show cursor and note statistics."""
    locations = [location] if location else list(services.config.locations)

    history = services.store.get_schema_history()
    if history:
        latest = history[-1]
        print(f"🗄️  Schema version {latest['version']} ({latest['name']}, applied {latest['applied_at']})")

    for name in locations:
        stats = services.store.get_stats(name)
        last_run = services.store.get_last_sync_run(name)

        print(f"\n📊 Status: {name}")
        print("=" * 40)
        print(f"  Last NSU:               {stats['last_nsu']}")
        print(f"  Max NSU:                {stats['max_nsu'] or '-'}")
        print(f"  Cursor updated:         {stats['cursor_updated_at'] or 'never'}")
        print(f"  Fiscal notes:           {stats['notes_total']}")
        for status, count in sorted(stats["notes_by_status"].items()):
            print(f"    {status:<20}  {count}")
        print(f"  Linked to receipts:     {stats['notes_linked']}")
        print(f"  Uncategorized:          {stats['notes_uncategorized']}")
        print(f"  Unrecognized documents: {stats['unrecognized_documents']}")
        print(f"  Pending reconciliation: {stats['pending_reconciliation_jobs']}")
        if last_run:
            print(f"  Last sync:              {last_run['run_at']} ({last_run['outcome']})")
    print()

    return 0


def main(args: list[str] | None = None) -> int:
    """Main entry point."""
    parser = create_cli()
    parsed = parser.parse_args(args)

    setup_logging(parsed.verbose)

    if not parsed.command:
        parser.print_help()
        return 1

    if parsed.command == "init-config":
        return cmd_init_config(parsed.config)

    # Load config
    try:
        config = load_config(parsed.config)
        services = Services(config)
    except Exception as e:
        print(f"❌ Failed to load config: {e}")
        return 1

    # Route to command
    if parsed.command == "sync":
        return cmd_sync(services, parsed.location, parsed.max_batches)
    elif parsed.command == "lookup-key":
        return cmd_lookup_key(services, parsed.location, parsed.access_key)
    elif parsed.command == "lookup-nsu":
        return cmd_lookup_nsu(services, parsed.location, parsed.nsu)
    elif parsed.command == "reconcile":
        return cmd_reconcile(services, parsed.location)
    elif parsed.command == "link-receipt":
        return cmd_link_receipt(
            services,
            parsed.location,
            receipt_id=parsed.receipt_id,
            access_key=parsed.access_key,
            queue=parsed.queue,
        )
    elif parsed.command == "process-queue":
        return cmd_process_queue(services, parsed.limit)
    elif parsed.command == "status":
        return cmd_status(services, parsed.location)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
