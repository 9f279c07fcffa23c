"""
SQLite-based state store implementation.

Tables:
- sync_cursors: Last consumed NSU and last-seen maxNSU per location
- fiscal_notes: Fiscal notes keyed by (location, access_key)
- unrecognized_documents: Stubs for documents of unknown shape, keyed by NSU
- receipts: Receipt mirror written by the capture pipeline (migration 001)
- reconciliation_jobs: Queued single-shot reconciliations (migration 002)
- sync_runs: Audit trail of sync attempts (migration 003)
"""

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any

from ..errors import InvalidArgument, PersistenceError
from ..schemas.access_key import ZERO_NSU, normalize_access_key, normalize_nsu, nsu_as_int
from ..schemas.documents import FiscalNote


def _now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class JobStatus:
    """Status values of a reconciliation job."""

    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    ACTIVE = (PENDING, PROCESSING)


@dataclass
class SyncCursor:
    """Distribution cursor of one location."""

    location: str
    last_nsu: str
    max_nsu: str | None
    updated_at: str

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "SyncCursor":
        """Create from database row."""
        return cls(
            location=row["location"],
            last_nsu=normalize_nsu(row["last_nsu"]),
            max_nsu=row["max_nsu"],
            updated_at=row["updated_at"],
        )


@dataclass
class ReceiptRecord:
    """Receipt as seen by the engine (owned by the capture pipeline)."""

    id: str
    location: str
    extracted_access_key: str | None
    establishment: str | None
    total_amount: Decimal | None
    issue_date: str | None
    created_at: str

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "ReceiptRecord":
        """Create from database row."""
        return cls(
            id=row["id"],
            location=row["location"],
            extracted_access_key=row["extracted_access_key"],
            establishment=row["establishment"],
            total_amount=Decimal(row["total_amount"]) if row["total_amount"] is not None else None,
            issue_date=row["issue_date"],
            created_at=row["created_at"],
        )


class StateStore:
    """
    SQLite-based state store for the engine.

    Provides persistent tracking of:
    - Distribution cursors (per location)
    - Fiscal notes and unrecognized stubs
    - Receipt mirror and note <-> receipt links
    - Reconciliation job queue
    - Sync runs (audit trail)

    Every public method opens its own short transaction, so one failed
    write never affects another.
    """

    SCHEMA_VERSION = 1

    def __init__(self, db_path: Path | str, run_migrations: bool = True):
        """
        Initialize state store.

        Args:
            db_path: Path to SQLite database file
            run_migrations: Whether to run pending migrations (default True)
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()
        if run_migrations:
            self._run_migrations()

    def _get_connection(self) -> sqlite3.Connection:
        """Get a database connection with row factory."""
        conn = sqlite3.connect(str(self.db_path), timeout=30)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Context manager for database transactions."""
        conn = self._get_connection()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_db(self) -> None:
        """Initialize database schema."""
        with self._transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER PRIMARY KEY
                )
            """
            )

            # One cursor per location; never deleted
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS sync_cursors (
                    location TEXT PRIMARY KEY,
                    last_nsu TEXT NOT NULL,
                    max_nsu TEXT,
                    updated_at TEXT NOT NULL
                )
            """
            )

            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS fiscal_notes (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    location TEXT NOT NULL,
                    access_key TEXT NOT NULL,
                    nsu TEXT NOT NULL,
                    status TEXT NOT NULL,
                    issuer_name TEXT,
                    issuer_cnpj TEXT,
                    destination_cnpj TEXT,
                    issue_date TEXT,
                    note_number TEXT,
                    series TEXT,
                    total_value TEXT,  -- Decimal as string
                    raw_document TEXT,
                    category_id TEXT,
                    linked_receipt_id TEXT,  -- Weak reference, no FK
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    UNIQUE(location, access_key)
                )
            """
            )

            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS unrecognized_documents (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    location TEXT NOT NULL,
                    nsu TEXT NOT NULL,
                    schema_hint TEXT,
                    status TEXT NOT NULL DEFAULT 'unknown',
                    reason TEXT,
                    raw_document TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    UNIQUE(location, nsu)
                )
            """
            )

            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_fiscal_notes_receipt ON fiscal_notes(linked_receipt_id)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_fiscal_notes_issue_date ON fiscal_notes(location, issue_date)"
            )

            conn.execute(
                "INSERT OR REPLACE INTO schema_version (version) VALUES (?)", (self.SCHEMA_VERSION,)
            )

    def _run_migrations(self) -> None:
        """Run pending database migrations."""
        from .migrations import MigrationRunner

        conn = self._get_connection()
        try:
            runner = MigrationRunner(conn)
            runner.run_pending()
        finally:
            conn.close()

    def get_schema_history(self) -> list[dict[str, Any]]:
        """Applied schema migrations, oldest first."""
        from .migrations import MigrationRunner

        conn = self._get_connection()
        try:
            return MigrationRunner(conn).history()
        finally:
            conn.close()

    # Cursor methods

    def get_cursor(self, location: str) -> SyncCursor | None:
        """Get the cursor of a location (None before the first sync)."""
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM sync_cursors WHERE location = ?", (location,)
            ).fetchone()
            return SyncCursor.from_row(row) if row else None

    def get_last_nsu(self, location: str) -> str:
        """Last consumed NSU, or the all-zero cursor."""
        cursor = self.get_cursor(location)
        return cursor.last_nsu if cursor else ZERO_NSU

    def advance_cursor(self, location: str, last_nsu: str, max_nsu: str | None = None) -> SyncCursor:
        """
        Move a location's cursor forward.

        Created lazily on first use. A proposed NSU lower than the stored one
        is ignored: the cursor never moves backwards.
        """
        proposed = normalize_nsu(last_nsu)
        now = _now()

        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM sync_cursors WHERE location = ?", (location,)
            ).fetchone()

            if row is None:
                conn.execute(
                    """
                    INSERT INTO sync_cursors (location, last_nsu, max_nsu, updated_at)
                    VALUES (?, ?, ?, ?)
                """,
                    (location, proposed, max_nsu, now),
                )
                return SyncCursor(location=location, last_nsu=proposed, max_nsu=max_nsu, updated_at=now)

            current = SyncCursor.from_row(row)
            new_last = proposed if nsu_as_int(proposed) > nsu_as_int(current.last_nsu) else current.last_nsu
            new_max = max_nsu if max_nsu is not None else current.max_nsu
            conn.execute(
                """
                UPDATE sync_cursors
                SET last_nsu = ?, max_nsu = ?, updated_at = ?
                WHERE location = ?
            """,
                (new_last, new_max, now, location),
            )
            return SyncCursor(location=location, last_nsu=new_last, max_nsu=new_max, updated_at=now)

    # Fiscal note methods

    def upsert_fiscal_note(self, note: FiscalNote) -> None:
        """
        Insert or merge a fiscal note keyed by (location, access_key).

        Later nsu, status and raw document win; later non-empty fields win;
        fields missing from the later note keep their stored value.

        Raises:
            InvalidArgument: access key is empty or not 44 digits
            PersistenceError: the database write failed
        """
        access_key = normalize_access_key(note.access_key)
        if access_key is None:
            raise InvalidArgument(f"NSU {note.nsu}: fiscal note without a valid access key")
        if not note.location:
            raise InvalidArgument(f"NSU {note.nsu}: fiscal note without a location")

        now = _now()
        total = str(note.total_value) if note.total_value is not None else None

        try:
            with self._transaction() as conn:
                conn.execute(
                    """
                    INSERT INTO fiscal_notes
                    (location, access_key, nsu, status, issuer_name, issuer_cnpj, destination_cnpj,
                     issue_date, note_number, series, total_value, raw_document, category_id,
                     linked_receipt_id, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(location, access_key) DO UPDATE SET
                        nsu = excluded.nsu,
                        status = excluded.status,
                        issuer_name = COALESCE(excluded.issuer_name, fiscal_notes.issuer_name),
                        issuer_cnpj = COALESCE(excluded.issuer_cnpj, fiscal_notes.issuer_cnpj),
                        destination_cnpj = COALESCE(excluded.destination_cnpj, fiscal_notes.destination_cnpj),
                        issue_date = COALESCE(excluded.issue_date, fiscal_notes.issue_date),
                        note_number = COALESCE(excluded.note_number, fiscal_notes.note_number),
                        series = COALESCE(excluded.series, fiscal_notes.series),
                        total_value = COALESCE(excluded.total_value, fiscal_notes.total_value),
                        raw_document = COALESCE(excluded.raw_document, fiscal_notes.raw_document),
                        category_id = COALESCE(excluded.category_id, fiscal_notes.category_id),
                        linked_receipt_id = COALESCE(excluded.linked_receipt_id, fiscal_notes.linked_receipt_id),
                        updated_at = excluded.updated_at
                """,
                    (
                        note.location,
                        access_key,
                        normalize_nsu(note.nsu),
                        note.status.value,
                        note.issuer_name,
                        note.issuer_cnpj,
                        note.destination_cnpj,
                        note.issue_date,
                        note.note_number,
                        note.series,
                        total,
                        note.raw_document,
                        note.category_id,
                        note.linked_receipt_id,
                        now,
                        now,
                    ),
                )
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to store note {access_key}: {e}") from e

    def get_fiscal_note(self, location: str, access_key: str) -> FiscalNote | None:
        """Get a note by location and access key (any separators allowed)."""
        key = normalize_access_key(access_key)
        if key is None:
            return None
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM fiscal_notes WHERE location = ? AND access_key = ?",
                (location, key),
            ).fetchone()
            return FiscalNote.from_row(row) if row else None

    def list_fiscal_notes(
        self,
        location: str,
        search: str | None = None,
        date_from: str | None = None,
        date_to: str | None = None,
    ) -> list[FiscalNote]:
        """
        List notes of a location, newest issue date first.

        Args:
            search: Case-insensitive match on issuer name, access key or CNPJ
            date_from: Inclusive lower bound on issue date (YYYY-MM-DD)
            date_to: Inclusive upper bound on issue date (YYYY-MM-DD)
        """
        clauses = ["location = ?"]
        params: list[Any] = [location]

        if search:
            clauses.append("(LOWER(issuer_name) LIKE ? OR access_key LIKE ? OR issuer_cnpj LIKE ?)")
            pattern = f"%{search.lower()}%"
            params.extend([pattern, f"%{search}%", f"%{search}%"])
        if date_from:
            clauses.append("substr(issue_date, 1, 10) >= ?")
            params.append(date_from)
        if date_to:
            clauses.append("substr(issue_date, 1, 10) <= ?")
            params.append(date_to)

        with self._transaction() as conn:
            rows = conn.execute(
                f"SELECT * FROM fiscal_notes WHERE {' AND '.join(clauses)} "
                "ORDER BY issue_date DESC, id DESC",
                params,
            ).fetchall()
            return [FiscalNote.from_row(row) for row in rows]

    def get_note_for_receipt(self, receipt_id: str) -> FiscalNote | None:
        """Get the note linked to a receipt, if any."""
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM fiscal_notes WHERE linked_receipt_id = ? LIMIT 1", (receipt_id,)
            ).fetchone()
            return FiscalNote.from_row(row) if row else None

    def link_note_to_receipt(
        self,
        location: str,
        access_key: str,
        receipt_id: str,
        only_if_unlinked: bool = True,
    ) -> bool:
        """
        Set linked_receipt_id on a note.

        Returns:
            True if a note was updated
        """
        key = normalize_access_key(access_key)
        if key is None:
            return False

        query = """
            UPDATE fiscal_notes
            SET linked_receipt_id = ?, updated_at = ?
            WHERE location = ? AND access_key = ?
        """
        if only_if_unlinked:
            query += " AND linked_receipt_id IS NULL"

        with self._transaction() as conn:
            cursor = conn.execute(query, (receipt_id, _now(), location, key))
            return cursor.rowcount > 0

    def clear_links_for_receipt(self, receipt_id: str) -> int:
        """Clear every link pointing at a receipt. Returns notes updated."""
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE fiscal_notes
                SET linked_receipt_id = NULL, updated_at = ?
                WHERE linked_receipt_id = ?
            """,
                (_now(), receipt_id),
            )
            return cursor.rowcount

    def clear_dangling_links(self, location: str) -> int:
        """Clear links of a location whose receipt no longer exists."""
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE fiscal_notes
                SET linked_receipt_id = NULL, updated_at = ?
                WHERE location = ?
                AND linked_receipt_id IS NOT NULL
                AND linked_receipt_id NOT IN (SELECT id FROM receipts)
            """,
                (_now(), location),
            )
            return cursor.rowcount

    def find_linkable_pairs(self, location: str) -> list[tuple[str, str]]:
        """
        (access_key, receipt_id) pairs ready to link in a location.

        A pair qualifies when the note is unlinked, the receipt carries the
        same extracted key, and the receipt is not linked to another note.
        """
        with self._transaction() as conn:
            rows = conn.execute(
                """
                SELECT n.access_key, r.id AS receipt_id
                FROM fiscal_notes n
                JOIN receipts r
                  ON r.location = n.location AND r.extracted_access_key = n.access_key
                WHERE n.location = ?
                AND n.linked_receipt_id IS NULL
                AND NOT EXISTS (
                    SELECT 1 FROM fiscal_notes other WHERE other.linked_receipt_id = r.id
                )
                ORDER BY n.id, r.created_at
            """,
                (location,),
            ).fetchall()
            return [(row["access_key"], row["receipt_id"]) for row in rows]

    # Unrecognized document methods

    def upsert_unrecognized_document(
        self,
        location: str,
        nsu: str,
        schema_hint: str | None,
        raw_document: str | None,
        reason: str | None = None,
    ) -> None:
        """Store (or refresh) a stub for a document of unknown shape."""
        if not location:
            raise InvalidArgument("Unrecognized document without a location")
        # NSUs start at 1; the zero key would merge unrelated stubs
        stub_nsu = normalize_nsu(nsu)
        if stub_nsu == ZERO_NSU:
            raise InvalidArgument(f"Unrecognized document without a valid NSU: {nsu!r}")
        now = _now()
        try:
            with self._transaction() as conn:
                conn.execute(
                    """
                    INSERT INTO unrecognized_documents
                    (location, nsu, schema_hint, status, reason, raw_document, created_at, updated_at)
                    VALUES (?, ?, ?, 'unknown', ?, ?, ?, ?)
                    ON CONFLICT(location, nsu) DO UPDATE SET
                        schema_hint = excluded.schema_hint,
                        reason = excluded.reason,
                        raw_document = excluded.raw_document,
                        updated_at = excluded.updated_at
                """,
                    (location, stub_nsu, schema_hint, reason, raw_document, now, now),
                )
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to store stub for NSU {nsu}: {e}") from e

    def list_unrecognized_documents(self, location: str) -> list[dict[str, Any]]:
        """Stubs of a location ordered by NSU."""
        with self._transaction() as conn:
            rows = conn.execute(
                "SELECT * FROM unrecognized_documents WHERE location = ? ORDER BY nsu",
                (location,),
            ).fetchall()
            return [dict(row) for row in rows]

    # Receipt methods (hooks for the capture pipeline)

    def record_receipt(
        self,
        receipt_id: str,
        location: str,
        extracted_access_key: str | None = None,
        establishment: str | None = None,
        total_amount: Decimal | str | None = None,
        issue_date: str | None = None,
    ) -> ReceiptRecord:
        """
        Insert or update a receipt mirrored from the capture pipeline.

        The extracted access key is normalized; anything that is not 44
        digits is stored as absent.
        """
        key = normalize_access_key(extracted_access_key)
        amount = str(total_amount) if total_amount is not None else None
        now = _now()

        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO receipts
                (id, location, extracted_access_key, establishment, total_amount, issue_date, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    location = excluded.location,
                    extracted_access_key = excluded.extracted_access_key,
                    establishment = excluded.establishment,
                    total_amount = excluded.total_amount,
                    issue_date = excluded.issue_date
            """,
                (receipt_id, location, key, establishment, amount, issue_date, now),
            )
            row = conn.execute("SELECT * FROM receipts WHERE id = ?", (receipt_id,)).fetchone()
            return ReceiptRecord.from_row(row)

    def delete_receipt(self, receipt_id: str) -> bool:
        """Remove a receipt from the mirror. Returns True if deleted."""
        with self._transaction() as conn:
            cursor = conn.execute("DELETE FROM receipts WHERE id = ?", (receipt_id,))
            return cursor.rowcount > 0

    def get_receipt(self, receipt_id: str) -> ReceiptRecord | None:
        """Get a receipt by ID."""
        with self._transaction() as conn:
            row = conn.execute("SELECT * FROM receipts WHERE id = ?", (receipt_id,)).fetchone()
            return ReceiptRecord.from_row(row) if row else None

    def receipt_exists(self, receipt_id: str) -> bool:
        """Check if a receipt exists."""
        with self._transaction() as conn:
            row = conn.execute("SELECT 1 FROM receipts WHERE id = ?", (receipt_id,)).fetchone()
            return row is not None

    # Reconciliation job methods

    def enqueue_reconciliation_job(
        self,
        location: str,
        receipt_id: str,
        access_key: str,
        max_retries: int = 3,
    ) -> int | None:
        """
        Queue a single-shot reconciliation for a receipt.

        Returns:
            Job ID, or None if the receipt already has an active job
        """
        with self._transaction() as conn:
            existing = conn.execute(
                """
                SELECT id FROM reconciliation_jobs
                WHERE receipt_id = ? AND status IN (?, ?)
            """,
                (receipt_id, *JobStatus.ACTIVE),
            ).fetchone()
            if existing:
                return None

            cursor = conn.execute(
                """
                INSERT INTO reconciliation_jobs
                (location, receipt_id, access_key, status, retry_count, max_retries, scheduled_at)
                VALUES (?, ?, ?, ?, 0, ?, ?)
            """,
                (location, receipt_id, access_key, JobStatus.PENDING, max_retries, _now()),
            )
            return cursor.lastrowid

    def get_pending_reconciliation_jobs(self, limit: int = 20) -> list[dict[str, Any]]:
        """Oldest pending jobs first."""
        with self._transaction() as conn:
            rows = conn.execute(
                """
                SELECT * FROM reconciliation_jobs
                WHERE status = ?
                ORDER BY scheduled_at ASC, id ASC
                LIMIT ?
            """,
                (JobStatus.PENDING, limit),
            ).fetchall()
            return [dict(row) for row in rows]

    def get_reconciliation_job(self, job_id: int) -> dict[str, Any] | None:
        """Get a job by ID."""
        with self._transaction() as conn:
            row = conn.execute("SELECT * FROM reconciliation_jobs WHERE id = ?", (job_id,)).fetchone()
            return dict(row) if row else None

    def start_reconciliation_job(self, job_id: int) -> bool:
        """Mark a pending job as processing. False if it was not pending."""
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE reconciliation_jobs
                SET status = ?, started_at = ?
                WHERE id = ? AND status = ?
            """,
                (JobStatus.PROCESSING, _now(), job_id, JobStatus.PENDING),
            )
            return cursor.rowcount > 0

    def complete_reconciliation_job(self, job_id: int, outcome: str) -> None:
        """Mark a job as completed."""
        with self._transaction() as conn:
            conn.execute(
                """
                UPDATE reconciliation_jobs
                SET status = ?, completed_at = ?, outcome = ?, error_message = NULL
                WHERE id = ?
            """,
                (JobStatus.COMPLETED, _now(), outcome, job_id),
            )

    def fail_reconciliation_job(self, job_id: int, error_message: str) -> str:
        """
        Record a failed attempt.

        Returns:
            New status: PENDING while retries remain, FAILED afterwards
        """
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT retry_count, max_retries FROM reconciliation_jobs WHERE id = ?", (job_id,)
            ).fetchone()
            if row is None:
                return JobStatus.FAILED

            retry_count = row["retry_count"] + 1
            status = JobStatus.PENDING if retry_count < row["max_retries"] else JobStatus.FAILED
            conn.execute(
                """
                UPDATE reconciliation_jobs
                SET status = ?, retry_count = ?, error_message = ?, completed_at = ?
                WHERE id = ?
            """,
                (
                    status,
                    retry_count,
                    error_message,
                    _now() if status == JobStatus.FAILED else None,
                    job_id,
                ),
            )
            return status

    # Sync run methods

    def record_sync_run(
        self,
        location: str,
        trigger: str,
        outcome: str,
        start_nsu: str | None = None,
        ult_nsu: str | None = None,
        max_nsu: str | None = None,
        status_code: str | None = None,
        status_text: str | None = None,
        batches: int = 0,
        stored: int = 0,
        failed: int = 0,
        skipped: int = 0,
        parse_failures: int = 0,
        unrecognized: int = 0,
        linked: int = 0,
        error_message: str | None = None,
        duration_ms: int = 0,
    ) -> int:
        """Append a sync attempt to the audit trail. Returns the run ID."""
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                INSERT INTO sync_runs
                (location, trigger, outcome, start_nsu, ult_nsu, max_nsu, status_code, status_text,
                 batches, stored, failed, skipped, parse_failures, unrecognized, linked,
                 error_message, duration_ms, run_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
                (
                    location,
                    trigger,
                    outcome,
                    start_nsu,
                    ult_nsu,
                    max_nsu,
                    status_code,
                    status_text,
                    batches,
                    stored,
                    failed,
                    skipped,
                    parse_failures,
                    unrecognized,
                    linked,
                    error_message,
                    duration_ms,
                    _now(),
                ),
            )
            return cursor.lastrowid or 0

    def get_last_sync_run(self, location: str) -> dict[str, Any] | None:
        """Most recent sync attempt of a location."""
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM sync_runs WHERE location = ? ORDER BY id DESC LIMIT 1",
                (location,),
            ).fetchone()
            return dict(row) if row else None

    # Statistics

    def get_stats(self, location: str) -> dict[str, Any]:
        """Counters for the status command."""
        with self._transaction() as conn:
            notes_total = conn.execute(
                "SELECT COUNT(*) FROM fiscal_notes WHERE location = ?", (location,)
            ).fetchone()[0]
            notes_linked = conn.execute(
                "SELECT COUNT(*) FROM fiscal_notes WHERE location = ? AND linked_receipt_id IS NOT NULL",
                (location,),
            ).fetchone()[0]
            notes_uncategorized = conn.execute(
                "SELECT COUNT(*) FROM fiscal_notes WHERE location = ? AND category_id IS NULL",
                (location,),
            ).fetchone()[0]
            by_status = {
                row["status"]: row["n"]
                for row in conn.execute(
                    "SELECT status, COUNT(*) AS n FROM fiscal_notes WHERE location = ? GROUP BY status",
                    (location,),
                ).fetchall()
            }
            unrecognized = conn.execute(
                "SELECT COUNT(*) FROM unrecognized_documents WHERE location = ?", (location,)
            ).fetchone()[0]
            pending_jobs = conn.execute(
                "SELECT COUNT(*) FROM reconciliation_jobs WHERE location = ? AND status = ?",
                (location, JobStatus.PENDING),
            ).fetchone()[0]

        cursor = self.get_cursor(location)
        return {
            "last_nsu": cursor.last_nsu if cursor else ZERO_NSU,
            "max_nsu": cursor.max_nsu if cursor else None,
            "cursor_updated_at": cursor.updated_at if cursor else None,
            "notes_total": notes_total,
            "notes_linked": notes_linked,
            "notes_uncategorized": notes_uncategorized,
            "notes_by_status": by_status,
            "unrecognized_documents": unrecognized,
            "pending_reconciliation_jobs": pending_jobs,
        }
