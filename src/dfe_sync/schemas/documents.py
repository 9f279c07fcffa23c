"""
Canonical document and fiscal note models (SSOT).

A distribution batch carries structurally different payloads per document
type. Each one is classified exactly once into a tagged variant:

- SummaryRecord: resNFe, existence notice with headline fields
- FullRecord: procNFe/nfeProc, complete authorized document
- EventRecord: resEvento/procEventoNFe, lifecycle event (never stored)
- Unrecognized: anything else (stored as a stub keyed by NSU)

Downstream code matches on the variant type instead of probing fields.
"""

import json
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping, Optional, Union


class NoteStatus(str, Enum):
    """Lifecycle status of a fiscal note."""

    ACTIVE = "active"
    CANCELLED = "cancelled"
    DENIED = "denied"
    UNKNOWN = "unknown"


class DocumentKind(str, Enum):
    """Classification tag for a raw distribution document."""

    SUMMARY = "summary"
    FULL = "full"
    EVENT = "event"
    UNRECOGNIZED = "unrecognized"


@dataclass
class RawDocument:
    """One unit of a distribution batch, as delivered. Never persisted as-is."""

    nsu: str
    schema_hint: str = ""
    payload: Optional[dict[str, Any]] = None  # Namespace-free dict tree
    xml: Optional[str] = None  # Original XML text, when available

    def raw_text(self) -> str:
        """Verbatim payload kept for later inspection/export."""
        if self.xml:
            return self.xml
        return json.dumps(self.payload or {}, ensure_ascii=False, sort_keys=True)


@dataclass
class SummaryRecord:
    """resNFe: lightweight notice that a note exists."""

    nsu: str
    access_key: str
    issuer_cnpj: Optional[str]
    issuer_name: Optional[str]
    issue_date: Optional[str]
    total_value: Optional[Decimal]
    status: NoteStatus
    raw: str

    kind = DocumentKind.SUMMARY


@dataclass
class FullRecord:
    """nfeProc: complete authorized document with protocol."""

    nsu: str
    access_key: str
    status: NoteStatus
    raw: str
    issuer_cnpj: Optional[str] = None
    issuer_name: Optional[str] = None
    destination_cnpj: Optional[str] = None
    issue_date: Optional[str] = None
    note_number: Optional[str] = None
    series: Optional[str] = None
    total_value: Optional[Decimal] = None
    protocol_status_code: Optional[str] = None

    kind = DocumentKind.FULL


@dataclass
class EventRecord:
    """Cancellation or other lifecycle event. Skipped by the sync engine."""

    nsu: str
    event_type: Optional[str] = None
    access_key: Optional[str] = None

    kind = DocumentKind.EVENT


@dataclass
class Unrecognized:
    """Document of unknown shape, kept as a stub so nothing is lost."""

    nsu: str
    schema_hint: str
    raw: str
    reason: Optional[str] = None

    kind = DocumentKind.UNRECOGNIZED


DocumentRecord = Union[SummaryRecord, FullRecord, EventRecord, Unrecognized]


@dataclass
class FiscalNote:
    """
    Persisted fiscal note.

    (location, access_key) uniquely identifies a note. linked_receipt_id is a
    weak reference to a receipt owned by the capture pipeline.
    """

    location: str
    access_key: str
    nsu: str
    status: NoteStatus = NoteStatus.UNKNOWN
    issuer_name: Optional[str] = None
    issuer_cnpj: Optional[str] = None
    destination_cnpj: Optional[str] = None
    issue_date: Optional[str] = None
    note_number: Optional[str] = None
    series: Optional[str] = None
    total_value: Optional[Decimal] = None
    raw_document: Optional[str] = None
    category_id: Optional[str] = None
    linked_receipt_id: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_record(
        cls,
        record: Union[SummaryRecord, FullRecord],
        location: str,
        category_id: Optional[str] = None,
    ) -> "FiscalNote":
        """Build a note from a classified summary or full record."""
        return cls(
            location=location,
            access_key=record.access_key,
            nsu=record.nsu,
            status=record.status,
            issuer_name=record.issuer_name,
            issuer_cnpj=record.issuer_cnpj,
            destination_cnpj=getattr(record, "destination_cnpj", None),
            issue_date=record.issue_date,
            note_number=getattr(record, "note_number", None),
            series=getattr(record, "series", None),
            total_value=record.total_value,
            raw_document=record.raw,
            category_id=category_id,
        )

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "FiscalNote":
        """Create from database row."""
        total = row["total_value"]
        return cls(
            location=row["location"],
            access_key=row["access_key"],
            nsu=row["nsu"],
            status=NoteStatus(row["status"]),
            issuer_name=row["issuer_name"],
            issuer_cnpj=row["issuer_cnpj"],
            destination_cnpj=row["destination_cnpj"],
            issue_date=row["issue_date"],
            note_number=row["note_number"],
            series=row["series"],
            total_value=Decimal(total) if total is not None else None,
            raw_document=row["raw_document"],
            category_id=row["category_id"],
            linked_receipt_id=row["linked_receipt_id"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )


@dataclass
class BatchSummary:
    """Per-batch persistence outcome counts."""

    stored: int = 0
    failed: int = 0
    skipped: int = 0
    parse_failures: int = 0
    unrecognized: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return self.stored + self.failed + self.skipped + self.parse_failures + self.unrecognized
