"""
Document classifier - decides which shape a distribution unit is and parses it.

Classification uses the schema hint first (resNFe_v1.01.xsd,
procNFe_v4.00.xsd, resEvento_1.01.xsd, procEventoNFe_v1.00.xsd), then the
root key of the payload tree. Each unit maps to exactly one variant.
"""

import logging
import re
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from ..errors import ParseError
from ..schemas.documents import (
    DocumentRecord,
    EventRecord,
    FullRecord,
    NoteStatus,
    RawDocument,
    SummaryRecord,
    Unrecognized,
)
from .codec import require_mapping

logger = logging.getLogger(__name__)


# resNFe cSitNFe
SUMMARY_STATUS = {
    "1": NoteStatus.ACTIVE,
    "2": NoteStatus.CANCELLED,
    "3": NoteStatus.DENIED,
}

# protNFe cStat. Anything not listed reads as cancelled.
AUTHORIZED_CODES = frozenset({"100", "150"})
DENIED_CODES = frozenset({"110", "205", "301", "302", "303"})

EVENT_ROOTS = ("resEvento", "procEventoNFe")


def summary_status(code: Any) -> NoteStatus:
    """Map resNFe cSitNFe to a note status."""
    return SUMMARY_STATUS.get(str(code or "").strip(), NoteStatus.UNKNOWN)


def full_status(code: Any) -> NoteStatus:
    """Map the protocol acceptance code of an nfeProc to a note status."""
    code = str(code or "").strip()
    if code in AUTHORIZED_CODES:
        return NoteStatus.ACTIVE
    if code in DENIED_CODES:
        return NoteStatus.DENIED
    return NoteStatus.CANCELLED


def _text(value: Any) -> Optional[str]:
    """Leaf value as a stripped string, None when empty."""
    if isinstance(value, dict):
        value = value.get("#text")
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _decimal(value: Any) -> Optional[Decimal]:
    text = _text(value)
    if text is None:
        return None
    try:
        return Decimal(text.replace(",", "."))
    except InvalidOperation:
        logger.warning(f"Ignoring non-numeric amount: {text!r}")
        return None


def _tax_id(block: dict[str, Any]) -> Optional[str]:
    """CNPJ, or CPF for individuals."""
    return _text(block.get("CNPJ")) or _text(block.get("CPF"))


def _key_digits(value: Any) -> str:
    return re.sub(r"\D", "", _text(value) or "")


def detect_kind(raw: RawDocument) -> str:
    """Return the payload root to parse with: resNFe, nfeProc, event, or ''."""
    hint = raw.schema_hint or ""
    payload = raw.payload or {}

    if "Evento" in hint or any(root in payload for root in EVENT_ROOTS):
        return "event"
    if "resNFe" in hint or "resNFe" in payload:
        return "resNFe"
    if "procNFe" in hint or "nfeProc" in payload:
        return "nfeProc"
    return ""


def parse_summary(raw: RawDocument) -> SummaryRecord:
    """
    Parse a resNFe unit.

    Raises:
        ParseError: resNFe is missing or is not a structure
    """
    res = raw.payload.get("resNFe") if raw.payload else None
    if not isinstance(res, dict):
        raise ParseError(raw.nsu, "resNFe payload is missing or malformed")

    return SummaryRecord(
        nsu=raw.nsu,
        access_key=_key_digits(res.get("chNFe")),
        issuer_cnpj=_tax_id(res),
        issuer_name=_text(res.get("xNome")),
        issue_date=_text(res.get("dhEmi")),
        total_value=_decimal(res.get("vNF")),
        status=summary_status(_text(res.get("cSitNFe"))),
        raw=raw.raw_text(),
    )


def parse_full(raw: RawDocument) -> FullRecord:
    """
    Parse an nfeProc unit.

    A document without the NFe/infNFe header is kept with its protocol key
    only and marked active.

    Raises:
        ParseError: nfeProc or one of its sub-structures is malformed
    """
    proc = raw.payload.get("nfeProc") if raw.payload else None
    if not isinstance(proc, dict):
        raise ParseError(raw.nsu, "nfeProc payload is missing or malformed")

    prot = require_mapping(
        require_mapping(proc.get("protNFe"), raw.nsu, "protNFe").get("infProt"),
        raw.nsu,
        "protNFe.infProt",
    )
    # Some gateways wrap the document in a second nfeProc level
    nfe = require_mapping(proc.get("NFe"), raw.nsu, "NFe")
    if not nfe and isinstance(proc.get("nfeProc"), dict):
        nfe = require_mapping(proc["nfeProc"].get("NFe"), raw.nsu, "nfeProc.NFe")
    inf = require_mapping(nfe.get("infNFe"), raw.nsu, "NFe.infNFe")

    if not inf:
        logger.debug(f"NSU {raw.nsu}: nfeProc without infNFe, keeping protocol key only")
        return FullRecord(
            nsu=raw.nsu,
            access_key=_key_digits(prot.get("chNFe")),
            status=NoteStatus.ACTIVE,
            raw=raw.raw_text(),
        )

    ide = require_mapping(inf.get("ide"), raw.nsu, "infNFe.ide")
    emit = require_mapping(inf.get("emit"), raw.nsu, "infNFe.emit")
    dest = require_mapping(inf.get("dest"), raw.nsu, "infNFe.dest")
    total = require_mapping(
        require_mapping(inf.get("total"), raw.nsu, "infNFe.total").get("ICMSTot"),
        raw.nsu,
        "infNFe.total.ICMSTot",
    )

    access_key = _key_digits(prot.get("chNFe")) or _key_digits(inf.get("@Id"))
    protocol_code = _text(prot.get("cStat"))

    return FullRecord(
        nsu=raw.nsu,
        access_key=access_key,
        status=full_status(protocol_code),
        raw=raw.raw_text(),
        issuer_cnpj=_tax_id(emit),
        issuer_name=_text(emit.get("xNome")),
        destination_cnpj=_tax_id(dest),
        issue_date=_text(ide.get("dhEmi")) or _text(ide.get("dEmi")),
        note_number=_text(ide.get("nNF")),
        series=_text(ide.get("serie")),
        total_value=_decimal(total.get("vNF")),
        protocol_status_code=protocol_code,
    )


def parse_event(raw: RawDocument) -> EventRecord:
    """Extract what little we keep from a lifecycle event (for logging)."""
    payload = raw.payload or {}
    event = payload.get("resEvento")
    if not isinstance(event, dict):
        proc = payload.get("procEventoNFe")
        evento = proc.get("evento") if isinstance(proc, dict) else None
        event = evento.get("infEvento") if isinstance(evento, dict) else None
    if not isinstance(event, dict):
        return EventRecord(nsu=raw.nsu)
    return EventRecord(
        nsu=raw.nsu,
        event_type=_text(event.get("tpEvento")),
        access_key=_key_digits(event.get("chNFe")) or None,
    )


def classify(raw: RawDocument) -> DocumentRecord:
    """
    Classify and parse one distribution unit.

    Returns:
        SummaryRecord, FullRecord, EventRecord or Unrecognized

    Raises:
        ParseError: the unit claims a known shape but cannot be parsed
    """
    kind = detect_kind(raw)
    if kind == "event":
        return parse_event(raw)
    if kind == "resNFe":
        return parse_summary(raw)
    if kind == "nfeProc":
        return parse_full(raw)

    reason = "empty payload" if not raw.payload else f"unknown schema {raw.schema_hint!r}"
    return Unrecognized(nsu=raw.nsu, schema_hint=raw.schema_hint, raw=raw.raw_text(), reason=reason)
