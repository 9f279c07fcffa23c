"""
SSOT schemas for the engine.

These canonical models are the only ones used across modules.
"""

from .access_key import (
    ACCESS_KEY_LENGTH,
    NSU_LENGTH,
    ZERO_NSU,
    normalize_access_key,
    normalize_nsu,
    nsu_as_int,
    require_access_key,
    require_nsu,
)
from .documents import (
    BatchSummary,
    DocumentKind,
    DocumentRecord,
    EventRecord,
    FiscalNote,
    FullRecord,
    NoteStatus,
    RawDocument,
    SummaryRecord,
    Unrecognized,
)

__all__ = [
    "ACCESS_KEY_LENGTH",
    "NSU_LENGTH",
    "ZERO_NSU",
    "normalize_access_key",
    "normalize_nsu",
    "nsu_as_int",
    "require_access_key",
    "require_nsu",
    "BatchSummary",
    "DocumentKind",
    "DocumentRecord",
    "EventRecord",
    "FiscalNote",
    "FullRecord",
    "NoteStatus",
    "RawDocument",
    "SummaryRecord",
    "Unrecognized",
]
