"""
Distribution document parsers.

Provides:
- Payload decoding (json tree, XML text, base64+gzip docZip)
- Classification into summary / full / event / unrecognized records
- Status mapping for summary (cSitNFe) and full (protocol cStat) records
"""

from .classifier import classify, detect_kind, full_status, summary_status
from .codec import decode_doc_zip, decode_document, xml_to_dict

__all__ = [
    "classify",
    "detect_kind",
    "full_status",
    "summary_status",
    "decode_doc_zip",
    "decode_document",
    "xml_to_dict",
]
