"""
Payload decoding for distribution documents.

A document unit can reach us in three encodings, depending on what sits
between us and SEFAZ:

- json: already-decoded tree (gateway did the work)
- xml: the document XML text
- content: raw docZip, base64 of a gzip-compressed XML

All three end up as the same namespace-free dict tree, so the classifier only
ever sees one shape. Repeated sibling elements become lists; text-only
elements become strings; attributes are kept under "@name" keys.
"""

import base64
import binascii
import gzip
import logging
from typing import Any, Optional
from xml.etree import ElementTree as ET

from ..errors import ParseError
from ..schemas.documents import RawDocument

logger = logging.getLogger(__name__)


def _local_name(tag: str) -> str:
    """Strip the '{namespace}' prefix ElementTree puts on tags."""
    if "}" in tag:
        return tag.rsplit("}", 1)[1]
    return tag


def element_to_dict(element: ET.Element) -> Any:
    """Convert an element to the dict tree used across the parsers."""
    children = list(element)
    attributes = {f"@{_local_name(k)}": v for k, v in element.attrib.items()}

    if not children and not attributes:
        return (element.text or "").strip()

    result: dict[str, Any] = dict(attributes)
    for child in children:
        name = _local_name(child.tag)
        value = element_to_dict(child)
        if name in result:
            existing = result[name]
            if not isinstance(existing, list):
                result[name] = [existing]
            result[name].append(value)
        else:
            result[name] = value

    text = (element.text or "").strip()
    if text and not children:
        result["#text"] = text
    return result


def xml_to_dict(xml_text: str) -> dict[str, Any]:
    """
    Parse XML text into {root_name: tree}.

    Raises:
        ET.ParseError: malformed XML
    """
    root = ET.fromstring(xml_text)
    return {_local_name(root.tag): element_to_dict(root)}


def decode_doc_zip(content: str) -> str:
    """
    Decode a docZip unit (base64 of gzip) into XML text.

    Raises:
        ValueError: content is not valid base64/gzip
    """
    try:
        compressed = base64.b64decode(content, validate=True)
        return gzip.decompress(compressed).decode("utf-8")
    except (binascii.Error, OSError, EOFError, UnicodeDecodeError) as e:
        raise ValueError(f"Invalid docZip content: {e}") from e


def decode_document(data: Any) -> RawDocument:
    """
    Build a RawDocument from one entry of the gateway response.

    Decoding failures do not raise here: the document comes back with an
    empty payload and the classifier turns it into an unrecognized stub.
    """
    if not isinstance(data, dict):
        logger.warning(f"Malformed document entry ({type(data).__name__}), treated as empty")
        return RawDocument(nsu="")

    nsu = str(data.get("nsu") or "").strip()
    schema_hint = str(data.get("schema") or data.get("schemaHint") or "")
    payload: Optional[dict[str, Any]] = data.get("json") if isinstance(data.get("json"), dict) else None
    xml_text: Optional[str] = data.get("xml") or None
    if xml_text is not None and not isinstance(xml_text, str):
        logger.warning(f"NSU {nsu}: xml field is {type(xml_text).__name__}, not text")
        xml_text = None

    if xml_text is None and data.get("content"):
        try:
            xml_text = decode_doc_zip(str(data["content"]))
        except ValueError as e:
            logger.warning(f"NSU {nsu}: {e}")

    if payload is None and xml_text:
        try:
            payload = xml_to_dict(xml_text)
        except ET.ParseError as e:
            logger.warning(f"NSU {nsu}: malformed XML: {e}")

    return RawDocument(nsu=nsu, schema_hint=schema_hint, payload=payload, xml=xml_text)


def require_mapping(value: Any, nsu: str, path: str) -> dict[str, Any]:
    """Return value if it is a dict, {} if missing, else raise ParseError."""
    if value is None or value == "":
        return {}
    if not isinstance(value, dict):
        raise ParseError(nsu, f"expected a structure at '{path}', got {type(value).__name__}")
    return value
