"""
Test fixtures for distribution documents.

This module provides sample distribution units for testing:
- resNFe summaries (JSON tree and XML)
- nfeProc full documents (XML, and docZip-encoded)
- resEvento lifecycle events
- gateway responses wrapping them
"""

import base64
import gzip
from pathlib import Path
from typing import Any

FIXTURES_DIR = Path(__file__).parent

# 44-digit access keys
KEY_SUPERMARKET = "31250112345678000190550010000012341000012345"
KEY_GAS_STATION = "31250198765432000110550010000056781000056789"
KEY_PHARMACY = "31250155566677000188550010000099991000099990"

LOCATION = "Caratinga"
LOCATION_CNPJ = "11222333000144"
GATEWAY_URL = "https://gateway.test/api/sefaz-monitor"


def load_fixture(name: str) -> str:
    """Load a fixture file as string."""
    filepath = FIXTURES_DIR / name
    return filepath.read_text(encoding="utf-8")


def get_nfe_proc_sample() -> str:
    """Get nfeProc sample XML (Supermercado Bretas)."""
    return load_fixture("nfeproc_sample.xml")


def get_res_nfe_sample() -> str:
    """Get resNFe sample XML (Auto Posto Shell)."""
    return load_fixture("resnfe_sample.xml")


def write_client_cert(directory: Path, name: str = "client.pem") -> Path:
    """Write a placeholder PEM certificate and return its path."""
    path = directory / name
    path.write_text(
        "-----BEGIN CERTIFICATE-----\nTUlJQ2R1bW15\n-----END CERTIFICATE-----\n",
        encoding="ascii",
    )
    return path


def doc_zip(xml_text: str) -> str:
    """Encode XML the way SEFAZ delivers docZip units."""
    return base64.b64encode(gzip.compress(xml_text.encode("utf-8"))).decode("ascii")


def summary_doc(
    nsu: str,
    access_key: str = KEY_SUPERMARKET,
    issuer_name: str = "Supermercado Bretas Caratinga",
    situation: str = "1",
    total: str = "125.90",
) -> dict[str, Any]:
    """resNFe unit already decoded to a JSON tree."""
    return {
        "nsu": nsu,
        "schema": "resNFe_v1.01.xsd",
        "json": {
            "resNFe": {
                "chNFe": access_key,
                "CNPJ": "12345678000190",
                "xNome": issuer_name,
                "IE": "0012345670012",
                "dhEmi": "2025-01-15T10:30:00-03:00",
                "tpNF": "1",
                "vNF": total,
                "cSitNFe": situation,
            }
        },
    }


def event_doc(nsu: str, access_key: str = KEY_SUPERMARKET, event_type: str = "110111") -> dict[str, Any]:
    """resEvento unit (cancellation by default)."""
    return {
        "nsu": nsu,
        "schema": "resEvento_1.01.xsd",
        "json": {
            "resEvento": {
                "chNFe": access_key,
                "tpEvento": event_type,
                "nSeqEvento": "1",
                "dhEvento": "2025-01-16T08:00:00-03:00",
            }
        },
    }


def broken_summary_doc(nsu: str) -> dict[str, Any]:
    """Claims to be a resNFe but carries a scalar where the structure belongs."""
    return {"nsu": nsu, "schema": "resNFe_v1.01.xsd", "json": {"resNFe": "truncated"}}


def gateway_response(
    documents: list[dict[str, Any]],
    ult_nsu: str,
    max_nsu: str,
    status: str = "138",
    reason: str = "Documento(s) localizado(s)",
) -> dict[str, Any]:
    """Gateway JSON body for a distribution request."""
    return {
        "cStat": status,
        "xMotivo": reason,
        "ultNSU": ult_nsu,
        "maxNSU": max_nsu,
        "documents": documents,
    }


def no_documents_response(ult_nsu: str = "000000000000010", max_nsu: str = "000000000000010") -> dict[str, Any]:
    """Gateway JSON body for cStat 137."""
    return gateway_response([], ult_nsu, max_nsu, status="137", reason="Nenhum documento localizado")


def make_key(index: int) -> str:
    """Distinct, well-formed 44-digit access key."""
    return f"31250112345678000190550010000{index:09d}100000"
