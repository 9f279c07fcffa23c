"""
Error taxonomy shared by every layer.

Operation-level errors (configuration, argument, transport, service) abort
the current operation and propagate to the caller. Document-level errors
(parse, persistence) are caught by the sync engine, counted, and never abort
sibling documents.
"""

from typing import Optional


class DFeSyncError(Exception):
    """Base exception for all dfe_sync errors."""
    pass


class ConfigurationError(DFeSyncError):
    """Location has no usable authenticated channel."""
    pass


class InvalidArgument(DFeSyncError, ValueError):
    """Malformed access key, NSU, or location identifier."""
    pass


class TransportError(DFeSyncError):
    """Network, TLS or timeout failure talking to the distribution service."""
    pass


class ServiceRejected(DFeSyncError):
    """The service answered with a recognized but non-success status code."""

    def __init__(self, code: str, reason: str = ""):
        self.code = code
        self.reason = reason
        super().__init__(f"SEFAZ rejected request: {code} - {reason}")


class ParseError(DFeSyncError):
    """A document could not be parsed into any known shape."""

    def __init__(self, nsu: str, message: str):
        self.nsu = nsu
        super().__init__(f"NSU {nsu}: {message}")


class PersistenceError(DFeSyncError):
    """A single record failed to persist."""
    pass


class SyncInProgressError(DFeSyncError):
    """Another sync is already running for the same location."""

    def __init__(self, location: str):
        self.location = location
        super().__init__(f"A sync is already running for location '{location}'")


class ReconciliationWarning(DFeSyncError):
    """
    Single-shot lookup-and-link failed.

    Advisory only: returned on the reconciliation result, never raised into
    the receipt-creation flow.
    """

    def __init__(self, receipt_id: str, message: str, cause: Optional[Exception] = None):
        self.receipt_id = receipt_id
        self.cause = cause
        super().__init__(f"Receipt {receipt_id}: {message}")
