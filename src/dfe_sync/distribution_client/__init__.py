"""
SEFAZ Distribuição DF-e client.

Provides:
- Incremental fetch since an NSU (distNSU)
- Point lookup by NSU (consNSU) or by access key (consChNFe)
- Status code interpretation (137/656 no documents, 138 documents found)
- Retry/backoff for transient network failures

Each request runs on one location's authenticated channel.
"""

from .client import (
    BatchOutcome,
    BatchResult,
    DistributionClient,
    interpret_status,
)

__all__ = [
    "BatchOutcome",
    "BatchResult",
    "DistributionClient",
    "interpret_status",
]
