"""
CLI runner module.

Provides commands:
- init-config: Write a config template
- sync: Drain new distribution documents for a location
- lookup-key / lookup-nsu: Point lookups
- reconcile: Link fiscal notes to receipts
- link-receipt: Record one receipt and reconcile it
- process-queue: Run queued reconciliations
- status: Cursor and note statistics
"""

from .main import create_cli, main

__all__ = [
    "create_cli",
    "main",
]
