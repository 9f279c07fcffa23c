"""
SEFAZ Distribuição DF-e → Fiscal Notes → Receipt Reconciliation

A deterministic, idempotent engine that pulls a business's confirmed
electronic invoices (NF-e) from the NSU distribution service, normalizes
them, infers an expense category, and links each note to the receipt a
human captured for the same purchase.
"""

__version__ = "0.1.0"
