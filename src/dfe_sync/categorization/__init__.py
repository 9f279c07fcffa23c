"""
Expense category inference from issuer names.

Deterministic longest-keyword match against a versioned keyword table.
"""

from .engine import CategoryMatch, best_match, categorize, fold_accents, normalize_name
from .keywords import DEFAULT_KEYWORD_TABLE, KEYWORD_TABLE_VERSION, KeywordTable, load_keyword_table

__all__ = [
    "CategoryMatch",
    "best_match",
    "categorize",
    "fold_accents",
    "normalize_name",
    "DEFAULT_KEYWORD_TABLE",
    "KEYWORD_TABLE_VERSION",
    "KeywordTable",
    "load_keyword_table",
]
