"""
Categorization engine - issuer name to expense category.

Greedy longest-keyword heuristic, not a scored classifier:

1. Lowercase the issuer name (raw form) and also accent-fold it with
   punctuation collapsed to single spaces (normalized form).
2. Test every keyword of every category for containment in both forms.
3. The longest matching keyword wins; on equal length the first-listed
   category (then the first-listed keyword) wins.

Pure function of (name, table): same input, same answer, every time.
"""

import re
import unicodedata
from dataclasses import dataclass
from typing import Optional

from .keywords import DEFAULT_KEYWORD_TABLE, KeywordTable

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


@dataclass(frozen=True)
class CategoryMatch:
    """Winning keyword for an issuer name."""

    category: str
    keyword: str


def fold_accents(text: str) -> str:
    """Remove combining marks: 'Farmácia' -> 'Farmacia'."""
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(c for c in decomposed if not unicodedata.combining(c))


def normalize_name(name: str) -> str:
    """Lowercase, accent-fold, and collapse punctuation to single spaces."""
    folded = fold_accents(name.lower())
    return _NON_ALNUM.sub(" ", folded).strip()


def best_match(issuer_name: Optional[str], table: KeywordTable = DEFAULT_KEYWORD_TABLE) -> Optional[CategoryMatch]:
    """Return the winning (category, keyword) pair, or None."""
    if not issuer_name:
        return None

    raw = issuer_name.lower()
    normalized = normalize_name(issuer_name)

    best: Optional[CategoryMatch] = None
    for category, keywords in table.items():
        for keyword in keywords:
            if not keyword:
                continue
            # Strictly longer only, so earlier entries keep exact-length ties
            if best is not None and len(keyword) <= len(best.keyword):
                continue
            if keyword in raw or keyword in normalized:
                best = CategoryMatch(category=category, keyword=keyword)
    return best


def categorize(issuer_name: Optional[str], table: KeywordTable = DEFAULT_KEYWORD_TABLE) -> Optional[str]:
    """
    Map an issuer name to a category of the table.

    Returns:
        Category name, or None when no keyword matches
    """
    match = best_match(issuer_name, table)
    return match.category if match else None
