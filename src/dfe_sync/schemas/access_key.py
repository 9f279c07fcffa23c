"""
Access key and NSU normalization.

SSOT for the two identifiers that cross every boundary of the engine:

- Access key (chave de acesso): 44 digits identifying one fiscal document
  nationally. Input may carry spaces, dots or any other separators; only the
  digits count.
- NSU (número sequencial único): the distribution cursor, always rendered as
  a 15-character zero-padded decimal string.
"""

import re
from typing import Optional

from ..errors import InvalidArgument

ACCESS_KEY_LENGTH = 44
NSU_LENGTH = 15
ZERO_NSU = "0" * NSU_LENGTH

_NON_DIGITS = re.compile(r"\D")


def normalize_access_key(value: Optional[str]) -> Optional[str]:
    """
    Strip non-digit characters and require exactly 44 digits.

    Returns:
        The 44-digit key, or None when the value does not carry a valid key.
    """
    if not value:
        return None
    digits = _NON_DIGITS.sub("", str(value))
    if len(digits) != ACCESS_KEY_LENGTH:
        return None
    return digits


def require_access_key(value: Optional[str]) -> str:
    """Like normalize_access_key, but raise InvalidArgument on a bad key."""
    key = normalize_access_key(value)
    if key is None:
        raise InvalidArgument(f"Access key must have exactly {ACCESS_KEY_LENGTH} digits: {value!r}")
    return key


def normalize_nsu(value: Optional[str]) -> str:
    """
    Coerce a cursor value to the 15-digit form.

    Empty, non-numeric or over-long values read as the start of the stream.
    """
    if value is None:
        return ZERO_NSU
    text = str(value).strip()
    if not text.isdigit() or len(text) > NSU_LENGTH:
        return ZERO_NSU
    return text.zfill(NSU_LENGTH)


def require_nsu(value: Optional[str]) -> str:
    """Validate an NSU for point lookups. Raises InvalidArgument."""
    text = str(value).strip() if value is not None else ""
    if not text.isdigit() or len(text) > NSU_LENGTH:
        raise InvalidArgument(f"NSU must be a numeric string of up to {NSU_LENGTH} digits: {value!r}")
    return text.zfill(NSU_LENGTH)


def nsu_as_int(value: Optional[str]) -> int:
    """Numeric value of an NSU (0 for anything unparseable)."""
    return int(normalize_nsu(value))
