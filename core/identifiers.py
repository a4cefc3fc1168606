"""Identifier and reference-code helpers.

Ids arrive as ints from the ledger and as strings from the field system;
every comparison and every store key goes through to_key().
"""

import re
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from core.errors import ParseError


_BRACKET_PATTERN = re.compile(r"\[([^\]]*)\]")


def to_key(value: Any) -> str:
    """Canonical string form of an identifier.

    >>> to_key(42), to_key("42"), to_key(42.0), to_key(" 42 ")
    ('42', '42', '42', '42')
    """
    if value is None:
        raise ValueError("Identifier cannot be None")
    if isinstance(value, bool):
        raise ValueError(f"Invalid identifier: {value!r}")
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, Decimal) and value.is_finite() and value == value.to_integral_value():
        return str(int(value))
    if isinstance(value, (float, Decimal)):
        return str(value)
    s = str(value).strip()
    if s == "":
        raise ValueError("Identifier cannot be empty")
    try:
        d = Decimal(s)
    except InvalidOperation:
        return s
    if d.is_finite() and d == d.to_integral_value() and "e" not in s.lower():
        return str(int(d))
    return s


def same_id(a: Any, b: Any) -> bool:
    """Compare two identifiers by their canonical key (None never matches)."""
    if a is None or b is None:
        return False
    return to_key(a) == to_key(b)


def normalize_code(value: Optional[str]) -> str:
    """Trim and upper-case a material / product code."""
    if value is None:
        return ""
    return str(value).strip().upper()


def extract_bracket_code(display: Optional[str]) -> str:
    """Extract the reference code from a "Name [CODE]" display string.

    Args:
        display: Ledger display name, e.g. "Widget [WID-001]"

    Returns:
        The text inside the first pair of brackets, stripped ("WID-001")

    Raises:
        ParseError: No brackets, or the brackets are empty
    """
    if not display:
        raise ParseError(f"No reference code in empty display name: {display!r}")
    match = _BRACKET_PATTERN.search(str(display))
    if not match or not match.group(1).strip():
        raise ParseError(f"No reference code in display name: {display!r}")
    return match.group(1).strip()


def try_extract_bracket_code(display: Optional[str]) -> Optional[str]:
    """Like extract_bracket_code but returns None instead of raising."""
    try:
        return extract_bracket_code(display)
    except ParseError:
        return None
