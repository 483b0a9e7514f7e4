"""Typed field extraction from loosely-typed JSON rows.

Management queries hand back numbers as native ints, Decimals (floats decoded
with ``parse_float=Decimal``), or numeric strings depending on the field and
the host version. These helpers coerce all of them the same way so the row
mappers never repeat the type checks.
"""

from decimal import Decimal, InvalidOperation
from typing import Any


def get_str(row: dict[str, Any], key: str) -> str:
    """Return ``row[key]`` as a string; numbers are rendered as integers, None as ""."""
    value = row.get(key)
    if value is None or isinstance(value, bool):
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float, Decimal)):
        try:
            return str(int(value))
        except (ValueError, OverflowError):
            return ""
    return ""


def get_int(row: dict[str, Any], key: str) -> int:
    """Return ``row[key]`` as an int, or 0 when missing or not numeric."""
    value = row.get(key)
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, (float, Decimal)):
        try:
            return int(value)
        except (ValueError, OverflowError):
            return 0
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            pass
        try:
            return int(Decimal(value.strip()))
        except (InvalidOperation, ValueError, OverflowError):
            return 0
    return 0


def get_uint(row: dict[str, Any], key: str) -> int:
    """Like get_int(), but negative values become 0."""
    value = get_int(row, key)
    return value if value > 0 else 0
