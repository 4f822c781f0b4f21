"""Validation helpers used across the project."""

from __future__ import annotations

import re
from typing import Final

# Canonical fiscal-year label: two positive decimal years without leading zeros.
FISCAL_YEAR_LABEL_PATTERN: Final[re.Pattern[str]] = re.compile(r"^([1-9][0-9]*)_([1-9][0-9]*)$")

# Identifiers that may be spliced into SQL as a quoted table name.
TABLE_NAME_PATTERN: Final[re.Pattern[str]] = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def split_fiscal_year_label(label: str) -> tuple[int, int] | None:
    """
    Return ``(start_year, end_year)`` for a well-formed label, otherwise ``None``.
    - Both parts are decimal integers
    - The end year is exactly one after the start year
    """
    if not isinstance(label, str):
        return None
    match = FISCAL_YEAR_LABEL_PATTERN.fullmatch(label)
    if match is None:
        return None
    start, end = int(match.group(1)), int(match.group(2))
    if end != start + 1:
        return None
    return start, end


def is_valid_fiscal_year_label(label: str) -> bool:
    return split_fiscal_year_label(label) is not None


def validate_table_name(name: str) -> str:
    """Ensure *name* is a plain SQL identifier and return it."""
    if not isinstance(name, str) or not TABLE_NAME_PATTERN.match(name):
        raise ValueError(f"Invalid table name: {name!r}")
    return name
