"""Fiscal year arithmetic.

A fiscal year runs from June 1 through May 31 of the following calendar year
and is labelled ``"<start_year>_<end_year>"``, e.g. ``"2024_2025"``.

All calculations use UTC as the single time reference: timezone-aware
datetimes are converted to UTC, naive datetimes are taken to already be UTC,
and plain dates are used as they are.
"""

from __future__ import annotations

import datetime
from dataclasses import dataclass
from typing import Union

from fiscaldb.utils.validators import split_fiscal_year_label

from .errors import InvalidLabel

__all__ = [
    "FISCAL_YEAR_START_MONTH",
    "FiscalYear",
    "Moment",
    "fiscal_year_label",
    "parse_fiscal_year_label",
    "schema_name",
    "utc_now",
]

FISCAL_YEAR_START_MONTH = 6  # June
SCHEMA_PREFIX = "fy_"

Moment = Union[datetime.date, datetime.datetime]


def utc_now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def _as_utc_date(moment: Moment) -> datetime.date:
    if isinstance(moment, datetime.datetime):
        if moment.tzinfo is not None and moment.utcoffset() is not None:
            moment = moment.astimezone(datetime.timezone.utc)
        return moment.date()
    if isinstance(moment, datetime.date):
        return moment
    raise TypeError(f"Expected a date or datetime, got {type(moment).__name__}")


def _start_year_for(moment: Moment) -> int:
    day = _as_utc_date(moment)
    if day.month >= FISCAL_YEAR_START_MONTH:
        return day.year
    return day.year - 1


def fiscal_year_label(moment: Moment) -> str:
    """Return the fiscal-year label that *moment* falls in."""
    start = _start_year_for(moment)
    return f"{start}_{start + 1}"


@dataclass(frozen=True, order=True)
class FiscalYear:
    """A single June 1 - May 31 accounting period.

    Only periods that start and end within the ``datetime.date`` range exist;
    anything else raises InvalidLabel.
    """

    start_year: int

    def __post_init__(self) -> None:
        # both ends must be representable as datetime.date
        if not 1 <= self.start_year < datetime.MAXYEAR:
            raise InvalidLabel(f"{self.start_year}_{self.start_year + 1}")

    @property
    def end_year(self) -> int:
        return self.start_year + 1

    @property
    def label(self) -> str:
        return f"{self.start_year}_{self.end_year}"

    @property
    def start(self) -> datetime.date:
        return datetime.date(self.start_year, FISCAL_YEAR_START_MONTH, 1)

    @property
    def end(self) -> datetime.date:
        return datetime.date(self.end_year, FISCAL_YEAR_START_MONTH, 1) - datetime.timedelta(days=1)

    def contains(self, moment: Moment) -> bool:
        return self.start <= _as_utc_date(moment) <= self.end

    def previous(self) -> FiscalYear:
        return FiscalYear(self.start_year - 1)

    def next(self) -> FiscalYear:
        return FiscalYear(self.start_year + 1)

    @classmethod
    def for_date(cls, moment: Moment) -> FiscalYear:
        return cls(_start_year_for(moment))

    @classmethod
    def from_label(cls, label: str) -> FiscalYear:
        return parse_fiscal_year_label(label)

    def __str__(self) -> str:
        return self.label


def parse_fiscal_year_label(label: str) -> FiscalYear:
    """
    Parse a label such as ``"2023_2024"``.

    Raises:
        InvalidLabel: if the label is malformed, the years are not consecutive,
            or the period lies outside the supported calendar range.
    """
    parts = split_fiscal_year_label(label)
    if parts is None:
        raise InvalidLabel(label)
    start, end = parts
    if end > datetime.MAXYEAR:
        raise InvalidLabel(label)
    return FiscalYear(start)


def schema_name(label: str) -> str:
    """Return the attached-schema name used for *label*."""
    return f"{SCHEMA_PREFIX}{parse_fiscal_year_label(label).label}"
