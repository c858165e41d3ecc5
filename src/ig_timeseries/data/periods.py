"""Reporting period value type and filename codec for monthly exports."""

from __future__ import annotations

import calendar
from collections.abc import Iterable, Mapping
from datetime import date

import structlog
from attrs import define, field

from ..errors import FilenameFormatError, InvalidPeriodError, PeriodRangeError
from .files import (
    EARLIEST_YEAR,
    FILENAME_PREFIX,
    FILE_EXTENSION,
    FUTURE_YEAR_TOLERANCE,
    LENIENT_FILENAME_PATTERN,
    STRICT_FILENAME_PATTERN,
)

logger = structlog.get_logger(__name__)


def is_valid_year(year: int, *, today: date | None = None) -> bool:
    """Return True when ``year`` lies between 2010 and five years from now."""
    if isinstance(year, bool) or not isinstance(year, int):
        return False
    current_year = (today or date.today()).year
    return EARLIEST_YEAR <= year <= current_year + FUTURE_YEAR_TOLERANCE


def is_valid_month(month: int) -> bool:
    """Return True for calendar months 1 through 12."""
    if isinstance(month, bool) or not isinstance(month, int):
        return False
    return 1 <= month <= 12


def is_valid_period(year: int, month: int) -> bool:
    """Return True when both components are inside the domain bounds."""
    return is_valid_year(year) and is_valid_month(month)


def _check_range(instance: Period, attribute: object, value: int) -> None:
    """attrs validator rejecting out-of-range periods at construction time."""
    if not is_valid_period(instance.year, instance.month):
        raise PeriodRangeError(instance.year, instance.month)


@define(slots=True, frozen=True, order=True)
class Period:
    """A single reporting month, ordered by ``(year, month)``."""

    year: int
    month: int = field(validator=_check_range)

    @property
    def key(self) -> str:
        """Storage key fragment, e.g. ``2025_10``."""
        return f"{self.year}_{self.month}"

    @property
    def label(self) -> str:
        """ISO-like label, e.g. ``2025-10``."""
        return f"{self.year}-{self.month:02d}"

    def next(self) -> Period:
        """Return the following calendar month."""
        if self.month == 12:
            return Period(self.year + 1, 1)
        return Period(self.year, self.month + 1)

    def to_dict(self) -> dict[str, int]:
        """Return a JSON-friendly representation."""
        return {"year": self.year, "month": self.month}

    @classmethod
    def parse_label(cls, text: str) -> Period:
        """Parse ``YYYY-MM`` (or ``YYYY_MM``) into a period."""
        cleaned = text.strip().replace("_", "-")
        parts = cleaned.split("-")
        if len(parts) != 2 or not all(part.isdigit() for part in parts):
            raise ValueError(f"Expected a period formatted as YYYY-MM, got {text!r}.")
        return cls(int(parts[0]), int(parts[1]))


def parse_filename(filename: str, strict: bool = True) -> Period:
    """Extract the reporting period embedded in an export filename.

    Strict mode requires the ``IG_`` prefix; lenient mode makes it optional.
    Raises :class:`FilenameFormatError` when the name does not match and
    :class:`PeriodRangeError` when the year or month is out of range.
    """
    if not isinstance(filename, str) or not filename.strip():
        raise FilenameFormatError(str(filename), "filename must be a non-empty string")
    pattern = STRICT_FILENAME_PATTERN if strict else LENIENT_FILENAME_PATTERN
    match = pattern.match(filename.strip())
    if match is None:
        logger.debug("periods.filename_mismatch", filename=filename, strict=strict)
        expected = "IG_YYYY_MM.csv" if strict else "[IG_]YYYY_MM.csv"
        raise FilenameFormatError(filename, f"expected {expected} (e.g. IG_2025_10.csv)")
    year, month = int(match.group(1)), int(match.group(2))
    if not is_valid_period(year, month):
        logger.debug("periods.filename_out_of_range", filename=filename, year=year, month=month)
        raise PeriodRangeError(year, month, filename)
    return Period(year, month)


def format_filename(year: int, month: int) -> str:
    """Return the canonical ``IG_YYYY_MM.csv`` name for a period."""
    if not is_valid_period(year, month):
        raise InvalidPeriodError(year, month)
    return f"{FILENAME_PREFIX}{year}_{month:02d}{FILE_EXTENSION}"


def find_missing_periods(periods: Iterable[Period]) -> list[Period]:
    """List every month between the earliest and latest period that is absent."""
    existing = set(periods)
    if not existing:
        return []
    current, last = min(existing), max(existing)
    missing: list[Period] = []
    while current < last:
        if current not in existing:
            missing.append(current)
        current = current.next()
    return missing


@define(slots=True)
class SequenceValidation:
    """Outcome of checking one batch of periods for duplicates and malformed items."""

    is_valid: bool = True
    errors: list[str] = field(factory=list)
    duplicates: list[Period] = field(factory=list)

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-friendly representation."""
        return {
            "is_valid": self.is_valid,
            "errors": list(self.errors),
            "duplicates": [period.to_dict() for period in self.duplicates],
        }


def _components(item: object) -> tuple[object, object] | None:
    """Pull ``(year, month)`` out of a period-like object, if it has them."""
    if isinstance(item, Period):
        return item.year, item.month
    if isinstance(item, Mapping):
        if "year" in item and "month" in item:
            return item["year"], item["month"]
        return None
    if hasattr(item, "year") and hasattr(item, "month"):
        return item.year, item.month  # type: ignore[attr-defined]
    return None


def validate_sequence(periods: Iterable[object]) -> SequenceValidation:
    """Detect duplicate and malformed periods across a batch without raising."""
    result = SequenceValidation()
    items = list(periods)
    if not items:
        result.is_valid = False
        result.errors.append("No periods to validate")
        return result

    seen: set[tuple[int, int]] = set()
    for item in items:
        components = _components(item)
        if components is None:
            result.is_valid = False
            result.errors.append(f"Malformed period: {item!r}")
            continue
        year, month = components
        if not is_valid_year(year) or not is_valid_month(month):  # type: ignore[arg-type]
            result.is_valid = False
            result.errors.append(f"Invalid period: year={year}, month={month}")
            continue
        key = (int(year), int(month))  # type: ignore[call-overload]
        if key in seen:
            period = Period(*key)
            result.is_valid = False
            result.duplicates.append(period)
            result.errors.append(f"Duplicate period: {period.label}")
        else:
            seen.add(key)
    return result


def group_periods_by_year(periods: Iterable[Period]) -> dict[int, list[Period]]:
    """Group periods by year with months sorted inside each year."""
    grouped: dict[int, list[Period]] = {}
    for period in periods:
        grouped.setdefault(period.year, []).append(period)
    return {year: sorted(grouped[year]) for year in sorted(grouped)}


def format_period_for_display(period: Period | None) -> str:
    """Return a human label such as ``October 2025``."""
    if period is None:
        return "Invalid period"
    return f"{calendar.month_name[period.month]} {period.year}"


__all__ = [
    "Period",
    "SequenceValidation",
    "find_missing_periods",
    "format_filename",
    "format_period_for_display",
    "group_periods_by_year",
    "is_valid_month",
    "is_valid_period",
    "is_valid_year",
    "parse_filename",
    "validate_sequence",
]
