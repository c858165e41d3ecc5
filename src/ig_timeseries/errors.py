"""Exception taxonomy for export ingestion and metric aggregation.

Data-dependent validation problems are reported through
:class:`~ig_timeseries.data.schema.ValidationReport` objects; the exceptions
below are raised for single-item conversions and for operations that would
produce a meaningless number.
"""

from __future__ import annotations


class IgTimeseriesError(Exception):
    """Base class for all library errors."""


class FilenameFormatError(IgTimeseriesError, ValueError):
    """Filename does not follow the ``IG_YYYY_MM.csv`` convention."""

    def __init__(self, filename: str, reason: str | None = None) -> None:
        self.filename = filename
        self.reason = reason or "expected IG_YYYY_MM.csv (e.g. IG_2025_10.csv)"
        super().__init__(f"Invalid export filename {filename!r}: {self.reason}")


class PeriodRangeError(FilenameFormatError):
    """Year or month lies outside the supported domain bounds."""

    def __init__(self, year: object, month: object, filename: str | None = None) -> None:
        self.year = year
        self.month = month
        reason = f"period out of range (year={year}, month={month})"
        super().__init__(filename or f"{year}_{month}", reason)


# format_filename() raises this name; it is the same failure as an out-of-range filename.
InvalidPeriodError = PeriodRangeError


class FileFormatError(IgTimeseriesError, ValueError):
    """Export text is empty or larger than the accepted size."""


class SchemaColumnMismatch(IgTimeseriesError, ValueError):
    """Export columns differ from the expected ordered schema."""

    def __init__(self, message: str, *, expected: list[str], actual: list[str]) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(message)


class RowDataError(IgTimeseriesError, ValueError):
    """A single export row lacks a required field."""

    def __init__(self, message: str, *, row: int | None = None) -> None:
        self.row = row
        super().__init__(message if row is None else f"Row {row}: {message}")


class DuplicatePeriodError(IgTimeseriesError):
    """The same reporting period appears more than once in one batch."""

    def __init__(self, period_label: str, filenames: list[str] | None = None) -> None:
        self.period_label = period_label
        self.filenames = filenames or []
        super().__init__(f"Period {period_label} appears more than once in this batch")


class ForbiddenAggregationError(IgTimeseriesError, ValueError):
    """Summing a metric whose values count unique people within a month."""

    def __init__(self, operation: str, metric: str, reason: str) -> None:
        self.operation = operation
        self.metric = metric
        super().__init__(reason)


class UnknownMetricError(IgTimeseriesError, KeyError):
    """Metric key is not part of the registry."""

    def __init__(self, metric: object) -> None:
        self.metric = metric
        super().__init__(metric)

    def __str__(self) -> str:
        return f"Unknown metric: {self.metric!r}"


__all__ = [
    "DuplicatePeriodError",
    "FileFormatError",
    "FilenameFormatError",
    "ForbiddenAggregationError",
    "IgTimeseriesError",
    "InvalidPeriodError",
    "PeriodRangeError",
    "RowDataError",
    "SchemaColumnMismatch",
    "UnknownMetricError",
]
