"""Structural and row-level validation for monthly export tables.

Validation never raises for bad input data. Every check contributes
:class:`ValidationIssue` entries to a :class:`ValidationReport`, and callers
branch on :attr:`ValidationReport.outcome`. Exceptions are reserved for
misuse such as passing ``None`` instead of a table.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from enum import Enum
from typing import Any

import structlog
from attrs import define, field

from ..metrics.registry import METRICS
from .files import ACCOUNT_ID_COLUMN, EXPECTED_COLUMNS, HANDLE_COLUMN, MAX_FILE_BYTES
from .models import parse_numeric
from .parser import Table

logger = structlog.get_logger(__name__)


class Severity(str, Enum):
    """How much an issue matters to the caller."""

    ERROR = "error"
    WARNING = "warning"


class IssueCode(str, Enum):
    """Machine-readable issue categories."""

    FILENAME = "filename_error"
    FILE_FORMAT = "file_format_error"
    PERIOD_RANGE = "period_range_error"
    SCHEMA_COLUMNS = "schema_column_mismatch"
    ROW_DATA = "row_data_error"
    DUPLICATE_PERIOD = "duplicate_period_error"
    DATA_CONTENT = "data_content_error"


class ValidationOutcome(str, Enum):
    """Terminal states of a validation pass."""

    VALID = "valid"
    VALID_WITH_WARNINGS = "valid-with-warnings"
    INVALID = "invalid"


@define(slots=True, frozen=True)
class ValidationConfig:
    """Thresholds applied by the validator."""

    min_rows: int = 1
    max_rows: int = 200
    fatal_row_error_ratio: float = 0.5
    valid_row_warning_ratio: float = 0.8
    max_reported_row_errors: int = 10
    max_bytes: int = MAX_FILE_BYTES
    expected_columns: tuple[str, ...] = EXPECTED_COLUMNS


DEFAULT_CONFIG = ValidationConfig()


@define(slots=True, frozen=True)
class ValidationIssue:
    """A single severity-tagged problem."""

    code: IssueCode
    message: str
    severity: Severity = Severity.ERROR
    row: int | None = None
    details: Mapping[str, Any] = field(factory=dict, hash=False)

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-friendly representation."""
        payload: dict[str, Any] = {
            "code": self.code.value,
            "message": self.message,
            "severity": self.severity.value,
        }
        if self.row is not None:
            payload["row"] = self.row
        if self.details:
            payload["details"] = dict(self.details)
        return payload


def error(code: IssueCode, message: str, **kwargs: Any) -> ValidationIssue:
    """Build an error-severity issue."""
    return ValidationIssue(code=code, message=message, severity=Severity.ERROR, **kwargs)


def warning(code: IssueCode, message: str, **kwargs: Any) -> ValidationIssue:
    """Build a warning-severity issue."""
    return ValidationIssue(code=code, message=message, severity=Severity.WARNING, **kwargs)


@define(slots=True)
class ValidationReport:
    """Result envelope of any validation pass."""

    errors: list[ValidationIssue] = field(factory=list)
    warnings: list[ValidationIssue] = field(factory=list)
    info: dict[str, Any] = field(factory=dict)

    @property
    def is_valid(self) -> bool:
        """True when no error-severity issue was recorded."""
        return not self.errors

    @property
    def outcome(self) -> ValidationOutcome:
        """Classify the report into one of the three terminal outcomes."""
        if self.errors:
            return ValidationOutcome.INVALID
        if self.warnings:
            return ValidationOutcome.VALID_WITH_WARNINGS
        return ValidationOutcome.VALID

    def add(self, issue: ValidationIssue) -> None:
        """Record an issue under its severity."""
        if issue.severity is Severity.ERROR:
            self.errors.append(issue)
        else:
            self.warnings.append(issue)

    def merge(self, other: ValidationReport) -> ValidationReport:
        """Fold another report's issues and info into this one."""
        self.errors.extend(other.errors)
        self.warnings.extend(other.warnings)
        self.info.update(other.info)
        return self

    def messages(self) -> list[str]:
        """Return ``severity: message`` strings, errors first."""
        return [f"{issue.severity.value}: {issue.message}" for issue in self.errors + self.warnings]

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-friendly representation."""
        return {
            "is_valid": self.is_valid,
            "outcome": self.outcome.value,
            "errors": [issue.to_dict() for issue in self.errors],
            "warnings": [issue.to_dict() for issue in self.warnings],
            "info": dict(self.info),
        }


@define(slots=True)
class RowValidation:
    """Outcome of validating one data row."""

    row: int
    errors: list[ValidationIssue] = field(factory=list)
    warnings: list[ValidationIssue] = field(factory=list)

    @property
    def is_valid(self) -> bool:
        """True when the row has no required-field errors."""
        return not self.errors

    @property
    def is_fully_valid(self) -> bool:
        """True when the row has neither errors nor warnings."""
        return not self.errors and not self.warnings


def _column_mismatch_message(expected: Sequence[str], actual: Sequence[str]) -> str:
    """Describe which columns are missing or unexpected."""
    missing = [name for name in expected if name not in actual]
    extra = [name for name in actual if name not in expected]
    parts = [f"Expected {len(expected)} columns, found {len(actual)}"]
    if missing:
        parts.append(f"missing: {', '.join(missing)}")
    if extra:
        parts.append(f"unexpected: {', '.join(extra)}")
    return "; ".join(parts)


def _megabytes(size: int) -> str:
    return f"{size / 1024 / 1024:.2f}MB"


def validate_file_properties(
    text: str, config: ValidationConfig = DEFAULT_CONFIG
) -> ValidationReport:
    """Reject empty exports and exports larger than ``config.max_bytes``."""
    if text is None:
        raise TypeError("validate_file_properties() requires text, got None")

    report = ValidationReport()
    size = len(text.encode("utf-8"))
    report.info["size_bytes"] = size
    if not text.strip():
        report.add(error(IssueCode.FILE_FORMAT, "File is empty"))
    elif size > config.max_bytes:
        report.add(
            error(
                IssueCode.FILE_FORMAT,
                f"File is too large: {_megabytes(size)} (max {_megabytes(config.max_bytes)})",
                details={"size_bytes": size, "max_bytes": config.max_bytes},
            )
        )
    if not report.is_valid:
        logger.info("schema.file_rejected", size_bytes=size)
    return report


def validate_structure(table: Table, config: ValidationConfig = DEFAULT_CONFIG) -> ValidationReport:
    """Check column count, column names by position, and row count."""
    if table is None:
        raise TypeError("validate_structure() requires a parsed table, got None")

    report = ValidationReport()
    expected = [name.strip() for name in config.expected_columns]
    actual = [name.strip() for name in table.columns]
    report.info.update({"columns": actual, "row_count": len(table.rows)})

    if len(actual) != len(expected):
        report.add(
            error(
                IssueCode.SCHEMA_COLUMNS,
                _column_mismatch_message(expected, actual),
                details={"expected": expected, "actual": actual},
            )
        )
    else:
        mismatched = [
            (position, found, wanted)
            for position, (found, wanted) in enumerate(zip(actual, expected), start=1)
            if found != wanted
        ]
        if mismatched:
            described = ", ".join(
                f"column {position} is {found!r}, expected {wanted!r}"
                for position, found, wanted in mismatched
            )
            report.add(
                error(
                    IssueCode.SCHEMA_COLUMNS,
                    f"Unexpected column names: {described}",
                    details={"expected": expected, "actual": actual},
                )
            )

    row_count = len(table.rows)
    if row_count < config.min_rows:
        report.add(
            error(
                IssueCode.SCHEMA_COLUMNS,
                f"Too few rows: {row_count} (minimum {config.min_rows})",
            )
        )
    if row_count > config.max_rows:
        report.add(
            warning(
                IssueCode.SCHEMA_COLUMNS,
                f"Many rows: {row_count} (more than {config.max_rows} may slow analysis)",
            )
        )
    if table.parse_errors:
        report.add(
            warning(
                IssueCode.SCHEMA_COLUMNS,
                f"CSV parsing reported {len(table.parse_errors)} problem(s)",
                details={"parse_errors": list(table.parse_errors)},
            )
        )

    if not report.is_valid:
        logger.info("schema.structure_invalid", errors=[issue.message for issue in report.errors])
    return report


def _is_blank(value: object) -> bool:
    return value is None or str(value).strip() == ""


def validate_row(row: Mapping[str, object], row_number: int = 1) -> RowValidation:
    """Check required identifiers and lenient numeric metric fields of one row."""
    if row is None:
        raise TypeError("validate_row() requires a row mapping, got None")

    result = RowValidation(row=row_number)
    if _is_blank(row.get(HANDLE_COLUMN)):
        result.errors.append(
            error(IssueCode.ROW_DATA, f"Row {row_number}: missing Account (handle)", row=row_number)
        )
    if _is_blank(row.get(ACCOUNT_ID_COLUMN)):
        result.errors.append(
            error(IssueCode.ROW_DATA, f"Row {row_number}: missing IG ID", row=row_number)
        )

    for definition in METRICS.values():
        raw = row.get(definition.csv_column)
        if _is_blank(raw):
            continue
        number = parse_numeric(raw)
        if number is None:
            result.warnings.append(
                warning(
                    IssueCode.ROW_DATA,
                    f"Row {row_number}: {definition.csv_column} is not numeric: {raw!r}",
                    row=row_number,
                )
            )
        elif number < 0:
            result.warnings.append(
                warning(
                    IssueCode.ROW_DATA,
                    f"Row {row_number}: {definition.csv_column} is negative: {number:g}",
                    row=row_number,
                )
            )
    return result


def validate_content(
    rows: Sequence[Mapping[str, object]],
    config: ValidationConfig = DEFAULT_CONFIG,
) -> ValidationReport:
    """Aggregate per-row outcomes into a file-level verdict."""
    if rows is None:
        raise TypeError("validate_content() requires a sequence of rows, got None")

    report = ValidationReport()
    total = len(rows)
    if total == 0:
        report.add(error(IssueCode.DATA_CONTENT, "The export contains no data rows"))
        report.info.update({"valid_rows": 0, "fully_valid_rows": 0, "error_rows": 0})
        return report

    outcomes = [validate_row(row, number) for number, row in enumerate(rows, start=1)]
    valid_rows = sum(1 for outcome in outcomes if outcome.is_valid)
    fully_valid_rows = sum(1 for outcome in outcomes if outcome.is_fully_valid)
    failed = [outcome for outcome in outcomes if not outcome.is_valid]
    for outcome in outcomes:
        report.warnings.extend(outcome.warnings)

    if valid_rows == 0:
        report.add(error(IssueCode.DATA_CONTENT, "No valid data rows were found"))

    if failed:
        reported = [issue for outcome in failed for issue in outcome.errors]
        if len(failed) >= total * config.fatal_row_error_ratio:
            report.add(
                error(
                    IssueCode.ROW_DATA,
                    f"Too many row errors: {len(failed)}/{total} rows have problems",
                    details={"rows": [outcome.row for outcome in failed]},
                )
            )
        else:
            shown = failed[: config.max_reported_row_errors]
            report.add(
                warning(
                    IssueCode.ROW_DATA,
                    f"{len(failed)} row(s) have data errors and will be skipped",
                    details={
                        "rows": [outcome.row for outcome in shown],
                        "messages": [
                            issue.message
                            for issue in reported
                            if issue.row in {outcome.row for outcome in shown}
                        ],
                    },
                )
            )

    if valid_rows and fully_valid_rows < total * config.valid_row_warning_ratio:
        report.add(
            warning(
                IssueCode.DATA_CONTENT,
                f"Only {fully_valid_rows}/{total} rows are fully valid "
                f"(less than {config.valid_row_warning_ratio:.0%})",
            )
        )

    report.info.update(
        {
            "valid_rows": valid_rows,
            "fully_valid_rows": fully_valid_rows,
            "error_rows": len(failed),
        }
    )
    return report


def validate_table(table: Table, config: ValidationConfig = DEFAULT_CONFIG) -> ValidationReport:
    """Run structure checks and, when they pass, content checks."""
    report = validate_structure(table, config)
    if report.is_valid:
        report.merge(validate_content(table.rows, config))
    return report


__all__ = [
    "DEFAULT_CONFIG",
    "IssueCode",
    "RowValidation",
    "Severity",
    "ValidationConfig",
    "ValidationIssue",
    "ValidationOutcome",
    "ValidationReport",
    "error",
    "validate_content",
    "validate_file_properties",
    "validate_row",
    "validate_structure",
    "validate_table",
    "warning",
]
