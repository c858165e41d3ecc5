"""Orchestration utilities for assembling datasets from monthly export files."""

from __future__ import annotations

import threading
from collections.abc import Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor
from typing import Any

import structlog
from attrs import define, evolve, field

from ..errors import (
    DuplicatePeriodError,
    FileFormatError,
    FilenameFormatError,
    PeriodRangeError,
    RowDataError,
    SchemaColumnMismatch,
)
from .models import Dataset, MonthlyRecord
from .parser import parse_rows, read_table
from .periods import Period, parse_filename, validate_sequence
from .schema import (
    DEFAULT_CONFIG,
    IssueCode,
    ValidationConfig,
    ValidationIssue,
    ValidationOutcome,
    ValidationReport,
    error,
    validate_file_properties,
    validate_table,
)

logger = structlog.get_logger(__name__)


@define(slots=True, frozen=True)
class ExportFile:
    """Decoded contents of one export file supplied by the caller."""

    filename: str
    text: str


@define(slots=True)
class FileResult:
    """Validation report and converted records for one export file."""

    filename: str
    report: ValidationReport
    period: Period | None = None
    records: list[MonthlyRecord] = field(factory=list)

    @property
    def is_valid(self) -> bool:
        """True when the file produced no error-severity issues."""
        return self.report.is_valid

    @property
    def outcome(self) -> ValidationOutcome:
        """Terminal validation outcome of the file."""
        return self.report.outcome

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-friendly representation."""
        return {
            "filename": self.filename,
            "period": self.period.to_dict() if self.period else None,
            "records": len(self.records),
            **self.report.to_dict(),
        }


def _tag(issue: ValidationIssue, filename: str) -> ValidationIssue:
    """Attach the originating filename to an issue."""
    return evolve(issue, details={**issue.details, "filename": filename})


def parse_export(
    filename: str,
    text: str,
    *,
    strict: bool = True,
    config: ValidationConfig = DEFAULT_CONFIG,
) -> FileResult:
    """Resolve the period, validate the table and convert usable rows.

    Bad input never raises; every problem is recorded on the returned report.
    """
    if filename is None or text is None:
        raise TypeError("parse_export() requires both a filename and text")

    log = logger.bind(filename=filename, strict=strict)
    report = ValidationReport()
    result = FileResult(filename=filename, report=report)
    try:
        result.period = parse_filename(filename, strict=strict)
    except PeriodRangeError as exc:
        report.add(error(IssueCode.PERIOD_RANGE, str(exc), details={"filename": filename}))
    except FilenameFormatError as exc:
        report.add(error(IssueCode.FILENAME, str(exc), details={"filename": filename}))
    if result.period is None:
        log.warning("ingest.filename_rejected")
        return result

    report.merge(validate_file_properties(text, config))
    if not report.is_valid:
        log.warning("ingest.file_rejected", errors=len(report.errors))
        return result

    table = read_table(text)

    report.merge(validate_table(table, config))
    report.info["period"] = result.period.label
    if not report.is_valid:
        log.warning("ingest.file_invalid", errors=len(report.errors))
        return result

    rows, _ = parse_rows(table.rows)
    result.records = [row.to_record(result.period) for row in rows]
    log.debug("ingest.file_parsed", records=len(result.records), warnings=len(report.warnings))
    return result


def load_export(
    filename: str,
    text: str,
    *,
    strict: bool = True,
    config: ValidationConfig = DEFAULT_CONFIG,
) -> list[MonthlyRecord]:
    """Convert one export file, raising on the first fatal problem."""
    result = parse_export(filename, text, strict=strict, config=config)
    if result.period is None:
        # Re-raise the precise filename error for strict callers.
        parse_filename(filename, strict=strict)
    for issue in result.report.errors:
        if issue.code is IssueCode.FILE_FORMAT:
            raise FileFormatError(issue.message)
        if issue.code is IssueCode.SCHEMA_COLUMNS and "expected" in issue.details:
            raise SchemaColumnMismatch(
                issue.message,
                expected=list(issue.details.get("expected", [])),
                actual=list(issue.details.get("actual", [])),
            )
    if result.report.errors:
        raise RowDataError(result.report.errors[0].message)
    return result.records


@define(slots=True)
class BatchResult:
    """Partial-success outcome of ingesting several export files."""

    dataset: Dataset
    files: list[FileResult] = field(factory=list)
    errors: list[ValidationIssue] = field(factory=list)
    warnings: list[ValidationIssue] = field(factory=list)

    @property
    def is_valid(self) -> bool:
        """True when no file and no batch-level check reported an error."""
        return not self.errors

    @property
    def valid_files(self) -> list[FileResult]:
        """Files whose records were merged."""
        return [result for result in self.files if result.is_valid]

    @property
    def invalid_files(self) -> list[FileResult]:
        """Files that were rejected."""
        return [result for result in self.files if not result.is_valid]

    def raise_for_duplicates(self) -> None:
        """Raise :class:`DuplicatePeriodError` for the first period supplied twice."""
        for issue in self.errors:
            if issue.code is IssueCode.DUPLICATE_PERIOD:
                raise DuplicatePeriodError(
                    issue.details["period"], list(issue.details.get("filenames", []))
                )

    def summary(self) -> dict[str, int]:
        """Count files, periods and dataset volume."""
        stats = self.dataset.stats()
        duplicates = [issue for issue in self.errors if issue.code is IssueCode.DUPLICATE_PERIOD]
        return {
            "total_files": len(self.files),
            "valid_files": len(self.valid_files),
            "invalid_files": len(self.invalid_files),
            "periods_detected": sum(1 for result in self.files if result.period is not None),
            "duplicate_periods": len(duplicates),
            "total_accounts": stats.total_accounts,
            "total_periods": stats.total_periods,
            "total_records": stats.total_records,
        }

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-friendly representation."""
        return {
            "is_valid": self.is_valid,
            "summary": self.summary(),
            "errors": [issue.to_dict() for issue in self.errors],
            "warnings": [issue.to_dict() for issue in self.warnings],
            "files": [result.to_dict() for result in self.files],
        }


def _as_export(item: ExportFile | tuple[str, str]) -> ExportFile:
    if isinstance(item, ExportFile):
        return item
    filename, text = item
    return ExportFile(filename=filename, text=text)


@define(slots=True)
class DatasetBuilder:
    """Validate export files and merge their records into one dataset.

    Parsing may run on a thread pool; merging always happens one file at a
    time, in the order the files were supplied.
    """

    dataset: Dataset = field(factory=Dataset)
    strict: bool = True
    config: ValidationConfig = DEFAULT_CONFIG
    max_workers: int = 4
    _lock: threading.Lock = field(factory=threading.Lock, init=False, repr=False)

    def parse(self, export: ExportFile) -> FileResult:
        """Validate and convert a single file without touching the dataset."""
        return parse_export(export.filename, export.text, strict=self.strict, config=self.config)

    def merge(self, result: FileResult) -> int:
        """Upsert the records of a valid file, returning how many were merged."""
        if not result.is_valid:
            return 0
        with self._lock:
            self.dataset.extend_records(result.records)
        logger.debug("ingest.file_merged", filename=result.filename, records=len(result.records))
        return len(result.records)

    def ingest_file(self, filename: str, text: str) -> FileResult:
        """Parse one file and merge it when valid."""
        result = self.parse(ExportFile(filename=filename, text=text))
        self.merge(result)
        return result

    def ingest_batch(self, files: Iterable[ExportFile | tuple[str, str]]) -> BatchResult:
        """Parse files in parallel, then merge them sequentially into the dataset."""
        exports = [_as_export(item) for item in files]
        batch = BatchResult(dataset=self.dataset)
        log = logger.bind(files=len(exports), workers=self.max_workers)
        log.info("ingest.batch_start")
        if not exports:
            batch.errors.append(error(IssueCode.DATA_CONTENT, "No files to ingest"))
            return batch

        results = self._parse_all(exports)
        for result in results:
            batch.files.append(result)
            batch.errors.extend(_tag(issue, result.filename) for issue in result.report.errors)
            batch.warnings.extend(_tag(issue, result.filename) for issue in result.report.warnings)
            self.merge(result)

        batch.errors.extend(self._duplicate_issues(results))
        log.info("ingest.batch_complete", **batch.summary())
        return batch

    def _parse_all(self, exports: Sequence[ExportFile]) -> list[FileResult]:
        """Parse every export, preserving input order."""
        if self.max_workers <= 1 or len(exports) == 1:
            return [self.parse(export) for export in exports]
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            return list(executor.map(self.parse, exports))

    @staticmethod
    def _duplicate_issues(results: Sequence[FileResult]) -> list[ValidationIssue]:
        """Report periods supplied by more than one file in the batch."""
        periods = [result.period for result in results if result.period is not None]
        if not periods:
            return []
        sequence = validate_sequence(periods)
        issues = []
        for period in dict.fromkeys(sequence.duplicates):
            filenames = [result.filename for result in results if result.period == period]
            issues.append(
                error(
                    IssueCode.DUPLICATE_PERIOD,
                    f"Period {period.label} appears in more than one file: {', '.join(filenames)}",
                    details={"period": period.label, "filenames": filenames},
                )
            )
        return issues


def ingest_files(
    files: Iterable[ExportFile | tuple[str, str]],
    *,
    dataset: Dataset | None = None,
    strict: bool = True,
    config: ValidationConfig = DEFAULT_CONFIG,
    max_workers: int = 4,
) -> BatchResult:
    """Ingest a batch of ``(filename, text)`` pairs into a dataset."""
    builder = DatasetBuilder(
        dataset=dataset if dataset is not None else Dataset(),
        strict=strict,
        config=config,
        max_workers=max_workers,
    )
    return builder.ingest_batch(files)


__all__ = [
    "BatchResult",
    "DatasetBuilder",
    "ExportFile",
    "FileResult",
    "ingest_files",
    "load_export",
    "parse_export",
]
