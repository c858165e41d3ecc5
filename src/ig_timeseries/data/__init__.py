"""Top-level data module for monthly export processing."""

from .ingest import BatchResult, DatasetBuilder, ExportFile, FileResult, ingest_files, parse_export
from .models import Account, AccountSeries, Dataset, MonthlyRecord
from .periods import Period, find_missing_periods, format_filename, parse_filename
from .store import InMemoryRecordStore, PostgresRecordStore, RecordStore, load_dataset

__all__ = [
    "Account",
    "AccountSeries",
    "Dataset",
    "MonthlyRecord",
    "Period",
    "BatchResult",
    "DatasetBuilder",
    "ExportFile",
    "FileResult",
    "InMemoryRecordStore",
    "PostgresRecordStore",
    "RecordStore",
    "find_missing_periods",
    "format_filename",
    "ingest_files",
    "load_dataset",
    "parse_export",
    "parse_filename",
]
