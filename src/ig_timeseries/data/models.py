"""Domain models for monthly account export data."""

from __future__ import annotations

import math
from collections.abc import Iterable, Iterator, Mapping
from types import MappingProxyType
from typing import Any

import marshmallow as ma
import structlog
from attrs import define, field

from ..errors import PeriodRangeError
from ..metrics.registry import METRIC_KEYS
from .periods import Period

logger = structlog.get_logger(__name__)


def _strip(value: object) -> str:
    """Trim surrounding whitespace from a field."""
    return str(value).strip() if value is not None else ""


def parse_numeric(value: object) -> float | None:
    """Parse an export number leniently, returning None when it is not numeric.

    Thousands separators (``1,234``) and surrounding whitespace are ignored.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = str(value).strip().replace(",", "").replace(" ", "")
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    if not math.isfinite(number):
        return None
    return number


def coerce_numeric(value: object) -> float:
    """Parse a metric value, falling back to ``0.0`` for missing or unparsable input."""
    number = parse_numeric(value)
    return 0.0 if number is None else number


def _metrics(value: Mapping[str, object] | None) -> Mapping[str, float]:
    """Normalize raw metric input into a read-only mapping over the known keys."""
    raw = dict(value or {})
    unknown = set(raw) - set(METRIC_KEYS)
    if unknown:
        raise ValueError(f"Unknown metric keys: {', '.join(sorted(unknown))}")
    return MappingProxyType({key: coerce_numeric(raw.get(key)) for key in METRIC_KEYS})


@define(slots=True, frozen=True)
class Account:
    """An exported social account, identified by its numeric platform id."""

    account_id: str = field(converter=_strip)
    handle: str = field(converter=_strip)
    display_name: str = field(converter=_strip, default="")

    def __attrs_post_init__(self) -> None:
        """Reject accounts without an id or handle and default the display name."""
        if not self.account_id or not self.handle:
            raise ValueError("Account requires both an account_id and a handle.")
        if not self.display_name:
            object.__setattr__(self, "display_name", self.handle)

    def to_dict(self) -> dict[str, str]:
        """Return a JSON-friendly representation."""
        return {
            "account_id": self.account_id,
            "handle": self.handle,
            "display_name": self.display_name,
        }


class AccountSchema(ma.Schema):
    """Marshmallow schema for :class:`Account`."""

    account_id = ma.fields.Str(required=True)
    handle = ma.fields.Str(required=True)
    display_name = ma.fields.Str(required=False, load_default="", dump_default="")

    @ma.post_load
    def make_account(self, data: dict[str, str], **kwargs: object) -> Account:
        """Convert validated payloads into :class:`Account` objects."""
        return Account(**data)


@define(slots=True, frozen=True)
class MonthlyRecord:
    """One account's metrics for exactly one reporting month."""

    account: Account
    period: Period
    metrics: Mapping[str, float] = field(converter=_metrics, factory=dict, hash=False)

    @property
    def account_id(self) -> str:
        """Id of the owning account."""
        return self.account.account_id

    @property
    def year(self) -> int:
        """Reporting year."""
        return self.period.year

    @property
    def month(self) -> int:
        """Reporting month."""
        return self.period.month

    @property
    def key(self) -> str:
        """Store key ``accountId_year_month``."""
        return f"{self.account.account_id}_{self.period.year}_{self.period.month}"

    def value(self, metric: str) -> float:
        """Return the value recorded for ``metric``."""
        try:
            return self.metrics[metric]
        except KeyError:
            raise KeyError(f"Unknown metric: {metric!r}") from None

    def is_same_period(self, year: int, month: int) -> bool:
        """Return True when the record belongs to ``(year, month)``."""
        return self.period.year == year and self.period.month == month

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-friendly representation."""
        return {
            "account": self.account.to_dict(),
            "year": self.period.year,
            "month": self.period.month,
            "metrics": dict(self.metrics),
        }


class MonthlyRecordSchema(ma.Schema):
    """Marshmallow schema for :class:`MonthlyRecord`."""

    account = ma.fields.Nested(AccountSchema, required=True)
    year = ma.fields.Int(required=True)
    month = ma.fields.Int(required=True)
    metrics = ma.fields.Dict(keys=ma.fields.Str(), values=ma.fields.Float(), required=True)

    @ma.validates("metrics")
    def validate_metrics(self, value: dict[str, float], **kwargs: object) -> None:
        """Reject metric keys outside the registry."""
        unknown = set(value) - set(METRIC_KEYS)
        if unknown:
            raise ma.ValidationError(f"Unknown metric keys: {', '.join(sorted(unknown))}")

    @ma.post_load
    def make_record(self, data: dict[str, Any], **kwargs: object) -> MonthlyRecord:
        """Instantiate :class:`MonthlyRecord` from validated row data."""
        return MonthlyRecord(
            account=data["account"],
            period=Period(data["year"], data["month"]),
            metrics=data["metrics"],
        )


@define(slots=True)
class AccountSeries:
    """Chronological monthly records owned by a single account."""

    account: Account
    _records: dict[Period, MonthlyRecord] = field(factory=dict, init=False, repr=False)

    @property
    def account_id(self) -> str:
        """Id of the owning account."""
        return self.account.account_id

    def add(self, record: MonthlyRecord) -> None:
        """Insert or replace the record for the record's period."""
        if record.account_id != self.account.account_id:
            raise ValueError(
                f"Record for account {record.account_id!r} cannot join the series of "
                f"account {self.account.account_id!r}."
            )
        self._records[record.period] = record

    def get_record(self, year: int, month: int) -> MonthlyRecord | None:
        """Return the record for ``(year, month)`` or None."""
        try:
            period = Period(year, month)
        except PeriodRangeError:
            return None
        return self._records.get(period)

    def records(self) -> list[MonthlyRecord]:
        """Return all records in chronological order."""
        return [self._records[period] for period in sorted(self._records)]

    def periods(self) -> list[Period]:
        """Return the periods that have data, in chronological order."""
        return sorted(self._records)

    def values(self, metric: str) -> list[float]:
        """Return ``metric`` values in chronological order."""
        return [record.value(metric) for record in self.records()]

    def has_period(self, year: int, month: int) -> bool:
        """Return True when data exists for ``(year, month)``."""
        return self.get_record(year, month) is not None

    def month_count(self) -> int:
        """Return the number of months with data."""
        return len(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[MonthlyRecord]:
        return iter(self.records())


@define(slots=True, frozen=True)
class DatasetStats:
    """Volume summary of a dataset."""

    total_accounts: int
    total_periods: int
    total_records: int

    def to_dict(self) -> dict[str, int]:
        """Return a JSON-friendly representation."""
        return {
            "total_accounts": self.total_accounts,
            "total_periods": self.total_periods,
            "total_records": self.total_records,
        }


def _handle_order(account: Account) -> tuple[str, str, str]:
    """Alphabetical ordering by handle, stable across case and ties."""
    return (account.handle.casefold(), account.handle, account.account_id)


@define(slots=True)
class Dataset:
    """All ingested series, keyed by account id."""

    _series: dict[str, AccountSeries] = field(factory=dict, init=False, repr=False)

    def add_record(self, record: MonthlyRecord) -> None:
        """Create the owning series on first sight, then upsert by period."""
        series = self._series.get(record.account_id)
        if series is None:
            series = AccountSeries(record.account)
            self._series[record.account_id] = series
            logger.debug("dataset.series_created", account_id=record.account_id)
        elif series.account.handle != record.account.handle:
            logger.debug(
                "dataset.handle_changed",
                account_id=record.account_id,
                known_handle=series.account.handle,
                record_handle=record.account.handle,
            )
        series.add(record)

    def extend_records(self, records: Iterable[MonthlyRecord]) -> None:
        """Upsert each record in order."""
        for record in records:
            self.add_record(record)

    def get_series(self, account_id: str) -> AccountSeries | None:
        """Return the series for ``account_id`` or None."""
        return self._series.get(str(account_id).strip())

    def series(self) -> list[AccountSeries]:
        """Return every series ordered alphabetically by handle."""
        return sorted(self._series.values(), key=lambda item: _handle_order(item.account))

    def accounts(self) -> list[Account]:
        """Return every account ordered alphabetically by handle."""
        return [series.account for series in self.series()]

    def periods(self) -> list[Period]:
        """Return the union of periods across all accounts, chronologically."""
        found: set[Period] = set()
        for series in self._series.values():
            found.update(series.periods())
        return sorted(found)

    def records_for_period(self, year: int, month: int) -> list[MonthlyRecord]:
        """Return one record per account with data for the period, ordered by handle."""
        result = []
        for series in self._series.values():
            record = series.get_record(year, month)
            if record is not None:
                result.append(record)
        return sorted(result, key=lambda record: _handle_order(record.account))

    def records(self) -> list[MonthlyRecord]:
        """Return every record, grouped by account then chronological."""
        return [record for series in self.series() for record in series.records()]

    def record_count(self) -> int:
        """Return the total number of records."""
        return sum(len(series) for series in self._series.values())

    def stats(self) -> DatasetStats:
        """Summarize accounts, periods and records."""
        return DatasetStats(
            total_accounts=len(self._series),
            total_periods=len(self.periods()),
            total_records=self.record_count(),
        )

    def clear(self) -> None:
        """Drop every series."""
        self._series.clear()

    def __len__(self) -> int:
        return len(self._series)

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-friendly representation of the dataset."""
        return {
            "stats": self.stats().to_dict(),
            "periods": [period.to_dict() for period in self.periods()],
            "records": [record.to_dict() for record in self.records()],
        }


class DatasetSchema(ma.Schema):
    """Marshmallow schema for serializing :class:`Dataset` snapshots."""

    records = ma.fields.List(ma.fields.Nested(MonthlyRecordSchema), required=True)

    class Meta:
        unknown = ma.EXCLUDE

    @ma.post_load
    def make_dataset(self, data: dict[str, Any], **kwargs: object) -> Dataset:
        """Instantiate :class:`Dataset` objects from validated payloads."""
        dataset = Dataset()
        dataset.extend_records(data["records"])
        return dataset


def add_record(dataset: Dataset, record: MonthlyRecord) -> None:
    """Upsert ``record`` into ``dataset``."""
    dataset.add_record(record)


def get_record(series: AccountSeries, year: int, month: int) -> MonthlyRecord | None:
    """Return the record of ``series`` for ``(year, month)``."""
    return series.get_record(year, month)


def all_records(series: AccountSeries) -> list[MonthlyRecord]:
    """Return the records of ``series`` chronologically."""
    return series.records()


def all_accounts(dataset: Dataset) -> list[Account]:
    """Return the accounts of ``dataset`` alphabetically by handle."""
    return dataset.accounts()


def all_periods(dataset: Dataset) -> list[Period]:
    """Return the periods of ``dataset`` chronologically."""
    return dataset.periods()


def records_for_period(dataset: Dataset, year: int, month: int) -> list[MonthlyRecord]:
    """Return one record per account for ``(year, month)``."""
    return dataset.records_for_period(year, month)


__all__ = [
    "Account",
    "AccountSchema",
    "AccountSeries",
    "Dataset",
    "DatasetSchema",
    "DatasetStats",
    "MonthlyRecord",
    "MonthlyRecordSchema",
    "add_record",
    "all_accounts",
    "all_periods",
    "all_records",
    "coerce_numeric",
    "get_record",
    "parse_numeric",
    "records_for_period",
]
