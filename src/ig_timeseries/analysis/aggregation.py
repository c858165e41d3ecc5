"""Category-aware aggregation of monthly records across months and accounts.

Every reduction goes through :func:`aggregate_metric`, which consults the
metric registry before summing. Non-summable metrics therefore come back as
:class:`AverageAggregate` objects that have no ``total`` at all.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Any

import structlog
from attrs import define, field

from ..data.models import Account, AccountSeries, Dataset, MonthlyRecord
from ..data.periods import Period
from ..math import is_valid_value, mean, percentage_change, round_half_up
from ..metrics import registry
from ..metrics.registry import METRIC_KEYS, Aggregation, MetricCategory

logger = structlog.get_logger(__name__)


def valid_values(values: Iterable[object]) -> list[float]:
    """Drop missing, unparsable and negative values."""
    return [float(value) for value in values if is_valid_value(value)]  # type: ignore[arg-type]


def aggregate_metric(
    values: Iterable[object],
    metric: str,
    operation: str,
    *,
    across_accounts: bool = False,
) -> float:
    """Reduce ``values`` of ``metric`` with ``operation`` after checking it is legal.

    Averages are rounded half-up to whole numbers. An empty (or fully invalid)
    input reduces to ``0.0``.
    """
    if across_accounts:
        registry.assert_legal_across_accounts(operation, metric)
    else:
        registry.assert_legal(operation, metric)
    aggregation = registry.normalize_operation(operation)
    usable = valid_values(values)
    if not usable:
        return 0.0
    if aggregation is Aggregation.SUM:
        return float(sum(usable))
    if aggregation is Aggregation.AVERAGE:
        return round_half_up(mean(usable))
    if aggregation is Aggregation.MIN:
        return min(usable)
    return max(usable)


@define(slots=True, frozen=True)
class SummableAggregate:
    """Aggregate of a metric that may be summed."""

    metric: str
    category: MetricCategory
    total: float
    average: float
    min: float
    max: float
    valid_count: int
    scope: str = "periods"

    @property
    def valid_periods(self) -> int:
        return self.valid_count

    @property
    def valid_accounts(self) -> int:
        return self.valid_count

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-friendly representation."""
        return {
            "metric": self.metric,
            "category": self.category.value,
            "total": self.total,
            "average": self.average,
            "min": self.min,
            "max": self.max,
            f"valid_{self.scope}": self.valid_count,
        }


@define(slots=True, frozen=True)
class AverageAggregate:
    """Aggregate of a non-summable metric: averages and bounds only."""

    metric: str
    category: MetricCategory
    average: float
    min: float
    max: float
    valid_count: int
    scope: str = "periods"
    note: str | None = None

    @property
    def valid_periods(self) -> int:
        return self.valid_count

    @property
    def valid_accounts(self) -> int:
        return self.valid_count

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-friendly representation."""
        payload: dict[str, Any] = {
            "metric": self.metric,
            "category": self.category.value,
            "average": self.average,
            "min": self.min,
            "max": self.max,
            f"valid_{self.scope}": self.valid_count,
        }
        if self.note:
            payload["note"] = self.note
        return payload


MetricAggregate = SummableAggregate | AverageAggregate


def _aggregate(values: Sequence[object], metric: str, scope: str) -> MetricAggregate:
    """Build the category-appropriate aggregate for one metric."""
    definition = registry.get(metric)
    across_accounts = scope == "accounts"
    count = len(valid_values(values))
    average = aggregate_metric(values, metric, "average", across_accounts=across_accounts)
    low = aggregate_metric(values, metric, "min", across_accounts=across_accounts)
    high = aggregate_metric(values, metric, "max", across_accounts=across_accounts)
    summable = (
        definition.summable_across_accounts if across_accounts else definition.summable_across_time
    )
    if summable:
        return SummableAggregate(
            metric=metric,
            category=definition.category,
            total=aggregate_metric(values, metric, "sum", across_accounts=across_accounts),
            average=average,
            min=low,
            max=high,
            valid_count=count,
            scope=scope,
        )
    return AverageAggregate(
        metric=metric,
        category=definition.category,
        average=average,
        min=low,
        max=high,
        valid_count=count,
        scope=scope,
        note=definition.warning_note,
    )


@define(slots=True, frozen=True)
class AccountAggregation:
    """Per-metric aggregates for one account over a set of months."""

    account: Account
    periods: tuple[Period, ...] = field(converter=tuple)
    metrics: dict[str, MetricAggregate] = field(factory=dict)

    @property
    def first(self) -> Period | None:
        return self.periods[0] if self.periods else None

    @property
    def last(self) -> Period | None:
        return self.periods[-1] if self.periods else None

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-friendly representation."""
        return {
            "account": self.account.to_dict(),
            "periods": {
                "total": len(self.periods),
                "first": self.first.to_dict() if self.first else None,
                "last": self.last.to_dict() if self.last else None,
                "included": [period.to_dict() for period in self.periods],
            },
            "metrics": {key: value.to_dict() for key, value in self.metrics.items()},
        }


def aggregate_account(
    series: AccountSeries,
    period_filter: Iterable[Period] | None = None,
) -> AccountAggregation:
    """Aggregate every metric of ``series``, optionally restricted to some periods."""
    if series is None:
        raise TypeError("aggregate_account() requires an AccountSeries")
    records = series.records()
    if period_filter is not None:
        wanted = set(period_filter)
        if wanted:
            records = [record for record in records if record.period in wanted]
    metrics = {
        metric: _aggregate([record.value(metric) for record in records], metric, "periods")
        for metric in METRIC_KEYS
    }
    return AccountAggregation(
        account=series.account,
        periods=[record.period for record in records],
        metrics=metrics,
    )


@define(slots=True, frozen=True)
class PeriodSummary:
    """Per-metric aggregates across all accounts for one month."""

    period: Period
    total_accounts: int
    metrics: dict[str, MetricAggregate] = field(factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-friendly representation."""
        return {
            "period": self.period.to_dict(),
            "total_accounts": self.total_accounts,
            "metrics": {key: value.to_dict() for key, value in self.metrics.items()},
        }


def aggregate_period(dataset: Dataset, year: int, month: int) -> PeriodSummary:
    """Aggregate every metric across the accounts reporting for ``(year, month)``."""
    if dataset is None:
        raise TypeError("aggregate_period() requires a Dataset")
    period = Period(year, month)
    records = dataset.records_for_period(year, month)
    metrics = {
        metric: _aggregate([record.value(metric) for record in records], metric, "accounts")
        for metric in METRIC_KEYS
    }
    logger.debug("aggregation.period_summary", period=period.label, accounts=len(records))
    return PeriodSummary(period=period, total_accounts=len(records), metrics=metrics)


@define(slots=True, frozen=True)
class MetricChange:
    """Change of one metric between two period summaries."""

    metric: str
    basis: str
    current: float
    previous: float
    absolute_change: float
    percentage_change: float

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-friendly representation."""
        return {
            "metric": self.metric,
            "basis": self.basis,
            "current": self.current,
            "previous": self.previous,
            "absolute_change": self.absolute_change,
            "percentage_change": self.percentage_change,
        }


@define(slots=True, frozen=True)
class PeriodComparison:
    """Changes between two consecutive summaries."""

    current_period: Period
    previous_period: Period
    account_count_change: int
    metrics: dict[str, MetricChange] = field(factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-friendly representation."""
        return {
            "current_period": self.current_period.to_dict(),
            "previous_period": self.previous_period.to_dict(),
            "account_count_change": self.account_count_change,
            "metrics": {key: value.to_dict() for key, value in self.metrics.items()},
        }


def _comparable(aggregate: MetricAggregate) -> tuple[str, float]:
    """Totals for summable metrics, averages otherwise."""
    if isinstance(aggregate, SummableAggregate):
        return "total", aggregate.total
    return "average", aggregate.average


def compare_periods(summaries: Sequence[PeriodSummary]) -> list[PeriodComparison]:
    """Compare each adjacent pair of summaries in the order given."""
    comparisons = []
    for previous, current in zip(summaries, summaries[1:]):
        changes = {}
        for metric in METRIC_KEYS:
            basis, current_value = _comparable(current.metrics[metric])
            _, previous_value = _comparable(previous.metrics[metric])
            changes[metric] = MetricChange(
                metric=metric,
                basis=basis,
                current=current_value,
                previous=previous_value,
                absolute_change=current_value - previous_value,
                percentage_change=percentage_change(current_value, previous_value),
            )
        comparisons.append(
            PeriodComparison(
                current_period=current.period,
                previous_period=previous.period,
                account_count_change=current.total_accounts - previous.total_accounts,
                metrics=changes,
            )
        )
    return comparisons


def compare_dataset_periods(dataset: Dataset, periods: Sequence[Period]) -> list[PeriodComparison]:
    """Summarize each of ``periods`` and compare them pairwise."""
    if dataset is None:
        raise TypeError("compare_dataset_periods() requires a Dataset")
    if periods is None or len(periods) < 2:
        raise ValueError("compare_dataset_periods() needs at least two periods")
    return compare_periods([aggregate_period(dataset, p.year, p.month) for p in periods])


@define(slots=True, frozen=True)
class RankedAccount:
    """One entry of a top-performer ranking."""

    rank: int
    account: Account
    period: Period
    metric: str
    value: float
    metrics: dict[str, float] = field(factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-friendly representation."""
        return {
            "rank": self.rank,
            "account": self.account.to_dict(),
            "period": self.period.to_dict(),
            "metric": self.metric,
            "value": self.value,
            "all_metrics": dict(self.metrics),
        }


def _valid_records(records: Iterable[MonthlyRecord], metric: str) -> list[MonthlyRecord]:
    return [record for record in records if is_valid_value(record.value(metric))]


def top_performers(
    dataset: Dataset, year: int, month: int, metric: str, n: int = 5
) -> list[RankedAccount]:
    """Rank accounts by ``metric`` for one month, highest first."""
    if dataset is None:
        raise TypeError("top_performers() requires a Dataset")
    registry.get(metric)
    period = Period(year, month)
    records = _valid_records(dataset.records_for_period(year, month), metric)
    # sorted() is stable, so ties keep the alphabetical handle order.
    ranked = sorted(records, key=lambda record: record.value(metric), reverse=True)[: max(n, 0)]
    return [
        RankedAccount(
            rank=index,
            account=record.account,
            period=period,
            metric=metric,
            value=record.value(metric),
            metrics=dict(record.metrics),
        )
        for index, record in enumerate(ranked, start=1)
    ]


@define(slots=True, frozen=True)
class MarketShare:
    """An account's share of a summable metric within one month."""

    account: Account
    period: Period
    metric: str
    value: float
    share: float
    total: float

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-friendly representation."""
        return {
            "account": self.account.to_dict(),
            "period": self.period.to_dict(),
            "metric": self.metric,
            "value": self.value,
            "market_share": self.share,
            "total_market": self.total,
        }


def market_share(dataset: Dataset, year: int, month: int, metric: str) -> list[MarketShare]:
    """Share of ``metric`` per account in percent, largest first.

    Raises :class:`ForbiddenAggregationError` for metrics that cannot be
    summed across accounts.
    """
    if dataset is None:
        raise TypeError("market_share() requires a Dataset")
    registry.get(metric)
    period = Period(year, month)
    records = _valid_records(dataset.records_for_period(year, month), metric)
    total = aggregate_metric(
        [record.value(metric) for record in records], metric, "sum", across_accounts=True
    )
    if total == 0:
        return []
    shares = [
        MarketShare(
            account=record.account,
            period=period,
            metric=metric,
            value=record.value(metric),
            share=round_half_up(record.value(metric) / total * 100, 2),
            total=total,
        )
        for record in records
    ]
    return sorted(shares, key=lambda item: item.share, reverse=True)


@define(slots=True, frozen=True)
class AccountBreakdown:
    """Raw metric values of one account for one month."""

    account: Account
    period: Period
    metrics: dict[str, float] = field(factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-friendly representation."""
        return {
            "account": self.account.to_dict(),
            "period": self.period.to_dict(),
            "metrics": {
                key: {"value": value, "category": registry.category_of(key).value}
                for key, value in self.metrics.items()
            },
        }


def account_breakdown(dataset: Dataset, year: int, month: int) -> list[AccountBreakdown]:
    """List each reporting account's values for one month, ordered by handle."""
    if dataset is None:
        raise TypeError("account_breakdown() requires a Dataset")
    return [
        AccountBreakdown(account=record.account, period=record.period, metrics=dict(record.metrics))
        for record in dataset.records_for_period(year, month)
    ]


@define(slots=True, frozen=True)
class ParameterCheck:
    """Non-raising verdict on a set of aggregation parameters."""

    is_valid: bool
    errors: tuple[str, ...] = field(converter=tuple, factory=tuple)
    warnings: tuple[str, ...] = field(converter=tuple, factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-friendly representation."""
        return {
            "is_valid": self.is_valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
        }


def validate_aggregation_params(
    *,
    dataset: Dataset | None = None,
    periods: object = None,
    metric: str | None = None,
    operation: str | None = None,
) -> ParameterCheck:
    """Check aggregation inputs and report problems instead of raising."""
    errors: list[str] = []
    warnings: list[str] = []
    if dataset is None:
        errors.append("A dataset is required for aggregation")
    if periods is not None:
        if not isinstance(periods, (list, tuple)):
            errors.append("periods must be a list of periods")
        elif not periods:
            warnings.append("Empty periods list given")
    if metric is not None and operation is not None:
        check = registry.check_operation(operation, metric)
        if not check.is_valid:
            errors.append(check.error or f"{operation} is not valid for {metric}")
    elif metric is not None and not registry.is_known(metric):
        errors.append(f"Unknown metric: {metric}")
    return ParameterCheck(is_valid=not errors, errors=errors, warnings=warnings)


__all__ = [
    "AccountAggregation",
    "AccountBreakdown",
    "AverageAggregate",
    "MarketShare",
    "MetricAggregate",
    "MetricChange",
    "ParameterCheck",
    "PeriodComparison",
    "PeriodSummary",
    "RankedAccount",
    "SummableAggregate",
    "account_breakdown",
    "aggregate_account",
    "aggregate_metric",
    "aggregate_period",
    "compare_dataset_periods",
    "compare_periods",
    "market_share",
    "top_performers",
    "valid_values",
]
