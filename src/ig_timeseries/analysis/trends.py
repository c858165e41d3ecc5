"""Per-account trend, correlation and anomaly analytics."""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from typing import Any

import structlog
from attrs import define, field

from ..data.models import Account, AccountSeries, MonthlyRecord
from ..data.periods import Period
from ..math import is_finite, is_valid_value, pearson, percentage_change, round_half_up, spread
from ..metrics import registry
from ..metrics.registry import METRIC_KEYS
from .aggregation import aggregate_metric

logger = structlog.get_logger(__name__)

INSUFFICIENT_DATA = "insufficient data"
MIN_CORRELATION_POINTS = 3
MIN_ANOMALY_POINTS = 3
# Percentage changes within +/- this band count as stable months.
STABLE_BAND = 1.0


def _require(series: AccountSeries | None, metric: str | None = None) -> None:
    if series is None:
        raise TypeError("an AccountSeries is required")
    if metric is not None:
        registry.get(metric)


@define(slots=True, frozen=True)
class TrendPoint:
    """Change of a metric between two consecutive months of one account."""

    period: Period
    previous_period: Period
    metric: str
    current_value: float
    previous_value: float
    absolute_change: float
    percentage_change: float

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-friendly representation."""
        return {
            "period": self.period.to_dict(),
            "previous_period": self.previous_period.to_dict(),
            "metric": self.metric,
            "current_value": self.current_value,
            "previous_value": self.previous_value,
            "absolute_change": self.absolute_change,
            "percentage_change": self.percentage_change,
        }


def month_to_month_trend(series: AccountSeries, metric: str) -> list[TrendPoint]:
    """Yield one :class:`TrendPoint` per adjacent pair of valid records, chronologically.

    Months whose value is negative or non-finite are skipped, so a change is
    measured against the previous usable month.
    """
    _require(series, metric)
    records = [record for record in series.records() if is_valid_value(record.value(metric))]
    return [
        TrendPoint(
            period=current.period,
            previous_period=previous.period,
            metric=metric,
            current_value=current.value(metric),
            previous_value=previous.value(metric),
            absolute_change=current.value(metric) - previous.value(metric),
            percentage_change=percentage_change(current.value(metric), previous.value(metric)),
        )
        for previous, current in zip(records, records[1:])
    ]


@define(slots=True, frozen=True)
class TrendSummary:
    """Mean changes and direction counts over a trend."""

    average_absolute_change: float = 0.0
    average_percentage_change: float = 0.0
    total_periods: int = 0
    positive_months: int = 0
    negative_months: int = 0
    stable_months: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-friendly representation."""
        return {
            "average_absolute_change": self.average_absolute_change,
            "average_percentage_change": self.average_percentage_change,
            "total_periods": self.total_periods,
            "positive_months": self.positive_months,
            "negative_months": self.negative_months,
            "stable_months": self.stable_months,
        }


def average_trend(points: Sequence[TrendPoint]) -> TrendSummary:
    """Summarize a trend; an empty trend gives an all-zero summary."""
    if not points:
        return TrendSummary()
    percentages = [point.percentage_change for point in points if is_finite(point.percentage_change)]
    return TrendSummary(
        average_absolute_change=sum(point.absolute_change for point in points) / len(points),
        average_percentage_change=sum(percentages) / len(percentages) if percentages else 0.0,
        total_periods=len(points),
        positive_months=sum(1 for pct in percentages if pct > STABLE_BAND),
        negative_months=sum(1 for pct in percentages if pct < -STABLE_BAND),
        stable_months=sum(1 for pct in percentages if -STABLE_BAND <= pct <= STABLE_BAND),
    )


@define(slots=True, frozen=True)
class MonthValue:
    """A metric value pinned to the month it was recorded in."""

    period: Period
    value: float
    record: MonthlyRecord = field(repr=False)

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-friendly representation."""
        return {"period": self.period.to_dict(), "value": self.value}


@define(slots=True, frozen=True)
class Extremes:
    """Best and worst month for one metric."""

    best: MonthValue | None = None
    worst: MonthValue | None = None

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-friendly representation."""
        return {
            "best": self.best.to_dict() if self.best else None,
            "worst": self.worst.to_dict() if self.worst else None,
        }


def performance_extremes(series: AccountSeries, metric: str) -> Extremes:
    """Find the months with the highest and lowest valid value; ties keep the earliest."""
    _require(series, metric)
    records = [record for record in series.records() if is_valid_value(record.value(metric))]
    if not records:
        return Extremes()
    best = worst = records[0]
    for record in records[1:]:
        if record.value(metric) > best.value(metric):
            best = record
        if record.value(metric) < worst.value(metric):
            worst = record
    return Extremes(
        best=MonthValue(period=best.period, value=best.value(metric), record=best),
        worst=MonthValue(period=worst.period, value=worst.value(metric), record=worst),
    )


@define(slots=True, frozen=True)
class CorrelationResult:
    """Pearson correlation between two metrics of one account."""

    metric_a: str
    metric_b: str
    correlation: float | None
    sample_size: int
    message: str | None = None
    mean_a: float | None = None
    mean_b: float | None = None

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-friendly representation."""
        return {
            "metric_a": self.metric_a,
            "metric_b": self.metric_b,
            "correlation": self.correlation,
            "sample_size": self.sample_size,
            "message": self.message,
            "mean_a": self.mean_a,
            "mean_b": self.mean_b,
        }


def correlation(series: AccountSeries, metric_a: str, metric_b: str) -> CorrelationResult:
    """Correlate two metrics over the months where both values are valid.

    Fewer than three usable pairs is not an error: the result carries
    ``correlation=None`` and an explanatory message. Zero variance gives ``0``.
    """
    _require(series, metric_a)
    registry.get(metric_b)
    pairs = [
        (record.value(metric_a), record.value(metric_b))
        for record in series.records()
        if is_valid_value(record.value(metric_a)) and is_valid_value(record.value(metric_b))
    ]
    if len(pairs) < MIN_CORRELATION_POINTS:
        return CorrelationResult(
            metric_a=metric_a,
            metric_b=metric_b,
            correlation=None,
            sample_size=len(pairs),
            message=INSUFFICIENT_DATA,
        )
    values_a = [a for a, _ in pairs]
    values_b = [b for _, b in pairs]
    coefficient = pearson(values_a, values_b)
    return CorrelationResult(
        metric_a=metric_a,
        metric_b=metric_b,
        correlation=0.0 if math.isnan(coefficient) else coefficient,
        sample_size=len(pairs),
        mean_a=sum(values_a) / len(values_a),
        mean_b=sum(values_b) / len(values_b),
    )


@define(slots=True, frozen=True)
class Outlier:
    """A month whose value lies outside the anomaly band."""

    period: Period
    value: float
    deviation: str
    deviation_from_mean: float
    z_score: float

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-friendly representation."""
        return {
            "period": self.period.to_dict(),
            "value": self.value,
            "deviation": self.deviation,
            "deviation_from_mean": self.deviation_from_mean,
            "z_score": self.z_score,
        }


@define(slots=True, frozen=True)
class AnomalyStatistics:
    """Population statistics behind an anomaly scan."""

    mean: float
    standard_deviation: float
    lower_bound: float
    upper_bound: float
    threshold: float
    sample_size: int

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-friendly representation."""
        return {
            "mean": self.mean,
            "standard_deviation": self.standard_deviation,
            "lower_bound": self.lower_bound,
            "upper_bound": self.upper_bound,
            "threshold": self.threshold,
            "sample_size": self.sample_size,
        }


@define(slots=True, frozen=True)
class AnomalyReport:
    """Outlying months plus the statistics used to find them."""

    outliers: list[Outlier] = field(factory=list)
    statistics: AnomalyStatistics | None = None

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-friendly representation."""
        return {
            "outliers": [outlier.to_dict() for outlier in self.outliers],
            "statistics": self.statistics.to_dict() if self.statistics else None,
        }


def find_anomalies(series: AccountSeries, metric: str, threshold: float = 2.0) -> AnomalyReport:
    """Flag months outside ``mean +/- threshold * std`` (population statistics)."""
    _require(series, metric)
    records = [record for record in series.records() if is_valid_value(record.value(metric))]
    if len(records) < MIN_ANOMALY_POINTS:
        return AnomalyReport()

    stats = spread([record.value(metric) for record in records])
    lower = stats.mean - threshold * stats.std
    upper = stats.mean + threshold * stats.std
    outliers = []
    for record in records:
        value = record.value(metric)
        if lower <= value <= upper:
            continue
        outliers.append(
            Outlier(
                period=record.period,
                value=value,
                deviation="low" if value < lower else "high",
                deviation_from_mean=value - stats.mean,
                z_score=abs(value - stats.mean) / stats.std,
            )
        )
    if outliers:
        logger.debug(
            "trends.anomalies_found",
            account_id=series.account_id,
            metric=metric,
            count=len(outliers),
        )
    return AnomalyReport(
        outliers=outliers,
        statistics=AnomalyStatistics(
            mean=round_half_up(stats.mean),
            standard_deviation=round_half_up(stats.std),
            lower_bound=round_half_up(lower),
            upper_bound=round_half_up(upper),
            threshold=threshold,
            sample_size=stats.size,
        ),
    )


def metric_average(series: AccountSeries, metric: str) -> float:
    """Mean of the valid values of ``metric``; ``0.0`` without data."""
    _require(series, metric)
    values = [value for value in series.values(metric) if is_valid_value(value)]
    return sum(values) / len(values) if values else 0.0


def metric_total(series: AccountSeries, metric: str) -> float:
    """Sum ``metric`` over all months; forbidden for non-summable metrics."""
    _require(series, metric)
    return aggregate_metric(series.values(metric), metric, "total")


@define(slots=True, frozen=True)
class EngagementRate:
    """Reach relative to followers for one month, in percent."""

    period: Period
    reach: float
    followers: float
    rate: float | None

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-friendly representation."""
        return {
            "period": self.period.to_dict(),
            "reach": self.reach,
            "followers": self.followers,
            "engagement_rate": self.rate,
        }


def engagement_rates(series: AccountSeries) -> list[EngagementRate]:
    """Monthly ``reach / followers * 100`` rounded to 2 decimals; None without followers."""
    _require(series)
    rates = []
    for record in series.records():
        reach, followers = record.value("reach"), record.value("followers")
        rate = round_half_up(reach / followers * 100, 2) if followers > 0 else None
        rates.append(EngagementRate(period=record.period, reach=reach, followers=followers, rate=rate))
    return rates


@define(slots=True, frozen=True)
class EngagementSummary:
    """Average, minimum and maximum of the monthly engagement rates."""

    average: float = 0.0
    min: float = 0.0
    max: float = 0.0
    valid_periods: int = 0
    total_periods: int = 0
    monthly: list[EngagementRate] = field(factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-friendly representation."""
        return {
            "average_engagement_rate": self.average,
            "min_engagement_rate": self.min,
            "max_engagement_rate": self.max,
            "valid_periods": self.valid_periods,
            "total_periods": self.total_periods,
            "monthly_rates": [rate.to_dict() for rate in self.monthly],
        }


def average_engagement_rate(series: AccountSeries) -> EngagementSummary:
    """Summarize the months that have an engagement rate."""
    monthly = engagement_rates(series)
    valid = [rate for rate in monthly if rate.rate is not None]
    if not valid:
        return EngagementSummary(total_periods=len(monthly))
    values = [rate.rate for rate in valid]
    return EngagementSummary(
        average=round_half_up(sum(values) / len(values), 2),  # type: ignore[arg-type]
        min=min(values),  # type: ignore[type-var]
        max=max(values),  # type: ignore[type-var]
        valid_periods=len(valid),
        total_periods=len(monthly),
        monthly=valid,
    )


@define(slots=True, frozen=True)
class MetricAnalysis:
    """Aggregate value, trend and extremes of one metric for one account."""

    metric: str
    aggregation: str
    value: float
    trend: TrendSummary
    extremes: Extremes
    points: list[TrendPoint] = field(factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-friendly representation."""
        return {
            "metric": self.metric,
            "aggregated": {"type": self.aggregation, "value": self.value},
            "trend": self.trend.to_dict(),
            "extremes": self.extremes.to_dict(),
            "monthly_trends": [point.to_dict() for point in self.points],
        }


@define(slots=True, frozen=True)
class TrendAnalysis:
    """Full per-metric analysis of one account."""

    account: Account
    periods: tuple[Period, ...] = field(converter=tuple)
    metrics: dict[str, MetricAnalysis] = field(factory=dict)

    @property
    def total_periods(self) -> int:
        return len(self.periods)

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-friendly representation."""
        return {
            "account": self.account.to_dict(),
            "total_periods": self.total_periods,
            "first_period": self.periods[0].to_dict() if self.periods else None,
            "last_period": self.periods[-1].to_dict() if self.periods else None,
            "metrics": {key: value.to_dict() for key, value in self.metrics.items()},
        }


def comprehensive_trend_analysis(series: AccountSeries) -> TrendAnalysis:
    """Analyze every metric of an account: totals or averages, trends and extremes."""
    _require(series)
    periods = series.periods()
    if not periods:
        return TrendAnalysis(account=series.account, periods=())
    metrics = {}
    for metric in METRIC_KEYS:
        points = month_to_month_trend(series, metric)
        if registry.is_summable(metric):
            aggregation, value = "total", metric_total(series, metric)
        else:
            aggregation, value = "average", metric_average(series, metric)
        metrics[metric] = MetricAnalysis(
            metric=metric,
            aggregation=aggregation,
            value=value,
            trend=average_trend(points),
            extremes=performance_extremes(series, metric),
            points=points,
        )
    return TrendAnalysis(account=series.account, periods=periods, metrics=metrics)


@define(slots=True, frozen=True)
class AccountPerformance:
    """One account's standing for a metric in a cross-account comparison."""

    account: Account
    total_periods: int
    aggregation: str
    value: float
    average_trend: float
    extremes: Extremes

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-friendly representation."""
        return {
            "account": self.account.to_dict(),
            "total_periods": self.total_periods,
            "aggregation_type": self.aggregation,
            "aggregated_value": self.value,
            "average_trend": self.average_trend,
            **self.extremes.to_dict(),
        }


def compare_account_performance(
    series_list: Iterable[AccountSeries], metric: str
) -> list[AccountPerformance]:
    """Rank accounts by their aggregated ``metric``, highest first.

    Accounts without any months are skipped.
    """
    if series_list is None:
        raise TypeError("compare_account_performance() requires a list of series")
    registry.get(metric)
    performances = []
    for series in series_list:
        if not len(series):
            continue
        analysis = comprehensive_trend_analysis(series).metrics[metric]
        performances.append(
            AccountPerformance(
                account=series.account,
                total_periods=len(series),
                aggregation=analysis.aggregation,
                value=analysis.value,
                average_trend=analysis.trend.average_percentage_change,
                extremes=analysis.extremes,
            )
        )
    return sorted(performances, key=lambda item: item.value, reverse=True)


__all__ = [
    "AccountPerformance",
    "AnomalyReport",
    "AnomalyStatistics",
    "CorrelationResult",
    "EngagementRate",
    "EngagementSummary",
    "Extremes",
    "INSUFFICIENT_DATA",
    "MetricAnalysis",
    "MonthValue",
    "Outlier",
    "TrendAnalysis",
    "TrendPoint",
    "TrendSummary",
    "average_engagement_rate",
    "average_trend",
    "comprehensive_trend_analysis",
    "compare_account_performance",
    "correlation",
    "engagement_rates",
    "find_anomalies",
    "metric_average",
    "metric_total",
    "month_to_month_trend",
    "percentage_change",
]
