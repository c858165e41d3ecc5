"""Unit tests for the analytics engine."""

import pytest
from tests.conftest import make_record, make_series

from ig_timeseries.analysis.trends import (
    INSUFFICIENT_DATA,
    average_engagement_rate,
    average_trend,
    compare_account_performance,
    comprehensive_trend_analysis,
    correlation,
    engagement_rates,
    find_anomalies,
    metric_average,
    metric_total,
    month_to_month_trend,
    performance_extremes,
)
from ig_timeseries.data.models import AccountSeries
from ig_timeseries.data.periods import Period
from ig_timeseries.errors import ForbiddenAggregationError


def test_followers_trend_scenario():
    """Followers [100, 150, 90] give +50% then -40%."""
    points = month_to_month_trend(make_series("followers", [100, 150, 90]), "followers")
    assert [point.percentage_change for point in points] == pytest.approx([50.0, -40.0])
    assert [point.absolute_change for point in points] == [50.0, -60.0]
    assert points[0].previous_period == Period(2025, 1)


def test_trend_needs_two_months():
    """A single month has no trend."""
    assert month_to_month_trend(make_series("views", [5]), "views") == []


def test_trend_zero_baseline():
    """Growth from zero is reported as 100%."""
    points = month_to_month_trend(make_series("views", [0, 10, 0]), "views")
    assert [point.percentage_change for point in points] == [100.0, -100.0]


def test_average_trend_counts_directions():
    """Months are classified as positive, negative or stable."""
    points = month_to_month_trend(make_series("views", [100, 150, 90, 90.5]), "views")
    summary = average_trend(points)
    assert summary.total_periods == 3
    assert (summary.positive_months, summary.negative_months, summary.stable_months) == (1, 1, 1)
    assert summary.average_absolute_change == pytest.approx(-9.5 / 3)
    assert average_trend([]).total_periods == 0


def test_performance_extremes():
    """Best and worst months are found; one month is both."""
    extremes = performance_extremes(make_series("reach", [5, 9, 1]), "reach")
    assert extremes.best.period == Period(2025, 2)
    assert extremes.worst.value == 1
    single = performance_extremes(make_series("reach", [7]), "reach")
    assert single.best == single.worst
    empty = performance_extremes(AccountSeries(single.best.record.account), "reach")
    assert empty.best is None and empty.worst is None


def test_negative_months_are_skipped():
    """A negative month takes no part in trend points or extremes."""
    series = make_series("views", [100, -20, 150])
    points = month_to_month_trend(series, "views")
    assert [(point.previous_period, point.period) for point in points] == [
        (Period(2025, 1), Period(2025, 3))
    ]
    assert points[0].percentage_change == 50.0
    extremes = performance_extremes(series, "views")
    assert extremes.worst.value == 100
    assert extremes.best.period == Period(2025, 3)


def test_correlation_insufficient_data():
    """Fewer than three pairs is an empty result, not an error."""
    result = correlation(make_series("reach", [1, 2]), "reach", "views")
    assert result.correlation is None
    assert result.message == INSUFFICIENT_DATA


def test_correlation_zero_variance_is_zero():
    """Zero variance is reported as zero correlation."""
    series = make_series("reach", [1, 2, 3])
    assert correlation(series, "reach", "views").correlation == 0.0
    assert correlation(series, "reach", "reach").correlation == pytest.approx(1.0)


def test_find_anomalies():
    """A spike is flagged as a high outlier with its z-score."""
    series = make_series("reach", [10, 10, 10, 10, 10, 10, 10, 10, 10, 100])
    report = find_anomalies(series, "reach")
    assert len(report.outliers) == 1
    outlier = report.outliers[0]
    assert outlier.deviation == "high"
    assert outlier.z_score == pytest.approx(3.0)
    assert report.statistics.sample_size == 10
    assert report.statistics.mean == 19


def test_find_anomalies_needs_three_points():
    """Fewer than three values returns no statistics."""
    report = find_anomalies(make_series("reach", [1, 50]), "reach")
    assert report.outliers == []
    assert report.statistics is None


def test_metric_total_guarded():
    """Totals are forbidden for reach but allowed for views."""
    with pytest.raises(ForbiddenAggregationError):
        metric_total(make_series("reach", [1, 2]), "reach")
    assert metric_total(make_series("views", [1, 2]), "views") == 3
    assert metric_average(make_series("reach", [1, 2]), "reach") == 1.5


def test_engagement_rates():
    """Rates are reach over followers, None without followers."""
    series = AccountSeries(make_series("reach", [0]).account)
    series.add(make_record(month=1, reach=50, followers=200))
    series.add(make_record(month=2, reach=30, followers=0))
    series.add(make_record(month=3, reach=1, followers=3))
    rates = engagement_rates(series)
    assert [rate.rate for rate in rates] == [25.0, None, 33.33]
    summary = average_engagement_rate(series)
    assert summary.valid_periods == 2
    assert summary.total_periods == 3
    assert summary.average == pytest.approx(29.17, abs=0.011)


def test_comprehensive_analysis_and_comparison(sample_dataset):
    """Summable metrics are totalled and reach is averaged."""
    analysis = comprehensive_trend_analysis(sample_dataset.get_series("1001"))
    assert analysis.total_periods == 3
    assert analysis.metrics["views"].aggregation == "total"
    assert analysis.metrics["views"].value == 270
    assert analysis.metrics["reach"].aggregation == "average"
    assert analysis.metrics["reach"].value == pytest.approx(950)

    ranking = compare_account_performance(sample_dataset.series(), "views")
    assert [item.account.account_id for item in ranking] == ["2002", "1001"]
