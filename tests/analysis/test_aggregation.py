"""Unit tests for the aggregation engine."""

import pytest
from tests.conftest import make_record

from ig_timeseries.analysis.aggregation import (
    AverageAggregate,
    SummableAggregate,
    account_breakdown,
    aggregate_account,
    aggregate_metric,
    aggregate_period,
    compare_dataset_periods,
    compare_periods,
    market_share,
    top_performers,
    validate_aggregation_params,
)
from ig_timeseries.analysis.trends import metric_total
from ig_timeseries.data.models import AccountSeries, Dataset
from ig_timeseries.data.periods import Period
from ig_timeseries.errors import ForbiddenAggregationError
from ig_timeseries.metrics import registry


def test_aggregate_metric_guards_sum():
    """Summing reach must fail; other reductions work."""
    with pytest.raises(ForbiddenAggregationError):
        aggregate_metric([1, 2], "reach", "sum")
    with pytest.raises(ForbiddenAggregationError):
        aggregate_metric([1, 2], "reach", "total")
    assert aggregate_metric([1, 2], "reach", "average") == 2.0
    assert aggregate_metric([100, -5, None, 200], "views", "total") == 300.0
    assert aggregate_metric([], "views", "max") == 0.0


def test_period_views_scenario(sample_dataset):
    """Views [100, 200] across two accounts."""
    views = aggregate_period(sample_dataset, 2025, 9).metrics["views"]
    assert isinstance(views, SummableAggregate)
    assert (views.total, views.average, views.min, views.max) == (300, 150, 100, 200)
    assert views.valid_accounts == 2


def test_period_reach_has_no_total(sample_dataset):
    """Reach [1000, 3000] is averaged and never totalled."""
    summary = aggregate_period(sample_dataset, 2025, 9)
    reach = summary.metrics["reach"]
    assert isinstance(reach, AverageAggregate)
    assert (reach.average, reach.min, reach.max) == (2000, 1000, 3000)
    assert not hasattr(reach, "total")
    assert "total" not in reach.to_dict()
    with pytest.raises(ForbiddenAggregationError, match="across accounts"):
        market_share(sample_dataset, 2025, 9, "reach")


def test_period_without_valid_values():
    """Zero valid values gives zeros and no error."""
    dataset = Dataset()
    dataset.add_record(make_record(views=-1, reach=-1, followers=-1))
    summary = aggregate_period(dataset, 2025, 9)
    assert summary.total_accounts == 1
    views = summary.metrics["views"]
    assert (views.total, views.average, views.valid_accounts) == (0, 0, 0)
    empty = aggregate_period(dataset, 2025, 1)
    assert empty.total_accounts == 0


def test_aggregate_account(sample_dataset):
    """Account aggregation branches on category."""
    result = aggregate_account(sample_dataset.get_series("1001"))
    assert result.metrics["views"].total == 270
    assert result.metrics["views"].average == 90
    assert isinstance(result.metrics["reach"], AverageAggregate)
    assert result.metrics["reach"].average == 950
    assert result.first == Period(2025, 7)
    assert result.to_dict()["metrics"]["views"]["valid_periods"] == 3


def test_aggregate_account_filter_and_empty(sample_dataset):
    """Period filters restrict the months; an empty series gives zeros."""
    series = sample_dataset.get_series("2002")
    filtered = aggregate_account(series, [Period(2025, 8), Period(2025, 9)])
    assert filtered.metrics["views"].total == 380

    empty = aggregate_account(AccountSeries(series.account))
    assert empty.periods == ()
    assert empty.metrics["views"].total == 0
    assert empty.metrics["reach"].average == 0
    assert not hasattr(empty.metrics["reach"], "total")


def test_compare_periods(sample_dataset):
    """Summable metrics compare totals, reach compares averages."""
    comparisons = compare_dataset_periods(sample_dataset, [Period(2025, 8), Period(2025, 9)])
    assert len(comparisons) == 1
    views = comparisons[0].metrics["views"]
    assert views.basis == "total"
    assert (views.previous, views.current, views.absolute_change) == (270, 300, 30)
    assert views.percentage_change == pytest.approx(30 / 270 * 100)
    assert comparisons[0].metrics["reach"].basis == "average"


def test_compare_periods_zero_baseline(sample_dataset):
    """A zero baseline follows the 100/0 convention."""
    summaries = [aggregate_period(sample_dataset, 2025, 1), aggregate_period(sample_dataset, 2025, 9)]
    change = compare_periods(summaries)[0].metrics["views"]
    assert change.percentage_change == 100.0
    assert compare_periods(summaries[:1]) == []
    with pytest.raises(ValueError):
        compare_dataset_periods(sample_dataset, [Period(2025, 9)])


def test_top_performers_stable_ties():
    """Ties keep alphabetical handle order."""
    dataset = Dataset()
    dataset.extend_records(
        [
            make_record("3", "charlie", views=50),
            make_record("1", "alpha", views=50),
            make_record("2", "bravo", views=80),
            make_record("4", "delta", views=-1),
        ]
    )
    ranking = top_performers(dataset, 2025, 9, "views", n=3)
    assert [(item.rank, item.account.handle) for item in ranking] == [
        (1, "bravo"),
        (2, "alpha"),
        (3, "charlie"),
    ]
    assert top_performers(dataset, 2025, 9, "views", n=0) == []


def test_market_share_sums_to_hundred():
    """Shares of a summable metric add up to 100."""
    dataset = Dataset()
    dataset.extend_records(
        [make_record(str(i), f"acct{i}", views=value) for i, value in enumerate([1, 1, 1], 1)]
    )
    shares = market_share(dataset, 2025, 9, "views")
    assert [item.share for item in shares] == [33.33, 33.33, 33.33]
    assert sum(item.share for item in shares) == pytest.approx(100, abs=0.05)


def test_market_share_zero_total():
    """A zero total gives an empty result."""
    dataset = Dataset()
    dataset.add_record(make_record(views=0))
    assert market_share(dataset, 2025, 9, "views") == []


def test_account_breakdown(sample_dataset):
    """Breakdown lists raw values tagged with categories."""
    rows = account_breakdown(sample_dataset, 2025, 9)
    assert [row.account.handle for row in rows] == ["alpha", "Bravo"]
    payload = rows[0].to_dict()
    assert payload["metrics"]["reach"] == {"value": 1000.0, "category": "unique_persons"}


def test_validate_aggregation_params(sample_dataset):
    """Parameter problems are reported, not raised."""
    check = validate_aggregation_params(
        dataset=sample_dataset, periods=[], metric="reach", operation="sum"
    )
    assert not check.is_valid
    assert check.warnings == ("Empty periods list given",)
    assert validate_aggregation_params(dataset=None).errors == (
        "A dataset is required for aggregation",
    )
    assert validate_aggregation_params(
        dataset=sample_dataset, metric="views", operation="total"
    ).is_valid


def test_every_reduction_passes_the_legality_check(mocker, sample_dataset):
    """Account, period, share and total paths all consult the registry guard."""
    guard = mocker.spy(registry, "assert_legal")
    across = mocker.spy(registry, "assert_legal_across_accounts")

    aggregate_account(sample_dataset.get_series("1001"))
    assert ("sum", "views") in [call.args for call in guard.call_args_list]
    guard.reset_mock()

    aggregate_period(sample_dataset, 2025, 9)
    assert ("sum", "views") in [call.args for call in across.call_args_list]
    across.reset_mock()

    market_share(sample_dataset, 2025, 9, "views")
    across.assert_any_call("sum", "views")

    metric_total(sample_dataset.get_series("1001"), "views")
    guard.assert_any_call("total", "views")
