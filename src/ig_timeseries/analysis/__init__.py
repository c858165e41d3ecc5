"""Aggregation and trend analytics over ingested datasets."""

from .aggregation import (
    aggregate_account,
    aggregate_metric,
    aggregate_period,
    compare_periods,
    market_share,
    top_performers,
)
from .trends import correlation, find_anomalies, month_to_month_trend, percentage_change

__all__ = [
    "aggregate_account",
    "aggregate_metric",
    "aggregate_period",
    "compare_periods",
    "correlation",
    "find_anomalies",
    "market_share",
    "month_to_month_trend",
    "percentage_change",
    "top_performers",
]
